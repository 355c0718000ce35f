"""
Legacy subject-key migration.

Older mark records store an opaque subject identifier instead of the
subject's name. Each stored key is classified against its class roster
as a CanonicalName or a LegacyId; resolvable legacy ids are rewritten to
the canonical name in batches. Nothing that is ambiguous, unmatched or
would collide with an existing record is touched.
"""
from collections import defaultdict
import logging

from django.db import transaction

from academics.models import ClassSubject

from . import config
from .exceptions import AmbiguousSubjectKey
from .models import MarkRecord

logger = logging.getLogger(__name__)


class SubjectKey:
    """A subject value as stored on a mark record."""

    is_canonical = False

    def __init__(self, value):
        self.value = value

    def __eq__(self, other):
        return type(self) is type(other) and self.__dict__ == other.__dict__

    def __hash__(self):
        return hash((type(self), self.value))


class CanonicalName(SubjectKey):
    is_canonical = True

    def __repr__(self):
        return f"CanonicalName({self.value!r})"


class LegacyId(SubjectKey):
    """An opaque stored key; `canonical_name` is None when no roster subject owns it."""

    def __init__(self, value, canonical_name=None):
        super().__init__(value)
        self.canonical_name = canonical_name

    def __repr__(self):
        return f"LegacyId({self.value!r} -> {self.canonical_name!r})"

    @property
    def resolved(self):
        return self.canonical_name is not None


def classify_subject_key(value, roster):
    """
    Classify a stored subject value against a class roster.

    Args:
        value: the stored subject_name
        roster: ClassSubject-like objects with `name` and `legacy_key`

    Returns:
        CanonicalName or LegacyId

    Raises:
        AmbiguousSubjectKey: the value is a canonical name and another
            subject's legacy key, or the legacy key of several subjects
    """
    names = {subject.name for subject in roster}
    owners = {subject.name for subject in roster if subject.legacy_key and subject.legacy_key == value}

    if value in names:
        others = owners - {value}
        if others:
            raise AmbiguousSubjectKey(value, others | {value})
        return CanonicalName(value)
    if len(owners) > 1:
        raise AmbiguousSubjectKey(value, owners)
    if owners:
        return LegacyId(value, owners.pop())
    return LegacyId(value)


class MigrationResult:
    def __init__(self, dry_run=False):
        self.dry_run = dry_run
        self.scanned = 0
        self.affected = 0
        self.unchanged = 0
        self.ambiguous = 0
        self.unmatched = 0
        self.conflicts = 0
        self.flagged_values = defaultdict(set)

    def __repr__(self):
        return f"MigrationResult(scanned={self.scanned}, affected={self.affected}, dry_run={self.dry_run})"

    def flag(self, reason, value):
        self.flagged_values[reason].add(value)

    def to_dict(self):
        return {
            'dry_run': self.dry_run,
            'scanned': self.scanned,
            'affected': self.affected,
            'unchanged': self.unchanged,
            'ambiguous': self.ambiguous,
            'unmatched': self.unmatched,
            'conflicts': self.conflicts,
            'flagged_values': {reason: sorted(values) for reason, values in self.flagged_values.items()},
        }


def _record_key(record, subject_name):
    return (record.student_id, record.school_class_id, subject_name,
            record.assessment_name, record.academic_year)


def migrate_subject_keys(school_id, dry_run=False, batch_size=None):
    """
    Rewrite legacy subject keys on a school's mark records to canonical names.

    Re-runnable: batches are committed independently and a completed run
    leaves nothing to rewrite, so a second run reports 0 affected.
    `updated_at` is left untouched so most-recent deduplication is unchanged.

    Returns:
        MigrationResult
    """
    batch_size = batch_size or config.MIGRATION_BATCH_SIZE
    result = MigrationResult(dry_run=dry_run)

    rosters = defaultdict(list)
    for subject in ClassSubject.objects.filter(school_class__school_id=school_id):
        rosters[subject.school_class_id].append(subject)

    records = list(
        MarkRecord.objects.filter(school_id=school_id)
        .only('id', 'student_id', 'school_class_id', 'subject_name', 'assessment_name', 'academic_year')
        .order_by('id')
    )
    taken = {_record_key(record, record.subject_name) for record in records}

    pending = []
    for record in records:
        result.scanned += 1
        try:
            key = classify_subject_key(record.subject_name, rosters.get(record.school_class_id, []))
        except AmbiguousSubjectKey as e:
            result.ambiguous += 1
            result.flag('ambiguous', record.subject_name)
            logger.debug(f"Record {record.id}: {e}")
            continue

        if key.is_canonical:
            result.unchanged += 1
            continue
        if not key.resolved:
            result.unmatched += 1
            result.flag('unmatched', record.subject_name)
            continue

        # Named rows are unique per key; a rewrite must not merge two rows
        if record.assessment_name is not None:
            new_key = _record_key(record, key.canonical_name)
            if new_key in taken:
                result.conflicts += 1
                result.flag('conflict', record.subject_name)
                logger.warning(
                    f"Record {record.id}: rewriting '{record.subject_name}' to "
                    f"'{key.canonical_name}' would collide with an existing record"
                )
                continue
            taken.add(new_key)

        record.subject_name = key.canonical_name
        pending.append(record)

    result.affected = len(pending)

    if dry_run:
        logger.info(f"[DRY RUN] School {school_id}: {result.affected} record(s) would be rewritten")
        return result

    for start in range(0, len(pending), batch_size):
        batch = pending[start:start + batch_size]
        with transaction.atomic():
            MarkRecord.objects.bulk_update(batch, ['subject_name'])
        logger.info(f"School {school_id}: rewrote {start + len(batch)}/{len(pending)} subject key(s)")

    if result.ambiguous or result.unmatched or result.conflicts:
        logger.warning(
            f"School {school_id}: {result.ambiguous} ambiguous, {result.unmatched} unmatched, "
            f"{result.conflicts} conflicting record(s) left unchanged"
        )
    return result
