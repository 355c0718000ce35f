"""
Mark normalization and matching.

Mark records are loosely typed: assessment names are free text typed by
teachers, older rows only carry legacy keys, and the same test may have
been saved more than once. This module resolves each record to a
(subject, paper, group, test) coordinate of a scheme, keeps one value per
coordinate and returns everything it could not place as orphans.
"""
import logging
import re
from collections import Counter

from django.db import models
from django.utils.translation import gettext_lazy as _

from .utils import to_decimal

logger = logging.getLogger(__name__)

# Latest updated_at (or created_at) wins; equal timestamps keep the record seen first
DEDUP_STRATEGY = 'most_recent_first_seen'

_WHITESPACE = re.compile(r'\s+')
_PAPER_PREFIX = re.compile(r'^\s*paper\s*(\d+)\s*-(.*)$', re.IGNORECASE)


def normalize_name(value):
    """Trim, collapse internal whitespace and lowercase. Idempotent."""
    if value is None:
        return ''
    return _WHITESPACE.sub(' ', str(value).strip()).lower()


def compose_assessment_name(group_name, test_name, paper=None):
    """Build the stored name: "FA1-Tool 1" or "SA1-Paper2-AS3"."""
    if paper is None:
        return f"{group_name}-{test_name}"
    return f"{group_name}-Paper{paper}-{test_name}"


def effective_assessment_name(record):
    """
    The record's assessment name, falling back to the legacy
    "<assessment_key>-<test_key>" form for rows saved before names existed.
    """
    name = (getattr(record, 'assessment_name', None) or '').strip()
    if name:
        return name
    assessment_key = (getattr(record, 'assessment_key', None) or '').strip()
    test_key = (getattr(record, 'test_key', None) or '').strip()
    if assessment_key and test_key:
        return f"{assessment_key}-{test_key}"
    return None


def split_assessment_name(name):
    """
    Split "<group>-<test>" on the first "-".

    A leading "Paper<N>-" segment in the test part is taken as the paper
    number. Returns (group_raw, test_raw, paper) or None when the name
    cannot be split.
    """
    if not name or '-' not in name:
        return None
    group_raw, test_raw = name.split('-', 1)
    paper = None
    match = _PAPER_PREFIX.match(test_raw)
    if match:
        paper = int(match.group(1))
        test_raw = match.group(2)
        if paper < 1:
            return None
    if not group_raw.strip() or not test_raw.strip():
        return None
    return group_raw, test_raw, paper


class OrphanReason(models.TextChoices):
    MISSING_NAME = 'missing_name', _('No assessment name')
    MALFORMED_NAME = 'malformed_name', _('Assessment name cannot be split')
    UNKNOWN_GROUP = 'unknown_group', _('Group not in scheme')
    UNKNOWN_TEST = 'unknown_test', _('Test not in group')
    UNKNOWN_SUBJECT = 'unknown_subject', _('Subject not on class roster')
    UNKNOWN_PAPER = 'unknown_paper', _('Paper not configured for subject')


class OrphanedRecord:
    """A record that could not be placed in the scheme. Reported, never raised."""

    def __init__(self, record, reason, detail=''):
        self.record = record
        self.reason = reason
        self.detail = detail

    def __repr__(self):
        return f"OrphanedRecord({self.reason}, {self.detail!r})"

    def to_dict(self):
        return {
            'record_id': str(getattr(self.record, 'id', '') or ''),
            'subject_name': getattr(self.record, 'subject_name', None),
            'assessment_name': effective_assessment_name(self.record),
            'reason': str(self.reason),
            'detail': self.detail,
        }


class MarkCoordinate:
    """Where a mark belongs: subject, paper, group and test."""

    __slots__ = ('subject', 'paper', 'group_name', 'test_name')

    def __init__(self, subject, paper, group_name, test_name):
        self.subject = subject
        self.paper = paper
        self.group_name = group_name
        self.test_name = test_name

    def _key(self):
        return (self.subject, self.paper, self.group_name, self.test_name)

    def __eq__(self, other):
        return isinstance(other, MarkCoordinate) and self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __repr__(self):
        return f"MarkCoordinate{self._key()!r}"


class MatchResult:
    """
    Matched marks keyed {(subject, paper): {group_name: {test_name: Decimal}}}
    plus orphans and the number of superseded duplicates. `records` holds
    the kept records per (subject, paper).
    """

    def __init__(self):
        self.marks = {}
        self.records = {}
        self.orphans = []
        self.superseded = 0

    def subjects(self):
        """Subjects in first-seen order."""
        seen = []
        for subject, _paper in self.marks:
            if subject not in seen:
                seen.append(subject)
        return seen

    def papers(self, subject):
        return sorted(paper for subj, paper in self.marks if subj == subject)

    def subject_marks(self, subject, paper=1):
        return self.marks.get((subject, paper), {})

    def subject_formative_marks(self, subject):
        return self.subject_marks(subject, 1)

    def placed_records(self, subject, paper):
        """Records whose marks were kept for a subject paper."""
        return self.records.get((subject, paper), [])


def _record_timestamp(record):
    return getattr(record, 'updated_at', None) or getattr(record, 'created_at', None)


def _is_newer(candidate, current):
    if candidate is None:
        return False
    if current is None:
        return True
    return candidate > current


def match_marks(scheme, records, roster=None):
    """
    Resolve mark records against a scheme.

    Args:
        scheme: ResolvedScheme
        records: iterable of MarkRecord-like objects
        roster: optional iterable of canonical subject names; records for
            other subjects are orphaned as unknown_subject

    Returns:
        MatchResult
    """
    result = MatchResult()
    roster_by_key = None
    if roster is not None:
        roster_by_key = {normalize_name(name): name for name in roster}

    chosen = {}
    for record in records:
        name = effective_assessment_name(record)
        if name is None:
            result.orphans.append(OrphanedRecord(record, OrphanReason.MISSING_NAME))
            continue

        parts = split_assessment_name(name)
        if parts is None:
            result.orphans.append(OrphanedRecord(record, OrphanReason.MALFORMED_NAME, name))
            continue
        group_raw, test_raw, paper = parts

        group = scheme.group(group_raw)
        if group is None:
            result.orphans.append(OrphanedRecord(record, OrphanReason.UNKNOWN_GROUP, group_raw.strip()))
            continue

        test = group.find_test(test_raw)
        if test is None:
            result.orphans.append(OrphanedRecord(
                record, OrphanReason.UNKNOWN_TEST, f"{group.name}: {test_raw.strip()}"
            ))
            continue

        subject = (record.subject_name or '').strip()
        if roster_by_key is not None:
            canonical = roster_by_key.get(normalize_name(subject))
            if canonical is None:
                result.orphans.append(OrphanedRecord(record, OrphanReason.UNKNOWN_SUBJECT, subject))
                continue
            subject = canonical

        # Formative periods are scored once per subject
        if group.is_formative or paper is None:
            paper = 1

        coordinate = MarkCoordinate(subject, paper, group.name, test.name)
        timestamp = _record_timestamp(record)
        if coordinate in chosen:
            result.superseded += 1
            if not _is_newer(timestamp, chosen[coordinate][0]):
                continue
        chosen[coordinate] = (timestamp, record)

    for coordinate, (_timestamp, record) in chosen.items():
        groups = result.marks.setdefault((coordinate.subject, coordinate.paper), {})
        groups.setdefault(coordinate.group_name, {})[coordinate.test_name] = to_decimal(record.marks_obtained)
        result.records.setdefault((coordinate.subject, coordinate.paper), []).append(record)

    if result.orphans:
        reasons = Counter(str(o.reason) for o in result.orphans)
        logger.warning(f"{len(result.orphans)} mark record(s) could not be matched: {dict(reasons)}")
        for orphan in result.orphans:
            logger.debug(f"Orphaned mark record: {orphan.to_dict()}")
    if result.superseded:
        logger.debug(f"{result.superseded} duplicate mark record(s) superseded ({DEDUP_STRATEGY})")

    return result
