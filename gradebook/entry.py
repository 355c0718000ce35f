"""
Marks entry write path.

Marks are upserted per record key (student, class, subject, assessment
name, academic year, school), so re-submitting a sheet updates the
existing rows instead of creating duplicates.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from .exceptions import MarksEntryLocked
from .matching import split_assessment_name
from .models import MarkRecord
from .stores import DjangoRecordStore
from .utils import to_decimal

logger = logging.getLogger(__name__)


def _assessment_name(entry):
    name = (entry.get('assessment_name') or '').strip()
    if not name and entry.get('assessment_key') and entry.get('test_key'):
        name = f"{entry['assessment_key']}-{entry['test_key']}"
    return name


def _validate(entries):
    """Normalize submitted entries; raise ValidationError listing every bad row."""
    cleaned = []
    errors = []
    for index, entry in enumerate(entries):
        name = _assessment_name(entry)
        parts = split_assessment_name(name)
        if parts is None:
            errors.append(f"Row {index + 1}: invalid assessment name '{name}'")
            continue
        group_raw, test_raw, _paper = parts

        if not entry.get('student_id'):
            errors.append(f"Row {index + 1}: student_id is required")
            continue

        try:
            marks = to_decimal(entry.get('marks_obtained'))
            max_marks = to_decimal(entry.get('max_marks'))
        except ArithmeticError:
            errors.append(f"Row {index + 1}: marks must be numbers")
            continue
        if marks is None or max_marks is None:
            errors.append(f"Row {index + 1}: marks_obtained and max_marks are required")
            continue
        # NaN/Infinity parse as Decimal but cannot be compared
        if not marks.is_finite() or not max_marks.is_finite():
            errors.append(f"Row {index + 1}: marks must be finite numbers")
            continue
        if max_marks < 1:
            errors.append(f"Row {index + 1}: max marks must be at least 1")
            continue
        if marks < 0 or marks > max_marks:
            errors.append(f"Row {index + 1}: marks {marks} must be between 0 and {max_marks}")
            continue

        cleaned.append({
            'student_id': str(entry['student_id']),
            'assessment_name': name,
            'assessment_key': entry.get('assessment_key') or group_raw.strip(),
            'test_key': entry.get('test_key') or test_raw.strip(),
            'group_name': group_raw.strip(),
            'marks_obtained': marks,
            'max_marks': max_marks,
        })

    if errors:
        raise ValidationError(errors)
    return cleaned


def submit_marks(school_id, class_id, subject_name, academic_year, entries, marked_by='', store=None):
    """
    Validate and upsert a batch of marks for one class and subject.

    Args:
        entries: list of dicts with student_id, assessment_name (or
            assessment_key + test_key), marks_obtained and max_marks

    Returns:
        dict with created/updated counts

    Raises:
        MarksEntryLocked: a group in the batch is locked for the year
        ValidationError: a row is malformed or out of range; nothing is written
    """
    store = store or DjangoRecordStore()
    cleaned = _validate(entries)
    if not cleaned:
        return {'created': 0, 'updated': 0, 'count': 0}

    for group_name in sorted({row['group_name'] for row in cleaned}):
        if store.is_locked(school_id, academic_year, group_name):
            raise MarksEntryLocked(academic_year, group_name)

    created = updated = 0
    with transaction.atomic():
        for row in cleaned:
            _record, was_created = MarkRecord.objects.update_or_create(
                school_id=school_id,
                school_class_id=class_id,
                student_id=row['student_id'],
                subject_name=subject_name,
                assessment_name=row['assessment_name'],
                academic_year=academic_year,
                defaults={
                    'assessment_key': row['assessment_key'],
                    'test_key': row['test_key'],
                    'marks_obtained': row['marks_obtained'],
                    'max_marks': row['max_marks'],
                    'marked_by': marked_by,
                },
            )
            if was_created:
                created += 1
            else:
                updated += 1

    logger.info(
        f"Saved marks for {subject_name} ({academic_year}): {created} created, {updated} updated"
    )
    return {'created': created, 'updated': updated, 'count': created + updated}
