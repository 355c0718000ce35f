"""
Celery tasks for gradebook app.
Handles class-wide report generation and the subject-key migration.
"""
import logging

from celery import shared_task
from django.db import DatabaseError

from academics.models import SchoolClass

from . import config
from .exceptions import SchemeNotFound
from .reports import build_class_reports
from .stores import DjangoRecordStore
from .subject_keys import migrate_subject_keys

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    max_retries=0,
    soft_time_limit=config.BULK_TASK_SOFT_TIME_LIMIT,
    time_limit=config.BULK_TASK_TIME_LIMIT,
)
def generate_class_reports(self, school_id, class_id, academic_year, student_ids=None):
    """
    Build reports for every student in a class.

    The scheme is fetched once; each student's marks are then fetched and
    computed independently, so one failing student does not block the rest.

    Args:
        school_id: ID of the School
        class_id: ID of the SchoolClass
        academic_year: e.g. "2024-2025"
        student_ids: optional subset; defaults to students with marks in the class

    Returns:
        dict with success, total, generated, reports and errors list
    """
    store = DjangoRecordStore()

    try:
        school_class = store.fetch_class(class_id)
    except SchoolClass.DoesNotExist:
        logger.error(f"Class {class_id} not found for report generation")
        return {'success': False, 'error': 'Class not found'}

    try:
        scheme = store.fetch_scheme(school_id, school_class.name, academic_year)
    except SchemeNotFound as e:
        logger.error(str(e))
        return {'success': False, 'error': str(e)}

    if student_ids is None:
        student_ids = store.fetch_class_student_ids(class_id, academic_year)

    reports, errors = build_class_reports(
        store, school_id, school_class, scheme, student_ids, academic_year
    )

    logger.info(
        f"Generated {len(reports)}/{len(student_ids)} reports for {school_class} ({academic_year}), "
        f"{len(errors)} failed"
    )
    return {
        'success': True,
        'total': len(student_ids),
        'generated': len(reports),
        'reports': [report.to_dict() for report in reports],
        'errors': errors,
    }


@shared_task(
    bind=True,
    max_retries=config.TASK_MAX_RETRIES,
    default_retry_delay=config.TASK_RETRY_DELAY,
    soft_time_limit=config.BULK_TASK_SOFT_TIME_LIMIT,
    time_limit=config.BULK_TASK_TIME_LIMIT,
)
def migrate_school_subject_keys(self, school_id, dry_run=False):
    """
    Run the legacy subject-key migration for one school.

    Committed batches survive a failure, so a retry resumes where the
    previous attempt stopped.
    """
    try:
        result = migrate_subject_keys(school_id, dry_run=dry_run)
    except DatabaseError as e:
        logger.warning(f"Subject-key migration for school {school_id} failed, retrying: {e}")
        raise self.retry(exc=e, countdown=config.TASK_RETRY_DELAY * (2 ** self.request.retries))
    return dict(result.to_dict(), success=True)
