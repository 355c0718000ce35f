"""
Record store boundary for the grading engine.

The engine only needs a handful of reads (and the marks write path a few
writes); they are collected behind RecordStore so reports can be built
from any persistence layer. DjangoRecordStore is the ORM implementation.
"""
from abc import ABC, abstractmethod
import logging

from django.db.models import Count, Q

from academics.models import AttendanceMonth, ClassSubject, SchoolClass
from schools.models import School

from .matching import compose_assessment_name
from .models import MarkRecord, MarksEntryLock
from .schemes import resolve_scheme

logger = logging.getLogger(__name__)


class RecordStore(ABC):
    """
    Abstract interface the report builder reads through.

    Implementations raise SchemeNotFound from fetch_scheme and let their own
    fetch errors propagate.
    """

    @abstractmethod
    def fetch_class(self, class_id):
        """Return the class (needs a `name`)."""

    @abstractmethod
    def fetch_scheme(self, school_id, class_name, academic_year):
        """Return a ResolvedScheme or raise SchemeNotFound."""

    @abstractmethod
    def fetch_student_marks(self, student_id, school_id, academic_year):
        """Return all of a student's mark records for the year, oldest first."""

    @abstractmethod
    def fetch_assessment_marks(self, school_id, class_id, subject_name, group_name,
                               academic_year, paper=None):
        """Return a class's marks for one subject and group (optionally one paper)."""

    @abstractmethod
    def fetch_attendance(self, student_id, academic_year=None, school_id=None):
        """Return AttendanceMonth-like rows; student ids are only unique within a school."""

    @abstractmethod
    def fetch_subject_roster(self, class_id):
        """Return the class's subjects (objects with `name` and `papers`)."""

    @abstractmethod
    def fetch_second_language(self, school_id):
        """Return the school's second-language subject name ('' for none)."""

    @abstractmethod
    def is_locked(self, school_id, academic_year, group_name):
        """True when marks entry for the group is closed."""


class DjangoRecordStore(RecordStore):
    """RecordStore backed by the Django ORM."""

    def fetch_class(self, class_id):
        return SchoolClass.objects.get(pk=class_id)

    def fetch_scheme(self, school_id, class_name, academic_year):
        return resolve_scheme(school_id, class_name, academic_year)

    def fetch_student_marks(self, student_id, school_id, academic_year):
        return list(
            MarkRecord.objects.filter(
                student_id=student_id,
                school_id=school_id,
                academic_year=academic_year,
            ).order_by('created_at', 'id')
        )

    def fetch_assessment_marks(self, school_id, class_id, subject_name, group_name,
                               academic_year, paper=None):
        """
        Marks whose assessment name starts with "<group>-" (or "<group>-Paper<N>-"
        when a paper is given). Legacy rows without a name are matched on
        assessment_key when no paper is requested.
        """
        if paper is None:
            names = Q(assessment_name__startswith=f"{group_name}-") | Q(
                assessment_name__isnull=True, assessment_key=group_name
            )
        else:
            names = Q(assessment_name__startswith=compose_assessment_name(group_name, '', paper))

        return list(
            MarkRecord.objects.filter(
                names,
                school_id=school_id,
                school_class_id=class_id,
                subject_name=subject_name,
                academic_year=academic_year,
            ).order_by('student_id', 'created_at', 'id')
        )

    def fetch_attendance(self, student_id, academic_year=None, school_id=None):
        months = AttendanceMonth.objects.filter(student_id=student_id)
        if academic_year is not None:
            months = months.filter(academic_year=academic_year)
        if school_id is not None:
            months = months.filter(school_id=school_id)
        return list(months.order_by('month'))

    def fetch_subject_roster(self, class_id):
        return list(ClassSubject.objects.filter(school_class_id=class_id).order_by('order', 'name'))

    def fetch_second_language(self, school_id):
        return School.objects.values_list('second_language_subject', flat=True).get(pk=school_id)

    def is_locked(self, school_id, academic_year, group_name):
        return MarksEntryLock.is_locked_for(school_id, academic_year, group_name)

    def fetch_class_student_ids(self, class_id, academic_year):
        """Students with at least one mark in the class for the year."""
        return list(
            MarkRecord.objects.filter(
                school_class_id=class_id,
                academic_year=academic_year,
            ).order_by('student_id').values_list('student_id', flat=True).distinct()
        )

    def find_duplicate_marks(self, school_id, limit=50):
        """
        Records sharing a key apart from the subject, i.e. the same
        assessment saved under several subject keys.

        Returns:
            list of dicts with the shared key, count and subject names
        """
        key_fields = ['student_id', 'school_class_id', 'assessment_name', 'academic_year']
        groups = (
            MarkRecord.objects.filter(school_id=school_id, assessment_name__isnull=False)
            .values(*key_fields)
            .annotate(count=Count('id'))
            .filter(count__gt=1)
            .order_by(*key_fields)[:limit]
        )

        duplicates = []
        for group in groups:
            key = {field: group[field] for field in key_fields}
            subjects = MarkRecord.objects.filter(school_id=school_id, **key).values_list(
                'subject_name', flat=True
            )
            duplicates.append(dict(key, count=group['count'], subjects=sorted(set(subjects))))
        logger.debug(f"Found {len(duplicates)} duplicate mark key(s) for school {school_id}")
        return duplicates
