import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from academics.models import SchoolClass
from schools.models import School

from .exceptions import SchemeLocked


class AssessmentScheme(models.Model):
    """
    Assessment structure for one class in one academic year
    (e.g., FA1-FA4 formative periods and SA1-SA2 summative periods).

    Once marks exist for the class and year the scheme is frozen:
    groups and tests can no longer be added, changed or removed.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='assessment_schemes'
    )
    class_name = models.CharField(
        max_length=50,
        help_text='Class the scheme applies to (e.g., Class 10)'
    )
    academic_year = models.CharField(
        max_length=9,
        help_text='e.g., 2024-2025'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'assessment_scheme'
        ordering = ['school', 'academic_year', 'class_name']
        verbose_name = 'Assessment Scheme'
        verbose_name_plural = 'Assessment Schemes'
        unique_together = ['school', 'class_name', 'academic_year']

    def __str__(self):
        return f"{self.class_name} ({self.academic_year})"

    def has_marks(self):
        """Check whether any mark has been recorded under this scheme."""
        return MarkRecord.objects.filter(
            school_id=self.school_id,
            school_class__name=self.class_name,
            academic_year=self.academic_year,
        ).exists()

    def assert_editable(self):
        """
        Raise SchemeLocked once marks exist.

        Checked by model save()/delete() only; queryset update()/delete()
        bypass it.
        """
        if self.has_marks():
            raise SchemeLocked(self)

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = AssessmentScheme.objects.filter(pk=self.pk).first()
            moved = stored is not None and (
                stored.school_id != self.school_id
                or stored.class_name != self.class_name
                or stored.academic_year != self.academic_year
            )
            if moved:
                stored.assert_editable()
        super().save(*args, **kwargs)

    def to_resolved(self):
        """Build the in-memory ResolvedScheme used by the grading engine."""
        from .schemes import ResolvedGroup, ResolvedScheme, ResolvedTest

        groups = []
        for group in self.groups.all():
            tests = [
                ResolvedTest(test.test_name, test.max_marks, order=test.order, test_id=test.id)
                for test in group.tests.all()
            ]
            groups.append(ResolvedGroup(
                group.group_name, group.group_type, tests,
                order=group.order, group_id=group.id,
            ))
        return ResolvedScheme(
            groups,
            scheme_id=self.id,
            school_id=self.school_id,
            class_name=self.class_name,
            academic_year=self.academic_year,
        )


class AssessmentGroup(models.Model):
    """A grading period within a scheme (e.g., FA1, SA2)."""

    class GroupType(models.TextChoices):
        FORMATIVE = 'formative', _('Formative')
        SUMMATIVE = 'summative', _('Summative')

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    scheme = models.ForeignKey(
        AssessmentScheme,
        on_delete=models.CASCADE,
        related_name='groups'
    )
    group_name = models.CharField(
        max_length=50,
        help_text='Period name used in mark records (e.g., FA1, SA1)'
    )
    group_type = models.CharField(
        max_length=10,
        choices=GroupType.choices,
    )
    order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = 'assessment_group'
        ordering = ['order', 'group_name']
        unique_together = ['scheme', 'group_name']

    def __str__(self):
        return f"{self.scheme} - {self.group_name}"

    def clean(self):
        self.group_name = (self.group_name or '').strip()
        if '-' in self.group_name:
            raise ValidationError({
                'group_name': 'Group names cannot contain "-"; it separates group and test in mark records.'
            })

    def save(self, *args, **kwargs):
        self.scheme.assert_editable()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self.scheme.assert_editable()
        return super().delete(*args, **kwargs)

    @property
    def max_marks(self):
        return sum((t.max_marks for t in self.tests.all()), Decimal('0'))


class TestComponent(models.Model):
    """An individually scored test within a group (e.g., Tool 1, AS1)."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    group = models.ForeignKey(
        AssessmentGroup,
        on_delete=models.CASCADE,
        related_name='tests'
    )
    test_name = models.CharField(max_length=50)
    max_marks = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text='Maximum marks available for this test'
    )
    order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = 'test_component'
        ordering = ['order', 'test_name']
        unique_together = ['group', 'test_name']

    def __str__(self):
        return f"{self.group.group_name}-{self.test_name}"

    def clean(self):
        from .matching import normalize_name

        if self.max_marks is not None and self.max_marks <= 0:
            raise ValidationError({'max_marks': 'Max marks must be positive.'})

        # Tests are matched on normalized names, so "Tool 1" and "tool  1" collide
        normalized = normalize_name(self.test_name)
        siblings = TestComponent.objects.filter(group_id=self.group_id).exclude(pk=self.pk)
        if any(normalize_name(t.test_name) == normalized for t in siblings):
            raise ValidationError({
                'test_name': f'A test named "{self.test_name}" already exists in {self.group.group_name}.'
            })

    def save(self, *args, **kwargs):
        self.group.scheme.assert_editable()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        self.group.scheme.assert_editable()
        return super().delete(*args, **kwargs)


class MarkRecord(models.Model):
    """
    Marks scored by one student on one test.

    `assessment_name` is "<group>-<test>" (summative marks may carry a paper
    segment: "SA1-Paper2-AS3"). Rows written before assessment names existed
    only have `assessment_key`/`test_key`.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='mark_records'
    )
    school_class = models.ForeignKey(
        SchoolClass,
        on_delete=models.CASCADE,
        related_name='mark_records'
    )
    student_id = models.CharField(max_length=64)
    subject_name = models.CharField(max_length=100)
    academic_year = models.CharField(max_length=9)
    assessment_name = models.CharField(max_length=120, null=True, blank=True)
    assessment_key = models.CharField(max_length=50, blank=True)
    test_key = models.CharField(max_length=50, blank=True)
    marks_obtained = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0'))]
    )
    max_marks = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text='Test maximum at the time of entry'
    )
    marked_by = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'mark_record'
        ordering = ['student_id', 'subject_name', 'assessment_name']
        constraints = [
            models.UniqueConstraint(
                fields=['student_id', 'school_class', 'subject_name',
                        'assessment_name', 'academic_year', 'school'],
                name='unique_mark_record',
            ),
        ]
        indexes = [
            models.Index(fields=['school', 'student_id', 'academic_year'], name='mark_student_year_idx'),
            models.Index(fields=['school_class', 'subject_name', 'academic_year'], name='mark_class_subject_idx'),
        ]

    def __str__(self):
        return f"{self.student_id} - {self.subject_name} {self.assessment_name}: {self.marks_obtained}"

    def clean(self):
        """Validate marks against the recorded maximum"""
        if self.marks_obtained is not None and self.max_marks is not None:
            if self.marks_obtained > self.max_marks:
                raise ValidationError(
                    f'Marks ({self.marks_obtained}) cannot exceed max marks ({self.max_marks})'
                )


class MarksEntryLock(models.Model):
    """Closes marks entry for one assessment group across a school for a year."""
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='marks_entry_locks'
    )
    academic_year = models.CharField(max_length=9)
    group_name = models.CharField(max_length=50)
    is_locked = models.BooleanField(default=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'marks_entry_lock'
        ordering = ['academic_year', 'group_name']
        unique_together = ['school', 'academic_year', 'group_name']

    def __str__(self):
        state = 'locked' if self.is_locked else 'open'
        return f"{self.group_name} {self.academic_year}: {state}"

    @classmethod
    def is_locked_for(cls, school_id, academic_year, group_name):
        return cls.objects.filter(
            school_id=school_id,
            academic_year=academic_year,
            group_name=group_name,
            is_locked=True,
        ).exists()
