from django.core.exceptions import ValidationError
from django.db import models
from django.utils.translation import gettext_lazy as _

from schools.models import School


class SchoolClass(models.Model):
    """
    Represents a class/classroom grouping of students within a school.
    The class name (e.g., "Class 10") is what assessment schemes are keyed by.
    """
    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='classes'
    )
    name = models.CharField(
        max_length=50,
        help_text="e.g., Class 10, Class 9"
    )
    section = models.CharField(
        max_length=5,
        blank=True,
        help_text="A, B, C, etc."
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'school_class'
        ordering = ['school', 'name', 'section']
        verbose_name = "Class"
        verbose_name_plural = "Classes"
        unique_together = ['school', 'name', 'section']

    def __str__(self):
        if self.section:
            return f"{self.name}-{self.section}"
        return self.name


class ClassSubject(models.Model):
    """
    A subject on a class's roster.

    `name` is the canonical subject key mark records should carry. Older
    records may instead carry `legacy_key`, an opaque identifier that the
    subject-key migration rewrites to `name`.
    """
    school_class = models.ForeignKey(
        SchoolClass,
        on_delete=models.CASCADE,
        related_name='subjects'
    )
    name = models.CharField(
        max_length=100,
        help_text="e.g., Mathematics, English, Science"
    )
    legacy_key = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text="Identifier stored in older mark records instead of the name"
    )
    paper_names = models.CharField(
        max_length=200,
        blank=True,
        help_text=(
            "Comma separated paper names, e.g. 'Physics,Biology'. "
            "Blank means paper I, plus II when paper-2 marks exist."
        )
    )
    order = models.PositiveSmallIntegerField(default=0)

    class Meta:
        db_table = 'class_subject'
        ordering = ['order', 'name']
        verbose_name = "Subject Allocation"
        verbose_name_plural = "Subject Allocations"
        unique_together = ['school_class', 'name']

    def __str__(self):
        return f"{self.name} - {self.school_class}"

    @property
    def papers(self):
        """Configured paper names, or an empty list for the default I/II layout."""
        return [p.strip() for p in self.paper_names.split(',') if p.strip()]


class AttendanceMonth(models.Model):
    """Working and present days for one student in one academic month."""

    class Month(models.IntegerChoices):
        JUNE = 0, _('June')
        JULY = 1, _('July')
        AUGUST = 2, _('August')
        SEPTEMBER = 3, _('September')
        OCTOBER = 4, _('October')
        NOVEMBER = 5, _('November')
        DECEMBER = 6, _('December')
        JANUARY = 7, _('January')
        FEBRUARY = 8, _('February')
        MARCH = 9, _('March')
        APRIL = 10, _('April')
        MAY = 11, _('May')

    school = models.ForeignKey(
        School,
        on_delete=models.CASCADE,
        related_name='attendance_months'
    )
    student_id = models.CharField(max_length=64, db_index=True)
    academic_year = models.CharField(max_length=9, help_text="e.g., 2024-2025")
    month = models.PositiveSmallIntegerField(choices=Month.choices)
    working_days = models.PositiveSmallIntegerField(null=True, blank=True)
    present_days = models.PositiveSmallIntegerField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'attendance_month'
        ordering = ['academic_year', 'month']
        unique_together = ['school', 'student_id', 'academic_year', 'month']
        indexes = [
            models.Index(fields=['student_id', 'academic_year'], name='attendance_student_year_idx'),
        ]

    def __str__(self):
        return f"{self.student_id} - {self.get_month_display()} {self.academic_year}"

    def clean(self):
        if (
            self.working_days is not None
            and self.present_days is not None
            and self.present_days > self.working_days
        ):
            raise ValidationError('Present days cannot exceed working days')
