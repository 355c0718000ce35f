"""
Exceptions raised by the grading engine and the marks write path.
"""
from django.core.exceptions import ValidationError


class GradebookError(Exception):
    """Base class for gradebook engine errors."""


class SchemeNotFound(GradebookError):
    """No assessment scheme is configured for a school/class/year."""

    def __init__(self, school_id, class_name, academic_year):
        self.school_id = school_id
        self.class_name = class_name
        self.academic_year = academic_year
        super().__init__(
            f"No assessment scheme for school {school_id}, "
            f"class '{class_name}', year {academic_year}"
        )


class AmbiguousSubjectKey(GradebookError):
    """A stored subject key matches more than one roster subject."""

    def __init__(self, value, candidates):
        self.value = value
        self.candidates = sorted(candidates)
        super().__init__(
            f"Subject key '{value}' is ambiguous: matches {', '.join(self.candidates)}"
        )


class MarksEntryLocked(GradebookError):
    """Marks entry is closed for an assessment group in this academic year."""

    def __init__(self, academic_year, group_name):
        self.academic_year = academic_year
        self.group_name = group_name
        super().__init__(f"Marks entry for {group_name} ({academic_year}) is locked")


class SchemeLocked(ValidationError):
    """The scheme already has marks recorded against it and cannot change."""

    def __init__(self, scheme):
        self.scheme = scheme
        super().__init__(
            f"Assessment scheme for {scheme.class_name} ({scheme.academic_year}) "
            f"already has marks and cannot be modified.",
            code='scheme_locked',
        )
