"""
Grading engine: map a (total, maximum) pair onto a scale label.
"""
import logging

from django.db import models
from django.utils.translation import gettext_lazy as _

from .matching import normalize_name
from .scales import ScaleKind, get_scale
from .utils import percentage

logger = logging.getLogger(__name__)

NOT_APPLICABLE_LABEL = 'N/A'


class GradeStatus(models.TextChoices):
    GRADED = 'graded', _('Graded')
    NOT_APPLICABLE = 'not_applicable', _('Not applicable')
    NO_DATA = 'no_data', _('No data')


class GradeResult:
    """
    Outcome of grading one score.

    `label` is None for NO_DATA and 'N/A' for NOT_APPLICABLE, so neither
    can be confused with a failing grade.
    """

    def __init__(self, label, status=GradeStatus.GRADED, points=None, percent=None):
        self.label = label
        self.status = status
        self.points = points
        self.percent = percent

    def __repr__(self):
        return f"GradeResult({self.label!r}, {self.status})"

    def __eq__(self, other):
        if not isinstance(other, GradeResult):
            return NotImplemented
        return self.label == other.label and self.status == other.status

    @property
    def is_graded(self):
        return self.status == GradeStatus.GRADED

    @classmethod
    def not_applicable(cls):
        return cls(NOT_APPLICABLE_LABEL, GradeStatus.NOT_APPLICABLE)

    @classmethod
    def no_data(cls):
        return cls(None, GradeStatus.NO_DATA)

    def to_dict(self):
        return {
            'label': self.label,
            'status': str(self.status),
            'points': self.points,
            'percent': float(self.percent) if self.percent is not None else None,
        }


def grade_of(total, maximum, kind, second_language=False):
    """
    Grade a score against a scale.

    Args:
        total: marks scored (None means not applicable)
        maximum: marks available; 0 or None means not applicable
        kind: ScaleKind value
        second_language: use the lenient second-language variant

    Returns:
        GradeResult
    """
    if total is None or maximum is None:
        return GradeResult.not_applicable()
    percent = percentage(total, maximum)
    if percent is None:
        return GradeResult.not_applicable()
    band = get_scale(kind, second_language).band_for(percent)
    return GradeResult(band.label, GradeStatus.GRADED, band.points, percent)


def grade_period(period_total, kind=None, second_language=False):
    """
    Grade an aggregated PeriodTotal.

    Periods where no test had a mark entered report NO_DATA rather than D2.
    """
    if kind is None:
        kind = ScaleKind.FORMATIVE_PERIOD if period_total.is_formative else ScaleKind.SUMMATIVE_PERIOD
    if not period_total.maximum:
        return GradeResult.not_applicable()
    if not period_total.entered:
        return GradeResult.no_data()
    return grade_of(period_total.total, period_total.maximum, kind, second_language)


def is_second_language(subject_name, second_language_subject):
    """True when the subject is the school's configured second language."""
    if not second_language_subject or not subject_name:
        return False
    return normalize_name(subject_name) == normalize_name(second_language_subject)
