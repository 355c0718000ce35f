"""
Grade scale tables for CCE report cards.

Every scale is expressed in percentage thresholds with inclusive lower
bounds, checked from the highest band down. The lowest band always
starts at 0 so every score maps to exactly one label.
"""
from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _


class ScaleKind(models.TextChoices):
    FORMATIVE_PERIOD = 'formative_period', _('Formative period')
    SUMMATIVE_PERIOD = 'summative_period', _('Summative period')
    COMPOSITE = 'composite', _('Final (composite)')
    FORMATIVE_OVERALL = 'formative_overall', _('Formative overall (200)')


class GradeBand:
    """One row of a scale: label, inclusive lower bound (percent), grade points."""

    def __init__(self, label, minimum, points=None):
        self.label = label
        self.minimum = Decimal(str(minimum))
        self.points = points

    def __repr__(self):
        return f"GradeBand({self.label!r}, {self.minimum})"


class GradeScale:
    """An ordered set of bands, highest first."""

    def __init__(self, name, bands):
        self.name = name
        self.bands = tuple(sorted(bands, key=lambda b: b.minimum, reverse=True))
        if not self.bands:
            raise ValueError(f"Scale {name} has no bands")
        if self.bands[-1].minimum != 0:
            raise ValueError(f"Scale {name} must end with a catch-all band at 0")
        minimums = [b.minimum for b in self.bands]
        if len(set(minimums)) != len(minimums):
            raise ValueError(f"Scale {name} has duplicate thresholds")

    def __repr__(self):
        return f"GradeScale({self.name!r})"

    @property
    def labels(self):
        return [b.label for b in self.bands]

    def band_for(self, percent):
        """Return the band a percentage falls in (first band whose minimum it reaches)."""
        percent = Decimal(str(percent))
        for band in self.bands:
            if percent >= band.minimum:
                return band
        # Negative values fall through to the catch-all
        return self.bands[-1]

    def rank(self, label):
        """0 for the best label; ValueError for labels not on this scale."""
        return self.labels.index(label)


def _cce_scale(name, thresholds):
    labels = ['A1', 'A2', 'B1', 'B2', 'C1', 'C2', 'D1']
    points = [10, 9, 8, 7, 6, 5, 4]
    bands = [GradeBand(label, minimum, pts) for label, minimum, pts in zip(labels, thresholds, points)]
    bands.append(GradeBand('D2', 0, 0))
    return GradeScale(name, bands)


# Formative period thresholds are the 50-mark table (46, 41, 36 ...) as percentages
FORMATIVE_PERIOD = _cce_scale('formative_period', [92, 82, 72, 62, 52, 42, 36])
FORMATIVE_PERIOD_SECOND_LANGUAGE = _cce_scale(
    'formative_period_second_language', [90, 80, 68, 58, 46, 36, 20]
)

SUMMATIVE_PERIOD = _cce_scale(
    'summative_period', ['91.25', '81.25', '71.25', '61.25', '51.25', '41.25', 35]
)
SUMMATIVE_PERIOD_SECOND_LANGUAGE = _cce_scale(
    'summative_period_second_language', [90, '78.75', '67.5', '57.5', 45, 35, 20]
)

COMPOSITE = _cce_scale('composite', [91, 81, 71, 61, 51, 41, 35])
COMPOSITE_SECOND_LANGUAGE = _cce_scale('composite_second_language', [90, 79, 68, 57, 46, 35, 20])

# 200-mark formative pool, shown next to FA totals; carries no grade points
FORMATIVE_OVERALL = GradeScale('formative_overall', [
    GradeBand('A+', 90),
    GradeBand('A', 80),
    GradeBand('B+', 70),
    GradeBand('B', 60),
    GradeBand('C+', 50),
    GradeBand('C', 40),
    GradeBand('D', 30),
    GradeBand('E', 20),
    GradeBand('F', 0),
])

_SCALES = {
    (ScaleKind.FORMATIVE_PERIOD, False): FORMATIVE_PERIOD,
    (ScaleKind.FORMATIVE_PERIOD, True): FORMATIVE_PERIOD_SECOND_LANGUAGE,
    (ScaleKind.SUMMATIVE_PERIOD, False): SUMMATIVE_PERIOD,
    (ScaleKind.SUMMATIVE_PERIOD, True): SUMMATIVE_PERIOD_SECOND_LANGUAGE,
    (ScaleKind.COMPOSITE, False): COMPOSITE,
    (ScaleKind.COMPOSITE, True): COMPOSITE_SECOND_LANGUAGE,
    (ScaleKind.FORMATIVE_OVERALL, False): FORMATIVE_OVERALL,
    (ScaleKind.FORMATIVE_OVERALL, True): FORMATIVE_OVERALL,
}


def get_scale(kind, second_language=False):
    """Look up the scale for a kind and variant."""
    return _SCALES[(ScaleKind(kind), bool(second_language))]
