"""
Composite (final) score per subject paper.

    internal  = round(min(FA1+FA2+FA3+FA4, 200) / 10)       -> out of 20
    external  = min(SA2, SA2 max) * 80 / SA2 max            -> out of 80
    final     = round(internal + external)                  -> out of 100

SA1 only feeds the informational "FA average + SA1" column.
"""
import logging
from collections import Counter
from decimal import Decimal

from . import config
from .grading import GradeResult, grade_of
from .scales import ScaleKind
from .utils import round_half_up, to_decimal

logger = logging.getLogger(__name__)

# Overall grade ties go to the label that appears first in subject order
OVERALL_TIE_BREAK = 'first_encountered'


class CompositeResult:
    def __init__(self, formative_total, internal, summative1_total, summative1_max,
                 summative2_total, summative2_max, summative2_scaled, fa_avg_plus_sa1,
                 final_score, final_grade, out_of_range=False):
        self.formative_total = formative_total
        self.internal = internal
        self.summative1_total = summative1_total
        self.summative1_max = summative1_max
        self.summative2_total = summative2_total
        self.summative2_max = summative2_max
        self.summative2_scaled = summative2_scaled
        self.fa_avg_plus_sa1 = fa_avg_plus_sa1
        self.final_score = final_score
        self.final_grade = final_grade
        self.out_of_range = out_of_range

    def __repr__(self):
        return f"CompositeResult(final={self.final_score}, grade={self.final_grade.label!r})"

    def to_dict(self):
        return {
            'formative_total': float(self.formative_total),
            'internal': self.internal,
            'summative1_total': float(self.summative1_total),
            'summative1_max': float(self.summative1_max),
            'summative2_total': float(self.summative2_total),
            'summative2_max': float(self.summative2_max),
            'summative2_scaled': float(self.summative2_scaled),
            'fa_avg_plus_sa1': self.fa_avg_plus_sa1,
            'final_score': self.final_score,
            'final_grade': self.final_grade.to_dict(),
            'out_of_range': self.out_of_range,
        }


def _capped(period):
    """(min(total, max), max) for a summative PeriodTotal; (0, 0) when absent."""
    if period is None:
        return Decimal('0'), Decimal('0')
    return min(period.total, period.maximum), period.maximum


def compute_composite(formative_total, summative1=None, summative2=None,
                      second_language=False, has_data=True):
    """
    Compute the final score and grade for one subject paper.

    Args:
        formative_total: sum of formative period totals (clamped here)
        summative1: PeriodTotal for SA1, or None
        summative2: PeriodTotal for SA2, or None
        second_language: grade on the second-language final scale
        has_data: False when no mark at all was entered for the row;
            the grade is then NO_DATA instead of D2

    Returns:
        CompositeResult
    """
    fa = min(to_decimal(formative_total), Decimal(config.FORMATIVE_CEILING))
    internal = round_half_up(fa / config.INTERNAL_DIVISOR)

    sa1_total, sa1_max = _capped(summative1)
    sa2_total, sa2_max = _capped(summative2)

    if sa2_max > 0:
        sa2_scaled = sa2_total * config.EXTERNAL_MARKS / sa2_max
    else:
        sa2_scaled = Decimal('0')

    sa1_part = sa1_total * config.SUMMATIVE1_DISPLAY_MARKS / sa1_max if sa1_max > 0 else Decimal('0')
    fa_avg_plus_sa1 = round_half_up(fa / config.FORMATIVE_PERIODS_FOR_AVERAGE + sa1_part)

    final_score = round_half_up(internal + sa2_scaled)
    composite_max = config.COMPOSITE_MAX
    out_of_range = not 0 <= final_score <= composite_max
    if out_of_range:
        logger.warning(
            f"Final score {final_score} outside 0-{composite_max} "
            f"(internal={internal}, external={sa2_scaled})"
        )

    if has_data:
        final_grade = grade_of(final_score, composite_max, ScaleKind.COMPOSITE, second_language)
    else:
        final_grade = GradeResult.no_data()

    return CompositeResult(
        formative_total=fa,
        internal=internal,
        summative1_total=sa1_total,
        summative1_max=sa1_max,
        summative2_total=sa2_total,
        summative2_max=sa2_max,
        summative2_scaled=sa2_scaled,
        fa_avg_plus_sa1=fa_avg_plus_sa1,
        final_score=final_score,
        final_grade=final_grade,
        out_of_range=out_of_range,
    )


def _graded(rows):
    return [row.final_grade for row in rows if row.final_grade is not None and row.final_grade.is_graded]


def overall_grade(rows):
    """
    Most frequent final grade label across rows.

    Rows without a computed grade are skipped. Ties go to the label seen
    first. Returns None when no row is graded.
    """
    labels = [grade.label for grade in _graded(rows)]
    if not labels:
        return None
    counts = Counter(labels)
    best = None
    for label in labels:
        if best is None or counts[label] > counts[best]:
            best = label
    return best


def grade_point_average(rows):
    """Mean grade points of graded rows, 2 places half-up; None when nothing is graded."""
    points = [grade.points or 0 for grade in _graded(rows)]
    if not points:
        return None
    return round_half_up(Decimal(sum(points)) / len(points), 2)
