"""
Period aggregation: sum test marks within an assessment group.
"""
from decimal import Decimal

from .models import AssessmentGroup


class PeriodTotal:
    """
    Totals for one group (period) of one subject paper.

    `maximum` is the sum of configured test maxima, including tests with no
    mark entered. `entered` counts tests that have a mark.
    """

    def __init__(self, group_name, group_type, total, maximum, entered, tests=None):
        self.group_name = group_name
        self.group_type = group_type
        self.total = total
        self.maximum = maximum
        self.entered = entered
        self.tests = tests or []

    def __repr__(self):
        return f"PeriodTotal({self.group_name!r}, {self.total}/{self.maximum})"

    @property
    def is_formative(self):
        return self.group_type == AssessmentGroup.GroupType.FORMATIVE

    @property
    def has_data(self):
        return self.entered > 0

    def to_dict(self):
        return {
            'group_name': self.group_name,
            'group_type': str(self.group_type),
            'total': float(self.total),
            'maximum': float(self.maximum),
            'entered': self.entered,
            'tests': [
                {
                    'test_name': name,
                    'marks': float(marks) if marks is not None else None,
                    'max_marks': float(max_marks),
                }
                for name, marks, max_marks in self.tests
            ],
        }


def aggregate_period(group, marks_by_test):
    """
    Sum one group's test marks.

    Args:
        group: ResolvedGroup
        marks_by_test: {test_name: Decimal} as produced by match_marks

    Returns:
        PeriodTotal; missing tests add 0 to the total but keep their max.
    """
    total = Decimal('0')
    maximum = Decimal('0')
    entered = 0
    tests = []
    for test in group.tests:
        marks = marks_by_test.get(test.name)
        maximum += test.max_marks
        if marks is not None:
            total += marks
            entered += 1
        tests.append((test.name, marks, test.max_marks))
    return PeriodTotal(group.name, group.group_type, total, maximum, entered, tests)


def aggregate_subject(scheme, group_marks):
    """
    Aggregate every group of the scheme for one subject paper.

    Args:
        scheme: ResolvedScheme
        group_marks: {group_name: {test_name: Decimal}}

    Returns:
        {group_name: PeriodTotal} in scheme order
    """
    return {
        group.name: aggregate_period(group, group_marks.get(group.name, {}))
        for group in scheme.groups
    }


def formative_total(period_totals):
    """Sum of formative period totals (unclamped)."""
    return sum(
        (p.total for p in period_totals if p.is_formative),
        Decimal('0'),
    )
