"""
Assessment scheme resolution.

The persisted scheme (AssessmentScheme/AssessmentGroup/TestComponent) is
converted into plain ordered value objects so the grading engine never
touches the ORM.
"""
import logging
from decimal import Decimal

from .exceptions import SchemeNotFound
from .matching import normalize_name
from .models import AssessmentGroup, AssessmentScheme
from .utils import to_decimal

logger = logging.getLogger(__name__)

FORMATIVE = AssessmentGroup.GroupType.FORMATIVE
SUMMATIVE = AssessmentGroup.GroupType.SUMMATIVE

# FA1-FA4 with four tools (50 marks each), SA1-SA2 with six academic standards
STANDARD_SCHEME = [
    (f'FA{n}', FORMATIVE, [('Tool 1', 10), ('Tool 2', 10), ('Tool 3', 10), ('Tool 4', 20)])
    for n in range(1, 5)
] + [
    (f'SA{n}', SUMMATIVE, [(f'AS{k}', 20) for k in range(1, 7)])
    for n in range(1, 3)
]


class ResolvedTest:
    def __init__(self, name, max_marks, order=0, test_id=None):
        self.name = name
        self.max_marks = to_decimal(max_marks)
        self.order = order
        self.test_id = test_id
        if self.max_marks is None or self.max_marks <= 0:
            raise ValueError(f"Test '{name}' must have positive max marks")

    def __repr__(self):
        return f"ResolvedTest({self.name!r}, {self.max_marks})"


class ResolvedGroup:
    def __init__(self, name, group_type, tests, order=0, group_id=None):
        self.name = name.strip()
        self.group_type = AssessmentGroup.GroupType(group_type)
        self.order = order
        self.group_id = group_id
        self.tests = sorted(tests, key=lambda t: t.order)

        self._tests_by_key = {}
        for test in self.tests:
            key = normalize_name(test.name)
            if key in self._tests_by_key:
                raise ValueError(f"Duplicate test '{test.name}' in group '{self.name}'")
            self._tests_by_key[key] = test

    def __repr__(self):
        return f"ResolvedGroup({self.name!r}, {self.group_type}, {len(self.tests)} tests)"

    @property
    def is_formative(self):
        return self.group_type == FORMATIVE

    @property
    def max_marks(self):
        return sum((t.max_marks for t in self.tests), Decimal('0'))

    def find_test(self, raw_name):
        """Look up a test by name, ignoring case and whitespace differences."""
        return self._tests_by_key.get(normalize_name(raw_name))


class ResolvedScheme:
    """
    Ordered groups for one (school, class, academic year).
    Group lookup is exact after trimming whitespace.
    """

    def __init__(self, groups, scheme_id=None, school_id=None, class_name='', academic_year=''):
        if not groups:
            raise ValueError("An assessment scheme needs at least one group")
        self.scheme_id = scheme_id
        self.school_id = school_id
        self.class_name = class_name
        self.academic_year = academic_year
        self.groups = sorted(groups, key=lambda g: g.order)

        self._groups_by_name = {}
        for group in self.groups:
            if group.name in self._groups_by_name:
                raise ValueError(f"Duplicate group '{group.name}' in scheme")
            self._groups_by_name[group.name] = group

    def __repr__(self):
        return f"ResolvedScheme({self.class_name!r}, {self.academic_year!r})"

    @property
    def formative_groups(self):
        return [g for g in self.groups if g.group_type == FORMATIVE]

    @property
    def summative_groups(self):
        return [g for g in self.groups if g.group_type == SUMMATIVE]

    def group(self, raw_name):
        if raw_name is None:
            return None
        return self._groups_by_name.get(raw_name.strip())

    @classmethod
    def from_definition(cls, definition, **identity):
        """
        Build a scheme from [(group_name, group_type, [(test_name, max_marks), ...]), ...].
        List order becomes configured order.
        """
        groups = []
        for group_order, (group_name, group_type, tests) in enumerate(definition):
            resolved_tests = [
                ResolvedTest(test_name, max_marks, order=test_order)
                for test_order, (test_name, max_marks) in enumerate(tests)
            ]
            groups.append(ResolvedGroup(group_name, group_type, resolved_tests, order=group_order))
        return cls(groups, **identity)


def resolve_scheme(school_id, class_name, academic_year):
    """
    Fetch the scheme configured for a class and year.

    Raises:
        SchemeNotFound: nothing is configured; callers must not fall back
            to a default scheme.
    """
    try:
        scheme = AssessmentScheme.objects.prefetch_related('groups__tests').get(
            school_id=school_id,
            class_name=class_name,
            academic_year=academic_year,
        )
    except AssessmentScheme.DoesNotExist:
        raise SchemeNotFound(school_id, class_name, academic_year)

    resolved = scheme.to_resolved()
    logger.debug(f"Resolved scheme {scheme.id}: {len(resolved.groups)} groups")
    return resolved
