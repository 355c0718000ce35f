from datetime import timedelta
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace

from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from academics.models import AttendanceMonth, ClassSubject, SchoolClass
from schools.models import School

from .aggregation import PeriodTotal, aggregate_period, aggregate_subject, formative_total
from .composite import compute_composite, grade_point_average, overall_grade
from .entry import submit_marks
from .exceptions import AmbiguousSubjectKey, MarksEntryLocked, SchemeLocked, SchemeNotFound
from .grading import GradeResult, GradeStatus, grade_of, grade_period, is_second_language
from .matching import (
    OrphanReason, compose_assessment_name, effective_assessment_name, match_marks,
    normalize_name, split_assessment_name,
)
from .models import AssessmentGroup, AssessmentScheme, MarkRecord, MarksEntryLock, TestComponent
from .reports import build_class_reports, build_student_report, generate_student_report
from .scales import GradeBand, GradeScale, ScaleKind, get_scale
from .schemes import FORMATIVE, STANDARD_SCHEME, SUMMATIVE, ResolvedScheme, resolve_scheme
from .stores import DjangoRecordStore
from .subject_keys import CanonicalName, LegacyId, classify_subject_key, migrate_subject_keys
from .tasks import generate_class_reports, migrate_school_subject_keys


YEAR = '2024-2025'
FA_TOOLS = [('Tool 1', 10), ('Tool 2', 10), ('Tool 3', 10), ('Tool 4', 20)]
SA_STANDARDS = [f'AS{k}' for k in range(1, 7)]


def make_record(subject, name, marks, updated_at=None, created_at=None, **extra):
    return SimpleNamespace(
        id=extra.pop('id', None),
        subject_name=subject,
        assessment_name=name,
        assessment_key=extra.pop('assessment_key', ''),
        test_key=extra.pop('test_key', ''),
        marks_obtained=Decimal(str(marks)),
        updated_at=updated_at,
        created_at=created_at,
    )


def standard_scheme():
    return ResolvedScheme.from_definition(STANDARD_SCHEME, class_name='Class 10', academic_year=YEAR)


def full_formative(subject, periods=('FA1', 'FA2', 'FA3', 'FA4')):
    return [
        make_record(subject, f'{period}-{tool}', max_marks)
        for period in periods
        for tool, max_marks in FA_TOOLS
    ]


def summative(subject, period, marks, paper=None):
    """One record per academic standard, all with the same marks."""
    return [
        make_record(subject, compose_assessment_name(period, standard, paper), marks)
        for standard in SA_STANDARDS
    ]


class GradeScaleTest(SimpleTestCase):
    """Tests for the scale tables."""

    def test_every_scale_ends_with_catch_all(self):
        """Test every scale's lowest band starts at 0."""
        for kind in ScaleKind:
            for second_language in (False, True):
                scale = get_scale(kind, second_language)
                self.assertEqual(scale.bands[-1].minimum, 0)

    def test_grading_is_monotonic(self):
        """Test a higher score never gets a worse label."""
        for kind in ScaleKind:
            for second_language in (False, True):
                scale = get_scale(kind, second_language)
                ranks = [
                    scale.rank(grade_of(score, 100, kind, second_language).label)
                    for score in range(0, 101)
                ]
                self.assertEqual(ranks, sorted(ranks, reverse=True))

    def test_composite_lower_bounds_are_inclusive(self):
        """Test final scores on a threshold get that threshold's label."""
        self.assertEqual(grade_of(91, 100, ScaleKind.COMPOSITE).label, 'A1')
        self.assertEqual(grade_of(90, 100, ScaleKind.COMPOSITE).label, 'A2')
        self.assertEqual(grade_of(35, 100, ScaleKind.COMPOSITE).label, 'D1')
        self.assertEqual(grade_of(34, 100, ScaleKind.COMPOSITE).label, 'D2')

    def test_composite_second_language_scale(self):
        """Test the lenient scale for the second language."""
        self.assertEqual(grade_of(90, 100, ScaleKind.COMPOSITE, True).label, 'A1')
        self.assertEqual(grade_of(20, 100, ScaleKind.COMPOSITE, True).label, 'D1')
        self.assertEqual(grade_of(19, 100, ScaleKind.COMPOSITE, True).label, 'D2')

    def test_formative_period_thresholds(self):
        """Test the 50-mark formative table (46, 41, ... 18)."""
        self.assertEqual(grade_of(46, 50, ScaleKind.FORMATIVE_PERIOD).label, 'A1')
        self.assertEqual(grade_of(45, 50, ScaleKind.FORMATIVE_PERIOD).label, 'A2')
        self.assertEqual(grade_of(18, 50, ScaleKind.FORMATIVE_PERIOD).label, 'D1')
        self.assertEqual(grade_of(17, 50, ScaleKind.FORMATIVE_PERIOD).label, 'D2')
        self.assertEqual(grade_of(45, 50, ScaleKind.FORMATIVE_PERIOD, True).label, 'A1')
        self.assertEqual(grade_of(10, 50, ScaleKind.FORMATIVE_PERIOD, True).label, 'D1')

    def test_summative_period_thresholds(self):
        """Test the summative percentage table."""
        self.assertEqual(grade_of(73, 80, ScaleKind.SUMMATIVE_PERIOD).label, 'A1')  # 91.25%
        self.assertEqual(grade_of(72, 80, ScaleKind.SUMMATIVE_PERIOD).label, 'A2')  # 90%
        self.assertEqual(grade_of(72, 80, ScaleKind.SUMMATIVE_PERIOD, True).label, 'A1')

    def test_formative_overall_scale(self):
        """Test the 200-mark formative pool labels."""
        self.assertEqual(grade_of(180, 200, ScaleKind.FORMATIVE_OVERALL).label, 'A+')
        self.assertEqual(grade_of(179, 200, ScaleKind.FORMATIVE_OVERALL).label, 'A')
        self.assertEqual(grade_of(0, 200, ScaleKind.FORMATIVE_OVERALL).label, 'F')

    def test_scale_requires_catch_all(self):
        """Test a scale without a 0 band is rejected."""
        with self.assertRaises(ValueError):
            GradeScale('bad', [GradeBand('A', 50)])


class GradeOfTest(SimpleTestCase):
    """Tests for grade_of and period grading."""

    def test_zero_max_is_not_applicable(self):
        """Test a zero maximum yields N/A, not a failing grade."""
        result = grade_of(0, 0, ScaleKind.SUMMATIVE_PERIOD)
        self.assertEqual(result.status, GradeStatus.NOT_APPLICABLE)
        self.assertEqual(result.label, 'N/A')
        self.assertFalse(result.is_graded)

    def test_missing_operand_is_not_applicable(self):
        """Test a None total yields N/A."""
        self.assertEqual(grade_of(None, 50, ScaleKind.FORMATIVE_PERIOD), GradeResult.not_applicable())

    def test_grade_points(self):
        """Test grade points follow the label."""
        self.assertEqual(grade_of(95, 100, ScaleKind.COMPOSITE).points, 10)
        self.assertEqual(grade_of(55, 100, ScaleKind.COMPOSITE).points, 6)
        self.assertEqual(grade_of(10, 100, ScaleKind.COMPOSITE).points, 0)

    def test_period_without_marks_is_no_data(self):
        """Test a period with nothing entered reports NO_DATA."""
        period = PeriodTotal('FA1', FORMATIVE, Decimal('0'), Decimal('50'), 0)
        result = grade_period(period)
        self.assertEqual(result.status, GradeStatus.NO_DATA)
        self.assertIsNone(result.label)

    def test_period_with_zero_max_is_not_applicable(self):
        """Test a period with no configured marks reports N/A."""
        period = PeriodTotal('SA1', SUMMATIVE, Decimal('0'), Decimal('0'), 0)
        self.assertEqual(grade_period(period).status, GradeStatus.NOT_APPLICABLE)

    def test_is_second_language(self):
        """Test the second-language check ignores case and spacing."""
        self.assertTrue(is_second_language(' hindi ', 'Hindi'))
        self.assertFalse(is_second_language('Hindi', ''))
        self.assertFalse(is_second_language('English', 'Hindi'))


class NameNormalizationTest(SimpleTestCase):
    """Tests for assessment name handling."""

    def test_normalize_name(self):
        """Test trimming, whitespace collapsing and lowercasing."""
        self.assertEqual(normalize_name('  Tool   1 '), 'tool 1')
        self.assertEqual(normalize_name('TOOL\t1'), 'tool 1')
        self.assertEqual(normalize_name(None), '')

    def test_normalize_name_is_idempotent(self):
        """Test normalizing twice changes nothing."""
        for value in ['Tool 1', '  AS  3', 'Project\nWork', '']:
            once = normalize_name(value)
            self.assertEqual(normalize_name(once), once)

    def test_split_assessment_name(self):
        """Test splitting on the first dash."""
        self.assertEqual(split_assessment_name('FA1-Tool 1'), ('FA1', 'Tool 1', None))
        self.assertEqual(split_assessment_name('FA1-Tool-1'), ('FA1', 'Tool-1', None))

    def test_split_paper_qualified_name(self):
        """Test a Paper<N> segment is read as the paper number."""
        self.assertEqual(split_assessment_name('SA1-Paper2-AS3'), ('SA1', 'AS3', 2))
        self.assertEqual(split_assessment_name('SA1-paper 1-AS1'), ('SA1', 'AS1', 1))

    def test_split_malformed_names(self):
        """Test names that cannot be split."""
        for name in ['FA1', 'FA1-', '-Tool 1', '', None]:
            self.assertIsNone(split_assessment_name(name))

    def test_legacy_name_fallback(self):
        """Test records without a name fall back to their legacy keys."""
        legacy = make_record('Maths', None, 5, assessment_key='FA1', test_key='Tool 1')
        self.assertEqual(effective_assessment_name(legacy), 'FA1-Tool 1')
        self.assertIsNone(effective_assessment_name(make_record('Maths', '  ', 5)))

    def test_compose_assessment_name(self):
        """Test building stored names."""
        self.assertEqual(compose_assessment_name('FA1', 'Tool 1'), 'FA1-Tool 1')
        self.assertEqual(compose_assessment_name('SA1', 'AS3', 2), 'SA1-Paper2-AS3')


class MatchMarksTest(SimpleTestCase):
    """Tests for matching records against a scheme."""

    def setUp(self):
        self.scheme = standard_scheme()
        self.now = timezone.now()

    def test_test_name_match_ignores_case_and_spacing(self):
        """Test 'FA1-tool 1' resolves to the scheme test 'Tool 1'."""
        result = match_marks(self.scheme, [make_record('Maths', 'FA1-tool  1', 8)])
        self.assertEqual(result.subject_marks('Maths'), {'FA1': {'Tool 1': Decimal('8')}})
        self.assertEqual(result.orphans, [])

    def test_group_match_is_exact(self):
        """Test group names only tolerate surrounding whitespace."""
        result = match_marks(self.scheme, [
            make_record('Maths', ' FA1 -Tool 1', 8),
            make_record('Maths', 'fa1-Tool 2', 8),
        ])
        self.assertIn('Tool 1', result.subject_marks('Maths')['FA1'])
        self.assertEqual([o.reason for o in result.orphans], [OrphanReason.UNKNOWN_GROUP])

    def test_orphan_reasons(self):
        """Test unplaceable records are returned with a reason."""
        result = match_marks(
            self.scheme,
            [
                make_record('Maths', None, 1),
                make_record('Maths', 'FA1', 1),
                make_record('Maths', 'FA9-Tool 1', 1),
                make_record('Maths', 'FA1-Tool 9', 1),
                make_record('Art', 'FA1-Tool 1', 1),
            ],
            roster=['Maths'],
        )
        self.assertEqual(
            [o.reason for o in result.orphans],
            [
                OrphanReason.MISSING_NAME,
                OrphanReason.MALFORMED_NAME,
                OrphanReason.UNKNOWN_GROUP,
                OrphanReason.UNKNOWN_TEST,
                OrphanReason.UNKNOWN_SUBJECT,
            ],
        )
        self.assertEqual(result.marks, {})

    def test_roster_names_are_canonical(self):
        """Test subjects are reported under their roster spelling."""
        result = match_marks(self.scheme, [make_record(' maths', 'FA1-Tool 1', 4)], roster=['Maths'])
        self.assertEqual(result.subjects(), ['Maths'])

    def test_most_recent_record_wins(self):
        """Test duplicates resolve to the latest update, whatever the input order."""
        older = make_record('Maths', 'FA1-Tool 1', 5, updated_at=self.now - timedelta(days=1))
        newer = make_record('Maths', 'FA1-Tool 1', 9, updated_at=self.now)
        for records in ([older, newer], [newer, older]):
            result = match_marks(self.scheme, records)
            self.assertEqual(result.subject_marks('Maths')['FA1']['Tool 1'], Decimal('9'))
            self.assertEqual(result.superseded, 1)

    def test_equal_timestamps_keep_first_seen(self):
        """Test ties keep the record that came first."""
        first = make_record('Maths', 'FA1-Tool 1', 5, updated_at=self.now)
        second = make_record('Maths', 'FA1-tool 1', 9, updated_at=self.now)
        result = match_marks(self.scheme, [first, second])
        self.assertEqual(result.subject_marks('Maths')['FA1']['Tool 1'], Decimal('5'))

    def test_created_at_used_when_never_updated(self):
        """Test created_at stands in for a missing updated_at."""
        older = make_record('Maths', 'FA1-Tool 1', 5, created_at=self.now - timedelta(hours=1))
        newer = make_record('Maths', 'FA1-Tool 1', 7, created_at=self.now)
        result = match_marks(self.scheme, [newer, older])
        self.assertEqual(result.subject_marks('Maths')['FA1']['Tool 1'], Decimal('7'))

    def test_papers_are_separate_coordinates(self):
        """Test paper-qualified summative marks are kept per paper."""
        result = match_marks(self.scheme, [
            make_record('Science', 'SA1-Paper1-AS1', 11),
            make_record('Science', 'SA1-Paper2-AS1', 17),
            make_record('Science', 'SA1-AS2', 5),
            make_record('Science', 'FA1-Paper2-Tool 1', 6),
        ])
        self.assertEqual(result.papers('Science'), [1, 2])
        self.assertEqual(result.subject_marks('Science', 1)['SA1'], {'AS1': Decimal('11'), 'AS2': Decimal('5')})
        self.assertEqual(result.subject_marks('Science', 2)['SA1'], {'AS1': Decimal('17')})
        # Formative periods are never split by paper
        self.assertEqual(result.subject_marks('Science', 1)['FA1'], {'Tool 1': Decimal('6')})

    def test_legacy_records_are_matched(self):
        """Test rows with only legacy keys are placed."""
        legacy = make_record('Maths', None, 3, assessment_key='FA2', test_key='Tool 4')
        result = match_marks(self.scheme, [legacy])
        self.assertEqual(result.subject_marks('Maths')['FA2']['Tool 4'], Decimal('3'))


class AggregationTest(SimpleTestCase):
    """Tests for period aggregation."""

    def setUp(self):
        self.scheme = standard_scheme()

    def test_missing_tests_count_towards_max(self):
        """Test missing tests add 0 marks but keep their maximum."""
        period = aggregate_period(self.scheme.group('FA1'), {'Tool 1': Decimal('8'), 'Tool 3': Decimal('7')})
        self.assertEqual(period.total, Decimal('15'))
        self.assertEqual(period.maximum, Decimal('50'))
        self.assertEqual(period.entered, 2)

    def test_empty_period(self):
        """Test a period with no marks."""
        period = aggregate_period(self.scheme.group('SA1'), {})
        self.assertEqual(period.total, 0)
        self.assertEqual(period.maximum, Decimal('120'))
        self.assertFalse(period.has_data)

    def test_aggregate_subject_follows_scheme_order(self):
        """Test every group is aggregated in configured order."""
        periods = aggregate_subject(self.scheme, {'FA2': {'Tool 1': Decimal('10')}})
        self.assertEqual(list(periods), ['FA1', 'FA2', 'FA3', 'FA4', 'SA1', 'SA2'])
        self.assertEqual(formative_total(periods.values()), Decimal('10'))


class CompositeTest(SimpleTestCase):
    """Tests for the final score calculation."""

    def sa(self, total, maximum, name='SA2'):
        return PeriodTotal(name, SUMMATIVE, Decimal(str(total)), Decimal(str(maximum)), 1)

    def test_full_formative_gives_full_internal(self):
        """Test four full 50-mark periods give 200 and 20 internal marks."""
        scheme = standard_scheme()
        marks = match_marks(scheme, full_formative('Maths')).subject_marks('Maths')
        periods = [aggregate_period(g, marks.get(g.name, {})) for g in scheme.formative_groups]
        total = formative_total(periods)
        self.assertEqual(total, Decimal('200'))
        self.assertEqual(compute_composite(total).internal, 20)

    def test_scaled_down_scheme(self):
        """Test a 20-marks-per-period scheme gives 80 and 8 internal marks."""
        scheme = ResolvedScheme.from_definition([
            (f'FA{n}', FORMATIVE, [(f'T{k}', 5) for k in range(1, 5)]) for n in range(1, 5)
        ])
        records = [make_record('Maths', f'FA{n}-T{k}', 5) for n in range(1, 5) for k in range(1, 5)]
        marks = match_marks(scheme, records).subject_marks('Maths')
        periods = [aggregate_period(g, marks.get(g.name, {})) for g in scheme.formative_groups]
        self.assertEqual(formative_total(periods), Decimal('80'))
        self.assertEqual(compute_composite(formative_total(periods)).internal, 8)

    def test_internal_plus_external(self):
        """Test 20 internal + 64/80 external gives 84, an A2."""
        result = compute_composite(Decimal('200'), summative2=self.sa(64, 80))
        self.assertEqual(result.summative2_scaled, Decimal('64'))
        self.assertEqual(result.final_score, 84)
        self.assertEqual(result.final_grade.label, 'A2')
        self.assertFalse(result.out_of_range)

    def test_formative_total_is_clamped(self):
        """Test formative totals above 200 are capped."""
        result = compute_composite(Decimal('230'))
        self.assertEqual(result.formative_total, Decimal('200'))
        self.assertEqual(result.internal, 20)

    def test_summative_above_max_is_capped(self):
        """Test SA2 marks above the maximum count as the maximum."""
        result = compute_composite(Decimal('200'), summative2=self.sa(90, 80))
        self.assertEqual(result.summative2_scaled, Decimal('80'))
        self.assertEqual(result.final_score, 100)
        self.assertFalse(result.out_of_range)

    def test_rounding_is_half_up(self):
        """Test .5 rounds up at both rounding steps."""
        result = compute_composite(Decimal('125'), summative2=self.sa(45, 96))
        self.assertEqual(result.internal, 13)  # 12.5
        self.assertEqual(result.summative2_scaled, Decimal('37.5'))
        self.assertEqual(result.final_score, 51)  # 50.5
        self.assertEqual(result.final_grade.label, 'C1')

    def test_missing_summative_contributes_nothing(self):
        """Test a zero SA2 maximum gives no external marks."""
        result = compute_composite(Decimal('150'), summative2=self.sa(0, 0))
        self.assertEqual(result.summative2_scaled, 0)
        self.assertEqual(result.final_score, 15)

    def test_final_score_within_bounds(self):
        """Test well-formed inputs stay within 0-100."""
        for fa in (0, 37, 118, 200):
            for sa2 in (0, 13, 79, 80):
                result = compute_composite(Decimal(fa), summative2=self.sa(sa2, 80))
                self.assertGreaterEqual(result.final_score, 0)
                self.assertLessEqual(result.final_score, 100)

    def test_fa_average_plus_sa1(self):
        """Test the informational FA/4 + SA1 column."""
        result = compute_composite(Decimal('200'), summative1=self.sa(40, 80, 'SA1'))
        self.assertEqual(result.fa_avg_plus_sa1, 75)

    def test_out_of_range_is_flagged(self):
        """Test malformed inputs are flagged and logged, not clamped."""
        with self.assertLogs('gradebook.composite', level='WARNING'):
            result = compute_composite(Decimal('0'), summative2=self.sa(-80, 80))
        self.assertEqual(result.final_score, -80)
        self.assertTrue(result.out_of_range)

    def test_no_data_row(self):
        """Test a row without any marks is NO_DATA rather than D2."""
        result = compute_composite(Decimal('0'), has_data=False)
        self.assertEqual(result.final_grade.status, GradeStatus.NO_DATA)


class OverallGradeTest(SimpleTestCase):
    """Tests for the overall grade and grade point average."""

    def rows(self, *labels):
        scale = get_scale(ScaleKind.COMPOSITE)
        rows = []
        for label in labels:
            if label is None:
                rows.append(SimpleNamespace(final_grade=GradeResult.no_data()))
                continue
            band = next(b for b in scale.bands if b.label == label)
            rows.append(SimpleNamespace(final_grade=GradeResult(label, GradeStatus.GRADED, band.points)))
        return rows

    def test_most_frequent_label(self):
        """Test the mode wins."""
        self.assertEqual(overall_grade(self.rows('B1', 'A1', 'A1')), 'A1')

    def test_tie_goes_to_first_encountered(self):
        """Test ties keep the label seen first."""
        self.assertEqual(overall_grade(self.rows('A2', 'A1', 'A1', 'A2')), 'A2')
        self.assertEqual(overall_grade(self.rows('C1', 'B2')), 'C1')

    def test_ungraded_rows_are_skipped(self):
        """Test rows without a grade are ignored."""
        self.assertEqual(overall_grade(self.rows(None, None, 'B2')), 'B2')
        self.assertIsNone(overall_grade(self.rows(None)))
        self.assertIsNone(overall_grade([]))

    def test_grade_point_average(self):
        """Test the mean of grade points, two places."""
        self.assertEqual(grade_point_average(self.rows('A1', 'A2', 'B1')), Decimal('9.00'))
        self.assertEqual(grade_point_average(self.rows('A1', 'A2', 'A2')), Decimal('9.33'))
        self.assertEqual(grade_point_average(self.rows('A1', 'A2', None)), Decimal('9.50'))
        self.assertIsNone(grade_point_average([]))


class BuildStudentReportTest(SimpleTestCase):
    """Tests for assembling a report from fetched data."""

    def setUp(self):
        self.scheme = standard_scheme()
        self.subjects = [
            SimpleNamespace(name='Maths', papers=[]),
            SimpleNamespace(name='Science', papers=['Physics', 'Biology']),
            SimpleNamespace(name='Hindi', papers=[]),
        ]
        records = full_formative('Maths')
        records += summative('Maths', 'SA1', 20)
        records += summative('Maths', 'SA2', 16)
        records.append(make_record('Maths', 'SA1-Paper3-AS1', 5))
        records.append(make_record('Science', 'SA2-Paper1-AS1', 20))
        records.append(make_record('Science', 'SA2-Paper2-AS1', 20))
        records += full_formative('Hindi', periods=('FA1',))
        records.append(make_record('Hindi', 'SA2-AS1', 20))
        records.append(make_record('Hindi', 'SA2-AS2', '2.5'))
        attendance = [SimpleNamespace(month=m, working_days=20, present_days=18) for m in range(12)]
        self.report = build_student_report(
            self.scheme, records, self.subjects, attendance, 'Hindi', student_id='s1'
        )

    def test_final_score(self):
        """Test 200 formative and 96/120 in SA2 give 84."""
        row = self.report.row('Maths')
        self.assertEqual(row.composite.internal, 20)
        self.assertEqual(row.composite.summative2_scaled, Decimal('64'))
        self.assertEqual(row.composite.final_score, 84)
        self.assertEqual(row.final_grade.label, 'A2')
        self.assertEqual(row.composite.fa_avg_plus_sa1, 100)

    def test_default_paper_layout(self):
        """Test a subject without paper-2 marks has a single paper I row."""
        self.assertEqual([r.paper_name for r in self.report.rows if r.subject == 'Maths'], ['I'])

    def test_configured_paper_names(self):
        """Test configured paper names label each paper."""
        rows = [r for r in self.report.rows if r.subject == 'Science']
        self.assertEqual([r.paper_name for r in rows], ['Physics', 'Biology'])
        self.assertEqual(rows[1].periods[1].total, Decimal('20'))

    def test_unconfigured_paper_is_orphaned(self):
        """Test marks for a paper the subject does not have are reported."""
        paper_orphans = [o for o in self.report.orphans if o.reason == OrphanReason.UNKNOWN_PAPER]
        self.assertEqual(len(paper_orphans), 1)
        data = paper_orphans[0].to_dict()
        self.assertEqual(data['assessment_name'], 'SA1-Paper3-AS1')
        self.assertEqual(data['subject_name'], 'Maths')
        self.assertEqual(data['detail'], 'Maths: paper 3')

    def test_second_language_scale(self):
        """Test the second language is graded on the lenient table."""
        row = self.report.row('Hindi')
        self.assertTrue(row.second_language)
        self.assertEqual(row.composite.final_score, 20)
        self.assertEqual(row.final_grade.label, 'D1')

    def test_formative_summary(self):
        """Test per-period formative grades and the 200-mark pool."""
        maths = self.report.formative_for('Maths')
        self.assertEqual(maths.total, Decimal('200'))
        self.assertEqual(maths.grades['FA1'].label, 'A1')
        self.assertEqual(maths.overall_grade.label, 'A+')
        science = self.report.formative_for('Science')
        self.assertEqual(science.grades['FA1'].status, GradeStatus.NO_DATA)

    def test_overall_grade_and_attendance(self):
        """Test the report-level summary fields."""
        # Maths A2, Physics D2, Biology D2, Hindi D1
        self.assertEqual(self.report.overall_grade, 'D2')
        self.assertEqual(self.report.attendance.working_days, 220)
        self.assertEqual(self.report.attendance.percentage, 90)

    def test_to_dict(self):
        """Test the report serializes to plain data."""
        data = self.report.to_dict()
        self.assertEqual(data['student_id'], 's1')
        self.assertEqual(len(data['rows']), 4)
        self.assertEqual(data['rows'][0]['composite']['final_grade']['label'], 'A2')


class SubjectKeyClassificationTest(SimpleTestCase):
    """Tests for classifying stored subject keys."""

    def setUp(self):
        self.roster = [
            SimpleNamespace(name='Maths', legacy_key='sub-001'),
            SimpleNamespace(name='Science', legacy_key='sub-002'),
            SimpleNamespace(name='English', legacy_key=''),
        ]

    def test_canonical_name(self):
        """Test canonical names are left as they are."""
        self.assertEqual(classify_subject_key('Maths', self.roster), CanonicalName('Maths'))

    def test_legacy_id(self):
        """Test a legacy key owned by one subject resolves to it."""
        key = classify_subject_key('sub-002', self.roster)
        self.assertEqual(key, LegacyId('sub-002', 'Science'))
        self.assertTrue(key.resolved)

    def test_unmatched(self):
        """Test unknown values stay unresolved."""
        self.assertFalse(classify_subject_key('sub-999', self.roster).resolved)

    def test_name_and_legacy_key_is_ambiguous(self):
        """Test a value that is a name and another subject's legacy key."""
        roster = self.roster + [SimpleNamespace(name='Hindi', legacy_key='English')]
        with self.assertRaises(AmbiguousSubjectKey):
            classify_subject_key('English', roster)

    def test_shared_legacy_key_is_ambiguous(self):
        """Test a legacy key owned by two subjects."""
        roster = self.roster + [SimpleNamespace(name='Hindi', legacy_key='sub-001')]
        with self.assertRaises(AmbiguousSubjectKey) as ctx:
            classify_subject_key('sub-001', roster)
        self.assertEqual(ctx.exception.candidates, ['Hindi', 'Maths'])


class GradebookDataMixin:
    """Creates a school, a class with a roster and the standard scheme."""

    def setUp(self):
        self.school = School.objects.create(name='Demo School', code='demo', second_language_subject='Hindi')
        self.school_class = SchoolClass.objects.create(school=self.school, name='Class 10', section='A')
        ClassSubject.objects.create(school_class=self.school_class, name='Maths', legacy_key='sub-001', order=1)
        ClassSubject.objects.create(
            school_class=self.school_class, name='Science', legacy_key='sub-002',
            paper_names='Physics,Biology', order=2,
        )
        call_command(
            'seed_assessment_scheme', school='demo', class_name='Class 10', year=YEAR, stdout=StringIO()
        )
        self.scheme = AssessmentScheme.objects.get(school=self.school, class_name='Class 10')

    def mark(self, student_id, subject, name, marks, max_marks=20, school_class=None):
        return MarkRecord.objects.create(
            school=self.school,
            school_class=school_class or self.school_class,
            student_id=student_id,
            subject_name=subject,
            academic_year=YEAR,
            assessment_name=name,
            marks_obtained=Decimal(str(marks)),
            max_marks=Decimal(str(max_marks)),
        )

    def full_marks(self, student_id, subject='Maths', sa2_marks=16):
        for period in ('FA1', 'FA2', 'FA3', 'FA4'):
            for tool, max_marks in FA_TOOLS:
                self.mark(student_id, subject, f'{period}-{tool}', max_marks, max_marks)
        for standard in SA_STANDARDS:
            self.mark(student_id, subject, f'SA2-{standard}', sa2_marks)


class SchemeResolverTest(GradebookDataMixin, TestCase):
    """Tests for resolving persisted schemes."""

    def test_groups_in_configured_order(self):
        """Test groups and tests come back in order."""
        scheme = resolve_scheme(self.school.pk, 'Class 10', YEAR)
        self.assertEqual([g.name for g in scheme.groups], ['FA1', 'FA2', 'FA3', 'FA4', 'SA1', 'SA2'])
        self.assertEqual([g.name for g in scheme.formative_groups], ['FA1', 'FA2', 'FA3', 'FA4'])
        self.assertEqual([t.name for t in scheme.group('FA1').tests], ['Tool 1', 'Tool 2', 'Tool 3', 'Tool 4'])
        self.assertEqual(scheme.group('SA1').max_marks, Decimal('120'))

    def test_missing_scheme_raises(self):
        """Test an unconfigured class raises SchemeNotFound."""
        with self.assertRaises(SchemeNotFound):
            resolve_scheme(self.school.pk, 'Class 9', YEAR)
        with self.assertRaises(SchemeNotFound):
            resolve_scheme(self.school.pk, 'Class 10', '2023-2024')

    def test_report_without_scheme_fails(self):
        """Test report generation refuses to build a zero-filled report."""
        other = SchoolClass.objects.create(school=self.school, name='Class 9', section='A')
        with self.assertRaises(SchemeNotFound):
            generate_student_report(DjangoRecordStore(), self.school.pk, other.pk, 's1', YEAR)
        result = generate_class_reports(self.school.pk, other.pk, YEAR)
        self.assertFalse(result['success'])
        self.assertIn('Class 9', result['error'])


class SchemeLockTest(GradebookDataMixin, TestCase):
    """Tests for scheme immutability once marks exist."""

    def test_editable_before_marks(self):
        """Test groups can be added while no marks exist."""
        AssessmentGroup.objects.create(
            scheme=self.scheme, group_name='FA5', group_type=FORMATIVE, order=10
        )
        self.assertEqual(self.scheme.groups.count(), 7)

    def test_locked_after_marks(self):
        """Test adding, editing and deleting are refused once marks exist."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        with self.assertRaises(SchemeLocked):
            AssessmentGroup.objects.create(
                scheme=self.scheme, group_name='FA5', group_type=FORMATIVE, order=10
            )
        test = TestComponent.objects.get(group__scheme=self.scheme, group__group_name='FA1', test_name='Tool 1')
        test.max_marks = Decimal('15')
        with self.assertRaises(SchemeLocked):
            test.save()
        with self.assertRaises(SchemeLocked):
            self.scheme.groups.get(group_name='SA2').delete()

    def test_seed_force_refused_once_marks_exist(self):
        """Test the seed command will not replace a scheme in use."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        with self.assertRaises(CommandError):
            call_command(
                'seed_assessment_scheme', school='demo', class_name='Class 10', year=YEAR,
                force=True, stdout=StringIO(),
            )

    def test_duplicate_normalized_test_name(self):
        """Test test names that only differ in case/spacing are rejected."""
        group = self.scheme.groups.get(group_name='FA1')
        with self.assertRaises(ValidationError):
            TestComponent(group=group, test_name='tool  1', max_marks=Decimal('10')).clean()

    def test_group_name_cannot_contain_dash(self):
        """Test group names stay splittable."""
        with self.assertRaises(ValidationError):
            AssessmentGroup(scheme=self.scheme, group_name='FA-1', group_type=FORMATIVE).clean()

    def test_scheme_identity_editable_before_marks(self):
        """Test a scheme can be moved to another year while unused."""
        self.scheme.academic_year = '2025-2026'
        self.scheme.save()
        self.assertEqual(AssessmentScheme.objects.get(pk=self.scheme.pk).academic_year, '2025-2026')

    def test_scheme_identity_locked_after_marks(self):
        """Test the class or year of a scheme in use cannot change."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        self.scheme.academic_year = '2025-2026'
        with self.assertRaises(SchemeLocked):
            self.scheme.save()
        self.scheme.refresh_from_db()
        self.scheme.class_name = 'Class 9'
        with self.assertRaises(SchemeLocked):
            self.scheme.save()
        self.assertEqual(AssessmentScheme.objects.get(pk=self.scheme.pk).class_name, 'Class 10')


class SubmitMarksTest(GradebookDataMixin, TestCase):
    """Tests for the marks entry write path."""

    def entries(self, marks):
        return [{'student_id': 's1', 'assessment_name': 'FA1-Tool 1', 'marks_obtained': marks, 'max_marks': 10}]

    def test_submit_upserts(self):
        """Test resubmitting updates the existing record."""
        first = submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, self.entries(6))
        second = submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, self.entries(8))
        self.assertEqual(first['created'], 1)
        self.assertEqual(second['updated'], 1)
        record = MarkRecord.objects.get()
        self.assertEqual(record.marks_obtained, Decimal('8'))
        self.assertEqual(record.assessment_key, 'FA1')
        self.assertEqual(record.test_key, 'Tool 1')

    def test_legacy_payload_shape(self):
        """Test assessment_key/test_key payloads get an assessment name."""
        entries = [{'student_id': 's1', 'assessment_key': 'SA1', 'test_key': 'AS1',
                    'marks_obtained': 12, 'max_marks': 20}]
        submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, entries)
        self.assertEqual(MarkRecord.objects.get().assessment_name, 'SA1-AS1')

    def test_marks_above_max_rejected(self):
        """Test out-of-range marks are refused and nothing is written."""
        entries = self.entries(6) + [{'student_id': 's2', 'assessment_name': 'FA1-Tool 1',
                                      'marks_obtained': 11, 'max_marks': 10}]
        with self.assertRaises(ValidationError):
            submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, entries)
        self.assertFalse(MarkRecord.objects.exists())

    def test_locked_group_rejected(self):
        """Test a locked group cannot receive marks."""
        MarksEntryLock.objects.create(school=self.school, academic_year=YEAR, group_name='FA1')
        with self.assertRaises(MarksEntryLocked):
            submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, self.entries(6))
        self.assertFalse(MarkRecord.objects.exists())

    def test_unlocked_lock_row_allows_entry(self):
        """Test an explicit unlocked row does not block entry."""
        MarksEntryLock.objects.create(school=self.school, academic_year=YEAR, group_name='FA1', is_locked=False)
        submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, self.entries(6))
        self.assertEqual(MarkRecord.objects.count(), 1)

    def test_non_finite_marks_rejected(self):
        """Test NaN and Infinity are reported as row errors."""
        for value in ('NaN', 'Infinity', '-Infinity'):
            with self.assertRaises(ValidationError) as ctx:
                submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, self.entries(value))
            self.assertIn('finite', ctx.exception.messages[0])
        entries = [{'student_id': 's1', 'assessment_name': 'FA1-Tool 1', 'marks_obtained': 5, 'max_marks': 'NaN'}]
        with self.assertRaises(ValidationError):
            submit_marks(self.school.pk, self.school_class.pk, 'Maths', YEAR, entries)
        self.assertFalse(MarkRecord.objects.exists())


class DjangoRecordStoreTest(GradebookDataMixin, TestCase):
    """Tests for the ORM record store."""

    def setUp(self):
        super().setUp()
        self.store = DjangoRecordStore()

    def test_fetch_assessment_marks_by_paper(self):
        """Test the assessment-prefix filter."""
        self.mark('s1', 'Science', 'SA1-Paper1-AS1', 10)
        self.mark('s1', 'Science', 'SA1-Paper2-AS1', 12)
        self.mark('s1', 'Science', 'SA2-Paper1-AS1', 14)
        all_sa1 = self.store.fetch_assessment_marks(self.school.pk, self.school_class.pk, 'Science', 'SA1', YEAR)
        paper2 = self.store.fetch_assessment_marks(
            self.school.pk, self.school_class.pk, 'Science', 'SA1', YEAR, paper=2
        )
        self.assertEqual(len(all_sa1), 2)
        self.assertEqual([r.marks_obtained for r in paper2], [Decimal('12')])

    def test_fetch_second_language(self):
        """Test the school setting is read."""
        self.assertEqual(self.store.fetch_second_language(self.school.pk), 'Hindi')

    def test_fetch_subject_roster(self):
        """Test the roster comes back in order with papers."""
        roster = self.store.fetch_subject_roster(self.school_class.pk)
        self.assertEqual([s.name for s in roster], ['Maths', 'Science'])
        self.assertEqual(roster[1].papers, ['Physics', 'Biology'])

    def test_find_duplicate_marks(self):
        """Test key collisions across subjects are reported."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        self.mark('s1', 'sub-001', 'FA1-Tool 1', 6, 10)
        duplicates = self.store.find_duplicate_marks(self.school.pk)
        self.assertEqual(len(duplicates), 1)
        self.assertEqual(duplicates[0]['subjects'], ['Maths', 'sub-001'])


class GenerateReportTest(GradebookDataMixin, TestCase):
    """Tests for end-to-end report generation."""

    def test_generate_student_report(self):
        """Test a full year of marks gives 84 / A2 in Maths."""
        self.full_marks('s1')
        report = generate_student_report(DjangoRecordStore(), self.school.pk, self.school_class.pk, 's1', YEAR)
        row = report.row('Maths')
        self.assertEqual(row.composite.final_score, 84)
        self.assertEqual(row.final_grade.label, 'A2')
        self.assertEqual(report.orphans, [])

    def test_most_recent_duplicate_is_used(self):
        """Test the newer of two conflicting records is graded."""
        stale = self.mark('s1', 'Maths', 'FA1-Tool 1', 2, 10)
        fresh = self.mark('s1', 'Maths', 'FA1-tool 1', 9, 10)
        now = timezone.now()
        MarkRecord.objects.filter(pk=stale.pk).update(updated_at=now - timedelta(days=2))
        MarkRecord.objects.filter(pk=fresh.pk).update(updated_at=now)
        report = generate_student_report(DjangoRecordStore(), self.school.pk, self.school_class.pk, 's1', YEAR)
        fa1 = report.formative_for('Maths').periods[0]
        self.assertEqual(fa1.total, Decimal('9'))

    def test_generate_class_reports_task(self):
        """Test the class task builds one report per student."""
        self.full_marks('s1')
        self.full_marks('s2', sa2_marks=20)
        result = generate_class_reports(self.school.pk, self.school_class.pk, YEAR)
        self.assertTrue(result['success'])
        self.assertEqual(result['generated'], 2)
        finals = {r['student_id']: r['rows'][0]['composite']['final_score'] for r in result['reports']}
        self.assertEqual(finals, {'s1': 84, 's2': 100})

    def test_one_failing_student_does_not_block_others(self):
        """Test a fetch failure is recorded per student."""

        class FailingStore(DjangoRecordStore):
            def fetch_student_marks(self, student_id, school_id, academic_year):
                if student_id == 's2':
                    raise DatabaseError('connection lost')
                return super().fetch_student_marks(student_id, school_id, academic_year)

        self.full_marks('s1')
        self.full_marks('s2')
        store = FailingStore()
        scheme = store.fetch_scheme(self.school.pk, 'Class 10', YEAR)
        reports, errors = build_class_reports(
            store, self.school.pk, self.school_class, scheme, ['s1', 's2'], YEAR
        )
        self.assertEqual([r.student_id for r in reports], ['s1'])
        self.assertEqual(errors, [{'student_id': 's2', 'error': 'connection lost'}])

    def test_attendance_scoped_to_school(self):
        """Test a student id reused by another school does not mix attendance."""
        other_school = School.objects.create(name='Other School', code='other')
        AttendanceMonth.objects.create(
            school=self.school, student_id='s1', academic_year=YEAR,
            month=AttendanceMonth.Month.JUNE, working_days=20, present_days=20,
        )
        AttendanceMonth.objects.create(
            school=other_school, student_id='s1', academic_year=YEAR,
            month=AttendanceMonth.Month.JULY, working_days=20, present_days=0,
        )
        report = generate_student_report(DjangoRecordStore(), self.school.pk, self.school_class.pk, 's1', YEAR)
        self.assertEqual(report.attendance.working_days, 20)
        self.assertEqual(report.attendance.present_days, 20)
        self.assertEqual(report.attendance.percentage, 100)

    def test_class_reports_reuse_class(self):
        """Test class-wide generation does not look the class up per student."""

        class CountingStore(DjangoRecordStore):
            class_lookups = 0

            def fetch_class(self, class_id):
                self.class_lookups += 1
                return super().fetch_class(class_id)

        self.full_marks('s1')
        self.full_marks('s2')
        store = CountingStore()
        scheme = store.fetch_scheme(self.school.pk, 'Class 10', YEAR)
        reports, errors = build_class_reports(
            store, self.school.pk, self.school_class, scheme, ['s1', 's2'], YEAR
        )
        self.assertEqual(len(reports), 2)
        self.assertEqual(errors, [])
        self.assertEqual(store.class_lookups, 0)


class SubjectKeyMigrationTest(GradebookDataMixin, TestCase):
    """Tests for the legacy subject-key migration."""

    def setUp(self):
        super().setUp()
        self.canonical = self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        self.colliding = self.mark('s1', 'sub-001', 'FA1-Tool 1', 6, 10)
        self.legacy = self.mark('s1', 'sub-001', 'FA1-Tool 2', 7, 10)
        self.unknown = self.mark('s1', 'sub-999', 'FA1-Tool 3', 8, 10)

    def test_dry_run_writes_nothing(self):
        """Test a dry run reports without changing records."""
        result = migrate_subject_keys(self.school.pk, dry_run=True)
        self.assertEqual(result.affected, 1)
        self.legacy.refresh_from_db()
        self.assertEqual(self.legacy.subject_name, 'sub-001')

    def test_migration(self):
        """Test resolvable keys are rewritten and the rest flagged."""
        result = migrate_subject_keys(self.school.pk)
        self.assertEqual(result.scanned, 4)
        self.assertEqual(result.affected, 1)
        self.assertEqual(result.unchanged, 1)
        self.assertEqual(result.conflicts, 1)
        self.assertEqual(result.unmatched, 1)
        self.legacy.refresh_from_db()
        self.colliding.refresh_from_db()
        self.assertEqual(self.legacy.subject_name, 'Maths')
        self.assertEqual(self.colliding.subject_name, 'sub-001')

    def test_migration_is_idempotent(self):
        """Test a second run has nothing left to rewrite."""
        migrate_subject_keys(self.school.pk)
        second = migrate_subject_keys(self.school.pk)
        self.assertEqual(second.affected, 0)
        self.assertEqual(MarkRecord.objects.filter(subject_name='Maths').count(), 2)

    def test_updated_at_preserved(self):
        """Test rewriting keys does not make records look newer."""
        before = MarkRecord.objects.get(pk=self.legacy.pk).updated_at
        migrate_subject_keys(self.school.pk, batch_size=1)
        self.assertEqual(MarkRecord.objects.get(pk=self.legacy.pk).updated_at, before)

    def test_ambiguous_keys_left_untouched(self):
        """Test ambiguous values are flagged and not rewritten."""
        other = SchoolClass.objects.create(school=self.school, name='Class 10', section='B')
        ClassSubject.objects.create(school_class=other, name='Maths')
        ClassSubject.objects.create(school_class=other, name='English', legacy_key='Maths')
        record = self.mark('s5', 'Maths', 'FA1-Tool 1', 4, 10, school_class=other)
        result = migrate_subject_keys(self.school.pk)
        self.assertEqual(result.ambiguous, 1)
        record.refresh_from_db()
        self.assertEqual(record.subject_name, 'Maths')

    def test_migration_task(self):
        """Test the Celery task wrapper."""
        result = migrate_school_subject_keys(self.school.pk, dry_run=True)
        self.assertTrue(result['success'])
        self.assertEqual(result['affected'], 1)
        self.assertEqual(result['flagged_values']['unmatched'], ['sub-999'])

    def test_command(self):
        """Test the management command output."""
        out = StringIO()
        call_command('migrate_subject_keys', school='demo', dry_run=True, stdout=out)
        self.assertIn('[DRY RUN]', out.getvalue())
        self.assertIn('1 conflict record(s)', out.getvalue())

    def test_command_unknown_school(self):
        """Test an unknown school code is an error."""
        with self.assertRaises(CommandError):
            call_command('migrate_subject_keys', school='nope', stdout=StringIO())


class BackfillAssessmentNamesCommandTest(GradebookDataMixin, TestCase):
    """Tests for the assessment-name backfill command."""

    def test_backfill(self):
        """Test legacy rows get "<assessment_key>-<test_key>"."""
        record = self.mark('s1', 'Maths', None, 5, 10)
        MarkRecord.objects.filter(pk=record.pk).update(assessment_key='FA1', test_key='Tool 1')

        out = StringIO()
        call_command('backfill_assessment_names', dry_run=True, stdout=out)
        record.refresh_from_db()
        self.assertIsNone(record.assessment_name)
        self.assertIn('Updated 1 record(s)', out.getvalue())

        call_command('backfill_assessment_names', stdout=StringIO())
        record.refresh_from_db()
        self.assertEqual(record.assessment_name, 'FA1-Tool 1')

    def test_backfill_skips_taken_names(self):
        """Test a backfill that would duplicate an existing record is skipped."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        legacy = self.mark('s1', 'Maths', None, 6, 10)
        MarkRecord.objects.filter(pk=legacy.pk).update(assessment_key='FA1', test_key='Tool 1')
        call_command('backfill_assessment_names', stdout=StringIO())
        legacy.refresh_from_db()
        self.assertIsNone(legacy.assessment_name)


class CheckMarkDuplicatesCommandTest(GradebookDataMixin, TestCase):
    """Tests for the duplicate-key report command."""

    def test_reports_duplicates(self):
        """Test collisions are listed."""
        self.mark('s1', 'Maths', 'FA1-Tool 1', 5, 10)
        self.mark('s1', 'sub-001', 'FA1-Tool 1', 6, 10)
        out = StringIO()
        call_command('check_mark_duplicates', school='demo', stdout=out)
        self.assertIn('Maths, sub-001', out.getvalue())

    def test_no_duplicates(self):
        """Test a clean school."""
        out = StringIO()
        call_command('check_mark_duplicates', school='demo', stdout=out)
        self.assertIn('No duplicate mark keys found.', out.getvalue())
