"""
Tests for the academics app.

Focuses on:
- Attendance summary over the reported months
- Subject paper configuration
- Attendance validation
"""
from types import SimpleNamespace

from django.core.exceptions import ValidationError
from django.test import SimpleTestCase, TestCase, override_settings

from academics.attendance import summarize_attendance
from academics.models import AttendanceMonth, ClassSubject, SchoolClass
from schools.models import School


def month(number, working, present):
    return SimpleNamespace(month=number, working_days=working, present_days=present)


class AttendanceSummaryTest(SimpleTestCase):
    """Tests for summarize_attendance."""

    def test_only_reported_months_count(self):
        """Test May (the twelfth month) is left out."""
        summary = summarize_attendance([month(m, 20, 18) for m in range(12)])
        self.assertEqual(summary.working_days, 220)
        self.assertEqual(summary.present_days, 198)
        self.assertEqual(summary.percentage, 90)
        self.assertEqual(len(summary.months), 11)

    def test_no_working_days(self):
        """Test an empty year gives 0% instead of dividing by zero."""
        summary = summarize_attendance([])
        self.assertEqual(summary.working_days, 0)
        self.assertEqual(summary.percentage, 0)
        self.assertFalse(summary.passed)

    def test_blank_days_count_as_zero(self):
        """Test months with missing values add nothing."""
        summary = summarize_attendance([month(0, 20, 10), month(1, None, None), month(2, 20, None)])
        self.assertEqual(summary.working_days, 40)
        self.assertEqual(summary.present_days, 10)
        self.assertEqual(summary.percentage, 25)

    def test_percentage_rounds_half_up(self):
        """Test 1/8 of 100 (12.5) rounds to 13."""
        self.assertEqual(summarize_attendance([month(3, 8, 1)]).percentage, 13)

    def test_pass_mark_is_exclusive(self):
        """Test attendance must exceed the pass percentage."""
        self.assertFalse(summarize_attendance([month(0, 20, 9)]).passed)  # 45%
        self.assertTrue(summarize_attendance([month(0, 20, 10)]).passed)  # 50%

    @override_settings(GRADEBOOK_ATTENDANCE_PASS_PERCENTAGE=60)
    def test_pass_mark_setting(self):
        """Test the pass percentage can be overridden in settings."""
        self.assertFalse(summarize_attendance([month(0, 20, 10)]).passed)


class ClassSubjectTest(TestCase):
    """Tests for class subjects and attendance rows."""

    def setUp(self):
        self.school = School.objects.create(name='Demo School', code='demo')
        self.school_class = SchoolClass.objects.create(school=self.school, name='Class 10', section='A')

    def test_papers(self):
        """Test paper names are split and trimmed."""
        subject = ClassSubject.objects.create(
            school_class=self.school_class, name='Science', paper_names='Physics, Biology ,'
        )
        self.assertEqual(subject.papers, ['Physics', 'Biology'])

    def test_default_papers(self):
        """Test a subject without configured papers."""
        subject = ClassSubject.objects.create(school_class=self.school_class, name='Maths')
        self.assertEqual(subject.papers, [])

    def test_class_str(self):
        """Test the class label includes its section."""
        self.assertEqual(str(self.school_class), 'Class 10-A')

    def test_present_cannot_exceed_working(self):
        """Test attendance validation."""
        record = AttendanceMonth(
            school=self.school, student_id='s1', academic_year='2024-2025',
            month=AttendanceMonth.Month.JUNE, working_days=20, present_days=21,
        )
        with self.assertRaises(ValidationError):
            record.clean()
