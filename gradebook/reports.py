"""
Student report assembly.

All data (scheme, marks, roster, attendance, school settings) is fetched
first; the report is then computed in memory by the pure engine modules.
"""
import logging
from decimal import Decimal

from django.db import DatabaseError

from academics.attendance import summarize_attendance

from . import config
from .aggregation import aggregate_period, formative_total
from .composite import compute_composite, grade_point_average, overall_grade
from .grading import GradeResult, grade_of, grade_period, is_second_language
from .matching import OrphanedRecord, OrphanReason, match_marks
from .scales import ScaleKind

logger = logging.getLogger(__name__)

DEFAULT_PAPER_NAMES = ('I', 'II')
PROGRESS_LOG_EVERY = 25


class SubjectFormativeSummary:
    """Formative periods of one subject (scored once, shared by all its papers)."""

    def __init__(self, subject, periods, grades, total, overall_grade):
        self.subject = subject
        self.periods = periods
        self.grades = grades
        self.total = total
        self.overall_grade = overall_grade

    def to_dict(self):
        return {
            'subject': self.subject,
            'periods': [
                dict(p.to_dict(), grade=self.grades[p.group_name].to_dict())
                for p in self.periods
            ],
            'total': float(self.total),
            'overall_grade': self.overall_grade.to_dict(),
        }


class ReportSubjectRow:
    """One (subject, paper) line of the summative side of the report."""

    def __init__(self, subject, paper_number, paper_name, periods, grades, composite,
                 second_language=False):
        self.subject = subject
        self.paper_number = paper_number
        self.paper_name = paper_name
        self.periods = periods
        self.grades = grades
        self.composite = composite
        self.second_language = second_language

    def __repr__(self):
        return f"ReportSubjectRow({self.subject!r}, {self.paper_name!r})"

    @property
    def final_grade(self):
        return self.composite.final_grade

    def to_dict(self):
        return {
            'subject': self.subject,
            'paper': self.paper_name,
            'paper_number': self.paper_number,
            'second_language': self.second_language,
            'periods': [
                dict(p.to_dict(), grade=self.grades[p.group_name].to_dict())
                for p in self.periods
            ],
            'composite': self.composite.to_dict(),
        }


class StudentReport:
    def __init__(self, student_id, school_id, class_name, academic_year, formative, rows,
                 attendance, orphans=None):
        self.student_id = student_id
        self.school_id = school_id
        self.class_name = class_name
        self.academic_year = academic_year
        self.formative = formative
        self.rows = rows
        self.attendance = attendance
        self.orphans = orphans or []
        self.overall_grade = overall_grade(rows)
        self.grade_point_average = grade_point_average(rows)

    def __repr__(self):
        return f"StudentReport({self.student_id!r}, overall={self.overall_grade!r})"

    def row(self, subject, paper_name=None):
        for row in self.rows:
            if row.subject == subject and (paper_name is None or row.paper_name == paper_name):
                return row
        return None

    def formative_for(self, subject):
        for summary in self.formative:
            if summary.subject == subject:
                return summary
        return None

    def to_dict(self):
        gpa = self.grade_point_average
        return {
            'student_id': self.student_id,
            'school_id': self.school_id,
            'class_name': self.class_name,
            'academic_year': self.academic_year,
            'formative': [s.to_dict() for s in self.formative],
            'rows': [r.to_dict() for r in self.rows],
            'overall_grade': self.overall_grade,
            'grade_point_average': float(gpa) if gpa is not None else None,
            'attendance': self.attendance.to_dict(),
            'orphans': [o.to_dict() for o in self.orphans],
        }


def _paper_layout(configured, present_papers):
    """Paper names for a subject: configured names, else I (plus II when paper-2 marks exist)."""
    if configured:
        return list(configured)
    if 2 in present_papers:
        return list(DEFAULT_PAPER_NAMES)
    return [DEFAULT_PAPER_NAMES[0]]


def _formative_summary(scheme, subject, marks, second_language):
    group_marks = marks.subject_formative_marks(subject)
    periods = [aggregate_period(g, group_marks.get(g.name, {})) for g in scheme.formative_groups]
    grades = {
        p.group_name: grade_period(p, ScaleKind.FORMATIVE_PERIOD, second_language)
        for p in periods
    }
    total = formative_total(periods)
    if any(p.has_data for p in periods):
        ceiling = Decimal(config.FORMATIVE_CEILING)
        overall = grade_of(min(total, ceiling), ceiling, ScaleKind.FORMATIVE_OVERALL)
    else:
        overall = GradeResult.no_data()
    return SubjectFormativeSummary(subject, periods, grades, total, overall)


def build_student_report(scheme, records, subjects, attendance_months, second_language_subject='',
                         student_id=None, school_id=None):
    """
    Compute a student's report from already-fetched data.

    Args:
        scheme: ResolvedScheme for the student's class and year
        records: the student's MarkRecords for the year
        subjects: ClassSubject roster (objects with `name` and `papers`);
            when empty, subjects are taken from the marks themselves
        attendance_months: AttendanceMonth rows for the year
        second_language_subject: school setting naming the lenient-scale subject

    Returns:
        StudentReport
    """
    roster = [s.name for s in subjects] if subjects else None
    marks = match_marks(scheme, records, roster=roster)
    orphans = list(marks.orphans)

    if subjects:
        layout = [(s.name, s.papers) for s in subjects]
    else:
        layout = [(name, []) for name in marks.subjects()]

    summative_groups = scheme.summative_groups
    sa1 = summative_groups[0] if len(summative_groups) > 0 else None
    sa2 = summative_groups[1] if len(summative_groups) > 1 else None

    formative = []
    rows = []
    for subject, configured_papers in layout:
        second_language = is_second_language(subject, second_language_subject)
        summary = _formative_summary(scheme, subject, marks, second_language)
        formative.append(summary)

        present = marks.papers(subject)
        paper_names = _paper_layout(configured_papers, present)
        for paper_number in present:
            if paper_number > len(paper_names):
                for record in marks.placed_records(subject, paper_number):
                    orphans.append(OrphanedRecord(
                        record, OrphanReason.UNKNOWN_PAPER, f"{subject}: paper {paper_number}"
                    ))
                logger.warning(f"Marks for {subject} paper {paper_number} have no configured paper")

        for paper_number, paper_name in enumerate(paper_names, start=1):
            group_marks = marks.subject_marks(subject, paper_number)
            periods = [aggregate_period(g, group_marks.get(g.name, {})) for g in summative_groups]
            by_name = {p.group_name: p for p in periods}
            grades = {
                p.group_name: grade_period(p, ScaleKind.SUMMATIVE_PERIOD, second_language)
                for p in periods
            }
            has_data = any(p.has_data for p in summary.periods) or any(p.has_data for p in periods)
            composite = compute_composite(
                summary.total,
                by_name.get(sa1.name) if sa1 else None,
                by_name.get(sa2.name) if sa2 else None,
                second_language=second_language,
                has_data=has_data,
            )
            rows.append(ReportSubjectRow(
                subject, paper_number, paper_name, periods, grades, composite, second_language
            ))

    attendance = summarize_attendance(attendance_months)
    report = StudentReport(
        student_id=student_id,
        school_id=school_id,
        class_name=scheme.class_name,
        academic_year=scheme.academic_year,
        formative=formative,
        rows=rows,
        attendance=attendance,
        orphans=orphans,
    )
    logger.debug(f"Built report for student {student_id}: {len(rows)} rows, overall {report.overall_grade}")
    return report


def generate_student_report(store, school_id, class_id, student_id, academic_year, scheme=None,
                            school_class=None):
    """
    Fetch everything a report needs from a RecordStore, then build it.

    `scheme` and `school_class` may be passed in when the caller already
    holds them (class-wide generation).

    Raises:
        SchemeNotFound: no scheme for the class and year (no zero-filled report)
        DatabaseError: propagated from the store
    """
    if scheme is None:
        if school_class is None:
            school_class = store.fetch_class(class_id)
        scheme = store.fetch_scheme(school_id, school_class.name, academic_year)
    records = store.fetch_student_marks(student_id, school_id, academic_year)
    subjects = store.fetch_subject_roster(class_id)
    attendance_months = store.fetch_attendance(student_id, academic_year, school_id=school_id)
    second_language_subject = store.fetch_second_language(school_id)

    return build_student_report(
        scheme,
        records,
        subjects,
        attendance_months,
        second_language_subject,
        student_id=student_id,
        school_id=school_id,
    )


def build_class_reports(store, school_id, school_class, scheme, student_ids, academic_year):
    """
    Build reports for many students of one class against one scheme.

    A DatabaseError while fetching one student's data is recorded in the
    returned errors and does not stop the remaining students.

    Returns:
        tuple: (list of StudentReport, list of {'student_id', 'error'} dicts)
    """
    reports = []
    errors = []
    total = len(student_ids)
    for index, student_id in enumerate(student_ids, start=1):
        try:
            reports.append(generate_student_report(
                store, school_id, school_class.pk, student_id, academic_year,
                scheme=scheme, school_class=school_class,
            ))
        except DatabaseError as e:
            logger.error(f"Report for student {student_id} failed: {e}")
            errors.append({'student_id': student_id, 'error': str(e)})

        if index % PROGRESS_LOG_EVERY == 0:
            logger.info(f"Class {school_class}: {index}/{total} reports processed")
    return reports, errors
