"""
Yearly attendance summary for the report card.

The academic year runs June..May but only the first eleven months
(June..April) are reported; May is the examination month.
"""
import logging
from decimal import Decimal

from gradebook import config
from gradebook.utils import round_half_up

logger = logging.getLogger(__name__)


class AttendanceSummary:
    """Totals over the reported months of one academic year."""

    def __init__(self, working_days=0, present_days=0, months=None):
        self.working_days = working_days
        self.present_days = present_days
        self.months = months or []
        if working_days > 0:
            self.percentage = round_half_up(Decimal(present_days) * 100 / working_days)
        else:
            self.percentage = 0
        self.passed = self.percentage > config.ATTENDANCE_PASS_PERCENTAGE

    def __repr__(self):
        return f"AttendanceSummary({self.present_days}/{self.working_days}, {self.percentage}%)"

    def to_dict(self):
        return {
            'working_days': self.working_days,
            'present_days': self.present_days,
            'percentage': self.percentage,
            'passed': self.passed,
            'months': self.months,
        }


def summarize_attendance(months):
    """
    Sum working and present days over the reported months.

    Args:
        months: iterable of AttendanceMonth instances (or objects with
            month, working_days and present_days). Blank days count as 0.

    Returns:
        AttendanceSummary; a zeroed summary when there is no data.
    """
    month_count = config.ATTENDANCE_MONTHS
    slots = [{'working_days': None, 'present_days': None} for _ in range(month_count)]

    for record in months:
        if record.month is None or not 0 <= record.month < month_count:
            logger.debug(f"Skipping attendance outside reported months: month={record.month}")
            continue
        slots[record.month] = {
            'working_days': record.working_days,
            'present_days': record.present_days,
        }

    working = sum(slot['working_days'] or 0 for slot in slots)
    present = sum(slot['present_days'] or 0 for slot in slots)
    return AttendanceSummary(working_days=working, present_days=present, months=slots)
