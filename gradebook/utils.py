"""
Utility functions for the gradebook app.
Numeric helpers shared by the grading and aggregation modules.
"""
from decimal import Decimal, ROUND_HALF_UP


def to_decimal(value):
    """
    Convert a mark value to Decimal without float artifacts.

    Args:
        value: int, float, str or Decimal (None passes through)

    Returns:
        Decimal or None
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_half_up(value, places=0):
    """
    Round half away from zero, the way report cards are rounded by hand
    (72.5 -> 73, not banker's 72).

    Args:
        value: number to round
        places: decimal places to keep

    Returns:
        int when places is 0, otherwise Decimal
    """
    exponent = Decimal(1).scaleb(-places)
    rounded = to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)
    if places == 0:
        return int(rounded)
    return rounded


def percentage(part, whole):
    """Return part/whole as a Decimal percentage, or None when whole is 0."""
    whole = to_decimal(whole)
    if not whole:
        return None
    return to_decimal(part) * 100 / whole
