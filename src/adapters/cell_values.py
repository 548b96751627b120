"""
Cell value conversion shared by the import adapters.

Both engines hand back Python values (numbers, strings, booleans, dates,
error literals). Snapshots hold JSON-safe primitives only, so dates and
times become Excel serial numbers and every value gets a ValueKind.
"""

from datetime import date, datetime, time, timedelta
from typing import Any

from src.models.workbook_models import ValueKind

# Excel's date system epoch. Excel incorrectly treats 1900 as a leap year
# for compatibility with Lotus 1-2-3, so the epoch is December 30, 1899.
EXCEL_EPOCH = datetime(1899, 12, 30)

ERROR_LITERALS = frozenset({
    "#NULL!",
    "#DIV/0!",
    "#VALUE!",
    "#REF!",
    "#NAME?",
    "#NUM!",
    "#N/A",
    "#GETTING_DATA",
    "#SPILL!",
    "#CALC!",
    "#FIELD!",
    "#BLOCKED!",
    "#CONNECT!",
    "#BUSY!",
    "#UNKNOWN!",
})


def excel_serial(value: datetime | date | time | timedelta) -> float:
    """
    Convert a date/time value to an Excel serial number.

    Args:
        value: datetime, date, time or timedelta.

    Returns:
        Days since 1899-12-30, with the time of day as the fraction.
    """
    if isinstance(value, timedelta):
        return value.total_seconds() / 86400
    if isinstance(value, time):
        seconds = value.hour * 3600 + value.minute * 60 + value.second
        return (seconds + value.microsecond / 1_000_000) / 86400
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    return (value.replace(tzinfo=None) - EXCEL_EPOCH).total_seconds() / 86400


def snapshot_value(value: Any) -> Any:
    """
    Normalize an engine value to a snapshot primitive.

    Integral floats collapse to int, dates and times become serial
    numbers, and anything unrecognized is stringified.

    Args:
        value: Raw value from openpyxl or calamine.

    Returns:
        None, bool, int, float or str.
    """
    if value is None:
        return None

    if isinstance(value, bool):
        return value

    if isinstance(value, (datetime, date, time, timedelta)):
        value = excel_serial(value)

    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        return value

    if isinstance(value, (int, str)):
        return value

    return str(value)


def value_kind_of(value: Any, is_error: bool = False) -> ValueKind:
    """
    Kind of a snapshot primitive.

    Args:
        value: Normalized value (see snapshot_value).
        is_error: Whether the engine flagged the cell as an error.

    Returns:
        The matching ValueKind.
    """
    if value is None:
        return ValueKind.EMPTY
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.DOUBLE
    if isinstance(value, str):
        if is_error or value in ERROR_LITERALS:
            return ValueKind.ERROR
        return ValueKind.STRING
    return ValueKind.UNKNOWN
