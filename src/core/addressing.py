"""
A1 notation helpers.

Converts between 0-based (row, col) coordinates and A1 references such
as "B2", "$C$5", "Sheet1!A1:D10". Renderers address ranges in A1
notation, while diff grids use 0-based indices.
"""

import re

from openpyxl.utils import column_index_from_string, get_column_letter

from src.exceptions.diff_exceptions import CellRangeError
from src.models.diff_models import Rectangle

_CELL_PATTERN = re.compile(r"^\$?([A-Z]+)\$?(\d+)$")


def column_letter(index: int) -> str:
    """
    Convert a 0-based column index to Excel column letters.

    Args:
        index: 0-based column index (0 is "A", 26 is "AA").

    Returns:
        Column letters.

    Raises:
        CellRangeError: If the index is beyond Excel's last column.
    """
    try:
        return get_column_letter(index + 1)
    except ValueError as e:
        raise CellRangeError(cell_range=str(index), reason=str(e)) from e


def column_index(letters: str) -> int:
    """
    Convert Excel column letter(s) to 0-based index.

    Args:
        letters: Column letter(s) like "A", "B", "AA", "AB".

    Returns:
        0-based column index.

    Raises:
        CellRangeError: If the letters are not a valid Excel column.
    """
    try:
        return column_index_from_string(letters.upper()) - 1
    except ValueError as e:
        raise CellRangeError(cell_range=letters, reason=str(e)) from e


def to_a1(row: int, col: int) -> str:
    """A1 reference for a 0-based (row, col)."""
    return f"{column_letter(col)}{row + 1}"


def rectangle_to_a1(rect: Rectangle) -> str:
    """
    A1 reference for a rectangle.

    Single cells render as "B2", larger blocks as "B2:D4".
    """
    start = to_a1(rect.row_start, rect.col_start)
    if rect.row_start == rect.row_end and rect.col_start == rect.col_end:
        return start
    return f"{start}:{to_a1(rect.row_end, rect.col_end)}"


def _strip_sheet(address: str) -> str:
    text = address.strip()
    bang = text.rfind("!")
    if bang >= 0:
        text = text[bang + 1:]
    return text.upper()


def _parse_cell(text: str, original: str) -> tuple[int, int]:
    match = _CELL_PATTERN.match(text)
    if not match:
        raise CellRangeError(
            cell_range=original,
            reason="Invalid A1 notation format. Expected format: 'A1' or 'A1:C10'",
        )
    row = int(match.group(2)) - 1
    if row < 0:
        raise CellRangeError(cell_range=original, reason="Row numbers start at 1")
    return row, column_index(match.group(1))


def parse_a1_cell(address: str) -> tuple[int, int]:
    """
    Parse a single-cell reference to 0-based (row, col).

    Sheet qualifiers and "$" markers are ignored; for a range the
    top-left cell is used.

    Args:
        address: Reference such as "B2", "$B$2" or "Sheet1!B2:C3".

    Returns:
        (row, col), both 0-based.

    Raises:
        CellRangeError: If the reference cannot be parsed.
    """
    rect = parse_a1_range(address)
    return rect.row_start, rect.col_start


def parse_a1_range(address: str) -> Rectangle:
    """
    Parse a range reference to a normalized Rectangle.

    Args:
        address: Reference such as "A1:D5", "D5:A1" or "Sheet1!B2".

    Returns:
        Rectangle with start <= end on both axes.

    Raises:
        CellRangeError: If the reference cannot be parsed.
    """
    parts = _strip_sheet(address).split(":")
    if len(parts) > 2:
        raise CellRangeError(cell_range=address, reason="Too many ':' separators")
    first = _parse_cell(parts[0], address)
    second = _parse_cell(parts[-1], address)
    return Rectangle(
        row_start=min(first[0], second[0]),
        col_start=min(first[1], second[1]),
        row_end=max(first[0], second[0]),
        col_end=max(first[1], second[1]),
    )
