"""
Rectangle decomposition of a difference grid.

Overlay renderers pay roughly one host formatting call per rectangle, so
a per-code mask is reduced to a small set of maximal rectangles rather
than one entry per cell or per row run:

    1. Row segmentation: each row is scanned left to right into maximal
       runs [col_start, col_end] of cells carrying the code.
    2. Vertical merging: a run whose exact column span was open on the
       immediately preceding row extends that rectangle downwards;
       any other run opens a new rectangle. Open rectangles whose span
       does not recur on the current row are closed.

The result covers every matching cell exactly once and never merges runs
with different column spans. An unchanged column of 10,000 matching rows
collapses into one rectangle.

Rectangles are in the grid's local 0-based coordinates; use to_absolute()
to shift them by the grid's row_base/col_base.
"""

from src.models.diff_models import DifferenceCode, Rectangle, SheetDiff


def row_segments(sheet_diff: SheetDiff, row: int, code: int) -> list[tuple[int, int]]:
    """
    Maximal horizontal runs of a code within one row.

    Args:
        sheet_diff: The grid to scan.
        row: Local row index.
        code: The code to match.

    Returns:
        (col_start, col_end) pairs, inclusive, left to right.
    """
    cells = sheet_diff.cells
    cols = sheet_diff.cols
    base = row * cols
    segments: list[tuple[int, int]] = []

    col = 0
    while col < cols:
        if cells[base + col] != code:
            col += 1
            continue
        end = col
        while end + 1 < cols and cells[base + end + 1] == code:
            end += 1
        segments.append((col, end))
        col = end + 1

    return segments


def decompose_code(sheet_diff: SheetDiff, code: DifferenceCode | int) -> list[Rectangle]:
    """
    Rectangles whose union is exactly the set of cells carrying code.

    Args:
        sheet_diff: The grid to decompose.
        code: The difference code to cover.

    Returns:
        Non-overlapping rectangles in local coordinates, ordered by
        (row_start, col_start).
    """
    code = int(code)
    closed: list[Rectangle] = []
    # (col_start, col_end) -> row_start of the rectangle still open
    open_spans: dict[tuple[int, int], int] = {}

    for row in range(sheet_diff.rows):
        carried: dict[tuple[int, int], int] = {}
        for span in row_segments(sheet_diff, row, code):
            carried[span] = open_spans.pop(span, row)

        for (col_start, col_end), row_start in open_spans.items():
            closed.append(
                Rectangle(
                    row_start=row_start,
                    col_start=col_start,
                    row_end=row - 1,
                    col_end=col_end,
                )
            )
        open_spans = carried

    last_row = sheet_diff.rows - 1
    for (col_start, col_end), row_start in open_spans.items():
        closed.append(
            Rectangle(
                row_start=row_start,
                col_start=col_start,
                row_end=last_row,
                col_end=col_end,
            )
        )

    closed.sort(key=lambda rect: (rect.row_start, rect.col_start))
    return closed


def decompose_all(sheet_diff: SheetDiff) -> dict[DifferenceCode, list[Rectangle]]:
    """
    Decompose every non-NONE code present in a grid.

    Codes with no cells are omitted.
    """
    present = set(sheet_diff.cells)
    result: dict[DifferenceCode, list[Rectangle]] = {}
    for code in DifferenceCode:
        if code == DifferenceCode.NONE or code.value not in present:
            continue
        result[code] = decompose_code(sheet_diff, code)
    return result


def to_absolute(sheet_diff: SheetDiff, rectangles: list[Rectangle]) -> list[Rectangle]:
    """Shift local rectangles into absolute sheet coordinates."""
    return [rect.translate(sheet_diff.row_base, sheet_diff.col_base) for rect in rectangles]
