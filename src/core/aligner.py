"""
Alignment of a sheet pair onto one absolute coordinate space.

Two snapshots of the same sheet may anchor their populated regions at
different cells (one includes a header row the other does not, say).
Comparing local indices directly would silently misalign every cell, so
each pair is compared over the union of both regions in absolute
coordinates, and each absolute coordinate is mapped back into each
sheet's dense arrays.
"""

from pydantic import BaseModel, Field

from src.models.workbook_models import EMPTY_CELL, CellSnapshot, SheetModel, ValueKind


class GridBounds(BaseModel):
    """
    Absolute bounding rectangle covering both sheets of a pair.

    Attributes:
        row_base: First absolute row of the union.
        col_base: First absolute column of the union.
        rows: Number of rows spanned.
        cols: Number of columns spanned.
    """

    row_base: int = Field(ge=0)
    col_base: int = Field(ge=0)
    rows: int = Field(ge=0)
    cols: int = Field(ge=0)

    model_config = {"frozen": True}

    @property
    def row_end(self) -> int:
        """Exclusive absolute end row."""
        return self.row_base + self.rows

    @property
    def col_end(self) -> int:
        """Exclusive absolute end column."""
        return self.col_base + self.cols


def compute_bounds(a: SheetModel, b: SheetModel) -> GridBounds:
    """
    Union of two sheets' populated regions in absolute coordinates.

    Args:
        a: Sheet from the current snapshot.
        b: Sheet with the same name from the baseline snapshot.

    Returns:
        GridBounds spanning both regions.
    """
    row_base = min(a.row_offset, b.row_offset)
    col_base = min(a.column_offset, b.column_offset)
    row_end = max(a.row_offset + a.row_count, b.row_offset + b.row_count)
    col_end = max(a.column_offset + a.column_count, b.column_offset + b.column_count)
    return GridBounds(
        row_base=row_base,
        col_base=col_base,
        rows=max(0, row_end - row_base),
        cols=max(0, col_end - col_base),
    )


def _entry(grid: list[list], row: int, col: int):
    if row >= len(grid):
        return None
    line = grid[row]
    if col >= len(line):
        return None
    return line[col]


def local_cell(sheet: SheetModel, row: int, col: int) -> CellSnapshot:
    """
    Cell at a local index within a sheet's dense block.

    Indices outside row_count/column_count, and entries missing from
    ragged arrays, resolve to EMPTY_CELL.
    """
    if row < 0 or col < 0 or row >= sheet.row_count or col >= sheet.column_count:
        return EMPTY_CELL

    value = _entry(sheet.values, row, col)
    formula = _entry(sheet.formulas, row, col)
    kind = _entry(sheet.value_kinds, row, col)
    if value is None and formula is None and kind is None:
        return EMPTY_CELL

    # Validation already happened on the SheetModel; skip it in the hot loop.
    return CellSnapshot.model_construct(
        value=value,
        formula=formula,
        value_kind=kind if kind is not None else ValueKind.EMPTY,
    )


def resolve_cell(sheet: SheetModel, abs_row: int, abs_col: int) -> CellSnapshot:
    """
    Cell at an absolute sheet coordinate.

    Args:
        sheet: The sheet to read from.
        abs_row: Absolute 0-based row.
        abs_col: Absolute 0-based column.

    Returns:
        The stored cell, or EMPTY_CELL outside the sheet's populated block.
    """
    return local_cell(sheet, abs_row - sheet.row_offset, abs_col - sheet.column_offset)
