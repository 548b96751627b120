"""
Pydantic models for diff results.

These are the values produced by the comparison core: the per-cell
difference codes, the dense per-sheet difference grid with its counts,
the whole-workbook Diff, and the rectangles used by overlay renderers.
"""

import base64
from enum import Enum, IntEnum

from pydantic import BaseModel, Field, model_validator


class DifferenceCode(IntEnum):
    """
    Classification of a single cell pair.

    The numeric order only matters for display priority, never for
    comparison.
    """

    NONE = 0
    ADDED = 1
    REMOVED = 2
    VALUE_CHANGED = 3
    FORMULA_CHANGED = 4

    @property
    def label(self) -> str:
        """Lower-case name used as a key in API payloads."""
        return self.name.lower()

    @classmethod
    def from_label(cls, label: "str | int | DifferenceCode") -> "DifferenceCode":
        """Parse a code from its label ("added") or numeric value."""
        if isinstance(label, int):
            return cls(label)
        text = str(label).strip()
        if text.isdigit():
            return cls(int(text))
        return cls[text.upper()]


class SheetStatus(str, Enum):
    """Sheet-level outcome of a comparison."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


class DiffCounts(BaseModel):
    """
    Per-code cell counts for one sheet.

    Attributes:
        added: Cells present only in the current snapshot.
        removed: Cells present only in the baseline snapshot.
        value_changed: Cells whose shared formula computed a new result.
        formula_changed: Cells whose formula or literal was edited.
        changed: Sum of the four counts above.
    """

    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    value_changed: int = Field(default=0, ge=0)
    formula_changed: int = Field(default=0, ge=0)
    changed: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def from_cells(cls, cells: "list[int] | bytes | bytearray") -> "DiffCounts":
        """Count codes in a dense grid."""
        tally = [0] * len(DifferenceCode)
        for code in cells:
            tally[code] += 1
        return cls.from_tally(tally)

    @classmethod
    def from_tally(cls, tally: list[int]) -> "DiffCounts":
        """Build counts from a list indexed by DifferenceCode."""
        added = tally[DifferenceCode.ADDED]
        removed = tally[DifferenceCode.REMOVED]
        value_changed = tally[DifferenceCode.VALUE_CHANGED]
        formula_changed = tally[DifferenceCode.FORMULA_CHANGED]
        return cls(
            added=added,
            removed=removed,
            value_changed=value_changed,
            formula_changed=formula_changed,
            changed=added + removed + value_changed + formula_changed,
        )

    def for_code(self, code: DifferenceCode) -> int:
        """Count for a single code (NONE has no count and returns 0)."""
        return {
            DifferenceCode.ADDED: self.added,
            DifferenceCode.REMOVED: self.removed,
            DifferenceCode.VALUE_CHANGED: self.value_changed,
            DifferenceCode.FORMULA_CHANGED: self.formula_changed,
        }.get(code, 0)


class Rectangle(BaseModel):
    """
    Inclusive axis-aligned block of cells.

    Coordinates are local to a SheetDiff grid as produced by the
    decomposer; translate() moves them into absolute sheet coordinates.
    """

    row_start: int = Field(ge=0)
    col_start: int = Field(ge=0)
    row_end: int = Field(ge=0)
    col_end: int = Field(ge=0)

    model_config = {"frozen": True}

    @property
    def height(self) -> int:
        return self.row_end - self.row_start + 1

    @property
    def width(self) -> int:
        return self.col_end - self.col_start + 1

    @property
    def cell_count(self) -> int:
        return self.height * self.width

    def contains(self, row: int, col: int) -> bool:
        """Whether (row, col) lies inside the rectangle."""
        return self.row_start <= row <= self.row_end and self.col_start <= col <= self.col_end

    def translate(self, row_offset: int, col_offset: int) -> "Rectangle":
        """Return the rectangle shifted by the given offsets."""
        return Rectangle(
            row_start=self.row_start + row_offset,
            col_start=self.col_start + col_offset,
            row_end=self.row_end + row_offset,
            col_end=self.col_end + col_offset,
        )


class SheetDiff(BaseModel):
    """
    Dense difference grid for one sheet present on both sides.

    cells is row-major with rows * cols entries, each a DifferenceCode
    value. row_base/col_base anchor local index (0, 0) at an absolute
    sheet coordinate, mirroring SheetModel offsets.
    """

    rows: int = Field(ge=0)
    cols: int = Field(ge=0)
    row_base: int = Field(default=0, ge=0)
    col_base: int = Field(default=0, ge=0)
    cells: list[int] = Field(default_factory=list)
    counts: DiffCounts = Field(default_factory=DiffCounts)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_grid_size(self) -> "SheetDiff":
        """The dense grid must hold exactly rows * cols codes."""
        if len(self.cells) != self.rows * self.cols:
            raise ValueError(
                f"cells has {len(self.cells)} entries, expected {self.rows * self.cols}"
            )
        return self

    def code_at(self, row: int, col: int) -> DifferenceCode:
        """
        Code stored at a local coordinate.

        Coordinates outside the grid are unchanged by definition and
        return NONE.
        """
        if 0 <= row < self.rows and 0 <= col < self.cols:
            return DifferenceCode(self.cells[row * self.cols + col])
        return DifferenceCode.NONE

    def code_at_absolute(self, row: int, col: int) -> DifferenceCode:
        """Code stored at an absolute sheet coordinate."""
        return self.code_at(row - self.row_base, col - self.col_base)

    def encode_cells(self) -> str:
        """Base64 of the one-byte-per-cell grid, for compact caching."""
        return base64.b64encode(bytes(self.cells)).decode("ascii")

    @classmethod
    def from_encoded(
        cls,
        rows: int,
        cols: int,
        encoded: str,
        row_base: int = 0,
        col_base: int = 0,
    ) -> "SheetDiff":
        """
        Rebuild a SheetDiff from encode_cells() output.

        Counts are recomputed from the decoded grid.
        """
        cells = list(base64.b64decode(encoded))
        return cls(
            rows=rows,
            cols=cols,
            row_base=row_base,
            col_base=col_base,
            cells=cells,
            counts=DiffCounts.from_cells(cells),
        )


class DiffSummary(BaseModel):
    """
    Aggregate totals for a whole comparison.

    Cell totals cover sheets present on both sides only; sheets that
    were added or removed wholesale are counted in added_sheets and
    removed_sheets instead.
    """

    added: int = Field(default=0, ge=0)
    removed: int = Field(default=0, ge=0)
    value_changed: int = Field(default=0, ge=0)
    formula_changed: int = Field(default=0, ge=0)
    changed: int = Field(default=0, ge=0)
    compared_sheets: int = Field(default=0, ge=0)
    changed_sheets: int = Field(default=0, ge=0)
    added_sheets: int = Field(default=0, ge=0)
    removed_sheets: int = Field(default=0, ge=0)

    model_config = {"frozen": True}


class Diff(BaseModel):
    """
    Result of comparing two workbook snapshots.

    Attributes:
        by_sheet: Difference grid for every sheet present on both sides.
        sheet_status: Outcome for every sheet name seen on either side.
        summary: Aggregate totals.
    """

    by_sheet: dict[str, SheetDiff] = Field(default_factory=dict)
    sheet_status: dict[str, SheetStatus] = Field(default_factory=dict)
    summary: DiffSummary = Field(default_factory=DiffSummary)

    model_config = {"frozen": True}

    @property
    def has_changes(self) -> bool:
        """Whether any sheet differs in any way."""
        return any(status != SheetStatus.UNCHANGED for status in self.sheet_status.values())
