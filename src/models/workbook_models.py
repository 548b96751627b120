"""
Pydantic models for workbook snapshots.

A snapshot is a fully materialized, serializable capture of a workbook's
sheets, values, formulas and value kinds at one point in time. Snapshots
come from different extraction paths (file import, a stored snapshot, a
live spreadsheet session serialized by a client), so validation here is
deliberately lenient: missing offsets default to 0, negative offsets
clamp to 0, counts default to the array dimensions, and formula entries
that are not "="-prefixed strings are dropped.

Field names are snake_case; the camelCase names used by client-side
extractors (rowCount, colOffset, valueTypes, ...) are accepted as input
aliases.

All models are frozen: a snapshot is never mutated after construction.
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator


class ValueKind(str, Enum):
    """
    Discriminant describing what kind of scalar a cell holds.

    Mirrors the value types reported by spreadsheet hosts. Unrecognized
    kinds parse as UNKNOWN rather than failing validation.
    """

    EMPTY = "Empty"
    STRING = "String"
    DOUBLE = "Double"
    BOOLEAN = "Boolean"
    ERROR = "Error"
    UNKNOWN = "Unknown"

    @classmethod
    def _missing_(cls, value: object) -> "ValueKind":
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return cls.UNKNOWN


class CellSnapshot(BaseModel):
    """
    A single cell as captured in a snapshot.

    Attributes:
        value: The cached scalar value (None for an empty cell).
        formula: Formula text including the leading "=", or None.
        value_kind: Discriminant for the value.
    """

    value: Any = Field(
        default=None,
        description="Cached cell value (string, number, boolean or None)",
    )
    formula: str | None = Field(
        default=None,
        description="Formula text including the leading '=' marker",
    )
    value_kind: ValueKind = Field(
        default=ValueKind.EMPTY,
        validation_alias=AliasChoices("value_kind", "valueKind", "t"),
        description="Kind of scalar held by the cell",
    )

    model_config = {"frozen": True}

    @property
    def has_formula(self) -> bool:
        """Whether the cell carries formula text."""
        return isinstance(self.formula, str) and self.formula.lstrip().startswith("=")


EMPTY_CELL = CellSnapshot(value=None, formula=None, value_kind=ValueKind.EMPTY)


def _is_formula_text(entry: Any) -> bool:
    return isinstance(entry, str) and entry.strip().startswith("=")


class SheetModel(BaseModel):
    """
    Dense capture of one sheet's populated region.

    The three 2-D arrays are row-major and nominally sized
    row_count x column_count. row_offset/column_offset locate the
    top-left cell of the block in absolute, 0-based sheet coordinates
    (A1 is 0, 0), so a sheet whose data starts at C5 has offsets (4, 2).

    Attributes:
        name: Sheet name, unique within a workbook.
        row_count: Number of rows in the populated block.
        column_count: Number of columns in the populated block.
        row_offset: Absolute row of the block's first row.
        column_offset: Absolute column of the block's first column.
        values: Cached cell values.
        formulas: Formula text per cell, None where the cell has none.
        value_kinds: ValueKind per cell.
    """

    name: str = Field(description="Sheet name")
    row_count: int = Field(
        default=0,
        validation_alias=AliasChoices("row_count", "rowCount"),
        description="Number of rows in the populated block",
    )
    column_count: int = Field(
        default=0,
        validation_alias=AliasChoices("column_count", "columnCount", "colCount"),
        description="Number of columns in the populated block",
    )
    row_offset: int = Field(
        default=0,
        validation_alias=AliasChoices("row_offset", "rowOffset"),
        description="Absolute 0-based row of the block's top-left cell",
    )
    column_offset: int = Field(
        default=0,
        validation_alias=AliasChoices("column_offset", "columnOffset", "colOffset"),
        description="Absolute 0-based column of the block's top-left cell",
    )
    values: list[list[Any]] = Field(
        default_factory=list,
        description="Row-major cached values",
    )
    formulas: list[list[str | None]] = Field(
        default_factory=list,
        description="Row-major formula text ('=' prefixed) or None",
    )
    value_kinds: list[list[ValueKind]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("value_kinds", "valueKinds", "valueTypes"),
        description="Row-major value kinds",
    )

    model_config = {"frozen": True}

    @model_validator(mode="before")
    @classmethod
    def fill_missing_dimensions(cls, data: Any) -> Any:
        """Derive row/column counts from the values array when absent."""
        if not isinstance(data, dict):
            return data

        data = dict(data)
        values = data.get("values") or []
        has_rows = any(key in data for key in ("row_count", "rowCount"))
        has_cols = any(key in data for key in ("column_count", "columnCount", "colCount"))

        if not has_rows:
            data["row_count"] = len(values)
        if not has_cols:
            data["column_count"] = max((len(row or []) for row in values), default=0)
        return data

    @field_validator("row_count", "column_count", "row_offset", "column_offset", mode="before")
    @classmethod
    def clamp_non_negative(cls, v: Any) -> int:
        """Treat missing or negative dimensions and offsets as 0."""
        if v is None:
            return 0
        return max(0, int(v))

    @field_validator("values", mode="before")
    @classmethod
    def coerce_value_rows(cls, v: Any) -> list[list[Any]]:
        """Replace missing rows with empty lists."""
        if v is None:
            return []
        return [list(row) if row is not None else [] for row in v]

    @field_validator("formulas", mode="before")
    @classmethod
    def keep_formula_text_only(cls, v: Any) -> list[list[str | None]]:
        """
        Drop formula entries that are not '='-prefixed strings.

        Surrounding whitespace is stripped from the formula text that is kept.

        Spreadsheet hosts report a literal's own value in the formulas
        array for cells without a formula; those entries carry no
        formula and are stored as None.
        """
        if v is None:
            return []
        return [
            [entry.strip() if _is_formula_text(entry) else None for entry in (row or [])]
            for row in v
        ]

    @field_validator("value_kinds", mode="before")
    @classmethod
    def parse_value_kinds(cls, v: Any) -> list[list[ValueKind]]:
        """Parse kind labels leniently; unknown labels become UNKNOWN."""
        if v is None:
            return []
        return [
            [ValueKind(entry) if entry is not None else ValueKind.EMPTY for entry in (row or [])]
            for row in v
        ]

    @property
    def cell_count(self) -> int:
        """Number of cells in the populated block."""
        return self.row_count * self.column_count

    def truncate_rows(self, max_rows: int) -> "SheetModel":
        """
        Return a copy keeping only the first max_rows rows.

        Args:
            max_rows: Number of rows to keep (at least 0).

        Returns:
            A new SheetModel; this model is left unchanged.
        """
        max_rows = max(0, max_rows)
        if max_rows >= self.row_count:
            return self
        return self.model_copy(
            update={
                "row_count": max_rows,
                "values": self.values[:max_rows],
                "formulas": self.formulas[:max_rows],
                "value_kinds": self.value_kinds[:max_rows],
            }
        )

    def clip(self, row_end: int, col_end: int) -> "SheetModel":
        """
        Return a copy limited to cells above row_end and left of col_end.

        Both bounds are absolute and exclusive. A block lying wholly
        outside the window comes back empty, anchored at the window edge.
        """
        rows = max(0, min(self.row_count, row_end - self.row_offset))
        cols = max(0, min(self.column_count, col_end - self.column_offset))
        if rows == self.row_count and cols == self.column_count:
            return self
        if rows == 0 or cols == 0:
            return self.model_copy(
                update={
                    "row_count": 0,
                    "column_count": 0,
                    "row_offset": min(self.row_offset, row_end),
                    "column_offset": min(self.column_offset, col_end),
                    "values": [],
                    "formulas": [],
                    "value_kinds": [],
                }
            )
        return self.model_copy(
            update={
                "row_count": rows,
                "column_count": cols,
                "values": [row[:cols] for row in self.values[:rows]],
                "formulas": [row[:cols] for row in self.formulas[:rows]],
                "value_kinds": [row[:cols] for row in self.value_kinds[:rows]],
            }
        )


class WorkbookModel(BaseModel):
    """
    A snapshot of a whole workbook.

    Attributes:
        name: Display name of the workbook or snapshot.
        sheets: Sheets in workbook order; names are unique.
    """

    name: str = Field(
        default="Workbook",
        description="Display name of the workbook",
    )
    sheets: list[SheetModel] = Field(
        default_factory=list,
        description="Sheets in workbook order",
    )

    model_config = {"frozen": True}

    @field_validator("sheets")
    @classmethod
    def validate_unique_sheet_names(cls, v: list[SheetModel]) -> list[SheetModel]:
        """Sheet names are the pairing key, so they must be unique."""
        seen: set[str] = set()
        for sheet in v:
            if sheet.name in seen:
                raise ValueError(f"Duplicate sheet name: {sheet.name}")
            seen.add(sheet.name)
        return v

    @property
    def sheet_names(self) -> list[str]:
        """Sheet names in workbook order."""
        return [sheet.name for sheet in self.sheets]

    def get_sheet(self, name: str) -> SheetModel | None:
        """Look up a sheet by name, or None when absent."""
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        return None
