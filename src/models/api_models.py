"""
Pydantic models for service requests and responses.

These models are shared by the FastAPI and MCP interfaces. They wrap the
comparison core's values (Diff, SheetDiff, Rectangle) in transport-friendly
shapes: dense grids travel base64-encoded, and rectangles are keyed by
code label.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from src.models.diff_models import (
    DiffCounts,
    DifferenceCode,
    DiffSummary,
    Rectangle,
    SheetStatus,
)
from src.models.workbook_models import WorkbookModel


class ImportEngine(str, Enum):
    """
    Engine used to import a workbook file into a snapshot.

    openpyxl reads formulas and their cached results; calamine is
    faster and supports more formats but only sees values.
    """

    OPENPYXL = "openpyxl"
    CALAMINE = "calamine"


class SheetDiffPayload(BaseModel):
    """
    Transport form of one sheet's diff.

    Attributes:
        status: Sheet-level outcome (modified or unchanged).
        rows: Grid height.
        cols: Grid width.
        row_base: Absolute row of grid row 0.
        col_base: Absolute column of grid column 0.
        counts: Per-code cell counts.
        cells_base64: Base64 one-byte-per-cell grid (if requested).
        rectangles: Absolute rectangles keyed by code label (if requested).
        addresses: A1 addresses of those rectangles keyed by code label
            (if rectangles were requested).
    """

    status: SheetStatus = Field(description="Sheet-level outcome")
    rows: int = Field(ge=0, description="Grid height")
    cols: int = Field(ge=0, description="Grid width")
    row_base: int = Field(ge=0, description="Absolute row of grid row 0")
    col_base: int = Field(ge=0, description="Absolute column of grid column 0")
    counts: DiffCounts = Field(description="Per-code cell counts")
    cells_base64: str | None = Field(
        default=None,
        description="Base64 of the row-major one-byte-per-cell code grid",
    )
    rectangles: dict[str, list[Rectangle]] | None = Field(
        default=None,
        description="Absolute rectangles per code label",
    )
    addresses: dict[str, list[str]] | None = Field(
        default=None,
        description="A1 addresses per code label, every label present",
    )


class DiffResponse(BaseModel):
    """
    Response model for diff operations.

    Attributes:
        success: Whether the diff completed.
        current_name: Name of the current snapshot.
        baseline_name: Name of the baseline snapshot.
        sheet_status: Outcome for every sheet name seen on either side.
        summary: Aggregate totals over sheets present on both sides.
        sheets: Per-sheet diff payloads for sheets present on both sides.
        processing_time_ms: Time taken in milliseconds.
        message: Optional message (e.g., truncation warnings).
    """

    success: bool = Field(default=True, description="Whether the diff completed")
    current_name: str = Field(description="Name of the current snapshot")
    baseline_name: str = Field(description="Name of the baseline snapshot")
    sheet_status: dict[str, SheetStatus] = Field(
        default_factory=dict,
        description="Outcome for every sheet name",
    )
    summary: DiffSummary = Field(description="Aggregate totals")
    sheets: dict[str, SheetDiffPayload] = Field(
        default_factory=dict,
        description="Per-sheet diffs for sheets present on both sides",
    )
    processing_time_ms: float | None = Field(
        default=None,
        ge=0,
        description="Time taken to process the request in milliseconds",
    )
    message: str | None = Field(
        default=None,
        description="Optional message (e.g., truncation warnings)",
    )


class DiffOptions(BaseModel):
    """Output options shared by the diff requests."""

    include_cells: bool = Field(
        default=False,
        description="Include the base64 code grid for each sheet",
    )
    include_rectangles: bool = Field(
        default=False,
        description="Include absolute rectangles per code for each sheet",
    )


class DiffModelsRequest(DiffOptions):
    """Request to diff two snapshots supplied inline."""

    current: WorkbookModel = Field(description="Current snapshot")
    baseline: WorkbookModel = Field(description="Baseline snapshot")


class DiffFilesRequest(DiffOptions):
    """
    Request to diff two workbook files.

    Attributes:
        current_path: Path to the current workbook file.
        baseline_path: Path to the baseline workbook file.
        engine: Import engine; the configured default when None.
    """

    current_path: str = Field(description="Path to the current workbook file")
    baseline_path: str = Field(description="Path to the baseline workbook file")
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )


class SnapshotDiffRequest(DiffOptions):
    """Request to diff a workbook file against a stored snapshot."""

    current_path: str = Field(description="Path to the current workbook file")
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )


class RectanglesRequest(BaseModel):
    """
    Request for the rectangle decomposition of one sheet.

    Attributes:
        current_path: Path to the current workbook file.
        baseline_path: Path to the baseline workbook file.
        sheet_name: Sheet to decompose.
        code: Single code to decompose; all codes when None.
        absolute: Return absolute sheet coordinates instead of grid-local ones.
        engine: Import engine.
    """

    current_path: str = Field(description="Path to the current workbook file")
    baseline_path: str = Field(description="Path to the baseline workbook file")
    sheet_name: str = Field(description="Sheet to decompose")
    code: DifferenceCode | None = Field(
        default=None,
        description="Code to decompose (label or number); all codes when omitted",
    )
    absolute: bool = Field(
        default=True,
        description="Return absolute sheet coordinates",
    )
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )

    @field_validator("code", mode="before")
    @classmethod
    def parse_code(cls, v: Any) -> DifferenceCode | None:
        """Accept "added" / "formula_changed" labels as well as numbers."""
        if v is None:
            return None
        try:
            return DifferenceCode.from_label(v)
        except (KeyError, ValueError) as e:
            raise ValueError(f"Unknown difference code: {v}") from e


class RectanglesResponse(BaseModel):
    """
    Rectangle decomposition of one sheet.

    Attributes:
        sheet_name: The decomposed sheet.
        row_base: Absolute row of grid row 0.
        col_base: Absolute column of grid column 0.
        absolute: Whether rectangles are in absolute coordinates.
        rectangles: Rectangles per code label.
        addresses: Absolute A1 addresses per code label.
        rectangle_count: Total number of rectangles.
    """

    sheet_name: str = Field(description="The decomposed sheet")
    row_base: int = Field(ge=0, description="Absolute row of grid row 0")
    col_base: int = Field(ge=0, description="Absolute column of grid column 0")
    absolute: bool = Field(description="Whether rectangles are absolute")
    rectangles: dict[str, list[Rectangle]] = Field(
        default_factory=dict,
        description="Rectangles per code label",
    )
    addresses: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Absolute A1 addresses per code label",
    )
    rectangle_count: int = Field(ge=0, description="Total number of rectangles")


class CellDetailRequest(BaseModel):
    """Request for the old/new detail of one cell."""

    current_path: str = Field(description="Path to the current workbook file")
    baseline_path: str = Field(description="Path to the baseline workbook file")
    sheet_name: str = Field(description="Sheet containing the cell")
    cell: str = Field(description="Cell reference in A1 notation (e.g., 'B2')")
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )


class CellChangeDetail(BaseModel):
    """
    Old/new display texts for one cell.

    Formula text is shown in preference to the cached value, except for
    VALUE_CHANGED cells where the formula is the same on both sides and
    the values are what moved.

    Attributes:
        sheet_name: Sheet containing the cell.
        cell: A1 reference of the cell.
        row: Absolute 0-based row.
        col: Absolute 0-based column.
        code: Difference code of the cell.
        label: Code label.
        new_text: Display text in the current snapshot.
        old_text: Display text in the baseline snapshot.
    """

    sheet_name: str
    cell: str
    row: int = Field(ge=0)
    col: int = Field(ge=0)
    code: DifferenceCode
    label: str
    new_text: str
    old_text: str


class ExportReportRequest(BaseModel):
    """
    Request to write a highlighted diff report workbook.

    Attributes:
        current_path: Path to the current workbook file.
        baseline_path: Path to the baseline workbook file.
        output_path: Where the report will be written.
        overwrite: Whether to overwrite an existing report.
        engine: Import engine.
    """

    current_path: str = Field(description="Path to the current workbook file")
    baseline_path: str = Field(description="Path to the baseline workbook file")
    output_path: str = Field(description="Where the report will be written")
    overwrite: bool = Field(
        default=False,
        description="Whether to overwrite an existing file",
    )
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )


class ExportReportResponse(BaseModel):
    """Response model for report exports."""

    success: bool = Field(default=True, description="Whether the report was written")
    file_path: str = Field(description="Path to the written report")
    sheets_written: int = Field(ge=0, description="Number of worksheets written")
    overlay_count: int = Field(ge=0, description="Number of overlay rectangles applied")
    file_size_bytes: int | None = Field(
        default=None,
        ge=0,
        description="Size of the written file in bytes",
    )
    processing_time_ms: float | None = Field(
        default=None,
        ge=0,
        description="Time taken to process the request in milliseconds",
    )


class SaveSnapshotRequest(BaseModel):
    """
    Request to import a workbook file and store it as a snapshot.

    Attributes:
        file_path: Path to the workbook file.
        name: Display name; derived from the file name when None.
        workbook_id: Groups snapshots of one workbook for listing and pruning.
        engine: Import engine.
    """

    file_path: str = Field(description="Path to the workbook file")
    name: str | None = Field(default=None, description="Snapshot display name")
    workbook_id: str | None = Field(
        default=None,
        description="Identifier grouping snapshots of the same workbook",
    )
    engine: ImportEngine | None = Field(
        default=None,
        description="Import engine (openpyxl or calamine)",
    )


class SnapshotRecord(BaseModel):
    """
    Metadata of a stored snapshot.

    Attributes:
        id: Snapshot id.
        name: Display name.
        ts: Creation time (UTC).
        sheet_count: Number of sheets in the snapshot.
        workbook_id: Workbook grouping id, if any.
    """

    id: str = Field(description="Snapshot id")
    name: str = Field(description="Display name")
    ts: datetime = Field(description="Creation time (UTC)")
    sheet_count: int = Field(ge=0, description="Number of sheets")
    workbook_id: str | None = Field(default=None, description="Workbook grouping id")


class StoredSnapshot(BaseModel):
    """A snapshot record together with its workbook model."""

    record: SnapshotRecord
    model: WorkbookModel


class DiffErrorResponse(BaseModel):
    """
    Standard error response model for the API.

    Attributes:
        success: Always False for error responses.
        error_code: Machine-readable error code.
        message: Human-readable error description.
        details: Additional error context.
    """

    success: bool = Field(
        default=False,
        description="Always False for error responses",
    )
    error_code: str = Field(
        description="Machine-readable error code",
    )
    message: str = Field(
        description="Human-readable error description",
    )
    details: dict | None = Field(
        default=None,
        description="Additional error context",
    )
