"""
Data models for the workbook diff service.

Contains Pydantic models for snapshots, diff results, and request/response
validation and serialization.
"""

from src.models.api_models import (
    CellChangeDetail,
    CellDetailRequest,
    DiffErrorResponse,
    DiffFilesRequest,
    DiffModelsRequest,
    DiffResponse,
    ExportReportRequest,
    ExportReportResponse,
    ImportEngine,
    RectanglesRequest,
    RectanglesResponse,
    SaveSnapshotRequest,
    SheetDiffPayload,
    SnapshotDiffRequest,
    SnapshotRecord,
    StoredSnapshot,
)
from src.models.diff_models import (
    Diff,
    DiffCounts,
    DifferenceCode,
    DiffSummary,
    Rectangle,
    SheetDiff,
    SheetStatus,
)
from src.models.workbook_models import (
    EMPTY_CELL,
    CellSnapshot,
    SheetModel,
    ValueKind,
    WorkbookModel,
)

__all__ = [
    "ValueKind",
    "CellSnapshot",
    "EMPTY_CELL",
    "SheetModel",
    "WorkbookModel",
    "DifferenceCode",
    "SheetStatus",
    "DiffCounts",
    "SheetDiff",
    "DiffSummary",
    "Diff",
    "Rectangle",
    "ImportEngine",
    "SheetDiffPayload",
    "DiffResponse",
    "DiffModelsRequest",
    "DiffFilesRequest",
    "SnapshotDiffRequest",
    "RectanglesRequest",
    "RectanglesResponse",
    "CellDetailRequest",
    "CellChangeDetail",
    "ExportReportRequest",
    "ExportReportResponse",
    "SaveSnapshotRequest",
    "SnapshotRecord",
    "StoredSnapshot",
    "DiffErrorResponse",
]
