"""
FastAPI application for the workbook diff service.

This module provides the REST API endpoints for comparing workbooks. It
exposes file-based operations (for workbooks on the server), inline
snapshot comparison, file uploads, and the snapshot store.

API Endpoints:
    - GET /health: Health check
    - POST /diff/models: Diff two inline snapshots
    - POST /diff/files: Diff two workbook files
    - POST /diff/upload: Upload and diff two workbook files
    - POST /diff/rectangles: Rectangle decomposition of one sheet
    - POST /diff/cell: Old/new detail of one cell
    - POST /diff/export: Write a highlighted diff report
    - POST /snapshots: Import a workbook file as a stored snapshot
    - GET /snapshots: List stored snapshots
    - GET /snapshots/{snapshot_id}: Get a stored snapshot
    - DELETE /snapshots/{snapshot_id}: Delete a stored snapshot
    - POST /snapshots/{snapshot_id}/diff: Diff a workbook file against a snapshot
    - POST /snapshots/{snapshot_id}/archive: Write a snapshot out as .xlsx

Example:
    To run the server:
        uvicorn src.main:app --reload

    Or programmatically:
        from src.main import run_server
        run_server()
"""

import logging
import os
import tempfile
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any

import uvicorn
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from src import __version__
from src.config import configure_logging, get_settings
from src.exceptions.diff_exceptions import WorkbookDiffError
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
    SnapshotDiffRequest,
    SnapshotRecord,
    StoredSnapshot,
)
from src.services.diff_service import WorkbookDiffService

logger = logging.getLogger(__name__)

diff_service: WorkbookDiffService | None = None

UPLOAD_EXTENSIONS = (".xlsx", ".xls", ".xlsb", ".xlsm", ".ods")

STATUS_CODE_MAP = {
    "FILE_NOT_FOUND": 404,
    "INVALID_FILE_FORMAT": 400,
    "SHEET_NOT_FOUND": 404,
    "INVALID_CELL_RANGE": 400,
    "READ_ERROR": 500,
    "WRITE_ERROR": 500,
    "PERMISSION_DENIED": 403,
    "SHEET_TOO_LARGE": 413,
    "SNAPSHOT_NOT_FOUND": 404,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Configures logging and initializes the diff service on startup (unless
    one was installed beforehand) and cleans up on shutdown.

    Args:
        app: The FastAPI application instance.
    """
    global diff_service
    settings = get_settings()
    configure_logging(settings.log_level_int)

    created = diff_service is None
    if created:
        diff_service = WorkbookDiffService(settings)
    logger.info("Workbook diff service started (snapshots in %s)", diff_service.settings.snapshot_dir)
    yield
    if created:
        diff_service = None


app = FastAPI(
    title="Workbook Diff Service",
    description="""
    Cell-level comparison of Excel workbooks, exposed over REST and MCP (Model Context Protocol).

    ## Features

    - **Classify every cell**: added, removed, value changed (same formula, new result) or formula changed
    - **Aligned grids**: sheets are compared over the union of their populated regions in absolute coordinates
    - **Rectangles**: changed cells are grouped into maximal vertical runs for overlay rendering
    - **Reports**: highlighted .xlsx reports with colored tabs and a summary sheet
    - **Snapshots**: store baselines and diff later workbook versions against them

    ## Architecture

    - **Core**: pure comparison functions over immutable snapshot models
    - **Adapters**: openpyxl (formulas + cached values) and python-calamine for import, XlsxWriter for reports
    - **Dual Protocol**: Same service exposed via REST and MCP
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_service() -> WorkbookDiffService:
    """
    Get the diff service instance.

    Returns:
        The global WorkbookDiffService instance.

    Raises:
        HTTPException: If the service is not initialized.
    """
    if diff_service is None:
        raise HTTPException(
            status_code=503,
            detail="Workbook diff service is not initialized",
        )
    return diff_service


def to_http_exception(error: WorkbookDiffError) -> HTTPException:
    """
    Convert a WorkbookDiffError to an HTTPException with a matching status.

    Args:
        error: The error to convert.

    Returns:
        HTTPException whose detail is the error's dictionary form.
    """
    status_code = STATUS_CODE_MAP.get(error.error_code, 500)
    if status_code >= 500:
        logger.error("%s: %s", error.error_code, error.message)
    return HTTPException(status_code=status_code, detail=error.to_dict())


@app.get(
    "/health",
    tags=["System"],
    summary="Health check",
    response_model=dict,
)
async def health_check() -> dict[str, Any]:
    """
    Check the health status of the service.

    Returns:
        Dictionary containing status and timestamp.
    """
    return {
        "status": "healthy",
        "service": "Workbook Diff Service",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post(
    "/diff/models",
    tags=["Diff"],
    summary="Diff two inline snapshots",
    response_model=DiffResponse,
    responses={
        413: {"model": DiffErrorResponse, "description": "Sheet too large"},
    },
)
async def diff_models(request: DiffModelsRequest) -> DiffResponse:
    """
    Compare two snapshots supplied in the request body.

    Snapshots may come from any extractor; camelCase field names
    (rowCount, colOffset, valueTypes, ...) are accepted.

    Args:
        request: DiffModelsRequest with both snapshots and output options.

    Returns:
        DiffResponse with sheet statuses, totals and per-sheet payloads.

    Raises:
        HTTPException: If a sheet exceeds the cell cap under the reject policy.
    """
    service = get_service()

    try:
        return service.diff_models(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.post(
    "/diff/files",
    tags=["Diff"],
    summary="Diff two workbook files",
    response_model=DiffResponse,
    responses={
        404: {"model": DiffErrorResponse, "description": "File not found"},
        400: {"model": DiffErrorResponse, "description": "Invalid file format"},
        413: {"model": DiffErrorResponse, "description": "Sheet too large"},
    },
)
async def diff_files(request: DiffFilesRequest) -> DiffResponse:
    """
    Compare two workbook files on the server.

    Args:
        request: DiffFilesRequest with both paths and output options.

    Returns:
        DiffResponse with sheet statuses, totals and per-sheet payloads.

    Raises:
        HTTPException: If a file is missing, unreadable or too large.
    """
    service = get_service()

    try:
        return service.diff_files(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


async def _save_upload(upload: UploadFile) -> str:
    """Write an upload to a temporary file and return its path."""
    suffix = os.path.splitext(upload.filename or "")[1]
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as temp_file:
        temp_file.write(await upload.read())
        return temp_file.name


def _check_upload(upload: UploadFile) -> None:
    if not upload.filename:
        raise HTTPException(
            status_code=400,
            detail={"error_code": "INVALID_FILE", "message": "No file provided"},
        )
    if not upload.filename.lower().endswith(UPLOAD_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail={
                "error_code": "INVALID_FILE_FORMAT",
                "message": f"Invalid file extension. Supported: {', '.join(UPLOAD_EXTENSIONS)}",
            },
        )


@app.post(
    "/diff/upload",
    tags=["Diff"],
    summary="Upload and diff two workbook files",
    response_model=DiffResponse,
    responses={
        400: {"model": DiffErrorResponse, "description": "Invalid file"},
        500: {"model": DiffErrorResponse, "description": "Processing error"},
    },
)
async def upload_and_diff(
    current: Annotated[UploadFile, File(description="Current workbook")],
    baseline: Annotated[UploadFile, File(description="Baseline workbook")],
    engine: Annotated[ImportEngine | None, Query(description="Import engine")] = None,
    include_cells: Annotated[bool, Query(description="Include base64 code grids")] = False,
    include_rectangles: Annotated[bool, Query(description="Include rectangles")] = False,
) -> DiffResponse:
    """
    Upload two workbooks and compare them.

    The files are temporarily saved, compared, and removed.

    Args:
        current: The current workbook upload.
        baseline: The baseline workbook upload.
        engine: Import engine.
        include_cells: Whether to include the base64 code grid per sheet.
        include_rectangles: Whether to include rectangles per sheet.

    Returns:
        DiffResponse named after the uploaded files.

    Raises:
        HTTPException: If an upload is invalid or processing fails.
    """
    _check_upload(current)
    _check_upload(baseline)

    service = get_service()
    temp_paths: list[str] = []

    try:
        current_path = await _save_upload(current)
        temp_paths.append(current_path)
        baseline_path = await _save_upload(baseline)
        temp_paths.append(baseline_path)

        response = service.diff_files(
            DiffFilesRequest(
                current_path=current_path,
                baseline_path=baseline_path,
                engine=engine,
                include_cells=include_cells,
                include_rectangles=include_rectangles,
            )
        )
        response.current_name = Path(current.filename).stem
        response.baseline_name = Path(baseline.filename).stem
        return response

    except WorkbookDiffError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail={"error_code": "PROCESSING_ERROR", "message": str(e)},
        ) from e
    finally:
        for temp_path in temp_paths:
            if os.path.exists(temp_path):
                try:
                    os.unlink(temp_path)
                except OSError:
                    logger.warning("Could not remove temporary upload %s", temp_path)


@app.post(
    "/diff/rectangles",
    tags=["Diff"],
    summary="Rectangle decomposition of one sheet",
    response_model=RectanglesResponse,
    responses={
        404: {"model": DiffErrorResponse, "description": "File or sheet not found"},
    },
)
async def get_rectangles(request: RectanglesRequest) -> RectanglesResponse:
    """
    Decompose one sheet's changed cells into rectangles.

    Each rectangle is a maximal run of identical column spans over
    consecutive rows; together they cover every cell of the code exactly
    once.

    Args:
        request: RectanglesRequest naming the files, sheet and code.

    Returns:
        RectanglesResponse with rectangles and A1 addresses per code.

    Raises:
        HTTPException: If the files or the sheet cannot be found.
    """
    service = get_service()

    try:
        return service.get_rectangles(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.post(
    "/diff/cell",
    tags=["Diff"],
    summary="Old/new detail of one cell",
    response_model=CellChangeDetail,
    responses={
        404: {"model": DiffErrorResponse, "description": "File or sheet not found"},
        400: {"model": DiffErrorResponse, "description": "Invalid cell reference"},
    },
)
async def explain_cell(request: CellDetailRequest) -> CellChangeDetail:
    """
    Describe how one cell changed between two workbook files.

    Args:
        request: CellDetailRequest naming the files, sheet and cell.

    Returns:
        CellChangeDetail with the code and old/new display texts.

    Raises:
        HTTPException: If the files or sheet are missing or the reference is invalid.
    """
    service = get_service()

    try:
        return service.explain_cell(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.post(
    "/diff/export",
    tags=["Diff"],
    summary="Write a highlighted diff report",
    response_model=ExportReportResponse,
    responses={
        403: {"model": DiffErrorResponse, "description": "Permission denied"},
        500: {"model": DiffErrorResponse, "description": "Write error"},
    },
)
async def export_report(request: ExportReportRequest) -> ExportReportResponse:
    """
    Write the current workbook with every change highlighted.

    Args:
        request: ExportReportRequest with both paths and the output path.

    Returns:
        ExportReportResponse with the written file's details.

    Raises:
        HTTPException: If reading or writing fails.
    """
    service = get_service()

    try:
        return service.export_report(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.post(
    "/snapshots",
    tags=["Snapshots"],
    summary="Store a workbook file as a snapshot",
    response_model=SnapshotRecord,
    status_code=201,
    responses={
        404: {"model": DiffErrorResponse, "description": "File not found"},
    },
)
async def save_snapshot(request: SaveSnapshotRequest) -> SnapshotRecord:
    """
    Import a workbook file and store it as a baseline snapshot.

    Args:
        request: SaveSnapshotRequest with the file, name and workbook id.

    Returns:
        The stored SnapshotRecord.

    Raises:
        HTTPException: If the file cannot be imported or stored.
    """
    service = get_service()

    try:
        return service.save_snapshot(request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.get(
    "/snapshots",
    tags=["Snapshots"],
    summary="List stored snapshots",
    response_model=list[SnapshotRecord],
)
async def list_snapshots(
    workbook_id: Annotated[str | None, Query(description="Only this workbook's snapshots")] = None,
) -> list[SnapshotRecord]:
    """
    List stored snapshots, newest first.

    Args:
        workbook_id: Optional workbook grouping id.

    Returns:
        Snapshot records.
    """
    service = get_service()

    try:
        return service.list_snapshots(workbook_id)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.get(
    "/snapshots/{snapshot_id}",
    tags=["Snapshots"],
    summary="Get a stored snapshot",
    response_model=StoredSnapshot,
    responses={
        404: {"model": DiffErrorResponse, "description": "Snapshot not found"},
    },
)
async def get_snapshot(snapshot_id: str) -> StoredSnapshot:
    """
    Load a stored snapshot with its workbook model.

    Args:
        snapshot_id: Snapshot id.

    Returns:
        The record and model.

    Raises:
        HTTPException: If the snapshot does not exist.
    """
    service = get_service()

    try:
        return service.get_snapshot(snapshot_id)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.delete(
    "/snapshots/{snapshot_id}",
    tags=["Snapshots"],
    summary="Delete a stored snapshot",
    responses={
        404: {"model": DiffErrorResponse, "description": "Snapshot not found"},
    },
)
async def delete_snapshot(snapshot_id: str) -> dict[str, Any]:
    """
    Delete a stored snapshot.

    Args:
        snapshot_id: Snapshot id.

    Returns:
        Dictionary confirming the deletion.

    Raises:
        HTTPException: If the snapshot does not exist.
    """
    service = get_service()

    try:
        service.delete_snapshot(snapshot_id)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e
    return {"success": True, "id": snapshot_id}


@app.post(
    "/snapshots/{snapshot_id}/diff",
    tags=["Snapshots"],
    summary="Diff a workbook file against a stored snapshot",
    response_model=DiffResponse,
    responses={
        404: {"model": DiffErrorResponse, "description": "Snapshot or file not found"},
    },
)
async def diff_against_snapshot(
    snapshot_id: str,
    request: SnapshotDiffRequest,
) -> DiffResponse:
    """
    Compare a workbook file with a stored baseline.

    Args:
        snapshot_id: Id of the baseline snapshot.
        request: SnapshotDiffRequest with the current file and output options.

    Returns:
        DiffResponse with sheet statuses, totals and per-sheet payloads.

    Raises:
        HTTPException: If the snapshot or file cannot be found.
    """
    service = get_service()

    try:
        return service.diff_against_snapshot(snapshot_id, request)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


@app.post(
    "/snapshots/{snapshot_id}/archive",
    tags=["Snapshots"],
    summary="Write a stored snapshot out as a workbook",
    responses={
        404: {"model": DiffErrorResponse, "description": "Snapshot not found"},
        500: {"model": DiffErrorResponse, "description": "Write error"},
    },
)
async def archive_snapshot(
    snapshot_id: str,
    output_dir: Annotated[str, Query(description="Directory for the archive file")],
    overwrite: Annotated[bool, Query(description="Overwrite an existing file")] = False,
) -> dict[str, Any]:
    """
    Write a stored snapshot as <name>_YYYYMMDD_HHMMSS.xlsx.

    Args:
        snapshot_id: Snapshot id.
        output_dir: Directory for the archive file.
        overwrite: Whether to overwrite an existing file.

    Returns:
        Dictionary with the written file's path, sheet and cell counts and size.

    Raises:
        HTTPException: If the snapshot does not exist or writing fails.
    """
    service = get_service()

    try:
        return service.archive_snapshot(snapshot_id, output_dir, overwrite=overwrite)
    except WorkbookDiffError as e:
        raise to_http_exception(e) from e


def run_server(
    host: str | None = None,
    port: int | None = None,
    reload: bool = False,
) -> None:
    """
    Run the FastAPI server.

    Args:
        host: Host to bind to. Defaults to the configured server_host.
        port: Port to listen on. Defaults to the configured server_port.
        reload: Whether to enable auto-reload. Defaults to False.

    Example:
        from src.main import run_server
        run_server(host="127.0.0.1", port=8080)
    """
    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=host or settings.server_host,
        port=port or settings.server_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run_server()
