"""
Workbook diff service layer.

This module provides the WorkbookDiffService class which encapsulates all
diff operations and serves as the single entry point for both FastAPI and
MCP interfaces. It coordinates the import adapters, the comparison core,
the report writer and the snapshot store, and enforces the per-sheet cell
cap before any snapshot reaches the core.

Example:
    service = WorkbookDiffService()

    response = service.diff_files(DiffFilesRequest(
        current_path="/path/to/new.xlsx",
        baseline_path="/path/to/old.xlsx",
        include_rectangles=True,
    ))
    print(response.summary.changed)
"""

import logging
import time
from pathlib import Path
from typing import Any

from src.adapters.calamine_adapter import CalamineAdapter
from src.adapters.openpyxl_adapter import OpenpyxlAdapter
from src.adapters.xlsxwriter_adapter import XlsxWriterAdapter
from src.config import Settings, get_settings
from src.core.addressing import parse_a1_cell, rectangle_to_a1, to_a1
from src.core.aligner import compute_bounds, resolve_cell
from src.core.differ import diff_sheets, diff_workbooks
from src.core.overlay import address_groups
from src.core.rectangles import decompose_all, decompose_code, to_absolute
from src.exceptions.diff_exceptions import (
    ReadError,
    SheetNotFoundError,
    SheetTooLargeError,
    WorkbookDiffError,
)
from src.models.api_models import (
    CellChangeDetail,
    CellDetailRequest,
    DiffFilesRequest,
    DiffModelsRequest,
    DiffOptions,
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
from src.models.diff_models import Diff, DifferenceCode, Rectangle, SheetDiff
from src.models.workbook_models import CellSnapshot, SheetModel, WorkbookModel
from src.services.snapshot_store import SnapshotStore, build_archive_filename

logger = logging.getLogger(__name__)


def _value_text(cell: CellSnapshot) -> str:
    value = cell.value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    return str(value)


def _display_text(cell: CellSnapshot) -> str:
    """Formula text when the cell has one, otherwise the value."""
    if cell.has_formula:
        return cell.formula
    return _value_text(cell)


def explain_cell(
    current: WorkbookModel,
    baseline: WorkbookModel,
    diff: Diff,
    sheet_name: str,
    cell: str,
) -> CellChangeDetail:
    """
    Old/new display texts for one cell of a computed diff.

    Display rules per code:
        FORMULA_CHANGED: formula text (or value) on both sides
        VALUE_CHANGED:   the cached values on both sides
        ADDED:           new side only
        REMOVED:         old side only
        NONE:            the same text on both sides

    Args:
        current: The current snapshot.
        baseline: The baseline snapshot.
        diff: Result of diff_workbooks(current, baseline).
        sheet_name: Sheet containing the cell.
        cell: A1 reference, e.g. "B2" or "Sheet1!$B$2".

    Returns:
        CellChangeDetail for the cell.

    Raises:
        SheetNotFoundError: If the sheet has no per-cell diff.
        CellRangeError: If the reference cannot be parsed.
    """
    sheet_diff = diff.by_sheet.get(sheet_name)
    if sheet_diff is None:
        raise SheetNotFoundError(sheet_name=sheet_name, available_sheets=list(diff.by_sheet))

    row, col = parse_a1_cell(cell)
    code = sheet_diff.code_at_absolute(row, col)
    new_cell = resolve_cell(current.get_sheet(sheet_name), row, col)
    old_cell = resolve_cell(baseline.get_sheet(sheet_name), row, col)

    if code == DifferenceCode.VALUE_CHANGED:
        new_text, old_text = _value_text(new_cell), _value_text(old_cell)
    elif code == DifferenceCode.ADDED:
        new_text, old_text = _display_text(new_cell), ""
    elif code == DifferenceCode.REMOVED:
        new_text, old_text = "", _display_text(old_cell)
    else:
        new_text, old_text = _display_text(new_cell), _display_text(old_cell)

    return CellChangeDetail(
        sheet_name=sheet_name,
        cell=to_a1(row, col),
        row=row,
        col=col,
        code=code,
        label=code.label,
        new_text=new_text,
        old_text=old_text,
    )


class WorkbookDiffService:
    """
    Core service layer for workbook comparison.

    All methods are transport-agnostic and return Pydantic models for
    serialization.

    Attributes:
        settings: Active configuration.
        openpyxl_adapter: Import adapter that sees formulas.
        calamine_adapter: Fast values-only import adapter.
        report_adapter: XlsxWriter adapter for reports and archives.
        snapshot_store: Store for saved baselines.

    Example:
        service = WorkbookDiffService()
        record = service.save_snapshot(SaveSnapshotRequest(file_path="/path/to/book.xlsx"))
        response = service.diff_against_snapshot(
            record.id,
            SnapshotDiffRequest(current_path="/path/to/book.xlsx"),
        )
    """

    def __init__(
        self,
        settings: Settings | None = None,
        openpyxl_adapter: OpenpyxlAdapter | None = None,
        calamine_adapter: CalamineAdapter | None = None,
        report_adapter: XlsxWriterAdapter | None = None,
        snapshot_store: SnapshotStore | None = None,
    ) -> None:
        """
        Initialize the WorkbookDiffService.

        Args:
            settings: Configuration; the cached process settings when None.
            openpyxl_adapter: Optional OpenpyxlAdapter instance.
            calamine_adapter: Optional CalamineAdapter instance.
            report_adapter: Optional XlsxWriterAdapter instance.
            snapshot_store: Optional SnapshotStore; built from settings when None.
        """
        self.settings = settings or get_settings()
        self.openpyxl_adapter = openpyxl_adapter or OpenpyxlAdapter()
        self.calamine_adapter = calamine_adapter or CalamineAdapter()
        self.report_adapter = report_adapter or XlsxWriterAdapter()
        self.snapshot_store = snapshot_store or SnapshotStore(
            self.settings.snapshot_dir,
            max_per_workbook=self.settings.max_snapshots_per_workbook,
        )

    # =========================================================================
    # Import
    # =========================================================================

    def _adapter_for(
        self,
        file_path: str,
        engine: ImportEngine | None,
    ) -> OpenpyxlAdapter | CalamineAdapter:
        """
        Pick the import adapter for a file.

        openpyxl cannot read .xls/.xlsb/.ods, so those fall back to
        calamine even when openpyxl was asked for.
        """
        engine = engine or ImportEngine(self.settings.default_engine)
        if engine == ImportEngine.CALAMINE:
            return self.calamine_adapter

        suffix = Path(file_path).suffix.lower()
        if (
            suffix not in OpenpyxlAdapter.SUPPORTED_EXTENSIONS
            and suffix in CalamineAdapter.SUPPORTED_EXTENSIONS
        ):
            logger.info("openpyxl cannot read %s files, using calamine for %s", suffix, file_path)
            return self.calamine_adapter
        return self.openpyxl_adapter

    def apply_cell_cap(self, model: WorkbookModel) -> tuple[WorkbookModel, list[str]]:
        """
        Enforce the per-sheet cell cap on a snapshot.

        A sheet whose populated block holds more than max_cells_per_sheet
        cells keeps its first max_cells_per_sheet // column_count rows, and
        never fewer than one, under the "truncate" policy.

        Args:
            model: Snapshot to check.

        Returns:
            (capped snapshot, names of truncated sheets).

        Raises:
            SheetTooLargeError: If a sheet is over the cap and the policy is "reject".
        """
        max_cells = self.settings.max_cells_per_sheet
        if all(sheet.cell_count <= max_cells for sheet in model.sheets):
            return model, []

        sheets = []
        truncated: list[str] = []
        for sheet in model.sheets:
            if sheet.cell_count <= max_cells:
                sheets.append(sheet)
                continue

            if self.settings.oversize_policy == "reject":
                raise SheetTooLargeError(
                    sheet_name=sheet.name,
                    cell_count=sheet.cell_count,
                    max_cells=max_cells,
                )

            max_rows = max(1, max_cells // sheet.column_count)
            logger.warning(
                "Sheet %r has %d cells (limit %d); keeping the first %d of %d rows",
                sheet.name,
                sheet.cell_count,
                max_cells,
                max_rows,
                sheet.row_count,
            )
            sheets.append(sheet.truncate_rows(max_rows))
            truncated.append(sheet.name)

        return model.model_copy(update={"sheets": sheets}), truncated

    def cap_sheet_pair(
        self,
        current_sheet: SheetModel,
        baseline_sheet: SheetModel,
    ) -> tuple[SheetModel, SheetModel, bool]:
        """
        Enforce the cell cap on the grid a pair of sheets will be compared on.

        The grid spans both blocks, so two small blocks far apart can
        still exceed max_cells_per_sheet. Under "truncate" both sides are
        clipped to a window anchored at the grid's top-left cell: up to
        max_cells_per_sheet columns and as many rows as then fit, never
        fewer than one.

        Returns:
            (current sheet, baseline sheet, whether they were clipped).

        Raises:
            SheetTooLargeError: If the grid is over the cap and the policy is "reject".
        """
        max_cells = self.settings.max_cells_per_sheet
        bounds = compute_bounds(current_sheet, baseline_sheet)
        grid_cells = bounds.rows * bounds.cols
        if grid_cells <= max_cells:
            return current_sheet, baseline_sheet, False

        if self.settings.oversize_policy == "reject":
            raise SheetTooLargeError(
                sheet_name=current_sheet.name,
                cell_count=grid_cells,
                max_cells=max_cells,
            )

        max_cols = min(bounds.cols, max_cells)
        max_rows = min(bounds.rows, max(1, max_cells // max_cols))
        logger.warning(
            "Sheet %r compares on a %dx%d grid (limit %d cells); keeping %dx%d from %s",
            current_sheet.name,
            bounds.rows,
            bounds.cols,
            max_cells,
            max_rows,
            max_cols,
            to_a1(bounds.row_base, bounds.col_base),
        )
        row_end = bounds.row_base + max_rows
        col_end = bounds.col_base + max_cols
        return (
            current_sheet.clip(row_end, col_end),
            baseline_sheet.clip(row_end, col_end),
            True,
        )

    def apply_pair_cap(
        self,
        current: WorkbookModel,
        baseline: WorkbookModel,
    ) -> tuple[WorkbookModel, WorkbookModel, list[str]]:
        """
        Run cap_sheet_pair over every sheet name present in both snapshots.

        Returns:
            (current, baseline, names of clipped sheets).
        """
        current_sheets = {sheet.name: sheet for sheet in current.sheets}
        baseline_sheets = {sheet.name: sheet for sheet in baseline.sheets}
        truncated: list[str] = []

        for name, current_sheet in current_sheets.items():
            baseline_sheet = baseline_sheets.get(name)
            if baseline_sheet is None:
                continue
            new_sheet, old_sheet, clipped = self.cap_sheet_pair(current_sheet, baseline_sheet)
            if clipped:
                current_sheets[name] = new_sheet
                baseline_sheets[name] = old_sheet
                truncated.append(name)

        if not truncated:
            return current, baseline, []
        return (
            current.model_copy(update={"sheets": list(current_sheets.values())}),
            baseline.model_copy(update={"sheets": list(baseline_sheets.values())}),
            truncated,
        )

    def _compare(
        self,
        current: WorkbookModel,
        baseline: WorkbookModel,
    ) -> tuple[WorkbookModel, WorkbookModel, Diff, list[str]]:
        current, baseline, truncated = self.apply_pair_cap(current, baseline)
        return current, baseline, diff_workbooks(current, baseline), truncated

    def _load(
        self,
        file_path: str,
        engine: ImportEngine | None = None,
    ) -> tuple[WorkbookModel, list[str]]:
        adapter = self._adapter_for(file_path, engine)
        try:
            model = adapter.load_workbook_model(
                file_path,
                include_hidden=self.settings.include_hidden_sheets,
            )
        except WorkbookDiffError:
            raise
        except Exception as e:
            raise ReadError(
                file_path=file_path,
                operation="import",
                reason=str(e),
            ) from e
        return self.apply_cell_cap(model)

    def load_workbook(self, file_path: str, engine: ImportEngine | None = None) -> WorkbookModel:
        """
        Import a workbook file as a capped snapshot.

        Args:
            file_path: Path to the workbook file.
            engine: Import engine; the configured default when None.

        Returns:
            The snapshot, with oversized sheets truncated per policy.

        Raises:
            WorkbookFileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file format is not supported.
            SheetTooLargeError: If a sheet is over the cap under "reject".
        """
        model, _ = self._load(file_path, engine)
        return model

    # =========================================================================
    # Diff
    # =========================================================================

    def _absolute_rectangles(self, sheet_diff: SheetDiff) -> dict[str, list[Rectangle]]:
        return {
            code.label: to_absolute(sheet_diff, rectangles)
            for code, rectangles in decompose_all(sheet_diff).items()
        }

    def _build_response(
        self,
        current: WorkbookModel,
        baseline: WorkbookModel,
        diff: Diff,
        options: DiffOptions,
        start_time: float,
        truncated: list[str],
    ) -> DiffResponse:
        sheets = {
            name: SheetDiffPayload(
                status=diff.sheet_status[name],
                rows=sheet_diff.rows,
                cols=sheet_diff.cols,
                row_base=sheet_diff.row_base,
                col_base=sheet_diff.col_base,
                counts=sheet_diff.counts,
                cells_base64=sheet_diff.encode_cells() if options.include_cells else None,
                rectangles=(
                    self._absolute_rectangles(sheet_diff) if options.include_rectangles else None
                ),
                addresses=address_groups(sheet_diff) if options.include_rectangles else None,
            )
            for name, sheet_diff in diff.by_sheet.items()
        }

        message = None
        if truncated:
            message = (
                f"Sheets over {self.settings.max_cells_per_sheet} cells were truncated: "
                + ", ".join(sorted(set(truncated)))
            )

        processing_time = (time.time() - start_time) * 1000

        return DiffResponse(
            success=True,
            current_name=current.name,
            baseline_name=baseline.name,
            sheet_status=diff.sheet_status,
            summary=diff.summary,
            sheets=sheets,
            processing_time_ms=round(processing_time, 2),
            message=message,
        )

    def diff_models(self, request: DiffModelsRequest) -> DiffResponse:
        """
        Diff two snapshots supplied inline.

        Args:
            request: DiffModelsRequest with both snapshots and output options.

        Returns:
            DiffResponse with statuses, totals and per-sheet payloads.

        Raises:
            SheetTooLargeError: If a sheet is over the cap under "reject".
        """
        start_time = time.time()

        current, truncated_current = self.apply_cell_cap(request.current)
        baseline, truncated_baseline = self.apply_cell_cap(request.baseline)
        current, baseline, diff, truncated_pair = self._compare(current, baseline)

        return self._build_response(
            current,
            baseline,
            diff,
            request,
            start_time,
            truncated_current + truncated_baseline + truncated_pair,
        )

    def diff_files(self, request: DiffFilesRequest) -> DiffResponse:
        """
        Import and diff two workbook files.

        Args:
            request: DiffFilesRequest with both paths and output options.

        Returns:
            DiffResponse with statuses, totals and per-sheet payloads.

        Raises:
            WorkbookFileNotFoundError: If a file does not exist.
            InvalidFileFormatError: If a file format is not supported.
            SheetTooLargeError: If a sheet is over the cap under "reject".
        """
        start_time = time.time()

        current, truncated_current = self._load(request.current_path, request.engine)
        baseline, truncated_baseline = self._load(request.baseline_path, request.engine)
        current, baseline, diff, truncated_pair = self._compare(current, baseline)

        return self._build_response(
            current,
            baseline,
            diff,
            request,
            start_time,
            truncated_current + truncated_baseline + truncated_pair,
        )

    def diff_against_snapshot(
        self,
        snapshot_id: str,
        request: SnapshotDiffRequest,
    ) -> DiffResponse:
        """
        Diff a workbook file against a stored snapshot.

        Args:
            snapshot_id: Id of the baseline snapshot.
            request: SnapshotDiffRequest with the current file and output options.

        Returns:
            DiffResponse with statuses, totals and per-sheet payloads.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            WorkbookFileNotFoundError: If the current file does not exist.
        """
        start_time = time.time()

        stored = self.snapshot_store.get_snapshot(snapshot_id)
        current, truncated_current = self._load(request.current_path, request.engine)
        baseline, truncated_baseline = self.apply_cell_cap(stored.model)
        current, baseline, diff, truncated_pair = self._compare(current, baseline)

        return self._build_response(
            current,
            baseline,
            diff,
            request,
            start_time,
            truncated_current + truncated_baseline + truncated_pair,
        )

    # =========================================================================
    # Rectangles and cell detail
    # =========================================================================

    def sheet_rectangles(
        self,
        sheet_name: str,
        sheet_diff: SheetDiff,
        code: DifferenceCode | None = None,
        absolute: bool = True,
    ) -> RectanglesResponse:
        """
        Rectangle decomposition of one sheet's grid.

        Args:
            sheet_name: Name of the sheet.
            sheet_diff: The sheet's grid.
            code: Single code to decompose; every present change code when None.
            absolute: Return absolute coordinates instead of grid-local ones.

        Returns:
            RectanglesResponse with rectangles and A1 addresses per code label.
        """
        if code is None:
            local = decompose_all(sheet_diff)
        else:
            local = {code: decompose_code(sheet_diff, code)}

        rectangles: dict[str, list[Rectangle]] = {}
        addresses: dict[str, list[str]] = {}
        for found_code, found in local.items():
            shifted = to_absolute(sheet_diff, found)
            rectangles[found_code.label] = shifted if absolute else found
            addresses[found_code.label] = [rectangle_to_a1(rect) for rect in shifted]

        return RectanglesResponse(
            sheet_name=sheet_name,
            row_base=sheet_diff.row_base,
            col_base=sheet_diff.col_base,
            absolute=absolute,
            rectangles=rectangles,
            addresses=addresses,
            rectangle_count=sum(len(found) for found in rectangles.values()),
        )

    def get_rectangles(self, request: RectanglesRequest) -> RectanglesResponse:
        """
        Import two files and decompose one sheet's diff into rectangles.

        Only the requested sheet is compared.

        Args:
            request: RectanglesRequest naming the files, sheet and code.

        Returns:
            RectanglesResponse for the sheet.

        Raises:
            SheetNotFoundError: If the sheet is not present in both files.
        """
        current = self.load_workbook(request.current_path, request.engine)
        baseline = self.load_workbook(request.baseline_path, request.engine)

        current_sheet = current.get_sheet(request.sheet_name)
        baseline_sheet = baseline.get_sheet(request.sheet_name)
        if current_sheet is None or baseline_sheet is None:
            shared = [name for name in current.sheet_names if baseline.get_sheet(name)]
            raise SheetNotFoundError(sheet_name=request.sheet_name, available_sheets=shared)

        current_sheet, baseline_sheet, _ = self.cap_sheet_pair(current_sheet, baseline_sheet)
        sheet_diff = diff_sheets(current_sheet, baseline_sheet)
        return self.sheet_rectangles(
            request.sheet_name,
            sheet_diff,
            code=request.code,
            absolute=request.absolute,
        )

    def explain_cell(self, request: CellDetailRequest) -> CellChangeDetail:
        """
        Import two files and describe one cell's change.

        Args:
            request: CellDetailRequest naming the files, sheet and cell.

        Returns:
            CellChangeDetail with the code and old/new display texts.

        Raises:
            SheetNotFoundError: If the sheet is not present in both files.
            CellRangeError: If the cell reference is invalid.
        """
        current = self.load_workbook(request.current_path, request.engine)
        baseline = self.load_workbook(request.baseline_path, request.engine)
        current, baseline, diff, _ = self._compare(current, baseline)
        return explain_cell(current, baseline, diff, request.sheet_name, request.cell)

    # =========================================================================
    # Reports
    # =========================================================================

    def export_report(self, request: ExportReportRequest) -> ExportReportResponse:
        """
        Write a highlighted diff report for two workbook files.

        Args:
            request: ExportReportRequest with both paths and the output path.

        Returns:
            ExportReportResponse with the written file's details.

        Raises:
            WriteError: If writing fails.
            WorkbookPermissionError: If the file cannot be written due to permissions.
        """
        start_time = time.time()

        current = self.load_workbook(request.current_path, request.engine)
        baseline = self.load_workbook(request.baseline_path, request.engine)
        current, baseline, diff, _ = self._compare(current, baseline)

        result = self.report_adapter.write_diff_report(
            current,
            diff,
            request.output_path,
            baseline=baseline,
            overwrite=request.overwrite,
        )

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            "Wrote diff report %s with %d overlay(s)",
            result["file_path"],
            result["overlay_count"],
        )

        return ExportReportResponse(
            success=True,
            file_path=result["file_path"],
            sheets_written=result["sheets_written"],
            overlay_count=result["overlay_count"],
            file_size_bytes=result["file_size_bytes"],
            processing_time_ms=round(processing_time, 2),
        )

    # =========================================================================
    # Snapshots
    # =========================================================================

    def save_snapshot(self, request: SaveSnapshotRequest) -> SnapshotRecord:
        """
        Import a workbook file and store it as a snapshot.

        Args:
            request: SaveSnapshotRequest with the file, name and workbook id.

        Returns:
            The stored SnapshotRecord.
        """
        model = self.load_workbook(request.file_path, request.engine)
        return self.snapshot_store.save_snapshot(
            model,
            name=request.name or model.name,
            workbook_id=request.workbook_id,
        )

    def save_model_snapshot(
        self,
        model: WorkbookModel,
        name: str | None = None,
        workbook_id: str | None = None,
    ) -> SnapshotRecord:
        """Store an already-built snapshot after applying the cell cap."""
        model, _ = self.apply_cell_cap(model)
        return self.snapshot_store.save_snapshot(
            model,
            name=name or model.name,
            workbook_id=workbook_id,
        )

    def list_snapshots(self, workbook_id: str | None = None) -> list[SnapshotRecord]:
        """List stored snapshots, newest first, optionally for one workbook."""
        if workbook_id:
            return self.snapshot_store.list_snapshots_by_workbook(workbook_id)
        return self.snapshot_store.list_snapshots()

    def get_snapshot(self, snapshot_id: str) -> StoredSnapshot:
        """Load a stored snapshot with its model."""
        return self.snapshot_store.get_snapshot(snapshot_id)

    def delete_snapshot(self, snapshot_id: str) -> None:
        """Delete a stored snapshot."""
        self.snapshot_store.delete_snapshot(snapshot_id)

    def archive_snapshot(
        self,
        snapshot_id: str,
        output_dir: str,
        overwrite: bool = False,
    ) -> dict[str, Any]:
        """
        Write a stored snapshot out as a timestamped .xlsx file.

        Args:
            snapshot_id: Id of the snapshot.
            output_dir: Directory for the archive file.
            overwrite: Whether to overwrite an existing file.

        Returns:
            The writer's result dictionary (file_path, sheets_written,
            cells_written, file_size_bytes).
        """
        stored = self.snapshot_store.get_snapshot(snapshot_id)
        file_name = build_archive_filename(stored.record.name)
        return self.report_adapter.write_workbook(
            stored.model,
            str(Path(output_dir) / file_name),
            overwrite=overwrite,
        )
