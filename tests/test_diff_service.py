"""
Tests for the WorkbookDiffService.

Tests file and inline diffs, the cell cap, rectangles, cell detail,
report export and the snapshot workflow.
"""

import base64
import re
from pathlib import Path

import pytest

from src.adapters.calamine_adapter import CalamineAdapter
from src.adapters.openpyxl_adapter import OpenpyxlAdapter
from src.config import Settings
from src.exceptions.diff_exceptions import (
    CellRangeError,
    FileNotFoundError as WorkbookFileNotFoundError,
    SheetNotFoundError,
    SheetTooLargeError,
    SnapshotNotFoundError,
)
from src.models.api_models import (
    CellDetailRequest,
    DiffFilesRequest,
    DiffModelsRequest,
    ExportReportRequest,
    ImportEngine,
    RectanglesRequest,
    SaveSnapshotRequest,
    SnapshotDiffRequest,
)
from src.models.diff_models import DifferenceCode, SheetStatus
from src.models.workbook_models import WorkbookModel
from src.services.diff_service import WorkbookDiffService
from src.services.snapshot_store import SnapshotStore


def service_with(settings: Settings, **overrides) -> WorkbookDiffService:
    """Service whose settings differ from the fixture's by overrides."""
    capped = settings.model_copy(update=overrides)
    return WorkbookDiffService(
        settings=capped,
        snapshot_store=SnapshotStore(capped.snapshot_dir),
    )


class TestDiffFiles:
    """Tests for diff_files."""

    def test_budget_diff(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test the full diff of the two Budget workbooks."""
        response = diff_service.diff_files(DiffFilesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
        ))

        assert response.success is True
        assert response.current_name == "budget_v2"
        assert response.baseline_name == "budget_v1"
        assert response.sheet_status == {
            "Budget": SheetStatus.MODIFIED,
            "Notes": SheetStatus.UNCHANGED,
            "New": SheetStatus.ADDED,
            "Old": SheetStatus.REMOVED,
        }

        summary = response.summary
        assert (summary.added, summary.removed) == (2, 1)
        assert (summary.value_changed, summary.formula_changed) == (1, 2)
        assert summary.changed == 6
        assert summary.compared_sheets == 2
        assert summary.changed_sheets == 1
        assert (summary.added_sheets, summary.removed_sheets) == (1, 1)
        assert response.processing_time_ms is not None
        assert response.message is None

    def test_payloads_only_for_shared_sheets(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test that only sheets on both sides carry a grid."""
        response = diff_service.diff_files(DiffFilesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
        ))

        assert set(response.sheets) == {"Budget", "Notes"}
        budget = response.sheets["Budget"]
        assert (budget.rows, budget.cols) == (6, 3)
        assert budget.cells_base64 is None
        assert budget.rectangles is None

    def test_include_cells_and_rectangles(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test the optional grid and rectangle payloads."""
        response = diff_service.diff_files(DiffFilesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            include_cells=True,
            include_rectangles=True,
        ))

        budget = response.sheets["Budget"]
        cells = base64.b64decode(budget.cells_base64)
        assert len(cells) == 18
        assert cells[1 * 3 + 1] == DifferenceCode.FORMULA_CHANGED
        assert cells[3 * 3 + 1] == DifferenceCode.VALUE_CHANGED
        assert cells[0] == DifferenceCode.NONE

        added = budget.rectangles["added"]
        assert [(r.row_start, r.col_start, r.row_end, r.col_end) for r in added] == [(4, 0, 4, 1)]
        assert response.sheets["Notes"].rectangles == {}
        assert budget.addresses["added"] == ["A5:B5"]
        assert budget.addresses["removed"] == ["A6"]
        assert response.sheets["Notes"].addresses == {
            "added": [],
            "removed": [],
            "value_changed": [],
            "formula_changed": [],
        }

    def test_calamine_engine_sees_values_only(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test that without formulas a recalculated total reads as a literal edit."""
        response = diff_service.diff_files(DiffFilesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            engine=ImportEngine.CALAMINE,
        ))

        summary = response.summary
        assert summary.value_changed == 0
        assert summary.formula_changed == 3
        assert summary.changed == 6

    def test_missing_file(
        self,
        diff_service: WorkbookDiffService,
        baseline_file: Path,
        temp_dir: Path,
    ) -> None:
        """Test that a missing current file raises WorkbookFileNotFoundError."""
        with pytest.raises(WorkbookFileNotFoundError):
            diff_service.diff_files(DiffFilesRequest(
                current_path=str(temp_dir / "missing.xlsx"),
                baseline_path=str(baseline_file),
            ))


class TestDiffModels:
    """Tests for diff_models."""

    def test_inline_snapshots(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
        baseline_model: WorkbookModel,
    ) -> None:
        """Test diffing snapshots passed in the request."""
        response = diff_service.diff_models(DiffModelsRequest(
            current=current_model,
            baseline=baseline_model,
        ))

        assert response.summary.changed == 6
        assert response.sheets["Budget"].counts.formula_changed == 2

    def test_identical_snapshots(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
    ) -> None:
        """Test that a snapshot diffed against itself has no changes."""
        response = diff_service.diff_models(DiffModelsRequest(
            current=current_model,
            baseline=current_model,
        ))

        assert response.summary.changed == 0
        assert set(response.sheet_status.values()) == {SheetStatus.UNCHANGED}


class TestCellCap:
    """Tests for the per-sheet cell cap."""

    def test_truncate_policy(
        self,
        settings: Settings,
        current_model: WorkbookModel,
        baseline_model: WorkbookModel,
    ) -> None:
        """Test that oversized sheets keep their first rows and are reported."""
        service = service_with(settings, max_cells_per_sheet=4)

        response = service.diff_models(DiffModelsRequest(
            current=current_model,
            baseline=baseline_model,
        ))

        # 4 cells // 3 columns keeps one row on each side
        assert response.sheets["Budget"].rows == 1
        assert response.summary.changed == 0
        assert "Budget" in response.message
        assert "Notes" not in response.message

    def test_reject_policy(
        self,
        settings: Settings,
        current_model: WorkbookModel,
        baseline_model: WorkbookModel,
    ) -> None:
        """Test that the reject policy raises SheetTooLargeError."""
        service = service_with(settings, max_cells_per_sheet=4, oversize_policy="reject")

        with pytest.raises(SheetTooLargeError) as exc_info:
            service.diff_models(DiffModelsRequest(
                current=current_model,
                baseline=baseline_model,
            ))

        assert exc_info.value.details["sheet_name"] == "Budget"
        assert exc_info.value.error_code == "SHEET_TOO_LARGE"

    def test_under_cap_returns_same_model(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
    ) -> None:
        """Test that a snapshot within the cap is returned unchanged."""
        model, truncated = diff_service.apply_cell_cap(current_model)

        assert model is current_model
        assert truncated == []

    def test_truncate_keeps_at_least_one_row(
        self,
        settings: Settings,
        make_sheet,
    ) -> None:
        """Test that a sheet wider than the cap still keeps its first row."""
        service = service_with(settings, max_cells_per_sheet=2)
        model = WorkbookModel(sheets=[make_sheet("Wide", [[1, 2, 3], [4, 5, 6]])])

        capped, truncated = service.apply_cell_cap(model)

        assert capped.sheets[0].row_count == 1
        assert capped.sheets[0].values == [[1, 2, 3]]
        assert truncated == ["Wide"]


class TestComparedGridCap:
    """Tests for the cell cap on the grid two sheets are compared on."""

    def far_apart(self, make_sheet) -> tuple[WorkbookModel, WorkbookModel]:
        current = WorkbookModel(name="new", sheets=[make_sheet("S", [["x"]])])
        baseline = WorkbookModel(
            name="old",
            sheets=[make_sheet("S", [["y"]], row_offset=999, column_offset=999)],
        )
        return current, baseline

    def test_reject_distant_blocks(self, settings: Settings, make_sheet) -> None:
        """Test that two one-cell blocks spanning a huge grid are rejected."""
        service = service_with(settings, max_cells_per_sheet=100, oversize_policy="reject")
        current, baseline = self.far_apart(make_sheet)

        with pytest.raises(SheetTooLargeError) as exc_info:
            service.diff_models(DiffModelsRequest(current=current, baseline=baseline))

        assert exc_info.value.details["sheet_name"] == "S"
        assert exc_info.value.details["cell_count"] == 1_000_000

    def test_truncate_distant_blocks(self, settings: Settings, make_sheet) -> None:
        """Test that the compared grid is clipped to the cap and reported."""
        service = service_with(settings, max_cells_per_sheet=100)
        current, baseline = self.far_apart(make_sheet)

        response = service.diff_models(DiffModelsRequest(
            current=current,
            baseline=baseline,
            include_cells=True,
        ))

        sheet = response.sheets["S"]
        assert sheet.rows * sheet.cols <= 100
        assert (sheet.row_base, sheet.col_base) == (0, 0)
        assert len(base64.b64decode(sheet.cells_base64)) == sheet.rows * sheet.cols
        assert sheet.counts.added == 1
        assert sheet.counts.removed == 0
        assert "S" in response.message

    def test_cap_sheet_pair_clips_both_sides(self, settings: Settings, make_sheet) -> None:
        """Test the window kept from each side of an oversized pair."""
        service = service_with(settings, max_cells_per_sheet=6)
        current = make_sheet("S", [[1, 2, 3, 4], [5, 6, 7, 8]])
        baseline = make_sheet("S", [[9]], row_offset=10, column_offset=1)

        new_sheet, old_sheet, clipped = service.cap_sheet_pair(current, baseline)

        assert clipped is True
        # 11 x 4 grid: 4 columns leave room for one row
        assert new_sheet.values == [[1, 2, 3, 4]]
        assert old_sheet.row_count == 0
        assert old_sheet.cell_count == 0

    def test_pair_within_cap_is_unchanged(
        self,
        diff_service: WorkbookDiffService,
        make_sheet,
    ) -> None:
        """Test that a pair inside the cap is passed through as is."""
        current = make_sheet("S", [[1]])
        baseline = make_sheet("S", [[2]], row_offset=3, column_offset=3)

        new_sheet, old_sheet, clipped = diff_service.cap_sheet_pair(current, baseline)

        assert (new_sheet, old_sheet, clipped) == (current, baseline, False)
        assert new_sheet is current


class TestRectangles:
    """Tests for get_rectangles."""

    def test_single_code(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test decomposing only the added cells, given by label."""
        response = diff_service.get_rectangles(RectanglesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            sheet_name="Budget",
            code="added",
        ))

        assert response.addresses == {"added": ["A5:B5"]}
        assert response.rectangle_count == 1

    def test_all_codes(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test decomposing every change code."""
        response = diff_service.get_rectangles(RectanglesRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            sheet_name="Budget",
        ))

        assert response.addresses == {
            "added": ["A5:B5"],
            "removed": ["A6"],
            "value_changed": ["B4"],
            "formula_changed": ["B2:C2"],
        }
        assert response.rectangle_count == 4

    def test_sheet_not_on_both_sides(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test that a sheet missing from the baseline raises SheetNotFoundError."""
        with pytest.raises(SheetNotFoundError) as exc_info:
            diff_service.get_rectangles(RectanglesRequest(
                current_path=str(current_file),
                baseline_path=str(baseline_file),
                sheet_name="New",
            ))

        assert exc_info.value.details["available_sheets"] == ["Budget", "Notes"]


class TestExplainCell:
    """Tests for explain_cell."""

    @pytest.mark.parametrize(
        "cell,label,new_text,old_text",
        [
            ("B4", "value_changed", "1500", "1300"),
            ("C2", "formula_changed", "=B2*3", "=B2*2"),
            ("B2", "formula_changed", "1200", "1000"),
            ("A5", "added", "Misc", ""),
            ("A6", "removed", "", "Obsolete"),
            ("A1", "none", "Item", "Item"),
        ],
    )
    def test_cell_detail(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
        cell: str,
        label: str,
        new_text: str,
        old_text: str,
    ) -> None:
        """Test old/new display texts for each kind of change."""
        detail = diff_service.explain_cell(CellDetailRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            sheet_name="Budget",
            cell=cell,
        ))

        assert detail.cell == cell
        assert detail.label == label
        assert (detail.new_text, detail.old_text) == (new_text, old_text)

    def test_invalid_cell_reference(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test that an unparseable reference raises CellRangeError."""
        with pytest.raises(CellRangeError):
            diff_service.explain_cell(CellDetailRequest(
                current_path=str(current_file),
                baseline_path=str(baseline_file),
                sheet_name="Budget",
                cell="not a cell",
            ))


class TestExportReport:
    """Tests for export_report."""

    def test_export(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
        temp_dir: Path,
    ) -> None:
        """Test writing the highlighted report."""
        response = diff_service.export_report(ExportReportRequest(
            current_path=str(current_file),
            baseline_path=str(baseline_file),
            output_path=str(temp_dir / "out" / "report.xlsx"),
        ))

        assert response.success is True
        assert response.sheets_written == 5
        assert response.overlay_count == 6
        assert Path(response.file_path).exists()


class TestSnapshots:
    """Tests for the snapshot workflow."""

    def test_save_and_list(
        self,
        diff_service: WorkbookDiffService,
        baseline_file: Path,
    ) -> None:
        """Test that a saved snapshot is listed with its metadata."""
        record = diff_service.save_snapshot(SaveSnapshotRequest(
            file_path=str(baseline_file),
            workbook_id="budget",
        ))

        assert record.name == "budget_v1"
        assert record.sheet_count == 3
        assert [r.id for r in diff_service.list_snapshots()] == [record.id]
        assert [r.id for r in diff_service.list_snapshots("budget")] == [record.id]
        assert diff_service.list_snapshots("other") == []

    def test_diff_against_snapshot(
        self,
        diff_service: WorkbookDiffService,
        current_file: Path,
        baseline_file: Path,
    ) -> None:
        """Test that a stored baseline diffs like the original file."""
        record = diff_service.save_snapshot(SaveSnapshotRequest(
            file_path=str(baseline_file),
            name="Before",
        ))

        response = diff_service.diff_against_snapshot(
            record.id,
            SnapshotDiffRequest(current_path=str(current_file)),
        )

        assert response.baseline_name == "budget_v1"
        assert response.summary.changed == 6
        assert response.summary.value_changed == 1

    def test_save_model_snapshot(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
    ) -> None:
        """Test storing an inline snapshot and loading it back."""
        record = diff_service.save_model_snapshot(current_model, workbook_id="budget")

        stored = diff_service.get_snapshot(record.id)

        assert stored.record.name == "budget_v2"
        assert stored.model.get_sheet("Budget").values == current_model.get_sheet("Budget").values

    def test_delete(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
    ) -> None:
        """Test that a deleted snapshot can no longer be loaded."""
        record = diff_service.save_model_snapshot(current_model)

        diff_service.delete_snapshot(record.id)

        with pytest.raises(SnapshotNotFoundError):
            diff_service.get_snapshot(record.id)

    def test_archive(
        self,
        diff_service: WorkbookDiffService,
        current_model: WorkbookModel,
        temp_dir: Path,
    ) -> None:
        """Test writing a stored snapshot out as a timestamped workbook."""
        record = diff_service.save_model_snapshot(current_model)

        result = diff_service.archive_snapshot(record.id, str(temp_dir / "archive"))

        assert re.fullmatch(r"budget_v2_\d{8}_\d{6}\.xlsx", Path(result["file_path"]).name)
        assert result["cells_written"] == 13


class TestAdapterSelection:
    """Tests for import engine selection."""

    def test_default_engine(self, diff_service: WorkbookDiffService) -> None:
        assert isinstance(diff_service._adapter_for("book.xlsx", None), OpenpyxlAdapter)

    def test_explicit_calamine(self, diff_service: WorkbookDiffService) -> None:
        adapter = diff_service._adapter_for("book.xlsx", ImportEngine.CALAMINE)

        assert isinstance(adapter, CalamineAdapter)

    @pytest.mark.parametrize("file_name", ["legacy.xls", "binary.xlsb", "open.ods"])
    def test_openpyxl_falls_back_for_unreadable_formats(
        self,
        diff_service: WorkbookDiffService,
        file_name: str,
    ) -> None:
        """Test that formats openpyxl cannot read go to calamine."""
        adapter = diff_service._adapter_for(file_name, ImportEngine.OPENPYXL)

        assert isinstance(adapter, CalamineAdapter)
