"""
Tests for the OpenpyxlAdapter.

Tests snapshot import with formulas and cached values using openpyxl.
"""

from pathlib import Path

import pytest

from src.adapters.openpyxl_adapter import OpenpyxlAdapter
from src.adapters.xlsxwriter_adapter import XlsxWriterAdapter
from src.exceptions.diff_exceptions import FileNotFoundError as WorkbookFileNotFoundError
from src.exceptions.diff_exceptions import InvalidFileFormatError
from src.models.workbook_models import ValueKind, WorkbookModel


class TestOpenpyxlAdapterValidation:
    """Tests for file validation."""

    def test_file_not_found_raises_error(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        temp_dir: Path,
    ) -> None:
        """Test that a missing file raises WorkbookFileNotFoundError."""
        with pytest.raises(WorkbookFileNotFoundError):
            openpyxl_adapter.load_workbook_model(str(temp_dir / "missing.xlsx"))

    def test_invalid_extension_raises_error(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        temp_dir: Path,
    ) -> None:
        """Test that an unsupported extension raises InvalidFileFormatError."""
        file_path = temp_dir / "data.csv"
        file_path.write_text("a,b\n1,2\n")

        with pytest.raises(InvalidFileFormatError) as exc_info:
            openpyxl_adapter.load_workbook_model(str(file_path))

        assert ".xlsx" in exc_info.value.expected_formats

    def test_corrupt_file_raises_error(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        temp_dir: Path,
    ) -> None:
        """Test that a file that is not a workbook raises InvalidFileFormatError."""
        file_path = temp_dir / "broken.xlsx"
        file_path.write_text("not a zip archive")

        with pytest.raises(InvalidFileFormatError):
            openpyxl_adapter.load_workbook_model(str(file_path))

    def test_first_workbook_closed_when_second_open_fails(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that the formula pass is closed if the value pass cannot open."""
        closed = []

        class FormulaBook:
            def close(self) -> None:
                closed.append(True)

        def open_workbook(file_path: str, data_only: bool = True):
            if data_only:
                raise InvalidFileFormatError(file_path=file_path, reason="value pass")
            return FormulaBook()

        monkeypatch.setattr(openpyxl_adapter, "_open_workbook", open_workbook)

        with pytest.raises(InvalidFileFormatError):
            openpyxl_adapter.load_workbook_model(str(baseline_file))

        assert closed == [True]


class TestOpenpyxlAdapterImport:
    """Tests for load_workbook_model."""

    def test_sheets_in_order(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
    ) -> None:
        """Test that every sheet is imported in workbook order."""
        model = openpyxl_adapter.load_workbook_model(str(baseline_file))

        assert model.name == "budget_v1"
        assert model.sheet_names == ["Budget", "Notes", "Old"]

    def test_formulas_and_cached_values(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
    ) -> None:
        """Test that formula cells carry both the formula and its cached result."""
        budget = openpyxl_adapter.load_workbook_model(str(baseline_file)).get_sheet("Budget")

        assert budget.formulas[3][1] == "=SUM(B2:B3)"
        assert budget.values[3][1] == 1300
        assert budget.formulas[1][2] == "=B2*2"
        assert budget.values[1][2] == 2000
        assert budget.formulas[1][1] is None
        assert budget.values[1][1] == 1000

    def test_round_trip_matches_snapshot(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
        baseline_model: WorkbookModel,
    ) -> None:
        """Test that a written snapshot imports back to the same content."""
        model = openpyxl_adapter.load_workbook_model(str(baseline_file))

        for expected in baseline_model.sheets:
            sheet = model.get_sheet(expected.name)
            assert sheet.values == expected.values
            assert sheet.formulas == expected.formulas
            assert (sheet.row_count, sheet.column_count) == (expected.row_count, expected.column_count)

    def test_value_kinds(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
    ) -> None:
        """Test that value kinds are derived from the imported values."""
        budget = openpyxl_adapter.load_workbook_model(str(baseline_file)).get_sheet("Budget")

        assert budget.value_kinds[0][0] == ValueKind.STRING
        assert budget.value_kinds[1][1] == ValueKind.DOUBLE
        assert budget.value_kinds[0][2] == ValueKind.EMPTY

    def test_offsets_from_populated_block(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        xlsxwriter_adapter: XlsxWriterAdapter,
        make_sheet,
        temp_dir: Path,
    ) -> None:
        """Test that data starting at C5 is imported with offsets (4, 2)."""
        file_path = temp_dir / "offset.xlsx"
        source = WorkbookModel(
            sheets=[make_sheet("Data", [["x", 1], [None, 2]], row_offset=4, column_offset=2)]
        )
        xlsxwriter_adapter.write_workbook(source, str(file_path))

        sheet = openpyxl_adapter.load_workbook_model(str(file_path)).get_sheet("Data")

        assert (sheet.row_offset, sheet.column_offset) == (4, 2)
        assert (sheet.row_count, sheet.column_count) == (2, 2)
        assert sheet.values == [["x", 1], [None, 2]]

    def test_typed_values(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        typed_values_file: Path,
    ) -> None:
        """Test that dates become serial numbers and booleans stay booleans."""
        sheet = openpyxl_adapter.load_workbook_model(str(typed_values_file)).get_sheet("Typed")

        assert (sheet.row_offset, sheet.column_offset) == (1, 1)
        assert sheet.values == [[45658, True], [2.5, "text"]]
        assert sheet.value_kinds[0] == [ValueKind.DOUBLE, ValueKind.BOOLEAN]

    def test_custom_name(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        baseline_file: Path,
    ) -> None:
        """Test that an explicit snapshot name wins over the file name."""
        model = openpyxl_adapter.load_workbook_model(str(baseline_file), name="Q1")

        assert model.name == "Q1"


class TestOpenpyxlAdapterHiddenSheets:
    """Tests for hidden sheet handling."""

    def test_hidden_sheets_skipped_by_default(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        hidden_sheet_file: Path,
    ) -> None:
        """Test that hidden sheets are not imported unless asked for."""
        model = openpyxl_adapter.load_workbook_model(str(hidden_sheet_file))

        assert model.sheet_names == ["Visible"]

    def test_hidden_sheets_included(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        hidden_sheet_file: Path,
    ) -> None:
        """Test that include_hidden imports hidden sheets too."""
        model = openpyxl_adapter.load_workbook_model(str(hidden_sheet_file), include_hidden=True)

        assert model.sheet_names == ["Visible", "Secret"]

    def test_get_sheet_names(
        self,
        openpyxl_adapter: OpenpyxlAdapter,
        hidden_sheet_file: Path,
    ) -> None:
        """Test listing sheet names with and without hidden sheets."""
        assert openpyxl_adapter.get_sheet_names(str(hidden_sheet_file)) == ["Visible", "Secret"]
        assert openpyxl_adapter.get_sheet_names(
            str(hidden_sheet_file),
            include_hidden=False,
        ) == ["Visible"]
