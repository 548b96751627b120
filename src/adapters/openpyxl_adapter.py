"""
Openpyxl adapter for importing workbooks as snapshots.

This module provides the OpenpyxlAdapter class that wraps openpyxl for
turning an .xlsx/.xlsm file into a WorkbookModel. openpyxl is the only
engine here that sees both sides of a formula cell: the workbook is
opened twice, once for formula text and once (data_only) for the cached
results Excel saved alongside them.

Use cases where openpyxl is preferred:
    - When formula changes must be told apart from value changes
    - When hidden sheets must be detected reliably

Supported formats:
    - .xlsx (Excel 2007+)
    - .xlsm (Excel Macro-Enabled)

Example:
    adapter = OpenpyxlAdapter()

    sheet_names = adapter.get_sheet_names("/path/to/file.xlsx")
    model = adapter.load_workbook_model("/path/to/file.xlsx")
"""

import logging
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import Cell
from openpyxl.worksheet.formula import ArrayFormula
from openpyxl.worksheet.worksheet import Worksheet

from src.adapters.cell_values import snapshot_value, value_kind_of
from src.exceptions.diff_exceptions import FileNotFoundError as WorkbookFileNotFoundError
from src.exceptions.diff_exceptions import InvalidFileFormatError, ReadError
from src.models.workbook_models import SheetModel, ValueKind, WorkbookModel

logger = logging.getLogger(__name__)


class OpenpyxlAdapter:
    """
    Adapter for importing workbooks with openpyxl.

    Each visible worksheet becomes a SheetModel covering the tight
    bounding box of its non-empty cells, with the box's top-left corner
    recorded as the sheet's offsets.

    Attributes:
        SUPPORTED_EXTENSIONS: Tuple of supported file extensions.

    Example:
        adapter = OpenpyxlAdapter()
        model = adapter.load_workbook_model("/path/to/file.xlsx", include_hidden=True)
        print(model.sheet_names)
    """

    SUPPORTED_EXTENSIONS = (".xlsx", ".xlsm")

    def _validate_file_path(self, file_path: str) -> Path:
        """
        Validate that the file exists and has a supported extension.

        Args:
            file_path: Path to the Excel file.

        Returns:
            Path object for the validated file.

        Raises:
            WorkbookFileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file extension is not supported.
        """
        path = Path(file_path)

        if not path.exists():
            raise WorkbookFileNotFoundError(file_path)

        if path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            raise InvalidFileFormatError(
                file_path=file_path,
                expected_formats=list(self.SUPPORTED_EXTENSIONS),
                reason=f"Unsupported file extension: {path.suffix}",
            )

        return path

    def _open_workbook(self, file_path: str, data_only: bool = True) -> Workbook:
        """
        Open an Excel workbook using openpyxl.

        Args:
            file_path: Path to the Excel file.
            data_only: If True, read cached values instead of formulas.

        Returns:
            Workbook instance.

        Raises:
            InvalidFileFormatError: If the file cannot be parsed.
            ReadError: If an unexpected error occurs during opening.
        """
        path = self._validate_file_path(file_path)

        try:
            return load_workbook(str(path), data_only=data_only)
        except Exception as e:
            error_msg = str(e).lower()
            if (
                "invalid" in error_msg
                or "corrupt" in error_msg
                or "format" in error_msg
                or "zip" in error_msg
            ):
                raise InvalidFileFormatError(
                    file_path=file_path,
                    reason=str(e),
                ) from e
            raise ReadError(
                file_path=file_path,
                operation="open",
                reason=str(e),
            ) from e

    def _formula_text(self, cell: Cell) -> str | None:
        """
        Formula text of a cell opened without data_only, or None.

        Array formulas are unwrapped to their text; string literals that
        happen to start with "=" are not formulas.
        """
        if cell.data_type != "f":
            return None

        raw = cell.value
        if isinstance(raw, ArrayFormula):
            text = raw.text or ""
        elif isinstance(raw, str):
            text = raw
        else:
            return None

        if not text.startswith("="):
            text = "=" + text
        return text

    def _populated_bounds(self, worksheet: Worksheet) -> tuple[int, int, int, int] | None:
        """
        Tight 1-based bounds (min_row, min_col, max_row, max_col) of non-empty cells.

        Worksheet dimensions also count styled but empty cells, so the
        bounds are recomputed from cell contents.
        """
        min_row = min_col = max_row = max_col = None

        for row in worksheet.iter_rows():
            for cell in row:
                if cell.value is None:
                    continue
                r, c = cell.row, cell.column
                if min_row is None:
                    min_row = max_row = r
                    min_col = max_col = c
                    continue
                min_row = min(min_row, r)
                max_row = max(max_row, r)
                min_col = min(min_col, c)
                max_col = max(max_col, c)

        if min_row is None:
            return None
        return min_row, min_col, max_row, max_col

    def _build_sheet_model(self, formula_sheet: Worksheet, value_sheet: Worksheet) -> SheetModel:
        """
        Capture one worksheet as a SheetModel.

        Args:
            formula_sheet: The sheet from the workbook opened for formulas.
            value_sheet: The same sheet from the data_only workbook.

        Returns:
            SheetModel with offsets at the populated block's top-left cell.
        """
        bounds = self._populated_bounds(formula_sheet)
        if bounds is None:
            return SheetModel(name=formula_sheet.title)

        min_row, min_col, max_row, max_col = bounds

        values: list[list[Any]] = []
        formulas: list[list[str | None]] = []
        kinds: list[list[ValueKind]] = []

        window = {
            "min_row": min_row,
            "max_row": max_row,
            "min_col": min_col,
            "max_col": max_col,
        }
        for formula_row, value_row in zip(
            formula_sheet.iter_rows(**window),
            value_sheet.iter_rows(**window),
        ):
            row_values: list[Any] = []
            row_formulas: list[str | None] = []
            row_kinds: list[ValueKind] = []

            for formula_cell, value_cell in zip(formula_row, value_row):
                formula = self._formula_text(formula_cell)
                if formula is not None:
                    raw, is_error = value_cell.value, value_cell.data_type == "e"
                else:
                    raw, is_error = formula_cell.value, formula_cell.data_type == "e"

                value = snapshot_value(raw)
                row_values.append(value)
                row_formulas.append(formula)
                row_kinds.append(value_kind_of(value, is_error))

            values.append(row_values)
            formulas.append(row_formulas)
            kinds.append(row_kinds)

        return SheetModel(
            name=formula_sheet.title,
            row_count=max_row - min_row + 1,
            column_count=max_col - min_col + 1,
            row_offset=min_row - 1,
            column_offset=min_col - 1,
            values=values,
            formulas=formulas,
            value_kinds=kinds,
        )

    def get_sheet_names(self, file_path: str, include_hidden: bool = True) -> list[str]:
        """
        Get the list of worksheet names in the workbook.

        Args:
            file_path: Path to the Excel file.
            include_hidden: Whether hidden sheets are listed.

        Returns:
            List of sheet names in workbook order.

        Raises:
            WorkbookFileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file format is not supported.
        """
        workbook = self._open_workbook(file_path)
        try:
            return [
                sheet.title
                for sheet in workbook.worksheets
                if include_hidden or sheet.sheet_state == "visible"
            ]
        finally:
            workbook.close()

    def load_workbook_model(
        self,
        file_path: str,
        include_hidden: bool = False,
        name: str | None = None,
    ) -> WorkbookModel:
        """
        Import a workbook file as a snapshot.

        Args:
            file_path: Path to the Excel file.
            include_hidden: Whether hidden and very hidden sheets are imported.
            name: Snapshot name; defaults to the file name without extension.

        Returns:
            WorkbookModel with one SheetModel per imported worksheet.

        Raises:
            WorkbookFileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file format is not supported.
            ReadError: If a sheet cannot be read.
        """
        formula_book = self._open_workbook(file_path, data_only=False)
        try:
            value_book = self._open_workbook(file_path, data_only=True)
            try:
                sheets = self._read_sheets(file_path, formula_book, value_book, include_hidden)
            finally:
                value_book.close()
        finally:
            formula_book.close()

        return WorkbookModel(name=name or Path(file_path).stem, sheets=sheets)

    def _read_sheets(
        self,
        file_path: str,
        formula_book: Workbook,
        value_book: Workbook,
        include_hidden: bool,
    ) -> list[SheetModel]:
        sheets: list[SheetModel] = []
        for formula_sheet in formula_book.worksheets:
            if formula_sheet.sheet_state != "visible" and not include_hidden:
                logger.debug(
                    "Skipping %s sheet %r in %s",
                    formula_sheet.sheet_state,
                    formula_sheet.title,
                    file_path,
                )
                continue

            try:
                sheets.append(
                    self._build_sheet_model(formula_sheet, value_book[formula_sheet.title])
                )
            except Exception as e:
                raise ReadError(
                    file_path=file_path,
                    operation="read sheet",
                    reason=f"{formula_sheet.title}: {e}",
                ) from e
        return sheets
