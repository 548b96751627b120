"""
Calamine adapter for high-performance snapshot import.

This module provides the CalamineAdapter class that wraps python-calamine
for turning a workbook file into a WorkbookModel. python-calamine is a
Rust-based library with exceptional performance for large files, but it
only exposes cached values: snapshots imported with it carry no formula
text, so formula edits surface as value changes (or not at all when the
result is unchanged).

Supported formats:
    - .xlsx (Excel 2007+)
    - .xls (Excel 97-2003)
    - .xlsb (Excel Binary)
    - .xlsm (Excel Macro-Enabled)
    - .ods (OpenDocument Spreadsheet)

Example:
    adapter = CalamineAdapter()
    model = adapter.load_workbook_model("/path/to/file.xlsb")
"""

import logging
from pathlib import Path
from typing import Any

from python_calamine import CalamineWorkbook, SheetTypeEnum, SheetVisibleEnum

from src.adapters.cell_values import snapshot_value, value_kind_of
from src.exceptions.diff_exceptions import (
    FileNotFoundError,
    InvalidFileFormatError,
    ReadError,
)
from src.models.workbook_models import SheetModel, ValueKind, WorkbookModel

logger = logging.getLogger(__name__)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


class CalamineAdapter:
    """
    Adapter for python-calamine snapshot import.

    Calamine reports sheets from A1 with empty cells as "". Leading empty
    rows and columns are trimmed into the sheet's offsets, trailing ones
    are dropped.

    Attributes:
        SUPPORTED_EXTENSIONS: Tuple of supported file extensions.

    Example:
        adapter = CalamineAdapter()
        names = adapter.get_sheet_names("/path/to/file.xlsx")
        model = adapter.load_workbook_model("/path/to/file.xlsx")
    """

    SUPPORTED_EXTENSIONS = (".xlsx", ".xls", ".xlsb", ".xlsm", ".ods")

    def _validate_file_path(self, file_path: str) -> Path:
        """
        Validate that the file exists and has a supported extension.

        Args:
            file_path: Path to the Excel file.

        Returns:
            Path object for the validated file.

        Raises:
            FileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file extension is not supported.
        """
        path = Path(file_path)

        if not path.exists():
            raise FileNotFoundError(file_path)

        if path.suffix.lower() not in self.SUPPORTED_EXTENSIONS:
            raise InvalidFileFormatError(
                file_path=file_path,
                expected_formats=list(self.SUPPORTED_EXTENSIONS),
                reason=f"Unsupported file extension: {path.suffix}",
            )

        return path

    def _open_workbook(self, file_path: str) -> CalamineWorkbook:
        """
        Open an Excel workbook using calamine.

        Args:
            file_path: Path to the Excel file.

        Returns:
            CalamineWorkbook instance.

        Raises:
            InvalidFileFormatError: If the file cannot be parsed.
            ReadError: If an unexpected error occurs during opening.
        """
        path = self._validate_file_path(file_path)

        try:
            return CalamineWorkbook.from_path(str(path))
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

    def _build_sheet_model(self, name: str, raw_rows: list[list[Any]]) -> SheetModel:
        """
        Capture calamine rows (anchored at A1) as a SheetModel.

        Args:
            name: Sheet name.
            raw_rows: Rows as returned by to_python(skip_empty_area=False).

        Returns:
            SheetModel covering the populated block.
        """
        populated_rows = [
            index for index, row in enumerate(raw_rows)
            if any(not _is_empty(cell) for cell in row)
        ]
        if not populated_rows:
            return SheetModel(name=name)

        first_row, last_row = populated_rows[0], populated_rows[-1]
        first_col: int | None = None
        last_col = 0
        for row in raw_rows[first_row:last_row + 1]:
            for col, cell in enumerate(row):
                if _is_empty(cell):
                    continue
                if first_col is None or col < first_col:
                    first_col = col
                last_col = max(last_col, col)
        first_col = first_col or 0

        width = last_col - first_col + 1
        values: list[list[Any]] = []
        kinds: list[list[ValueKind]] = []

        for row in raw_rows[first_row:last_row + 1]:
            block = list(row[first_col:last_col + 1])
            block.extend([None] * (width - len(block)))
            row_values = [None if _is_empty(cell) else snapshot_value(cell) for cell in block]
            values.append(row_values)
            kinds.append([value_kind_of(value) for value in row_values])

        return SheetModel(
            name=name,
            row_count=len(values),
            column_count=width,
            row_offset=first_row,
            column_offset=first_col,
            values=values,
            formulas=[[None] * width for _ in values],
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
            FileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file format is not supported.
        """
        workbook = self._open_workbook(file_path)
        return self._worksheet_names(workbook, include_hidden)

    def _worksheet_names(self, workbook: CalamineWorkbook, include_hidden: bool) -> list[str]:
        return [
            meta.name
            for meta in workbook.sheets_metadata
            if meta.typ == SheetTypeEnum.WorkSheet
            and (include_hidden or meta.visible == SheetVisibleEnum.Visible)
        ]

    def load_workbook_model(
        self,
        file_path: str,
        include_hidden: bool = False,
        name: str | None = None,
    ) -> WorkbookModel:
        """
        Import a workbook file as a values-only snapshot.

        Args:
            file_path: Path to the Excel file.
            include_hidden: Whether hidden and very hidden sheets are imported.
            name: Snapshot name; defaults to the file name without extension.

        Returns:
            WorkbookModel whose formulas arrays are all None.

        Raises:
            FileNotFoundError: If the file does not exist.
            InvalidFileFormatError: If the file format is not supported.
            ReadError: If a sheet cannot be read.
        """
        workbook = self._open_workbook(file_path)

        sheets: list[SheetModel] = []
        for sheet_name in self._worksheet_names(workbook, include_hidden):
            try:
                raw_rows = workbook.get_sheet_by_name(sheet_name).to_python(
                    skip_empty_area=False
                )
            except Exception as e:
                raise ReadError(
                    file_path=file_path,
                    operation="read sheet",
                    reason=f"{sheet_name}: {e}",
                ) from e
            sheets.append(self._build_sheet_model(sheet_name, raw_rows))

        logger.debug("Imported %d sheet(s) from %s with calamine", len(sheets), file_path)
        return WorkbookModel(name=name or Path(file_path).stem, sheets=sheets)
