"""
XlsxWriter adapter for writing snapshots and diff reports.

This module provides the XlsxWriterAdapter class that wraps XlsxWriter
for two outputs:
    - write_workbook: a snapshot written back out as a plain workbook,
      formulas included with their cached results
    - write_diff_report: the current snapshot with every changed region
      highlighted by a conditional-format overlay, sheet tabs colored by
      their most severe change, and a summary sheet

Overlays use conditional formats with a constant "=TRUE" criterion, so
the underlying cell formatting is left untouched and the highlight can
be removed in Excel by clearing the rules.

Example:
    adapter = XlsxWriterAdapter()
    adapter.write_diff_report(current, diff, "/path/to/report.xlsx", baseline=baseline)
"""

import os
from pathlib import Path
from typing import Any

import xlsxwriter
from xlsxwriter.format import Format
from xlsxwriter.workbook import Workbook
from xlsxwriter.worksheet import Worksheet

from src.core.overlay import OVERLAY_COLORS, tab_color_for
from src.core.rectangles import decompose_all, to_absolute
from src.exceptions.diff_exceptions import PermissionError as WorkbookPermissionError
from src.exceptions.diff_exceptions import WorkbookDiffError, WriteError
from src.models.diff_models import (
    Diff,
    DiffCounts,
    DifferenceCode,
    Rectangle,
    SheetDiff,
    SheetStatus,
)
from src.models.workbook_models import SheetModel, WorkbookModel


class XlsxWriterAdapter:
    """
    Adapter for XlsxWriter workbook and report writing.

    Attributes:
        SUMMARY_SHEET_NAME: Name of the report's summary sheet.
        SUMMARY_HEADERS: Column headers of the summary sheet.
        DEFAULT_COLUMN_WIDTH: Default column width in characters.
        MAX_COLUMN_WIDTH: Maximum column width in characters.

    Example:
        adapter = XlsxWriterAdapter()
        result = adapter.write_workbook(model, "/path/to/copy.xlsx")
        print(f"Wrote {result['cells_written']} cells")
    """

    SUMMARY_SHEET_NAME = "Diff Summary"
    SUMMARY_HEADERS = [
        "Sheet",
        "Status",
        "Added",
        "Removed",
        "Value changed",
        "Formula changed",
        "Changed",
    ]
    DEFAULT_COLUMN_WIDTH = 10
    MAX_COLUMN_WIDTH = 50

    def _validate_output_path(
        self,
        file_path: str,
        overwrite: bool = False,
    ) -> Path:
        """
        Validate and prepare the output file path.

        Args:
            file_path: Path where the file will be written.
            overwrite: Whether to overwrite if the file exists.

        Returns:
            Path object for the output file.

        Raises:
            WriteError: If the file exists and overwrite is False.
            WorkbookPermissionError: If the directory is not writable.
        """
        if not file_path.lower().endswith(".xlsx"):
            file_path = file_path + ".xlsx"
        path = Path(file_path)

        if path.exists() and not overwrite:
            raise WriteError(
                file_path=file_path,
                operation="create",
                reason="File already exists and overwrite is False",
            )

        parent = path.parent
        if not parent.exists():
            try:
                parent.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise WorkbookPermissionError(
                    file_path=str(parent),
                    operation="create directory",
                ) from e
            except OSError as e:
                raise WriteError(
                    file_path=file_path,
                    operation="create directory",
                    reason=str(e),
                ) from e

        if not os.access(str(parent), os.W_OK):
            raise WorkbookPermissionError(
                file_path=file_path,
                operation="write",
            )

        return path

    def _write_cell(
        self,
        worksheet: Worksheet,
        row: int,
        col: int,
        value: Any,
        formula: str | None = None,
    ) -> bool:
        """
        Write a snapshot cell with appropriate type handling.

        Formulas are written with their cached value so the file shows
        the captured result before Excel recalculates. Literal strings
        are always written as strings, even when they start with "=".

        Returns:
            Whether anything was written.
        """
        if formula is not None:
            cached = 0 if value is None else value
            worksheet.write_formula(row, col, formula, None, cached)
        elif value is None:
            return False
        elif isinstance(value, bool):
            worksheet.write_boolean(row, col, value)
        elif isinstance(value, (int, float)):
            worksheet.write_number(row, col, value)
        elif isinstance(value, str):
            worksheet.write_string(row, col, value)
        else:
            worksheet.write_string(row, col, str(value))
        return True

    def _write_sheet_contents(self, worksheet: Worksheet, sheet: SheetModel) -> int:
        """
        Write a sheet's populated block at its absolute position.

        Returns:
            Number of non-empty cells written.
        """
        cells_written = 0
        for r, row_values in enumerate(sheet.values[:sheet.row_count]):
            row_formulas = sheet.formulas[r] if r < len(sheet.formulas) else []
            for c, value in enumerate(row_values[:sheet.column_count]):
                formula = row_formulas[c] if c < len(row_formulas) else None
                if self._write_cell(
                    worksheet,
                    sheet.row_offset + r,
                    sheet.column_offset + c,
                    value,
                    formula,
                ):
                    cells_written += 1
        return cells_written

    def _block_rectangle(self, sheet: SheetModel) -> Rectangle | None:
        """Absolute rectangle covering a sheet's populated block."""
        if sheet.row_count == 0 or sheet.column_count == 0:
            return None
        return Rectangle(
            row_start=sheet.row_offset,
            col_start=sheet.column_offset,
            row_end=sheet.row_offset + sheet.row_count - 1,
            col_end=sheet.column_offset + sheet.column_count - 1,
        )

    def _apply_rectangle(self, worksheet: Worksheet, rect: Rectangle, cell_format: Format) -> None:
        worksheet.conditional_format(
            rect.row_start,
            rect.col_start,
            rect.row_end,
            rect.col_end,
            {"type": "formula", "criteria": "=TRUE", "format": cell_format},
        )

    def _apply_overlay(
        self,
        worksheet: Worksheet,
        sheet_diff: SheetDiff,
        formats: dict[DifferenceCode, Format],
    ) -> int:
        """
        Highlight every changed rectangle of a sheet.

        Returns:
            Number of conditional formats applied.
        """
        applied = 0
        for code, rectangles in decompose_all(sheet_diff).items():
            for rect in to_absolute(sheet_diff, rectangles):
                self._apply_rectangle(worksheet, rect, formats[code])
                applied += 1
        return applied

    def _summary_sheet_name(self, taken: set[str]) -> str:
        name = self.SUMMARY_SHEET_NAME
        suffix = 2
        while name in taken:
            name = f"{self.SUMMARY_SHEET_NAME} ({suffix})"
            suffix += 1
        return name

    def _write_summary(
        self,
        workbook: Workbook,
        worksheet: Worksheet,
        diff: Diff,
    ) -> None:
        """Write one row per sheet name plus a totals row."""
        header_format = workbook.add_format({
            "bold": True,
            "bg_color": "#4F81BD",
            "font_color": "white",
            "border": 1,
        })
        total_format = workbook.add_format({"bold": True, "top": 1})

        rows: list[list[Any]] = []
        for name, status in diff.sheet_status.items():
            sheet_diff = diff.by_sheet.get(name)
            counts = sheet_diff.counts if sheet_diff is not None else DiffCounts()
            rows.append([
                name,
                status.value,
                counts.added,
                counts.removed,
                counts.value_changed,
                counts.formula_changed,
                counts.changed,
            ])

        summary = diff.summary
        totals = [
            "Total",
            f"{summary.changed_sheets} of {summary.compared_sheets} changed",
            summary.added,
            summary.removed,
            summary.value_changed,
            summary.formula_changed,
            summary.changed,
        ]

        for col_idx, header in enumerate(self.SUMMARY_HEADERS):
            worksheet.write_string(0, col_idx, header, header_format)
        for row_idx, row_data in enumerate(rows, start=1):
            worksheet.write_row(row_idx, 0, row_data)
        worksheet.write_row(len(rows) + 1, 0, totals, total_format)

        for col_idx, width in enumerate(self._calculate_column_widths([*rows, totals])):
            worksheet.set_column(col_idx, col_idx, width)
        worksheet.freeze_panes(1, 0)

    def _calculate_column_widths(self, rows: list[list[Any]]) -> list[int]:
        """
        Calculate column widths for the summary sheet based on content.

        Args:
            rows: Data rows (headers are always included).

        Returns:
            List of column widths.
        """
        all_rows = [self.SUMMARY_HEADERS, *rows]
        widths = [self.DEFAULT_COLUMN_WIDTH] * len(self.SUMMARY_HEADERS)

        for row in all_rows:
            for col_idx, cell in enumerate(row):
                if cell is not None:
                    cell_width = min(len(str(cell)) + 2, self.MAX_COLUMN_WIDTH)
                    widths[col_idx] = max(widths[col_idx], cell_width)

        return widths

    def write_workbook(
        self,
        model: WorkbookModel,
        file_path: str,
        overwrite: bool = False,
    ) -> dict[str, Any]:
        """
        Write a snapshot out as a workbook.

        Args:
            model: Snapshot to write.
            file_path: Path where the file will be written.
            overwrite: Whether to overwrite an existing file.

        Returns:
            Dictionary containing:
                - file_path: Path to the written file
                - sheets_written: Number of worksheets written
                - cells_written: Number of non-empty cells written
                - file_size_bytes: Size of the file in bytes

        Raises:
            WriteError: If writing fails.
            WorkbookPermissionError: If the file cannot be written due to permissions.
        """
        path = self._validate_output_path(file_path, overwrite)

        workbook: Workbook | None = None
        try:
            workbook = xlsxwriter.Workbook(str(path))
            cells_written = 0
            for sheet in model.sheets:
                worksheet = workbook.add_worksheet(sheet.name)
                cells_written += self._write_sheet_contents(worksheet, sheet)

            workbook.close()
            workbook = None

            return {
                "file_path": str(path.absolute()),
                "sheets_written": len(model.sheets),
                "cells_written": cells_written,
                "file_size_bytes": path.stat().st_size if path.exists() else 0,
            }

        except xlsxwriter.exceptions.FileCreateError as e:
            raise WorkbookPermissionError(
                file_path=file_path,
                operation="write",
            ) from e
        except WorkbookDiffError:
            raise
        except Exception as e:
            raise WriteError(
                file_path=file_path,
                operation="write",
                reason=str(e),
            ) from e
        finally:
            if workbook is not None:
                try:
                    workbook.close()
                except Exception:
                    pass

    def write_diff_report(
        self,
        current: WorkbookModel,
        diff: Diff,
        file_path: str,
        baseline: WorkbookModel | None = None,
        overwrite: bool = False,
    ) -> dict[str, Any]:
        """
        Write the current snapshot with the diff highlighted.

        Sheets present on both sides get one overlay per changed
        rectangle and a tab color chosen by priority (removed > formula >
        value > added). A sheet that only exists in the current snapshot
        is highlighted as added over its whole populated block. When the
        baseline is given, sheets that only exist there are written from
        it and highlighted as removed.

        Args:
            current: The current snapshot.
            diff: Result of diffing current against the baseline.
            file_path: Path where the report will be written.
            baseline: The baseline snapshot, for removed sheets.
            overwrite: Whether to overwrite an existing file.

        Returns:
            Dictionary containing:
                - file_path: Path to the written file
                - sheets_written: Number of worksheets written (summary included)
                - overlay_count: Number of conditional formats applied
                - file_size_bytes: Size of the file in bytes

        Raises:
            WriteError: If writing fails.
            WorkbookPermissionError: If the file cannot be written due to permissions.
        """
        path = self._validate_output_path(file_path, overwrite)

        workbook: Workbook | None = None
        try:
            workbook = xlsxwriter.Workbook(str(path))
            formats = {
                code: workbook.add_format({"bg_color": color})
                for code, color in OVERLAY_COLORS.items()
            }

            written: list[str] = []
            overlay_count = 0

            for sheet in current.sheets:
                worksheet = workbook.add_worksheet(sheet.name)
                self._write_sheet_contents(worksheet, sheet)
                written.append(sheet.name)

                sheet_diff = diff.by_sheet.get(sheet.name)
                if sheet_diff is not None:
                    overlay_count += self._apply_overlay(worksheet, sheet_diff, formats)
                    tab_color = tab_color_for(sheet_diff.counts)
                    if tab_color is not None:
                        worksheet.set_tab_color(tab_color)
                elif diff.sheet_status.get(sheet.name) == SheetStatus.ADDED:
                    worksheet.set_tab_color(OVERLAY_COLORS[DifferenceCode.ADDED])
                    block = self._block_rectangle(sheet)
                    if block is not None:
                        self._apply_rectangle(worksheet, block, formats[DifferenceCode.ADDED])
                        overlay_count += 1

            if baseline is not None:
                for sheet in baseline.sheets:
                    if diff.sheet_status.get(sheet.name) != SheetStatus.REMOVED:
                        continue
                    worksheet = workbook.add_worksheet(sheet.name)
                    self._write_sheet_contents(worksheet, sheet)
                    written.append(sheet.name)
                    worksheet.set_tab_color(OVERLAY_COLORS[DifferenceCode.REMOVED])
                    block = self._block_rectangle(sheet)
                    if block is not None:
                        self._apply_rectangle(worksheet, block, formats[DifferenceCode.REMOVED])
                        overlay_count += 1

            summary_sheet = workbook.add_worksheet(self._summary_sheet_name(set(written)))
            self._write_summary(workbook, summary_sheet, diff)

            workbook.close()
            workbook = None

            return {
                "file_path": str(path.absolute()),
                "sheets_written": len(written) + 1,
                "overlay_count": overlay_count,
                "file_size_bytes": path.stat().st_size if path.exists() else 0,
            }

        except xlsxwriter.exceptions.FileCreateError as e:
            raise WorkbookPermissionError(
                file_path=file_path,
                operation="write",
            ) from e
        except WorkbookDiffError:
            raise
        except Exception as e:
            raise WriteError(
                file_path=file_path,
                operation="write report",
                reason=str(e),
            ) from e
        finally:
            if workbook is not None:
                try:
                    workbook.close()
                except Exception:
                    pass
