"""
Test fixtures and utilities for the workbook diff tests.

This module provides shared fixtures including temporary directories,
snapshot builders, workbook files with formulas and cached values, and
service instances.

The two "Budget" workbooks differ in every way a cell can:
    B2  1000 -> 1200                  literal edit      (formula_changed)
    C2  =B2*2 -> =B2*3                formula edit      (formula_changed)
    B4  =SUM(B2:B3) 1300 -> 1500      recalculated      (value_changed)
    A5:B5                             new row           (added)
    A6                                dropped row       (removed)
The "Notes" sheet is identical, "New" exists only in the current workbook
and "Old" only in the baseline.
"""

import tempfile
from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import xlsxwriter

from src.adapters.calamine_adapter import CalamineAdapter
from src.adapters.cell_values import value_kind_of
from src.adapters.openpyxl_adapter import OpenpyxlAdapter
from src.adapters.xlsxwriter_adapter import XlsxWriterAdapter
from src.config import Settings
from src.models.workbook_models import SheetModel, WorkbookModel
from src.services.diff_service import WorkbookDiffService
from src.services.snapshot_store import SnapshotStore


def build_sheet(
    name: str,
    values: list[list[Any]],
    formulas: list[list[str | None]] | None = None,
    row_offset: int = 0,
    column_offset: int = 0,
) -> SheetModel:
    """
    Build a SheetModel from a values grid, deriving value kinds.

    Args:
        name: Sheet name.
        values: Row-major cached values.
        formulas: Row-major formula text; all None when omitted.
        row_offset: Absolute row of the block's first row.
        column_offset: Absolute column of the block's first column.

    Returns:
        SheetModel sized to the values grid.
    """
    if formulas is None:
        formulas = [[None] * len(row) for row in values]
    return SheetModel(
        name=name,
        row_offset=row_offset,
        column_offset=column_offset,
        values=values,
        formulas=formulas,
        value_kinds=[[value_kind_of(value) for value in row] for row in values],
    )


@pytest.fixture
def make_sheet() -> Callable[..., SheetModel]:
    """
    Return the SheetModel builder.

    Returns:
        build_sheet.
    """
    return build_sheet


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """
    Create a temporary directory for test files.

    Yields:
        Path to the temporary directory.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """
    Settings with the snapshot store inside the temporary directory.

    Returns:
        Settings instance.
    """
    return Settings(
        snapshot_dir=str(temp_dir / "snapshots"),
        max_snapshots_per_workbook=3,
        max_cells_per_sheet=10_000,
        oversize_policy="truncate",
    )


@pytest.fixture
def openpyxl_adapter() -> OpenpyxlAdapter:
    """
    Create an OpenpyxlAdapter instance for testing.

    Returns:
        OpenpyxlAdapter instance.
    """
    return OpenpyxlAdapter()


@pytest.fixture
def calamine_adapter() -> CalamineAdapter:
    """
    Create a CalamineAdapter instance for testing.

    Returns:
        CalamineAdapter instance.
    """
    return CalamineAdapter()


@pytest.fixture
def xlsxwriter_adapter() -> XlsxWriterAdapter:
    """
    Create an XlsxWriterAdapter instance for testing.

    Returns:
        XlsxWriterAdapter instance.
    """
    return XlsxWriterAdapter()


@pytest.fixture
def snapshot_store(settings: Settings) -> SnapshotStore:
    """
    Create a SnapshotStore in the temporary directory.

    Returns:
        SnapshotStore instance.
    """
    return SnapshotStore(
        settings.snapshot_dir,
        max_per_workbook=settings.max_snapshots_per_workbook,
    )


@pytest.fixture
def diff_service(settings: Settings, snapshot_store: SnapshotStore) -> WorkbookDiffService:
    """
    Create a WorkbookDiffService wired to the temporary snapshot store.

    Returns:
        WorkbookDiffService instance.
    """
    return WorkbookDiffService(settings=settings, snapshot_store=snapshot_store)


@pytest.fixture
def baseline_model() -> WorkbookModel:
    """
    Return the baseline Budget workbook snapshot.

    Returns:
        WorkbookModel with Budget, Notes and Old sheets.
    """
    budget = build_sheet(
        "Budget",
        values=[
            ["Item", "Amount", None],
            ["Rent", 1000, 2000],
            ["Food", 300, None],
            ["Total", 1300, None],
            [None, None, None],
            ["Obsolete", None, None],
        ],
        formulas=[
            [None, None, None],
            [None, None, "=B2*2"],
            [None, None, None],
            [None, "=SUM(B2:B3)", None],
            [None, None, None],
            [None, None, None],
        ],
    )
    return WorkbookModel(
        name="budget_v1",
        sheets=[
            budget,
            build_sheet("Notes", [["keep"]]),
            build_sheet("Old", [["legacy"]]),
        ],
    )


@pytest.fixture
def current_model() -> WorkbookModel:
    """
    Return the current Budget workbook snapshot.

    Returns:
        WorkbookModel with Budget, Notes and New sheets.
    """
    budget = build_sheet(
        "Budget",
        values=[
            ["Item", "Amount", None],
            ["Rent", 1200, 3600],
            ["Food", 300, None],
            ["Total", 1500, None],
            ["Misc", 50, None],
        ],
        formulas=[
            [None, None, None],
            [None, None, "=B2*3"],
            [None, None, None],
            [None, "=SUM(B2:B3)", None],
            [None, None, None],
        ],
    )
    return WorkbookModel(
        name="budget_v2",
        sheets=[
            budget,
            build_sheet("Notes", [["keep"]]),
            build_sheet("New", [["fresh"]]),
        ],
    )


@pytest.fixture
def baseline_file(
    temp_dir: Path,
    xlsxwriter_adapter: XlsxWriterAdapter,
    baseline_model: WorkbookModel,
) -> Path:
    """
    Write the baseline snapshot to an .xlsx file.

    Returns:
        Path to budget_v1.xlsx.
    """
    file_path = temp_dir / "budget_v1.xlsx"
    xlsxwriter_adapter.write_workbook(baseline_model, str(file_path))
    return file_path


@pytest.fixture
def current_file(
    temp_dir: Path,
    xlsxwriter_adapter: XlsxWriterAdapter,
    current_model: WorkbookModel,
) -> Path:
    """
    Write the current snapshot to an .xlsx file.

    Returns:
        Path to budget_v2.xlsx.
    """
    file_path = temp_dir / "budget_v2.xlsx"
    xlsxwriter_adapter.write_workbook(current_model, str(file_path))
    return file_path


@pytest.fixture
def hidden_sheet_file(temp_dir: Path) -> Path:
    """
    Create a workbook with one visible and one hidden sheet.

    Returns:
        Path to hidden.xlsx.
    """
    file_path = temp_dir / "hidden.xlsx"
    workbook = xlsxwriter.Workbook(str(file_path))
    workbook.add_worksheet("Visible").write_string(0, 0, "shown")
    secret = workbook.add_worksheet("Secret")
    secret.write_string(0, 0, "hidden")
    secret.hide()
    workbook.close()
    return file_path


@pytest.fixture
def typed_values_file(temp_dir: Path) -> Path:
    """
    Create a workbook holding a date, a boolean and a decimal from B2.

    Returns:
        Path to typed.xlsx.
    """
    file_path = temp_dir / "typed.xlsx"
    workbook = xlsxwriter.Workbook(str(file_path))
    worksheet = workbook.add_worksheet("Typed")
    date_format = workbook.add_format({"num_format": "yyyy-mm-dd"})
    worksheet.write_datetime(1, 1, datetime(2025, 1, 1), date_format)
    worksheet.write_boolean(1, 2, True)
    worksheet.write_number(2, 1, 2.5)
    worksheet.write_string(2, 2, "text")
    workbook.close()
    return file_path
