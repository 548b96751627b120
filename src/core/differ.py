"""
Whole-workbook diff.

diff_workbooks() pairs sheets by name, classifies every cell of every
sheet present on both sides over the union of their populated regions,
and aggregates per-code counts. Sheets present on one side only are
reported through sheet_status and get no grid.

The dense grid for each sheet pair is allocated up front (rows x cols
codes), so oversized snapshots must be capped before they get here;
nothing in this module truncates.
"""

import logging

from src.core.aligner import compute_bounds, resolve_cell
from src.core.classifier import classify
from src.models.diff_models import (
    DifferenceCode,
    Diff,
    DiffCounts,
    DiffSummary,
    SheetDiff,
    SheetStatus,
)
from src.models.workbook_models import SheetModel, WorkbookModel

logger = logging.getLogger(__name__)


def diff_sheets(current: SheetModel, baseline: SheetModel) -> SheetDiff:
    """
    Difference grid for one sheet present on both sides.

    Args:
        current: Sheet from the current snapshot.
        baseline: Sheet with the same name from the baseline snapshot.

    Returns:
        SheetDiff anchored at the union of both populated regions.
    """
    bounds = compute_bounds(current, baseline)
    rows, cols = bounds.rows, bounds.cols
    cells = [DifferenceCode.NONE.value] * (rows * cols)
    tally = [0] * len(DifferenceCode)

    for r in range(rows):
        abs_row = bounds.row_base + r
        row_index = r * cols
        for c in range(cols):
            abs_col = bounds.col_base + c
            code = classify(
                resolve_cell(current, abs_row, abs_col),
                resolve_cell(baseline, abs_row, abs_col),
            )
            if code:
                cells[row_index + c] = code.value
                tally[code] += 1

    return SheetDiff(
        rows=rows,
        cols=cols,
        row_base=bounds.row_base,
        col_base=bounds.col_base,
        cells=cells,
        counts=DiffCounts.from_tally(tally),
    )


def diff_workbooks(current: WorkbookModel, baseline: WorkbookModel) -> Diff:
    """
    Compare two workbook snapshots.

    Sheet names are visited in current-workbook order, followed by
    sheets that exist only in the baseline.

    Args:
        current: The newer snapshot.
        baseline: The snapshot being compared against.

    Returns:
        Diff with a grid per both-present sheet, a status for every
        sheet name, and aggregate totals over both-present sheets.
    """
    current_by_name = {sheet.name: sheet for sheet in current.sheets}
    baseline_by_name = {sheet.name: sheet for sheet in baseline.sheets}
    all_names = list(dict.fromkeys([*current_by_name, *baseline_by_name]))

    by_sheet: dict[str, SheetDiff] = {}
    sheet_status: dict[str, SheetStatus] = {}
    totals = {"added": 0, "removed": 0, "value_changed": 0, "formula_changed": 0}
    changed_sheets = 0

    for name in all_names:
        current_sheet = current_by_name.get(name)
        baseline_sheet = baseline_by_name.get(name)

        if current_sheet is None:
            sheet_status[name] = SheetStatus.REMOVED
            logger.debug("Sheet %r only in baseline", name)
            continue
        if baseline_sheet is None:
            sheet_status[name] = SheetStatus.ADDED
            logger.debug("Sheet %r only in current", name)
            continue

        sheet_diff = diff_sheets(current_sheet, baseline_sheet)
        by_sheet[name] = sheet_diff

        counts = sheet_diff.counts
        if counts.changed > 0:
            sheet_status[name] = SheetStatus.MODIFIED
            changed_sheets += 1
        else:
            sheet_status[name] = SheetStatus.UNCHANGED

        for key in totals:
            totals[key] += getattr(counts, key)

        logger.debug(
            "Sheet %r: %dx%d grid at (%d, %d), %d changed",
            name,
            sheet_diff.rows,
            sheet_diff.cols,
            sheet_diff.row_base,
            sheet_diff.col_base,
            counts.changed,
        )

    statuses = list(sheet_status.values())
    summary = DiffSummary(
        **totals,
        changed=sum(totals.values()),
        compared_sheets=len(by_sheet),
        changed_sheets=changed_sheets,
        added_sheets=statuses.count(SheetStatus.ADDED),
        removed_sheets=statuses.count(SheetStatus.REMOVED),
    )

    logger.info(
        "Diff %r vs %r: +%d / -%d / value %d / formula %d, %d changed sheet(s)",
        current.name,
        baseline.name,
        summary.added,
        summary.removed,
        summary.value_changed,
        summary.formula_changed,
        summary.changed_sheets,
    )

    return Diff(by_sheet=by_sheet, sheet_status=sheet_status, summary=summary)
