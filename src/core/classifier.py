"""
Five-way classification of a cell pair.

classify() compares a cell from the current snapshot against the cell at
the same absolute coordinate in the baseline snapshot. The decision order
is fixed and the first match wins:

    1. current non-blank, baseline blank   -> ADDED
    2. current blank, baseline non-blank   -> REMOVED
    3. both blank                          -> NONE
    4. normalized formula text differs:
         - both sides have a formula       -> FORMULA_CHANGED
         - only one side has a formula     -> compare values; equal is NONE,
                                              unequal is FORMULA_CHANGED
    5. formulas equal, compare values:
         - equal                           -> NONE
         - both literals                   -> FORMULA_CHANGED
         - same non-empty formula          -> VALUE_CHANGED

A literal edit and a formula edit share FORMULA_CHANGED; only a formula
that recalculated to a new result is VALUE_CHANGED.
"""

from typing import Any

from src.core.normalizer import normalize_formula, normalize_text
from src.models.diff_models import DifferenceCode
from src.models.workbook_models import CellSnapshot

_PRIMITIVE_TYPES = (str, int, float, bool)


def is_blank(cell: CellSnapshot) -> bool:
    """
    Whether a cell counts as empty.

    A cell is blank iff it has no formula and its value is None or "".
    A formula always makes a cell non-blank, whatever its cached value.
    """
    if cell.has_formula:
        return False
    return cell.value is None or cell.value == ""


def _comparable(value: Any) -> Any:
    if value is not None and not isinstance(value, _PRIMITIVE_TYPES):
        value = str(value)
    return normalize_text(value)


def values_equal(a: Any, b: Any) -> bool:
    """
    Compare two cell values after normalization.

    Structured values (dates, rich objects) are compared by their string
    form. Numbers compare natively with no tolerance; a boolean never
    equals a number even though Python treats True == 1.
    """
    av = _comparable(a)
    bv = _comparable(b)
    if isinstance(av, bool) != isinstance(bv, bool):
        return False
    return av == bv


def classify(a: CellSnapshot, b: CellSnapshot) -> DifferenceCode:
    """
    Classify a current/baseline cell pair.

    Args:
        a: Cell from the current snapshot.
        b: Cell from the baseline snapshot.

    Returns:
        The DifferenceCode for the pair. Never raises.
    """
    a_blank = is_blank(a)
    b_blank = is_blank(b)
    if not a_blank and b_blank:
        return DifferenceCode.ADDED
    if a_blank and not b_blank:
        return DifferenceCode.REMOVED
    if a_blank and b_blank:
        return DifferenceCode.NONE

    af = normalize_formula(a.formula)
    bf = normalize_formula(b.formula)
    if af != bf:
        if af and bf:
            return DifferenceCode.FORMULA_CHANGED
        # One side is a bare literal: only flag it when the literal does
        # not match the other side's cached result.
        if values_equal(a.value, b.value):
            return DifferenceCode.NONE
        return DifferenceCode.FORMULA_CHANGED

    if values_equal(a.value, b.value):
        return DifferenceCode.NONE
    if not af:
        return DifferenceCode.FORMULA_CHANGED
    return DifferenceCode.VALUE_CHANGED
