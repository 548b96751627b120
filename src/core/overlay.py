"""
Overlay metadata for renderers.

Maps difference codes to fill colors, picks a sheet tab color from a
sheet's counts, and groups a sheet's decomposed rectangles into absolute
A1 addresses per code, which is the form a renderer applies.
"""

from src.core.addressing import rectangle_to_a1
from src.core.rectangles import decompose_all, to_absolute
from src.models.diff_models import DiffCounts, DifferenceCode, SheetDiff

OVERLAY_COLORS: dict[DifferenceCode, str] = {
    DifferenceCode.ADDED: "#C6EFCE",
    DifferenceCode.REMOVED: "#FFC7CE",
    DifferenceCode.VALUE_CHANGED: "#FFF2CC",
    DifferenceCode.FORMULA_CHANGED: "#FFA500",
}

# Tab color priority, highest first.
TAB_PRIORITY: tuple[DifferenceCode, ...] = (
    DifferenceCode.REMOVED,
    DifferenceCode.FORMULA_CHANGED,
    DifferenceCode.VALUE_CHANGED,
    DifferenceCode.ADDED,
)


def tab_color_for(counts: DiffCounts) -> str | None:
    """
    Tab color for a sheet: removed > formula > value > added.

    Returns:
        Hex color, or None for a sheet without changes.
    """
    for code in TAB_PRIORITY:
        if counts.for_code(code) > 0:
            return OVERLAY_COLORS[code]
    return None


def address_groups(sheet_diff: SheetDiff) -> dict[str, list[str]]:
    """
    Absolute A1 addresses of each code's rectangles.

    Args:
        sheet_diff: The grid to group.

    Returns:
        Mapping of code label ("added", "removed", "value_changed",
        "formula_changed") to addresses; every label is present.
    """
    groups: dict[str, list[str]] = {code.label: [] for code in OVERLAY_COLORS}
    for code, rectangles in decompose_all(sheet_diff).items():
        groups[code.label] = [
            rectangle_to_a1(rect) for rect in to_absolute(sheet_diff, rectangles)
        ]
    return groups
