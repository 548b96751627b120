"""
Pure comparison core.

Everything in this package is synchronous and side-effect free: no I/O,
no logging above DEBUG in hot loops, no mutation of inputs. Functions are
safe to call from any thread as long as the input snapshots are not
mutated concurrently.

Modules:
    - normalizer: canonical text and formula forms
    - classifier: five-way classification of a cell pair
    - aligner: shared absolute coordinate space for a sheet pair
    - differ: whole-workbook diff grids and counts
    - rectangles: rectangle decomposition of a difference grid
    - addressing: A1 notation helpers
    - overlay: overlay colors and address groups for renderers
"""

from src.core.classifier import classify, is_blank
from src.core.differ import diff_sheets, diff_workbooks
from src.core.normalizer import normalize_formula, normalize_text
from src.core.rectangles import decompose_all, decompose_code

__all__ = [
    "classify",
    "is_blank",
    "diff_sheets",
    "diff_workbooks",
    "normalize_formula",
    "normalize_text",
    "decompose_all",
    "decompose_code",
]
