"""
Text and formula normalization.

Snapshots of the same workbook taken through different extraction paths
(file import, stored snapshot, live session) preserve Unicode differently.
These helpers canonicalize text so that visually identical content does
not register as a difference.
"""

import re
import unicodedata
from typing import Any

# No-break, ogham, en/em/thin/hair spaces, narrow no-break,
# medium mathematical and ideographic space.
_SPACE_VARIANTS = re.compile("[\u00a0\u1680\u2000-\u200a\u202f\u205f\u3000]")
# Zero-width space/non-joiner/joiner, word joiner, byte-order mark.
_ZERO_WIDTH = re.compile("[\u200b-\u200d\u2060\ufeff]")
_LINE_BREAKS = re.compile("\r\n|\r|\u0085|\u2028|\u2029")
_WHITESPACE_RUN = re.compile(r"\s+")

_QUOTE_MAP = str.maketrans({
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
})


def normalize_formula(text: Any) -> str:
    """
    Canonical form of formula text: trimmed and upper-cased.

    Args:
        text: Formula text, or anything else.

    Returns:
        The normalized formula, or "" for None and non-string input.
    """
    if not isinstance(text, str):
        return ""
    return text.strip().upper()


def normalize_text(value: Any) -> Any:
    """
    Canonical form of a cell value for comparison.

    Non-string values are returned unchanged. Strings get line breaks
    unified to a line feed, zero-width characters removed, NFC
    composition, Unicode space variants mapped to a plain space, curly
    quotes straightened, whitespace runs collapsed to one space and
    surrounding whitespace trimmed.

    Zero-width characters are removed before composing so that a
    second pass can never compose anything new; the result is a fixed
    point: normalize_text(normalize_text(s)) == normalize_text(s).

    Args:
        value: Any cell value.

    Returns:
        The normalized value.
    """
    if not isinstance(value, str):
        return value

    text = _LINE_BREAKS.sub("\n", value)
    text = _ZERO_WIDTH.sub("", text)
    text = unicodedata.normalize("NFC", text)
    text = _SPACE_VARIANTS.sub(" ", text)
    text = text.translate(_QUOTE_MAP)
    text = _WHITESPACE_RUN.sub(" ", text)
    return text.strip()
