"""Punctuation and whitespace canonicalisation for mixed CJK/Latin input.

Users type slips on phone keyboards that freely mix full-width Chinese
punctuation with half-width ASCII.  Everything downstream assumes the
half-width forms produced here.
"""

from __future__ import annotations

import re
from typing import Final

_CHAR_MAP: Final[dict[int, str]] = str.maketrans({
    "，": ",",
    "；": ";",
    "。": ".",
    "：": ":",
    "（": "(",
    "）": ")",
    "／": "/",
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "—": "-",
    "–": "-",
    "－": "-",
    "﹣": "-",
    "−": "-",
    "　": " ",
})

_WHITESPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s+")
_COMMA_SPACING_RE: Final[re.Pattern[str]] = re.compile(r"\s*,\s*")
_EDGE_SEPARATORS_RE: Final[re.Pattern[str]] = re.compile(r"^[,;\s]+|[,;\s]+$")


def normalize_text(text: object) -> str:
    """Half-width punctuation, unified dashes/quotes, single spaces, trimmed.

    Examples::

        normalize_text("伯恩茅斯胜／平曼联，conf3.5")  →  "伯恩茅斯胜/平曼联,conf3.5"
        normalize_text("  a　 b ")                →  "a b"
    """
    if text is None:
        return ""
    cleaned = str(text).translate(_CHAR_MAP)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


def normalize_entry_name(text: object) -> str:
    """Normalize one entry label.

    Same mapping as :func:`normalize_text`, plus ``", "`` comma spacing and
    removal of leading/trailing ``,``/``;`` separators.
    """
    cleaned = normalize_text(text)
    cleaned = _COMMA_SPACING_RE.sub(", ", cleaned)
    cleaned = _EDGE_SEPARATORS_RE.sub("", cleaned)
    return cleaned.strip()


def compact_token(text: object) -> str:
    """Lower-cased text with all whitespace removed; the lookup-key form."""
    if text is None:
        return ""
    return _WHITESPACE_RE.sub("", str(text).strip().lower())
