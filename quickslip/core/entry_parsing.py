"""Entry semantic classifier.

Turns one free-form betting entry (``"2-1"``, ``"主胜"``, ``"大2.5"``,
``"-1 主"``, ``"胜-平"``) into a market type plus a canonical semantic key so
that equivalent spellings compare equal:

==========  ========================  =====================================
market      example input             semantic key
==========  ========================  =====================================
score       ``2:1``                   ``2-1``
half_full   ``w/d``, ``胜平``          ``win-draw``
handicap    ``主-1``, ``-1 w``         ``-1:win``
total       ``大2.5``, ``2.5u``        ``over:2.5`` / ``under:2.5``
result      ``主胜``, ``X``            ``win`` / ``draw`` / ``lose``
other       anything else             compact lower-cased text
==========  ========================  =====================================

Parsers are tried in the fixed order of the table; the first hit wins.
Everything here is pure and never raises on user text.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Final, Iterable, Mapping, Optional

from quickslip.core.odds_math import is_valid_odds, to_float
from quickslip.core.text_normalizer import compact_token, normalize_entry_name

# ---------------------------------------------------------------------------
# Market metadata and token tables
# ---------------------------------------------------------------------------

MARKET_SCORE: Final[str] = "score"
MARKET_HALF_FULL: Final[str] = "half_full"
MARKET_HANDICAP: Final[str] = "handicap"
MARKET_TOTAL: Final[str] = "total"
MARKET_RESULT: Final[str] = "result"
MARKET_OTHER: Final[str] = "other"

#: label, tie-break rank (lower wins) per market type.
MARKET_META: Final[dict[str, tuple[str, int]]] = {
    MARKET_SCORE: ("比分", 1),
    MARKET_HALF_FULL: ("半全场", 2),
    MARKET_HANDICAP: ("让球", 3),
    MARKET_TOTAL: ("大小球", 4),
    MARKET_RESULT: ("赛果", 5),
    MARKET_OTHER: ("其他", 99),
}

OUTCOME_TOKEN_GROUPS: Final[dict[str, tuple[str, ...]]] = {
    "win": ("w", "win", "home", "homewin", "h", "主胜", "主", "胜"),
    "draw": ("d", "draw", "x", "平", "平局"),
    "lose": ("l", "lose", "away", "awaywin", "a", "客胜", "客", "负"),
}

TOTAL_DIRECTION_GROUPS: Final[dict[str, tuple[str, ...]]] = {
    "over": ("over", "o", "大", "大球"),
    "under": ("under", "u", "小", "小球"),
}

_OUTCOME_TOKEN_MAP: Final[dict[str, str]] = {
    token: outcome
    for outcome, tokens in OUTCOME_TOKEN_GROUPS.items()
    for token in tokens
}

_TOTAL_DIRECTION_MAP: Final[dict[str, str]] = {
    token: direction
    for direction, tokens in TOTAL_DIRECTION_GROUPS.items()
    for token in tokens
}

#: Tokens that must never be read as a team alias.
RESERVED_OUTCOME_TOKENS: Final[frozenset[str]] = frozenset(_OUTCOME_TOKEN_MAP) | frozenset(
    _TOTAL_DIRECTION_MAP
)

_WORD = r"[a-zA-Z一-龥]+"
_LINE = r"[+-]?\d+(?:\.\d+)?"

_SCORE_RE = re.compile(r"^(\d{1,2})\s*[-:]\s*(\d{1,2})$")
_HF_JOINERS_RE = re.compile(r"[/|>→]")
_HF_DASH_RE = re.compile(r"\s*-\s*")
_HF_PAIR_RE = re.compile(rf"^({_WORD})-({_WORD})$")
_HF_LETTERS_RE = re.compile(r"^[wdl]{2}$", re.IGNORECASE)
_HF_HANZI_RE = re.compile(r"^[胜平负]{2}$")
_HCP_LEADING_RE = re.compile(rf"^({_LINE})\s*({_WORD})$")
_HCP_TRAILING_RE = re.compile(rf"^({_WORD})\s*({_LINE})$")
_TOTAL_LEADING_RE = re.compile(r"^(over|under|o|u|大|小)(\d+(?:\.\d+)?)$", re.IGNORECASE)
_TOTAL_TRAILING_RE = re.compile(r"^(\d+(?:\.\d+)?)(over|under|o|u|大|小)$", re.IGNORECASE)
_ENTRY_TEXT_SPLIT_RE = re.compile(r"[|,]")

_HALF_FULL_WORDS: Final[tuple[str, ...]] = ("win", "draw", "lose")


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EntrySemantic:
    """Classification of one entry label."""

    name: str
    market_type: str
    market_label: str
    semantic_key: str
    detail: Optional[dict] = None


@dataclass(frozen=True, slots=True)
class NormalizedEntryRecord:
    """An entry label plus its classification and decimal odds.

    ``odds`` is NaN when no price was supplied.  Only records with finite
    odds above 1 take part in probability math.
    """

    name: str
    odds: float
    market_type: str
    market_label: str
    semantic_key: str
    detail: Optional[dict] = None

    @property
    def has_valid_odds(self) -> bool:
        return is_valid_odds(self.odds)


@dataclass(frozen=True, slots=True)
class PrimaryMarket:
    """Dominant market of a match's entries."""

    market_type: str
    market_label: str
    semantic_key: str


# ---------------------------------------------------------------------------
# Token helpers
# ---------------------------------------------------------------------------


def market_label(market_type: str) -> str:
    return MARKET_META.get(market_type, MARKET_META[MARKET_OTHER])[0]


def market_rank(market_type: str) -> int:
    return MARKET_META.get(market_type, MARKET_META[MARKET_OTHER])[1]


def parse_outcome_token(value: object) -> Optional[str]:
    """Map an outcome spelling (``主胜``, ``W``, ``away``…) to win/draw/lose."""
    return _OUTCOME_TOKEN_MAP.get(compact_token(value))


def parse_total_direction(value: object) -> Optional[str]:
    """Map an over/under spelling (``大``, ``o``, ``under``…) to over/under."""
    return _TOTAL_DIRECTION_MAP.get(compact_token(value))


def format_line(value: float) -> str:
    """Render a numeric line the way semantic keys spell it (``-1``, ``2.5``)."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


# ---------------------------------------------------------------------------
# Market parsers
# ---------------------------------------------------------------------------


def _parse_score(value: str) -> Optional[tuple[str, dict]]:
    match = _SCORE_RE.match(value)
    if not match:
        return None
    home, away = int(match.group(1)), int(match.group(2))
    return f"{home}-{away}", {"home": home, "away": away}


def _half_full(half: Optional[str], full: Optional[str]) -> Optional[tuple[str, dict]]:
    if half and full:
        return f"{half}-{full}", {"half": half, "full": full}
    return None


def _parse_half_full(value: str) -> Optional[tuple[str, dict]]:
    raw = value.strip()
    if not raw:
        return None

    dashed = _HF_DASH_RE.sub("-", _HF_JOINERS_RE.sub("-", raw)).strip()
    pair = _HF_PAIR_RE.match(dashed)
    if pair:
        hit = _half_full(parse_outcome_token(pair.group(1)), parse_outcome_token(pair.group(2)))
        if hit:
            return hit

    spaced = raw.split()
    if len(spaced) == 2:
        hit = _half_full(parse_outcome_token(spaced[0]), parse_outcome_token(spaced[1]))
        if hit:
            return hit

    compact = dashed.replace("-", "")
    if _HF_LETTERS_RE.match(compact) or _HF_HANZI_RE.match(compact):
        hit = _half_full(parse_outcome_token(compact[0]), parse_outcome_token(compact[1]))
        if hit:
            return hit

    lowered = compact.lower()
    for left in _HALF_FULL_WORDS:
        for right in _HALF_FULL_WORDS:
            if lowered == f"{left}{right}":
                return _half_full(left, right)

    return None


def _parse_handicap(value: str) -> Optional[tuple[str, dict]]:
    candidate = re.sub(r"[()]", " ", value)
    candidate = re.sub(r"让球?", " ", candidate)
    candidate = re.sub(r"([+-])\s+(\d)", r"\1\2", candidate)
    candidate = re.sub(r"\s+", " ", candidate).strip()
    if not candidate:
        return None

    leading = _HCP_LEADING_RE.match(candidate)
    if leading:
        line, outcome = to_float(leading.group(1)), parse_outcome_token(leading.group(2))
        if math.isfinite(line) and outcome:
            return f"{format_line(line)}:{outcome}", {"line": line, "outcome": outcome}

    trailing = _HCP_TRAILING_RE.match(candidate)
    if trailing:
        outcome, line = parse_outcome_token(trailing.group(1)), to_float(trailing.group(2))
        if math.isfinite(line) and outcome:
            return f"{format_line(line)}:{outcome}", {"line": line, "outcome": outcome}

    return None


def _parse_total(value: str) -> Optional[tuple[str, dict]]:
    compact = re.sub(r"\s+", "", value.strip())
    if not compact:
        return None

    leading = _TOTAL_LEADING_RE.match(compact)
    if leading:
        direction, line = parse_total_direction(leading.group(1)), to_float(leading.group(2))
        if direction and math.isfinite(line):
            return f"{direction}:{format_line(line)}", {"direction": direction, "line": line}

    trailing = _TOTAL_TRAILING_RE.match(compact)
    if trailing:
        line, direction = to_float(trailing.group(1)), parse_total_direction(trailing.group(2))
        if direction and math.isfinite(line):
            return f"{direction}:{format_line(line)}", {"direction": direction, "line": line}

    return None


def _parse_result(value: str) -> Optional[tuple[str, dict]]:
    outcome = parse_outcome_token(value)
    if not outcome:
        return None
    return outcome, {"outcome": outcome}


_MARKET_PARSERS: Final = (
    (MARKET_SCORE, _parse_score),
    (MARKET_HALF_FULL, _parse_half_full),
    (MARKET_HANDICAP, _parse_handicap),
    (MARKET_TOTAL, _parse_total),
    (MARKET_RESULT, _parse_result),
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_entry_semantic(value: object) -> EntrySemantic:
    """Classify one entry label.

    Examples::

        parse_entry_semantic("2-1")    → score,  "2-1",      {"home": 2, "away": 1}
        parse_entry_semantic("主胜")    → result, "win"
        parse_entry_semantic("大2.5")   → total,  "over:2.5"
        parse_entry_semantic("角球")    → other,  "角球"
    """
    name = normalize_entry_name(value)
    if not name:
        return EntrySemantic("", MARKET_OTHER, market_label(MARKET_OTHER), "", None)

    for market_type, parser in _MARKET_PARSERS:
        parsed = parser(name)
        if parsed:
            key, detail = parsed
            return EntrySemantic(name, market_type, market_label(market_type), key, detail)

    return EntrySemantic(name, MARKET_OTHER, market_label(MARKET_OTHER), compact_token(name), None)


def _entry_fields(entry: Any) -> tuple[Any, Any]:
    """(name, odds) from a string, a mapping, or an object with attributes."""
    if isinstance(entry, str):
        return entry, None
    if isinstance(entry, Mapping):
        return entry.get("name") or entry.get("entry") or "", entry.get("odds")
    return getattr(entry, "name", "") or "", getattr(entry, "odds", None)


def normalize_entry_record(entry: Any, fallback_odds: float = math.nan) -> NormalizedEntryRecord:
    """Classify an entry and attach its odds (falling back to ``fallback_odds``)."""
    raw_name, raw_odds = _entry_fields(entry)
    semantic = parse_entry_semantic(raw_name)
    odds = to_float(raw_odds, to_float(fallback_odds))
    return NormalizedEntryRecord(
        name=semantic.name,
        odds=odds,
        market_type=semantic.market_type,
        market_label=semantic.market_label,
        semantic_key=semantic.semantic_key,
        detail=semantic.detail,
    )


def normalize_entries(
    entries: Optional[Iterable[Any]],
    entry_text: str = "",
    fallback_odds: float = math.nan,
) -> list[NormalizedEntryRecord]:
    """Normalize a list of entries, or split a legacy ``entry_text`` field.

    When ``entries`` is empty the text is split on ``|`` and ``,`` and each
    piece becomes one entry priced at ``fallback_odds``.  Entries without a
    name are dropped.
    """
    items = list(entries or ())
    if items:
        records = [normalize_entry_record(item, fallback_odds) for item in items]
        return [record for record in records if record.name]

    raw_text = normalize_entry_name(entry_text)
    if not raw_text:
        return []
    pieces = [piece.strip() for piece in _ENTRY_TEXT_SPLIT_RE.split(raw_text)]
    records = [normalize_entry_record(piece, fallback_odds) for piece in pieces if piece]
    return [record for record in records if record.name]


def get_primary_entry_market(
    entries: Optional[Iterable[Any]],
    entry_text: str = "",
) -> PrimaryMarket:
    """Most frequent market type among a match's entries.

    Ties are broken by market rank (score before half/full before handicap
    before total before result), then by first appearance.
    """
    records = normalize_entries(entries, entry_text)
    if not records:
        return PrimaryMarket(MARKET_OTHER, market_label(MARKET_OTHER), "")

    counts: dict[str, list[int]] = {}
    for index, record in enumerate(records):
        market_type = record.market_type or MARKET_OTHER
        if market_type not in counts:
            counts[market_type] = [0, market_rank(market_type), index]
        counts[market_type][0] += 1

    best_type = min(counts, key=lambda mt: (-counts[mt][0], counts[mt][1], counts[mt][2]))
    first = next(record for record in records if record.market_type == best_type)
    return PrimaryMarket(best_type, market_label(best_type), first.semantic_key)
