"""Atomic outcome decomposition for one match.

Several entries on the same match usually overlap: ``胜`` and ``主不败`` both
pay out when the home side wins.  Sizing them as independent tickets
double-counts that outcome.  This module rewrites a match's entries as a
distribution over **disjoint** atoms so that every atom is counted once.

Model
-----
1. Every entry is classified.  When *all* entries are result-style (the
   result market, or free text naming 胜/平/负, 1X/X2/12, 主不败 and so on),
   atoms are the three match outcomes ``win``/``draw``/``lose``.  Otherwise
   every entry becomes its own singleton atom ``entry_<i>``.
2. Each entry's implied probability ``clamp(1/odds, 1e-4, 0.995)`` is split
   evenly over the atoms it covers and accumulated per atom.  Atom weights
   are renormalized to sum to 1.
3. The probability that *some* entry hits (the union probability) is spread
   over the atoms in proportion to their weights.  A synthetic ``miss``
   state absorbs ``1 − union`` with gross 0.
4. An atom's gross payout is ``Σ split_weight × odds`` over the entries
   that cover it, so the stake split across entries is reflected exactly.

The union probability defaults to the independence approximation
``1 − Π(1 − implied_i)``.  Outcomes inside one market are mutually exclusive,
not independent, so this is a modeling shortcut kept on purpose; pass
``union_probability`` explicitly when a better estimate is available.

All functions are pure.  Nothing here raises on bad odds: invalid entries
are filtered out and the fallback odds stand in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Final, Iterable, Mapping, Optional, Sequence

import numpy as np

from quickslip.core.entry_parsing import (
    MARKET_OTHER,
    MARKET_RESULT,
    NormalizedEntryRecord,
    normalize_entry_record,
)
from quickslip.core.odds_math import (
    EPS,
    IMPLIED_MAX,
    IMPLIED_MIN,
    MIN_DECIMAL_ODDS,
    clamp,
    to_float,
)
from quickslip.core.text_normalizer import compact_token

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_FALLBACK_ODDS: Final[float] = 2.5

#: Per-entry implied probability bounds inside the union estimate.
UNION_IMPLIED_MIN: Final[float] = 0.001
UNION_IMPLIED_MAX: Final[float] = 0.97

#: Bounds on a self-estimated union probability.
UNION_MIN: Final[float] = 0.02
UNION_MAX: Final[float] = 0.95

#: Bounds on a caller-supplied union probability.
SUPPLIED_UNION_MIN: Final[float] = 0.001
SUPPLIED_UNION_MAX: Final[float] = 0.999

MISS_STATE_ID: Final[str] = "miss"

RESULT_ATOMS: Final[tuple[str, ...]] = ("win", "draw", "lose")

RESULT_LABEL_MAP: Final[dict[str, str]] = {
    "win": "主胜",
    "draw": "平",
    "lose": "客胜",
}

#: Single tokens, including the 1/X/2 pool notation.
RESULT_TOKEN_MAP: Final[dict[str, str]] = {
    **{token: "win" for token in ("w", "win", "home", "homewin", "h", "主胜", "主", "胜", "1")},
    **{token: "draw" for token in ("d", "draw", "x", "平", "平局", "0")},
    **{token: "lose" for token in ("l", "lose", "away", "awaywin", "a", "客胜", "客", "负", "2")},
}

#: Double-chance phrases, checked as substrings of the compact text.
DOUBLE_CHANCE_PHRASES: Final[tuple[tuple[tuple[str, str], tuple[str, ...]], ...]] = (
    (
        ("win", "draw"),
        ("胜平", "平胜", "主不败", "1x", "x1", "winordraw", "draworwin", "homeordraw", "draworhome"),
    ),
    (
        ("draw", "lose"),
        ("平负", "负平", "客不败", "x2", "2x", "draworlose", "loseordraw", "draworaway", "awayordraw"),
    ),
    (
        ("win", "lose"),
        ("胜负", "负胜", "12", "21", "winorlose", "loseorwin", "homeoraway", "awayorhome"),
    ),
)

_TOKEN_SEPARATORS: Final[tuple[str, ...]] = (
    "(", ")", "，", ",", "/", "|", "+", "&", ";", "、", "或", "和", "or",
)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AtomicDescriptor:
    """One priced entry and the atoms it pays out on."""

    id: str
    index: int
    name: str
    odds: float
    implied: float
    atoms: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class OutcomeState:
    """One state of a discrete payout distribution.

    ``gross`` is the payout per unit staked on the whole match (or parlay),
    stake included; ``net`` is ``gross − 1``.
    """

    id: str
    label: str
    probability: float
    gross: float
    is_miss: bool = False

    @property
    def net(self) -> float:
        return self.gross - 1.0


@dataclass(frozen=True, slots=True)
class EntryHit:
    """Per-entry view of a match profile."""

    id: str
    name: str
    odds: float
    split_weight: float
    atom_keys: tuple[str, ...]
    hit_probability: float


@dataclass(frozen=True)
class DistributionProfile:
    """A normalized payout distribution plus its summary statistics."""

    states: tuple[OutcomeState, ...]
    hit_probability: float
    miss_probability: float
    profit_win_probability: float
    expected_gross: float
    expected_return: float
    variance: float
    sigma: float
    conditional_odds: float

    @property
    def equivalent_odds(self) -> float:
        """Expected gross given a hit; same as :attr:`conditional_odds`."""
        return self.conditional_odds


@dataclass(frozen=True)
class MatchProfile(DistributionProfile):
    """Decomposed distribution of one match."""

    entries: tuple[EntryHit, ...] = field(default_factory=tuple)
    union_probability: float = math.nan
    fallback_odds: float = DEFAULT_FALLBACK_ODDS


# ---------------------------------------------------------------------------
# Distribution statistics
# ---------------------------------------------------------------------------


def miss_state() -> OutcomeState:
    return OutcomeState(MISS_STATE_ID, MISS_STATE_ID, 1.0, 0.0, is_miss=True)


def distribution_stats(states: Sequence[OutcomeState]) -> dict[str, float]:
    """Summary statistics of a normalized distribution.

    A state counts as a hit when it is not a miss.  ``conditional_odds`` is
    the expected gross given a hit (0 when the hit mass is zero).
    """
    if not states:
        return {
            "hit_probability": 0.0,
            "miss_probability": 1.0,
            "profit_win_probability": 0.0,
            "expected_gross": 0.0,
            "expected_return": -1.0,
            "variance": 0.0,
            "sigma": 0.0,
            "conditional_odds": 0.0,
        }

    probs = np.array([s.probability for s in states], dtype=float)
    gross = np.array([s.gross for s in states], dtype=float)
    hits = np.array([not s.is_miss for s in states], dtype=bool)
    nets = gross - 1.0

    expected_gross = float(np.sum(probs * gross))
    expected_return = expected_gross - 1.0
    variance = max(float(np.sum(probs * (nets - expected_return) ** 2)), 0.0)
    hit_probability = float(np.sum(probs[hits]))
    conditional = (
        float(np.sum(probs[hits] * gross[hits])) / hit_probability
        if hit_probability > EPS
        else 0.0
    )

    return {
        "hit_probability": hit_probability,
        "miss_probability": max(0.0, 1.0 - hit_probability),
        "profit_win_probability": float(np.sum(probs[nets > 0.0])),
        "expected_gross": expected_gross,
        "expected_return": expected_return,
        "variance": variance,
        "sigma": math.sqrt(variance),
        "conditional_odds": conditional,
    }


# ---------------------------------------------------------------------------
# Outcome-set detection
# ---------------------------------------------------------------------------


def _outcome_set_from_text(raw: object) -> Optional[tuple[str, ...]]:
    text = str(raw or "").strip()
    if not text:
        return None
    compact = compact_token(text)
    outcomes: dict[str, None] = {}

    for pair, phrases in DOUBLE_CHANCE_PHRASES:
        if any(phrase in compact for phrase in phrases):
            outcomes.update(dict.fromkeys(pair))

    tokenized = text.lower()
    for separator in _TOKEN_SEPARATORS:
        tokenized = tokenized.replace(separator, " ")
    for token in tokenized.split():
        outcome = RESULT_TOKEN_MAP.get(token)
        if outcome:
            outcomes[outcome] = None

    if not outcomes:
        for char, outcome in (("胜", "win"), ("平", "draw"), ("负", "lose")):
            if char in text:
                outcomes[outcome] = None

    return tuple(outcomes) or None


def _field(entry: Any, name: str) -> Any:
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def parse_result_outcome_set(entry: Any) -> Optional[tuple[str, ...]]:
    """Result outcomes an entry covers, or ``None`` when it is not result-style.

    Entries of a typed market other than ``result``/``other`` (a score, a
    handicap…) are never result-style.  The semantic key is read first, then
    the raw name.

    Examples::

        主胜      → ("win",)
        胜平      → ("win", "draw")
        X2       → ("draw", "lose")
        2-1      → None
    """
    market_type = str(_field(entry, "market_type") or "").strip()
    if market_type and market_type not in (MARKET_RESULT, MARKET_OTHER):
        return None
    return _outcome_set_from_text(_field(entry, "semantic_key")) or _outcome_set_from_text(
        _field(entry, "name")
    )


# ---------------------------------------------------------------------------
# Entry preparation
# ---------------------------------------------------------------------------


def _safe_fallback_odds(fallback_odds: Any) -> float:
    return max(MIN_DECIMAL_ODDS, to_float(fallback_odds, DEFAULT_FALLBACK_ODDS))


def _priced_entries(
    entries: Optional[Iterable[Any]],
    fallback_odds: Any,
) -> list[NormalizedEntryRecord]:
    """Classified entries with usable odds; nameless entries become ``entry-<n>``."""
    fallback = to_float(fallback_odds)
    records: list[NormalizedEntryRecord] = []
    for index, entry in enumerate(entries or ()):
        record = normalize_entry_record(entry, fallback)
        if not record.name:
            record = normalize_entry_record(
                {"name": f"entry-{index + 1}", "odds": record.odds}, fallback
            )
        if record.has_valid_odds:
            records.append(record)
    return records


def _split_weights(count: int, weights: Optional[Sequence[Any]]) -> list[float]:
    if count <= 0:
        return []
    equal = [1.0 / count] * count
    if weights is None or len(weights) != count:
        return equal
    safe = [max(0.0, to_float(value, 0.0)) for value in weights]
    total = sum(safe)
    if total <= EPS:
        return equal
    return [value / total for value in safe]


def build_entry_descriptors(
    entries: Sequence[NormalizedEntryRecord],
) -> list[AtomicDescriptor]:
    """Attach atoms to priced entries.

    The result-outcome model is used only when every entry maps to a
    non-empty outcome set; a single non-result entry switches the whole
    match to singleton atoms.
    """
    outcome_sets = [parse_result_outcome_set(entry) for entry in entries]
    use_result_model = all(outcome_sets)
    descriptors = []
    for index, entry in enumerate(entries):
        atoms = outcome_sets[index] if use_result_model else (f"entry_{index}",)
        descriptors.append(
            AtomicDescriptor(
                id=f"entry-{index + 1}",
                index=index,
                name=entry.name,
                odds=entry.odds,
                implied=clamp(1.0 / entry.odds, IMPLIED_MIN, IMPLIED_MAX),
                atoms=atoms,
            )
        )
    return descriptors


def _atom_weights(descriptors: Sequence[AtomicDescriptor]) -> dict[str, float]:
    weights: dict[str, float] = {}
    for descriptor in descriptors:
        share = descriptor.implied / max(1, len(descriptor.atoms))
        for atom in descriptor.atoms:
            weights[atom] = weights.get(atom, 0.0) + share

    if not weights:
        return {}
    total = sum(weights.values())
    if total <= EPS:
        return {atom: 1.0 / len(weights) for atom in weights}
    return {atom: weight / total for atom, weight in weights.items()}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def estimate_entry_union_probability(
    entries: Optional[Iterable[Any]],
    fallback_odds: Any = DEFAULT_FALLBACK_ODDS,
) -> float:
    """Probability that at least one entry settles as a winner.

    Independence approximation ``1 − Π(1 − clamp(1/odds, 0.001, 0.97))``,
    clamped to ``[0.02, 0.95]``.  With no priced entry the answer is
    ``clamp(1 / fallback_odds, 0.02, 0.95)``.

    Examples::

        estimate_entry_union_probability([{"odds": 2.0}])                  → 0.5
        estimate_entry_union_probability([{"odds": 2.0}, {"odds": 2.0}])   → 0.75
    """
    fallback = clamp(1.0 / _safe_fallback_odds(fallback_odds), UNION_MIN, UNION_MAX)
    records = _priced_entries(entries, fallback_odds)
    if not records:
        return fallback
    miss = 1.0
    for record in records:
        miss *= 1.0 - clamp(1.0 / record.odds, UNION_IMPLIED_MIN, UNION_IMPLIED_MAX)
    return clamp(1.0 - miss, UNION_MIN, UNION_MAX)


def estimate_entry_anchor_odds(
    entries: Optional[Iterable[Any]],
    fallback_odds: Any = DEFAULT_FALLBACK_ODDS,
) -> float:
    """Fair price of "any entry hits": ``1 / union``, floored at 1.01."""
    union = estimate_entry_union_probability(entries, fallback_odds)
    return max(MIN_DECIMAL_ODDS, 1.0 / max(union, UNION_IMPLIED_MIN))


def build_atomic_match_profile(
    entries: Optional[Iterable[Any]],
    union_probability: Optional[float] = None,
    fallback_odds: Any = DEFAULT_FALLBACK_ODDS,
    split_weights: Optional[Sequence[Any]] = None,
) -> MatchProfile:
    """Decompose a match's entries into a disjoint outcome distribution.

    Args:
        entries: Entry records, mappings (``name``/``odds``) or strings.
            Entries without odds take ``fallback_odds``; entries whose odds
            are not above 1 are dropped.
        union_probability: Probability that some entry hits.  Clamped to
            ``[0.001, 0.999]`` when given; estimated otherwise.
        fallback_odds: Price for entries without one, and for the synthetic
            ``default`` entry used when no entry is usable.
        split_weights: Stake split across the usable entries.  Ignored
            unless it has one weight per usable entry; normalized to sum to 1.

    Returns:
        :class:`MatchProfile` whose state probabilities sum to 1.
    """
    safe_fallback = _safe_fallback_odds(fallback_odds)
    records = _priced_entries(entries, fallback_odds)
    if not records:
        records = [normalize_entry_record({"name": "default", "odds": safe_fallback})]

    descriptors = build_entry_descriptors(records)
    weights = _split_weights(len(descriptors), split_weights)

    supplied = to_float(union_probability)
    if math.isfinite(supplied):
        union = clamp(supplied, SUPPLIED_UNION_MIN, SUPPLIED_UNION_MAX)
    else:
        union = estimate_entry_union_probability(records, fallback_odds)

    atom_names = {
        atom: descriptor.name
        for descriptor in descriptors
        for atom in descriptor.atoms
        if atom not in RESULT_LABEL_MAP
    }

    states: list[OutcomeState] = []
    for atom, atom_weight in _atom_weights(descriptors).items():
        probability = clamp(union * atom_weight, 0.0, 1.0)
        if probability <= EPS:
            continue
        gross = sum(
            weights[d.index] * d.odds for d in descriptors if atom in d.atoms
        )
        label = RESULT_LABEL_MAP.get(atom) or atom_names.get(atom, atom)
        states.append(OutcomeState(atom, label, probability, gross))

    miss_probability = clamp(1.0 - union, 0.0, 1.0)
    if miss_probability > EPS:
        states.append(
            OutcomeState(MISS_STATE_ID, MISS_STATE_ID, miss_probability, 0.0, is_miss=True)
        )

    total = sum(state.probability for state in states)
    if total > EPS:
        normalized = tuple(
            OutcomeState(s.id, s.label, s.probability / total, s.gross, s.is_miss)
            for s in states
        )
    else:
        normalized = (miss_state(),)

    entry_hits = tuple(
        EntryHit(
            id=d.id,
            name=d.name,
            odds=d.odds,
            split_weight=weights[d.index],
            atom_keys=d.atoms,
            hit_probability=sum(
                s.probability for s in normalized if not s.is_miss and s.id in d.atoms
            ),
        )
        for d in descriptors
    )

    return MatchProfile(
        states=normalized,
        entries=entry_hits,
        union_probability=union,
        fallback_odds=safe_fallback,
        **distribution_stats(normalized),
    )


def calc_atomic_equivalent_odds(
    entries: Optional[Iterable[Any]],
    fallback_odds: Any = DEFAULT_FALLBACK_ODDS,
) -> float:
    """Single decimal price equivalent to a match's entry bundle.

    The conditional odds of the self-estimated profile, floored at 1.01.
    Used where a legacy single-odds field has to stand for several entries.
    """
    entries = list(entries or ())
    union = estimate_entry_union_probability(entries, fallback_odds)
    profile = build_atomic_match_profile(entries, union, fallback_odds)
    return max(MIN_DECIMAL_ODDS, to_float(profile.conditional_odds, _safe_fallback_odds(fallback_odds)))
