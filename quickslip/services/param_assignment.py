"""
Parameter assignment: extracted values -> per-match values.

A slip like ``"阿森纳vs切尔西 胜, 曼联vs利物浦 平, conf 55 60, fse 0.8 0.6 0.7 0.5"``
yields two matches and flat value lists; which value belongs to which match
(and to which side) is decided here.  The heuristics are written as explicit
decision tables so that every outcome can be traced to one named rule.

Scalar fields (conf, fid)
-------------------------
==========================  ==============  ==============================
value count                 rule            effect
==========================  ==============  ==============================
0                           ``none``        defaults stay
1                           ``broadcast``   value to every match
== match count              ``positional``  value i -> match i
anything else               ``overlap``     value i -> match i while both
                                            exist; reported as info
==========================  ==============  ==============================

Side-paired fields (fse, tys), keyed by (has_side_markers, values, matches)
-----------------------------------------------------------------------------
==============  =====================  =====================  =====================
side markers    value count            rule                   effect
==============  =====================  =====================  =====================
no              0                      ``none``
no              1                      ``broadcast``          both sides, every match
no              2 and 1 match          ``home_away``          [home, away]
no              2 × matches            ``consecutive_pairs``  pair i -> match i
no              even, >= 2             ``partial_pairs``      pairs for the first
                                                              min(m, v/2) matches
no              otherwise              ``per_match``          value i -> both sides
                                                              of match i
yes             any                    ``explicit_sides``     global values as
                                                              above, then home/away
                                                              values per side with
                                                              the scalar rules
==============  =====================  =====================  =====================

Odds
----
=================================  ==================  ===========================
condition                          rule                effect
=================================  ==================  ===========================
no values                          ``none``
one group per match                ``per_group``       group i -> match i
one flat value                     ``broadcast``       value to every match
flat count == match count          ``positional``      value i -> match i
one match                          ``single_match``    every value -> that match
otherwise                          ``overlap``         value i -> match i; info
=================================  ==================  ===========================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from quickslip.services.param_extraction import ParsedParameters

logger = logging.getLogger(__name__)

Predicate = Callable[[int, int], bool]


# ---------------------------------------------------------------------------
# Decision tables
# ---------------------------------------------------------------------------

SCALAR_RULES: tuple[tuple[str, Predicate], ...] = (
    ("none", lambda v, m: v == 0),
    ("broadcast", lambda v, m: v == 1),
    ("positional", lambda v, m: v == m),
    ("overlap", lambda v, m: True),
)

SIDE_PAIR_RULES: tuple[tuple[bool, str, Predicate], ...] = (
    (True, "explicit_sides", lambda v, m: True),
    (False, "none", lambda v, m: v == 0),
    (False, "broadcast", lambda v, m: v == 1),
    (False, "home_away", lambda v, m: v == 2 and m == 1),
    (False, "consecutive_pairs", lambda v, m: v == 2 * m),
    (False, "partial_pairs", lambda v, m: v >= 2 and v % 2 == 0),
    (False, "per_match", lambda v, m: True),
)

ODDS_RULES: tuple[tuple[str, Callable[[int, int, int], bool]], ...] = (
    ("none", lambda g, v, m: v == 0),
    ("per_group", lambda g, v, m: g == m),
    ("broadcast", lambda g, v, m: v == 1),
    ("positional", lambda g, v, m: v == m),
    ("single_match", lambda g, v, m: m == 1),
    ("overlap", lambda g, v, m: True),
)


def select_scalar_rule(value_count: int, match_count: int) -> str:
    for name, applies in SCALAR_RULES:
        if applies(value_count, match_count):
            return name
    raise RuntimeError("scalar rule table has no fallback row")


def select_side_rule(has_side_markers: bool, value_count: int, match_count: int) -> str:
    """Rule name for a side-paired field (see the module table)."""
    for markers, name, applies in SIDE_PAIR_RULES:
        if markers == bool(has_side_markers) and applies(value_count, match_count):
            return name
    raise RuntimeError("side rule table has no fallback row")


def select_odds_rule(group_count: int, value_count: int, match_count: int) -> str:
    for name, applies in ODDS_RULES:
        if applies(group_count, value_count, match_count):
            return name
    raise RuntimeError("odds rule table has no fallback row")


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass
class MatchParameters:
    """Values assigned to one match.  ``None`` means "keep the default"."""
    conf: Optional[int] = None
    mode: Optional[str] = None
    fid: Optional[float] = None
    fse_home: Optional[int] = None
    fse_away: Optional[int] = None
    tys_home: Optional[str] = None
    tys_away: Optional[str] = None
    odds: list[float] = field(default_factory=list)


@dataclass
class AssignmentResult:
    matches: list[MatchParameters]
    rules: dict[str, str] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Rule application
# ---------------------------------------------------------------------------

def _scalar_values(values: Sequence[Any], match_count: int) -> tuple[str, list[Any]]:
    """Per-match values for a scalar field; ``None`` where nothing applies."""
    rule = select_scalar_rule(len(values), match_count)
    if rule == "none":
        return rule, [None] * match_count
    if rule == "broadcast":
        return rule, [values[0]] * match_count
    return rule, [values[i] if i < len(values) else None for i in range(match_count)]


def _pair_values(values: Sequence[Any], match_count: int, rule: str) -> list[tuple[Any, Any]]:
    if rule == "none":
        return [(None, None)] * match_count
    if rule == "broadcast":
        return [(values[0], values[0])] * match_count
    if rule == "home_away":
        return [(values[0], values[1])]
    if rule in ("consecutive_pairs", "partial_pairs"):
        paired = min(match_count, len(values) // 2)
        pairs = [(values[2 * i], values[2 * i + 1]) for i in range(paired)]
        return pairs + [(None, None)] * (match_count - paired)
    # per_match
    return [
        (values[i], values[i]) if i < len(values) else (None, None)
        for i in range(match_count)
    ]


def _assign_side_field(
    name: str,
    global_values: Sequence[Any],
    home_values: Sequence[Any],
    away_values: Sequence[Any],
    has_side_markers: bool,
    result: AssignmentResult,
) -> None:
    match_count = len(result.matches)
    rule = select_side_rule(has_side_markers, len(global_values), match_count)
    result.rules[name] = rule

    global_rule = (
        select_side_rule(False, len(global_values), match_count)
        if rule == "explicit_sides"
        else rule
    )
    pairs = _pair_values(global_values, match_count, global_rule)
    if global_rule in ("partial_pairs", "per_match") and global_values:
        result.notes.append(
            f"{name}: {len(global_values)} value(s) for {match_count} match(es), "
            f"assigned by {global_rule.replace('_', ' ')}"
        )

    for params, (home, away) in zip(result.matches, pairs):
        if home is not None:
            setattr(params, f"{name}_home", home)
        if away is not None:
            setattr(params, f"{name}_away", away)

    if rule != "explicit_sides":
        return

    for side, values in (("home", home_values), ("away", away_values)):
        side_rule, per_match = _scalar_values(values, match_count)
        if side_rule == "overlap":
            result.notes.append(
                f"{name}_{side}: {len(values)} value(s) for {match_count} match(es)"
            )
        for params, value in zip(result.matches, per_match):
            if value is not None:
                setattr(params, f"{name}_{side}", value)


def _assign_odds(params: ParsedParameters, result: AssignmentResult) -> None:
    match_count = len(result.matches)
    rule = select_odds_rule(len(params.odds_groups), len(params.odds), match_count)
    result.rules["odds"] = rule

    if rule == "per_group":
        for target, group in zip(result.matches, params.odds_groups):
            target.odds = list(group)
    elif rule == "broadcast":
        for target in result.matches:
            target.odds = [params.odds[0]]
    elif rule == "single_match":
        result.matches[0].odds = list(params.odds)
    elif rule in ("positional", "overlap"):
        for target, value in zip(result.matches, params.odds):
            target.odds = [value]
        if rule == "overlap":
            result.notes.append(
                f"odds: {len(params.odds)} value(s) for {match_count} match(es)"
            )


def assign_parameters(params: ParsedParameters, match_count: int) -> AssignmentResult:
    """
    Distribute extracted parameters over ``match_count`` matches.

    Confidence and FSE are clamped to 0..100.  Count mismatches that had to
    be resolved by a best-effort rule are reported in ``notes``.
    """
    result = AssignmentResult(matches=[MatchParameters() for _ in range(match_count)])
    if match_count == 0:
        return result

    for name, values in (("conf", params.conf), ("fid", params.fid)):
        rule, per_match = _scalar_values(values, match_count)
        result.rules[name] = rule
        if rule == "overlap":
            result.notes.append(f"{name}: {len(values)} value(s) for {match_count} match(es)")
        for target, value in zip(result.matches, per_match):
            if value is None:
                continue
            setattr(target, name, max(0, min(100, value)) if name == "conf" else value)

    if params.mode:
        result.rules["mode"] = "broadcast"
        for target in result.matches:
            target.mode = params.mode

    _assign_side_field(
        "fse",
        [max(0, min(100, v)) for v in params.fse],
        [max(0, min(100, v)) for v in params.fse_home],
        [max(0, min(100, v)) for v in params.fse_away],
        bool(params.fse_home or params.fse_away),
        result,
    )
    _assign_side_field(
        "tys",
        params.tys,
        params.tys_home,
        params.tys_away,
        bool(params.tys_home or params.tys_away),
        result,
    )
    _assign_odds(params, result)

    logger.debug("Parameter rules for %d match(es): %s", match_count, result.rules)
    return result
