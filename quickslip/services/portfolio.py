"""
Stake recommendation for a confirmed slip.

Turns parsed match drafts into a currency amount:

    1. Match probability: each draft's confidence is lifted or damped by its
       mode, TYS, FID and FSE factors into the union probability of the
       match's entries.
    2. Distribution: entries are decomposed per match (core.atomic) and the
       matches are combined into one parlay distribution (parlay_engine).
    3. Kelly: the growth-optimal fraction of that distribution
       (core.kelly), divided by the mean mode divisor.
    4. Lift and cap: scaled by ``0.88 + 0.24 × expected_rating`` and capped
       at ``initial_capital × risk_cap_ratio``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from quickslip.core.atomic import MatchProfile, build_atomic_match_profile
from quickslip.core.engine_config import EngineConfig
from quickslip.core.kelly import solve_kelly_fraction
from quickslip.core.odds_math import clamp, is_valid_odds, to_float
from quickslip.services.parlay_engine import PortfolioProfile, combine_atomic_match_profiles

logger = logging.getLogger(__name__)

# Fractional-Kelly divisor per mode.  Insurance-style modes size up,
# gamble-style modes size down.
MODE_KELLY_DIVISOR: Dict[str, float] = {
    "常规": 4.0,
    "常规-稳": 3.5,
    "常规-杠杆": 4.5,
    "常规-激进": 4.5,
    "半彩票半保险": 5.0,
    "保险产品": 3.0,
    "赌一把": 6.0,
}

MODE_FACTOR: Dict[str, float] = {
    "常规": 1.0,
    "常规-稳": 1.05,
    "常规-杠杆": 0.95,
    "常规-激进": 0.95,
    "半彩票半保险": 0.92,
    "保险产品": 1.08,
    "赌一把": 0.88,
}

TYS_FACTOR: Dict[str, float] = {"S": 0.94, "M": 1.0, "L": 1.04, "H": 1.08}

FID_FACTOR: Dict[float, float] = {
    0.0: 0.92,
    0.25: 0.99,
    0.4: 1.02,
    0.5: 1.05,
    0.6: 1.07,
    0.75: 1.1,
}

# Exponents applied to each factor in the probability lift.
FACTOR_WEIGHTS: Dict[str, float] = {
    "conf": 0.45,
    "mode": 0.16,
    "tys": 0.12,
    "fid": 0.14,
    "fse": 0.07,
}

CONFIDENCE_LIFT_BASE = 0.88
CONFIDENCE_LIFT_SLOPE = 0.24


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class StakeRecommendation:
    """Output of stake sizing for one slip."""

    kelly_fraction: float
    kelly_divisor: float
    expected_rating: float
    confidence_lift: float
    risk_cap: int
    raw_amount: float
    recommended_amount: int
    reason: str


# ---------------------------------------------------------------------------
# Per-match inputs
# ---------------------------------------------------------------------------

def mode_kelly_divisor(mode: Optional[str], config: Optional[EngineConfig] = None) -> float:
    """Kelly divisor for a mode; unknown modes use the configured divisor."""
    config = config or EngineConfig()
    return MODE_KELLY_DIVISOR.get(mode or "", config.kelly_divisor)


def _fid_factor(fid: Any) -> float:
    value = to_float(fid)
    for rung, factor in FID_FACTOR.items():
        if abs(value - rung) < 1e-9:
            return factor
    return 1.0


def estimate_match_probability(match: Any) -> float:
    """
    Probability that some entry of ``match`` hits, from its draft parameters.

    ``0.5 × Π factorᵂ`` over the confidence signal (conf / 50), the mode,
    the mean TYS factor of both sides, the FID rung and the FSE agreement
    ``0.85 + 0.3 × sqrt(fse_home × fse_away)``, clamped to [0.05, 0.95].

    Args:
        match: A MatchDraft, MatchRecord, or anything with the same
            attributes (conf, mode, tys_home, tys_away, fid, fse_home,
            fse_away).
    """
    conf = clamp(to_float(getattr(match, "conf", 50), 50.0) / 100.0, 0.05, 0.95)
    conf_signal = clamp(conf / 0.5, 0.15, 1.95)
    mode_factor = MODE_FACTOR.get(getattr(match, "mode", "") or "", 1.0)
    tys_factor = (
        TYS_FACTOR.get(getattr(match, "tys_home", "M"), 1.0)
        + TYS_FACTOR.get(getattr(match, "tys_away", "M"), 1.0)
    ) / 2.0
    fid_factor = _fid_factor(getattr(match, "fid", 0.4))
    fse_home = clamp(to_float(getattr(match, "fse_home", 50), 50.0), 0.0, 100.0) / 100.0
    fse_away = clamp(to_float(getattr(match, "fse_away", 50), 50.0), 0.0, 100.0) / 100.0
    fse_factor = clamp(0.85 + math.sqrt(fse_home * fse_away) * 0.3, 0.72, 1.35)

    lift = (
        conf_signal ** FACTOR_WEIGHTS["conf"]
        * mode_factor ** FACTOR_WEIGHTS["mode"]
        * tys_factor ** FACTOR_WEIGHTS["tys"]
        * fid_factor ** FACTOR_WEIGHTS["fid"]
        * fse_factor ** FACTOR_WEIGHTS["fse"]
    )
    return clamp(0.5 * lift, 0.05, 0.95)


def _priced_entries(match: Any) -> List[Dict[str, Any]]:
    priced = []
    for entry in getattr(match, "entries", None) or []:
        name = getattr(entry, "name", "")
        odds = to_float(getattr(entry, "odds", None))
        if name and is_valid_odds(odds):
            priced.append({"name": name, "odds": odds})
    return priced


def build_match_profiles(
    matches: Iterable[Any],
    config: Optional[EngineConfig] = None,
) -> List[MatchProfile]:
    """
    Decompose each match into an outcome profile.

    Only entries with usable odds are kept.  A match priced only by its
    fallback odds (no entries) is sized as one entry at that price.
    """
    config = config or EngineConfig()
    profiles = []
    for match in matches:
        raw_fallback = getattr(match, "fallback_odds", None) or getattr(match, "odds", None)
        fallback = to_float(raw_fallback, config.default_odds)
        profiles.append(
            build_atomic_match_profile(
                _priced_entries(match),
                union_probability=estimate_match_probability(match),
                fallback_odds=fallback,
            )
        )
    return profiles


# ---------------------------------------------------------------------------
# Recommendation
# ---------------------------------------------------------------------------

def recommend_stake(
    portfolio: PortfolioProfile,
    modes: Sequence[Optional[str]],
    expected_rating: float,
    config: Optional[EngineConfig] = None,
) -> StakeRecommendation:
    """
    Currency stake for a combined distribution.

    Args:
        portfolio: Joint distribution of the ticket.
        modes: Mode of every match on the ticket; the Kelly divisor is the
            mean of their divisors.
        expected_rating: Mean match probability, in [0, 1].
        config: Bankroll, risk cap and Kelly settings.

    Returns:
        StakeRecommendation.  The amount is whole currency units in
        ``[0, risk_cap]``.
    """
    config = config or EngineConfig()
    risk_cap = config.risk_cap

    divisors = [mode_kelly_divisor(mode, config) for mode in modes]
    divisor = sum(divisors) / len(divisors) if divisors else config.kelly_divisor
    if not math.isfinite(divisor) or divisor <= 0:
        divisor = config.kelly_divisor

    rating = clamp(to_float(expected_rating, 0.0), 0.0, 1.0)
    lift = CONFIDENCE_LIFT_BASE + rating * CONFIDENCE_LIFT_SLOPE

    kelly = solve_kelly_fraction(portfolio.states, config.max_kelly_fraction)
    if kelly <= 0.0:
        logger.info("No stake: Kelly fraction is 0 for %d-state distribution", len(portfolio.states))
        return StakeRecommendation(
            kelly_fraction=0.0,
            kelly_divisor=divisor,
            expected_rating=rating,
            confidence_lift=lift,
            risk_cap=risk_cap,
            raw_amount=0.0,
            recommended_amount=0,
            reason="no positive-growth stake",
        )

    raw = config.initial_capital * kelly / divisor
    amount = min(risk_cap, max(0, round(raw * lift)))
    reason = "capped at risk limit" if amount == risk_cap and round(raw * lift) > risk_cap else "kelly"

    logger.info(
        "Stake: kelly=%.4f divisor=%.2f lift=%.3f raw=%.2f -> %d (cap %d)",
        kelly, divisor, lift, raw, amount, risk_cap,
    )
    return StakeRecommendation(
        kelly_fraction=kelly,
        kelly_divisor=divisor,
        expected_rating=rating,
        confidence_lift=lift,
        risk_cap=risk_cap,
        raw_amount=raw,
        recommended_amount=amount,
        reason=reason,
    )


def recommend_stake_for_matches(
    matches: Sequence[Any],
    config: Optional[EngineConfig] = None,
) -> StakeRecommendation:
    """Profiles -> parlay -> stake, in one call, for confirmed drafts or records."""
    config = config or EngineConfig()
    profiles = build_match_profiles(matches, config)
    portfolio = combine_atomic_match_profiles(profiles)
    rating = (
        sum(p.union_probability for p in profiles) / len(profiles) if profiles else 0.0
    )
    return recommend_stake(portfolio, [getattr(m, "mode", None) for m in matches], rating, config)
