"""
Cross-match parlay combiner for quickslip.

Joins independent per-match outcome distributions (from
``quickslip.core.atomic``) into the payout distribution of a parlay ticket.
A parlay pays the product of its legs' gross payouts, so the joint
distribution compounds both edge and variance; size it with the Kelly
solver, never with a per-leg heuristic.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from quickslip.core.atomic import (
    DistributionProfile,
    MatchProfile,
    OutcomeState,
    distribution_stats,
    miss_state,
)
from quickslip.core.odds_math import EPS

logger = logging.getLogger(__name__)

# States whose gross payouts agree to this many decimals are merged.  Keeps
# the cross product from growing as 3^n on result-market legs.
GROSS_MERGE_DECIMALS = 8


@dataclass(frozen=True)
class PortfolioProfile(DistributionProfile):
    """Joint payout distribution of a multi-match ticket."""

    legs: int = 0


def _combo_state(gross: float, probability: float) -> OutcomeState:
    key = f"{gross:.{GROSS_MERGE_DECIMALS}f}"
    if gross <= 0.0:
        return OutcomeState(key, "miss", probability, gross, is_miss=True)
    return OutcomeState(key, f"x{gross:.2f}", probability, gross)


def _degenerate_portfolio() -> PortfolioProfile:
    states = (miss_state(),)
    return PortfolioProfile(states=states, legs=0, **distribution_stats(states))


def combine_atomic_match_profiles(
    profiles: Optional[Iterable[Optional[MatchProfile]]],
) -> PortfolioProfile:
    """
    Combine match profiles assuming the matches settle independently.

    Iterative cross product: a joint state's probability is the product of
    its component probabilities and its gross is the product of component
    grosses.  States whose grosses agree to 8 decimals are merged, joint
    mass at or below 1e-9 is dropped, and the result is renormalized.

    Args:
        profiles: Per-match profiles.  ``None`` items are skipped.

    Returns:
        PortfolioProfile.  With no profiles, the degenerate single state
        ``{probability 1, gross 0, net -1}``.
    """
    legs = [p for p in (profiles or ()) if p is not None]
    if not legs:
        return _degenerate_portfolio()

    distribution: dict[str, list[float]] = {"1": [1.0, 1.0]}  # key -> [probability, gross]
    for leg in legs:
        merged: dict[str, list[float]] = {}
        for base_prob, base_gross in distribution.values():
            for state in leg.states:
                probability = base_prob * state.probability
                if probability <= EPS:
                    continue
                gross = base_gross * state.gross
                key = f"{gross:.{GROSS_MERGE_DECIMALS}f}"
                slot = merged.setdefault(key, [0.0, gross])
                slot[0] += probability
        distribution = merged

    total = sum(prob for prob, _ in distribution.values())
    if total <= EPS:
        logger.warning("Parlay of %d leg(s) collapsed to zero probability mass", len(legs))
        return _degenerate_portfolio()

    states = tuple(
        _combo_state(gross, prob / total)
        for prob, gross in distribution.values()
        if prob / total > EPS
    )

    logger.debug(
        "Combined %d leg(s) into %d joint state(s)", len(legs), len(states)
    )
    return PortfolioProfile(states=states, legs=len(legs), **distribution_stats(states))


def format_portfolio_summary(profile: DistributionProfile) -> str:
    """
    Human-readable summary of a match or parlay distribution.

    Args:
        profile: A MatchProfile or PortfolioProfile.

    Returns:
        Multi-line string for logs or a console.
    """
    legs = getattr(profile, "legs", None)
    header = f"{legs}-Leg Parlay" if legs else "Match Profile"

    lines: List[str] = []
    lines.append(f"{header} @ {profile.conditional_odds:.2f} (conditional)")
    lines.append(f"   Hit Prob: {profile.hit_probability:.2%}   Profit Prob: {profile.profit_win_probability:.2%}")
    lines.append(f"   Expected Return: {profile.expected_return:+.4f} per unit   Sigma: {profile.sigma:.4f}")
    lines.append(f"   States: {len(profile.states)}")
    for state in sorted(profile.states, key=lambda s: -s.probability)[:6]:
        lines.append(f"     {state.label:<10} p={state.probability:.4f} gross={state.gross:.4f}")

    return "\n".join(lines)
