"""Kelly criterion sizing: the single source of truth for stake-fraction math.

All functions here are **pure**: no I/O, no logging.
Import from this module; never reimplement Kelly locally in services.

Two sizing contexts are covered:

1. :func:`kelly_fraction`: closed-form Kelly for a plain win/loss ticket.
2. :func:`solve_kelly_fraction`: numerical Kelly for an arbitrary discrete
   outcome distribution, as produced by the atomic decomposer and the
   parlay combiner.  A double-chance ticket or a multi-leg parlay has more
   than two outcomes with different payouts, so there is no closed form.

Design decisions
----------------
* The numerical solver is a **grid search**, not Newton iteration.  The
  objective is concave in ``f`` but becomes ``-inf`` the moment any state
  can wipe out more than the bankroll, which makes derivative-based
  methods fragile near the boundary.  A coarse scan followed by a few
  shrinking-window refinements is bounded, deterministic and never raises.
* The stake fraction is capped at :data:`MAX_KELLY_FRACTION` (0.95).
  Full Kelly on a near-certain ticket would otherwise recommend the entire
  bankroll.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from typing import Any, Final, Iterable, Mapping

import numpy as np

from quickslip.core.odds_math import EPS, clamp, to_float

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Hard cap on any Kelly output, irrespective of edge.
MAX_KELLY_FRACTION: Final[float] = 0.95

#: Step of the coarse scan over ``[0, max_fraction]``.
COARSE_STEP: Final[float] = 0.02

#: Initial refinement step (one fifth of the coarse step).
REFINE_STEP: Final[float] = COARSE_STEP / 5.0

#: Number of shrinking-window refinement rounds after the coarse scan.
REFINE_ROUNDS: Final[int] = 4

#: Growth factors at or below this are treated as ruin.
_RUIN_GROWTH: Final[float] = 1e-9


# ---------------------------------------------------------------------------
# Closed-form Kelly
# ---------------------------------------------------------------------------


def kelly_fraction(
    win_prob: float,
    decimal_odds: float,
    *,
    fractional_divisor: float = 1.0,
    max_fraction: float = MAX_KELLY_FRACTION,
) -> float:
    """Compute Kelly bet size for a simple win/loss outcome.

    The Kelly criterion maximises the expected logarithm of wealth::

        max_f  p · log(1 + f·b)  +  q · log(1 − f)

    where ``b = decimal_odds − 1`` is the profit per unit and ``q = 1 − p``.
    The closed-form solution (Kelly 1956) is::

        f*  =  (p · b − q) / b                                   (1)

    For a two-state distribution ``{p: net b, q: net −1}`` this matches
    :func:`solve_kelly_fraction` up to the grid resolution.

    Args:
        win_prob: Probability of winning, in ``(0, 1)``.
        decimal_odds: Decimal odds of the ticket.
        fractional_divisor: Divisor applied to full Kelly.  Default 1 (full).
        max_fraction: Hard cap on the output fraction.

    Returns:
        Kelly fraction in ``[0, max_fraction]``; 0.0 for a non-positive edge.

    Raises:
        ValueError: If ``win_prob`` is not in ``(0, 1)``, ``decimal_odds`` is
            not above 1.0, or ``fractional_divisor`` is not positive.

    Examples::

        kelly_fraction(0.55, 2.0)                        →  0.10
        kelly_fraction(0.60, 2.1)                        →  0.236
        kelly_fraction(0.45, 2.0)                        →  0.0
        kelly_fraction(0.55, 2.0, fractional_divisor=4)  →  0.025
    """
    if not (0.0 < win_prob < 1.0):
        raise ValueError(
            f"win_prob must be in (0, 1), got {win_prob!r}. "
            "Check upstream probability clipping."
        )
    if not decimal_odds > 1.0:
        raise ValueError(
            f"decimal_odds must be > 1.0 (no profit otherwise), got {decimal_odds!r}."
        )
    if fractional_divisor <= 0.0:
        raise ValueError(
            f"fractional_divisor must be > 0, got {fractional_divisor!r}."
        )

    profit_per_unit = decimal_odds - 1.0
    loss_prob = 1.0 - win_prob

    # Full Kelly (equation 1)
    full_kelly = (win_prob * profit_per_unit - loss_prob) / profit_per_unit

    if full_kelly <= 0.0:
        return 0.0

    return min(full_kelly / fractional_divisor, max_fraction)


# ---------------------------------------------------------------------------
# Kelly over a discrete distribution
# ---------------------------------------------------------------------------


def _coerce_states(states: Iterable[Any]) -> tuple[np.ndarray, np.ndarray]:
    """Pull ``(probability, net)`` arrays out of state objects or mappings.

    States with non-positive probability or a non-finite net are dropped.
    """
    probs: list[float] = []
    nets: list[float] = []
    for state in states or ():
        if isinstance(state, Mapping):
            raw_prob, raw_net = state.get("probability"), state.get("net")
        else:
            raw_prob = getattr(state, "probability", None)
            raw_net = getattr(state, "net", None)
        prob = clamp(to_float(raw_prob, 0.0), 0.0, 1.0)
        net = to_float(raw_net)
        if prob > EPS and math.isfinite(net):
            probs.append(prob)
            nets.append(net)
    return np.asarray(probs, dtype=float), np.asarray(nets, dtype=float)


def expected_log_growth(
    probabilities: np.ndarray,
    nets: np.ndarray,
    fraction: float,
) -> float:
    """Objective ``g(f) = Σ pᵢ · log(1 + f · netᵢ)``.

    Returns ``-inf`` when any state's growth factor ``1 + f · netᵢ`` is
    non-positive (staking ``f`` could lose more than the bankroll).
    """
    growth = 1.0 + fraction * nets
    if np.any(growth <= _RUIN_GROWTH):
        return -math.inf
    return float(np.sum(probabilities * np.log(growth)))


def _grid(lo: float, hi: float, step: float) -> np.ndarray:
    """Evenly spaced points from ``lo`` to ``hi`` inclusive."""
    if hi <= lo:
        return np.asarray([lo])
    count = int(math.floor((hi - lo) / step + EPS))
    points = lo + step * np.arange(count + 1)
    if hi - points[-1] > EPS:
        points = np.append(points, hi)
    return np.minimum(points, hi)


def solve_kelly_fraction(
    states: Iterable[Any],
    max_fraction: float = MAX_KELLY_FRACTION,
) -> float:
    """Growth-optimal stake fraction against a discrete outcome distribution.

    Two-phase search:

    1. Coarse scan of ``[0, max_fraction]`` at :data:`COARSE_STEP`
       (``max_fraction`` itself is always evaluated).
    2. :data:`REFINE_ROUNDS` refinements around the incumbent, each over a
       window of ``±2 × step`` with the step halved after every round.

    Only strict improvements move the incumbent, so a distribution with no
    positive-growth fraction returns exactly 0.

    Args:
        states: Outcome states, as objects with ``probability``/``net``
            attributes or mappings with those keys.  ``net`` is the return per
            unit staked (``gross − 1``).
        max_fraction: Upper bound on the result, itself capped at
            :data:`MAX_KELLY_FRACTION`.

    Returns:
        Fraction in ``[0, max_fraction]``.  Empty or invalid input, or
        ``max_fraction <= 0``, returns 0.0.

    Examples::

        solve_kelly_fraction([{"probability": 1.0, "net": 1.0}])      → 0.95
        solve_kelly_fraction([{"probability": 0.5, "net": 1.0},
                              {"probability": 0.5, "net": -1.0}])     → 0.0
    """
    probabilities, nets = _coerce_states(states)
    if probabilities.size == 0:
        return 0.0
    cap = clamp(to_float(max_fraction, MAX_KELLY_FRACTION), 0.0, MAX_KELLY_FRACTION)
    if cap <= 0.0:
        return 0.0

    best_fraction = 0.0
    best_score = expected_log_growth(probabilities, nets, 0.0)

    for fraction in _grid(0.0, cap, COARSE_STEP)[1:]:
        score = expected_log_growth(probabilities, nets, float(fraction))
        if score > best_score:
            best_score, best_fraction = score, float(fraction)

    step = REFINE_STEP
    for _ in range(REFINE_ROUNDS):
        low = max(0.0, best_fraction - 2.0 * step)
        high = min(cap, best_fraction + 2.0 * step)
        for fraction in _grid(low, high, step):
            score = expected_log_growth(probabilities, nets, float(fraction))
            if score > best_score:
                best_score, best_fraction = score, float(fraction)
        step *= 0.5

    return clamp(best_fraction, 0.0, cap)
