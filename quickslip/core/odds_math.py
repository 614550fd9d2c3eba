"""Fundamental odds helpers shared by the decomposer and the solver.

Every function here is **pure**: no I/O, no logging, no side effects.

All odds in this codebase are **decimal** odds: the gross payout per unit
staked, stake included.  A decimal price of 2.0 returns 2 units on a 1-unit
winning ticket (net +1).
"""

from __future__ import annotations

import math
from typing import Any, Final

#: Numerical tolerance used when testing probability masses against zero.
EPS: Final[float] = 1e-9

#: Bounds applied to a single entry's implied probability inside the
#: decomposer.  Keeps ``1 / odds`` away from 0 and 1 for adversarial prices.
IMPLIED_MIN: Final[float] = 1e-4
IMPLIED_MAX: Final[float] = 0.995

#: Smallest price that still pays something above the stake.
MIN_DECIMAL_ODDS: Final[float] = 1.01


def clamp(value: float, lo: float, hi: float) -> float:
    """Clip ``value`` into ``[lo, hi]``."""
    return max(lo, min(hi, value))


def to_float(value: Any, fallback: float = math.nan) -> float:
    """Best-effort float coercion.

    Accepts numbers and numeric strings (``"8.1"``).  Anything that does not
    convert to a finite float returns ``fallback``.
    """
    if isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if math.isfinite(parsed) else fallback


def is_valid_odds(odds: float) -> bool:
    """True for finite decimal odds strictly above 1.0."""
    return isinstance(odds, (int, float)) and math.isfinite(odds) and odds > 1.0


def implied_prob(decimal_odds: float) -> float:
    """Raw implied probability ``1 / odds``, clamped to the decomposer bounds.

    Args:
        decimal_odds: Decimal odds, expected ``> 1``.

    Returns:
        ``clamp(1 / decimal_odds, 1e-4, 0.995)``.

    Raises:
        ValueError: If ``decimal_odds`` is not positive and finite.
    """
    if not (math.isfinite(decimal_odds) and decimal_odds > 0.0):
        raise ValueError(
            f"decimal_odds must be positive and finite, got {decimal_odds!r}."
        )
    return clamp(1.0 / decimal_odds, IMPLIED_MIN, IMPLIED_MAX)
