"""
Tests for core/kelly.py

Run with: pytest tests/test_kelly.py -v
"""

import math

import numpy as np
import pytest

from quickslip.core.atomic import OutcomeState
from quickslip.core.kelly import (
    MAX_KELLY_FRACTION,
    expected_log_growth,
    kelly_fraction,
    solve_kelly_fraction,
)


class TestKellyFraction:
    """Closed-form Kelly for a two-outcome ticket."""

    def test_positive_edge(self):
        assert kelly_fraction(0.55, 2.0) == pytest.approx(0.10)

    def test_larger_edge(self):
        # (0.6 * 1.1 - 0.4) / 1.1
        assert kelly_fraction(0.60, 2.1) == pytest.approx(0.2364, abs=1e-4)

    def test_negative_edge_returns_zero(self):
        assert kelly_fraction(0.45, 2.0) == 0.0

    def test_fractional_divisor(self):
        assert kelly_fraction(0.55, 2.0, fractional_divisor=4) == pytest.approx(0.025)

    def test_capped(self):
        assert kelly_fraction(0.99, 10.0, max_fraction=0.2) == 0.2

    @pytest.mark.parametrize("win_prob", [0.0, 1.0, -0.1, 1.5])
    def test_rejects_bad_probability(self, win_prob):
        with pytest.raises(ValueError):
            kelly_fraction(win_prob, 2.0)

    def test_rejects_bad_odds(self):
        with pytest.raises(ValueError):
            kelly_fraction(0.5, 1.0)

    def test_rejects_bad_divisor(self):
        with pytest.raises(ValueError):
            kelly_fraction(0.55, 2.0, fractional_divisor=0)


class TestExpectedLogGrowth:
    """Objective function."""

    def test_zero_fraction_is_zero_growth(self):
        probs = np.array([0.5, 0.5])
        nets = np.array([1.0, -1.0])
        assert expected_log_growth(probs, nets, 0.0) == pytest.approx(0.0)

    def test_ruin_is_minus_infinity(self):
        probs = np.array([1.0])
        nets = np.array([-1.0])
        assert expected_log_growth(probs, nets, 1.0) == -math.inf


class TestSolveKellyFraction:
    """Grid-search Kelly over discrete distributions."""

    def test_sure_thing_hits_cap(self):
        assert solve_kelly_fraction([{"probability": 1.0, "net": 1.0}]) == pytest.approx(
            MAX_KELLY_FRACTION
        )

    def test_fair_coin_is_zero(self):
        states = [
            {"probability": 0.5, "net": 1.0},
            {"probability": 0.5, "net": -1.0},
        ]
        assert solve_kelly_fraction(states) == 0.0

    def test_matches_closed_form_on_two_states(self):
        states = [
            {"probability": 0.55, "net": 1.0},
            {"probability": 0.45, "net": -1.0},
        ]
        assert solve_kelly_fraction(states) == pytest.approx(kelly_fraction(0.55, 2.0), abs=0.005)

    def test_accepts_outcome_states(self):
        states = [
            OutcomeState("win", "win", 0.6, 2.1),
            OutcomeState("miss", "miss", 0.4, 0.0, is_miss=True),
        ]
        assert solve_kelly_fraction(states) == pytest.approx(kelly_fraction(0.6, 2.1), abs=0.005)

    def test_three_state_distribution(self):
        """Double-chance style ticket: two paying states, one loss."""
        states = [
            {"probability": 0.45, "net": 0.55},
            {"probability": 0.30, "net": 0.2},
            {"probability": 0.25, "net": -1.0},
        ]
        fraction = solve_kelly_fraction(states)
        assert 0.0 < fraction < 0.5

    def test_respects_max_fraction(self):
        assert solve_kelly_fraction([{"probability": 1.0, "net": 1.0}], max_fraction=0.3) == pytest.approx(0.3)

    def test_empty_input(self):
        assert solve_kelly_fraction([]) == 0.0
        assert solve_kelly_fraction(None) == 0.0

    def test_zero_cap(self):
        assert solve_kelly_fraction([{"probability": 1.0, "net": 1.0}], max_fraction=0) == 0.0

    def test_invalid_states_dropped(self):
        states = [
            {"probability": 0.0, "net": 5.0},
            {"probability": 0.5, "net": float("nan")},
            {"probability": "x", "net": 1.0},
        ]
        assert solve_kelly_fraction(states) == 0.0

    def test_result_always_in_bounds(self):
        states = [
            {"probability": 0.05, "net": 50.0},
            {"probability": 0.95, "net": -1.0},
        ]
        fraction = solve_kelly_fraction(states)
        assert 0.0 <= fraction <= MAX_KELLY_FRACTION
