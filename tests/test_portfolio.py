"""
Tests for stake recommendation
Run with: pytest tests/test_portfolio.py -v
"""

from dataclasses import replace

import pytest

from quickslip.core.atomic import build_atomic_match_profile
from quickslip.core.engine_config import EngineConfig
from quickslip.schemas import EntryRecord, MatchRecord
from quickslip.services.natural_input import MatchDraft
from quickslip.services.parlay_engine import combine_atomic_match_profiles
from quickslip.services.portfolio import (
    build_match_profiles,
    estimate_match_probability,
    mode_kelly_divisor,
    recommend_stake,
    recommend_stake_for_matches,
)


def _portfolio(odds, union):
    leg = build_atomic_match_profile([{"name": "主胜", "odds": odds}], union_probability=union)
    return combine_atomic_match_profiles([leg])


class TestModeDivisor:
    """Fractional-Kelly divisor per mode"""

    def test_known_modes(self):
        assert mode_kelly_divisor("常规") == 4.0
        assert mode_kelly_divisor("常规-稳") == 3.5
        assert mode_kelly_divisor("赌一把") == 6.0

    def test_unknown_mode_uses_config(self):
        assert mode_kelly_divisor("whatever") == 4.0
        assert mode_kelly_divisor(None, EngineConfig(kelly_divisor=5.0)) == 5.0


class TestMatchProbability:
    """Factor-weighted lift of the confidence"""

    def test_defaults(self):
        match = MatchRecord(home_team="阿森纳", away_team="切尔西")
        # only the FID rung (0.4 -> 1.02) moves the neutral draft
        assert estimate_match_probability(match) == pytest.approx(0.5 * 1.02 ** 0.14)

    def test_confidence_raises_probability(self):
        low = MatchRecord(conf=30)
        high = MatchRecord(conf=80)
        assert estimate_match_probability(high) > estimate_match_probability(low)

    def test_gamble_mode_damps(self):
        steady = MatchRecord(conf=60, mode="常规")
        gamble = MatchRecord(conf=60, mode="赌一把")
        assert estimate_match_probability(gamble) < estimate_match_probability(steady)

    def test_bounds(self):
        extreme = MatchRecord(conf=0, mode="赌一把", tys_home="S", tys_away="S", fid=0.0,
                              fse_home=0, fse_away=0)
        assert 0.05 <= estimate_match_probability(extreme) <= 0.95


class TestBuildMatchProfiles:
    """Drafts and records into outcome profiles"""

    def test_unpriced_entries_dropped(self):
        record = MatchRecord(entries=[EntryRecord(name="胜", odds=8.1), EntryRecord(name="平")])
        profile = build_match_profiles([record])[0]
        assert [hit.name for hit in profile.entries] == ["胜"]

    def test_draft_fallback_odds(self):
        draft = MatchDraft(home=None, away=None, fallback_odds=2.2)
        profile = build_match_profiles([draft])[0]
        assert [hit.name for hit in profile.entries] == ["default"]
        assert profile.entries[0].odds == pytest.approx(2.2)

    def test_record_without_odds_uses_config_default(self):
        profile = build_match_profiles([MatchRecord()], EngineConfig(default_odds=3.0))[0]
        assert profile.fallback_odds == pytest.approx(3.0)

    def test_union_is_match_probability(self):
        record = MatchRecord(conf=70, entries=[EntryRecord(name="主胜", odds=1.9)])
        profile = build_match_profiles([record])[0]
        assert profile.union_probability == pytest.approx(estimate_match_probability(record))


class TestRecommendStake:
    """Kelly -> divisor -> lift -> cap"""

    def test_kelly_amount(self):
        rec = recommend_stake(_portfolio(2.0, 0.6), ["常规"], 0.6)

        assert rec.kelly_fraction == pytest.approx(0.2, abs=0.005)
        assert rec.kelly_divisor == 4.0
        assert rec.confidence_lift == pytest.approx(0.88 + 0.6 * 0.24)
        assert rec.recommended_amount == 31
        assert rec.reason == "kelly"

    def test_risk_cap(self):
        rec = recommend_stake(_portfolio(3.0, 0.9), ["常规"], 0.9)

        assert rec.risk_cap == 72
        assert rec.recommended_amount == 72
        assert rec.raw_amount * rec.confidence_lift > 72
        assert rec.reason == "capped at risk limit"

    def test_risk_cap_follows_config(self):
        config = replace(EngineConfig(), risk_cap_ratio=0.05)
        rec = recommend_stake(_portfolio(3.0, 0.9), ["常规"], 0.9, config)
        assert rec.recommended_amount == 30

    def test_negative_edge(self):
        rec = recommend_stake(_portfolio(2.0, 0.4), ["常规"], 0.4)
        assert rec.kelly_fraction == 0.0
        assert rec.recommended_amount == 0
        assert rec.reason == "no positive-growth stake"

    def test_mean_divisor(self):
        rec = recommend_stake(_portfolio(2.0, 0.6), ["保险产品", "赌一把"], 0.6)
        assert rec.kelly_divisor == pytest.approx(4.5)

    def test_no_modes_uses_config_divisor(self):
        rec = recommend_stake(_portfolio(2.0, 0.6), [], 0.6, EngineConfig(kelly_divisor=5.0))
        assert rec.kelly_divisor == 5.0

    def test_degenerate_portfolio(self):
        rec = recommend_stake(combine_atomic_match_profiles([]), [], 0.0)
        assert rec.recommended_amount == 0


class TestRecommendForMatches:
    """End-to-end sizing of confirmed matches"""

    def test_amount_within_cap(self):
        record = MatchRecord(
            home_team="伯恩茅斯",
            away_team="曼联",
            entries=[EntryRecord(name="胜", odds=8.1), EntryRecord(name="平")],
            conf=35,
            fse_home=90,
            fse_away=90,
        )
        rec = recommend_stake_for_matches([record])

        assert 0 < rec.recommended_amount <= rec.risk_cap
        assert rec.expected_rating == pytest.approx(estimate_match_probability(record))

    def test_no_matches(self):
        rec = recommend_stake_for_matches([])
        assert rec.recommended_amount == 0
