"""
Tests for core/entry_parsing.py and core/text_normalizer.py

Run with: pytest tests/test_entry_parsing.py -v
"""

import math

import pytest

from quickslip.core.entry_parsing import (
    MARKET_HALF_FULL,
    MARKET_HANDICAP,
    MARKET_OTHER,
    MARKET_RESULT,
    MARKET_SCORE,
    MARKET_TOTAL,
    format_line,
    get_primary_entry_market,
    normalize_entries,
    normalize_entry_record,
    parse_entry_semantic,
    parse_outcome_token,
    parse_total_direction,
)
from quickslip.core.text_normalizer import compact_token, normalize_entry_name, normalize_text


class TestTextNormalizer:
    """Punctuation canonicalisation."""

    def test_full_width_punctuation(self):
        assert normalize_text("伯恩茅斯胜／平曼联，conf3.5") == "伯恩茅斯胜/平曼联,conf3.5"

    def test_whitespace_collapsed(self):
        assert normalize_text("  a　 b ") == "a b"

    def test_none(self):
        assert normalize_text(None) == ""

    def test_entry_name_separators(self):
        assert normalize_entry_name(" ,主胜 ,平; ") == "主胜, 平"

    def test_compact_token(self):
        assert compact_token(" Home Win ") == "homewin"


class TestTokens:
    """Outcome and direction vocabularies."""

    @pytest.mark.parametrize("token,outcome", [
        ("主胜", "win"),
        ("W", "win"),
        ("平局", "draw"),
        ("x", "draw"),
        ("Away", "lose"),
        ("负", "lose"),
    ])
    def test_outcome_tokens(self, token, outcome):
        assert parse_outcome_token(token) == outcome

    def test_unknown_outcome(self):
        assert parse_outcome_token("角球") is None

    def test_total_direction(self):
        assert parse_total_direction("大") == "over"
        assert parse_total_direction("U") == "under"

    def test_format_line(self):
        assert format_line(-1.0) == "-1"
        assert format_line(2.5) == "2.5"


class TestParseEntrySemantic:
    """Market classification in priority order."""

    def test_score(self):
        semantic = parse_entry_semantic("2-1")
        assert semantic.market_type == MARKET_SCORE
        assert semantic.market_label == "比分"
        assert semantic.semantic_key == "2-1"
        assert semantic.detail == {"home": 2, "away": 1}

    def test_score_colon(self):
        assert parse_entry_semantic("2:1").semantic_key == "2-1"

    def test_result(self):
        semantic = parse_entry_semantic("主胜")
        assert semantic.market_type == MARKET_RESULT
        assert semantic.market_label == "赛果"
        assert semantic.semantic_key == "win"

    def test_total_leading(self):
        semantic = parse_entry_semantic("大2.5")
        assert semantic.market_type == MARKET_TOTAL
        assert semantic.semantic_key == "over:2.5"

    def test_total_trailing(self):
        assert parse_entry_semantic("2.5u").semantic_key == "under:2.5"

    @pytest.mark.parametrize("text", ["-1 主", "主-1", "主 -1", "让球 -1 主"])
    def test_handicap(self, text):
        semantic = parse_entry_semantic(text)
        assert semantic.market_type == MARKET_HANDICAP
        assert semantic.semantic_key == "-1:win"

    @pytest.mark.parametrize("text", ["w/d", "胜平", "胜-平", "win draw", "WD"])
    def test_half_full(self, text):
        semantic = parse_entry_semantic(text)
        assert semantic.market_type == MARKET_HALF_FULL
        assert semantic.semantic_key == "win-draw"

    def test_other(self):
        semantic = parse_entry_semantic("角球")
        assert semantic.market_type == MARKET_OTHER
        assert semantic.market_label == "其他"
        assert semantic.semantic_key == "角球"

    def test_empty(self):
        semantic = parse_entry_semantic("   ")
        assert semantic.name == ""
        assert semantic.market_type == MARKET_OTHER

    def test_equivalent_spellings_share_key(self):
        assert parse_entry_semantic("主胜").semantic_key == parse_entry_semantic("W").semantic_key


class TestNormalizeEntries:
    """Entry records with odds."""

    def test_record_keeps_odds(self):
        record = normalize_entry_record({"name": "主胜", "odds": "1.85"})
        assert record.odds == pytest.approx(1.85)
        assert record.has_valid_odds

    def test_record_without_odds(self):
        record = normalize_entry_record("平")
        assert math.isnan(record.odds)
        assert not record.has_valid_odds

    def test_record_fallback_odds(self):
        assert normalize_entry_record("平", fallback_odds=3.1).odds == pytest.approx(3.1)

    def test_entry_text_split(self):
        records = normalize_entries([], entry_text="主胜|平, 2-1", fallback_odds=3.0)
        assert [r.semantic_key for r in records] == ["win", "draw", "2-1"]
        assert all(r.odds == pytest.approx(3.0) for r in records)

    def test_blank_entries_dropped(self):
        records = normalize_entries([{"name": ""}, {"name": "主胜"}])
        assert [r.name for r in records] == ["主胜"]


class TestPrimaryMarket:
    """Dominant market with rank tie-breaking."""

    def test_most_frequent(self):
        primary = get_primary_entry_market(["2-1", "主胜", "平"])
        assert primary.market_type == MARKET_RESULT
        assert primary.semantic_key == "win"

    def test_tie_goes_to_lower_rank(self):
        primary = get_primary_entry_market(["主胜", "2-1"])
        assert primary.market_type == MARKET_SCORE
        assert primary.market_label == "比分"

    def test_empty(self):
        primary = get_primary_entry_market([], "")
        assert primary.market_type == MARKET_OTHER
        assert primary.semantic_key == ""
