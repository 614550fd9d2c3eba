"""
Tests for services/segmenter.py

Run with: pytest tests/test_segmenter.py -v
"""

import pytest

from quickslip.services.segmenter import (
    extract_segments,
    parse_gap_as_entries,
    segment_matches,
)
from quickslip.services.team_mapping import (
    build_alias_dictionary,
    build_team_directory,
    scan_team_names,
)


@pytest.fixture(scope="module")
def dictionary():
    return build_alias_dictionary(build_team_directory())


@pytest.fixture
def segment(dictionary):
    def _segment(text):
        return segment_matches(extract_segments(text, scan_team_names(text, dictionary)))
    return _segment


class TestParseGap:
    """Reading entries out of the text between teams."""

    def test_slash_alternatives(self):
        gap = parse_gap_as_entries("胜/平")
        assert [e.semantic_key for e in gap.entries] == ["win", "draw"]
        assert gap.unknown == []

    def test_versus(self):
        for marker in ("vs", "VS", "对阵", "-"):
            assert parse_gap_as_entries(marker).is_versus

    def test_whole_slice_before_tokens(self):
        gap = parse_gap_as_entries("-1 主")
        assert [e.semantic_key for e in gap.entries] == ["-1:win"]

    def test_token_fallback_collects_unknown(self):
        gap = parse_gap_as_entries("胜 角球")
        assert [e.semantic_key for e in gap.entries] == ["win"]
        assert gap.unknown == ["角球"]

    def test_empty(self):
        gap = parse_gap_as_entries(" , ")
        assert not gap.has_entries
        assert not gap.is_versus


class TestExtractSegments:
    """Alternating team/gap segments."""

    def test_alternation(self, dictionary):
        text = "伯恩茅斯胜/平曼联"
        segments = extract_segments(text, scan_team_names(text, dictionary))
        assert [s.kind for s in segments] == ["team", "gap", "team"]
        assert segments[1].text == "胜/平"

    def test_blank_gap_skipped(self, dictionary):
        text = "曼联 切尔西"
        segments = extract_segments(text, scan_team_names(text, dictionary))
        assert [s.kind for s in segments] == ["team", "team"]


class TestSegmentMatches:
    """Grouping segments into matches."""

    def test_team_entries_team(self, segment):
        matches = segment("伯恩茅斯胜/平曼联")
        assert len(matches) == 1
        assert matches[0].home.team_name == "伯恩茅斯"
        assert matches[0].away.team_name == "曼联"
        assert [e.semantic_key for e in matches[0].entries] == ["win", "draw"]
        assert matches[0].raw_entry_text == "胜/平"

    def test_team_team(self, segment):
        matches = segment("曼联 切尔西")
        assert len(matches) == 1
        assert matches[0].entries == []
        assert matches[0].away.team_name == "切尔西"

    def test_versus_then_trailing_entries(self, segment):
        matches = segment("阿森纳vs切尔西 2-1")
        assert len(matches) == 1
        assert [e.semantic_key for e in matches[0].entries] == ["2-1"]
        assert matches[0].raw_entry_text == "2-1"

    def test_two_matches(self, segment):
        matches = segment("阿森纳vs切尔西 胜, 曼联vs利物浦 平")
        assert len(matches) == 2
        assert [m.home.team_name for m in matches] == ["阿森纳", "曼联"]
        assert [m.entries[0].semantic_key for m in matches] == ["win", "draw"]

    def test_lone_team_home(self, segment):
        matches = segment("热刺胜")
        assert len(matches) == 1
        assert matches[0].home.team_name == "热刺"
        assert matches[0].away is None

    def test_lone_team_away_from_entry(self, segment):
        matches = segment("热刺客胜")
        assert matches[0].home is None
        assert matches[0].away.team_name == "热刺"

    def test_leading_entries(self, segment):
        matches = segment("负 拜仁")
        assert len(matches) == 1
        assert matches[0].away.team_name == "拜仁"
        assert matches[0].entries[0].semantic_key == "lose"

    def test_bare_team(self, segment):
        matches = segment("拜仁")
        assert len(matches) == 1
        assert matches[0].home.team_name == "拜仁"
        assert matches[0].entries == []

    def test_unknown_tokens_kept_on_match(self, segment):
        matches = segment("拜仁 角球")
        assert len(matches) == 1
        assert matches[0].unknown == ["角球"]

    def test_no_teams(self):
        assert segment_matches([]) == []

    def test_unreadable_trailing_gap_kept_on_pair(self, segment):
        matches = segment("阿森纳vs切尔西 角球")
        assert len(matches) == 1
        assert matches[0].entries == []
        assert matches[0].unknown == ["角球"]

    def test_unreadable_trailing_gap_does_not_steal_next_match(self, segment):
        matches = segment("阿森纳vs切尔西 角球 曼联vs利物浦 平")
        assert len(matches) == 2
        assert matches[0].unknown == ["角球"]
        assert matches[1].home.team_name == "曼联"
        assert matches[1].entries[0].semantic_key == "draw"

    def test_leading_text_handed_to_first_match(self, segment):
        matches = segment("随便写点 阿森纳vs切尔西 胜")
        assert len(matches) == 1
        assert matches[0].unknown == ["随便写点"]
        assert matches[0].entries[0].semantic_key == "win"
