"""
Tests for services/team_mapping.py

Run with: pytest tests/test_team_mapping.py -v
"""

from unittest.mock import MagicMock

import pytest

from quickslip.core.engine_config import EngineConfig
from quickslip.services.team_mapping import (
    TEAM_ALIAS_LIBRARY,
    AliasDictionaryCache,
    TeamProfile,
    build_alias_dictionary,
    build_team_directory,
    find_team_profile,
    merge_aliases,
    new_team_profile,
    scan_team_names,
    search_team_profiles,
    suggest_team_names,
)


@pytest.fixture
def directory():
    return build_team_directory()


@pytest.fixture
def dictionary(directory):
    return build_alias_dictionary(directory)


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class TestDirectory:
    """Library + user profile merge."""

    def test_library_only(self, directory):
        assert len(directory) == len(TEAM_ALIAS_LIBRARY)

    def test_user_profile_merged_into_library_team(self):
        directory = build_team_directory([
            {"teamId": "u-ars", "teamName": "阿森纳", "abbreviations": ["枪手"], "totalSamples": 12},
        ])
        profile = find_team_profile("枪手", directory)

        assert profile is not None
        assert profile.team_id == "u-ars"
        assert profile.team_name == "阿森纳"
        assert profile.total_samples == 12
        assert "arsenal" in profile.aliases
        assert len(directory) == len(TEAM_ALIAS_LIBRARY)

    def test_unknown_user_team_appended(self):
        directory = build_team_directory([
            TeamProfile(team_id="u1", team_name="青岛海牛", abbreviations=["海牛"]),
        ])
        assert directory[-1].team_name == "青岛海牛"
        assert directory[-1].aliases == ["青岛海牛", "海牛"]

    def test_invalid_row_skipped(self):
        directory = build_team_directory([{"team_id": "", "team_name": "nobody"}])
        assert len(directory) == len(TEAM_ALIAS_LIBRARY)

    def test_merge_aliases_dedupes_case_insensitively(self):
        assert merge_aliases(["Arsenal", " "], ["arsenal", "ARS"]) == ["Arsenal", "ARS"]


class TestLookup:
    """Exact, ranked and fuzzy lookups."""

    def test_find_by_alias(self, directory):
        assert find_team_profile("Gunners", directory).team_name == "阿森纳"

    def test_find_missing(self, directory):
        assert find_team_profile("nobody fc", directory) is None
        assert find_team_profile("", directory) is None

    def test_search_prefix(self, directory):
        results = search_team_profiles("man", directory)
        assert {p.team_name for p in results[:2]} == {"曼城", "曼联"}

    def test_search_exact_first(self, directory):
        assert search_team_profiles("热刺", directory)[0].team_id == "tottenham"

    def test_search_limit(self, directory):
        assert len(search_team_profiles("a", directory, limit=3)) == 3

    def test_suggest_typo(self, directory):
        suggestions = suggest_team_names("arsenl", directory)
        assert suggestions[0] == "阿森纳"

    def test_suggest_nothing_close(self, directory):
        assert suggest_team_names("qqqqqq", directory) == []


class TestNewTeamProfile:
    """Seeding profiles for user-typed teams."""

    def test_library_team_inherits_aliases(self):
        profile = new_team_profile("阿森纳")
        assert "arsenal" in profile.abbreviations
        assert profile.team_id.startswith("team_")

    def test_unknown_team(self):
        profile = new_team_profile("Foo FC", team_id="foo")
        assert profile.team_id == "foo"
        assert profile.abbreviations == ["foo fc"]

    def test_blank_name(self):
        with pytest.raises(ValueError):
            new_team_profile("  ")


class TestScanTeamNames:
    """Greedy longest-first scanning."""

    def test_two_teams_with_versus(self, dictionary):
        hits = scan_team_names("曼联vs切尔西", dictionary)
        assert [h.team_name for h in hits] == ["曼联", "切尔西"]
        assert (hits[0].start, hits[0].end) == (0, 2)
        assert (hits[1].start, hits[1].end) == (4, 7)

    def test_latin_aliases(self, dictionary):
        hits = scan_team_names("arsenal W chelsea D", dictionary)
        assert [h.team_id for h in hits] == ["arsenal", "chelsea"]

    def test_case_insensitive(self, dictionary):
        hits = scan_team_names("Man City vs LIVERPOOL", dictionary)
        assert [h.team_id for h in hits] == ["mancity", "liverpool"]

    def test_longest_alias_wins(self, dictionary):
        hits = scan_team_names("西汉姆联胜", dictionary)
        assert hits[0].alias == "西汉姆联"
        assert hits[0].end == 4

    def test_short_latin_needs_word_boundary(self, dictionary):
        assert scan_team_names("news", dictionary) == []

    def test_outcome_tokens_never_teams(self):
        dictionary = build_alias_dictionary([
            {"team_id": "x", "team_name": "胜利队", "abbreviations": ["胜", "w"]},
        ])
        assert scan_team_names("胜 w", dictionary) == []
        assert [h.team_name for h in scan_team_names("胜利队胜", dictionary)] == ["胜利队"]

    def test_library_wins_alias_collision(self):
        directory = build_team_directory([
            {"team_id": "fake", "team_name": "Fake United", "abbreviations": ["曼联"]},
        ])
        hits = scan_team_names("曼联", build_alias_dictionary(directory))
        assert hits[0].team_id == "manutd"

    def test_empty_text(self, dictionary):
        assert scan_team_names("", dictionary) == []


class TestAliasDictionaryCache:
    """Time-bounded rebuilds."""

    def test_rebuilds_only_after_ttl(self):
        provider = MagicMock(return_value=[])
        clock = FakeClock()
        cache = AliasDictionaryCache(provider, ttl_seconds=30, clock=clock)

        cache.get()
        clock.now += 10
        cache.get()
        assert provider.call_count == 1

        clock.now += 20
        cache.get()
        assert provider.call_count == 2

    def test_invalidate_forces_rebuild(self):
        provider = MagicMock(return_value=[])
        cache = AliasDictionaryCache(provider, clock=FakeClock())

        cache.get()
        cache.invalidate()
        cache.get()
        assert provider.call_count == 2

    def test_user_teams_visible(self):
        provider = MagicMock(return_value=[
            {"team_id": "u1", "team_name": "青岛海牛", "abbreviations": ["海牛"]},
        ])
        cache = AliasDictionaryCache(provider, clock=FakeClock())

        hits = scan_team_names("海牛胜", cache.get())
        assert hits[0].team_name == "青岛海牛"
        assert cache.directory()[-1].team_id == "u1"

    def test_from_config(self):
        cache = AliasDictionaryCache.from_config(
            MagicMock(return_value=[]), EngineConfig(alias_cache_ttl_seconds=5)
        )
        assert cache.ttl_seconds == 5.0

    def test_built_at_follows_clock(self):
        clock = FakeClock(42.0)
        cache = AliasDictionaryCache(MagicMock(return_value=[]), clock=clock)
        cache.get()
        assert cache.built_at == 42.0

    def test_negative_ttl_rejected(self):
        with pytest.raises(ValueError):
            AliasDictionaryCache(lambda: [], ttl_seconds=-1)

    def test_snapshot_pairs_dictionary_with_directory(self):
        provider = MagicMock(side_effect=[
            [{"team_id": "u1", "team_name": "青岛海牛", "abbreviations": ["海牛"]}],
            [{"team_id": "u2", "team_name": "成都蓉城", "abbreviations": ["蓉城"]}],
        ])
        clock = FakeClock()
        cache = AliasDictionaryCache(provider, ttl_seconds=30, clock=clock)

        dictionary, directory = cache.snapshot()
        assert directory[-1].team_id == "u1"
        assert scan_team_names("海牛", dictionary)[0].team_id == "u1"

        clock.now += 30
        dictionary, directory = cache.snapshot()
        assert directory[-1].team_id == "u2"
        assert scan_team_names("蓉城", dictionary)[0].team_id == "u2"
        assert provider.call_count == 2
