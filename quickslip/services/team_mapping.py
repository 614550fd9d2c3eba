"""
Team directory and alias resolution for free-text slips.

A user types ``"伯恩茅斯胜/平曼联"`` or ``"arsenal W chelsea D"``; this module
finds which substrings are team names.  The curated library below is the
first source of truth; user-maintained profiles from the team-directory
provider are merged on top of it.
"""

from __future__ import annotations

import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from pydantic import ValidationError
from rapidfuzz import fuzz, process

from quickslip.core.entry_parsing import RESERVED_OUTCOME_TOKENS
from quickslip.schemas import TeamDirectoryRow

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Curated alias library: mainstream European clubs.  Processed BEFORE user
# profiles, so on an alias collision the library team wins.
#
# (team_id, canonical Chinese name, aliases)
# ---------------------------------------------------------------------------
TEAM_ALIAS_LIBRARY: tuple[tuple[str, str, tuple[str, ...]], ...] = (
    # Premier League
    ("arsenal", "阿森纳", ("ars", "afc", "arsenal", "gunners", "阿森纳")),
    ("astonvilla", "阿斯顿维拉", ("avl", "villa", "aston villa", "阿斯顿维拉", "维拉")),
    ("bournemouth", "伯恩茅斯", ("bou", "bournemouth", "afcb", "伯恩茅斯", "樱桃")),
    ("brentford", "布伦特福德", ("bre", "brentford", "布伦特福德")),
    ("brighton", "布莱顿", ("bha", "brighton", "brighton & hove albion", "布莱顿")),
    ("burnley", "伯恩利", ("bur", "burnley", "伯恩利")),
    ("chelsea", "切尔西", ("che", "chelsea", "cfc", "切尔西")),
    ("crystalpalace", "水晶宫", ("cry", "crystal palace", "水晶宫")),
    ("everton", "埃弗顿", ("eve", "everton", "埃弗顿")),
    ("fulham", "富勒姆", ("ful", "fulham", "富勒姆")),
    ("ipswich", "伊普斯维奇", ("ips", "ipswich", "ipswich town", "伊普斯维奇")),
    ("leicester", "莱斯特城", ("lei", "leicester", "leicester city", "莱斯特城")),
    ("leeds", "利兹联", ("lee", "leeds", "leeds united", "利兹联")),
    ("liverpool", "利物浦", ("liv", "liverpool", "lfc", "利物浦")),
    ("mancity", "曼城", ("mci", "man city", "manchester city", "city", "曼城")),
    ("manutd", "曼联", ("mun", "man utd", "manchester united", "utd", "曼联")),
    ("newcastle", "纽卡斯尔", ("new", "newcastle", "newcastle united", "纽卡", "纽卡斯尔")),
    ("nottingham", "诺丁汉森林", ("nfo", "nott'm forest", "nottingham forest", "诺丁汉森林")),
    ("southampton", "南安普顿", ("sou", "southampton", "南安普顿")),
    ("sunderland", "桑德兰", ("sun", "sunderland", "桑德兰")),
    ("tottenham", "热刺", ("tot", "spurs", "tottenham", "tottenham hotspur", "热刺")),
    ("westham", "西汉姆联", ("whu", "west ham", "west ham united", "西汉姆", "西汉姆联")),
    ("wolves", "狼队", ("wol", "wolves", "wolverhampton", "wolverhampton wanderers", "狼队")),

    # La Liga
    ("realmadrid", "皇马", ("rma", "real madrid", "madrid", "皇马")),
    ("barcelona", "巴塞罗那", ("bar", "fcb", "barcelona", "巴萨", "巴塞罗那")),
    ("atletico", "马竞", ("atm", "atleti", "atletico madrid", "马竞")),
    ("athletic", "毕尔巴鄂", ("ath", "athletic club", "athletic bilbao", "毕尔巴鄂")),
    ("realsociedad", "皇家社会", ("rso", "real sociedad", "皇家社会")),
    ("betis", "贝蒂斯", ("bet", "real betis", "贝蒂斯")),
    ("sevilla", "塞维利亚", ("sev", "sevilla", "塞维利亚")),
    ("valencia", "瓦伦西亚", ("val", "valencia", "瓦伦西亚")),
    ("villarreal", "黄潜", ("vil", "villarreal", "黄潜", "比利亚雷亚尔")),
    ("girona", "赫罗纳", ("gir", "girona", "赫罗纳")),

    # Serie A
    ("inter", "国际米兰", ("int", "inter", "inter milan", "国际米兰", "国米")),
    ("milan", "米兰", ("mil", "ac milan", "milan", "米兰", "ac米兰")),
    ("juventus", "尤文", ("juv", "juventus", "尤文", "尤文图斯")),
    ("napoli", "那不勒斯", ("nap", "napoli", "那不勒斯")),
    ("roma", "罗马", ("rom", "roma", "罗马")),
    ("lazio", "拉齐奥", ("laz", "lazio", "拉齐奥")),
    ("atalanta", "亚特兰大", ("ata", "atalanta", "亚特兰大")),
    ("fiorentina", "佛罗伦萨", ("fio", "fiorentina", "佛罗伦萨")),
    ("bologna", "博洛尼亚", ("bol", "bologna", "博洛尼亚")),

    # Bundesliga
    ("bayern", "拜仁", ("bay", "bayern", "bayern munich", "拜仁")),
    ("dortmund", "多特", ("bvb", "dor", "dortmund", "borussia dortmund", "多特")),
    ("leverkusen", "勒沃库森", ("lev", "leverkusen", "勒沃库森")),
    ("leipzig", "莱比锡", ("rbl", "rbl leipzig", "leipzig", "莱比锡")),
    ("stuttgart", "斯图加特", ("stu", "stuttgart", "斯图加特")),
    ("frankfurt", "法兰克福", ("sge", "fra", "frankfurt", "法兰克福")),
    ("wolfsburg", "沃尔夫斯堡", ("wob", "wolfsburg", "沃尔夫斯堡")),
    ("gladbach", "门兴", ("bmg", "m'gladbach", "gladbach", "门兴")),

    # Ligue 1
    ("psg", "巴黎圣日耳曼", ("psg", "paris", "paris saint-germain", "巴黎", "巴黎圣日耳曼")),
    ("marseille", "马赛", ("om", "marseille", "马赛")),
    ("monaco", "摩纳哥", ("asm", "monaco", "摩纳哥")),
    ("lille", "里尔", ("losc", "lil", "lille", "里尔")),
    ("lyon", "里昂", ("lyo", "lyon", "里昂")),
    ("nice", "尼斯", ("nic", "nice", "尼斯")),
)

# Latin aliases that must sit on word boundaries ("new" must not hit "news").
_SHORT_LATIN_RE = re.compile(r"^[a-z]+$", re.IGNORECASE)
_MULTI_WORD_LATIN_RE = re.compile(r"^[a-z\s]+$", re.IGNORECASE)
_SHORT_ALIAS_MAX_LEN = 4

FUZZY_SCORE_CUTOFF = 80


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class TeamProfile:
    """One team in the directory."""
    team_id: str
    team_name: str
    abbreviations: list[str] = field(default_factory=list)
    total_samples: int = 0
    avg_rep: float = 0.5

    @property
    def aliases(self) -> list[str]:
        """Canonical name plus abbreviations, de-duplicated."""
        return merge_aliases([self.team_name], self.abbreviations)


@dataclass(frozen=True)
class AliasEntry:
    alias: str
    alias_lower: str
    length: int
    team_id: str
    team_name: str


@dataclass(frozen=True)
class TeamHit:
    """A team alias found in text, with its ``[start, end)`` span."""
    team_id: str
    team_name: str
    alias: str
    start: int
    end: int


# ---------------------------------------------------------------------------
# Directory helpers
# ---------------------------------------------------------------------------

def _norm(value: object) -> str:
    return str(value or "").strip().lower()


def merge_aliases(*groups: Iterable[str]) -> list[str]:
    """Flatten alias groups, dropping blanks and case-insensitive repeats."""
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for raw in group or ():
            clean = str(raw or "").strip()
            key = clean.lower()
            if not clean or key in seen:
                continue
            seen.add(key)
            merged.append(clean)
    return merged


def coerce_team_profile(row: Any) -> TeamProfile:
    """Turn a provider row (profile, mapping, or schema row) into a ``TeamProfile``.

    Raises:
        pydantic.ValidationError: If a mapping row is missing its id or name.
    """
    if isinstance(row, TeamProfile):
        return row
    if isinstance(row, TeamDirectoryRow):
        validated = row
    elif isinstance(row, Mapping):
        validated = TeamDirectoryRow.model_validate(row)
    else:
        validated = TeamDirectoryRow.model_validate(row, from_attributes=True)
    return TeamProfile(**validated.model_dump())


def library_profiles() -> list[TeamProfile]:
    """Fresh ``TeamProfile`` copies of the curated library."""
    return [
        TeamProfile(
            team_id=team_id,
            team_name=team_name,
            abbreviations=merge_aliases([team_name], aliases),
        )
        for team_id, team_name, aliases in TEAM_ALIAS_LIBRARY
    ]


def build_team_directory(user_profiles: Iterable[Any] = ()) -> list[TeamProfile]:
    """Merge user profiles into the curated library, keyed by normalized name.

    A user profile naming a library team keeps the library's canonical
    name; its id, sample count and rating win, and aliases from both sides
    are merged (library first).  Unknown teams are appended in order.
    Provider rows that fail validation are logged and skipped.
    """
    by_name: dict[str, TeamProfile] = {
        _norm(profile.team_name): profile for profile in library_profiles()
    }

    for row in user_profiles or ():
        try:
            profile = coerce_team_profile(row)
        except ValidationError as exc:
            logger.warning("Skipping invalid team-directory row %r: %s", row, exc)
            continue

        key = _norm(profile.team_name)
        existing = by_name.get(key)
        if existing is None:
            by_name[key] = TeamProfile(
                team_id=profile.team_id,
                team_name=profile.team_name,
                abbreviations=merge_aliases([profile.team_name], profile.abbreviations),
                total_samples=profile.total_samples,
                avg_rep=profile.avg_rep,
            )
            continue

        by_name[key] = TeamProfile(
            team_id=profile.team_id,
            team_name=existing.team_name or profile.team_name,
            abbreviations=merge_aliases(
                [existing.team_name, profile.team_name],
                existing.abbreviations,
                profile.abbreviations,
            ),
            total_samples=profile.total_samples,
            avg_rep=profile.avg_rep,
        )

    return list(by_name.values())


def find_team_profile(query: str, directory: Sequence[TeamProfile]) -> Optional[TeamProfile]:
    """Exact (case-insensitive) lookup against names and aliases."""
    normalized = _norm(query)
    if not normalized:
        return None
    for profile in directory:
        if any(_norm(alias) == normalized for alias in profile.aliases):
            return profile
    return None


def search_team_profiles(
    query: str,
    directory: Sequence[TeamProfile],
    limit: int = 6,
) -> list[TeamProfile]:
    """
    Ranked search for an autocomplete box.

    Scoring per profile: exact alias +12, alias prefix +4, alias substring +1.
    Ties go to the team with more samples, then the shorter name.
    """
    normalized = _norm(query)
    if not normalized:
        return []

    scored: list[tuple[int, TeamProfile]] = []
    for profile in directory:
        aliases = [_norm(a) for a in profile.aliases]
        score = 0
        if any(a == normalized for a in aliases):
            score += 12
        if any(a.startswith(normalized) for a in aliases):
            score += 4
        if any(normalized in a for a in aliases):
            score += 1
        if score > 0:
            scored.append((score, profile))

    scored.sort(key=lambda item: (-item[0], -item[1].total_samples, len(item[1].team_name)))
    return [profile for _, profile in scored[:limit]]


def suggest_team_names(
    fragment: str,
    directory: Sequence[TeamProfile],
    limit: int = 3,
    score_cutoff: int = FUZZY_SCORE_CUTOFF,
) -> list[str]:
    """
    Fuzzy "did you mean" candidates for text that matched no alias.

    Uses rapidfuzz token-set ratio against every alias; returns distinct
    canonical team names, best first.
    """
    query = _norm(fragment)
    if not query:
        return []

    choices: list[str] = []
    owners: list[str] = []
    for profile in directory:
        for alias in profile.aliases:
            choices.append(alias.lower())
            owners.append(profile.team_name)
    if not choices:
        return []

    results = process.extract(
        query,
        choices,
        scorer=fuzz.token_set_ratio,
        score_cutoff=score_cutoff,
        limit=None,
    )

    suggestions: list[str] = []
    for choice, score, index in results:
        name = owners[index]
        if name not in suggestions:
            logger.debug("Fuzzy suggestion %r -> %r (alias %r, score %.1f)", fragment, name, choice, score)
            suggestions.append(name)
        if len(suggestions) >= limit:
            break
    return suggestions


def new_team_profile(team_name: str, team_id: Optional[str] = None) -> TeamProfile:
    """
    Seed a profile for a team typed by the user.

    A library team inherits the library aliases; anything else starts with
    its own lower-cased name as the only alias.
    """
    clean = str(team_name or "").strip()
    if not clean:
        raise ValueError("team_name must not be blank")

    library_hit = next(
        (entry for entry in TEAM_ALIAS_LIBRARY if _norm(entry[1]) == _norm(clean)),
        None,
    )
    if library_hit and library_hit[2]:
        abbreviations = merge_aliases([clean], library_hit[2])
    else:
        abbreviations = [_norm(clean)]

    return TeamProfile(
        team_id=team_id or f"team_{uuid.uuid4().hex}",
        team_name=clean,
        abbreviations=abbreviations,
    )


# ---------------------------------------------------------------------------
# Alias dictionary and scanning
# ---------------------------------------------------------------------------

def build_alias_dictionary(profiles: Iterable[Any]) -> list[AliasEntry]:
    """
    Flatten profiles into alias entries, longest alias first.

    Each profile contributes its canonical name plus its abbreviations.
    Entries are de-duplicated by lower-cased alias; the sort is stable, so
    on a collision the earlier profile (the library, when the input comes
    from :func:`build_team_directory`) keeps the alias.
    """
    entries: list[AliasEntry] = []
    for row in profiles or ():
        profile = coerce_team_profile(row)
        for alias in merge_aliases([profile.team_name], profile.abbreviations):
            entries.append(
                AliasEntry(
                    alias=alias,
                    alias_lower=alias.lower(),
                    length=len(alias),
                    team_id=profile.team_id,
                    team_name=profile.team_name,
                )
            )

    entries.sort(key=lambda e: -e.length)

    seen: set[str] = set()
    unique: list[AliasEntry] = []
    for entry in entries:
        if entry.alias_lower in seen:
            continue
        seen.add(entry.alias_lower)
        unique.append(entry)
    return unique


def _lower_aligned(text: str) -> str:
    """Lower-case char by char so indices stay aligned with ``text``."""
    out = []
    for ch in text:
        low = ch.lower()
        out.append(low if len(low) == 1 else ch)
    return "".join(out)


def _is_latin_alnum(ch: str) -> bool:
    return ch.isascii() and ch.isalnum()


def _on_word_boundary(text: str, start: int, end: int) -> bool:
    before = text[start - 1] if start > 0 else ""
    after = text[end] if end < len(text) else ""
    return not (before and _is_latin_alnum(before)) and not (after and _is_latin_alnum(after))


def _needs_boundary(alias: str) -> bool:
    if len(alias) <= _SHORT_ALIAS_MAX_LEN and _SHORT_LATIN_RE.match(alias):
        return True
    return " " in alias and bool(_MULTI_WORD_LATIN_RE.match(alias))


def scan_team_names(text: str, dictionary: Sequence[AliasEntry]) -> list[TeamHit]:
    """
    Greedy left-to-right scan for team aliases.

    At every cursor position the dictionary is tried longest alias first;
    the first acceptable hit is recorded and the cursor jumps past it,
    otherwise the cursor advances one character.  Hits never overlap.

    An alias is rejected when it spells an outcome token (``胜``, ``w``,
    ``home``…), or when it is a short (<= 4 letters) or multi-word Latin
    alias not surrounded by non-alphanumeric characters.
    """
    if not text:
        return []

    by_first_char: dict[str, list[AliasEntry]] = {}
    for entry in dictionary:
        if not entry.alias_lower or entry.alias_lower in RESERVED_OUTCOME_TOKENS:
            continue
        by_first_char.setdefault(entry.alias_lower[0], []).append(entry)

    lower = _lower_aligned(text)
    hits: list[TeamHit] = []
    pos = 0
    while pos < len(lower):
        matched: Optional[AliasEntry] = None
        for entry in by_first_char.get(lower[pos], ()):
            if not lower.startswith(entry.alias_lower, pos):
                continue
            if _needs_boundary(entry.alias) and not _on_word_boundary(
                text, pos, pos + entry.length
            ):
                continue
            matched = entry
            break

        if matched is None:
            pos += 1
            continue

        hits.append(
            TeamHit(
                team_id=matched.team_id,
                team_name=matched.team_name,
                alias=matched.alias,
                start=pos,
                end=pos + matched.length,
            )
        )
        pos += matched.length

    logger.debug("Team scan found %d hit(s) in %r", len(hits), text)
    return hits


# ---------------------------------------------------------------------------
# Time-bounded dictionary cache
# ---------------------------------------------------------------------------

class AliasDictionaryCache:
    """
    Holds the alias dictionary built from the team directory.

    The dictionary is rebuilt from ``provider()`` when it is older than
    ``ttl_seconds`` or after :meth:`invalidate`.  Create one per team
    provider and pass it to the parser; the parser keeps its own instance
    over the curated library for calls that pass no source.

    Usage::

        cache = AliasDictionaryCache(storage.list_team_profiles, ttl_seconds=30)
        result = parse_natural_input(text, cache)
    """

    def __init__(
        self,
        provider: Callable[[], Iterable[Any]],
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be >= 0, got {ttl_seconds!r}")
        self._provider = provider
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._dictionary: Optional[list[AliasEntry]] = None
        self._directory: list[TeamProfile] = []
        self._built_at = 0.0

    @classmethod
    def from_config(cls, provider: Callable[[], Iterable[Any]], config) -> AliasDictionaryCache:
        return cls(provider, ttl_seconds=config.alias_cache_ttl_seconds)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @property
    def built_at(self) -> float:
        return self._built_at

    def _is_stale(self, now: float) -> bool:
        return self._dictionary is None or now - self._built_at >= self._ttl

    def _refresh_locked(self) -> None:
        now = self._clock()
        if not self._is_stale(now):
            return
        directory = build_team_directory(self._provider() or ())
        self._dictionary = build_alias_dictionary(directory)
        self._directory = directory
        self._built_at = now
        logger.info(
            "Alias dictionary rebuilt: %d aliases from %d teams",
            len(self._dictionary),
            len(directory),
        )

    def get(self) -> list[AliasEntry]:
        """Current dictionary, rebuilding first when stale."""
        with self._lock:
            self._refresh_locked()
            return self._dictionary

    def directory(self) -> list[TeamProfile]:
        """Team directory the current dictionary was built from."""
        with self._lock:
            self._refresh_locked()
            return self._directory

    def snapshot(self) -> tuple[list[AliasEntry], list[TeamProfile]]:
        """Dictionary and the directory it was built from, taken under one lock."""
        with self._lock:
            self._refresh_locked()
            return self._dictionary, self._directory

    def invalidate(self) -> None:
        """Force a rebuild on the next :meth:`get`."""
        with self._lock:
            self._dictionary = None
