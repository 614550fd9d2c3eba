"""
Natural-language slip parser: free text -> match drafts + diagnostics.

Accepts the shorthand people type into a chat box::

    "伯恩茅斯胜/平曼联,conf3.5,odds8.1,FSE0.9"
    "arsenal v chelsea W/D, conf 55, odds 1.8 3.2"
    "热刺胜/平 赌一把 odds4.5 conf35 tys:H fid0.75"

Pipeline
--------
1. normalize punctuation          (core.text_normalizer)
2. pull keyword parameters        (services.param_extraction)
3. scan team aliases              (services.team_mapping)
4. cut segments, group matches    (services.segmenter)
5. distribute parameters          (services.param_assignment)
6. build drafts, diagnose, score

The parser never raises on user text.  Anything it cannot place becomes a
diagnostic, and the confidence score tells the UI how much to trust the
drafts.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from quickslip.core.engine_config import EngineConfig
from quickslip.core.entry_parsing import EntrySemantic
from quickslip.core.text_normalizer import normalize_text
from quickslip.schemas import EntryRecord, MatchRecord
from quickslip.services.param_assignment import MatchParameters, assign_parameters
from quickslip.services.param_extraction import ParsedParameters, extract_parameters
from quickslip.services.segmenter import RawMatch, extract_segments, segment_matches
from quickslip.services.team_mapping import (
    AliasDictionaryCache,
    AliasEntry,
    TeamHit,
    TeamProfile,
    scan_team_names,
    suggest_team_names,
)

logger = logging.getLogger(__name__)

LEVEL_INFO = "info"
LEVEL_WARNING = "warning"
LEVEL_ERROR = "error"

_FRAGMENT_SPLIT_RE = re.compile(r"[\s,;/|]+")

AliasSource = Union[AliasDictionaryCache, Sequence[AliasEntry], None]

# Curated library only; used when the caller passes no alias source.
_LIBRARY_ALIASES = AliasDictionaryCache.from_config(tuple, EngineConfig())


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Diagnostic:
    level: str  # info | warning | error
    message: str
    match_index: Optional[int] = None


@dataclass(frozen=True)
class TeamRef:
    """How a team in a draft was resolved."""
    team_id: str
    team_name: str
    alias: str

    @classmethod
    def from_hit(cls, hit: Optional[TeamHit]) -> Optional[TeamRef]:
        if hit is None:
            return None
        return cls(team_id=hit.team_id, team_name=hit.team_name, alias=hit.alias)


@dataclass
class DraftEntry:
    name: str
    odds: Optional[float] = None
    semantic: Optional[EntrySemantic] = None


@dataclass
class MatchDraft:
    """One parsed match awaiting user confirmation."""
    home: Optional[TeamRef]
    away: Optional[TeamRef]
    entries: list[DraftEntry] = field(default_factory=list)
    conf: int = 50
    mode: str = "常规"
    tys_home: str = "M"
    tys_away: str = "M"
    fid: float = 0.4
    fse_home: int = 50
    fse_away: int = 50
    fallback_odds: Optional[float] = None
    note: str = ""
    raw_entry_text: str = ""

    @property
    def home_team(self) -> str:
        return self.home.team_name if self.home else ""

    @property
    def away_team(self) -> str:
        return self.away.team_name if self.away else ""

    @property
    def has_team(self) -> bool:
        return bool(self.home or self.away)

    @property
    def has_both_teams(self) -> bool:
        return bool(self.home and self.away)

    @property
    def has_named_entry(self) -> bool:
        return any(entry.name for entry in self.entries)

    @property
    def has_odds(self) -> bool:
        return self.fallback_odds is not None or any(e.odds is not None for e in self.entries)

    def to_record(self) -> MatchRecord:
        """Persistable shape for the storage collaborator (no id yet)."""
        return MatchRecord(
            home_team=self.home_team,
            away_team=self.away_team,
            entries=[EntryRecord(name=e.name, odds=e.odds) for e in self.entries if e.name],
            odds=self.fallback_odds,
            conf=self.conf,
            mode=self.mode,
            tys_home=self.tys_home,
            tys_away=self.tys_away,
            fid=self.fid,
            fse_home=self.fse_home,
            fse_away=self.fse_away,
            note=self.note,
        )


@dataclass
class ParseResult:
    matches: list[MatchDraft]
    diagnostics: list[Diagnostic]
    confidence: float
    raw_input: str
    params: Optional[ParsedParameters] = None
    rules: dict[str, str] = field(default_factory=dict)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.level == LEVEL_ERROR]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _resolve_aliases(source: AliasSource) -> tuple[Sequence[AliasEntry], list[TeamProfile]]:
    if source is None:
        return _LIBRARY_ALIASES.snapshot()
    if isinstance(source, AliasDictionaryCache):
        return source.snapshot()
    return source, _LIBRARY_ALIASES.snapshot()[1]


def _suggestions(residual: str, directory: Sequence[TeamProfile]) -> list[str]:
    found: list[str] = []
    for fragment in _FRAGMENT_SPLIT_RE.split(residual):
        if len(fragment) < 2:
            continue
        for name in suggest_team_names(fragment, directory):
            if name not in found:
                found.append(name)
    return found


def _build_draft(
    raw: RawMatch,
    assigned: MatchParameters,
    remark: str,
    config: EngineConfig,
) -> MatchDraft:
    entries = [DraftEntry(name=e.name, semantic=e) for e in raw.entries]

    fallback_odds = None
    if entries:
        for entry, value in zip(entries, assigned.odds):
            entry.odds = value
        if len(assigned.odds) > len(entries):
            logger.debug(
                "Ignoring %d surplus odds value(s) for %r",
                len(assigned.odds) - len(entries),
                raw.raw_entry_text,
            )
    elif assigned.odds:
        fallback_odds = assigned.odds[0]

    return MatchDraft(
        home=TeamRef.from_hit(raw.home),
        away=TeamRef.from_hit(raw.away),
        entries=entries,
        conf=assigned.conf if assigned.conf is not None else config.default_conf,
        mode=assigned.mode or config.default_mode,
        tys_home=assigned.tys_home or config.default_tys,
        tys_away=assigned.tys_away or config.default_tys,
        fid=assigned.fid if assigned.fid is not None else config.default_fid,
        fse_home=assigned.fse_home if assigned.fse_home is not None else config.default_fse,
        fse_away=assigned.fse_away if assigned.fse_away is not None else config.default_fse,
        fallback_odds=fallback_odds,
        note=remark,
        raw_entry_text=raw.raw_entry_text,
    )


def _match_diagnostics(index: int, draft: MatchDraft, unknown: Sequence[str]) -> list[Diagnostic]:
    label = f"Match {index + 1}"
    found: list[Diagnostic] = []
    for token in unknown:
        found.append(Diagnostic(LEVEL_WARNING, f"{label}: could not read {token!r}", index))
    if not draft.has_team:
        found.append(Diagnostic(LEVEL_ERROR, f"{label}: no team recognized", index))
    elif not draft.has_both_teams:
        found.append(Diagnostic(
            LEVEL_INFO,
            f"{label}: only one team recognized ({draft.home_team or draft.away_team}); add the opponent",
            index,
        ))
    if not draft.has_named_entry:
        found.append(Diagnostic(LEVEL_INFO, f"{label}: no entry recognized; fill it in manually", index))
    if not draft.has_odds:
        found.append(Diagnostic(LEVEL_INFO, f"{label}: missing odds", index))
    return found


def score_parse(matches: Sequence[MatchDraft], diagnostics: Sequence[Diagnostic]) -> float:
    """
    Heuristic trust score in [0, 1].

    0.3 for producing any match, +0.25 when every match has a team, +0.2
    when every match has a named entry, +0.15 when every match has both
    teams, +0.1 when no warning was raised.
    """
    if not matches:
        return 0.0
    score = 0.3
    if all(m.has_team for m in matches):
        score += 0.25
    if all(m.has_named_entry for m in matches):
        score += 0.2
    if all(m.has_both_teams for m in matches):
        score += 0.15
    if not any(d.level == LEVEL_WARNING for d in diagnostics):
        score += 0.1
    return min(1.0, score)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_natural_input(
    raw_text: Optional[str],
    aliases: AliasSource = None,
    config: Optional[EngineConfig] = None,
) -> ParseResult:
    """
    Parse a free-text slip into match drafts.

    Args:
        raw_text: Text as typed by the user.
        aliases: An :class:`AliasDictionaryCache`, a prebuilt alias
            dictionary, or ``None`` for the curated library alone.
        config: Draft defaults; ``EngineConfig()`` when omitted.

    Returns:
        ParseResult.  Empty input yields one info diagnostic; text without
        any recognizable team yields no matches, confidence 0 and an error
        diagnostic (plus fuzzy "did you mean" suggestions when available).
    """
    config = config or EngineConfig()
    raw_input = raw_text or ""
    if not raw_input.strip():
        return ParseResult([], [Diagnostic(LEVEL_INFO, "Input is empty")], 0.0, raw_input)

    diagnostics: list[Diagnostic] = []

    normalized = normalize_text(raw_input)
    extraction = extract_parameters(normalized)
    params = extraction.params
    for warning in extraction.warnings:
        diagnostics.append(Diagnostic(LEVEL_WARNING, warning))

    dictionary, directory = _resolve_aliases(aliases)
    residual = extraction.residual_text
    hits = scan_team_names(residual, dictionary)

    if not hits:
        diagnostics.append(Diagnostic(LEVEL_ERROR, "No team names recognized"))
        suggestions = _suggestions(residual, directory)
        if suggestions:
            diagnostics.append(Diagnostic(LEVEL_INFO, f"Did you mean: {', '.join(suggestions)}?"))
        logger.info("No teams recognized in %r", raw_input)
        return ParseResult([], diagnostics, 0.0, raw_input, params)

    raw_matches = segment_matches(extract_segments(residual, hits))
    assignment = assign_parameters(params, len(raw_matches))
    for note in assignment.notes:
        diagnostics.append(Diagnostic(LEVEL_INFO, note))

    drafts = [
        _build_draft(raw, assigned, params.remark, config)
        for raw, assigned in zip(raw_matches, assignment.matches)
    ]
    for index, (draft, raw) in enumerate(zip(drafts, raw_matches)):
        diagnostics.extend(_match_diagnostics(index, draft, raw.unknown))

    confidence = score_parse(drafts, diagnostics)
    logger.info(
        "Parsed %d match(es) from slip (confidence %.2f, %d diagnostic(s))",
        len(drafts), confidence, len(diagnostics),
    )
    return ParseResult(drafts, diagnostics, confidence, raw_input, params, assignment.rules)
