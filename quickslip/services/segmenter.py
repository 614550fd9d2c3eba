"""
Match segmentation: team hits + residual text -> raw matches.

The residual text left after parameter extraction is cut into alternating
team and gap segments.  Gaps carry the entries (``胜/平``, ``2-1``) or a
versus marker (``vs``, ``对阵``).  The segmenter then walks the segments
left to right and groups them into matches::

    team gap(entries|versus) team [gap(entries)]   -> home vs away
    team team                                      -> home vs away, no entries
    team gap(entries)                              -> one-team match
    gap(entries) team                              -> one-team match
    team                                           -> home only
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Sequence

from quickslip.core.entry_parsing import MARKET_OTHER, EntrySemantic, parse_entry_semantic
from quickslip.services.team_mapping import TeamHit

logger = logging.getLogger(__name__)

VERSUS_RE = re.compile(r"^(vs|v|对阵|对|-|×)$", re.IGNORECASE)
_EDGE_PUNCT_RE = re.compile(r"^[\s,;.]+|[\s,;.]+$")

# First-entry spellings that put a lone team in the away slot.
_AWAY_ENTRY_NAMES = frozenset({"客胜", "客"})


@dataclass(frozen=True)
class Segment:
    """A team hit or a stretch of non-team text, with its span."""
    kind: str  # "team" | "gap"
    text: str
    start: int
    end: int
    team: Optional[TeamHit] = None

    @property
    def is_team(self) -> bool:
        return self.kind == "team"


@dataclass
class GapParse:
    entries: list[EntrySemantic] = field(default_factory=list)
    is_versus: bool = False
    unknown: list[str] = field(default_factory=list)

    @property
    def has_entries(self) -> bool:
        return bool(self.entries)


@dataclass
class RawMatch:
    """A match before parameters are assigned."""
    home: Optional[TeamHit]
    away: Optional[TeamHit]
    entries: list[EntrySemantic] = field(default_factory=list)
    raw_entry_text: str = ""
    unknown: list[str] = field(default_factory=list)


def _as_entry(text: str) -> Optional[EntrySemantic]:
    semantic = parse_entry_semantic(text)
    if semantic.name and semantic.market_type != MARKET_OTHER:
        return semantic
    return None


def parse_gap_as_entries(gap_text: str) -> GapParse:
    """
    Read the entries out of the text between (or around) team names.

    The gap is split on ``/`` for alternatives.  Each slice is tried whole
    first; if that fails, each whitespace token is tried on its own.  What
    still does not classify is returned in ``unknown``.
    """
    cleaned = _EDGE_PUNCT_RE.sub("", gap_text or "").strip()
    if not cleaned:
        return GapParse()
    if VERSUS_RE.match(cleaned):
        return GapParse(is_versus=True)

    result = GapParse()
    for part in (p.strip() for p in cleaned.split("/")):
        if not part:
            continue
        whole = _as_entry(part)
        if whole:
            result.entries.append(whole)
            continue
        for token in part.split():
            token = _EDGE_PUNCT_RE.sub("", token)
            if not token or VERSUS_RE.match(token):
                continue
            entry = _as_entry(token)
            if entry:
                result.entries.append(entry)
            else:
                result.unknown.append(token)
    return result


def extract_segments(text: str, hits: Sequence[TeamHit]) -> list[Segment]:
    """Alternate team and gap segments across ``text``; blank gaps are skipped."""
    segments: list[Segment] = []
    cursor = 0
    for hit in hits:
        if cursor < hit.start:
            gap = text[cursor:hit.start]
            if gap.strip():
                segments.append(Segment("gap", gap.strip(), cursor, hit.start))
        segments.append(Segment("team", text[hit.start:hit.end], hit.start, hit.end, hit))
        cursor = hit.end
    if cursor < len(text):
        gap = text[cursor:].strip()
        if gap:
            segments.append(Segment("gap", gap, cursor, len(text)))
    return segments


def _first_entry_is_away(entries: Sequence[EntrySemantic]) -> bool:
    first = entries[0]
    return first.semantic_key == "lose" or first.name in _AWAY_ENTRY_NAMES


def _lone_team_match(team: TeamHit, gap: GapParse, raw_text: str) -> RawMatch:
    away = _first_entry_is_away(gap.entries)
    return RawMatch(
        home=None if away else team,
        away=team if away else None,
        entries=list(gap.entries),
        raw_entry_text=raw_text,
        unknown=list(gap.unknown),
    )


def segment_matches(segments: Sequence[Segment]) -> list[RawMatch]:
    """Group segments into matches (see the module docstring for the rules)."""
    matches: list[RawMatch] = []
    # Unreadable text seen before any match exists; handed to the first one.
    pending: list[str] = []
    i = 0
    n = len(segments)

    while i < n:
        seg = segments[i]

        if seg.is_team:
            nxt = segments[i + 1] if i + 1 < n else None

            if nxt is not None and nxt.is_team:
                matches.append(RawMatch(home=seg.team, away=nxt.team))
                i += 2
                continue

            if nxt is not None and i + 2 < n and segments[i + 2].is_team:
                gap = parse_gap_as_entries(nxt.text)
                if gap.has_entries or gap.is_versus:
                    match = RawMatch(
                        home=seg.team,
                        away=segments[i + 2].team,
                        entries=list(gap.entries),
                        raw_entry_text="" if gap.is_versus else nxt.text,
                        unknown=list(gap.unknown),
                    )
                    matches.append(match)
                    i += 3
                    if i < n and not segments[i].is_team:
                        trailing = parse_gap_as_entries(segments[i].text)
                        if trailing.has_entries:
                            match.entries.extend(trailing.entries)
                            match.unknown.extend(trailing.unknown)
                            match.raw_entry_text = " ".join(
                                t for t in (match.raw_entry_text, segments[i].text) if t
                            )
                            i += 1
                        elif trailing.unknown:
                            match.unknown.extend(trailing.unknown)
                            i += 1
                    continue

            if nxt is not None:
                gap = parse_gap_as_entries(nxt.text)
                if gap.has_entries:
                    matches.append(_lone_team_match(seg.team, gap, nxt.text))
                    i += 2
                    continue
                if gap.unknown:
                    # Unreadable text after a bare team stays with that team.
                    matches.append(RawMatch(home=seg.team, away=None, unknown=list(gap.unknown)))
                    i += 2
                    continue

            matches.append(RawMatch(home=seg.team, away=None))
            i += 1
            continue

        gap = parse_gap_as_entries(seg.text)
        if gap.has_entries and i + 1 < n and segments[i + 1].is_team:
            matches.append(_lone_team_match(segments[i + 1].team, gap, seg.text))
            i += 2
            continue

        # Orphan gap: nothing to pair it with, so its text is reported as unread.
        leftover = list(gap.unknown) + [entry.name for entry in gap.entries]
        if leftover:
            logger.debug("Unassigned text %r", seg.text)
            if matches:
                matches[-1].unknown.extend(leftover)
            else:
                pending.extend(leftover)
        i += 1

    if pending and matches:
        matches[0].unknown[:0] = pending
    return matches
