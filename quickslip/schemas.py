"""
Pydantic schemas for the record shapes quickslip exchanges with collaborators.

The storage layer persists confirmed matches as ``MatchRecord`` payloads and
the team directory hands rows shaped like ``TeamDirectoryRow`` to the alias
cache.  Validating at these seams keeps malformed rows from ever reaching
the parser or the staking math.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from quickslip.core.engine_config import FID_LADDER, MODE_OPTIONS, TYS_CODES


# ---------------------------------------------------------------------------
# Team directory
# ---------------------------------------------------------------------------

class TeamDirectoryRow(BaseModel):
    """
    One row returned by the team-directory provider.

    Accepts both snake_case and the camelCase keys older exports use
    (``teamId``, ``teamName``, ``totalSamples``, ``avgRep``).
    """

    team_id: str = Field(..., min_length=1, alias="teamId")
    team_name: str = Field(..., min_length=1, alias="teamName")
    abbreviations: list[str] = Field(default_factory=list)
    total_samples: int = Field(0, ge=0, alias="totalSamples")
    avg_rep: float = Field(0.5, ge=0.0, le=1.0, alias="avgRep")

    @field_validator("team_id", "team_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("abbreviations", mode="before")
    @classmethod
    def drop_blank_aliases(cls, v):
        if v is None:
            return []
        return [str(a).strip() for a in v if a is not None and str(a).strip()]

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Match records
# ---------------------------------------------------------------------------

class EntryRecord(BaseModel):
    """A single betting entry inside a match record."""

    name: str = Field(..., min_length=1, max_length=60, description='e.g. "主胜", "2-1"')
    odds: Optional[float] = Field(None, gt=1.0, description="Decimal odds, stake included")


class MatchRecord(BaseModel):
    """
    Persisted shape of one confirmed match.

    ``id`` is assigned by the storage collaborator and is ``None`` until the
    record has been saved.
    """

    id: Optional[str] = None
    home_team: str = Field("", max_length=60)
    away_team: str = Field("", max_length=60)
    entries: list[EntryRecord] = Field(default_factory=list)
    odds: Optional[float] = Field(None, gt=1.0, description="Fallback odds for the match")

    conf: int = Field(50, ge=0, le=100, description="Confidence in percent")
    mode: str = Field(MODE_OPTIONS[-1])
    tys_home: str = Field("M")
    tys_away: str = Field("M")
    fid: float = Field(0.4)
    fse_home: int = Field(50, ge=0, le=100)
    fse_away: int = Field(50, ge=0, le=100)

    note: str = Field("", max_length=1000)

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, v: str) -> str:
        if v not in MODE_OPTIONS:
            raise ValueError(f"mode={v!r} is not one of {', '.join(MODE_OPTIONS)}")
        return v

    @field_validator("tys_home", "tys_away", mode="before")
    @classmethod
    def validate_tys(cls, v) -> str:
        code = str(v or "").strip().upper()
        if code not in TYS_CODES:
            raise ValueError(f"tys={v!r} must be one of S, M, L, H")
        return code

    @field_validator("fid")
    @classmethod
    def validate_fid(cls, v: float) -> float:
        for rung in FID_LADDER:
            if abs(v - rung) < 1e-9:
                return rung
        raise ValueError(
            f"fid={v} is not on the FID ladder "
            f"({', '.join(str(r) for r in FID_LADDER)})"
        )

    @property
    def entry_text(self) -> str:
        return ", ".join(entry.name for entry in self.entries)

    model_config = {
        "json_schema_extra": {
            "example": {
                "home_team": "伯恩茅斯",
                "away_team": "曼联",
                "entries": [{"name": "胜", "odds": 8.1}, {"name": "平"}],
                "conf": 35,
                "mode": "常规",
                "tys_home": "M",
                "tys_away": "M",
                "fid": 0.4,
                "fse_home": 90,
                "fse_away": 90,
            }
        }
    }
