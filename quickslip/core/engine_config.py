"""Engine-level configuration: every tunable default in one place.

This module is the **registry** for the constants the parser and the staking
layer fall back to.  Nowhere else in the codebase should default confidence,
default FID, cache TTLs or bankroll figures be hard-coded.

Architecture
------------
:class:`EngineConfig` is a frozen dataclass.  :meth:`EngineConfig.from_env`
returns an instance populated from ``QUICKSLIP_*`` environment variables (a
``.env`` file in the working directory is honoured via ``python-dotenv``).
Callers pass the config down explicitly; services never read the environment
themselves.

Typical usage::

    from quickslip.core.engine_config import EngineConfig

    cfg = EngineConfig.from_env()

    # Override a single constant for a test or a one-off session:
    from dataclasses import replace
    cautious = replace(cfg, risk_cap_ratio=0.05)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import find_dotenv, load_dotenv

#: Prefix for every environment variable read by :meth:`EngineConfig.from_env`.
ENV_PREFIX: Final[str] = "QUICKSLIP_"

#: Mode vocabulary, in the priority order the extractor scans it.
#: Longer phrases first so ``常规`` never swallows ``常规-稳``.
MODE_OPTIONS: Final[tuple[str, ...]] = (
    "常规-稳",
    "常规-杠杆",
    "常规-激进",
    "半彩票半保险",
    "保险产品",
    "赌一把",
    "常规",
)

#: Permitted TYS codes (small / medium / large / heavy).
TYS_CODES: Final[frozenset[str]] = frozenset({"S", "M", "L", "H"})

#: FID ladder.  Raw FID input is snapped to the nearest rung.
FID_LADDER: Final[tuple[float, ...]] = (0.0, 0.25, 0.4, 0.5, 0.6, 0.75)


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration bundle for parsing and staking.

    Attributes:
        alias_cache_ttl_seconds: Maximum age of the alias dictionary before
            :class:`~quickslip.services.team_mapping.AliasDictionaryCache`
            rebuilds it from the team-directory provider.

        --- Draft defaults (used when the text carries no value) ---
        default_conf: Confidence in percent.
        default_mode: Mode label; must be one of :data:`MODE_OPTIONS`.
        default_tys: TYS code applied to both sides.
        default_fid: FID rung.
        default_fse: FSE in percent, applied to both sides.

        --- Probability model ---
        default_odds: Fallback decimal odds for a match with no usable price.

        --- Staking ---
        initial_capital: Bankroll the Kelly fraction is applied to.
        risk_cap_ratio: Hard cap on one recommendation as a fraction of
            ``initial_capital``.
        kelly_divisor: Fractional-Kelly divisor for modes without a
            dedicated entry in the mode divisor table.
        max_kelly_fraction: Upper bound handed to the Kelly solver.
    """

    alias_cache_ttl_seconds: float = 30.0

    default_conf: int = 50
    default_mode: str = "常规"
    default_tys: str = "M"
    default_fid: float = 0.4
    default_fse: int = 50

    default_odds: float = 2.5

    initial_capital: float = 600.0
    risk_cap_ratio: float = 0.12
    kelly_divisor: float = 4.0
    max_kelly_fraction: float = 0.95

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config from ``QUICKSLIP_*`` environment variables.

        Unset variables keep the dataclass default.  A malformed numeric
        value raises ``ValueError`` so misconfiguration surfaces at start-up
        rather than as a silently wrong stake.
        """
        load_dotenv(find_dotenv(usecwd=True))
        base = cls()
        return cls(
            alias_cache_ttl_seconds=float(
                os.getenv(f"{ENV_PREFIX}ALIAS_CACHE_TTL", str(base.alias_cache_ttl_seconds))
            ),
            default_conf=int(os.getenv(f"{ENV_PREFIX}DEFAULT_CONF", str(base.default_conf))),
            default_mode=os.getenv(f"{ENV_PREFIX}DEFAULT_MODE", base.default_mode),
            default_tys=os.getenv(f"{ENV_PREFIX}DEFAULT_TYS", base.default_tys).upper(),
            default_fid=float(os.getenv(f"{ENV_PREFIX}DEFAULT_FID", str(base.default_fid))),
            default_fse=int(os.getenv(f"{ENV_PREFIX}DEFAULT_FSE", str(base.default_fse))),
            default_odds=float(os.getenv(f"{ENV_PREFIX}DEFAULT_ODDS", str(base.default_odds))),
            initial_capital=float(
                os.getenv(f"{ENV_PREFIX}INITIAL_CAPITAL", str(base.initial_capital))
            ),
            risk_cap_ratio=float(
                os.getenv(f"{ENV_PREFIX}RISK_CAP_RATIO", str(base.risk_cap_ratio))
            ),
            kelly_divisor=float(os.getenv(f"{ENV_PREFIX}KELLY_DIVISOR", str(base.kelly_divisor))),
            max_kelly_fraction=float(
                os.getenv(f"{ENV_PREFIX}MAX_KELLY_FRACTION", str(base.max_kelly_fraction))
            ),
        )

    @property
    def risk_cap(self) -> int:
        """Largest single recommendation, rounded to whole currency units."""
        return round(self.initial_capital * self.risk_cap_ratio)

    def __repr__(self) -> str:
        return (
            f"EngineConfig(ttl={self.alias_cache_ttl_seconds}, "
            f"capital={self.initial_capital}, "
            f"risk_cap_ratio={self.risk_cap_ratio}, "
            f"kelly_divisor={self.kelly_divisor})"
        )
