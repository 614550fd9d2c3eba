"""
Tests for core/engine_config.py

Run with: pytest tests/test_engine_config.py -v
"""

from dataclasses import FrozenInstanceError, replace

import pytest

from quickslip.core.engine_config import ENV_PREFIX, FID_LADDER, MODE_OPTIONS, EngineConfig


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No QUICKSLIP_* variables and no stray .env file."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "ALIAS_CACHE_TTL", "DEFAULT_CONF", "DEFAULT_MODE", "DEFAULT_TYS", "DEFAULT_FID",
        "DEFAULT_FSE", "DEFAULT_ODDS", "INITIAL_CAPITAL", "RISK_CAP_RATIO",
        "KELLY_DIVISOR", "MAX_KELLY_FRACTION",
    ):
        monkeypatch.delenv(f"{ENV_PREFIX}{name}", raising=False)
    return monkeypatch


class TestDefaults:
    """Registry values"""

    def test_values(self):
        cfg = EngineConfig()
        assert cfg.alias_cache_ttl_seconds == 30.0
        assert cfg.default_mode == "常规"
        assert cfg.default_mode in MODE_OPTIONS
        assert cfg.default_fid in FID_LADDER
        assert cfg.initial_capital == 600.0

    def test_risk_cap(self):
        assert EngineConfig().risk_cap == 72
        assert EngineConfig(initial_capital=1000, risk_cap_ratio=0.05).risk_cap == 50

    def test_frozen(self):
        with pytest.raises(FrozenInstanceError):
            EngineConfig().default_conf = 70

    def test_replace(self):
        cfg = replace(EngineConfig(), risk_cap_ratio=0.05)
        assert cfg.risk_cap == 30

    def test_longer_modes_scanned_first(self):
        assert MODE_OPTIONS.index("常规-稳") < MODE_OPTIONS.index("常规")


class TestFromEnv:
    """Environment overrides"""

    def test_unset_keeps_defaults(self, clean_env):
        assert EngineConfig.from_env() == EngineConfig()

    def test_overrides(self, clean_env):
        clean_env.setenv("QUICKSLIP_INITIAL_CAPITAL", "1000")
        clean_env.setenv("QUICKSLIP_RISK_CAP_RATIO", "0.1")
        clean_env.setenv("QUICKSLIP_DEFAULT_TYS", "h")
        clean_env.setenv("QUICKSLIP_ALIAS_CACHE_TTL", "5")

        cfg = EngineConfig.from_env()

        assert cfg.initial_capital == 1000.0
        assert cfg.risk_cap == 100
        assert cfg.default_tys == "H"
        assert cfg.alias_cache_ttl_seconds == 5.0

    def test_dotenv_file(self, clean_env, tmp_path):
        (tmp_path / ".env").write_text("QUICKSLIP_DEFAULT_CONF=65\n", encoding="utf-8")
        try:
            assert EngineConfig.from_env().default_conf == 65
        finally:
            clean_env.delenv("QUICKSLIP_DEFAULT_CONF", raising=False)

    def test_malformed_number(self, clean_env):
        clean_env.setenv("QUICKSLIP_DEFAULT_CONF", "lots")
        with pytest.raises(ValueError):
            EngineConfig.from_env()
