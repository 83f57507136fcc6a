"""Tests for configuration loading."""

import json

import pytest

from regime_pilot.config import Config, ConfigManager, ConfigValidationError


def write_config(path, data):
    path.write_text(json.dumps(data))
    return path


class TestConfigManager:

    def test_missing_file_uses_defaults(self, tmp_path):
        config = ConfigManager(tmp_path / "missing.json", load_env=False).load()
        assert config == Config()

    def test_sections_override_defaults(self, tmp_path):
        path = write_config(tmp_path / "config.json", {
            "log_level": "DEBUG",
            "engine": {"instruments": ["BTC/USD"], "auto_execute": True},
            "capital": {"initial_capital": 250.0, "compounding": False},
            "fees": {"min_fee": 0.05},
        })
        config = ConfigManager(path, load_env=False).load()
        assert config.log_level == "DEBUG"
        assert config.engine.instruments == ["BTC/USD"]
        assert config.engine.auto_execute
        assert config.engine.tick_interval_seconds == 5.0
        assert config.capital.initial_capital == 250.0
        assert not config.capital.compounding
        assert config.fees.min_fee == 0.05
        assert config.fees.taker_fee_pct == 0.04

    def test_unknown_section(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"exchange": {}})
        with pytest.raises(ConfigValidationError, match="exchange"):
            ConfigManager(path, load_env=False).load()

    def test_unknown_setting(self, tmp_path):
        path = write_config(tmp_path / "config.json", {"capital": {"leverage": 5}})
        with pytest.raises(ConfigValidationError, match="leverage"):
            ConfigManager(path, load_env=False).load()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigValidationError, match="Invalid JSON"):
            ConfigManager(path, load_env=False).load()

    def test_reports_every_invalid_section(self, tmp_path):
        path = write_config(tmp_path / "config.json", {
            "capital": {"initial_capital": 0},
            "engine": {"tick_interval_seconds": -1},
            "log_level": "LOUD",
        })
        with pytest.raises(ConfigValidationError) as exc:
            ConfigManager(path, load_env=False).load()
        message = str(exc.value)
        assert "capital: initial_capital must be > 0" in message
        assert "engine: tick_interval_seconds must be > 0" in message
        assert "log_level" in message

    def test_config_before_load(self, tmp_path):
        with pytest.raises(ConfigValidationError):
            ConfigManager(tmp_path / "config.json", load_env=False).config


class TestEnvironmentOverrides:

    def test_overrides_apply(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REGIME_PILOT_INITIAL_CAPITAL", "500")
        monkeypatch.setenv("REGIME_PILOT_COMPOUNDING", "false")
        monkeypatch.setenv("REGIME_PILOT_TICK_INTERVAL", "2.5")
        monkeypatch.setenv("REGIME_PILOT_AUTO_EXECUTE", "true")
        monkeypatch.setenv("REGIME_PILOT_LOG_LEVEL", "debug")
        monkeypatch.setenv("COINGECKO_API_URL", "http://localhost:9000")
        manager = ConfigManager(tmp_path / "config.json")
        config = manager.load()
        assert config.capital.initial_capital == 500.0
        assert not config.capital.compounding
        assert config.engine.tick_interval_seconds == 2.5
        assert config.engine.auto_execute
        assert config.log_level == "DEBUG"
        assert config.feed.api_url == "http://localhost:9000"
        assert manager.config is config

    def test_invalid_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REGIME_PILOT_INITIAL_CAPITAL", "lots")
        with pytest.raises(ConfigValidationError):
            ConfigManager(tmp_path / "config.json").load()

    def test_ignored_when_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("REGIME_PILOT_INITIAL_CAPITAL", "500")
        config = ConfigManager(tmp_path / "config.json", load_env=False).load()
        assert config.capital.initial_capital == 10.0
