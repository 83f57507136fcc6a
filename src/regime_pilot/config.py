"""Configuration management module for Regime Pilot."""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv

from regime_pilot.engine.feeds import FeedConfig
from regime_pilot.engine.orchestrator import EngineConfig
from regime_pilot.exceptions import ConfigValidationError
from regime_pilot.market.timing import TimingConfig
from regime_pilot.risk.capital import CapitalConfig
from regime_pilot.risk.fees import FeeSchedule
from regime_pilot.risk.leverage import LeverageConfig
from regime_pilot.risk.protection import ProtectionConfig
from regime_pilot.strategy.aggressive import AggressiveConfig
from regime_pilot.strategy.filter import FilterConfig
from regime_pilot.strategy.smart import SmartConfig

__all__ = ["Config", "ConfigManager", "ConfigValidationError", "EngineConfig"]

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Main configuration container."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    fees: FeeSchedule = field(default_factory=FeeSchedule)
    capital: CapitalConfig = field(default_factory=CapitalConfig)
    leverage: LeverageConfig = field(default_factory=LeverageConfig)
    protection: ProtectionConfig = field(default_factory=ProtectionConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    aggressive: AggressiveConfig = field(default_factory=AggressiveConfig)
    smart: SmartConfig = field(default_factory=SmartConfig)
    filter: FilterConfig = field(default_factory=FilterConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    log_level: str = "INFO"

    def validate(self) -> None:
        """Validate every section, reporting all problems at once.

        Raises:
            ConfigValidationError: If any section is invalid
        """
        errors: List[str] = []
        for section in fields(self):
            value = getattr(self, section.name)
            if not hasattr(value, "validate"):
                continue
            try:
                value.validate()
            except ConfigValidationError as e:
                errors.extend(f"{section.name}: {line}" for line in str(e).splitlines())
        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if errors:
            raise ConfigValidationError("\n".join(errors))


def _section(cls, data: dict, name: str):
    """Build a config section from a dict, rejecting unknown keys."""
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigValidationError(f"Unknown {name} settings: {', '.join(sorted(unknown))}")
    return cls(**data)


class ConfigManager:
    """Manages loading and validation of configuration."""

    SECTIONS = {
        "engine": EngineConfig,
        "fees": FeeSchedule,
        "capital": CapitalConfig,
        "leverage": LeverageConfig,
        "protection": ProtectionConfig,
        "timing": TimingConfig,
        "aggressive": AggressiveConfig,
        "smart": SmartConfig,
        "filter": FilterConfig,
        "feed": FeedConfig,
    }

    def __init__(self, config_path: str | Path | None = None, load_env: bool = True):
        """Initialize configuration manager.

        Args:
            config_path: Path to config.json file. If None, uses default location.
            load_env: Whether to load .env file and apply environment overrides.
                Set to False for testing.
        """
        self.config_path = Path(config_path) if config_path else Path("config/config.json")
        self._config: Config | None = None
        self._load_env = load_env
        if load_env:
            load_dotenv()

    def load(self) -> Config:
        """Load configuration from file and environment variables.

        Returns:
            Loaded and validated Config object.

        Raises:
            ConfigValidationError: If the file or any value is invalid.
        """
        config_data = self._load_json()
        self._config = self._parse_config(config_data)
        self._override_from_env()
        self._config.validate()
        return self._config

    def _load_json(self) -> dict[str, Any]:
        """Load JSON configuration file."""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON in {self.config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigValidationError(f"{self.config_path} must contain a JSON object")
        return data

    def _parse_config(self, data: dict[str, Any]) -> Config:
        """Parse configuration dictionary into Config object."""
        unknown = set(data) - set(self.SECTIONS) - {"log_level"}
        if unknown:
            raise ConfigValidationError(f"Unknown configuration sections: {', '.join(sorted(unknown))}")

        sections = {
            name: _section(cls, data.get(name, {}), name)
            for name, cls in self.SECTIONS.items()
        }
        return Config(**sections, log_level=data.get("log_level", "INFO"))

    def _override_from_env(self) -> None:
        """Override configuration values from environment variables."""
        if not self._config or not self._load_env:
            return

        try:
            if capital := os.getenv("REGIME_PILOT_INITIAL_CAPITAL"):
                self._config.capital = replace(
                    self._config.capital, initial_capital=float(capital)
                )
            if compounding := os.getenv("REGIME_PILOT_COMPOUNDING"):
                self._config.capital = replace(
                    self._config.capital, compounding=compounding.lower() == "true"
                )
            if interval := os.getenv("REGIME_PILOT_TICK_INTERVAL"):
                self._config.engine.tick_interval_seconds = float(interval)
        except ValueError as e:
            raise ConfigValidationError(f"Invalid environment override: {e}") from e

        if auto_execute := os.getenv("REGIME_PILOT_AUTO_EXECUTE"):
            self._config.engine.auto_execute = auto_execute.lower() == "true"
        if log_level := os.getenv("REGIME_PILOT_LOG_LEVEL"):
            self._config.log_level = log_level.upper()
        if api_url := os.getenv("COINGECKO_API_URL"):
            self._config.feed.api_url = api_url

        logger.debug("Environment overrides applied")

    @property
    def config(self) -> Config:
        """Get loaded configuration."""
        if not self._config:
            raise ConfigValidationError("Configuration not loaded. Call load() first.")
        return self._config
