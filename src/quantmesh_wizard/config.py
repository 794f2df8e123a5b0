"""Configuration management module for the QuantMesh configuration wizard."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .allocation.normalizer import WEIGHT_SUM_EPSILON
from .models import DEFAULT_STRATEGY_TYPES, CapitalMode, RiskProfile


@dataclass
class BackendConfig:
    """Connection to the trading bot's web API."""
    base_url: str = "http://localhost:28888"
    api_token: str = ""
    timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass
class WizardConfig:
    """Allocation defaults for a wizard session."""
    default_risk_profile: str = RiskProfile.BALANCED.value
    default_total_capital: float = 10000.0
    fallback_strategy_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_STRATEGY_TYPES)
    )
    weight_sum_epsilon: float = WEIGHT_SUM_EPSILON
    capital_mode: str = CapitalMode.TOTAL.value


@dataclass
class AIConfig:
    """AI recommendation settings."""
    enabled: bool = True
    api_key: str = ""


@dataclass
class Config:
    """Main configuration container."""
    backend: BackendConfig = field(default_factory=BackendConfig)
    wizard: WizardConfig = field(default_factory=WizardConfig)
    ai: AIConfig = field(default_factory=AIConfig)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigManager:
    """Manages loading and validation of configuration."""

    def __init__(self, config_path: str | Path | None = None, load_env: bool = True):
        """Initialize configuration manager.

        Args:
            config_path: Path to wizard.json. If None, uses default location.
            load_env: Whether to load .env and apply environment overrides.
                Set to False for testing.
        """
        self.config_path = Path(config_path) if config_path else Path("config/wizard.json")
        self._config: Config | None = None
        self._load_env = load_env
        if load_env:
            load_dotenv()

    def load(self) -> Config:
        """Load configuration from file and environment variables.

        Returns:
            Loaded and validated Config object.

        Raises:
            ConfigValidationError: If the file is unreadable or values are invalid.
        """
        config_data = self._load_json()
        self._config = self._parse_config(config_data)
        self._override_from_env()
        self._validate()
        return self._config

    def _load_json(self) -> dict[str, Any]:
        """Load JSON configuration file."""
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path) as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Invalid JSON in {self.config_path}: {e}")

    def _parse_config(self, data: dict[str, Any]) -> Config:
        """Parse configuration dictionary into Config object."""
        backend_data = data.get("backend", {})
        wizard_data = data.get("wizard", {})
        ai_data = data.get("ai", {})

        return Config(
            backend=BackendConfig(
                base_url=backend_data.get("base_url", "http://localhost:28888"),
                api_token=backend_data.get("api_token", ""),
                timeout_seconds=backend_data.get("timeout_seconds", 30.0),
                max_retries=backend_data.get("max_retries", 3),
            ),
            wizard=WizardConfig(
                default_risk_profile=wizard_data.get("default_risk_profile", RiskProfile.BALANCED.value),
                default_total_capital=wizard_data.get("default_total_capital", 10000.0),
                fallback_strategy_types=wizard_data.get(
                    "fallback_strategy_types", list(DEFAULT_STRATEGY_TYPES)
                ),
                weight_sum_epsilon=wizard_data.get("weight_sum_epsilon", WEIGHT_SUM_EPSILON),
                capital_mode=wizard_data.get("capital_mode", CapitalMode.TOTAL.value),
            ),
            ai=AIConfig(
                enabled=ai_data.get("enabled", True),
                api_key=ai_data.get("api_key", ""),
            ),
        )

    def _override_from_env(self) -> None:
        """Override configuration values from environment variables."""
        if not self._config:
            return

        # Skip env overrides if load_env is False (for testing)
        if not self._load_env:
            return

        # Backend
        if url := os.getenv("QUANTMESH_API_URL"):
            self._config.backend.base_url = url
        if token := os.getenv("QUANTMESH_API_TOKEN"):
            self._config.backend.api_token = token
        if timeout := os.getenv("QUANTMESH_TIMEOUT"):
            try:
                self._config.backend.timeout_seconds = float(timeout)
            except ValueError:
                raise ConfigValidationError(f"QUANTMESH_TIMEOUT is not a number: {timeout!r}")

        # Wizard
        if profile := os.getenv("WIZARD_RISK_PROFILE"):
            self._config.wizard.default_risk_profile = profile

        # AI
        if api_key := os.getenv("GEMINI_API_KEY"):
            self._config.ai.api_key = api_key

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ConfigValidationError: If validation fails.
        """
        if not self._config:
            raise ConfigValidationError("Configuration not loaded")

        errors = []
        backend = self._config.backend
        wizard = self._config.wizard

        if not backend.base_url.startswith(("http://", "https://")):
            errors.append(f"backend.base_url must be an http(s) URL, got {backend.base_url!r}")
        if backend.timeout_seconds <= 0:
            errors.append("backend.timeout_seconds must be > 0")
        if backend.max_retries < 0:
            errors.append("backend.max_retries must be >= 0")

        if wizard.default_risk_profile not in {p.value for p in RiskProfile}:
            errors.append(
                f"wizard.default_risk_profile must be one of "
                f"{', '.join(p.value for p in RiskProfile)}"
            )
        if wizard.capital_mode not in {m.value for m in CapitalMode}:
            errors.append("wizard.capital_mode must be 'total' or 'per_symbol'")
        if wizard.default_total_capital < 0:
            errors.append("wizard.default_total_capital must be >= 0")
        if not wizard.fallback_strategy_types:
            errors.append("wizard.fallback_strategy_types must not be empty")
        if not 0 < wizard.weight_sum_epsilon < 1:
            errors.append("wizard.weight_sum_epsilon must be between 0 and 1")

        if errors:
            raise ConfigValidationError("\n".join(errors))

    @property
    def config(self) -> Config:
        """Get loaded configuration."""
        if not self._config:
            raise ConfigValidationError("Configuration not loaded. Call load() first.")
        return self._config
