"""Configuration loader for snapsolve.

Loads configuration from YAML files and environment variables.
Environment variables override YAML values using the SNAPSOLVE_ prefix.
Nested keys use double underscores: SNAPSOLVE_LLM__PROVIDER=gemini
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class LLMConfig(BaseModel):
    """LLM provider settings.

    Stage models left unset fall back to the provider's default model.
    """

    provider: str = Field(default="openai", pattern="^(openai|gemini|anthropic)$")
    api_key: str | None = Field(default=None, description="Overrides the provider env var")
    extraction_model: str | None = Field(default=None)
    solution_model: str | None = Field(default=None)
    debugging_model: str | None = Field(default=None)
    language: str = Field(default="python", min_length=1)
    max_tokens: int = Field(default=4000, ge=1, le=100000)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout: float = Field(default=60.0, gt=0, le=600, description="Request timeout in seconds")
    max_retries: int = Field(default=2, ge=0, le=5, description="Retries for transient errors")
    retry_delay: float = Field(default=1.0, ge=0.0, le=30.0)


class CaptureConfig(BaseModel):
    """Screen capture settings."""

    hide_delay_windows: float = Field(default=0.5, ge=0.0, le=5.0)
    hide_delay_default: float = Field(default=0.3, ge=0.0, le=5.0)
    show_delay: float = Field(default=0.2, ge=0.0, le=5.0)
    script_timeout: float = Field(default=15.0, gt=0, le=120.0)
    temp_dir: str | None = Field(default=None, description="Defaults to the system temp dir")


class QueueConfig(BaseModel):
    """Screenshot queue settings."""

    max_size: int = Field(default=5, ge=1, le=50)
    data_dir: str = Field(default="data/screenshots")
    purge_on_start: bool = Field(default=True)


class BridgeConfig(BaseModel):
    """HTTP/WebSocket bridge settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8765, ge=1, le=65535)
    max_events: int = Field(default=500, ge=1, le=100000)


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="readable", pattern="^(readable|json)$")


class Config(BaseModel):
    """Root configuration model."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _get_env_value(key: str) -> str | None:
    """Get environment variable with SNAPSOLVE_ prefix."""
    env_key = f"SNAPSOLVE_{key.upper()}"
    return os.environ.get(env_key)


def _apply_env_overrides(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Apply environment variable overrides to config data.

    Environment variables use SNAPSOLVE_ prefix with double underscores for nesting.
    Example: SNAPSOLVE_LLM__MAX_RETRIES=1 sets llm.max_retries to 1
    """
    result = data.copy()

    for key, value in result.items():
        env_key = f"{prefix}__{key}" if prefix else key

        if isinstance(value, dict):
            result[key] = _apply_env_overrides(value, env_key)
        else:
            env_value = _get_env_value(env_key)
            if env_value is not None:
                # Convert to appropriate type based on original value
                if isinstance(value, bool):
                    result[key] = env_value.lower() in ("true", "1", "yes")
                elif isinstance(value, int):
                    result[key] = int(env_value)
                elif isinstance(value, float):
                    result[key] = float(env_value)
                else:
                    result[key] = env_value

    return result


def default_config_path() -> Path:
    """Path of the bundled default.yaml."""
    project_root = Path(__file__).parent.parent.parent
    return project_root / "configs" / "default.yaml"


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Keys missing from the YAML file are still overridable from the
    environment, because overrides are applied on top of the full default
    tree.

    Args:
        config_path: Path to YAML config file. If None, uses default.yaml.

    Returns:
        Validated Config object.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        ValidationError: If config values are invalid.
    """
    data: dict[str, Any] = {}
    if config_path is None:
        # Installed without the configs/ directory: defaults plus env only.
        config_path = default_config_path()
        if not config_path.exists():
            logger.debug(f"Default config not found at {config_path}, using built-in defaults")
            return Config.model_validate(_apply_env_overrides(Config().model_dump()))
    else:
        config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    merged = _deep_merge(Config().model_dump(), data)
    merged = _apply_env_overrides(merged)

    return Config.model_validate(merged)


def get_default_config() -> Config:
    """Get default configuration without loading from file."""
    return Config()


def _deep_merge(base: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
    """Deep merge updates into a copy of base."""
    result = base.copy()

    for key, value in updates.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


# Type for config change callbacks
ConfigCallback = Callable[[Config], None]


class ConfigManager:
    """Holds the current configuration and notifies subscribers on change.

    The manager is passed explicitly to the components that need it; they
    read a snapshot with get() when a run starts and subscribe to learn about
    changes (for example, a provider switch that requires a new client).

    Example:
        >>> manager = ConfigManager(load_config())
        >>> manager.subscribe(lambda cfg: print(cfg.llm.provider))
        >>> manager.update({"llm": {"provider": "gemini"}})
        gemini
    """

    def __init__(self, config: Config | None = None) -> None:
        """Initialize with a configuration.

        Args:
            config: Initial configuration. Defaults to Config().
        """
        self._config = config or Config()
        self._subscribers: list[ConfigCallback] = []

    @property
    def config(self) -> Config:
        """Get the current configuration."""
        return self._config

    def get(self) -> Config:
        """Get the current configuration snapshot.

        Returns:
            Current Config object. Config objects are replaced, not mutated,
            so a snapshot stays stable for the duration of a run.
        """
        return self._config

    def subscribe(self, callback: ConfigCallback) -> None:
        """Subscribe to configuration changes.

        Args:
            callback: Function to call with new config on changes.
        """
        self._subscribers.append(callback)

    def unsubscribe(self, callback: ConfigCallback) -> None:
        """Unsubscribe from configuration changes.

        Args:
            callback: Previously subscribed callback to remove.
        """
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def update(self, updates: dict[str, Any]) -> Config:
        """Update configuration at runtime.

        Merges updates into current config, validates, and notifies subscribers.

        Args:
            updates: Dictionary of updates. Can be nested.
                Example: {"llm": {"provider": "anthropic"}}

        Returns:
            Updated Config object.

        Raises:
            ValidationError: If updates result in invalid configuration.
        """
        merged = _deep_merge(self._config.model_dump(), updates)
        new_config = Config.model_validate(merged)
        self._config = new_config

        for subscriber in self._subscribers:
            try:
                subscriber(new_config)
            except Exception as e:
                logger.warning(f"Config subscriber error: {e}")

        return new_config

    def reset(self) -> Config:
        """Reset configuration to defaults.

        Returns:
            Default Config object.
        """
        self._config = Config()

        for subscriber in self._subscribers:
            try:
                subscriber(self._config)
            except Exception as e:
                logger.warning(f"Config subscriber error: {e}")

        return self._config
