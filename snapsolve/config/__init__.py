"""Configuration management for snapsolve."""

from snapsolve.config.loader import Config, ConfigManager, load_config
from snapsolve.config.secrets import load_environment_secrets, resolve_api_key

__all__ = ["Config", "ConfigManager", "load_config", "load_environment_secrets", "resolve_api_key"]
