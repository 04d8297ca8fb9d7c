"""Configuration models and parser for aurore.yaml."""

from aurore.config.models import AuroreConfig, ClaudeConfig
from aurore.config.parser import ConfigError, load_config

__all__ = [
    "AuroreConfig",
    "ClaudeConfig",
    "ConfigError",
    "load_config",
]
