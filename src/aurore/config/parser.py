"""Load, validate, and resolve aurore.yaml configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from aurore.config.models import AuroreConfig

DEFAULT_CONFIG_NAME = "aurore.yaml"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(
    path: Path | None = None,
    working_directory: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> AuroreConfig:
    """Load and validate aurore.yaml, falling back to defaults.

    Args:
        path: Explicit config file path. If None, looks for aurore.yaml
              in *working_directory* and uses defaults when there is none.
        working_directory: Project directory. Defaults to the current
              directory.
        overrides: Values applied after the file and environment, e.g.
              command-line flags.

    Returns:
        A validated AuroreConfig instance.

    Raises:
        ConfigError: On missing explicit file, bad YAML, or validation failure.
    """
    base_dir = Path(working_directory) if working_directory is not None else Path.cwd()
    config_path = _resolve_path(path, base_dir)

    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_yaml(config_path)
        _load_env(config_path.parent)
    _load_env(base_dir)

    raw.setdefault("working_directory", str(base_dir))
    _apply_env_overrides(raw)
    if overrides:
        raw.update(overrides)
    return _validate(raw)


def _resolve_path(path: Path | None, base_dir: Path) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = base_dir / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        detail = ""
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            detail = f" (line {mark.line + 1}, column {mark.column + 1})"
        msg = f"Invalid YAML in {path.name}{detail}"
        raise ConfigError(msg) from exc

    # An empty file is a valid "all defaults" config.
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)

    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env_overrides(raw: dict[str, Any]) -> None:
    """Environment variables win over the file, CLI flags win over both."""
    port = os.environ.get("AURORE_PORT")
    if port:
        try:
            raw["port"] = int(port)
        except ValueError as exc:
            msg = f"AURORE_PORT must be an integer, got {port!r}"
            raise ConfigError(msg) from exc

    host = os.environ.get("AURORE_HOST")
    if host:
        raw["host"] = host

    if os.environ.get("AURORE_REMOTE") == "1":
        raw["open_browser"] = False

    command = os.environ.get("AURORE_CLAUDE_COMMAND")
    if command:
        claude = raw.get("claude")
        if claude is None:
            claude = raw["claude"] = {}
        if isinstance(claude, dict):
            claude["command"] = command


def _validate(raw: dict[str, Any]) -> AuroreConfig:
    try:
        return AuroreConfig.model_validate(raw)
    except ValidationError as exc:
        parts: list[str] = []
        for err in exc.errors():
            loc = " → ".join(str(s) for s in err["loc"])
            msg = err["msg"]
            if "field required" in msg.lower():
                msg = "This field is required"
            elif "input should be" in msg.lower():
                msg = f"Invalid value: {msg}"
            parts.append(f"  {loc}: {msg}")
        joined = "\n".join(parts)
        msg = f"Config validation failed:\n{joined}"
        raise ConfigError(msg) from exc
