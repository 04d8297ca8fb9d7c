"""Pydantic v2 models for aurore.yaml configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from aurore.constants import DEFAULT_PORT


class ClaudeConfig(BaseModel):
    """How the assistant subprocess is launched."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(
        default="claude",
        description="Executable (optionally with leading args) for the Claude CLI",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Arguments appended after the stream-json protocol flags",
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the subprocess",
    )

    @field_validator("command")
    @classmethod
    def _non_empty_command(cls, value: str) -> str:
        if not value.strip():
            msg = "command must not be empty"
            raise ValueError(msg)
        return value


class AuroreConfig(BaseModel):
    """Top-level configuration for ``aurore serve`` / ``aurore review``."""

    model_config = ConfigDict(extra="forbid")

    host: str = Field(default="localhost", description="Interface to bind")
    port: int = Field(default=DEFAULT_PORT, ge=1, le=65535, description="TCP port")
    open_browser: bool = Field(
        default=True,
        description="Open the UI in a browser once the server is listening",
    )
    working_directory: Path = Field(
        default_factory=Path.cwd,
        description="Project directory browsed by the UI and used as subprocess cwd",
    )
    static_dir: Path | None = Field(
        default=None,
        description="Directory holding the UI's index.html and assets",
    )
    claude: ClaudeConfig = Field(default_factory=ClaudeConfig)
