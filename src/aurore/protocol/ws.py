"""WebSocket frames exchanged between the server and UI clients."""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from aurore.session.state import SessionInfo


class ClientFrameError(Exception):
    """A client frame could not be parsed or is not a known command."""


# ------------------------------------------------------------------ #
# Server -> client
# ------------------------------------------------------------------ #


def session_state_frame(info: SessionInfo) -> dict[str, Any]:
    return {"type": "session:state", "info": info.to_wire()}


def claude_message_frame(message: dict[str, Any]) -> dict[str, Any]:
    return {"type": "claude:message", "message": message}


def stderr_frame(text: str) -> dict[str, Any]:
    return {"type": "claude:stderr", "text": text}


def error_frame(message: str) -> dict[str, Any]:
    return {"type": "error", "message": message}


# ------------------------------------------------------------------ #
# Client -> server
# ------------------------------------------------------------------ #


class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class StartCommand(_Command):
    """Start a fresh session with an initial prompt."""

    type: Literal["session:start"]
    prompt: str


class PromptCommand(_Command):
    """Send a follow-up prompt to the active session."""

    type: Literal["session:prompt"]
    prompt: str


class ResumeCommand(_Command):
    """Resume a previous session by id, optionally with a prompt."""

    type: Literal["session:resume"]
    session_id: str = Field(alias="sessionId", min_length=1)
    prompt: str | None = None


ClientCommand = Annotated[
    StartCommand | PromptCommand | ResumeCommand,
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[ClientCommand] = TypeAdapter(ClientCommand)


def parse_client_frame(text: str | bytes) -> ClientCommand:
    """Parse one client text frame.

    Raises:
        ClientFrameError: Malformed JSON, unknown ``type``, or missing fields.
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = "Invalid message format"
        raise ClientFrameError(msg) from exc

    try:
        return _COMMAND_ADAPTER.validate_python(data)
    except ValidationError as exc:
        kind = data.get("type") if isinstance(data, dict) else None
        msg = f"Invalid message format: unsupported or malformed {kind!r} command"
        raise ClientFrameError(msg) from exc
