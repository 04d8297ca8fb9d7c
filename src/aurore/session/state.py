"""Session state machine — pure transitions over immutable snapshots."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from aurore.protocol.messages import (
    AssistantMessage,
    ClaudeMessage,
    ResultMessage,
    StreamEvent,
    SystemMessage,
)

SessionState = Literal["starting", "ready", "processing", "error", "exited"]

#: Error text used when a failed ``result`` carries no message.
UNKNOWN_ERROR = "Unknown error"


class SessionInfo(BaseModel):
    """Immutable snapshot of one session, as broadcast to UI clients."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    state: SessionState = "starting"
    session_id: str | None = Field(default=None, alias="sessionId")
    model: str | None = None
    num_turns: int = Field(default=0, ge=0, alias="numTurns")
    last_error: str | None = Field(default=None, alias="error")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _evolve(info: SessionInfo, **changes: Any) -> SessionInfo:
    """Return *info* itself when *changes* alter nothing, else a new snapshot.

    Observers compare snapshots by identity to skip redundant updates.
    """
    if all(getattr(info, name) == value for name, value in changes.items()):
        return info
    return info.model_copy(update=changes)


def apply_session_message(info: SessionInfo, msg: ClaudeMessage) -> SessionInfo:
    """Apply one decoded event to *info* and return the next snapshot."""
    match msg:
        case SystemMessage(subtype="init"):
            return _evolve(
                info,
                session_id=msg.session_id or info.session_id,
                model=msg.model or info.model,
            )

        case StreamEvent() | AssistantMessage():
            if info.state in ("starting", "ready"):
                return _evolve(info, state="processing")
            return info

        case ResultMessage():
            changes: dict[str, Any] = {
                "session_id": msg.session_id or info.session_id,
                "num_turns": max(info.num_turns, msg.num_turns or 0),
            }
            if msg.is_error:
                changes["state"] = "error"
                changes["last_error"] = msg.error or UNKNOWN_ERROR
            else:
                changes["state"] = "ready"
            return _evolve(info, **changes)

        case _:
            return info


def apply_process_exit(info: SessionInfo, returncode: int) -> SessionInfo:
    """Transition for subprocess exit: clean exit or an error with the code."""
    if returncode == 0:
        return _evolve(info, state="exited")
    return _evolve(
        info,
        state="error",
        last_error=f"Process exited with code {returncode}",
    )
