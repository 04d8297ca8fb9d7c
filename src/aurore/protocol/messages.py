"""Pydantic v2 models for the assistant's stream-json event protocol.

Every model allows extra fields so that a decoded event can be relayed to
UI clients without losing anything the CLI emitted. ``to_wire()`` dumps
only the fields that were present in the original record.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter


class _WireModel(BaseModel):
    """Base for protocol records: permissive, round-trippable."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the record as a JSON-ready dict, omitting unset defaults."""
        return self.model_dump(mode="json", exclude_unset=True, by_alias=True)


def _type_discriminator(known: frozenset[str]) -> Any:
    """Build a discriminator that maps unrecognized ``type`` tags to ``unknown``."""

    def _discriminate(v: Any) -> str:
        tag = v.get("type") if isinstance(v, dict) else getattr(v, "type", None)
        return tag if isinstance(tag, str) and tag in known else "unknown"

    return Discriminator(_discriminate)


# ------------------------------------------------------------------ #
# Content blocks
# ------------------------------------------------------------------ #


class TextBlock(_WireModel):
    type: Literal["text"] = "text"
    text: str = ""


class ToolUseBlock(_WireModel):
    type: Literal["tool_use"] = "tool_use"
    id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)


class ThinkingBlock(_WireModel):
    type: Literal["thinking"] = "thinking"
    thinking: str = ""


class ToolResultBlock(_WireModel):
    """Result of a tool invocation, echoed back on a ``user`` event."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str = ""
    content: str | list[dict[str, Any]] | None = None
    is_error: bool = False

    def content_text(self) -> str:
        """Flatten ``content`` to plain text (list form joins its text parts)."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        parts = [
            str(part.get("text", ""))
            for part in self.content
            if isinstance(part, dict) and part.get("type") == "text"
        ]
        return "\n".join(parts)


class UnknownBlock(_WireModel):
    """Content block of a type this version does not understand."""

    type: str = ""


AssistantContentBlock = Annotated[
    Annotated[TextBlock, Tag("text")]
    | Annotated[ToolUseBlock, Tag("tool_use")]
    | Annotated[ThinkingBlock, Tag("thinking")]
    | Annotated[UnknownBlock, Tag("unknown")],
    _type_discriminator(frozenset({"text", "tool_use", "thinking"})),
]

UserContentBlock = Annotated[
    Annotated[TextBlock, Tag("text")]
    | Annotated[ToolResultBlock, Tag("tool_result")]
    | Annotated[UnknownBlock, Tag("unknown")],
    _type_discriminator(frozenset({"text", "tool_result"})),
]


# ------------------------------------------------------------------ #
# Top-level events
# ------------------------------------------------------------------ #


class SystemMessage(_WireModel):
    """Session init: carries the session id, model, and tool list."""

    type: Literal["system"] = "system"
    subtype: str | None = None
    session_id: str | None = None
    model: str | None = None
    tools: list[Any] = Field(default_factory=list)


class StreamDelta(_WireModel):
    type: str = ""
    text: str | None = None
    thinking: str | None = None
    partial_json: str | None = None
    stop_reason: str | None = None


class StreamEventPayload(_WireModel):
    type: str = ""
    index: int | None = None
    delta: StreamDelta | None = None
    content_block: dict[str, Any] | None = None


class StreamEvent(_WireModel):
    """Incremental delta (text, thinking, or tool-input fragment)."""

    type: Literal["stream_event"] = "stream_event"
    event: StreamEventPayload = Field(default_factory=StreamEventPayload)
    session_id: str | None = None
    parent_tool_use_id: str | None = None

    def text_delta(self) -> str | None:
        """Return the text fragment if this is a ``text_delta``, else ``None``."""
        delta = self.event.delta
        if (
            self.event.type == "content_block_delta"
            and delta is not None
            and delta.type == "text_delta"
            and delta.text
        ):
            return delta.text
        return None


class AssistantPayload(_WireModel):
    role: str = "assistant"
    content: list[AssistantContentBlock] = Field(default_factory=list)
    model: str | None = None
    stop_reason: str | None = None


class AssistantMessage(_WireModel):
    """Full snapshot of one assistant message."""

    type: Literal["assistant"] = "assistant"
    message: AssistantPayload = Field(default_factory=AssistantPayload)
    session_id: str | None = None


class UserPayload(_WireModel):
    role: str = "user"
    content: str | list[UserContentBlock] = Field(default_factory=list)


class UserMessage(_WireModel):
    """Tool results echoed back from the host."""

    type: Literal["user"] = "user"
    message: UserPayload = Field(default_factory=UserPayload)
    session_id: str | None = None

    def tool_results(self) -> list[ToolResultBlock]:
        content = self.message.content
        if isinstance(content, str):
            return []
        return [block for block in content if isinstance(block, ToolResultBlock)]


class ResultMessage(_WireModel):
    """Turn completion: success or error, cost, duration, turn count."""

    type: Literal["result"] = "result"
    subtype: str | None = None
    is_error: bool = False
    duration_ms: int | None = None
    duration_api_ms: int | None = None
    num_turns: int | None = None
    session_id: str | None = None
    total_cost_usd: float | None = None
    usage: dict[str, Any] | None = None
    result: str | None = None
    error: str | None = None


class RateLimitEvent(_WireModel):
    """Informational; carries no state."""

    type: Literal["rate_limit_event"] = "rate_limit_event"


class UnknownMessage(_WireModel):
    """Event with a ``type`` this version does not recognize."""

    type: str = ""


ClaudeMessage = Annotated[
    Annotated[SystemMessage, Tag("system")]
    | Annotated[StreamEvent, Tag("stream_event")]
    | Annotated[AssistantMessage, Tag("assistant")]
    | Annotated[UserMessage, Tag("user")]
    | Annotated[ResultMessage, Tag("result")]
    | Annotated[RateLimitEvent, Tag("rate_limit_event")]
    | Annotated[UnknownMessage, Tag("unknown")],
    _type_discriminator(
        frozenset(
            {"system", "stream_event", "assistant", "user", "result", "rate_limit_event"}
        )
    ),
]
"""Discriminated union of every event the assistant subprocess emits."""

CLAUDE_MESSAGE_ADAPTER: TypeAdapter[ClaudeMessage] = TypeAdapter(ClaudeMessage)


def user_turn(prompt: str) -> dict[str, Any]:
    """Build the stdin record that submits *prompt* as a user turn."""
    return {"type": "user", "message": {"role": "user", "content": prompt}}
