"""Conversation reconciler — builds a deduplicated timeline from session events.

Assistant text reaches a client twice: as ``stream_event`` text deltas while
it is being generated, and again inside the ``assistant`` snapshot. The
reconciler keeps the deltas in a provisional buffer and commits exactly one
``assistant`` entry per snapshot, preferring the streamed text. A ``result``
that arrives with text still buffered (no snapshot claimed it) flushes the
buffer first so nothing streamed is lost.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import ValidationError

from aurore.protocol.messages import (
    CLAUDE_MESSAGE_ADAPTER,
    AssistantMessage,
    ClaudeMessage,
    ResultMessage,
    StreamEvent,
    TextBlock,
    ToolUseBlock,
    UserMessage,
)
from aurore.session.state import UNKNOWN_ERROR, SessionInfo

logger = logging.getLogger(__name__)

EntryType = Literal["user-prompt", "assistant", "tool-use", "tool-result", "result", "error"]


@dataclass(frozen=True)
class ConversationEntry:
    """One renderable item of the conversation timeline."""

    type: EntryType
    content: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: float = field(default_factory=time.time)
    # tool-use / tool-result
    tool_name: str | None = None
    tool_id: str | None = None
    tool_input: dict[str, Any] | None = None
    is_error: bool = False
    # result
    cost_usd: float | None = None
    duration_ms: int | None = None
    num_turns: int | None = None


class ConversationReconciler:
    """Client-side view of a session: snapshot, timeline, and live text."""

    def __init__(self) -> None:
        self.session_info: SessionInfo | None = None
        self.streaming_text = ""
        self._entries: list[ConversationEntry] = []

    @property
    def entries(self) -> Sequence[ConversationEntry]:
        """Committed entries in arrival order (read-only view)."""
        return tuple(self._entries)

    # ------------------------------------------------------------------ #
    # Local actions
    # ------------------------------------------------------------------ #

    def add_user_prompt(self, prompt: str) -> ConversationEntry:
        """Record a locally submitted prompt and optimistically mark processing."""
        if self.session_info is not None:
            self.session_info = self.session_info.model_copy(update={"state": "processing"})
        return self._append(ConversationEntry(type="user-prompt", content=prompt))

    def add_error(self, message: str) -> ConversationEntry:
        return self._append(ConversationEntry(type="error", content=message))

    def set_session_info(self, info: SessionInfo) -> None:
        self.session_info = info

    # ------------------------------------------------------------------ #
    # Server frames
    # ------------------------------------------------------------------ #

    def handle_frame(self, frame: dict[str, Any]) -> None:
        """Dispatch one decoded server frame (``session:state``, ``claude:message``...)."""
        frame_type = frame.get("type")

        if frame_type == "session:state":
            try:
                self.set_session_info(SessionInfo.model_validate(frame.get("info")))
            except ValidationError as exc:
                logger.warning("invalid session:state frame: %s", exc)

        elif frame_type == "claude:message":
            try:
                message = CLAUDE_MESSAGE_ADAPTER.validate_python(frame.get("message"))
            except ValidationError as exc:
                logger.warning("invalid claude:message frame: %s", exc)
                return
            self.apply(message)

        elif frame_type == "claude:stderr":
            logger.debug("[claude:stderr] %s", frame.get("text", ""))

        elif frame_type == "error":
            self.add_error(str(frame.get("message", "")))

        else:
            logger.warning("unknown server frame type: %s", frame_type)

    def apply(self, msg: ClaudeMessage) -> None:
        """Fold one assistant event into the timeline."""
        match msg:
            case StreamEvent():
                text = msg.text_delta()
                if text:
                    self.streaming_text += text

            case AssistantMessage():
                self._commit_snapshot(msg)

            case UserMessage():
                for block in msg.tool_results():
                    self._append(
                        ConversationEntry(
                            type="tool-result",
                            content=block.content_text(),
                            tool_id=block.tool_use_id,
                            is_error=block.is_error,
                        )
                    )

            case ResultMessage():
                self._commit_result(msg)

            case _:
                # system, rate_limit_event, unknown: timeline unchanged.
                pass

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _commit_snapshot(self, msg: AssistantMessage) -> None:
        blocks = msg.message.content
        text = self.streaming_text.strip()
        if not text:
            text = "\n\n".join(b.text for b in blocks if isinstance(b, TextBlock)).strip()
        if text:
            self._append(ConversationEntry(type="assistant", content=text))
        self.streaming_text = ""

        for block in blocks:
            if isinstance(block, ToolUseBlock):
                self._append(
                    ConversationEntry(
                        type="tool-use",
                        content=block.name,
                        tool_name=block.name,
                        tool_id=block.id,
                        tool_input=dict(block.input),
                    )
                )

    def _commit_result(self, msg: ResultMessage) -> None:
        if self.streaming_text:
            self._append(ConversationEntry(type="assistant", content=self.streaming_text))
        self.streaming_text = ""

        if msg.result is not None:
            content = msg.result
        elif msg.is_error:
            content = msg.error or UNKNOWN_ERROR
        else:
            content = "Completed"
        self._append(
            ConversationEntry(
                type="result",
                content=content,
                is_error=msg.is_error,
                cost_usd=msg.total_cost_usd,
                duration_ms=msg.duration_ms,
                num_turns=msg.num_turns,
            )
        )

    def _append(self, entry: ConversationEntry) -> ConversationEntry:
        self._entries.append(entry)
        return entry
