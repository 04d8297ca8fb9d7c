"""Tests for WebSocket frame parsing and builders."""

from __future__ import annotations

import json

import pytest

from aurore.protocol.ws import (
    ClientFrameError,
    PromptCommand,
    ResumeCommand,
    StartCommand,
    claude_message_frame,
    error_frame,
    parse_client_frame,
    session_state_frame,
    stderr_frame,
)
from aurore.session.state import SessionInfo


class TestParseClientFrame:
    def test_start(self) -> None:
        cmd = parse_client_frame('{"type": "session:start", "prompt": "hi"}')
        assert cmd == StartCommand(type="session:start", prompt="hi")

    def test_prompt(self) -> None:
        cmd = parse_client_frame(json.dumps({"type": "session:prompt", "prompt": "more"}))
        assert isinstance(cmd, PromptCommand)
        assert cmd.prompt == "more"

    def test_resume_with_and_without_prompt(self) -> None:
        cmd = parse_client_frame(json.dumps({"type": "session:resume", "sessionId": "abc"}))
        assert isinstance(cmd, ResumeCommand)
        assert cmd.session_id == "abc"
        assert cmd.prompt is None

        cmd = parse_client_frame(
            json.dumps({"type": "session:resume", "sessionId": "abc", "prompt": "go"})
        )
        assert cmd.prompt == "go"

    def test_extra_fields_ignored(self) -> None:
        cmd = parse_client_frame(json.dumps({"type": "session:start", "prompt": "x", "id": 7}))
        assert isinstance(cmd, StartCommand)

    def test_bytes_accepted(self) -> None:
        assert isinstance(parse_client_frame(b'{"type":"session:prompt","prompt":"x"}'), PromptCommand)

    def test_malformed_json(self) -> None:
        with pytest.raises(ClientFrameError, match="^Invalid message format$"):
            parse_client_frame("{nope")

    @pytest.mark.parametrize(
        ("payload", "kind"),
        [
            ({"type": "session:kill"}, "session:kill"),
            ({"type": "session:start"}, "session:start"),
            ({"type": "session:resume", "sessionId": ""}, "session:resume"),
            ({"prompt": "x"}, None),
            (["session:start"], None),
        ],
    )
    def test_invalid_commands(self, payload: object, kind: str | None) -> None:
        with pytest.raises(ClientFrameError) as excinfo:
            parse_client_frame(json.dumps(payload))
        assert str(excinfo.value) == (
            f"Invalid message format: unsupported or malformed {kind!r} command"
        )


class TestFrameBuilders:
    def test_session_state(self) -> None:
        frame = session_state_frame(SessionInfo(state="ready", session_id="s", num_turns=2))
        assert frame == {
            "type": "session:state",
            "info": {"state": "ready", "sessionId": "s", "model": None, "numTurns": 2, "error": None},
        }

    def test_others(self) -> None:
        assert claude_message_frame({"type": "result"}) == {
            "type": "claude:message",
            "message": {"type": "result"},
        }
        assert stderr_frame("warn") == {"type": "claude:stderr", "text": "warn"}
        assert error_frame("boom") == {"type": "error", "message": "boom"}
