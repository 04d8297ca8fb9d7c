"""Tests for the session state machine."""

from __future__ import annotations

from typing import Any

import pytest
from pydantic import ValidationError

from aurore.protocol.messages import CLAUDE_MESSAGE_ADAPTER, ClaudeMessage
from aurore.session.state import (
    UNKNOWN_ERROR,
    SessionInfo,
    apply_process_exit,
    apply_session_message,
)


def _msg(**data: Any) -> ClaudeMessage:
    return CLAUDE_MESSAGE_ADAPTER.validate_python(data)


_INIT = {"type": "system", "subtype": "init", "session_id": "sess-1", "model": "claude-opus"}
_DELTA = {
    "type": "stream_event",
    "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "x"}},
}
_ASSISTANT = {"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}}


class TestSessionInfo:
    def test_defaults(self) -> None:
        info = SessionInfo()
        assert info.state == "starting"
        assert info.session_id is None
        assert info.num_turns == 0

    def test_wire_uses_camel_case(self) -> None:
        info = SessionInfo(state="ready", session_id="s", num_turns=2)
        assert info.to_wire() == {
            "state": "ready",
            "sessionId": "s",
            "model": None,
            "numTurns": 2,
            "error": None,
        }

    def test_round_trips_from_wire(self) -> None:
        info = SessionInfo(state="error", session_id="s", last_error="boom")
        assert SessionInfo.model_validate(info.to_wire()) == info

    def test_is_frozen(self) -> None:
        with pytest.raises(ValidationError):
            SessionInfo().state = "ready"  # type: ignore[misc]


class TestTransitions:
    def test_init_sets_id_and_model_keeps_starting(self) -> None:
        info = apply_session_message(SessionInfo(), _msg(**_INIT))
        assert info.state == "starting"
        assert info.session_id == "sess-1"
        assert info.model == "claude-opus"

    def test_non_init_system_is_noop(self) -> None:
        info = SessionInfo()
        assert apply_session_message(info, _msg(type="system", subtype="compact")) is info

    @pytest.mark.parametrize("start", ["starting", "ready"])
    @pytest.mark.parametrize("event", [_DELTA, _ASSISTANT])
    def test_activity_moves_to_processing(self, start: str, event: dict[str, Any]) -> None:
        info = apply_session_message(SessionInfo(state=start), _msg(**event))
        assert info.state == "processing"

    @pytest.mark.parametrize("start", ["processing", "error", "exited"])
    def test_activity_elsewhere_is_reference_stable(self, start: str) -> None:
        info = SessionInfo(state=start)
        assert apply_session_message(info, _msg(**_DELTA)) is info

    def test_success_result(self) -> None:
        info = SessionInfo(state="processing", session_id="sess-1")
        after = apply_session_message(
            info, _msg(type="result", subtype="success", num_turns=4, session_id="sess-1")
        )
        assert after.state == "ready"
        assert after.num_turns == 4

    def test_error_result_with_message(self) -> None:
        after = apply_session_message(
            SessionInfo(state="processing"),
            _msg(type="result", is_error=True, error="rate limited"),
        )
        assert after.state == "error"
        assert after.last_error == "rate limited"

    def test_error_result_without_message(self) -> None:
        after = apply_session_message(
            SessionInfo(state="processing"), _msg(type="result", is_error=True)
        )
        assert after.state == "error"
        assert after.last_error == UNKNOWN_ERROR == "Unknown error"

    def test_result_without_session_id_keeps_existing(self) -> None:
        info = SessionInfo(state="processing", session_id="sess-1")
        after = apply_session_message(info, _msg(type="result", num_turns=1))
        assert after.session_id == "sess-1"

    def test_turn_count_never_decreases(self) -> None:
        info = SessionInfo(state="processing", num_turns=5)
        after = apply_session_message(info, _msg(type="result", num_turns=2))
        assert after.num_turns == 5

    @pytest.mark.parametrize(
        "event",
        [
            {"type": "user", "message": {"content": []}},
            {"type": "rate_limit_event"},
            {"type": "something_new"},
        ],
    )
    def test_other_events_are_noops(self, event: dict[str, Any]) -> None:
        info = SessionInfo(state="processing")
        assert apply_session_message(info, _msg(**event)) is info


class TestProcessExit:
    def test_clean_exit(self) -> None:
        assert apply_process_exit(SessionInfo(state="ready"), 0).state == "exited"

    def test_nonzero_exit(self) -> None:
        info = apply_process_exit(SessionInfo(state="processing"), 137)
        assert info.state == "error"
        assert info.last_error == "Process exited with code 137"

    def test_exit_after_exit_is_reference_stable(self) -> None:
        info = SessionInfo(state="exited")
        assert apply_process_exit(info, 0) is info


class TestFullLifecycle:
    def test_two_turns(self) -> None:
        info = SessionInfo()
        info = apply_session_message(info, _msg(**_INIT))
        assert (info.state, info.session_id) == ("starting", "sess-1")

        info = apply_session_message(info, _msg(**_DELTA))
        assert info.state == "processing"

        info = apply_session_message(
            info, _msg(type="result", subtype="success", num_turns=1, session_id="sess-1")
        )
        assert (info.state, info.num_turns) == ("ready", 1)

        info = apply_session_message(info, _msg(**_DELTA))
        assert info.state == "processing"

        info = apply_session_message(
            info, _msg(type="result", subtype="success", num_turns=2, session_id="sess-1")
        )
        assert (info.state, info.num_turns) == ("ready", 2)
