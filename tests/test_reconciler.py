"""Tests for the client-side conversation reconciler."""

from __future__ import annotations

from typing import Any

from aurore.protocol.messages import CLAUDE_MESSAGE_ADAPTER
from aurore.session.reconciler import ConversationReconciler
from aurore.session.state import SessionInfo

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _delta(text: str) -> dict[str, Any]:
    return {
        "type": "stream_event",
        "event": {"type": "content_block_delta", "delta": {"type": "text_delta", "text": text}},
    }


def _assistant(*blocks: dict[str, Any]) -> dict[str, Any]:
    return {"type": "assistant", "message": {"role": "assistant", "content": list(blocks)}}


def _text(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _apply(rec: ConversationReconciler, *events: dict[str, Any]) -> None:
    for event in events:
        rec.apply(CLAUDE_MESSAGE_ADAPTER.validate_python(event))


def _types(rec: ConversationReconciler) -> list[str]:
    return [e.type for e in rec.entries]


# ------------------------------------------------------------------ #
# Streaming and snapshots
# ------------------------------------------------------------------ #


class TestStreaming:
    def test_deltas_accumulate_without_entries(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _delta("Hel"), _delta("lo"))
        assert rec.streaming_text == "Hello"
        assert rec.entries == ()

    def test_non_text_deltas_ignored(self) -> None:
        rec = ConversationReconciler()
        _apply(
            rec,
            {
                "type": "stream_event",
                "event": {"type": "content_block_delta", "delta": {"type": "thinking_delta", "thinking": "hmm"}},
            },
        )
        assert rec.streaming_text == ""

    def test_streamed_text_wins_over_snapshot(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _delta("Hello"), _assistant(_text("Goodbye")))
        assert [(e.type, e.content) for e in rec.entries] == [("assistant", "Hello")]
        assert rec.streaming_text == ""

    def test_snapshot_text_used_without_stream(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _assistant(_text("First"), _text("Second")))
        assert rec.entries[0].content == "First\n\nSecond"

    def test_whitespace_only_snapshot_adds_no_entry(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _assistant(_text("  \n")))
        assert rec.entries == ()

    def test_tool_use_entries_follow_text(self) -> None:
        rec = ConversationReconciler()
        _apply(
            rec,
            _delta("Let me look."),
            _assistant(
                _text("Let me look."),
                {"type": "tool_use", "id": "toolu_1", "name": "Read", "input": {"file_path": "a.py"}},
                {"type": "tool_use", "id": "toolu_2", "name": "Grep", "input": {"pattern": "x"}},
            ),
        )
        assert _types(rec) == ["assistant", "tool-use", "tool-use"]
        read = rec.entries[1]
        assert read.tool_name == "Read"
        assert read.tool_id == "toolu_1"
        assert read.tool_input == {"file_path": "a.py"}

    def test_each_snapshot_commits_once(self) -> None:
        rec = ConversationReconciler()
        _apply(
            rec,
            _delta("one"),
            _assistant(_text("one")),
            _delta("two"),
            _assistant(_text("two")),
        )
        assert [e.content for e in rec.entries] == ["one", "two"]


class TestToolResults:
    def test_user_tool_results(self) -> None:
        rec = ConversationReconciler()
        _apply(
            rec,
            {
                "type": "user",
                "message": {
                    "content": [
                        {"type": "tool_result", "tool_use_id": "toolu_1", "content": "ok"},
                        {"type": "tool_result", "tool_use_id": "toolu_2", "content": "nope", "is_error": True},
                    ]
                },
            },
        )
        assert _types(rec) == ["tool-result", "tool-result"]
        assert rec.entries[0].content == "ok"
        assert rec.entries[1].is_error is True
        assert rec.entries[1].tool_id == "toolu_2"

    def test_plain_user_text_ignored(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, {"type": "user", "message": {"content": "echoed prompt"}})
        assert rec.entries == ()


class TestResults:
    def test_orphaned_stream_flushed_before_result(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _delta("orphaned"), {"type": "result", "subtype": "success", "result": "done"})
        assert [(e.type, e.content) for e in rec.entries] == [
            ("assistant", "orphaned"),
            ("result", "done"),
        ]
        assert rec.streaming_text == ""

    def test_whitespace_only_stream_still_flushed(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, _delta("\n\n"), {"type": "result", "subtype": "success", "result": "done"})
        assert [(e.type, e.content) for e in rec.entries] == [
            ("assistant", "\n\n"),
            ("result", "done"),
        ]

    def test_result_metadata(self) -> None:
        rec = ConversationReconciler()
        _apply(
            rec,
            {
                "type": "result",
                "result": "ok",
                "total_cost_usd": 0.25,
                "duration_ms": 1200,
                "num_turns": 3,
            },
        )
        (entry,) = rec.entries
        assert entry.cost_usd == 0.25
        assert entry.duration_ms == 1200
        assert entry.num_turns == 3
        assert entry.is_error is False

    def test_error_result_falls_back_to_unknown_error(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, {"type": "result", "is_error": True})
        assert rec.entries[0].content == "Unknown error"
        assert rec.entries[0].is_error is True

    def test_error_text_used_when_no_result(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, {"type": "result", "is_error": True, "error": "overloaded"})
        assert rec.entries[0].content == "overloaded"

    def test_success_without_text_says_completed(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, {"type": "result", "subtype": "success", "is_error": False, "num_turns": 1})
        assert rec.entries[0].content == "Completed"
        assert rec.entries[0].is_error is False

    def test_system_and_unknown_events_ignored(self) -> None:
        rec = ConversationReconciler()
        _apply(rec, {"type": "system", "subtype": "init"}, {"type": "rate_limit_event"}, {"type": "x"})
        assert rec.entries == ()


# ------------------------------------------------------------------ #
# Local actions and server frames
# ------------------------------------------------------------------ #


class TestLocalActions:
    def test_user_prompt_is_optimistic(self) -> None:
        rec = ConversationReconciler()
        rec.set_session_info(SessionInfo(state="ready", session_id="s"))
        entry = rec.add_user_prompt("fix it")
        assert entry.type == "user-prompt"
        assert rec.session_info is not None
        assert rec.session_info.state == "processing"
        assert rec.session_info.session_id == "s"

    def test_user_prompt_without_session(self) -> None:
        rec = ConversationReconciler()
        rec.add_user_prompt("start")
        assert rec.session_info is None
        assert _types(rec) == ["user-prompt"]

    def test_entry_ids_unique(self) -> None:
        rec = ConversationReconciler()
        a = rec.add_user_prompt("a")
        b = rec.add_error("b")
        assert a.id != b.id


class TestHandleFrame:
    def test_session_state_frame(self) -> None:
        rec = ConversationReconciler()
        rec.handle_frame(
            {"type": "session:state", "info": {"state": "ready", "sessionId": "s", "numTurns": 1}}
        )
        assert rec.session_info == SessionInfo(state="ready", session_id="s", num_turns=1)

    def test_claude_message_frame(self) -> None:
        rec = ConversationReconciler()
        rec.handle_frame({"type": "claude:message", "message": _delta("hi")})
        assert rec.streaming_text == "hi"

    def test_error_frame(self) -> None:
        rec = ConversationReconciler()
        rec.handle_frame({"type": "error", "message": "No active session"})
        assert [(e.type, e.content) for e in rec.entries] == [("error", "No active session")]

    def test_stderr_and_unknown_frames_leave_timeline(self) -> None:
        rec = ConversationReconciler()
        rec.handle_frame({"type": "claude:stderr", "text": "warn"})
        rec.handle_frame({"type": "mystery"})
        assert rec.entries == ()

    def test_invalid_state_frame_ignored(self) -> None:
        rec = ConversationReconciler()
        rec.handle_frame({"type": "session:state", "info": {"state": "bogus"}})
        assert rec.session_info is None
