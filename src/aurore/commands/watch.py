"""aurore watch — terminal client for a running session server."""

from __future__ import annotations

import json
import logging
from typing import Any

import aiohttp
import click
from textual import on, work
from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.reactive import reactive
from textual.widgets import Header, Input, Label, Static

from aurore.constants import DEFAULT_PORT
from aurore.feedback.annotations import parse_annotation_xml
from aurore.session.reconciler import ConversationEntry, ConversationReconciler
from aurore.session.state import SessionInfo

logger = logging.getLogger(__name__)

#: Session states in which a prompt must start a new session.
_NOT_LIVE = ("exited", "error")

# ------------------------------------------------------------------ #
# Pure helpers
# ------------------------------------------------------------------ #


def next_command(
    info: SessionInfo | None,
    prompt: str,
    resume_session_id: str | None = None,
) -> dict[str, Any]:
    """Pick the client frame for a submitted prompt.

    ``session:resume`` when a resume id is pending, ``session:start`` when
    no session is live, ``session:prompt`` otherwise.
    """
    if resume_session_id:
        return {"type": "session:resume", "sessionId": resume_session_id, "prompt": prompt}
    if info is None or info.state in _NOT_LIVE:
        return {"type": "session:start", "prompt": prompt}
    return {"type": "session:prompt", "prompt": prompt}


def format_entry(entry: ConversationEntry) -> str:
    """One-line-per-entry plain text rendering for the conversation log."""
    if entry.type == "user-prompt":
        feedback = parse_annotation_xml(entry.content)
        if feedback is not None:
            text = (
                f"> [feedback] {len(feedback.actions)} action(s), "
                f"{len(feedback.questions)} question(s) across {feedback.files} file(s)"
            )
            if feedback.additional_context:
                text += f"\n  {feedback.additional_context}"
            return text
        return f"> {entry.content}"

    if entry.type == "tool-use":
        detail = ""
        if entry.tool_input:
            for key in ("file_path", "command", "pattern", "path"):
                if key in entry.tool_input:
                    detail = f" {entry.tool_input[key]}"
                    break
        return f"  ⚙ {entry.tool_name}{detail}"

    if entry.type == "tool-result":
        first_line = entry.content.strip().split("\n", 1)[0]
        marker = "✗" if entry.is_error else "✓"
        return f"    {marker} {first_line[:120]}"

    if entry.type == "result":
        parts = [entry.content]
        if entry.cost_usd is not None:
            parts.append(f"${entry.cost_usd:.4f}")
        if entry.duration_ms is not None:
            parts.append(f"{entry.duration_ms / 1000:.1f}s")
        if entry.num_turns is not None:
            parts.append(f"{entry.num_turns} turn(s)")
        return "── " + " · ".join(parts)

    if entry.type == "error":
        return f"! {entry.content}"

    return entry.content


def format_status(info: SessionInfo | None) -> str:
    if info is None:
        return "No session. Type a prompt to start one."
    parts = [f"State: {info.state}"]
    if info.session_id:
        parts.append(f"Session: {info.session_id[:8]}")
    if info.model:
        parts.append(f"Model: {info.model}")
    parts.append(f"Turns: {info.num_turns}")
    if info.state == "error" and info.last_error:
        parts.append(f"Error: {info.last_error}")
    return " | ".join(parts)


# ------------------------------------------------------------------ #
# Textual widgets
# ------------------------------------------------------------------ #


class ConversationPanel(VerticalScroll):
    """Scrollable conversation log plus the provisional streaming text."""

    entries: reactive[tuple[ConversationEntry, ...]] = reactive(tuple, recompose=True)
    streaming_text: reactive[str] = reactive("", recompose=True)

    def compose(self) -> ComposeResult:
        if not self.entries and not self.streaming_text:
            yield Label("Waiting for conversation...", classes="empty-state")
        for entry in self.entries:
            yield Label(format_entry(entry), classes=f"entry {entry.type}", markup=False)
        if self.streaming_text:
            yield Label(self.streaming_text, classes="entry streaming", markup=False)

    def watch_entries(self) -> None:
        self.call_after_refresh(
            lambda: self.call_after_refresh(self.scroll_end, animate=False)
        )

    def watch_streaming_text(self) -> None:
        self.call_after_refresh(
            lambda: self.call_after_refresh(self.scroll_end, animate=False)
        )


class StatusFooter(Static):
    """Footer showing the session snapshot."""

    info: reactive[SessionInfo | None] = reactive(None)

    def render(self) -> str:
        return format_status(self.info)


# ------------------------------------------------------------------ #
# Main Textual app
# ------------------------------------------------------------------ #


class WatchApp(App[None]):
    """Conversation view and prompt bar for one session server."""

    CSS = """
    #conversation {
        border: solid $primary;
        padding: 0 1;
        height: 1fr;
    }

    #status-footer {
        dock: bottom;
        height: 1;
        background: $panel;
        padding: 0 1;
    }

    #input-bar {
        dock: bottom;
        height: 3;
    }

    .empty-state {
        color: $text-muted;
        text-style: italic;
    }

    .entry {
        width: 1fr;
        margin: 0 0 1 0;
    }

    .user-prompt {
        color: $accent;
        text-style: bold;
    }

    .tool-use, .tool-result {
        color: $text-muted;
        margin: 0;
    }

    .result {
        color: $success;
    }

    .error {
        color: $error;
    }

    .streaming {
        color: $text-muted;
    }
    """

    BINDINGS = [("ctrl+q", "quit", "Quit")]

    def __init__(self, url: str, resume_session_id: str | None = None) -> None:
        super().__init__()
        self.url = url
        self.reconciler = ConversationReconciler()
        self._pending_resume = resume_session_id
        self._ws: aiohttp.ClientWebSocketResponse | None = None

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield ConversationPanel(id="conversation")
        yield Input(placeholder="Ask Claude...", id="input-bar")
        yield StatusFooter(id="status-footer")

    def on_mount(self) -> None:
        self.connect()
        self.set_focus(self.query_one("#input-bar", Input))

    @work(exclusive=True)
    async def connect(self) -> None:
        """Hold the WebSocket open and fold every server frame into the view."""
        try:
            async with aiohttp.ClientSession() as http, http.ws_connect(self.url) as ws:
                self._ws = ws
                self.notify(f"Connected to {self.url}", timeout=3)
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self.handle_text(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        break
        except aiohttp.ClientError as exc:
            self.notify(f"Connection failed: {exc}", severity="error", timeout=10)
        finally:
            self._ws = None
        self.notify("Disconnected from server", severity="warning")

    def handle_text(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("unparseable server frame: %.200s", data)
            return
        if isinstance(frame, dict):
            self.reconciler.handle_frame(frame)
            self._refresh()

    @on(Input.Submitted)
    async def on_input_submitted(self, event: Input.Submitted) -> None:
        prompt = event.value.strip()
        event.input.clear()
        if not prompt:
            return
        if self._ws is None or self._ws.closed:
            self.notify("Not connected", severity="error")
            return

        command = next_command(self.reconciler.session_info, prompt, self._pending_resume)
        self._pending_resume = None
        self.reconciler.add_user_prompt(prompt)
        self._refresh()
        await self._ws.send_json(command)

    def _refresh(self) -> None:
        panel = self.query_one("#conversation", ConversationPanel)
        panel.entries = tuple(self.reconciler.entries)
        panel.streaming_text = self.reconciler.streaming_text.strip()
        self.query_one("#status-footer", StatusFooter).info = self.reconciler.session_info


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "--url",
    default=f"ws://localhost:{DEFAULT_PORT}/ws",
    show_default=True,
    help="WebSocket URL of a running `aurore serve`.",
)
@click.option(
    "--resume",
    "resume_session_id",
    default=None,
    help="Resume this session id with the first prompt.",
)
def watch(url: str, resume_session_id: str | None) -> None:
    """Follow and drive a session from the terminal."""
    app = WatchApp(url=url, resume_session_id=resume_session_id)
    app.run()
