"""Session supervisor — spawns the Claude CLI and owns its event pipeline.

Exactly one :class:`Session` is live per :class:`SessionSupervisor`. Starting
a new one kills the previous subprocess first. A killed session keeps
running its read loops until the pipes close, but nothing it decodes after
the kill reaches the supervisor's callbacks.
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import json
import logging
import os
import shlex
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aurore.config.models import ClaudeConfig
from aurore.constants import TextCallback
from aurore.protocol.decoder import DecodeFailure, decode
from aurore.protocol.framing import LineFramer
from aurore.protocol.messages import ClaudeMessage, StreamEvent, user_turn
from aurore.session.state import SessionInfo, apply_process_exit, apply_session_message

logger = logging.getLogger(__name__)

#: Bytes requested per read from the subprocess pipes.
_READ_CHUNK = 65_536

#: Seconds the exit watcher waits for the read loops to drain after exit.
_DRAIN_WAIT = 5.0

#: Max V8 heap size (MB) for the Node.js-based Claude CLI.
_NODE_HEAP_LIMIT_MB = 2048

#: Flags that put the CLI into bidirectional stream-json mode.
PROTOCOL_ARGS = (
    "-p",
    "--verbose",
    "--dangerously-skip-permissions",
    "--output-format",
    "stream-json",
    "--input-format",
    "stream-json",
    "--include-partial-messages",
)


class SessionStartError(Exception):
    """The assistant subprocess could not be spawned."""


def _ignore_exit(returncode: int) -> None:
    """Default ``on_exit`` callback."""


@dataclass
class SessionCallbacks:
    """Observer hooks, invoked in decode order on the event loop."""

    on_message: Callable[[ClaudeMessage], None]
    on_state_change: Callable[[SessionInfo], None]
    on_stderr: TextCallback
    on_exit: Callable[[int], None] = _ignore_exit


def build_command(claude: ClaudeConfig, resume_session_id: str | None = None) -> list[str]:
    """Return the argv for one stream-json Claude CLI subprocess."""
    args = [*shlex.split(claude.command), *PROTOCOL_ARGS]
    if resume_session_id:
        args.extend(["--resume", resume_session_id])
    args.extend(claude.extra_args)
    return args


def build_env(claude: ClaudeConfig) -> dict[str, str]:
    """Subprocess environment: ours plus configured extras, sandbox flag, heap cap."""
    env = {**os.environ, **claude.env, "IS_SANDBOX": "1"}
    node_opts = env.get("NODE_OPTIONS", "")
    if "--max-old-space-size" not in node_opts:
        separator = " " if node_opts else ""
        env["NODE_OPTIONS"] = f"{node_opts}{separator}--max-old-space-size={_NODE_HEAP_LIMIT_MB}"
    return env


class Session:
    """One assistant subprocess plus its stdout/stderr read loops.

    The stdout loop is the only writer of :attr:`info`.
    """

    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc
        self._info = SessionInfo()
        self._killed = False
        self._callbacks: SessionCallbacks | None = None
        self._exit_task: asyncio.Task[None] | None = None

    @property
    def info(self) -> SessionInfo:
        return self._info

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def is_running(self) -> bool:
        return not self._killed and self._proc.returncode is None

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self, callbacks: SessionCallbacks) -> None:
        """Begin draining stdout/stderr and watching for process exit."""
        if self._exit_task is not None:
            return
        self._callbacks = callbacks
        readers = (
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        )
        self._exit_task = asyncio.create_task(self._watch_exit(readers))

    async def wait_closed(self) -> None:
        """Wait until the process has exited and both read loops finished."""
        if self._exit_task is not None:
            await asyncio.shield(self._exit_task)

    def kill(self) -> None:
        """Terminate the subprocess immediately. Idempotent."""
        if self._killed:
            return
        self._killed = True
        logger.info("killing session process %s", self._proc.pid)
        with contextlib.suppress(ProcessLookupError):
            self._proc.kill()

    def send_prompt(self, prompt: str) -> bool:
        """Write one user-turn record to stdin. Returns ``False`` if not running."""
        stdin = self._proc.stdin
        if not self.is_running or stdin is None:
            logger.error("cannot send prompt: process not running")
            return False
        line = json.dumps(user_turn(prompt)) + "\n"
        try:
            stdin.write(line.encode())
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            logger.error("failed to write prompt to process %s: %s", self._proc.pid, exc)
            return False
        return True

    # ------------------------------------------------------------------ #
    # Read loops
    # ------------------------------------------------------------------ #

    async def _read_stdout(self) -> None:
        stdout = self._proc.stdout
        if stdout is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        framer = LineFramer()
        try:
            while True:
                chunk = await stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                for record in framer.feed(decoder.decode(chunk)):
                    self._handle_record(record)

            for record in framer.feed(decoder.decode(b"", final=True)):
                self._handle_record(record)
            tail = framer.flush()
            if tail is not None:
                self._handle_record(tail)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("stdout read error: %s", exc)

    async def _read_stderr(self) -> None:
        stderr = self._proc.stderr
        if stderr is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                chunk = await stderr.read(_READ_CHUNK)
                if not chunk:
                    break
                text = decoder.decode(chunk)
                if text.strip() and not self._killed:
                    self._emit("on_stderr", text)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("stderr read error: %s", exc)

    async def _watch_exit(self, readers: tuple[asyncio.Task[None], ...]) -> None:
        returncode = await self._proc.wait()
        # Output written before exit is still in the pipes; let the loops drain it.
        _done, pending = await asyncio.wait(readers, timeout=_DRAIN_WAIT)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        logger.info("session process %s exited with code %d", self._proc.pid, returncode)
        if self._killed:
            return
        next_info = apply_process_exit(self._info, returncode)
        if next_info is not self._info:
            self._info = next_info
            self._emit("on_state_change", next_info)
        self._emit("on_exit", returncode)

    # ------------------------------------------------------------------ #
    # Event pipeline
    # ------------------------------------------------------------------ #

    def _handle_record(self, record: str) -> None:
        result = decode(record)
        if isinstance(result, DecodeFailure):
            logger.warning("unparseable (%s): %s", result.reason, result.raw)
            return
        self._handle_message(result)

    def _handle_message(self, msg: ClaudeMessage) -> None:
        if self._killed:
            return

        event_session = getattr(msg, "session_id", None)
        current = self._info.session_id
        if current is not None and isinstance(event_session, str) and event_session != current:
            logger.warning(
                "dropping %s event for session %s (current session %s)",
                msg.type,
                event_session,
                current,
            )
            return

        if not isinstance(msg, StreamEvent):
            subtype = getattr(msg, "subtype", None)
            logger.info("%s%s", msg.type, f":{subtype}" if subtype else "")

        next_info = apply_session_message(self._info, msg)
        if next_info is not self._info:
            self._info = next_info
            self._emit("on_state_change", next_info)
        self._emit("on_message", msg)

    def _emit(self, hook: str, value: Any) -> None:
        """Invoke a callback; observer errors never break the read loop."""
        if self._callbacks is None:
            return
        try:
            getattr(self._callbacks, hook)(value)
        except Exception:
            logger.exception("session callback %s failed", hook)


class SessionSupervisor:
    """Owns the single active-session slot.

    ``start`` and ``kill`` are the only entry points that change the slot.
    Overlapping ``start`` calls are serialized so that at most one
    subprocess is ever live. A ``kill`` that lands while ``start`` is still
    spawning wins: the new process is killed instead of installed.
    """

    def __init__(
        self,
        working_directory: Path,
        callbacks: SessionCallbacks,
        claude: ClaudeConfig | None = None,
    ) -> None:
        self._working_directory = working_directory
        self._callbacks = callbacks
        self._claude = claude or ClaudeConfig()
        self._active: Session | None = None
        self._start_lock = asyncio.Lock()
        #: Bumped by every kill; a start that sees it move mid-spawn backs out.
        self._generation = 0
        self._closed = False

    @property
    def active(self) -> Session | None:
        return self._active

    def get_info(self) -> SessionInfo | None:
        """Snapshot of the active session, or ``None`` when idle."""
        return self._active.info if self._active is not None else None

    async def start(self, prompt: str = "", resume_session_id: str | None = None) -> Session:
        """Kill any active session, spawn a new one, and send *prompt* if given.

        Raises:
            SessionStartError: The CLI could not be spawned, the supervisor is
                shut down, or a kill arrived while spawning. The slot is left empty.
        """
        async with self._start_lock:
            if self._closed:
                raise SessionStartError("Session supervisor is shut down")
            self.kill()
            generation = self._generation
            proc = await self._spawn(resume_session_id)
            session = Session(proc)
            if generation != self._generation:
                logger.info("session process %s killed while starting", proc.pid)
                session.kill()
                with contextlib.suppress(TimeoutError):
                    await asyncio.wait_for(proc.wait(), timeout=_DRAIN_WAIT)
                raise SessionStartError("Session start cancelled")
            self._active = session
            session.start(self._relay(session))
            logger.info(
                "started session process %s%s",
                proc.pid,
                f" (resuming {resume_session_id})" if resume_session_id else "",
            )

            self._callbacks.on_state_change(session.info)
            if prompt:
                session.send_prompt(prompt)
            return session

    def send_prompt(self, prompt: str) -> bool:
        """Forward *prompt* to the active session. ``False`` when there is none."""
        if self._active is None:
            logger.warning("cannot send prompt: no active session")
            return False
        return self._active.send_prompt(prompt)

    def kill(self) -> Session | None:
        """Kill the active session (if any) and release the slot immediately."""
        self._generation += 1
        session, self._active = self._active, None
        if session is not None:
            session.kill()
        return session

    async def shutdown(self) -> None:
        """Kill the active session and wait for its process to be reaped.

        A ``start`` still spawning is let finish so it can kill its own
        process; later ``start`` calls fail.
        """
        self._closed = True
        session = self.kill()
        async with self._start_lock:
            pass
        if session is not None:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(session.wait_closed(), timeout=_DRAIN_WAIT)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _spawn(self, resume_session_id: str | None) -> asyncio.subprocess.Process:
        args = build_command(self._claude, resume_session_id)
        try:
            return await asyncio.create_subprocess_exec(
                *args,
                cwd=self._working_directory,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=build_env(self._claude),
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            msg = (
                f"Claude CLI not found ({args[0]!r}). "
                "Make sure 'claude' is installed and on your PATH."
            )
            logger.error(msg)
            raise SessionStartError(msg) from exc
        except OSError as exc:
            msg = f"Failed to spawn Claude CLI: {exc}"
            logger.error(msg)
            raise SessionStartError(msg) from exc

    def _relay(self, session: Session) -> SessionCallbacks:
        """Callbacks for *session* that go quiet once it leaves the slot."""

        def on_message(msg: ClaudeMessage) -> None:
            if session is self._active:
                self._callbacks.on_message(msg)

        def on_state_change(info: SessionInfo) -> None:
            if session is self._active:
                self._callbacks.on_state_change(info)

        def on_stderr(text: str) -> None:
            if session is self._active:
                self._callbacks.on_stderr(text)

        def on_exit(returncode: int) -> None:
            if session is self._active:
                self._active = None
                self._callbacks.on_exit(returncode)

        return SessionCallbacks(
            on_message=on_message,
            on_state_change=on_state_change,
            on_stderr=on_stderr,
            on_exit=on_exit,
        )
