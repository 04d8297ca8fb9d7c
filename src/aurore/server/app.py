"""Session server: WebSocket relay, workspace routes, and static UI assets.

All WebSocket clients share one :class:`SessionSupervisor`. Each client
gets its own outbound queue drained by a sender task, so broadcasts from
the supervisor's synchronous callbacks keep their order per client and a
slow client never stalls the others.
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from aiohttp import WSCloseCode, WSMsgType, web

from aurore.config.models import AuroreConfig
from aurore.protocol.messages import ClaudeMessage
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
from aurore.server.workspace import WorkspaceRoutes, origin_middleware, request_logging_middleware
from aurore.session.state import SessionInfo
from aurore.session.supervisor import SessionCallbacks, SessionStartError, SessionSupervisor

logger = logging.getLogger(__name__)

#: Packaged fallback UI.
DEFAULT_STATIC_DIR = Path(__file__).resolve().parent.parent / "static"

#: Frames buffered per client before it is considered too slow and dropped.
CLIENT_QUEUE_SIZE = 5000

#: Largest accepted request body.
MAX_BODY_SIZE = 1024 * 1024


class PortInUseError(Exception):
    """The configured port is already bound by another process."""


class HttpServer:
    """aiohttp application lifecycle shared by the session and review servers."""

    def __init__(self, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None
        self._static_dir = DEFAULT_STATIC_DIR
        self.app = web.Application(
            middlewares=[request_logging_middleware, origin_middleware(lambda: self._port)],
            client_max_size=MAX_BODY_SIZE,
        )

    @property
    def port(self) -> int:
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}"

    async def start(self) -> None:
        """Bind and start serving.

        Raises:
            PortInUseError: Another process holds the port.
        """
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            if exc.errno == errno.EADDRINUSE:
                msg = (
                    f"Port {self._port} is already in use. "
                    "Only one Aurore session is allowed at a time."
                )
                raise PortInUseError(msg) from exc
            raise

        self._runner = runner
        actual_port = self._resolve_port(site, runner)
        if actual_port is not None:
            self._port = actual_port
        logger.info("listening on %s", self.url)

    async def stop(self) -> None:
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()

    def add_static_routes(self, static_dir: Path | None) -> None:
        """Serve the UI from *static_dir*. Register after every other route."""
        self._static_dir = Path(static_dir) if static_dir else DEFAULT_STATIC_DIR
        r = self.app.router
        r.add_get("/", self._handle_index)
        r.add_get("/index.html", self._handle_index)
        r.add_get("/{tail:.*}", self._handle_static)

    async def _handle_index(self, request: web.Request) -> web.StreamResponse:
        index = self._static_dir / "index.html"
        if not index.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(index)

    async def _handle_static(self, request: web.Request) -> web.StreamResponse:
        root = self._static_dir.resolve()
        target = (root / request.match_info["tail"]).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            raise web.HTTPNotFound()
        return web.FileResponse(target)

    @staticmethod
    def _resolve_port(site: web.TCPSite, runner: web.AppRunner) -> int | None:
        sockets = getattr(getattr(site, "_server", None), "sockets", None) or ()
        if sockets:
            return sockets[0].getsockname()[1]
        addresses = getattr(runner, "addresses", None) or ()
        if addresses:
            first = addresses[0]
            if isinstance(first, tuple) and len(first) >= 2:
                return int(first[1])
        return None


@dataclass
class _Client:
    ws: web.WebSocketResponse
    queue: asyncio.Queue[dict[str, Any]]
    sender: asyncio.Task[None] | None = None


class AuroreServer(HttpServer):
    """Relays one assistant session to any number of browser clients."""

    def __init__(self, config: AuroreConfig) -> None:
        super().__init__(config.host, config.port)
        self._config = config
        self._clients: dict[web.WebSocketResponse, _Client] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self.supervisor = SessionSupervisor(
            config.working_directory,
            SessionCallbacks(
                on_message=self._on_message,
                on_state_change=self._on_state_change,
                on_stderr=self._on_stderr,
            ),
            claude=config.claude,
        )
        self._setup_routes()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def _setup_routes(self) -> None:
        r = self.app.router
        r.add_get("/ws", self._handle_ws)
        WorkspaceRoutes(self._config.working_directory).register(self.app)
        self.add_static_routes(self._config.static_dir)

    async def stop(self) -> None:
        """Kill the active session, close every client, stop listening."""
        await self.supervisor.shutdown()
        for client in list(self._clients.values()):
            await client.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
        await super().stop()

    # ------------------------------------------------------------------ #
    # Broadcast
    # ------------------------------------------------------------------ #

    def broadcast(self, frame: dict[str, Any]) -> None:
        for client in list(self._clients.values()):
            self._enqueue(client, frame)

    def _enqueue(self, client: _Client, frame: dict[str, Any]) -> None:
        try:
            client.queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("client queue full, disconnecting slow client")
            self._drop(client)

    def _drop(self, client: _Client) -> None:
        if self._clients.pop(client.ws, None) is None:
            return
        if client.sender is not None:
            client.sender.cancel()
        task = asyncio.create_task(
            client.ws.close(code=WSCloseCode.TRY_AGAIN_LATER, message=b"Client too slow")
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_message(self, msg: ClaudeMessage) -> None:
        self.broadcast(claude_message_frame(msg.to_wire()))

    def _on_state_change(self, info: SessionInfo) -> None:
        self.broadcast(session_state_frame(info))

    def _on_stderr(self, text: str) -> None:
        self.broadcast(stderr_frame(text))

    # ------------------------------------------------------------------ #
    # WebSocket
    # ------------------------------------------------------------------ #

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        client = _Client(ws=ws, queue=asyncio.Queue(maxsize=CLIENT_QUEUE_SIZE))
        info = self.supervisor.get_info()
        if info is not None:
            client.queue.put_nowait(session_state_frame(info))
        self._clients[ws] = client
        client.sender = asyncio.create_task(self._send_loop(client))
        logger.info(
            "WebSocket client connected req=%s active_clients=%d",
            request.get("req_id", "unknown"),
            len(self._clients),
        )

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._handle_client_frame(client, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    logger.warning("WebSocket error: %s", ws.exception())
        finally:
            self._clients.pop(ws, None)
            if client.sender is not None:
                client.sender.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await client.sender
            logger.info("WebSocket client disconnected active_clients=%d", len(self._clients))
        return ws

    async def _send_loop(self, client: _Client) -> None:
        while True:
            frame = await client.queue.get()
            try:
                await client.ws.send_json(frame)
            except (ConnectionResetError, RuntimeError) as exc:
                logger.debug("dropping frame for closed client: %s", exc)
                return

    async def _handle_client_frame(self, client: _Client, data: str) -> None:
        try:
            command = parse_client_frame(data)
        except ClientFrameError as exc:
            logger.warning("%s: %.200s", exc, data)
            self._enqueue(client, error_frame(str(exc)))
            return

        match command:
            case StartCommand():
                await self._start_session(client, command.prompt)
            case ResumeCommand():
                await self._start_session(client, command.prompt or "", command.session_id)
            case PromptCommand():
                if self.supervisor.active is None:
                    self._enqueue(client, error_frame("No active session"))
                elif not self.supervisor.send_prompt(command.prompt):
                    self._enqueue(client, error_frame("Failed to send prompt to session"))

    async def _start_session(
        self, client: _Client, prompt: str, resume_session_id: str | None = None
    ) -> None:
        try:
            await self.supervisor.start(prompt, resume_session_id=resume_session_id)
        except SessionStartError as exc:
            self._enqueue(client, error_frame(str(exc)))
