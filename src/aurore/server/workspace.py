"""Workspace HTTP routes shared by the session server and the review server."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path

from aiohttp import web

from aurore.server.files import FileAccessError, count_lines, get_file_content, get_file_tree
from aurore.server.git import get_diff, get_git_info, get_original_content

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def is_local_origin(request: web.Request, port: int) -> bool:
    """Requests without an ``Origin`` header, or from our own page, are local."""
    origin = request.headers.get("Origin")
    if not origin:
        return True
    return origin in (f"http://localhost:{port}", f"http://127.0.0.1:{port}")


def origin_middleware(port_getter: Callable[[], int]) -> Callable[..., Awaitable[web.StreamResponse]]:
    """Reject cross-origin requests (including WebSocket upgrades) with 403."""

    @web.middleware
    async def _check_origin(request: web.Request, handler: Handler) -> web.StreamResponse:
        if not is_local_origin(request, port_getter()):
            logger.warning(
                "rejecting %s %s from origin %s",
                request.method,
                request.path,
                request.headers.get("Origin"),
            )
            return web.Response(status=403, text="Forbidden")
        return await handler(request)

    return _check_origin


@web.middleware
async def request_logging_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    req_id = str(uuid.uuid4())[:8]
    request["req_id"] = req_id
    start = time.monotonic()
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "HTTP %s %s req=%s status=%s duration_ms=%.1f",
            request.method, request.path_qs, req_id, exc.status, elapsed_ms,
        )
        raise
    except Exception:
        elapsed_ms = (time.monotonic() - start) * 1000
        logger.exception(
            "HTTP %s %s req=%s failed duration_ms=%.1f",
            request.method, request.path_qs, req_id, elapsed_ms,
        )
        raise
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "HTTP %s %s req=%s status=%s duration_ms=%.1f",
        request.method, request.path_qs, req_id,
        getattr(response, "status", "?"), elapsed_ms,
    )
    return response


class WorkspaceRoutes:
    """JSON endpoints for browsing the working directory and its git state."""

    def __init__(self, working_directory: Path) -> None:
        self._working_directory = Path(working_directory)

    def register(self, app: web.Application) -> None:
        r = app.router
        r.add_get("/api/info", self._handle_info)
        r.add_get("/api/files", self._handle_files)
        r.add_get("/api/file/{path:.+}", self._handle_file)
        r.add_get("/api/git/info", self._handle_git_info)
        r.add_get("/api/git/original/{path:.+}", self._handle_git_original)
        r.add_get("/api/git/diff", self._handle_git_diff)

    async def _handle_info(self, request: web.Request) -> web.Response:
        return web.json_response({"workingDirectory": str(self._working_directory)})

    async def _handle_files(self, request: web.Request) -> web.Response:
        tree = await asyncio.to_thread(get_file_tree, self._working_directory)
        return web.json_response([node.to_wire() for node in tree])

    async def _handle_file(self, request: web.Request) -> web.Response:
        path = request.match_info["path"]
        try:
            content = await asyncio.to_thread(get_file_content, self._working_directory, path)
        except FileAccessError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        return web.json_response(
            {"content": content, "path": path, "lineCount": count_lines(content)}
        )

    async def _handle_git_info(self, request: web.Request) -> web.Response:
        info = await get_git_info(self._working_directory)
        return web.json_response(info.to_wire())

    async def _handle_git_original(self, request: web.Request) -> web.Response:
        path = request.match_info["path"]
        try:
            content = await get_original_content(self._working_directory, path)
        except FileAccessError as exc:
            return web.json_response({"error": str(exc), "content": ""}, status=400)
        return web.json_response({"content": content, "path": path})

    async def _handle_git_diff(self, request: web.Request) -> web.Response:
        path = request.query.get("path") or None
        try:
            diff = await get_diff(self._working_directory, path)
        except FileAccessError as exc:
            return web.json_response({"error": str(exc)}, status=400)
        return web.json_response({"diff": diff})
