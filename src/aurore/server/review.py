"""One-shot review server: browse the workspace, submit feedback, exit."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from aiohttp import web
from pydantic import ValidationError

from aurore.feedback.annotations import ANNOTATIONS_ADAPTER, format_annotations_as_xml
from aurore.server.app import MAX_BODY_SIZE, HttpServer
from aurore.server.workspace import WorkspaceRoutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedbackResult:
    feedback: str
    cancelled: bool


def feedback_from_body(body: object) -> FeedbackResult | None:
    """Build a result from either accepted body shape, or ``None`` if invalid.

    ``{feedback, cancelled}`` is taken as-is. ``{annotations,
    additionalContext?, cancelled}`` is rendered to feedback XML with the
    additional context appended after a blank line.
    """
    if not isinstance(body, dict) or not isinstance(body.get("cancelled"), bool):
        return None
    cancelled = body["cancelled"]

    if isinstance(body.get("feedback"), str):
        return FeedbackResult(body["feedback"], cancelled)

    if isinstance(body.get("annotations"), list):
        try:
            annotations = ANNOTATIONS_ADAPTER.validate_python(body["annotations"])
        except ValidationError as exc:
            logger.warning("invalid annotations in feedback: %d error(s)", exc.error_count())
            return None
        extra = body.get("additionalContext") or ""
        if not isinstance(extra, str):
            return None
        parts = [p for p in (format_annotations_as_xml(annotations), extra.strip()) if p]
        return FeedbackResult("\n\n".join(parts), cancelled)

    return None


class ReviewServer(HttpServer):
    """Workspace routes plus ``POST /api/feedback``; resolves one decision."""

    def __init__(
        self,
        working_directory: Path,
        host: str = "localhost",
        port: int = 0,
        static_dir: Path | None = None,
    ) -> None:
        super().__init__(host, port)
        self._decided = asyncio.Event()
        self._result: FeedbackResult | None = None
        r = self.app.router
        r.add_post("/api/feedback", self._handle_feedback)
        WorkspaceRoutes(working_directory).register(self.app)
        self.add_static_routes(static_dir)

    async def wait_for_decision(self) -> FeedbackResult:
        """Block until the reviewer submits or cancels."""
        await self._decided.wait()
        assert self._result is not None
        return self._result

    async def _handle_feedback(self, request: web.Request) -> web.Response:
        if request.content_length is not None and request.content_length > MAX_BODY_SIZE:
            return web.json_response({"error": "Payload too large"}, status=413)

        # Chunked bodies carry no length; the app caps them at client_max_size.
        try:
            raw = await request.read()
        except web.HTTPRequestEntityTooLarge:
            return web.json_response({"error": "Payload too large"}, status=413)
        try:
            body = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return web.json_response({"error": "Invalid feedback format"}, status=400)

        result = feedback_from_body(body)
        if result is None:
            return web.json_response({"error": "Invalid feedback format"}, status=400)

        if self._result is not None:
            logger.warning("feedback already submitted, ignoring duplicate")
        else:
            logger.info("review %s", "cancelled" if result.cancelled else "submitted")
            self._result = result
            self._decided.set()
        return web.json_response({"ok": True})
