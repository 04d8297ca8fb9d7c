"""Decode one NDJSON record into a typed assistant event."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from pydantic import ValidationError

from aurore.constants import PREVIEW_LEN
from aurore.protocol.messages import CLAUDE_MESSAGE_ADAPTER, ClaudeMessage, UnknownMessage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodeFailure:
    """A record that could not be decoded.

    ``raw`` is truncated to :data:`~aurore.constants.PREVIEW_LEN` characters.
    """

    raw: str
    reason: str


def decode(record: str) -> ClaudeMessage | DecodeFailure:
    """Parse *record* as JSON and validate it against the event union.

    Never raises: malformed JSON and non-object payloads come back as
    :class:`DecodeFailure`. Unrecognized ``type`` values, and known types
    whose fields do not fit the typed model, decode to ``UnknownMessage``
    so they are still relayed verbatim.
    """
    try:
        data = json.loads(record)
    except json.JSONDecodeError as exc:
        return DecodeFailure(raw=record[:PREVIEW_LEN], reason=f"invalid JSON: {exc.msg}")

    if not isinstance(data, dict):
        return DecodeFailure(
            raw=record[:PREVIEW_LEN],
            reason=f"expected a JSON object, got {type(data).__name__}",
        )

    try:
        return CLAUDE_MESSAGE_ADAPTER.validate_python(data)
    except ValidationError as exc:
        logger.debug(
            "%s event does not fit its model (%d error(s)), passing through",
            data.get("type"),
            exc.error_count(),
        )

    try:
        return UnknownMessage.model_validate(data)
    except ValidationError as exc:
        return DecodeFailure(
            raw=record[:PREVIEW_LEN],
            reason=f"invalid {data.get('type')!s} event: {exc.error_count()} error(s)",
        )
