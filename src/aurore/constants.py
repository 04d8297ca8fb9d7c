"""Shared constants and type aliases for the Aurore runtime."""

from __future__ import annotations

from collections.abc import Callable

#: Default port for ``aurore serve`` and ``aurore review``.
DEFAULT_PORT = 9847

#: Max characters of a raw record kept for diagnostics.
PREVIEW_LEN = 200

#: Callback type for stderr text relayed from the assistant subprocess.
TextCallback = Callable[[str], None]
