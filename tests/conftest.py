"""Shared fixtures: scripted stand-ins for the Claude CLI subprocess."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import MagicMock

import pytest


class MockAsyncStream:
    """Async-aware mock pipe that yields chunks on demand.

    Chunks can be added at any time via ``feed()``.  ``read()`` blocks
    until a chunk is available or ``close()`` is called.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def feed_event(self, event: dict[str, Any]) -> None:
        self.feed(json.dumps(event).encode() + b"\n")

    def close(self) -> None:
        """Signal EOF."""
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._queue.get()


class MockProcess:
    """Scripted subprocess: feed stdout/stderr, then ``finish()`` to exit."""

    def __init__(self, pid: int = 4242) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.stdin = MagicMock()
        self.stdout = MockAsyncStream()
        self.stderr = MockAsyncStream()
        self.kill = MagicMock(side_effect=lambda: self.finish(-9))
        self._exited = asyncio.Event()

    def finish(self, returncode: int = 0) -> None:
        if self.returncode is not None:
            return
        self.returncode = returncode
        self.stdout.close()
        self.stderr.close()
        self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def written(self) -> list[dict[str, Any]]:
        """Decoded records written to stdin."""
        return [
            json.loads(call.args[0].decode())
            for call in self.stdin.write.call_args_list
        ]


async def settle(rounds: int = 20) -> None:
    """Let pending read-loop iterations run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def make_proc() -> Callable[..., MockProcess]:
    return MockProcess
