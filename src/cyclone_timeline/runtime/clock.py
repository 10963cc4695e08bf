from __future__ import annotations

import asyncio
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Clock(Protocol):
    """
    Minimal timer contract used by the playback scheduler.

    call_later arms a one-shot callback `delay_ms` from now and returns a
    handle whose cancel() disarms it. Callbacks run on the owning thread.
    """

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        ...


class LoopClock:
    """Clock backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._get_loop().call_later(delay_ms / 1000.0, callback)
