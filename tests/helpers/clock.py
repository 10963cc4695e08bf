from __future__ import annotations

from typing import Callable, List


class ManualTimer:
    def __init__(self, clock: "ManualClock", due_ms: int, callback: Callable[[], None]):
        self._clock = clock
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock:
    """Virtual clock: timers fire only when advance() moves time past them."""

    def __init__(self) -> None:
        self.now_ms = 0
        self._timers: List[ManualTimer] = []

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self, self.now_ms + int(delay_ms), callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self._timers if not t.cancelled]

    def advance(self, ms: int) -> None:
        target = self.now_ms + int(ms)
        while True:
            due = [t for t in self._timers if not t.cancelled and t.due_ms <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_ms)
            self._timers.remove(timer)
            self.now_ms = timer.due_ms
            timer.callback()
        self.now_ms = target
        self._timers = [t for t in self._timers if not t.cancelled]
