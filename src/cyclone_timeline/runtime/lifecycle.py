from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Protocol


class SessionPhase(str, Enum):
    IDLE = "idle"
    LOADING_INDEX = "loading_index"
    PREFETCHING = "prefetching"
    READY = "ready"
    FAILED = "failed"
    CLOSED = "closed"


_ALLOWED: Dict[SessionPhase, FrozenSet[SessionPhase]] = {
    SessionPhase.IDLE: frozenset({SessionPhase.LOADING_INDEX}),
    SessionPhase.LOADING_INDEX: frozenset({SessionPhase.PREFETCHING, SessionPhase.FAILED}),
    SessionPhase.PREFETCHING: frozenset({SessionPhase.READY, SessionPhase.FAILED}),
    SessionPhase.READY: frozenset(),
    # reload after a fatal error
    SessionPhase.FAILED: frozenset({SessionPhase.LOADING_INDEX}),
    SessionPhase.CLOSED: frozenset(),
}


class Liveness(Protocol):
    @property
    def alive(self) -> bool:
        ...


class LifecycleGuard:
    """
    Enforces session phase ordering and carries the session liveness flag.

    IDLE -> LOADING_INDEX -> PREFETCHING -> READY
    LOADING_INDEX / PREFETCHING -> FAILED -> LOADING_INDEX
    any -> CLOSED (terminal)

    Async work that resolves after CLOSED must check `alive` and discard
    its result instead of writing shared state.
    """

    def __init__(self) -> None:
        self._phase = SessionPhase.IDLE

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def alive(self) -> bool:
        return self._phase is not SessionPhase.CLOSED

    def enter(self, phase: SessionPhase) -> None:
        if phase is SessionPhase.CLOSED:
            self._phase = phase
            return
        if phase not in _ALLOWED[self._phase]:
            raise RuntimeError(f"invalid session transition {self._phase.value} -> {phase.value}")
        self._phase = phase


class AlwaysAlive:
    """Liveness for components used outside a session (scripts, tests)."""

    alive = True
