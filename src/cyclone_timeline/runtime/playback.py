from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional

from cyclone_timeline.runtime.clock import Clock, LoopClock, TimerHandle
from cyclone_timeline.utils.logger import get_logger, log_debug, log_info

FrameCallback = Callable[[int], None]


@dataclass(frozen=True)
class PlaybackState:
    """
    Read-only view of the scheduler state.

    Invariant: 0 <= current_index < total_frames whenever total_frames > 0.
    """

    total_frames: int = 0
    current_index: int = 0
    is_playing: bool = False
    is_looping: bool = True
    speed_ms: int = 200

    @property
    def is_idle(self) -> bool:
        return self.total_frames == 0

    @property
    def last_index(self) -> int:
        return max(0, self.total_frames - 1)


class PlaybackScheduler:
    """
    Timer-driven frame stepper.

    States: Idle (no frames) -> Ready/Paused <-> Playing. The session owner
    calls close() on teardown, which disarms the timer for good.

    Timing:
      - at most one pending tick exists; re-arming always disarms first
      - seeking pauses before the index moves, so a racing tick cannot win
      - the frame callback fires once per index change, after the state update
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        speed_ms: int = 200,
        min_speed_ms: int = 100,
        max_speed_ms: int = 3000,
        speed_step_ms: int = 100,
        is_looping: bool = True,
        on_frame: Optional[FrameCallback] = None,
    ):
        if min_speed_ms <= 0 or min_speed_ms > max_speed_ms:
            raise ValueError("speed bounds must satisfy 0 < min_speed_ms <= max_speed_ms")
        if speed_step_ms <= 0:
            raise ValueError("speed_step_ms must be > 0")
        self._speed_step_ms = int(speed_step_ms)
        self._clock = clock or LoopClock()
        self._min_speed_ms = int(min_speed_ms)
        self._max_speed_ms = int(max_speed_ms)
        self._state = PlaybackState(is_looping=bool(is_looping), speed_ms=self._clamp_speed(speed_ms))
        self._timer: TimerHandle | None = None
        self._on_frame = on_frame
        self._closed = False
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._state.current_index

    @property
    def is_playing(self) -> bool:
        return self._state.is_playing

    @property
    def is_looping(self) -> bool:
        return self._state.is_looping

    @property
    def speed_ms(self) -> int:
        return self._state.speed_ms

    @property
    def speed_step_ms(self) -> int:
        return self._speed_step_ms

    @property
    def total_frames(self) -> int:
        return self._state.total_frames

    @property
    def armed(self) -> bool:
        return self._timer is not None

    def set_frame_callback(self, callback: Optional[FrameCallback]) -> None:
        self._on_frame = callback

    # ------------------------------------------------------------------
    # Frame count
    # ------------------------------------------------------------------
    def set_total_frames(self, total: int) -> None:
        """Resize the timeline; 0 returns to Idle, the index is clamped into range."""
        total = max(0, int(total))
        if total == 0:
            self.pause()
            self._set_index(0, total_frames=0)
            return
        index = min(self._state.current_index, total - 1)
        self._set_index(index, total_frames=total)
        log_info(self._logger, "playback.ready", total_frames=total)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------
    def play(self) -> None:
        if self._closed or self._state.total_frames == 0:
            return
        if self._state.is_playing:
            return
        self._state = replace(self._state, is_playing=True)
        self._arm()
        log_debug(self._logger, "playback.play", index=self._state.current_index, speed_ms=self._state.speed_ms)

    def pause(self) -> None:
        self._disarm()
        if self._state.is_playing:
            self._state = replace(self._state, is_playing=False)
            log_debug(self._logger, "playback.pause", index=self._state.current_index)

    def toggle_play_pause(self) -> None:
        if self._state.is_playing:
            self.pause()
        else:
            self.play()

    def restart(self) -> None:
        if self._state.total_frames > 0:
            self._set_index(0)
        self.play()

    def toggle_loop(self) -> None:
        self._state = replace(self._state, is_looping=not self._state.is_looping)
        log_debug(self._logger, "playback.loop", is_looping=self._state.is_looping)

    def go_to_frame(self, index: int) -> None:
        """Seek to `index` (clamped) and stop autoplay."""
        self.pause()
        if self._state.total_frames == 0:
            return
        clamped = max(0, min(int(index), self._state.total_frames - 1))
        self._set_index(clamped)

    def update_speed(self, ms: int) -> None:
        """Change the frame interval; a running timer is re-armed at the new interval."""
        speed = self._clamp_speed(ms)
        self._state = replace(self._state, speed_ms=speed)
        if self._state.is_playing:
            self._arm()
        log_debug(self._logger, "playback.speed", speed_ms=speed)

    def step_speed(self, steps: int) -> None:
        """Move the frame interval by `steps` slider notches (negative is faster)."""
        self.update_speed(self._state.speed_ms + int(steps) * self._speed_step_ms)

    def faster(self) -> None:
        self.step_speed(-1)

    def slower(self) -> None:
        self.step_speed(1)

    def close(self) -> None:
        self.pause()
        self._closed = True
        self._on_frame = None

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------
    def _arm(self) -> None:
        self._disarm()
        self._timer = self._clock.call_later(self._state.speed_ms, self._tick)

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _tick(self) -> None:
        self._timer = None
        if not self._state.is_playing or self._closed:
            return

        nxt = self._state.current_index + 1
        if nxt > self._state.total_frames - 1:
            if self._state.is_looping:
                nxt = 0
            else:
                # non-looping playback stops itself on the last frame
                self._state = replace(self._state, is_playing=False)
                log_debug(self._logger, "playback.end", index=self._state.current_index)
                return

        self._arm()
        self._set_index(nxt)

    def _set_index(self, index: int, *, total_frames: int | None = None) -> None:
        prev = self._state.current_index
        if total_frames is not None:
            self._state = replace(self._state, total_frames=total_frames, current_index=index)
        else:
            self._state = replace(self._state, current_index=index)
        if index != prev and self._on_frame is not None:
            self._on_frame(index)

    def _clamp_speed(self, ms: int) -> int:
        return int(min(self._max_speed_ms, max(self._min_speed_ms, int(ms))))
