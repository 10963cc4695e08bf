from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Set, Tuple

from ingestion.contracts.descriptor import OverlayRef, SnapshotDescriptor
from ingestion.contracts.transport import Transport
from ingestion.http.source import HTTPTransport
from cyclone_timeline.config import TimelineConfig
from cyclone_timeline.data.cache import SnapshotCache
from cyclone_timeline.data.index import MetadataIndex
from cyclone_timeline.data.loader import ContentLoader
from cyclone_timeline.data.preload import OverlayPreloader
from cyclone_timeline.data.snapshot import LoadedSnapshot
from cyclone_timeline.errors import PrefetchFailed, SessionClosed, TimelineError
from cyclone_timeline.runtime.clock import Clock
from cyclone_timeline.runtime.lifecycle import LifecycleGuard, SessionPhase
from cyclone_timeline.runtime.playback import PlaybackScheduler
from cyclone_timeline.runtime.prefetch import Prefetcher, PrefetchProgress, PrefetchReport
from cyclone_timeline.utils.formatting import format_timestamp
from cyclone_timeline.utils.logger import (
    get_logger,
    log_data_integrity,
    log_error,
    log_info,
    log_warn,
)


@dataclass(frozen=True)
class SessionStatus:
    phase: SessionPhase
    message: str
    progress_pct: int = 0
    completed: int = 0
    total: int = 0
    error: Optional[str] = None
    warning: Optional[str] = None

    @property
    def controls_enabled(self) -> bool:
        return self.phase is SessionPhase.READY


@dataclass(frozen=True)
class FrameView:
    """
    What a renderer needs for one frame.

    `snapshot` is None when the frame has no data (failed or not yet loaded).
    `overlays` maps overlay name -> (ref, preloaded image bytes or None).
    """

    index: int
    descriptor: SnapshotDescriptor
    snapshot: Optional[LoadedSnapshot]
    overlays: Dict[str, Tuple[OverlayRef, Optional[bytes]]]
    display_time: str

    @property
    def has_data(self) -> bool:
        return self.snapshot is not None


StatusCallback = Callable[[SessionStatus], None]
FrameViewCallback = Callable[[FrameView], None]


class TimelineSession:
    """
    Composition root for one viewing session.

    Lifecycle:
        start(): load index -> size the scheduler -> prefetch all -> show frame 0
        close(): mark dead, disarm playback; late async results are discarded

    Every frame change goes through the scheduler; a shown frame with no cached
    content (a prefetch gap) is reloaded in the background.

    The cache, preloader and scheduler are created per session and owned by it.
    The session only references the current snapshot; the cache owns it.
    """

    def __init__(
        self,
        *,
        config: TimelineConfig | None = None,
        transport: Transport | None = None,
        clock: Clock | None = None,
        on_status: Optional[StatusCallback] = None,
        on_frame: Optional[FrameViewCallback] = None,
    ):
        self.config = config or TimelineConfig()
        self.guard = LifecycleGuard()
        self._owns_transport = transport is None
        self._transport = transport or HTTPTransport(cfg=self.config.transport_config())
        self._logger = get_logger(__name__)

        self.index = MetadataIndex(self._transport, index_path=self.config.index_path)
        self.preloader = OverlayPreloader(self._transport, liveness=self.guard)
        self.loader = ContentLoader(self._transport, self.preloader)
        self.cache = SnapshotCache(self.loader, liveness=self.guard)
        self.prefetcher = Prefetcher(
            self.cache,
            self.preloader,
            liveness=self.guard,
            max_concurrency=self.config.max_concurrency,
            await_overlays=self.config.await_overlays_in_prefetch,
        )
        self.playback = PlaybackScheduler(
            clock=clock,
            speed_ms=self.config.default_speed_ms,
            min_speed_ms=self.config.min_speed_ms,
            max_speed_ms=self.config.max_speed_ms,
            speed_step_ms=self.config.speed_step_ms,
            is_looping=self.config.loop_by_default,
            on_frame=self._on_frame_index,
        )

        self._on_status = on_status
        self._on_frame = on_frame
        self._descriptors: List[SnapshotDescriptor] = []
        self._current: Optional[FrameView] = None
        self._frame_loads: Set[asyncio.Future] = set()
        self._status = SessionStatus(phase=SessionPhase.IDLE, message="idle")
        self.report: Optional[PrefetchReport] = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def alive(self) -> bool:
        return self.guard.alive

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def descriptors(self) -> List[SnapshotDescriptor]:
        return list(self._descriptors)

    @property
    def current_frame(self) -> Optional[FrameView]:
        return self._current

    @property
    def current_snapshot(self) -> Optional[LoadedSnapshot]:
        return self._current.snapshot if self._current is not None else None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------
    async def start(self) -> PrefetchReport:
        """
        Load the index and prefetch every snapshot.

        Raises IndexUnavailable / IndexMalformed / PrefetchFailed after moving the
        session to FAILED (call start() again to reload), or SessionClosed if the
        session was torn down meanwhile.
        """
        self.guard.enter(SessionPhase.LOADING_INDEX)
        self._publish(SessionStatus(phase=SessionPhase.LOADING_INDEX, message="loading index"))

        try:
            descriptors = await self.index.load()
        except TimelineError as exc:
            self._fail(exc)
            raise
        if not self.alive:
            raise SessionClosed("index resolved after session close")

        self._descriptors = descriptors
        self.playback.set_total_frames(len(descriptors))

        self.guard.enter(SessionPhase.PREFETCHING)
        total = len(descriptors)
        self._publish(SessionStatus(phase=SessionPhase.PREFETCHING, message=f"prefetching 0/{total}", total=total))

        try:
            report = await self.prefetcher.prefetch_all(descriptors, on_progress=self._on_progress)
        except PrefetchFailed as exc:
            self.report = exc.report
            self._fail(exc)
            raise
        self.report = report

        warning = None
        if report.failed:
            warning = f"{len(report.failed)} of {report.total} snapshots unavailable"
            log_warn(self._logger, "session.partial_prefetch", failed=sorted(report.failed), total=report.total)

        self.guard.enter(SessionPhase.READY)
        self._publish(
            SessionStatus(
                phase=SessionPhase.READY,
                message="ready",
                progress_pct=100,
                completed=total,
                total=total,
                warning=warning,
            )
        )
        self._on_frame_index(self.playback.current_index)
        log_info(self._logger, "session.ready", frames=total, loaded=len(report.loaded))
        return report

    def _on_progress(self, progress: PrefetchProgress) -> None:
        self._publish(
            replace(
                self._status,
                message=f"prefetching {progress.label}",
                progress_pct=progress.percent,
                completed=progress.completed,
                total=progress.total,
            )
        )

    def _fail(self, exc: BaseException) -> None:
        if not self.alive:
            return
        self.guard.enter(SessionPhase.FAILED)
        self.playback.pause()
        log_error(self._logger, "session.failed", err=exc)
        self._publish(SessionStatus(phase=SessionPhase.FAILED, message=str(exc), error=str(exc)))

    # ------------------------------------------------------------------
    # Frames
    # ------------------------------------------------------------------
    def _on_frame_index(self, index: int) -> None:
        self._show(index)
        if self.guard.phase is SessionPhase.READY and self.current_snapshot is None:
            # gap left by prefetch; retry it in the background
            self._spawn_frame_load(index)

    def _show(self, index: int) -> None:
        if not self.alive or not self._descriptors:
            return
        descriptor = self._descriptors[index]
        snapshot = self.cache.get(descriptor.timestamp)
        if snapshot is None:
            log_data_integrity(self._logger, "frame.missing", index=index, timestamp=descriptor.timestamp)
        self._set_current(index, descriptor, snapshot)

    def _set_current(self, index: int, descriptor: SnapshotDescriptor, snapshot: Optional[LoadedSnapshot]) -> None:
        overlays = {}
        for ref in descriptor.overlay_refs:
            overlays[ref.name] = (ref, self.preloader.get(self.preloader.url_for(ref.file)))
        self._current = FrameView(
            index=index,
            descriptor=descriptor,
            snapshot=snapshot,
            overlays=overlays,
            display_time=format_timestamp(descriptor.timestamp, self.config.display_timezone),
        )
        if self._on_frame is not None:
            self._on_frame(self._current)

    async def load_frame(self, index: int) -> Optional[LoadedSnapshot]:
        """
        Seek to `index` and load its content on demand.

        The seek goes through the scheduler (autoplay stops), so the shown frame
        and the playback position never diverge. Out-of-range indices are ignored.
        A load failure propagates to the caller (the frame shows no data). Results
        that arrive after close() or after another frame became current are
        discarded.
        """
        if not self._descriptors or not 0 <= index < len(self._descriptors):
            return None
        self.playback.go_to_frame(index)
        if self._current is None or self._current.index != index:
            self._show(index)
        return await self._fetch_frame(index)

    async def _fetch_frame(self, index: int) -> LoadedSnapshot:
        descriptor = self._descriptors[index]
        snapshot = await self.cache.get_or_load(descriptor)
        if not self.alive:
            raise SessionClosed("frame resolved after session close")
        current = self._current
        if current is not None and current.index == index and current.snapshot is not snapshot:
            self._set_current(index, descriptor, snapshot)
        return snapshot

    def _spawn_frame_load(self, index: int) -> None:
        task = asyncio.ensure_future(self._fetch_frame(index))
        self._frame_loads.add(task)
        task.add_done_callback(self._frame_load_done)

    def _frame_load_done(self, task: asyncio.Future) -> None:
        self._frame_loads.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and not isinstance(exc, SessionClosed):
            log_warn(self._logger, "frame.load_failed", err=exc)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def close(self) -> None:
        if not self.alive:
            return
        self.guard.enter(SessionPhase.CLOSED)
        self.playback.close()
        self.preloader.clear()
        for task in list(self._frame_loads):
            task.cancel()
        if self._owns_transport:
            self._transport.close()
        self._on_status = None
        self._on_frame = None
        log_info(self._logger, "session.closed")

    def _publish(self, status: SessionStatus) -> None:
        if not self.alive:
            return
        self._status = status
        if self._on_status is not None:
            self._on_status(status)
