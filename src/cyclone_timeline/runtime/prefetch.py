from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from ingestion.contracts.descriptor import SnapshotDescriptor
from cyclone_timeline.data.cache import SnapshotCache
from cyclone_timeline.data.preload import OverlayPreloader, PreloadResult
from cyclone_timeline.errors import PrefetchFailed, SessionClosed
from cyclone_timeline.runtime.lifecycle import AlwaysAlive, Liveness
from cyclone_timeline.utils.logger import get_logger, log_debug, log_info, log_warn
from cyclone_timeline.utils.timer import timed_block


@dataclass(frozen=True)
class PrefetchProgress:
    """One progress increment; `completed` counts resolved and failed snapshots alike."""

    completed: int
    total: int
    timestamp: int
    ok: bool

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        # half-up, so 1/8 reads 13
        return int(self.completed * 100 / self.total + 0.5)

    @property
    def label(self) -> str:
        return f"{self.completed}/{self.total}"


@dataclass
class PrefetchReport:
    total: int
    loaded: List[int] = field(default_factory=list)          # completion order
    failed: Dict[int, BaseException] = field(default_factory=dict)
    overlay_failures: List[PreloadResult] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and not self.loaded

    def to_frame(self) -> pd.DataFrame:
        rows = [{"timestamp": ts, "status": "loaded", "error": None} for ts in self.loaded]
        rows += [{"timestamp": ts, "status": "failed", "error": str(exc)} for ts, exc in self.failed.items()]
        df = pd.DataFrame(rows, columns=["timestamp", "status", "error"])
        return df.sort_values("timestamp", kind="stable").reset_index(drop=True)


ProgressCallback = Callable[[PrefetchProgress], None]


class Prefetcher:
    """
    Loads every snapshot of the index ahead of playback.

    Semantics:
      - one concurrent load per descriptor (unbounded unless max_concurrency is set)
      - a descriptor counts as done once its content and overlay preloads settle
      - progress is reported in completion order, monotonically
      - per-descriptor failures are isolated; only an all-failed run raises
    """

    def __init__(
        self,
        cache: SnapshotCache,
        preloader: OverlayPreloader,
        *,
        liveness: Liveness | None = None,
        max_concurrency: int | None = None,
        await_overlays: bool = True,
    ):
        self._cache = cache
        self._preloader = preloader
        self._liveness = liveness or AlwaysAlive()
        self._max_concurrency = max_concurrency
        self._await_overlays = await_overlays
        self._logger = get_logger(__name__)

    async def prefetch_all(
        self,
        descriptors: Sequence[SnapshotDescriptor],
        on_progress: Optional[ProgressCallback] = None,
    ) -> PrefetchReport:
        report = PrefetchReport(total=len(descriptors))
        limiter = (
            asyncio.Semaphore(self._max_concurrency)
            if self._max_concurrency is not None
            else contextlib.nullcontext()
        )

        async def _one(descriptor: SnapshotDescriptor) -> None:
            ts = descriptor.timestamp
            async with limiter:
                try:
                    await self._cache.get_or_load(descriptor)
                    if self._await_overlays and descriptor.overlay_refs:
                        results = await self._preloader.preload_many(ref.file for ref in descriptor.overlay_refs)
                        report.overlay_failures.extend(r for r in results if not r.ok)
                except Exception as exc:  # noqa: BLE001 - isolate one snapshot's failure
                    report.failed[ts] = exc
                    log_warn(self._logger, "prefetch.snapshot_failed", timestamp=ts, err=exc)
                else:
                    report.loaded.append(ts)

            if not self._liveness.alive:
                return
            completed = len(report.loaded) + len(report.failed)
            progress = PrefetchProgress(completed=completed, total=report.total, timestamp=ts, ok=ts not in report.failed)
            log_debug(self._logger, "prefetch.progress", completed=completed, total=report.total, percent=progress.percent)
            if on_progress is not None:
                on_progress(progress)

        log_info(self._logger, "prefetch.start", total=report.total, max_concurrency=self._max_concurrency)
        with timed_block("prefetch_all", self._logger, total=report.total):
            await asyncio.gather(*(_one(d) for d in descriptors))

        if not self._liveness.alive:
            raise SessionClosed("prefetch finished after session close")

        log_info(
            self._logger,
            "prefetch.done",
            total=report.total,
            loaded=len(report.loaded),
            failed=len(report.failed),
            overlay_failures=len(report.overlay_failures),
        )
        if report.all_failed:
            raise PrefetchFailed(report)
        return report
