from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set

from ingestion.contracts.transport import Transport
from cyclone_timeline.runtime.lifecycle import AlwaysAlive, Liveness
from cyclone_timeline.utils.logger import get_logger, log_debug, log_warn


@dataclass(frozen=True)
class PreloadResult:
    """
    Outcome of one overlay preload.

    Always returned, never raised: a failed preload is `ok=False` with the
    error text, so callers can await it without joining its failure.
    """

    url: str
    ok: bool
    cached: bool = False
    error: Optional[str] = None


class OverlayPreloader:
    """
    Warms overlay images ahead of display and keeps their bytes.

    - Completed preloads are kept per resolved URL and never refetched.
    - Concurrent preloads of one URL share a single fetch.
    - Failures are logged and not remembered, so a later preload retries.
    """

    def __init__(self, transport: Transport, *, liveness: Liveness | None = None):
        self._transport = transport
        self._liveness = liveness or AlwaysAlive()
        self._images: Dict[str, bytes] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._detached: Set[asyncio.Task] = set()
        self._logger = get_logger(__name__)

    def url_for(self, path: str) -> str:
        return self._transport.resolve(path)

    def is_preloaded(self, url: str) -> bool:
        return url in self._images

    def get(self, url: str) -> Optional[bytes]:
        return self._images.get(url)

    def __len__(self) -> int:
        return len(self._images)

    async def preload(self, path: str) -> PreloadResult:
        url = self.url_for(path)
        if url in self._images:
            return PreloadResult(url=url, ok=True, cached=True)

        task = self._inflight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._fetch(path, url))
            self._inflight[url] = task
        return await asyncio.shield(task)

    async def preload_many(self, paths: Iterable[str]) -> List[PreloadResult]:
        return list(await asyncio.gather(*(self.preload(p) for p in paths)))

    def preload_detached(self, path: str) -> asyncio.Task:
        """Start a preload nobody awaits; the task is retained until it finishes."""
        task = asyncio.ensure_future(self.preload(path))
        self._detached.add(task)
        task.add_done_callback(self._detached.discard)
        return task

    async def _fetch(self, path: str, url: str) -> PreloadResult:
        try:
            data = await self._transport.fetch_bytes(path)
        except Exception as exc:  # noqa: BLE001 - preload failures never propagate
            log_warn(self._logger, "overlay.preload_failed", url=url, err=exc)
            return PreloadResult(url=url, ok=False, error=str(exc))
        finally:
            self._inflight.pop(url, None)

        if not self._liveness.alive:
            log_debug(self._logger, "overlay.preload_discarded", url=url)
            return PreloadResult(url=url, ok=False, error="session closed")

        self._images[url] = data
        log_debug(self._logger, "overlay.preloaded", url=url, size=len(data))
        return PreloadResult(url=url, ok=True)

    def clear(self) -> None:
        for task in list(self._detached):
            task.cancel()
        self._images.clear()
