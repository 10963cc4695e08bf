from __future__ import annotations

import asyncio
from typing import Dict, Iterator, Optional

from ingestion.contracts.descriptor import SnapshotDescriptor
from cyclone_timeline.data.loader import ContentLoader
from cyclone_timeline.data.snapshot import LoadedSnapshot
from cyclone_timeline.errors import SessionClosed
from cyclone_timeline.runtime.lifecycle import AlwaysAlive, Liveness
from cyclone_timeline.utils.logger import get_logger, log_debug, log_warn


class SnapshotCache:
    """
    Timestamp-keyed store of fully loaded snapshots.

    Entries are either pending (one shared in-flight load) or resolved.
    Invariants:
      - at most one ContentLoader.load in flight per timestamp
      - every concurrent caller for a key gets the same result object or error
      - failures are not cached; the pending entry is dropped so a retry refetches
      - resolved entries are never evicted
      - loads finishing after session teardown are discarded (SessionClosed)
    """

    def __init__(self, loader: ContentLoader, *, liveness: Liveness | None = None):
        self._loader = loader
        self._liveness = liveness or AlwaysAlive()
        self._resolved: Dict[int, LoadedSnapshot] = {}
        self._pending: Dict[int, asyncio.Task] = {}
        self._logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    def get(self, timestamp: int) -> Optional[LoadedSnapshot]:
        """Resolved entry or None; never triggers I/O."""
        return self._resolved.get(timestamp)

    def is_pending(self, timestamp: int) -> bool:
        return timestamp in self._pending

    def __contains__(self, timestamp: object) -> bool:
        return timestamp in self._resolved

    def __len__(self) -> int:
        return len(self._resolved)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._resolved))

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------
    async def get_or_load(self, descriptor: SnapshotDescriptor) -> LoadedSnapshot:
        ts = descriptor.timestamp

        cached = self._resolved.get(ts)
        if cached is not None:
            return cached

        task = self._pending.get(ts)
        if task is None:
            log_debug(self._logger, "cache.miss", timestamp=ts)
            task = asyncio.ensure_future(self._load(descriptor))
            task.add_done_callback(_mark_retrieved)
            self._pending[ts] = task
        else:
            log_debug(self._logger, "cache.join_inflight", timestamp=ts)

        # a cancelled waiter must not cancel the load shared with other waiters
        return await asyncio.shield(task)

    async def _load(self, descriptor: SnapshotDescriptor) -> LoadedSnapshot:
        ts = descriptor.timestamp
        try:
            snapshot = await self._loader.load(descriptor)
        except Exception as exc:
            log_warn(self._logger, "cache.load_failed", timestamp=ts, err=exc)
            raise
        finally:
            self._pending.pop(ts, None)

        if not self._liveness.alive:
            log_debug(self._logger, "cache.load_discarded", timestamp=ts)
            raise SessionClosed(f"snapshot {ts} resolved after session close")

        self._resolved[ts] = snapshot
        log_debug(self._logger, "cache.stored", timestamp=ts, size=len(self._resolved))
        return snapshot


def _mark_retrieved(task: asyncio.Task) -> None:
    # waiters may all have been cancelled; the error was already logged in _load
    if not task.cancelled():
        task.exception()
