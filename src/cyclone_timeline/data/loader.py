from __future__ import annotations

import asyncio
from typing import Any, List, Mapping, Optional

from ingestion.contracts.descriptor import SnapshotDescriptor
from ingestion.contracts.transport import Transport, TransportError
from cyclone_timeline.data.preload import OverlayPreloader
from cyclone_timeline.data.snapshot import LoadedSnapshot
from cyclone_timeline.errors import SnapshotLoadFailed
from cyclone_timeline.utils.logger import get_logger, log_debug, log_warn


class ContentLoader:
    """
    Resolves one SnapshotDescriptor into a LoadedSnapshot.

    Responsibilities:
      - fetch trajectory documents in descriptor order (any failure is fatal)
      - fetch the report document if referenced (failure -> report=None)
      - kick off overlay preloads; they never fail or delay the load unless
        `await_overlays=True`, and even then their failures are only logged
    """

    def __init__(self, transport: Transport, preloader: OverlayPreloader):
        self._transport = transport
        self._preloader = preloader
        self._logger = get_logger(__name__)

    @property
    def preloader(self) -> OverlayPreloader:
        return self._preloader

    async def load(self, descriptor: SnapshotDescriptor, *, await_overlays: bool = False) -> LoadedSnapshot:
        ts = descriptor.timestamp

        overlay_paths = [ref.file for ref in descriptor.overlay_refs]
        if await_overlays:
            overlays = asyncio.ensure_future(self._preloader.preload_many(overlay_paths))
        else:
            for path in overlay_paths:
                self._preloader.preload_detached(path)
            overlays = None

        trajectories: List[Mapping[str, Any]] = []
        for ref in descriptor.trajectory_refs:
            try:
                doc = await self._transport.fetch_json(ref)
            except TransportError as exc:
                if overlays is not None:
                    # let the preloads finish on their own
                    self._detach(overlays)
                raise SnapshotLoadFailed(ts, f"trajectory {ref!r}: {exc}", ref=ref) from exc
            if not isinstance(doc, Mapping):
                if overlays is not None:
                    self._detach(overlays)
                raise SnapshotLoadFailed(ts, f"trajectory {ref!r} is not a JSON object", ref=ref)
            trajectories.append(doc)

        report = await self._load_report(descriptor)

        if overlays is not None:
            await overlays

        log_debug(
            self._logger,
            "loader.snapshot_loaded",
            timestamp=ts,
            trajectories=len(trajectories),
            has_report=report is not None,
        )
        return LoadedSnapshot(
            timestamp=ts,
            display_date=descriptor.display_date,
            trajectories=tuple(trajectories),
            report=report,
        )

    async def _load_report(self, descriptor: SnapshotDescriptor) -> Optional[Mapping[str, Any]]:
        if descriptor.report_ref is None:
            return None
        try:
            doc = await self._transport.fetch_json(descriptor.report_ref)
        except TransportError as exc:
            log_warn(
                self._logger,
                "loader.report_unavailable",
                timestamp=descriptor.timestamp,
                ref=descriptor.report_ref,
                err=exc,
            )
            return None
        if not isinstance(doc, Mapping):
            log_warn(self._logger, "loader.report_malformed", timestamp=descriptor.timestamp, ref=descriptor.report_ref)
            return None
        return doc

    def _detach(self, task: asyncio.Future) -> None:
        # preload_many never raises; consume the result so the task is not reported as unawaited
        task.add_done_callback(lambda t: t.cancelled() or t.result())
