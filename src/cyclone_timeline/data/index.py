from __future__ import annotations

from typing import Any, List, Sequence

import pandas as pd

from ingestion.contracts.descriptor import SnapshotDescriptor, normalize_descriptor
from ingestion.contracts.transport import Transport, TransportError
from cyclone_timeline.errors import IndexMalformed, IndexUnavailable
from cyclone_timeline.utils.logger import get_logger, log_info, log_error


class MetadataIndex:
    """
    Loads the ordered list of snapshot descriptors from the index resource.

    Semantics:
      - One fetch per load(); nothing is cached (consulted only at startup).
      - Result is sorted ascending by timestamp; the sort is stable, so
        duplicate timestamps keep their source order.
    """

    def __init__(self, transport: Transport, *, index_path: str = "api_data.json"):
        self._transport = transport
        self._index_path = index_path
        self._logger = get_logger(__name__)

    @property
    def index_path(self) -> str:
        return self._index_path

    async def load(self) -> List[SnapshotDescriptor]:
        try:
            raw = await self._transport.fetch_json(self._index_path)
        except TransportError as exc:
            log_error(self._logger, "index.unavailable", path=self._index_path, err=exc)
            raise IndexUnavailable(f"failed to load {self._index_path}: {exc}") from exc

        descriptors = self.parse(raw)
        log_info(
            self._logger,
            "index.loaded",
            path=self._index_path,
            count=len(descriptors),
            first_ts=descriptors[0].timestamp,
            last_ts=descriptors[-1].timestamp,
        )
        return descriptors

    @staticmethod
    def parse(raw: Any) -> List[SnapshotDescriptor]:
        """Validate a decoded index document and return sorted descriptors."""
        if not isinstance(raw, list):
            raise IndexMalformed(f"index must be a JSON array, got {type(raw).__name__}")
        if not raw:
            raise IndexMalformed("index contains no snapshots")

        descriptors = []
        for pos, entry in enumerate(raw):
            try:
                descriptors.append(normalize_descriptor(entry))
            except ValueError as exc:
                raise IndexMalformed(f"entry {pos}: {exc}") from exc

        return sorted(descriptors, key=lambda d: d.timestamp)

    @staticmethod
    def to_frame(descriptors: Sequence[SnapshotDescriptor]) -> pd.DataFrame:
        """One row per descriptor, for inspection and reports."""
        rows = []
        for d in descriptors:
            rows.append({
                "timestamp": d.timestamp,
                "date": d.display_date,
                "n_trajectories": len(d.trajectory_refs),
                "has_report": d.report_ref is not None,
                "overlays": ",".join(ref.name for ref in d.overlay_refs),
            })
        df = pd.DataFrame(rows, columns=["timestamp", "date", "n_trajectories", "has_report", "overlays"])
        df["time"] = pd.to_datetime(df["timestamp"], unit="s", utc=True)
        return df
