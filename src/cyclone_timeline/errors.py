from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cyclone_timeline.runtime.prefetch import PrefetchReport


class TimelineError(Exception):
    """Base class for every error raised by the timeline core."""


class IndexUnavailable(TimelineError):
    """The index resource could not be fetched."""


class IndexMalformed(TimelineError):
    """The index resource is not a non-empty list of well-formed descriptors."""


class SnapshotLoadFailed(TimelineError):
    """One snapshot's content could not be loaded. Isolated to its key."""

    def __init__(self, timestamp: int, message: str, *, ref: str | None = None):
        super().__init__(f"snapshot {timestamp}: {message}")
        self.timestamp = timestamp
        self.ref = ref


class PrefetchFailed(TimelineError):
    """Every descriptor failed during bulk prefetch."""

    def __init__(self, report: "PrefetchReport"):
        super().__init__(f"all {report.total} snapshots failed to load")
        self.report = report


class SessionClosed(TimelineError):
    """An operation resolved after its owning session was torn down."""
