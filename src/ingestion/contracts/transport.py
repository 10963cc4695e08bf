from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class TransportError(Exception):
    """A resource could not be fetched or decoded."""

    def __init__(self, message: str, *, path: str | None = None, url: str | None = None):
        super().__init__(message)
        self.path = path
        self.url = url


@runtime_checkable
class Transport(Protocol):
    """
    Resource transport contract.

    A Transport is responsible ONLY for:
        - resolving relative resource paths to locations
        - fetching JSON documents and raw bytes

    It MUST NOT:
        - import cyclone_timeline.data / runtime
        - cache, retry, or reorder results
        - block the event loop

    Every failure surfaces as TransportError.
    """

    def resolve(self, path: str) -> str:
        """Absolute location (URL) of a relative resource path."""
        ...

    async def fetch_json(self, path: str) -> Any:
        ...

    async def fetch_bytes(self, path: str) -> bytes:
        ...
