from __future__ import annotations

import asyncio
import weakref
from dataclasses import dataclass
from typing import Any

import requests

from ingestion.contracts.transport import Transport, TransportError
from ingestion.utils import resolve_url
from cyclone_timeline.utils.asyncio import to_thread_limited
from cyclone_timeline.utils.logger import get_logger, log_debug


@dataclass(frozen=True)
class HTTPTransportConfig:
    base_url: str = "https://cmrs.sys-dev-run.fr/meteo-france-api"
    timeout_s: float = 30.0
    max_workers: int = 8


class HTTPTransport(Transport):
    """Fetch snapshot resources over HTTP(S).

    Notes:
      - This transport is intentionally *pure I/O*: no caching, no retries.
      - Blocking `requests` calls run in worker threads (bounded by
        `max_workers`) so awaiting a fetch never blocks the event loop.
    """

    def __init__(self, *, cfg: HTTPTransportConfig | None = None, session: requests.Session | None = None):
        self._cfg = cfg or HTTPTransportConfig()
        self._session = session or requests.Session()
        self._logger = get_logger(__name__)
        self._limiter: asyncio.Semaphore | None = None
        self._limiter_loop: weakref.ref | None = None

    @property
    def base_url(self) -> str:
        return self._cfg.base_url

    def resolve(self, path: str) -> str:
        return resolve_url(self._cfg.base_url, path)

    # ------------------------------------------------------------------
    # Blocking primitives
    # ------------------------------------------------------------------
    def _get(self, path: str) -> requests.Response:
        url = self.resolve(path)
        try:
            r = self._session.get(url, timeout=self._cfg.timeout_s)
            r.raise_for_status()
        except requests.RequestException as exc:
            raise TransportError(f"GET {url} failed: {exc}", path=path, url=url) from exc
        return r

    def get_json(self, path: str) -> Any:
        r = self._get(path)
        try:
            return r.json()
        except ValueError as exc:
            url = self.resolve(path)
            raise TransportError(f"GET {url}: body is not valid JSON", path=path, url=url) from exc

    def get_bytes(self, path: str) -> bytes:
        return self._get(path).content

    # ------------------------------------------------------------------
    # Async surface
    # ------------------------------------------------------------------
    def _workers(self) -> asyncio.Semaphore:
        # one worker bound per event loop; a new loop gets a fresh semaphore
        loop = asyncio.get_running_loop()
        if self._limiter is None or self._limiter_loop is None or self._limiter_loop() is not loop:
            self._limiter = asyncio.Semaphore(self._cfg.max_workers)
            self._limiter_loop = weakref.ref(loop)
        return self._limiter

    async def fetch_json(self, path: str) -> Any:
        log_debug(self._logger, "transport.fetch_json", path=path)
        return await to_thread_limited(
            self.get_json,
            path,
            logger=self._logger,
            op="http_fetch_json",
            limiter=self._workers(),
        )

    async def fetch_bytes(self, path: str) -> bytes:
        log_debug(self._logger, "transport.fetch_bytes", path=path)
        return await to_thread_limited(
            self.get_bytes,
            path,
            logger=self._logger,
            op="http_fetch_bytes",
            limiter=self._workers(),
        )

    def close(self) -> None:
        self._session.close()
