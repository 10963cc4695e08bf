from __future__ import annotations

import asyncio
import os
import subprocess
import sys
import threading
import time
import types
from pathlib import Path
from typing import Any

import pytest
import requests

from ingestion.contracts.transport import Transport, TransportError
from ingestion.http.source import HTTPTransport, HTTPTransportConfig


def _response(payload: Any = None, *, status_error: Exception | None = None, content: bytes = b"", bad_json: bool = False) -> Any:
    def raise_for_status() -> None:
        if status_error is not None:
            raise status_error

    def json() -> Any:
        if bad_json:
            raise ValueError("Expecting value")
        return payload

    return types.SimpleNamespace(raise_for_status=raise_for_status, json=json, content=content)


class _Session:
    def __init__(self, response: Any = None, exc: Exception | None = None):
        self.response = response
        self.exc = exc
        self.calls: list[tuple[str, float]] = []

    def get(self, url: str, timeout: float) -> Any:
        self.calls.append((url, timeout))
        if self.exc is not None:
            raise self.exc
        return self.response

    def close(self) -> None:
        pass


def _transport(session: _Session) -> HTTPTransport:
    cfg = HTTPTransportConfig(base_url="https://h.test/api", timeout_s=5.0, max_workers=2)
    return HTTPTransport(cfg=cfg, session=session)  # type: ignore[arg-type]


def test_http_transport_satisfies_protocol() -> None:
    assert isinstance(_transport(_Session()), Transport)


@pytest.mark.asyncio
async def test_fetch_json_resolves_url_and_decodes() -> None:
    session = _Session(_response([{"timestamp": 1}]))
    transport = _transport(session)

    out = await transport.fetch_json("api_data.json")

    assert out == [{"timestamp": 1}]
    assert session.calls == [("https://h.test/api/api_data.json", 5.0)]


@pytest.mark.asyncio
async def test_fetch_bytes_returns_content() -> None:
    transport = _transport(_Session(_response(content=b"\x89PNG")))
    assert await transport.fetch_bytes("img/a.png") == b"\x89PNG"


@pytest.mark.asyncio
async def test_http_error_becomes_transport_error() -> None:
    session = _Session(_response(status_error=requests.HTTPError("404 Client Error")))
    transport = _transport(session)

    with pytest.raises(TransportError) as info:
        await transport.fetch_json("missing.json")

    assert info.value.path == "missing.json"
    assert info.value.url == "https://h.test/api/missing.json"
    assert isinstance(info.value.__cause__, requests.HTTPError)


@pytest.mark.asyncio
async def test_connection_error_becomes_transport_error() -> None:
    transport = _transport(_Session(exc=requests.ConnectionError("refused")))
    with pytest.raises(TransportError):
        await transport.fetch_bytes("img/a.png")


@pytest.mark.asyncio
async def test_invalid_json_becomes_transport_error() -> None:
    transport = _transport(_Session(_response(bad_json=True)))
    with pytest.raises(TransportError, match="not valid JSON"):
        await transport.fetch_json("api_data.json")


class _SlowSession:
    """Records how many GETs overlap in worker threads."""

    def __init__(self, delay_s: float = 0.02):
        self.delay_s = delay_s
        self._lock = threading.Lock()
        self._active = 0
        self.peak = 0
        self.count = 0

    def get(self, url: str, timeout: float) -> Any:
        with self._lock:
            self._active += 1
            self.count += 1
            self.peak = max(self.peak, self._active)
        try:
            time.sleep(self.delay_s)
            return _response({"url": url})
        finally:
            with self._lock:
                self._active -= 1

    def close(self) -> None:
        pass


def test_worker_bound_holds_across_event_loops() -> None:
    session = _SlowSession()
    transport = HTTPTransport(
        cfg=HTTPTransportConfig(base_url="https://h.test/api", timeout_s=5.0, max_workers=2),
        session=session,  # type: ignore[arg-type]
    )

    async def burst() -> list[Any]:
        return await asyncio.gather(*(transport.fetch_json(f"traj/{i}.json") for i in range(6)))

    for _ in range(4):
        out = asyncio.run(burst())
        assert len(out) == 6

    assert session.count == 24
    assert 1 <= session.peak <= 2


@pytest.mark.parametrize(
    "module",
    ["ingestion.http.source", "cyclone_timeline.config", "cyclone_timeline.runtime.session"],
)
def test_module_imports_first_in_fresh_interpreter(module: str) -> None:
    src = Path(__file__).resolve().parents[2] / "src"
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(src), env.get("PYTHONPATH", "")) if p)

    result = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stderr


def test_close_closes_requests_session() -> None:
    closed: list[bool] = []
    session = _Session(_response([]))
    session.close = lambda: closed.append(True)  # type: ignore[method-assign]

    _transport(session).close()

    assert closed == [True]
