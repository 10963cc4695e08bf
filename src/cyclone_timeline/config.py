from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

from ingestion.http.source import HTTPTransportConfig


@dataclass(frozen=True)
class TimelineConfig:
    """
    Session-level settings.

    - speeds are frame intervals in milliseconds
    - max_concurrency=None keeps prefetch fan-out unbounded
    """

    base_url: str = "https://cmrs.sys-dev-run.fr/meteo-france-api"
    index_path: str = "api_data.json"
    timeout_s: float = 30.0

    default_speed_ms: int = 200
    min_speed_ms: int = 100
    max_speed_ms: int = 3000
    speed_step_ms: int = 100
    loop_by_default: bool = True

    max_concurrency: int | None = None
    await_overlays_in_prefetch: bool = True
    display_timezone: str = "Indian/Reunion"

    def __post_init__(self) -> None:
        if self.min_speed_ms <= 0:
            raise ValueError("min_speed_ms must be > 0")
        if self.min_speed_ms > self.max_speed_ms:
            raise ValueError("min_speed_ms must be <= max_speed_ms")
        if not self.min_speed_ms <= self.default_speed_ms <= self.max_speed_ms:
            raise ValueError(
                f"default_speed_ms must be in [{self.min_speed_ms}, {self.max_speed_ms}]"
            )
        if self.speed_step_ms <= 0:
            raise ValueError("speed_step_ms must be > 0")
        if self.max_concurrency is not None and self.max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1 or None")
        if self.timeout_s <= 0:
            raise ValueError("timeout_s must be > 0")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimelineConfig":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def clamp_speed(self, ms: int | float) -> int:
        return int(min(self.max_speed_ms, max(self.min_speed_ms, int(ms))))

    def transport_config(self) -> HTTPTransportConfig:
        return HTTPTransportConfig(base_url=self.base_url, timeout_s=self.timeout_s)


def load_config(path: str | Path) -> TimelineConfig:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path}: config must be a JSON object")
    return TimelineConfig.from_dict(data)
