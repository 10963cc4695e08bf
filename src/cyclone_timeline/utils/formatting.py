from __future__ import annotations

from datetime import datetime
from typing import Sequence, Tuple

import pytz

DEFAULT_DISPLAY_TZ = "Indian/Reunion"
KT_TO_KMH = 1.852

Bounds = Tuple[Tuple[float, float], Tuple[float, float]]


def bbox_to_bounds(bbox: Sequence[float]) -> Bounds:
    """[minLon, minLat, maxLon, maxLat] -> ((minLat, minLon), (maxLat, maxLon))."""
    if len(bbox) != 4:
        raise ValueError(f"bbox must have 4 values, got {len(bbox)}")
    min_lon, min_lat, max_lon, max_lat = (float(v) for v in bbox)
    return (min_lat, min_lon), (max_lat, max_lon)


def to_display_datetime(timestamp: int | float, tz: str = DEFAULT_DISPLAY_TZ) -> datetime:
    return datetime.fromtimestamp(float(timestamp), tz=pytz.utc).astimezone(pytz.timezone(tz))


def format_timestamp(timestamp: int | float, tz: str = DEFAULT_DISPLAY_TZ) -> str:
    """Epoch seconds -> '2025-01-14 09:00 (+04)' in the display timezone."""
    local = to_display_datetime(timestamp, tz)
    return local.strftime("%Y-%m-%d %H:%M (%Z)")


def format_wind(kt: float) -> str:
    kmh = round(kt * KT_TO_KMH)
    return f"{kt:g} kt ({kmh} km/h)"
