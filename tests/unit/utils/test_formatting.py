from __future__ import annotations

import pytest

from cyclone_timeline.utils.formatting import bbox_to_bounds, format_timestamp, format_wind, to_display_datetime


def test_bbox_to_bounds_swaps_axes() -> None:
    assert bbox_to_bounds([40, -30, 70, -5]) == ((-30.0, 40.0), (-5.0, 70.0))


def test_bbox_to_bounds_rejects_wrong_arity() -> None:
    with pytest.raises(ValueError):
        bbox_to_bounds([1, 2, 3])


def test_display_time_uses_reunion_offset() -> None:
    # 2024-01-15 00:00 UTC is 04:00 in Reunion (UTC+4, no DST)
    local = to_display_datetime(1705276800)
    assert (local.hour, local.utcoffset().total_seconds()) == (4, 4 * 3600)
    assert format_timestamp(1705276800).startswith("2024-01-15 04:00")


def test_format_timestamp_other_zone() -> None:
    assert format_timestamp(1705276800, "UTC") == "2024-01-15 00:00 (UTC)"


def test_format_wind() -> None:
    assert format_wind(10) == "10 kt (19 km/h)"
    assert format_wind(65) == "65 kt (120 km/h)"
