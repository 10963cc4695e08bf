from __future__ import annotations

import random

import pytest

from cyclone_timeline.data.index import MetadataIndex
from cyclone_timeline.errors import IndexMalformed, IndexUnavailable
from tests.helpers.factories import FakeTransport, index_entry


@pytest.mark.asyncio
async def test_load_sorts_ascending_by_timestamp() -> None:
    stamps = [1700000000 + 3600 * i for i in range(12)]
    shuffled = list(stamps)
    random.shuffle(shuffled)
    transport = FakeTransport({"api_data.json": [index_entry(ts) for ts in shuffled]})

    descriptors = await MetadataIndex(transport).load()

    assert [d.timestamp for d in descriptors] == stamps
    assert transport.calls == ["api_data.json"]


def test_parse_is_stable_for_duplicate_timestamps() -> None:
    a = index_entry(20)
    a["date"] = "first"
    b = index_entry(20)
    b["date"] = "second"

    out = MetadataIndex.parse([index_entry(30), a, index_entry(10), b])

    assert [d.timestamp for d in out] == [10, 20, 20, 30]
    assert [d.display_date for d in out[1:3]] == ["first", "second"]


@pytest.mark.asyncio
async def test_transport_failure_is_index_unavailable() -> None:
    transport = FakeTransport({}, fail=["api_data.json"])
    with pytest.raises(IndexUnavailable):
        await MetadataIndex(transport).load()


@pytest.mark.asyncio
async def test_custom_index_path() -> None:
    transport = FakeTransport({"v2/index.json": [index_entry(1)]})
    out = await MetadataIndex(transport, index_path="v2/index.json").load()
    assert [d.timestamp for d in out] == [1]


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"timestamp": 1},
        "api_data",
        None,
        [index_entry(1), {"timestamp": "x", "date": "d", "trajectory_files": []}],
    ],
)
@pytest.mark.asyncio
async def test_malformed_payload_is_index_malformed(payload) -> None:
    transport = FakeTransport({"api_data.json": payload})
    with pytest.raises(IndexMalformed):
        await MetadataIndex(transport).load()


def test_to_frame_summarises_descriptors() -> None:
    descriptors = MetadataIndex.parse(
        [index_entry(1700000000, n_trajectories=2, overlays=["satellite_ir108"]), index_entry(1700003600, report=False)]
    )

    df = MetadataIndex.to_frame(descriptors)

    assert list(df["timestamp"]) == [1700000000, 1700003600]
    assert list(df["n_trajectories"]) == [2, 1]
    assert list(df["has_report"]) == [True, False]
    assert list(df["overlays"]) == ["satellite_ir108", ""]
    assert str(df["time"].dt.tz) == "UTC"
