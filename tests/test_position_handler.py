from __future__ import annotations

import pytest

from conftest import MMSI, T0_MS, RecordingStore, position_envelope
from openships.services.history_buffer import HistoryBuffer
from openships.services.observation_cache import LastObservedCache
from openships.worker.handlers import PositionHandler, StaticDataHandler

NOW_MS = T0_MS + 3_600_000


def _pipeline(store: RecordingStore, **thresholds):
    cache = LastObservedCache()
    buffer = HistoryBuffer(store.insert_history_batch)
    handler = PositionHandler(cache, buffer, clock=lambda: NOW_MS, **thresholds)
    return handler, cache, buffer


@pytest.mark.asyncio
@pytest.mark.parametrize("min_distance_m, expected", [(100, 2), (101, 1)])
async def test_distance_scenario_both_sides_of_threshold(
    recording_store, min_distance_m, expected
) -> None:
    handler, _, buffer = _pipeline(recording_store, min_distance_m=min_distance_m)

    await handler.handle(recording_store, position_envelope(lat=10.0, lon=20.0, time_utc=T0_MS))
    await handler.handle(
        recording_store, position_envelope(lat=10.0009, lon=20.0, time_utc=T0_MS + 60_000)
    )
    await buffer.flush()

    assert len(recording_store.current) == 2
    assert len(recording_store.history) == expected


@pytest.mark.asyncio
async def test_time_scenario_same_position(recording_store) -> None:
    handler, _, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS))
    await handler.handle(recording_store, position_envelope(time_utc=T0_MS + 300_001))
    await buffer.flush()

    assert [r["timestamp"] for r in recording_store.history] == [
        c["timestamp"] for c in recording_store.current
    ]
    assert len(recording_store.history) == 2


@pytest.mark.asyncio
async def test_rejected_observation_advances_cache_time_only(recording_store) -> None:
    handler, cache, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS))
    await handler.handle(recording_store, position_envelope(lat=10.0001, time_utc=T0_MS + 10_000))

    entry = cache.get(MMSI)
    assert (entry.lon, entry.lat, entry.ts_ms) == (20.0, 10.0, T0_MS + 10_000)
    assert len(buffer) == 1
    assert handler.enqueued == 1


@pytest.mark.asyncio
async def test_invalid_position_updates_state_but_never_history(recording_store) -> None:
    handler, cache, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS))
    await handler.handle(
        recording_store, position_envelope(lat=91.0, lon=181.0, time_utc=T0_MS + 600_000)
    )

    assert len(recording_store.current) == 2
    invalid = recording_store.current[1]
    assert invalid["latitude"] is None and invalid["longitude"] is None
    assert invalid["ship_name"] == "NORDIC STAR"
    assert len(buffer) == 1
    entry = cache.get(MMSI)
    assert entry.lon is None and entry.lat is None
    assert entry.ts_ms == T0_MS + 600_000


@pytest.mark.asyncio
async def test_invalid_position_on_unknown_vessel_leaves_first_sighting_open(recording_store) -> None:
    handler, cache, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(lat=-95.0, time_utc=T0_MS))
    assert cache.get(MMSI) is None

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS + 1_000))
    assert len(buffer) == 1


@pytest.mark.asyncio
async def test_unparsable_timestamp_skips_history(recording_store) -> None:
    handler, cache, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS))
    await handler.handle(recording_store, position_envelope(lat=11.0, time_utc="not a date"))

    assert recording_store.current[1]["timestamp"] is None
    assert len(buffer) == 1
    assert cache.get(MMSI).ts_ms == NOW_MS


@pytest.mark.asyncio
async def test_invalid_position_with_unparsable_timestamp_clears_coordinates(recording_store) -> None:
    handler, cache, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(time_utc=T0_MS))
    await handler.handle(
        recording_store, position_envelope(lat=91.0, lon=181.0, time_utc="garbage")
    )

    entry = cache.get(MMSI)
    assert entry.lon is None and entry.lat is None
    assert entry.ts_ms == NOW_MS
    assert recording_store.current[1]["timestamp"] is None
    assert len(buffer) == 1


@pytest.mark.asyncio
async def test_frame_without_mmsi_is_dropped(recording_store) -> None:
    handler, _, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(mmsi=None))

    assert recording_store.current == []
    assert len(buffer) == 0


@pytest.mark.asyncio
async def test_vessels_are_gated_independently(recording_store) -> None:
    handler, _, buffer = _pipeline(recording_store)

    await handler.handle(recording_store, position_envelope(mmsi=111111111, time_utc=T0_MS))
    await handler.handle(recording_store, position_envelope(mmsi=222222222, time_utc=T0_MS))

    assert [p.record["mmsi"] for p in buffer.pending()] == [111111111, 222222222]


@pytest.mark.asyncio
async def test_static_handler_upserts_report(recording_store) -> None:
    msg = {
        "MessageType": "ShipStaticData",
        "MetaData": {"MMSI": MMSI},
        "Message": {"ShipStaticData": {"Name": "NORDIC STAR", "Type": 80}},
    }

    await StaticDataHandler().handle(recording_store, msg)
    await StaticDataHandler().handle(recording_store, {"MessageType": "ShipStaticData"})

    assert len(recording_store.static) == 1
    assert recording_store.static[0]["ship_type_text"] == "Tanker"
