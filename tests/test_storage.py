from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import MMSI
from openships.db.models import CurrentPosition, PositionHistory, StaticReport

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _state(**overrides):
    row = {
        "mmsi": MMSI,
        "ship_name": "NORDIC STAR",
        "navigational_status": 0,
        "rot": 0.0,
        "sog": 12.3,
        "cog": 181.5,
        "true_heading": 180,
        "longitude": 20.0,
        "latitude": 10.0,
        "special_manoeuvre_indicator": 0,
        "timestamp": T0,
    }
    row.update(overrides)
    return row


async def _current(sessionmaker):
    async with sessionmaker() as s:
        return (await s.execute(select(CurrentPosition))).scalars().all()


@pytest.mark.asyncio
async def test_identical_upsert_is_idempotent(store, sessionmaker) -> None:
    await store.upsert_current_state(_state())
    await store.upsert_current_state(_state())

    rows = await _current(sessionmaker)
    assert len(rows) == 1
    assert (rows[0].sog, rows[0].longitude, rows[0].ship_name) == (12.3, 20.0, "NORDIC STAR")


@pytest.mark.asyncio
async def test_older_observation_does_not_replace_newer(store, sessionmaker) -> None:
    await store.upsert_current_state(_state(sog=5.0))
    await store.upsert_current_state(_state(sog=1.0, timestamp=T0 - timedelta(seconds=30)))

    rows = await _current(sessionmaker)
    assert rows[0].sog == 5.0


@pytest.mark.asyncio
async def test_newer_observation_replaces(store, sessionmaker) -> None:
    await store.upsert_current_state(_state(sog=5.0))
    await store.upsert_current_state(_state(sog=7.5, timestamp=T0 + timedelta(seconds=30)))

    rows = await _current(sessionmaker)
    assert rows[0].sog == 7.5


@pytest.mark.asyncio
async def test_missing_coordinates_keep_stored_position(store, sessionmaker) -> None:
    await store.upsert_current_state(_state())
    await store.upsert_current_state(
        _state(
            longitude=None,
            latitude=None,
            ship_name=None,
            navigational_status=5,
            timestamp=T0 + timedelta(minutes=1),
        )
    )

    row = (await _current(sessionmaker))[0]
    assert (row.longitude, row.latitude) == (20.0, 10.0)
    assert row.ship_name == "NORDIC STAR"
    assert row.navigational_status == 5


@pytest.mark.asyncio
async def test_row_without_timestamp_is_replaced_by_any_observation(store, sessionmaker) -> None:
    await store.upsert_current_state(_state(timestamp=None, sog=1.0))
    await store.upsert_current_state(_state(sog=2.0))
    await store.upsert_current_state(_state(timestamp=None, sog=3.0))

    row = (await _current(sessionmaker))[0]
    assert row.sog == 2.0


@pytest.mark.asyncio
async def test_history_batch_inserts_all_rows(store, sessionmaker) -> None:
    rows = [
        {k: v for k, v in _state(timestamp=T0 + timedelta(minutes=i)).items() if k != "ship_name"}
        for i in range(3)
    ]
    await store.insert_history_batch(rows)
    await store.insert_history_batch([])

    async with sessionmaker() as s:
        stored = (
            await s.execute(select(PositionHistory).order_by(PositionHistory.id))
        ).scalars().all()
    assert len(stored) == 3
    assert len({r.id for r in stored}) == 3
    assert all(r.mmsi == MMSI for r in stored)


@pytest.mark.asyncio
async def test_static_report_upsert_keeps_known_fields(store, sessionmaker) -> None:
    base = {
        "mmsi": MMSI,
        "imo": None,
        "call_sign": None,
        "ship_name": "SEA BREEZE",
        "destination": None,
        "dimension_a": None,
        "dimension_b": None,
        "dimension_c": None,
        "dimension_d": None,
        "ship_type": None,
        "ship_type_text": None,
        "max_draught": None,
        "eta": None,
        "last_updated": None,
    }
    await store.upsert_static_report(base)
    await store.upsert_static_report({**base, "ship_name": None, "ship_type": 37})

    async with sessionmaker() as s:
        row = await s.get(StaticReport, MMSI)
    assert row.ship_name == "SEA BREEZE"
    assert row.ship_type == 37
