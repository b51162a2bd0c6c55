from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from openships.db.database import ensure_schema
from openships.services.storage import SqlVesselStore

MMSI = 123456789
T0_MS = 1_700_000_000_000


class RecordingStore:
    """In-memory VesselStore that remembers every call."""

    def __init__(self) -> None:
        self.current: list[dict[str, Any]] = []
        self.history: list[dict[str, Any]] = []
        self.static: list[dict[str, Any]] = []

    async def upsert_current_state(self, record: dict[str, Any]) -> None:
        self.current.append(dict(record))

    async def insert_history_batch(self, records: Sequence[dict[str, Any]]) -> None:
        self.history.extend(dict(r) for r in records)

    async def upsert_static_report(self, record: dict[str, Any]) -> None:
        self.static.append(dict(record))


def position_envelope(
    mmsi: Any = MMSI,
    lat: Any = 10.0,
    lon: Any = 20.0,
    time_utc: Any = T0_MS,
    message_type: str = "PositionReport",
    **fields: Any,
) -> dict[str, Any]:
    payload = {
        "UserID": mmsi,
        "Latitude": lat,
        "Longitude": lon,
        "Sog": 12.3,
        "Cog": 181.5,
        "TrueHeading": 180,
        "NavigationalStatus": 0,
        "RateOfTurn": 0,
        "SpecialManoeuvreIndicator": 0,
        **fields,
    }
    return {
        "MessageType": message_type,
        "MetaData": {
            "MMSI": mmsi,
            "ShipName": "NORDIC STAR   ",
            "latitude": lat,
            "longitude": lon,
            "time_utc": time_utc,
        },
        "Message": {message_type: payload},
    }


@pytest.fixture
def recording_store() -> RecordingStore:
    return RecordingStore()


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'vessels.db'}")
    await ensure_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def store(sessionmaker) -> SqlVesselStore:
    return SqlVesselStore(sessionmaker)
