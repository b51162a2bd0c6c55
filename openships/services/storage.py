"""
Storage facade used by the ingestion pipeline.

Writes go through SQLAlchemy Core upserts so the same statements run on
PostgreSQL (production) and SQLite (tests).
"""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from sqlalchemy import and_, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from openships.db.models import CurrentPosition, PositionHistory, StaticReport

logger = logging.getLogger("openships.storage")

Row = Mapping[str, Any]

_CURRENT_FIELDS = (
    "navigational_status",
    "rot",
    "sog",
    "cog",
    "true_heading",
    "special_manoeuvre_indicator",
    "timestamp",
)
# A null arriving value keeps the stored one.
_CURRENT_COALESCED = ("ship_name", "longitude", "latitude")

_STATIC_FIELDS = (
    "imo",
    "call_sign",
    "ship_name",
    "destination",
    "dimension_a",
    "dimension_b",
    "dimension_c",
    "dimension_d",
    "ship_type",
    "ship_type_text",
    "max_draught",
    "eta",
    "last_updated",
)


class VesselStore(Protocol):
    async def upsert_current_state(self, record: Row) -> None: ...

    async def insert_history_batch(self, records: Sequence[Row]) -> None: ...

    async def upsert_static_report(self, record: Row) -> None: ...


def _insert_for(session: AsyncSession):
    name = session.bind.dialect.name
    if name == "postgresql":
        return postgresql.insert
    if name == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"upserts are not supported on {name}")


class SqlVesselStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    async def upsert_current_state(self, record: Row) -> None:
        """
        Last writer wins by event time: the stored row is replaced only when it
        has no timestamp yet or the arriving timestamp is strictly newer.
        """
        async with self._sessionmaker() as s:
            insert = _insert_for(s)
            stmt = insert(CurrentPosition).values(dict(record))
            excluded = stmt.excluded
            set_ = {k: getattr(excluded, k) for k in _CURRENT_FIELDS}
            set_.update(
                {
                    k: func.coalesce(getattr(excluded, k), getattr(CurrentPosition, k))
                    for k in _CURRENT_COALESCED
                }
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["mmsi"],
                set_=set_,
                where=or_(
                    CurrentPosition.timestamp.is_(None),
                    and_(
                        excluded.timestamp.is_not(None),
                        excluded.timestamp > CurrentPosition.timestamp,
                    ),
                ),
            )
            await s.execute(stmt)
            await s.commit()

    async def insert_history_batch(self, records: Sequence[Row]) -> None:
        if not records:
            return
        async with self._sessionmaker() as s:
            insert = _insert_for(s)
            await s.execute(insert(PositionHistory).values([dict(r) for r in records]))
            await s.commit()
        logger.debug("history insert: %d rows", len(records))

    async def upsert_static_report(self, record: Row) -> None:
        async with self._sessionmaker() as s:
            insert = _insert_for(s)
            stmt = insert(StaticReport).values(dict(record))
            stmt = stmt.on_conflict_do_update(
                index_elements=["mmsi"],
                set_={
                    k: func.coalesce(getattr(stmt.excluded, k), getattr(StaticReport, k))
                    for k in _STATIC_FIELDS
                },
            )
            await s.execute(stmt)
            await s.commit()
