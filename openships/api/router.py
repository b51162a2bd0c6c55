"""
Read-only query API over the stored vessel data.

- GET /vessels/position/all             current positions, bbox / ship type filter
- GET /vessels/position/{mmsi}          current state of one vessel
- GET /vessels/history/{mmsi}           position trail (limit, order, time window)
- GET /vessels/history/{mmsi}/count     number of history rows
- GET /vessels/history/{mmsi}/latest    most recent history row
- GET /vessels/{mmsi}                   static/voyage data
- GET /stats                            ingestion worker stats (from Redis)
"""
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from openships.db.database import get_db
from openships.db.models import CurrentPosition, PositionHistory, StaticReport
from openships.db.schemas import HistoryCountOut, PositionOut, StaticReportOut, StatsOut
from openships.services.redis_client import read_stats

router = APIRouter()
logger = logging.getLogger("openships.api")


def _require(session: Optional[AsyncSession]) -> AsyncSession:
    if session is None:
        raise HTTPException(status_code=503, detail="Storage is not configured")
    return session


@router.get("/vessels/position/all", response_model=list[PositionOut])
async def all_positions(
    min_lon: Optional[float] = Query(None, ge=-180, le=180),
    max_lon: Optional[float] = Query(None, ge=-180, le=180),
    min_lat: Optional[float] = Query(None, ge=-90, le=90),
    max_lat: Optional[float] = Query(None, ge=-90, le=90),
    type: Optional[int] = Query(None, description="AIS ship type code"),
    limit: int = Query(5000, ge=0, description="0 for unlimited"),
    session: Optional[AsyncSession] = Depends(get_db),
):
    """Current vessel positions, optionally inside a bounding box and of one ship type."""
    session = _require(session)
    stmt = select(CurrentPosition)
    if min_lon is not None:
        stmt = stmt.where(CurrentPosition.longitude >= min_lon)
    if max_lon is not None:
        stmt = stmt.where(CurrentPosition.longitude <= max_lon)
    if min_lat is not None:
        stmt = stmt.where(CurrentPosition.latitude >= min_lat)
    if max_lat is not None:
        stmt = stmt.where(CurrentPosition.latitude <= max_lat)
    if type is not None:
        stmt = stmt.join(StaticReport, StaticReport.mmsi == CurrentPosition.mmsi).where(
            StaticReport.ship_type == type
        )
    stmt = stmt.order_by(CurrentPosition.mmsi)
    if limit:
        stmt = stmt.limit(limit)
    rows = (await session.execute(stmt)).scalars().all()
    return [PositionOut.model_validate(r) for r in rows]


@router.get("/vessels/position/{mmsi}", response_model=PositionOut)
async def current_position(mmsi: int, session: Optional[AsyncSession] = Depends(get_db)):
    session = _require(session)
    row = await session.get(CurrentPosition, mmsi)
    if row is None:
        raise HTTPException(status_code=404, detail="Vessel not found")
    return PositionOut.model_validate(row)


@router.get("/vessels/history/{mmsi}", response_model=list[PositionOut])
async def position_history(
    mmsi: int,
    limit: int = Query(1000, ge=0, description="0 for unlimited"),
    order: Literal["asc", "desc"] = "asc",
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    session: Optional[AsyncSession] = Depends(get_db),
):
    """Position trail of one vessel, ordered by observation time."""
    session = _require(session)
    stmt = select(PositionHistory).where(PositionHistory.mmsi == mmsi)
    if start is not None:
        stmt = stmt.where(PositionHistory.timestamp >= start)
    if end is not None:
        stmt = stmt.where(PositionHistory.timestamp <= end)
    ts = PositionHistory.timestamp
    stmt = stmt.order_by(ts.desc() if order == "desc" else ts.asc(), PositionHistory.id)
    if limit:
        stmt = stmt.limit(limit)
    rows = (await session.execute(stmt)).scalars().all()
    return [PositionOut.model_validate(r) for r in rows]


@router.get("/vessels/history/{mmsi}/count", response_model=HistoryCountOut)
async def history_count(mmsi: int, session: Optional[AsyncSession] = Depends(get_db)):
    session = _require(session)
    count = await session.scalar(
        select(func.count()).select_from(PositionHistory).where(PositionHistory.mmsi == mmsi)
    )
    return HistoryCountOut(mmsi=mmsi, count=count or 0)


@router.get("/vessels/history/{mmsi}/latest", response_model=PositionOut)
async def history_latest(mmsi: int, session: Optional[AsyncSession] = Depends(get_db)):
    session = _require(session)
    row = await session.scalar(
        select(PositionHistory)
        .where(PositionHistory.mmsi == mmsi)
        .order_by(PositionHistory.timestamp.desc(), PositionHistory.id.desc())
        .limit(1)
    )
    if row is None:
        raise HTTPException(status_code=404, detail="No position history found for this MMSI")
    return PositionOut.model_validate(row)


@router.get("/vessels/{mmsi}", response_model=StaticReportOut, summary="Static vessel details by MMSI")
async def vessel_by_mmsi(mmsi: int, session: Optional[AsyncSession] = Depends(get_db)):
    session = _require(session)
    row = await session.get(StaticReport, mmsi)
    if row is None:
        raise HTTPException(status_code=404, detail="Vessel not found")
    return StaticReportOut.model_validate(row)


@router.get("/stats", response_model=StatsOut)
async def stats():
    """Worker stats as last published to Redis; defaults when unavailable."""
    try:
        data = await read_stats()
    except Exception as exc:
        logger.warning("stats read failed: %s", exc)
        data = None
    return StatsOut(**(data or {}))
