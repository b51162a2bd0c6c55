"""Query API response schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class PositionOut(BaseModel):
    """Current-state row or one history row."""
    model_config = ConfigDict(from_attributes=True)

    mmsi: int
    ship_name: Optional[str] = None
    navigational_status: Optional[int] = None
    rot: Optional[float] = None
    sog: Optional[float] = None
    cog: Optional[float] = None
    true_heading: Optional[int] = None
    longitude: Optional[float] = None
    latitude: Optional[float] = None
    special_manoeuvre_indicator: Optional[int] = None
    timestamp: Optional[datetime] = None


class HistoryCountOut(BaseModel):
    mmsi: int
    count: int


class StatsOut(BaseModel):
    """Ingestion worker stats (published to Redis by the worker)."""
    status: str = "unknown"
    received: int = 0
    decode_errors: int = 0
    unhandled: int = 0
    dispatched: int = 0
    handler_errors: int = 0
    dropped: int = 0
    reconnects: int = 0
    history_enqueued: int = 0
    history_written: int = 0
    history_dropped: int = 0
    history_pending: int = 0
    cache_size: int = 0


class StaticReportOut(BaseModel):
    """Static vessel and voyage data."""
    model_config = ConfigDict(from_attributes=True)

    mmsi: int
    imo: Optional[int] = None
    call_sign: Optional[str] = None
    ship_name: Optional[str] = None
    destination: Optional[str] = None
    dimension_a: Optional[int] = None
    dimension_b: Optional[int] = None
    dimension_c: Optional[int] = None
    dimension_d: Optional[int] = None
    ship_type: Optional[int] = None
    ship_type_text: Optional[str] = None
    max_draught: Optional[float] = None
    eta: Optional[datetime] = None
    last_updated: Optional[datetime] = None
