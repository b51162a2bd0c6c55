from sqlalchemy import Column, BigInteger, Integer, SmallInteger, Float, Text, DateTime, Index
from sqlalchemy.orm import DeclarativeBase

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_HistoryId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    pass


class CurrentPosition(Base):
    """
    Latest known state per vessel: one row per MMSI, upserted on every
    position report. Replaced only by observations with a newer event time.
    """
    __tablename__ = "current_positions"

    mmsi = Column(BigInteger, primary_key=True, autoincrement=False)
    ship_name = Column(Text)
    navigational_status = Column(SmallInteger)
    rot = Column(Float)
    sog = Column(Float)
    cog = Column(Float)
    true_heading = Column(SmallInteger)
    longitude = Column(Float)
    latitude = Column(Float)
    special_manoeuvre_indicator = Column(SmallInteger)
    timestamp = Column(DateTime(timezone=True))


class PositionHistory(Base):
    """
    Deduplicated position trail, append-only. A row is written only when the
    vessel moved at least MIN_DISTANCE_METERS or MIN_TIME_DIFF_MS elapsed.
    """
    __tablename__ = "position_history"

    id = Column(_HistoryId, primary_key=True, autoincrement=True)
    mmsi = Column(BigInteger, nullable=False)
    navigational_status = Column(SmallInteger)
    rot = Column(Float)
    sog = Column(Float)
    cog = Column(Float)
    true_heading = Column(SmallInteger)
    longitude = Column(Float, nullable=False)
    latitude = Column(Float, nullable=False)
    special_manoeuvre_indicator = Column(SmallInteger)
    timestamp = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_history_mmsi_time", "mmsi", "timestamp"),)


class StaticReport(Base):
    """Static & voyage data, upserted on ShipStaticData / StaticDataReport."""
    __tablename__ = "static_reports"

    mmsi = Column(BigInteger, primary_key=True, autoincrement=False)
    imo = Column(BigInteger)
    call_sign = Column(Text)
    ship_name = Column(Text)
    destination = Column(Text)
    dimension_a = Column(SmallInteger)
    dimension_b = Column(SmallInteger)
    dimension_c = Column(SmallInteger)
    dimension_d = Column(SmallInteger)
    ship_type = Column(SmallInteger)
    ship_type_text = Column(Text)
    max_draught = Column(Float)
    eta = Column(DateTime(timezone=True))
    last_updated = Column(DateTime(timezone=True))
