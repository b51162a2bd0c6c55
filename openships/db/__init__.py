from openships.db.database import create_engine, dispose_engine, ensure_schema, get_db, get_sessionmaker
from openships.db.models import Base, CurrentPosition, PositionHistory, StaticReport

__all__ = [
    "create_engine",
    "dispose_engine",
    "ensure_schema",
    "get_db",
    "get_sessionmaker",
    "Base",
    "CurrentPosition",
    "PositionHistory",
    "StaticReport",
]
