from openships.worker.handlers.position import PositionHandler
from openships.worker.handlers.static import StaticDataHandler

__all__ = ["PositionHandler", "StaticDataHandler"]
