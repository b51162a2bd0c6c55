from openships.services.gate import Observation, haversine_m, should_retain
from openships.services.history_buffer import HistoryBuffer, PendingRecord
from openships.services.observation_cache import LastObservedCache
from openships.services.storage import SqlVesselStore, VesselStore

__all__ = [
    "HistoryBuffer",
    "LastObservedCache",
    "Observation",
    "PendingRecord",
    "SqlVesselStore",
    "VesselStore",
    "haversine_m",
    "should_retain",
]
