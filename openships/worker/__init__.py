from openships.worker.dispatcher import DuplicateMessageType, MessageDispatcher, build_registry
from openships.worker.stream import Backoff, ConnectionManager, ConnectionState, StreamSubscriptionError

__all__ = [
    "Backoff",
    "ConnectionManager",
    "ConnectionState",
    "DuplicateMessageType",
    "MessageDispatcher",
    "StreamSubscriptionError",
    "build_registry",
]
