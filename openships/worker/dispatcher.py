"""
Routes decoded envelopes to handlers by their ``MessageType`` label.

The registry is built once at startup; a handler may claim several labels
(the three wire variants of a position report share one handler).
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, Protocol

from openships.services.storage import VesselStore
from openships.worker.messages import extract_mmsi

logger = logging.getLogger("openships.dispatch")


class DuplicateMessageType(ValueError):
    """Raised when two handlers claim the same message type label."""


class MessageHandler(Protocol):
    message_types: tuple[str, ...]

    async def handle(self, store: VesselStore, msg: dict[str, Any]) -> None: ...


def build_registry(handlers: Iterable[MessageHandler]) -> Mapping[str, MessageHandler]:
    registry: dict[str, MessageHandler] = {}
    for handler in handlers:
        for label in handler.message_types:
            if label in registry:
                raise DuplicateMessageType(
                    f"{label!r} claimed by {type(registry[label]).__name__} "
                    f"and {type(handler).__name__}"
                )
            registry[label] = handler
    return MappingProxyType(registry)


class MessageDispatcher:
    def __init__(self, registry: Mapping[str, MessageHandler], store: VesselStore | None):
        self._registry = registry
        self._store = store
        self.dispatched = 0
        self.unhandled = 0
        self.errors = 0

    @property
    def registered_types(self) -> list[str]:
        return sorted(self._registry)

    async def dispatch(self, msg: dict[str, Any]) -> bool:
        """Run the handler for ``msg``; False when none ran or it failed."""
        label = msg.get("MessageType")
        handler = self._registry.get(label) if isinstance(label, str) else None
        if handler is None:
            self.unhandled += 1
            logger.debug("Unhandled message type: %r", label)
            return False
        try:
            await handler.handle(self._store, msg)
        except Exception:
            self.errors += 1
            logger.exception("Handler error for %s (MMSI %s)", label, extract_mmsi(msg))
            return False
        self.dispatched += 1
        return True
