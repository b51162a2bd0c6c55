"""Static & voyage data (AIS types 5 and 24)."""
from __future__ import annotations

import logging
from typing import Any

from openships.services.storage import VesselStore
from openships.worker.messages import STATIC_MESSAGE_TYPES, decode_static

logger = logging.getLogger("openships.handlers.static")


class StaticDataHandler:
    message_types = STATIC_MESSAGE_TYPES

    async def handle(self, store: VesselStore, msg: dict[str, Any]) -> None:
        report = decode_static(msg)
        if report is None:
            logger.debug("Static frame without payload or MMSI dropped")
            return
        await store.upsert_static_report(report.row())
