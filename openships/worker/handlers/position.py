"""Position reports (AIS types 1-3, 18, 19): current state plus deduplicated history."""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from functools import partial
from typing import Any

from openships.services.gate import MIN_DISTANCE_METERS, MIN_TIME_DIFF_MS, Observation, should_retain
from openships.services.history_buffer import HistoryBuffer
from openships.services.observation_cache import LastObservedCache
from openships.services.storage import VesselStore
from openships.worker.messages import POSITION_MESSAGE_TYPES, decode_position, to_epoch_ms

logger = logging.getLogger("openships.handlers.position")


def _now_ms() -> int:
    return int(time.time() * 1000)


class PositionHandler:
    message_types = POSITION_MESSAGE_TYPES

    def __init__(
        self,
        cache: LastObservedCache,
        buffer: HistoryBuffer,
        min_distance_m: float = MIN_DISTANCE_METERS,
        min_time_diff_ms: int = MIN_TIME_DIFF_MS,
        clock: Callable[[], int] = _now_ms,
    ):
        self._cache = cache
        self._buffer = buffer
        self._decide = partial(
            should_retain,
            min_distance_m=min_distance_m,
            min_time_diff_ms=min_time_diff_ms,
        )
        self._clock = clock
        self.enqueued = 0

    async def handle(self, store: VesselStore, msg: dict[str, Any]) -> None:
        report = decode_position(msg)
        if report is None:
            logger.debug("Position frame without payload or MMSI dropped")
            return

        await store.upsert_current_state(report.current_state())

        ts_ms = None if report.timestamp is None else to_epoch_ms(report.timestamp)
        if not report.position_valid:
            await self._cache.invalidate_position(
                report.mmsi, self._clock() if ts_ms is None else ts_ms
            )
            return
        if ts_ms is None:
            # No event time: nothing goes to history, only cache bookkeeping.
            await self._cache.touch(report.mmsi, self._clock())
            return

        observation = Observation(report.longitude, report.latitude, ts_ms)
        if await self._cache.admit(report.mmsi, observation, self._decide):
            await self._buffer.push(report.history_record())
            self.enqueued += 1
