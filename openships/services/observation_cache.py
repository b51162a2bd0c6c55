"""
Last-observed cache: MMSI -> most recent kept observation.

Lets the history gate decide without reading storage. A background cleaner
drops entries older than the TTL and trims the map to its size cap, so
vessels that are seen once and never again do not pile up.
"""
from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from openships.services.gate import Observation

logger = logging.getLogger("openships.cache")

Decision = Callable[[Observation | None, Observation], bool]


def _now_ms() -> int:
    return int(time.time() * 1000)


class LastObservedCache:
    def __init__(
        self,
        ttl_ms: int = 24 * 60 * 60 * 1000,
        max_size: int = 10_000,
        clean_interval_ms: int = 10 * 60 * 1000,
        clock: Callable[[], int] = _now_ms,
    ):
        self._ttl_ms = ttl_ms
        self._max_size = max_size
        self._clean_interval = clean_interval_ms / 1000.0
        self._clock = clock
        self._entries: dict[int, Observation] = {}
        self._lock = asyncio.Lock()
        self._task: asyncio.Task[Any] | None = None
        self._sweeping = False

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: int) -> Observation | None:
        return self._entries.get(key)

    async def admit(self, key: int, observation: Observation, decide: Decision) -> bool:
        """
        Gate and update in one step. A kept observation replaces the entry;
        a rejected one only advances the entry's time.

        Frames can arrive out of order. An observation older than the entry
        is still judged, but never moves the entry back in time.
        """
        async with self._lock:
            last = self._entries.get(key)
            keep = decide(last, observation)
            if last is not None and observation.ts_ms < last.ts_ms:
                return keep
            if keep:
                self._entries[key] = Observation(observation.lon, observation.lat, observation.ts_ms)
            elif last is not None:
                last.ts_ms = observation.ts_ms
            return keep

    async def invalidate_position(self, key: int, ts_ms: int) -> None:
        """Forget the coordinates of an existing entry after an invalid position."""
        async with self._lock:
            last = self._entries.get(key)
            if last is not None and ts_ms >= last.ts_ms:
                last.lon = None
                last.lat = None
                last.ts_ms = ts_ms

    async def touch(self, key: int, ts_ms: int | None = None) -> None:
        async with self._lock:
            last = self._entries.get(key)
            if last is not None:
                ts_ms = self._clock() if ts_ms is None else ts_ms
                last.ts_ms = max(last.ts_ms, ts_ms)

    async def sweep(self, now_ms: int | None = None) -> int:
        """Evict expired entries, then the oldest ones beyond the size cap."""
        now_ms = self._clock() if now_ms is None else now_ms
        async with self._lock:
            cutoff = now_ms - self._ttl_ms
            expired = [k for k, v in self._entries.items() if v.ts_ms < cutoff]
            for key in expired:
                del self._entries[key]
            overflow = len(self._entries) - self._max_size
            evicted = 0
            if overflow > 0:
                oldest = sorted(self._entries, key=lambda k: self._entries[k].ts_ms)[:overflow]
                for key in oldest:
                    del self._entries[key]
                evicted = len(oldest)
        if expired or evicted:
            logger.debug(
                "cache sweep: %d expired, %d evicted, %d remain",
                len(expired), evicted, len(self._entries),
            )
        return len(expired) + evicted

    async def _clean_loop(self) -> None:
        while True:
            await asyncio.sleep(self._clean_interval)
            if self._sweeping:
                continue
            self._sweeping = True
            try:
                await self.sweep()
            except Exception as exc:
                logger.warning("cache sweep error: %s", exc)
            finally:
                self._sweeping = False

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._clean_loop(), name="cache-cleaner")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
