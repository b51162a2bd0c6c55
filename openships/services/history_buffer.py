"""
Batch write buffer for position history.

Handlers push records; a periodic flusher writes them with one multi-row
insert per cycle. Failed batches go back to the head of the queue until a
record exceeds its retry cap, then it is dropped. The queue is bounded and
sheds its oldest record when full.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("openships.history")

HistoryRecord = dict[str, Any]
BatchWriter = Callable[[Sequence[HistoryRecord]], Awaitable[Any]]


@dataclass(slots=True)
class PendingRecord:
    record: HistoryRecord
    retries: int = 0


class HistoryBuffer:
    def __init__(
        self,
        writer: BatchWriter,
        max_size: int = 5000,
        max_batch: int = 500,
        flush_interval_ms: int = 1000,
        retry_cap: int = 3,
        shutdown_timeout_sec: float = 2.0,
    ):
        if max_size < 1 or max_batch < 1:
            raise ValueError("max_size and max_batch must be positive")
        self._writer = writer
        self._max_size = max_size
        self._max_batch = max_batch
        self._interval = flush_interval_ms / 1000.0
        self._retry_cap = retry_cap
        self._shutdown_timeout = shutdown_timeout_sec
        self._queue: deque[PendingRecord] = deque()
        self._lock = asyncio.Lock()
        self._flushing = False
        self._inflight: list[PendingRecord] = []
        self._stopping = asyncio.Event()
        self._task: asyncio.Task[Any] | None = None

        self.written = 0
        self.dropped_overflow = 0
        self.dropped_retries = 0
        self.failed_flushes = 0

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def dropped(self) -> int:
        return self.dropped_overflow + self.dropped_retries

    def pending(self) -> list[PendingRecord]:
        return list(self._queue)

    def _shed_oldest(self) -> None:
        while len(self._queue) > self._max_size:
            dropped = self._queue.popleft()
            self.dropped_overflow += 1
            logger.warning(
                "history buffer full (%d): dropped oldest record for MMSI %s",
                self._max_size, dropped.record.get("mmsi"),
            )

    async def push(self, record: HistoryRecord) -> None:
        async with self._lock:
            self._queue.append(PendingRecord(record))
            self._shed_oldest()

    async def flush(self) -> int:
        """
        Write one batch from the head of the queue. Returns the number of rows
        written; 0 when empty, on failure, or when a flush is already running.
        """
        if self._flushing:
            return 0
        self._flushing = True
        try:
            async with self._lock:
                n = min(self._max_batch, len(self._queue))
                batch = [self._queue.popleft() for _ in range(n)]
            if not batch:
                return 0
            self._inflight = batch
            try:
                await self._writer([p.record for p in batch])
            except Exception as exc:
                self.failed_flushes += 1
                await self._requeue(batch, exc)
                return 0
            self.written += len(batch)
            logger.debug("history flush: %d rows", len(batch))
            return len(batch)
        finally:
            self._inflight = []
            self._flushing = False

    async def _requeue(self, batch: list[PendingRecord], exc: Exception) -> None:
        retry: list[PendingRecord] = []
        for pending in batch:
            pending.retries += 1
            if pending.retries <= self._retry_cap:
                retry.append(pending)
            else:
                self.dropped_retries += 1
                logger.warning(
                    "history record for MMSI %s dropped after %d failed writes",
                    pending.record.get("mmsi"), pending.retries,
                )
        logger.warning(
            "history flush of %d rows failed (%s); %d requeued",
            len(batch), exc, len(retry),
        )
        async with self._lock:
            self._queue.extendleft(reversed(retry))
            self._shed_oldest()

    async def _flush_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.flush()

    def start(self) -> None:
        if self._task is None:
            self._stopping.clear()
            self._task = asyncio.create_task(self._flush_loop(), name="history-flush")

    async def drain(self) -> None:
        """Flush until empty or until a flush makes no progress."""
        while self._queue:
            if not await self.flush():
                break

    async def stop(self) -> None:
        """
        Stop the periodic flusher, then write what is still queued, batch by
        batch, until the queue is empty or the shutdown deadline passes.

        Writes are never cancelled. A write still running at the deadline is
        left to finish on its own and its records are reported as lost.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._shutdown_timeout
        self._stopping.set()
        task, self._task = self._task, None
        if task is not None:
            _, running = await asyncio.wait({task}, timeout=self._shutdown_timeout)
            if running:
                logger.warning("history flusher still writing at shutdown deadline")
        while self._queue and not self._flushing:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning("final history flush timed out")
                break
            write = asyncio.ensure_future(self.flush())
            done, _ = await asyncio.wait({write}, timeout=remaining)
            if not done:
                logger.warning("final history flush timed out")
                break
            if not write.result():
                break
        lost = len(self._queue) + len(self._inflight)
        if lost:
            logger.warning(
                "%d history records lost at shutdown (%d queued, %d in an unfinished write)",
                lost, len(self._queue), len(self._inflight),
            )
