from __future__ import annotations

import asyncio

import pytest

from openships.services.history_buffer import HistoryBuffer


class Writer:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.calls: list[list[dict]] = []

    async def __call__(self, records):
        self.calls.append(list(records))
        if self.failures:
            self.failures -= 1
            raise ConnectionError("database unavailable")


def _rec(i: int) -> dict:
    return {"mmsi": i}


@pytest.mark.asyncio
async def test_push_beyond_max_drops_oldest() -> None:
    buffer = HistoryBuffer(Writer(), max_size=3)
    for i in range(5):
        await buffer.push(_rec(i))

    assert len(buffer) == 3
    assert [p.record["mmsi"] for p in buffer.pending()] == [2, 3, 4]
    assert buffer.dropped_overflow == 2


@pytest.mark.asyncio
async def test_flush_writes_at_most_max_batch_from_head() -> None:
    writer = Writer()
    buffer = HistoryBuffer(writer, max_batch=2)
    for i in range(5):
        await buffer.push(_rec(i))

    assert await buffer.flush() == 2
    assert writer.calls == [[_rec(0), _rec(1)]]
    assert len(buffer) == 3
    assert buffer.written == 2


@pytest.mark.asyncio
async def test_flush_on_empty_buffer_does_not_call_writer() -> None:
    writer = Writer()
    buffer = HistoryBuffer(writer)

    assert await buffer.flush() == 0
    assert writer.calls == []


@pytest.mark.asyncio
async def test_failed_batch_is_requeued_at_head_in_order() -> None:
    writer = Writer(failures=1)
    buffer = HistoryBuffer(writer, max_batch=2)
    for i in range(3):
        await buffer.push(_rec(i))

    assert await buffer.flush() == 0
    pending = buffer.pending()
    assert [p.record["mmsi"] for p in pending] == [0, 1, 2]
    assert [p.retries for p in pending] == [1, 1, 0]

    assert await buffer.flush() == 2
    assert writer.calls[-1] == [_rec(0), _rec(1)]


@pytest.mark.asyncio
async def test_record_dropped_after_retry_cap_exceeded() -> None:
    writer = Writer(failures=100)
    buffer = HistoryBuffer(writer, retry_cap=3)
    await buffer.push(_rec(1))

    for _ in range(4):
        await buffer.flush()

    assert len(writer.calls) == 4
    assert len(buffer) == 0
    assert buffer.dropped_retries == 1

    await buffer.flush()
    assert len(writer.calls) == 4


@pytest.mark.asyncio
async def test_overlapping_flush_is_skipped() -> None:
    release = asyncio.Event()
    calls = []

    async def slow_writer(records):
        calls.append(list(records))
        await release.wait()

    buffer = HistoryBuffer(slow_writer)
    await buffer.push(_rec(1))
    first = asyncio.create_task(buffer.flush())
    await asyncio.sleep(0)
    await buffer.push(_rec(2))

    assert await buffer.flush() == 0
    release.set()
    assert await first == 1
    assert len(calls) == 1
    assert len(buffer) == 1


@pytest.mark.asyncio
async def test_periodic_flush_and_final_drain_on_stop() -> None:
    writer = Writer()
    buffer = HistoryBuffer(writer, max_batch=2, flush_interval_ms=10)
    buffer.start()
    for i in range(3):
        await buffer.push(_rec(i))
    await asyncio.sleep(0.05)
    for i in range(3, 8):
        await buffer.push(_rec(i))

    await buffer.stop()

    written = [r["mmsi"] for call in writer.calls for r in call]
    assert written == list(range(8))
    assert len(buffer) == 0


@pytest.mark.asyncio
async def test_stop_final_flush_is_bounded_and_reports_lost_records(caplog) -> None:
    release = asyncio.Event()

    async def hanging_writer(records):
        await release.wait()

    buffer = HistoryBuffer(hanging_writer, shutdown_timeout_sec=0.05)
    await buffer.push(_rec(1))

    await asyncio.wait_for(buffer.stop(), timeout=1)

    assert "1 history records lost at shutdown" in caplog.text
    release.set()
    await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_stop_does_not_cancel_an_in_flight_write(caplog) -> None:
    state = {"started": False, "finished": False, "cancelled": False}

    async def slow_writer(records):
        state["started"] = True
        try:
            await asyncio.sleep(0.3)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        state["finished"] = True

    buffer = HistoryBuffer(slow_writer, flush_interval_ms=10, shutdown_timeout_sec=0.1)
    buffer.start()
    await buffer.push(_rec(1))
    while not state["started"]:
        await asyncio.sleep(0.005)

    loop = asyncio.get_running_loop()
    began = loop.time()
    await buffer.stop()
    elapsed = loop.time() - began

    assert elapsed < 0.25
    assert state["cancelled"] is False
    assert "1 history records lost at shutdown" in caplog.text

    await asyncio.sleep(0.35)
    assert state == {"started": True, "finished": True, "cancelled": False}
    assert buffer.written == 1
