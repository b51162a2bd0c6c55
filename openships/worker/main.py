"""
AIS ingestion worker.

- Connects to AISstream (global bbox by default) and reconnects with backoff.
- Dispatches each envelope to its handler without blocking the socket.
- Upserts current vessel state; keeps a deduplicated position history that is
  written in batches by a periodic flusher.
- Without storage credentials the stream still runs but nothing is written.
"""
import asyncio
import logging
import signal
import sys
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from openships.core.config import Settings, settings as default_settings
from openships.db.database import create_engine, ensure_schema
from openships.services.history_buffer import HistoryBuffer
from openships.services.observation_cache import LastObservedCache
from openships.services.redis_client import close_redis, write_stats
from openships.services.storage import SqlVesselStore, VesselStore
from openships.worker.dispatcher import MessageDispatcher, build_registry
from openships.worker.handlers import PositionHandler, StaticDataHandler
from openships.worker.stream import Backoff, ConnectionManager

logger = logging.getLogger("openships.worker")


class ConfigurationError(Exception):
    """Raised when a required setting is missing; the process cannot start."""


class IngestionWorker:
    def __init__(
        self,
        settings: Settings = default_settings,
        store: VesselStore | None = None,
        engine: AsyncEngine | None = None,
    ):
        self._settings = settings
        self._engine = engine
        self._owns_engine = False
        self._store = store
        self.stats: dict[str, Any] = {
            "status": "stopped",
            "received": 0,
            "decode_errors": 0,
            "unhandled": 0,
            "dispatched": 0,
            "handler_errors": 0,
            "dropped": 0,
            "reconnects": 0,
            "history_enqueued": 0,
            "history_written": 0,
            "history_dropped": 0,
            "history_pending": 0,
            "cache_size": 0,
        }
        self.cache = LastObservedCache(
            ttl_ms=settings.CACHE_TTL_MS,
            max_size=settings.CACHE_MAX_SIZE,
            clean_interval_ms=settings.CACHE_CLEAN_INTERVAL_MS,
        )
        self.buffer: HistoryBuffer | None = None
        self.position_handler: PositionHandler | None = None
        self.dispatcher: MessageDispatcher | None = None
        self.connection: ConnectionManager | None = None
        self._inflight: set[asyncio.Task[Any]] = set()
        self._tasks: set[asyncio.Task[Any]] = set()

    def _spawn(self, coro: Any, name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _open_store(self) -> None:
        if self._store is not None:
            return
        if self._engine is None:
            url = self._settings.database_url
            if url is None:
                logger.warning("DB_USER/DB_PSWD not set; database writes are disabled.")
                return
            self._engine = create_engine(url)
            self._owns_engine = True
        try:
            await ensure_schema(self._engine)
        except Exception as exc:
            # Tables may already exist under a role without DDL rights.
            logger.warning("schema check failed: %s", exc)
        self._store = SqlVesselStore(async_sessionmaker(self._engine, expire_on_commit=False))

    def _build_dispatcher(self) -> MessageDispatcher:
        s = self._settings
        handlers = []
        if self._store is not None:
            self.buffer = HistoryBuffer(
                self._store.insert_history_batch,
                max_size=s.HISTORY_BUFFER_MAX,
                max_batch=s.HISTORY_MAX_BATCH,
                flush_interval_ms=s.HISTORY_FLUSH_INTERVAL_MS,
                retry_cap=s.HISTORY_RETRY_CAP,
                shutdown_timeout_sec=s.HISTORY_SHUTDOWN_FLUSH_TIMEOUT_SEC,
            )
            self.position_handler = PositionHandler(
                self.cache,
                self.buffer,
                min_distance_m=s.MIN_DISTANCE_METERS,
                min_time_diff_ms=s.MIN_TIME_DIFF_MS,
            )
            handlers = [self.position_handler, StaticDataHandler()]
        dispatcher = MessageDispatcher(build_registry(handlers), self._store)
        logger.info("Loaded message handlers: %s", dispatcher.registered_types)
        return dispatcher

    async def start(self) -> None:
        s = self._settings
        if not s.AISSTREAM_API_KEY.strip():
            self.stats["status"] = "auth error (missing AISSTREAM_API_KEY)"
            raise ConfigurationError(
                "AISSTREAM_API_KEY is not set. Set it in your .env or environment and rerun."
            )
        await self._open_store()
        self.dispatcher = self._build_dispatcher()
        self.connection = ConnectionManager(
            s.AISSTREAM_WS_URL,
            s.AISSTREAM_API_KEY.strip(),
            self.submit,
            bounding_boxes=s.bounding_boxes(),
            filter_message_types=s.FILTER_MESSAGE_TYPES,
            backoff=Backoff(
                floor=s.RECONNECT_MIN_DELAY_MS / 1000.0,
                cap=s.RECONNECT_MAX_DELAY_MS / 1000.0,
                jitter=s.RECONNECT_JITTER_MS / 1000.0,
            ),
            grace_sec=s.SHUTDOWN_GRACE_SEC,
        )
        self.cache.start()
        if self.buffer is not None:
            self.buffer.start()
        self._spawn(self._stats_loop(), "ais-stats")
        self._spawn(self.connection.run(), "ais-ws")
        self.stats["status"] = "streaming"
        logger.info("AIS worker started")

    def submit(self, msg: dict[str, Any]) -> None:
        """Schedule a dispatch for one envelope; never blocks the receive loop."""
        if len(self._inflight) >= self._settings.MAX_INFLIGHT_HANDLERS:
            self.stats["dropped"] += 1
            return
        task = asyncio.create_task(self.dispatcher.dispatch(msg))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    def snapshot(self) -> dict[str, Any]:
        stats = self.stats
        if self.connection is not None:
            stats["received"] = self.connection.received
            stats["decode_errors"] = self.connection.decode_errors
            stats["reconnects"] = self.connection.reconnects
            if self.stats["status"] != "stopped":
                stats["status"] = self.connection.state.value
        if self.dispatcher is not None:
            stats["unhandled"] = self.dispatcher.unhandled
            stats["dispatched"] = self.dispatcher.dispatched
            stats["handler_errors"] = self.dispatcher.errors
        if self.position_handler is not None:
            stats["history_enqueued"] = self.position_handler.enqueued
        if self.buffer is not None:
            stats["history_written"] = self.buffer.written
            stats["history_dropped"] = self.buffer.dropped
            stats["history_pending"] = len(self.buffer)
        stats["cache_size"] = len(self.cache)
        return dict(stats)

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.STATS_INTERVAL_SEC)
            try:
                await write_stats(self.snapshot())
            except Exception as exc:
                logger.debug("stats write error: %s", exc)

    async def stop(self) -> None:
        s = self._settings
        if self.connection is not None:
            await self.connection.shutdown()
        if self._inflight:
            _, pending = await asyncio.wait(
                set(self._inflight), timeout=s.HISTORY_SHUTDOWN_FLUSH_TIMEOUT_SEC
            )
            if pending:
                logger.warning("%d handler invocations still running at shutdown", len(pending))
        if self.buffer is not None:
            await self.buffer.stop()
        await self.cache.stop()
        for t in list(self._tasks):
            t.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self.stats["status"] = "stopped"
        try:
            await write_stats(self.snapshot())
        except Exception as exc:
            logger.debug("stats write error: %s", exc)
        await close_redis()
        if self._owns_engine and self._engine is not None:
            await self._engine.dispose()
        logger.info("AIS worker stopped")


async def run_worker(settings: Settings = default_settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    worker = IngestionWorker(settings)
    await worker.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    try:
        await stop.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await worker.stop()


def main() -> None:
    try:
        asyncio.run(run_worker())
    except ConfigurationError as exc:
        logging.getLogger("openships.worker").error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
