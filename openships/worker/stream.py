"""
AISstream connection manager.

Keeps at most one websocket open, subscribes once per connection, hands every
decoded envelope to a callback and reconnects with exponential backoff plus
jitter until shutdown is requested.
"""
from __future__ import annotations

import asyncio
import enum
import json
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any

import websockets

from openships.worker.messages import decode_frame, extract_stream_error

logger = logging.getLogger("openships.stream")

EnvelopeCallback = Callable[[dict[str, Any]], None]


class StreamSubscriptionError(Exception):
    """Raised when AISStream returns a subscription/authentication error."""


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    ERROR = "error"
    SHUTDOWN = "shutdown"


class Backoff:
    """Doubling delay between ``floor`` and ``cap`` seconds, plus U(0, jitter)."""

    def __init__(
        self,
        floor: float = 1.0,
        cap: float = 60.0,
        jitter: float = 0.3,
        rng: random.Random | None = None,
    ):
        self.floor = floor
        self.cap = cap
        self.jitter = jitter
        self.current = floor
        self._rng = rng or random.Random()

    def next_delay(self) -> float:
        delay = self.current + self._rng.uniform(0, self.jitter)
        self.current = min(self.current * 2, self.cap)
        return delay

    def reset(self) -> None:
        self.current = self.floor

    def exhaust(self) -> None:
        self.current = self.cap


class ConnectionManager:
    def __init__(
        self,
        url: str,
        api_key: str,
        on_envelope: EnvelopeCallback,
        *,
        bounding_boxes: list | None = None,
        filter_message_types: list[str] | tuple[str, ...] = (),
        backoff: Backoff | None = None,
        grace_sec: float = 1.0,
        connect: Callable[..., Any] = websockets.connect,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._url = url
        self._api_key = api_key
        self._on_envelope = on_envelope
        self._bounding_boxes = bounding_boxes or [[[-90.0, -180.0], [90.0, 180.0]]]
        self._filter_message_types = list(filter_message_types)
        self._backoff = backoff or Backoff()
        self._grace = grace_sec
        self._connect = connect
        self._sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self._should_reconnect = True
        self._ws: Any = None
        self._reconnect_timer: asyncio.Future[Any] | None = None

        self.connects = 0
        self.reconnects = 0
        self.received = 0
        self.decode_errors = 0

    @property
    def should_reconnect(self) -> bool:
        return self._should_reconnect

    @property
    def backoff(self) -> Backoff:
        return self._backoff

    def subscription(self) -> dict[str, Any]:
        sub: dict[str, Any] = {
            "APIKey": self._api_key,
            "BoundingBoxes": self._bounding_boxes,
        }
        if self._filter_message_types:
            sub["FilterMessageTypes"] = self._filter_message_types
        return sub

    async def run(self) -> None:
        while self._should_reconnect:
            self.state = ConnectionState.CONNECTING
            try:
                await self._session()
            except asyncio.CancelledError:
                raise
            except StreamSubscriptionError as exc:
                self.state = ConnectionState.ERROR
                logger.error(
                    "AISStream subscription/authentication failed: %s. "
                    "Check AISSTREAM_API_KEY and FilterMessageTypes.",
                    exc,
                )
                # Avoid aggressive reconnect loops for invalid credentials.
                self._backoff.exhaust()
            except Exception as exc:
                self.state = ConnectionState.ERROR
                logger.warning("WebSocket error: %s", exc)
            finally:
                self._ws = None

            if not self._should_reconnect:
                break
            self.state = ConnectionState.DISCONNECTED
            await self._wait_before_reconnect()
        self.state = ConnectionState.SHUTDOWN

    async def _wait_before_reconnect(self) -> None:
        delay = self._backoff.next_delay()
        self.reconnects += 1
        logger.info("Reconnecting in %d ms...", round(delay * 1000))
        self._reconnect_timer = asyncio.ensure_future(self._sleep(delay))
        try:
            await self._reconnect_timer
        except asyncio.CancelledError:
            if self._should_reconnect:
                raise
        finally:
            self._reconnect_timer = None

    async def _session(self) -> None:
        async with self._connect(self._url, ping_interval=20, ping_timeout=30) as ws:
            self._ws = ws
            if not self._should_reconnect:
                return
            # don't log the API key
            await ws.send(json.dumps(self.subscription()))
            self.state = ConnectionState.CONNECTED
            self.connects += 1
            self._backoff.reset()
            logger.info("WebSocket connected; subscription sent (API key redacted)")

            async for raw in ws:
                self._on_frame(raw)

            self.state = ConnectionState.CLOSING
            logger.info(
                "WebSocket closed: %s %s",
                getattr(ws, "close_code", None),
                getattr(ws, "close_reason", None) or "",
            )

    def _on_frame(self, raw: str | bytes) -> None:
        self.received += 1
        msg = decode_frame(raw)
        if msg is None:
            self.decode_errors += 1
            return
        stream_error = extract_stream_error(msg)
        if stream_error:
            raise StreamSubscriptionError(stream_error)
        try:
            self._on_envelope(msg)
        except Exception:
            logger.exception("Envelope callback failed for %s", msg.get("MessageType"))

    async def shutdown(self) -> None:
        """One-way: stop reconnecting, cancel a pending retry, close the socket."""
        if not self._should_reconnect:
            return
        self._should_reconnect = False
        logger.info("Shutting down, closing socket and stopping reconnects.")
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
        ws = self._ws
        if ws is None:
            return
        self.state = ConnectionState.CLOSING
        try:
            await asyncio.wait_for(ws.close(), timeout=self._grace)
        except asyncio.TimeoutError:
            logger.warning("WebSocket did not close within %.1fs", self._grace)
        except Exception as exc:
            logger.debug("WebSocket close error: %s", exc)
