"""Persistent live-event connection.

One connection is opened per signed-in identity and shared by every
conversation session for the lifetime of the process. The connection:

    - Announces presence ("setup") each time it is established
    - Sends fire-and-forget events (no acknowledgement contract)
    - Routes decoded inbound events to subscribed handlers
    - Reports connected/disconnected transitions to state listeners

Outbound events are not buffered across a disconnect. Callers re-issue
whatever they need (room joins) when the connection comes back.

Thread Safety:
    Designed for a single asyncio event loop. Handlers are plain callables
    that run to completion inside the dispatch call.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import websockets
from pydantic import BaseModel
from websockets.exceptions import WebSocketException

from chatsync.errors import EventError
from .events import EventKind, decode_event, encode_event, resolve_kind

logger = logging.getLogger(__name__)

EventHandler = Callable[[BaseModel], None]
StateListener = Callable[[bool], None]
Unsubscribe = Callable[[], None]


class BaseConnection(ABC):
    """Subscription registry and dispatch shared by all transports."""

    def __init__(self) -> None:
        # event kind -> handlers in subscription order
        self._handlers: Dict[EventKind, List[EventHandler]] = {}
        self._state_listeners: List[StateListener] = []
        self._connected = False
        self.identity: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self, identity: str) -> bool:
        """Establish the connection for *identity*; return whether it is up."""

    @abstractmethod
    async def close(self) -> None:
        """Tear the connection down for good."""

    @abstractmethod
    def _transmit(self, frame: Dict[str, Any]) -> None:
        """Hand an encoded frame to the wire."""

    # =========================================================================
    # Outbound
    # =========================================================================

    def send(self, kind: Any, payload: Any) -> None:
        """Send an event without waiting for delivery.

        Raises:
            UnknownEventError: *kind* is not an outbound event.
            MalformedEventError: *payload* does not fit *kind*.
        """
        frame = encode_event(kind, payload)
        if not self._connected:
            logger.debug("[Conn] Dropping %s while disconnected", frame["event"])
            return
        self._transmit(frame)

    def _announce(self) -> None:
        if self.identity is not None:
            self.send(EventKind.SETUP, self.identity)

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, kind: Any, handler: EventHandler) -> Unsubscribe:
        """Register *handler* for *kind* and return its unsubscribe callable."""
        event_kind = resolve_kind(kind)
        self._handlers.setdefault(event_kind, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_kind, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def add_state_listener(self, listener: StateListener) -> Unsubscribe:
        self._state_listeners.append(listener)

        def remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return remove

    def handler_count(self, kind: Any) -> int:
        return len(self._handlers.get(resolve_kind(kind), []))

    # =========================================================================
    # Inbound
    # =========================================================================

    def dispatch(self, kind: Any, data: Any) -> None:
        """Decode one inbound event and deliver it to current subscribers.

        Unknown kinds and malformed payloads are dropped.
        """
        try:
            event_kind, payload = decode_event(kind, data)
        except EventError as e:
            logger.warning("[Conn] Dropped inbound event: %s", e)
            return

        # Copy: a handler may unsubscribe (e.g. a session closing) mid-delivery.
        for handler in list(self._handlers.get(event_kind, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("[Conn] Handler for %s failed", event_kind.value)

    def dispatch_frame(self, frame: Any) -> None:
        if not isinstance(frame, dict) or "event" not in frame:
            logger.warning("[Conn] Dropped frame without event name")
            return
        self.dispatch(frame["event"], frame.get("data"))

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        logger.info("[Conn] %s", "Connected" if connected else "Disconnected")
        # Presence goes out before listeners re-join their rooms.
        if connected:
            self._announce()
        for listener in list(self._state_listeners):
            try:
                listener(connected)
            except Exception:
                logger.exception("[Conn] State listener failed")


class WebSocketConnection(BaseConnection):
    """JSON-framed WebSocket transport with automatic reconnection.

    Frames are ``{"event": <kind>, "data": <payload>}`` text messages.
    Reconnection uses capped exponential backoff and re-announces presence
    on every successful open.
    """

    def __init__(
        self,
        url: str,
        *,
        reconnect_initial_delay: float = 0.5,
        reconnect_max_delay: float = 30.0,
        connect_factory: Optional[Callable[[str], Any]] = None,
    ) -> None:
        super().__init__()
        self.url = url
        self._initial_delay = reconnect_initial_delay
        self._max_delay = reconnect_max_delay
        self._connect_factory = connect_factory or websockets.connect
        self._outbox: Optional[asyncio.Queue] = None
        self._run_task: Optional[asyncio.Task] = None  # type: ignore[type-arg]
        self._closing = False

    async def connect(self, identity: str) -> bool:
        """Start the connection loop and wait for the first attempt.

        A failed first attempt is not an error: the loop keeps retrying in
        the background and state listeners hear about the eventual open.
        """
        if self._run_task is not None:
            return self._connected
        self.identity = identity
        self._closing = False
        self._outbox = asyncio.Queue()
        first_attempt: asyncio.Future = asyncio.get_running_loop().create_future()
        self._run_task = asyncio.create_task(self._run(first_attempt))
        return await first_attempt

    async def close(self) -> None:
        self._closing = True
        if self._run_task is None:
            return
        self._run_task.cancel()
        try:
            await self._run_task
        except asyncio.CancelledError:
            pass
        self._run_task = None
        self._set_connected(False)

    def _transmit(self, frame: Dict[str, Any]) -> None:
        if self._outbox is not None:
            self._outbox.put_nowait(frame)

    async def _run(self, first_attempt: asyncio.Future) -> None:
        try:
            await self._connect_loop(first_attempt)
        finally:
            if not first_attempt.done():
                first_attempt.set_result(False)

    async def _connect_loop(self, first_attempt: asyncio.Future) -> None:
        delay = self._initial_delay
        while not self._closing:
            try:
                async with self._connect_factory(self.url) as ws:
                    delay = self._initial_delay
                    self._set_connected(True)
                    if not first_attempt.done():
                        first_attempt.set_result(True)
                    writer = asyncio.create_task(self._write_loop(ws, self._outbox))
                    try:
                        async for raw in ws:
                            self._receive(raw)
                    finally:
                        writer.cancel()
                        (outcome,) = await asyncio.gather(writer, return_exceptions=True)
                        if isinstance(outcome, Exception):
                            logger.warning("[Conn] Writer for %s stopped: %s", self.url, outcome)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning("[Conn] Connection to %s failed: %s", self.url, e)
            finally:
                self._drain_outbox()
                self._set_connected(False)

            if not first_attempt.done():
                first_attempt.set_result(False)
            if self._closing:
                break
            logger.info("[Conn] Reconnecting in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_delay)

    async def _write_loop(self, ws: Any, outbox: Optional[asyncio.Queue]) -> None:
        if outbox is None:
            raise RuntimeError("connect() must run before the writer starts")
        while True:
            frame = await outbox.get()
            await ws.send(json.dumps(frame))

    def _drain_outbox(self) -> None:
        if self._outbox is None:
            return
        dropped = 0
        while not self._outbox.empty():
            self._outbox.get_nowait()
            dropped += 1
        if dropped:
            logger.debug("[Conn] Dropped %d unsent frame(s)", dropped)

    def _receive(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("[Conn] Dropped non-JSON frame")
            return
        self.dispatch_frame(frame)
