"""Shared WebSocket connection to the notification channel.

One ConnectionManager is created per dashboard and handed by reference to
every consumer, which subscribes with ``on``/``off``. The manager:
- appends the bearer token to the socket URL
- sends ``join-tenant`` after every (re)connect
- reconnects with capped exponential backoff + jitter until ``disconnect``
- sends ``leave-tenant`` on a clean disconnect
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict
from typing import Any, Callable
from urllib.parse import urlencode

import websockets
from websockets.exceptions import WebSocketException

from bizdash.realtime.protocol import (
    EVENT_JOIN_TENANT,
    EVENT_LEAVE_TENANT,
    decode_frame,
    encode_frame,
)

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Any]
StateListener = Callable[[bool, Exception | None], Any]


def compute_backoff(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """base * 2^attempt, capped at max_delay, +/- jitter fraction."""
    delay = min(base_delay * (2**attempt), max_delay)
    jitter_amount = delay * jitter
    delay += random.uniform(-jitter_amount, jitter_amount)
    return max(0.0, delay)


class ConnectionManager:
    def __init__(
        self,
        url: str,
        token: str,
        *,
        connect_factory: Callable[[str], Any] = websockets.connect,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        jitter: float = 0.3,
    ):
        self._url = url
        self._token = token
        self._connect_factory = connect_factory
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._jitter = jitter

        self._handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self._state_listeners: list[StateListener] = []
        self._ws: Any = None
        self._task: asyncio.Task | None = None
        self._tenant_id: str | None = None
        self._closing = False
        self.reconnect_attempts = 0

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def tenant_id(self) -> str | None:
        return self._tenant_id

    def _socket_url(self) -> str:
        sep = "&" if "?" in self._url else "?"
        return f"{self._url}{sep}{urlencode({'token': self._token})}"

    # ── Subscriptions ────────────────────────────────────────────────────

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers[event].append(handler)

    def off(self, event: str, handler: EventHandler) -> None:
        handlers = self._handlers.get(event)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def on_state_change(self, listener: StateListener) -> None:
        """Register ``listener(connected, error)`` for connection state changes."""
        self._state_listeners.append(listener)

    def remove_state_listener(self, listener: StateListener) -> None:
        if listener in self._state_listeners:
            self._state_listeners.remove(listener)

    def _notify_state(self, connected: bool, error: Exception | None = None) -> None:
        for listener in list(self._state_listeners):
            try:
                listener(connected, error)
            except Exception:
                logger.exception("Connection state listener failed")

    async def _dispatch(self, raw: str | bytes) -> None:
        try:
            event, data = decode_frame(raw)
        except ValueError:
            logger.warning("Dropping malformed frame from notification channel")
            return
        for handler in list(self._handlers.get(event, ())):
            try:
                result = handler(data)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Handler for %s failed", event)

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def connect(self, tenant_id: str) -> None:
        """Start the connection loop for a tenant room. No-op if already running."""
        if self._task is not None and not self._task.done():
            if tenant_id == self._tenant_id:
                return
            # Switching tenants: leave the old room, join the new one
            await self.emit(EVENT_LEAVE_TENANT, self._tenant_id)
            self._tenant_id = tenant_id
            await self.emit(EVENT_JOIN_TENANT, tenant_id)
            return
        self._tenant_id = tenant_id
        self._closing = False
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while not self._closing:
            try:
                async with self._connect_factory(self._socket_url()) as ws:
                    self._ws = ws
                    self.reconnect_attempts = 0
                    logger.info("Connected to notification service")
                    self._notify_state(True)
                    await ws.send(encode_frame(EVENT_JOIN_TENANT, self._tenant_id))
                    async for raw in ws:
                        await self._dispatch(raw)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                if not self._closing:
                    logger.warning("Notification channel error: %s", type(e).__name__)
                    self._notify_state(False, e)
            except Exception as e:
                if not self._closing:
                    logger.exception("Unexpected notification channel failure")
                    self._notify_state(False, e)
            else:
                # Server closed the socket; disconnect() reports its own close
                if not self._closing:
                    self._notify_state(False)
            finally:
                if self._ws is not None:
                    logger.info("Disconnected from notification service")
                self._ws = None

            if self._closing:
                break
            delay = compute_backoff(self.reconnect_attempts, self._base_delay, self._max_delay, self._jitter)
            self.reconnect_attempts += 1
            logger.info("Reconnecting in %.1fs (attempt %d)", delay, self.reconnect_attempts)
            await asyncio.sleep(delay)

    async def emit(self, event: str, data: Any = None) -> bool:
        """Send a frame. Returns False when not connected or the send failed."""
        ws = self._ws
        if ws is None:
            return False
        try:
            await ws.send(encode_frame(event, data))
        except (OSError, WebSocketException) as e:
            logger.debug("Could not send %s: %s", event, type(e).__name__)
            return False
        return True

    async def disconnect(self) -> None:
        """Leave the tenant room and stop reconnecting."""
        self._closing = True
        ws = self._ws
        was_connected = ws is not None
        if ws is not None:
            await self.emit(EVENT_LEAVE_TENANT, self._tenant_id)
            try:
                await ws.close()
            except (OSError, WebSocketException):
                logger.debug("Close handshake failed")
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._ws = None
        if was_connected:
            logger.info("Left tenant room %s", self._tenant_id)
            self._notify_state(False)
