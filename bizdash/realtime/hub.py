"""Tenant room hub — fans out events to the WebSocket sessions of one tenant.

Delivery contract:
- A session joins exactly one tenant room at a time
- Events go only to the room of the acting tenant, never across tenants
- At-most-once, best-effort: no replay for sessions that were disconnected
- Publishing never blocks; a full session queue drops its oldest event
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from bizdash.errors import TransientDeliveryError

logger = logging.getLogger(__name__)

_DEFAULT_QUEUE_SIZE = 500

EventMirror = Callable[[str, str, dict[str, Any]], Any]


@dataclass
class Subscription:
    """One connected session and its outbound queue."""

    sub_id: str
    queue: asyncio.Queue
    tenant_id: str | None = None
    connected_at: float = field(default_factory=time.time)


class TenantHub:
    """Single shared hub holding every tenant room."""

    def __init__(self, queue_size: int = _DEFAULT_QUEUE_SIZE, mirror: EventMirror | None = None):
        self._queue_size = queue_size
        self._mirror = mirror
        self._subscribers: dict[str, Subscription] = {}
        self._rooms: dict[str, set[str]] = {}

    def subscribe(self) -> Subscription:
        """Register a new session. Returns its subscription."""
        sub = Subscription(sub_id=uuid.uuid4().hex[:12], queue=asyncio.Queue(maxsize=self._queue_size))
        self._subscribers[sub.sub_id] = sub
        logger.info("Realtime session connected: %s (total: %d)", sub.sub_id, len(self._subscribers))
        return sub

    def unsubscribe(self, sub_id: str) -> None:
        """Remove a session and its room membership."""
        sub = self._subscribers.pop(sub_id, None)
        if sub is not None and sub.tenant_id is not None:
            self._discard_member(sub.tenant_id, sub_id)
        logger.info("Realtime session disconnected: %s (total: %d)", sub_id, len(self._subscribers))

    def join(self, sub_id: str, tenant_id: str) -> bool:
        """Put a session in a tenant room, leaving any room it was in."""
        sub = self._subscribers.get(sub_id)
        if sub is None:
            return False
        tenant_id = str(tenant_id)
        if sub.tenant_id is not None and sub.tenant_id != tenant_id:
            self._discard_member(sub.tenant_id, sub_id)
        sub.tenant_id = tenant_id
        self._rooms.setdefault(tenant_id, set()).add(sub_id)
        logger.info("Session %s joined tenant room: %s", sub_id, tenant_id)
        return True

    def leave(self, sub_id: str, tenant_id: str) -> bool:
        sub = self._subscribers.get(sub_id)
        if sub is None or sub.tenant_id != str(tenant_id):
            return False
        self._discard_member(sub.tenant_id, sub_id)
        sub.tenant_id = None
        logger.info("Session %s left tenant room: %s", sub_id, tenant_id)
        return True

    def _discard_member(self, tenant_id: str, sub_id: str) -> None:
        members = self._rooms.get(tenant_id)
        if members is None:
            return
        members.discard(sub_id)
        if not members:
            del self._rooms[tenant_id]

    def room_size(self, tenant_id: str) -> int:
        return len(self._rooms.get(str(tenant_id), ()))

    @property
    def connection_count(self) -> int:
        return len(self._subscribers)

    def publish(self, tenant_id: str, event: str, data: dict[str, Any]) -> int:
        """Send an event to every session in the tenant room (non-blocking).

        Returns the number of sessions that received it. Raises
        TransientDeliveryError when the room has sessions but none of them
        could take the event. An empty room is not an error.
        """
        tenant_id = str(tenant_id)
        message = {"event": event, "data": data, "timestamp": time.time()}
        members = list(self._rooms.get(tenant_id, ()))
        delivered = 0
        failed = 0
        for sub_id in members:
            sub = self._subscribers.get(sub_id)
            if sub is None:
                failed += 1
                continue
            if offer_event(sub.queue, message):
                delivered += 1
            else:
                failed += 1

        if self._mirror is not None:
            self._mirror(tenant_id, event, data)

        logger.debug("Broadcasted %s to tenant %s (%d sessions)", event, tenant_id, delivered)
        if failed and not delivered:
            raise TransientDeliveryError(f"Could not deliver {event} to any session of tenant {tenant_id}")
        return delivered


def offer_event(queue: asyncio.Queue, message: dict[str, Any]) -> bool:
    try:
        queue.put_nowait(message)
        return True
    except asyncio.QueueFull:
        # Drop oldest event to make room
        try:
            queue.get_nowait()
            queue.put_nowait(message)
            return True
        except (asyncio.QueueEmpty, asyncio.QueueFull):
            return False
