"""Redis Streams mirror of tenant room events.

Every event published to a tenant room can be appended to a Redis Stream
via XADD with an auto-generated stream ID (*), so other processes (cache
invalidators, audit consumers) can follow tenant activity.

If Redis is unreachable, publishes are dropped with a warning (fail-open).
The TenantHub (bizdash/realtime/hub.py) remains the WebSocket fan-out
mechanism; this stream is a side channel and never gates delivery.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

import redis

logger = logging.getLogger(__name__)

STREAM_TENANT_EVENTS = "bizdash:tenant:events"

# Approximate trim length
_STREAM_MAXLEN = 5000


class EventStreamMirror:
    """Appends room events to a Redis stream. Never raises."""

    def __init__(self, redis_url: str, stream: str = STREAM_TENANT_EVENTS, maxlen: int = _STREAM_MAXLEN):
        self._redis_url = redis_url
        self._stream = stream
        self._maxlen = maxlen
        self._client: redis.Redis | None = None

    def _get_redis(self) -> redis.Redis:
        """Get or create the Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def publish(
        self,
        tenant_id: str,
        event: str,
        payload: dict[str, Any],
        *,
        msg_id: str | None = None,
    ) -> str | None:
        """Append one event. Returns the stream entry ID or None on failure."""
        if msg_id is None:
            msg_id = uuid.uuid4().hex[:16]

        entry = {
            "msg_id": msg_id,
            "tenant_id": str(tenant_id),
            "event": event,
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S+00:00", time.gmtime()),
            "payload": json.dumps(payload, default=str),
        }

        try:
            return self._get_redis().xadd(self._stream, entry, maxlen=self._maxlen, approximate=True)
        except Exception:
            logger.warning(
                "Event mirror publish failed: stream=%s tenant=%s event=%s",
                self._stream, tenant_id, event,
                exc_info=True,
            )
            return None

    def __call__(self, tenant_id: str, event: str, payload: dict[str, Any]) -> str | None:
        return self.publish(tenant_id, event, payload)
