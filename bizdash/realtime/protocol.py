"""Real-time channel protocol — event names and frame helpers.

Frames are JSON text messages ``{"event": <name>, "data": <payload>}``.
Shared by the server endpoint and the client connection manager.
"""

from __future__ import annotations

import json
from typing import Any

# Server -> client
EVENT_NEW_NOTIFICATION = "new-notification"
EVENT_NOTIFICATION_UPDATED = "notification-updated"
EVENT_NOTIFICATIONS_MARKED_READ = "notifications-marked-read"
EVENT_DASHBOARD_REFRESH = "dashboard-refresh"
EVENT_TENANT_JOINED = "tenant-joined"
EVENT_TENANT_LEFT = "tenant-left"
EVENT_ERROR = "error"

# Client -> server
EVENT_JOIN_TENANT = "join-tenant"
EVENT_LEAVE_TENANT = "leave-tenant"
EVENT_NOTIFICATION_RECEIVED = "notification-received"


def encode_frame(event: str, data: Any = None) -> str:
    return json.dumps({"event": event, "data": data}, default=str)


def decode_frame(raw: str | bytes) -> tuple[str, Any]:
    """Parse a frame. Raises ValueError when it is not a valid frame."""
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValueError("Malformed frame") from e
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise ValueError("Malformed frame")
    return frame["event"], frame.get("data")
