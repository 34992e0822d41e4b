"""Notification data models.

Scoping contract:
- Every notification belongs to exactly one tenant (tenant_id is required)
- user_id is optional; a notification without one is tenant-wide
- is_read and is_dismissed are independent flags, never hard-deleted
- expires_at only cuts off display eligibility
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class NotificationType(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    ORDER = "order"
    PAYMENT = "payment"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass
class Notification:
    """A persisted notification record."""

    tenant_id: str
    title: str
    message: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str | None = None
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.MEDIUM
    is_read: bool = False
    is_dismissed: bool = False
    action_url: str | None = None
    action_text: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def visible_to(self, user_id: str | None) -> bool:
        """Tenant-wide notifications are visible to every user of the tenant."""
        if user_id is None:
            return True
        return self.user_id is None or self.user_id == user_id

    def to_wire(self) -> dict[str, Any]:
        """camelCase form used by the HTTP API and the real-time channel."""
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "userId": self.user_id,
            "title": self.title,
            "message": self.message,
            "type": self.type.value,
            "priority": self.priority.value,
            "isRead": self.is_read,
            "isDismissed": self.is_dismissed,
            "actionUrl": self.action_url,
            "actionText": self.action_text,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "metadata": self.metadata,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "expiresAt": _iso(self.expires_at),
        }

    def update_payload(self) -> dict[str, Any]:
        """Payload of the notification-updated event."""
        return {"id": self.id, "isRead": self.is_read, "isDismissed": self.is_dismissed}


def create_notification_record(
    tenant_id: str,
    title: str,
    message: str,
    *,
    user_id: str | None = None,
    type: NotificationType | str = NotificationType.INFO,
    priority: NotificationPriority | str = NotificationPriority.MEDIUM,
    action_url: str | None = None,
    action_text: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    expires_at: datetime | None = None,
) -> Notification:
    """Build a fresh, unread, undismissed notification."""
    if not tenant_id:
        raise ValueError("tenant_id is required")
    now = utcnow()
    return Notification(
        tenant_id=str(tenant_id),
        title=title,
        message=message,
        user_id=user_id or None,
        type=NotificationType(type),
        priority=NotificationPriority(priority),
        action_url=action_url,
        action_text=action_text,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        metadata=dict(metadata or {}),
        created_at=now,
        updated_at=now,
        expires_at=expires_at,
    )
