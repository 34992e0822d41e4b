"""Notifications API — tenant-authenticated listing and read/dismiss state.

Every route works inside the caller's tenant; ids from another tenant
answer 404 exactly like unknown ids.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from bizdash.deps import AppServices, get_services
from bizdash.errors import ForbiddenError, NotFoundError
from bizdash.notifications.models import NotificationPriority, NotificationType
from bizdash.security.auth import TenantContext
from bizdash.security.middleware import get_tenant_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class NotificationCreate(_CamelModel):
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1, max_length=1000)
    type: NotificationType = NotificationType.INFO
    priority: NotificationPriority = NotificationPriority.MEDIUM
    user_id: str | None = None
    action_url: str | None = None
    action_text: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class NotificationUpdate(_CamelModel):
    # Flags only move forward: read and dismissed are never unset here
    is_read: Literal[True] | None = None
    is_dismissed: Literal[True] | None = None


class MarkAllRead(_CamelModel):
    user_id: str | None = None


@router.get("")
async def list_notifications(
    user_id: str | None = Query(default=None, alias="userId"),
    include_read: bool = Query(default=True, alias="includeRead"),
    include_dismissed: bool = Query(default=False, alias="includeDismissed"),
    limit: int = Query(default=50, ge=1, le=500),
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Notifications of the current tenant, newest first."""
    notifications = services.notifications.list_notifications(
        context.tenant_id,
        user_id,
        include_read=include_read,
        include_dismissed=include_dismissed,
        limit=limit,
    )
    return {
        "notifications": [n.to_wire() for n in notifications],
        "total": len(notifications),
    }


@router.get("/count")
async def unread_count(
    user_id: str | None = Query(default=None, alias="userId"),
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Unread, non-dismissed notification count."""
    return {"count": services.notifications.unread_count(context.tenant_id, user_id)}


@router.post("", status_code=201)
async def create_notification(
    body: NotificationCreate,
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    notification = services.notifications.create_notification(
        context.tenant_id,
        body.title,
        body.message,
        user_id=body.user_id,
        type=body.type,
        priority=body.priority,
        action_url=body.action_url,
        action_text=body.action_text,
        entity_type=body.entity_type,
        entity_id=body.entity_id,
        metadata=body.metadata,
        expires_at=body.expires_at,
    )
    return {"id": notification.id, "message": "Notification created successfully"}


@router.post("/mark-all-read")
async def mark_all_read(
    body: MarkAllRead | None = None,
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    user_id = body.user_id if body else None
    count = services.notifications.mark_all_as_read(context.tenant_id, user_id)
    return {"message": "All notifications marked as read", "count": count}


@router.post("/test")
async def create_test_notification(
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Development helper: push a low-priority test notification."""
    if services.settings.is_production:
        raise ForbiddenError("Test endpoint not available in production")
    notification = services.notifications.create_notification(
        context.tenant_id,
        "Test Notification",
        "This is a test notification to verify the system is working correctly.",
        type=NotificationType.INFO,
        priority=NotificationPriority.LOW,
        metadata={"test": True, "timestamp": datetime.now(timezone.utc).isoformat()},
    )
    return {"message": "Test notification created", "id": notification.id}


@router.patch("/{notification_id}")
async def update_notification(
    notification_id: str,
    body: NotificationUpdate,
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Mark a notification read and/or dismissed. Returns the updated record."""
    service = services.notifications
    notification = None
    if body.is_read:
        notification = service.mark_as_read(context.tenant_id, notification_id)
    if body.is_dismissed:
        notification = service.dismiss(context.tenant_id, notification_id)
    if notification is None:
        # Empty patch: still answer 404 for ids outside the tenant
        notification = service.store.get(context.tenant_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
    return notification.to_wire()


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Soft delete: the record is dismissed, not removed."""
    services.notifications.dismiss(context.tenant_id, notification_id)
    return {"message": "Notification dismissed successfully"}
