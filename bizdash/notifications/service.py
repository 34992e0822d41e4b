"""Notification service — persist, then push to the tenant room.

Delivery contract:
- The store write is authoritative; its failure propagates to the caller
- The room publish is best-effort; TransientDeliveryError is logged here
  and never fails the operation
- Every mutation passes the acting tenant to the store, so an id owned by
  another tenant is reported as NotFoundError
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from bizdash.errors import NotFoundError, TransientDeliveryError
from bizdash.notifications.models import (
    Notification,
    NotificationPriority,
    NotificationType,
    create_notification_record,
)
from bizdash.notifications.store import NotificationStore
from bizdash.realtime.hub import TenantHub
from bizdash.realtime.protocol import (
    EVENT_NEW_NOTIFICATION,
    EVENT_NOTIFICATION_UPDATED,
    EVENT_NOTIFICATIONS_MARKED_READ,
)

logger = logging.getLogger(__name__)


class NotificationService:
    """Creates notifications and keeps connected clients in sync."""

    def __init__(self, store: NotificationStore, hub: TenantHub):
        self.store = store
        self.hub = hub

    # ── Broadcast ────────────────────────────────────────────────────────

    def broadcast_to_tenant(self, tenant_id: str, event: str, data: dict[str, Any]) -> int:
        """Publish to the tenant room. Returns sessions reached, 0 on failure."""
        try:
            return self.hub.publish(str(tenant_id), event, data)
        except TransientDeliveryError as e:
            logger.warning("Broadcast of %s to tenant %s failed: %s", event, tenant_id, e.message)
            return 0

    # ── Create ───────────────────────────────────────────────────────────

    def create_notification(
        self,
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
        """Persist a new unread notification and push it to the tenant room."""
        notification = create_notification_record(
            tenant_id,
            title,
            message,
            user_id=user_id,
            type=type,
            priority=priority,
            action_url=action_url,
            action_text=action_text,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata,
            expires_at=expires_at,
        )
        try:
            self.store.insert(notification)
        except Exception:
            logger.exception("Error creating notification for tenant %s", tenant_id)
            raise
        logger.info("Created notification: %s (tenant=%s, type=%s)", notification.id, tenant_id, notification.type.value)

        self.broadcast_to_tenant(notification.tenant_id, EVENT_NEW_NOTIFICATION, notification.to_wire())
        return notification

    # ── Mutations ────────────────────────────────────────────────────────

    def mark_as_read(self, tenant_id: str, notification_id: str) -> Notification:
        """Set is_read. Idempotent: an already-read notification stays read."""
        notification = self.store.mark_read(tenant_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        self.broadcast_to_tenant(tenant_id, EVENT_NOTIFICATION_UPDATED, notification.update_payload())
        return notification

    def dismiss(self, tenant_id: str, notification_id: str) -> Notification:
        """Set is_dismissed. Idempotent; the record is kept."""
        notification = self.store.dismiss(tenant_id, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        self.broadcast_to_tenant(tenant_id, EVENT_NOTIFICATION_UPDATED, notification.update_payload())
        return notification

    def mark_all_as_read(self, tenant_id: str, user_id: str | None = None) -> int:
        """Mark every unread notification in scope as read.

        Publishes one bulk event carrying the count rather than the list.
        """
        changed = self.store.mark_all_read(tenant_id, user_id)
        self.broadcast_to_tenant(
            tenant_id,
            EVENT_NOTIFICATIONS_MARKED_READ,
            {"count": len(changed), "userId": user_id},
        )
        return len(changed)

    # ── Queries ──────────────────────────────────────────────────────────

    def list_notifications(
        self,
        tenant_id: str,
        user_id: str | None = None,
        *,
        include_read: bool = True,
        include_dismissed: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        return self.store.query(
            tenant_id,
            user_id,
            include_read=include_read,
            include_dismissed=include_dismissed,
            limit=limit,
        )

    def unread_count(self, tenant_id: str, user_id: str | None = None) -> int:
        return self.store.unread_count(tenant_id, user_id)

    # ── Helpers for common scenarios ─────────────────────────────────────

    def notify_new_order(self, tenant_id: str, order: dict[str, Any]) -> Notification:
        return self.create_notification(
            tenant_id,
            "New Order Received",
            f"Order #{order['orderNumber']} from {order['customerName']}",
            type=NotificationType.ORDER,
            priority=NotificationPriority.HIGH,
            action_url=f"/orders/{order['id']}",
            action_text="View Order",
            entity_type="order",
            entity_id=order["id"],
            metadata={
                "orderNumber": order["orderNumber"],
                "customerName": order["customerName"],
                "amount": order["amount"],
            },
        )

    def notify_payment_received(self, tenant_id: str, payment: dict[str, Any]) -> Notification:
        return self.create_notification(
            tenant_id,
            "Payment Received",
            f"Payment of {payment['amount']} received for order #{payment['orderNumber']}",
            type=NotificationType.PAYMENT,
            priority=NotificationPriority.MEDIUM,
            action_url=f"/orders/{payment['orderId']}",
            action_text="View Order",
            entity_type="payment",
            entity_id=payment.get("id"),
            metadata=dict(payment),
        )

    def notify_low_stock(self, tenant_id: str, product: dict[str, Any]) -> Notification:
        return self.create_notification(
            tenant_id,
            "Low Stock Alert",
            f"{product['name']} is running low ({product['stockLevel']})",
            type=NotificationType.WARNING,
            priority=NotificationPriority.MEDIUM,
            action_url=f"/products/{product['id']}",
            action_text="Manage Stock",
            entity_type="product",
            entity_id=product["id"],
            metadata=dict(product),
        )

    def notify_system_alert(self, tenant_id: str, alert: dict[str, Any]) -> Notification:
        return self.create_notification(
            tenant_id,
            alert.get("title") or "System Alert",
            alert["message"],
            type=NotificationType.SYSTEM,
            priority=alert.get("priority") or NotificationPriority.MEDIUM,
            metadata=dict(alert),
        )
