"""Notification store — in-memory, tenant-scoped notification records.

Isolation contract:
- Records are keyed by (tenant_id, notification_id); every lookup and
  mutation filters on tenant_id, so a colliding id from another tenant is
  indistinguishable from an unknown one
- Mutations are idempotent set-operations on boolean flags
- Nothing is hard-deleted; dismissal is a soft flag
"""

from __future__ import annotations

import logging
from datetime import datetime

from bizdash.notifications.models import Notification, utcnow

logger = logging.getLogger(__name__)

_DEFAULT_LIST_LIMIT = 50
_MAX_LIST_LIMIT = 500


class NotificationStore:
    """In-memory notification collection.

    A document-store backend would implement the same methods; the
    in-memory version carries the scoping and filtering rules.
    """

    def __init__(self):
        self._records: dict[tuple[str, str], Notification] = {}

    def insert(self, notification: Notification) -> Notification:
        key = (notification.tenant_id, notification.id)
        if key in self._records:
            raise ValueError(f"Duplicate notification id: {notification.id}")
        self._records[key] = notification
        return notification

    def get(self, tenant_id: str, notification_id: str) -> Notification | None:
        return self._records.get((str(tenant_id), notification_id))

    def _scoped(
        self,
        tenant_id: str,
        user_id: str | None,
        now: datetime | None = None,
        include_expired: bool = False,
    ) -> list[Notification]:
        now = now or utcnow()
        tenant_id = str(tenant_id)
        # Newest first; insertion order breaks created_at ties
        records = [
            n
            for n in reversed(list(self._records.values()))
            if n.tenant_id == tenant_id
            and n.visible_to(user_id)
            and (include_expired or not n.is_expired(now))
        ]
        return sorted(records, key=lambda n: n.created_at, reverse=True)

    def query(
        self,
        tenant_id: str,
        user_id: str | None = None,
        *,
        include_read: bool = True,
        include_dismissed: bool = False,
        limit: int = _DEFAULT_LIST_LIMIT,
        now: datetime | None = None,
    ) -> list[Notification]:
        """List a tenant's displayable notifications, newest first.

        With a user_id, the user's own notifications plus tenant-wide ones
        are returned. Expired notifications are never listed.
        """
        limit = max(0, min(limit, _MAX_LIST_LIMIT))
        result = []
        for n in self._scoped(tenant_id, user_id, now):
            if not include_read and n.is_read:
                continue
            if not include_dismissed and n.is_dismissed:
                continue
            result.append(n)
            if len(result) >= limit:
                break
        return result

    def unread_count(self, tenant_id: str, user_id: str | None = None, now: datetime | None = None) -> int:
        """Unread, non-dismissed, non-expired notifications in scope."""
        return sum(
            1
            for n in self._scoped(tenant_id, user_id, now)
            if not n.is_read and not n.is_dismissed
        )

    def mark_read(self, tenant_id: str, notification_id: str) -> Notification | None:
        notification = self.get(tenant_id, notification_id)
        if notification is None:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.updated_at = utcnow()
        return notification

    def dismiss(self, tenant_id: str, notification_id: str) -> Notification | None:
        notification = self.get(tenant_id, notification_id)
        if notification is None:
            return None
        if not notification.is_dismissed:
            notification.is_dismissed = True
            notification.updated_at = utcnow()
        return notification

    def mark_all_read(self, tenant_id: str, user_id: str | None = None) -> list[str]:
        """Mark every currently-unread notification in scope as read.

        Returns the ids that changed.
        """
        now = utcnow()
        changed = []
        for n in self._scoped(tenant_id, user_id, now, include_expired=True):
            if not n.is_read:
                n.is_read = True
                n.updated_at = now
                changed.append(n.id)
        logger.debug("Marked %d notifications read for tenant %s", len(changed), tenant_id)
        return changed

    def __len__(self) -> int:
        return len(self._records)
