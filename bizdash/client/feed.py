"""Client notification feed — polled state reconciled with push events.

Reconciliation rules:
- A poll replaces the list and the unread count wholesale; it is ground truth
- Push events patch the loaded state between polls
- A pushed notification already in the list replaces its entry in place,
  so a poll that raced the push never duplicates it
- Local actions apply optimistically, call the API, then re-poll. A failed
  call sets ``error``; the optimistic change is only compensated when
  ``rollback_on_failure`` is set
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from bizdash.client.api import ApiRequestError, NotificationsAPI
from bizdash.client.connection import ConnectionManager
from bizdash.client.presentation import toast_duration, toast_variant
from bizdash.realtime.protocol import (
    EVENT_DASHBOARD_REFRESH,
    EVENT_NEW_NOTIFICATION,
    EVENT_NOTIFICATION_RECEIVED,
    EVENT_NOTIFICATION_UPDATED,
    EVENT_NOTIFICATIONS_MARKED_READ,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 30.0
_DASHBOARD_TOAST_SECONDS = 3.0


@dataclass
class FeedState:
    notifications: list[dict[str, Any]] = field(default_factory=list)
    unread_count: int = 0
    is_loading: bool = False
    error: str | None = None



@dataclass
class Toast:
    title: str
    description: str
    variant: str = "default"
    duration: float = 5.0
    action_url: str | None = None
    action_text: str | None = None


@dataclass
class PendingMutation:
    """An optimistic change awaiting its API call.

    ``previous_state`` holds only the values ``apply`` overwrites, so
    compensating one action leaves concurrent changes alone.
    """

    action: str
    previous_state: dict[str, Any]
    apply: Callable[[FeedState], None]
    compensate: Callable[[FeedState, dict[str, Any]], None]


def _is_unread(entry: dict[str, Any]) -> bool:
    return not entry.get("isRead") and not entry.get("isDismissed")


class NotificationFeed:
    """Notification list, unread count, loading and error state for one user."""

    def __init__(
        self,
        api: NotificationsAPI,
        *,
        user_id: str | None = None,
        connection: ConnectionManager | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        show_toasts: bool = True,
        rollback_on_failure: bool = False,
        on_toast: Callable[[Toast], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        on_dashboard_refresh: Callable[[dict[str, Any]], Any] | None = None,
    ):
        self.api = api
        self.user_id = user_id
        self.connection = connection
        self.poll_interval = poll_interval
        self.show_toasts = show_toasts
        self.rollback_on_failure = rollback_on_failure
        self.on_toast = on_toast
        self.on_error = on_error
        self.on_dashboard_refresh = on_dashboard_refresh

        self.state = FeedState()
        self.pending: list[PendingMutation] = []
        self._poll_task: asyncio.Task | None = None

        if connection is not None:
            self._bind(connection)

    # ── State accessors ──────────────────────────────────────────────────

    @property
    def notifications(self) -> list[dict[str, Any]]:
        return self.state.notifications

    @property
    def unread_count(self) -> int:
        return self.state.unread_count

    @property
    def is_loading(self) -> bool:
        return self.state.is_loading

    @property
    def error(self) -> str | None:
        return self.state.error

    def _find(self, notification_id: str) -> dict[str, Any] | None:
        for entry in self.state.notifications:
            if entry.get("id") == notification_id:
                return entry
        return None

    def _toast(self, toast: Toast) -> None:
        if self.show_toasts and self.on_toast is not None:
            self.on_toast(toast)

    # ── Polling ──────────────────────────────────────────────────────────

    async def poll(self) -> bool:
        """Fetch list and count, replacing local state. False on failure."""
        self.state.is_loading = True
        try:
            notifications = await self.api.list_notifications(
                self.user_id, include_read=True, include_dismissed=False
            )
            count = await self.api.unread_count(self.user_id)
        except ApiRequestError as e:
            logger.warning("Notification poll failed: %s", e)
            self.state.error = str(e) or "Failed to load notifications"
            return False
        finally:
            self.state.is_loading = False

        self.state.notifications = notifications
        self.state.unread_count = count
        self.state.error = None
        return True

    async def _poll_loop(self) -> None:
        try:
            while True:
                await self.poll()
                await asyncio.sleep(self.poll_interval)
        except asyncio.CancelledError:
            logger.debug("Notification poll loop stopped")
            raise

    def start(self) -> None:
        """Begin background polling (and real-time updates if connected)."""
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None
        if self.connection is not None:
            self._unbind(self.connection)

    # ── Push events ──────────────────────────────────────────────────────

    def _bind(self, connection: ConnectionManager) -> None:
        connection.on(EVENT_NEW_NOTIFICATION, self.handle_new_notification)
        connection.on(EVENT_NOTIFICATION_UPDATED, self.handle_notification_updated)
        connection.on(EVENT_NOTIFICATIONS_MARKED_READ, self.handle_marked_read)
        connection.on(EVENT_DASHBOARD_REFRESH, self.handle_dashboard_refresh)
        connection.on_state_change(self._on_connection_state)

    def _unbind(self, connection: ConnectionManager) -> None:
        connection.off(EVENT_NEW_NOTIFICATION, self.handle_new_notification)
        connection.off(EVENT_NOTIFICATION_UPDATED, self.handle_notification_updated)
        connection.off(EVENT_NOTIFICATIONS_MARKED_READ, self.handle_marked_read)
        connection.off(EVENT_DASHBOARD_REFRESH, self.handle_dashboard_refresh)
        connection.remove_state_listener(self._on_connection_state)

    def _on_connection_state(self, connected: bool, error: Exception | None) -> None:
        if error is not None:
            self.state.error = "Failed to connect to real-time notifications"

    async def handle_new_notification(self, notification: dict[str, Any]) -> None:
        target = notification.get("userId")
        if self.user_id and target and target != self.user_id:
            return

        existing = self._find(notification.get("id"))
        if existing is not None:
            existing.clear()
            existing.update(notification)
        else:
            self.state.notifications.insert(0, dict(notification))
            if _is_unread(notification):
                self.state.unread_count += 1

        self._toast(
            Toast(
                title=notification.get("title", ""),
                description=notification.get("message", ""),
                variant=toast_variant(notification),
                duration=toast_duration(notification),
                action_url=notification.get("actionUrl"),
                action_text=(notification.get("actionText") or "View") if notification.get("actionUrl") else None,
            )
        )

        if self.connection is not None:
            await self.connection.emit(EVENT_NOTIFICATION_RECEIVED, notification.get("id"))

    def handle_notification_updated(self, data: dict[str, Any]) -> None:
        entry = self._find(data.get("id"))
        if entry is None:
            return
        was_unread = _is_unread(entry)
        if "isRead" in data:
            entry["isRead"] = bool(data["isRead"])
        if "isDismissed" in data:
            entry["isDismissed"] = bool(data["isDismissed"])
        if was_unread and not _is_unread(entry):
            self.state.unread_count = max(0, self.state.unread_count - 1)

    def handle_marked_read(self, data: dict[str, Any]) -> None:
        target = (data or {}).get("userId")
        if self.user_id and target and target != self.user_id:
            return
        for entry in self.state.notifications:
            entry["isRead"] = True
        self.state.unread_count = 0

    def handle_dashboard_refresh(self, data: dict[str, Any]) -> None:
        logger.debug("Dashboard refresh event: %s", data)
        if self.on_dashboard_refresh is not None:
            self.on_dashboard_refresh(data)
        kind = str((data or {}).get("type") or "update").replace("-", " ", 1)
        self._toast(Toast(title="Dashboard Updated", description=f"New {kind} received", duration=_DASHBOARD_TOAST_SECONDS))

    # ── Actions ──────────────────────────────────────────────────────────

    async def _mutate(
        self,
        action: str,
        previous_state: dict[str, Any],
        apply: Callable[[FeedState], None],
        compensate: Callable[[FeedState, dict[str, Any]], None],
        call: Callable[[], Awaitable[Any]],
    ) -> bool:
        mutation = PendingMutation(action, previous_state, apply, compensate)
        self.pending.append(mutation)
        mutation.apply(self.state)
        try:
            await call()
        except ApiRequestError as e:
            logger.warning("Failed to %s: %s", action, e)
            self.state.error = f"Failed to {action}"
            if self.rollback_on_failure:
                mutation.compensate(self.state, mutation.previous_state)
            self._toast(Toast(title="Error", description=f"Failed to {action}", variant="destructive"))
            if self.on_error is not None:
                self.on_error(e)
            return False
        finally:
            self.pending.remove(mutation)

        await self.poll()
        return True

    async def mark_as_read(self, notification_id: str) -> bool:
        entry = self._find(notification_id)
        previous = {
            "entry": entry,
            "was_unread": entry is not None and _is_unread(entry),
            "is_read": bool(entry and entry.get("isRead")),
        }

        def apply(state: FeedState) -> None:
            if entry is not None:
                entry["isRead"] = True
            if previous["was_unread"]:
                state.unread_count = max(0, state.unread_count - 1)

        def compensate(state: FeedState, previous: dict[str, Any]) -> None:
            if previous["entry"] is not None:
                previous["entry"]["isRead"] = previous["is_read"]
            if previous["was_unread"]:
                state.unread_count += 1

        return await self._mutate(
            "mark notification as read",
            previous,
            apply,
            compensate,
            lambda: self.api.mark_as_read(notification_id),
        )

    async def dismiss(self, notification_id: str) -> bool:
        entry = self._find(notification_id)
        previous = {
            "entry": entry,
            "index": self.state.notifications.index(entry) if entry is not None else -1,
            "was_unread": entry is not None and _is_unread(entry),
        }

        def apply(state: FeedState) -> None:
            if entry is not None and entry in state.notifications:
                state.notifications.remove(entry)
            if previous["was_unread"]:
                state.unread_count = max(0, state.unread_count - 1)

        def compensate(state: FeedState, previous: dict[str, Any]) -> None:
            restored = previous["entry"]
            if restored is not None and restored not in state.notifications:
                state.notifications.insert(min(previous["index"], len(state.notifications)), restored)
            if previous["was_unread"]:
                state.unread_count += 1

        return await self._mutate(
            "dismiss notification",
            previous,
            apply,
            compensate,
            lambda: self.api.dismiss(notification_id),
        )

    async def mark_all_as_read(self) -> bool:
        previous = {
            "read_flags": {n.get("id"): bool(n.get("isRead")) for n in self.state.notifications},
            "unread_count": self.state.unread_count,
        }

        def apply(state: FeedState) -> None:
            for entry in state.notifications:
                entry["isRead"] = True
            state.unread_count = 0

        def compensate(state: FeedState, previous: dict[str, Any]) -> None:
            flags = previous["read_flags"]
            for entry in state.notifications:
                if entry.get("id") in flags:
                    entry["isRead"] = flags[entry["id"]]
            state.unread_count = previous["unread_count"]

        return await self._mutate(
            "mark all notifications as read",
            previous,
            apply,
            compensate,
            lambda: self.api.mark_all_as_read(self.user_id),
        )
