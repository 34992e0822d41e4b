"""Async HTTP client for the tenant notification API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ApiRequestError(Exception):
    """A notification API call failed (transport error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _count(body: dict[str, Any], action: str) -> int:
    try:
        return int(body.get("count", 0))
    except (TypeError, ValueError) as e:
        raise ApiRequestError(f"Failed to {action}: unexpected response body") from e


class NotificationsAPI:
    """Thin wrapper over ``httpx.AsyncClient`` bound to one tenant token."""

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> NotificationsAPI:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, action: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("Failed to %s: %s", action, type(e).__name__)
            raise ApiRequestError(f"Failed to {action}: {e}") from e
        if response.is_error:
            raise ApiRequestError(f"Failed to {action}: {response.status_code}", response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            logger.warning("Failed to %s: response body is not JSON", action)
            raise ApiRequestError(f"Failed to {action}: invalid response body", response.status_code) from e
        if not isinstance(body, dict):
            raise ApiRequestError(f"Failed to {action}: unexpected response body", response.status_code)
        return body

    async def list_notifications(
        self,
        user_id: str | None = None,
        *,
        include_read: bool = True,
        include_dismissed: bool = False,
    ) -> list[dict[str, Any]]:
        params = {
            "includeRead": str(include_read).lower(),
            "includeDismissed": str(include_dismissed).lower(),
        }
        if user_id:
            params["userId"] = user_id
        body = await self._request("GET", "/api/notifications", "fetch notifications", params=params)
        notifications = body.get("notifications", [])
        if not isinstance(notifications, list):
            raise ApiRequestError("Failed to fetch notifications: unexpected response body")
        return notifications

    async def unread_count(self, user_id: str | None = None) -> int:
        params = {"userId": user_id} if user_id else {}
        body = await self._request("GET", "/api/notifications/count", "fetch notification count", params=params)
        return _count(body, "fetch notification count")

    async def mark_as_read(self, notification_id: str) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/api/notifications/{notification_id}", "mark notification as read", json={"isRead": True}
        )

    async def dismiss(self, notification_id: str) -> dict[str, Any]:
        return await self._request(
            "PATCH", f"/api/notifications/{notification_id}", "dismiss notification", json={"isDismissed": True}
        )

    async def mark_all_as_read(self, user_id: str | None = None) -> int:
        body = await self._request(
            "POST", "/api/notifications/mark-all-read", "mark all notifications as read", json={"userId": user_id}
        )
        return _count(body, "mark all notifications as read")
