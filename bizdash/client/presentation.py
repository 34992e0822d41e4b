"""Display lookups for notifications, keyed by type and priority."""

from __future__ import annotations

from typing import Any

ICONS = {
    "order": ("📦", "text-blue-500"),
    "payment": ("💳", "text-green-500"),
    "warning": ("⚠️", "text-yellow-500"),
    "error": ("❌", "text-red-500"),
    "success": ("✅", "text-green-500"),
    "system": ("⚙️", "text-gray-500"),
    "info": ("ℹ️", "text-blue-500"),
}

PRIORITY_COLORS = {
    "urgent": "bg-red-100 border-red-200 text-red-800",
    "high": "bg-orange-100 border-orange-200 text-orange-800",
    "medium": "bg-blue-100 border-blue-200 text-blue-800",
    "low": "bg-gray-100 border-gray-200 text-gray-800",
}

URGENT_TOAST_SECONDS = 10.0
DEFAULT_TOAST_SECONDS = 5.0


def icon_for(type: str | None) -> tuple[str, str]:
    """(glyph, css class) for a notification type. Unknown types render as info."""
    return ICONS.get(type or "", ICONS["info"])


def color_for(priority: str | None) -> str:
    return PRIORITY_COLORS.get(priority or "", PRIORITY_COLORS["low"])


def toast_variant(notification: dict[str, Any]) -> str:
    return "destructive" if notification.get("type") == "error" else "default"


def toast_duration(notification: dict[str, Any]) -> float:
    """Seconds a toast stays on screen."""
    if notification.get("priority") == "urgent":
        return URGENT_TOAST_SECONDS
    return DEFAULT_TOAST_SECONDS
