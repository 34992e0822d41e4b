"""Application service container and FastAPI dependency accessors."""

from __future__ import annotations

from dataclasses import dataclass, field

from fastapi import Request

from bizdash.config import Settings
from bizdash.notifications.service import NotificationService
from bizdash.notifications.store import NotificationStore
from bizdash.orders import ActivityLog, OrderStore
from bizdash.realtime.hub import EventMirror, TenantHub
from bizdash.tenants import TenantStore


@dataclass
class AppServices:
    """Long-lived collaborators shared by every request of one app."""

    settings: Settings
    tenants: TenantStore = field(default_factory=TenantStore)
    orders: OrderStore = field(default_factory=OrderStore)
    activity: ActivityLog = field(default_factory=ActivityLog)
    store: NotificationStore = field(default_factory=NotificationStore)
    hub: TenantHub | None = None
    notifications: NotificationService | None = None

    @classmethod
    def build(cls, settings: Settings, mirror: EventMirror | None = None) -> AppServices:
        services = cls(settings=settings)
        services.hub = TenantHub(queue_size=settings.event_queue_size, mirror=mirror)
        services.notifications = NotificationService(services.store, services.hub)
        return services


def get_services(request: Request) -> AppServices:
    return request.app.state.services
