"""Order records created by the order webhook, plus the activity log.

Only the slice of the order domain the webhooks touch lives here: creation,
status change on payment, and compensating removal when the follow-up
notification write fails.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from bizdash.notifications.models import utcnow

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    REFUNDED = "refunded"
    CANCELED = "canceled"


@dataclass
class OrderItem:
    product_name: str
    quantity: int
    price: float
    product_id: str | None = None


@dataclass
class Order:
    tenant_id: str
    order_number: str
    customer_name: str
    amount: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    customer_email: str | None = None
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItem] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class OrderStore:
    """In-memory, tenant-scoped order collection."""

    def __init__(self):
        self._orders: dict[tuple[str, str], Order] = {}

    def create(self, order: Order) -> Order:
        self._orders[(order.tenant_id, order.id)] = order
        logger.info("Order created: %s (tenant=%s)", order.order_number, order.tenant_id)
        return order

    def get(self, tenant_id: str, order_id: str) -> Order | None:
        return self._orders.get((str(tenant_id), str(order_id)))

    def update_status(self, tenant_id: str, order_id: str, status: OrderStatus) -> Order | None:
        order = self.get(tenant_id, order_id)
        if order is None:
            return None
        order.status = status
        order.updated_at = utcnow()
        return order

    def remove(self, tenant_id: str, order_id: str) -> bool:
        return self._orders.pop((str(tenant_id), str(order_id)), None) is not None

    def for_tenant(self, tenant_id: str) -> list[Order]:
        tenant_id = str(tenant_id)
        return [o for o in self._orders.values() if o.tenant_id == tenant_id]

    def __len__(self) -> int:
        return len(self._orders)


@dataclass
class ActivityEntry:
    tenant_id: str
    activity_type: str
    description: str
    entity_type: str = ""
    entity_id: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


class ActivityLog:
    """Append-only tenant activity feed (webhook audit trail)."""

    def __init__(self, max_entries: int = 5000):
        self._entries: list[ActivityEntry] = []
        self._max_entries = max_entries

    def record(self, entry: ActivityEntry) -> ActivityEntry:
        self._entries.append(entry)
        if len(self._entries) > self._max_entries:
            del self._entries[: len(self._entries) - self._max_entries]
        return entry

    def for_tenant(self, tenant_id: str) -> list[ActivityEntry]:
        tenant_id = str(tenant_id)
        return [e for e in self._entries if e.tenant_id == tenant_id]
