"""Webhook payload schemas, one per resource kind.

Payload keys are camelCase on the wire; violations are reported under the
same camelCase names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from bizdash.notifications.models import NotificationPriority, NotificationType
from bizdash.orders import OrderStatus


class WebhookModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def _require_number(value: Any) -> Any:
    # Numeric strings and booleans are not amounts
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    return value


class OrderItemPayload(WebhookModel):
    product_id: str | None = None
    product_name: str = Field(min_length=1)
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)

    @field_validator("price", mode="before")
    @classmethod
    def price_is_number(cls, value: Any) -> Any:
        return _require_number(value)


class OrderWebhookPayload(WebhookModel):
    tenant_id: str = Field(min_length=1)
    order_number: str = Field(min_length=1)
    customer_name: str = Field(min_length=1)
    customer_email: EmailStr | None = None
    amount: float = Field(ge=0)
    status: OrderStatus = OrderStatus.PENDING
    items: list[OrderItemPayload] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_is_number(cls, value: Any) -> Any:
        return _require_number(value)


class NotificationWebhookPayload(WebhookModel):
    tenant_id: str = Field(min_length=1)
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


PAID_STATUSES = frozenset({"paid", "completed"})


class PaymentWebhookPayload(WebhookModel):
    tenant_id: str = Field(min_length=1)
    order_id: str = Field(min_length=1)
    order_number: str | None = None
    amount: float = Field(ge=0)
    status: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("amount", mode="before")
    @classmethod
    def amount_is_number(cls, value: Any) -> Any:
        return _require_number(value)

    @property
    def is_paid(self) -> bool:
        return self.status.lower() in PAID_STATUSES
