"""Webhook HTTP handlers — FastAPI route handlers for inbound webhooks.

Each handler:
1. Reads raw body (needed for HMAC verification)
2. Resolves the tenant named by the payload's tenantId
3. Checks the tenant's webhook switches
4. Verifies the signature when the tenant has a secret
5. Validates the payload schema for the resource kind
6. Writes the domain object, then creates and pushes the notification

Failure contract:
- 400 malformed JSON / schema violations (field list, no side effects)
- 401 signature missing or wrong (logged with tenant id, never the secret)
- 403 webhooks or this endpoint disabled for the tenant
- 404 unknown tenant (or unknown order for a payment)
- 500 persistence failure; earlier writes of the same request are undone
- Broadcast failures are logged only; the stored records stand
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from bizdash.deps import AppServices, get_services
from bizdash.errors import (
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    UnexpectedError,
    ValidationError,
    violations_from_pydantic,
)
from bizdash.orders import ActivityEntry, Order, OrderItem, OrderStatus
from bizdash.realtime.protocol import EVENT_DASHBOARD_REFRESH
from bizdash.security.auth import TenantContext
from bizdash.security.middleware import get_tenant_context
from bizdash.tenants import TenantWebhookConfig
from bizdash.webhooks.schemas import (
    NotificationWebhookPayload,
    OrderWebhookPayload,
    PaymentWebhookPayload,
)
from bizdash.webhooks.verification import SIGNATURE_HEADER, verify_tenant_webhook

logger = logging.getLogger(__name__)

# Webhook receive counters per tenant and kind (in-memory)
_webhook_counts: dict[str, dict[str, int]] = {}


def _log_webhook(kind: str, tenant_id: str, status: str) -> None:
    """Audit log for webhook activity."""
    counts = _webhook_counts.setdefault(tenant_id or "unknown", {})
    counts[kind] = counts.get(kind, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT kind=%s tenant=%s status=%s count=%d",
        kind,
        tenant_id or "unknown",
        status,
        counts[kind],
    )


def webhook_counts(tenant_id: str) -> dict[str, int]:
    return dict(_webhook_counts.get(tenant_id, {}))


async def _authenticate(request: Request, kind: str) -> tuple[TenantWebhookConfig, dict[str, Any]]:
    """Run steps 1-4. Returns the tenant and the parsed (unvalidated) payload."""
    services = get_services(request)
    body = await request.body()
    headers = {k.lower(): v for k, v in request.headers.items()}

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        _log_webhook(kind, "", "invalid_json")
        raise ValidationError(
            "Invalid webhook data",
            [{"field": "body", "message": "Request body must be a JSON object"}],
        )
    if not isinstance(payload, dict):
        _log_webhook(kind, "", "invalid_json")
        raise ValidationError(
            "Invalid webhook data",
            [{"field": "body", "message": "Request body must be a JSON object"}],
        )

    tenant_id = payload.get("tenantId")
    if not isinstance(tenant_id, str) or not tenant_id:
        _log_webhook(kind, "", "missing_tenant")
        raise ValidationError(
            "Invalid webhook data",
            [{"field": "tenantId", "message": "Field required"}],
        )

    tenant = services.tenants.get(tenant_id)
    if tenant is None:
        _log_webhook(kind, tenant_id, "unknown_tenant")
        raise NotFoundError("Tenant not found")

    if not tenant.webhook_enabled:
        _log_webhook(kind, tenant_id, "disabled")
        raise ForbiddenError("Webhooks are disabled for this tenant")
    if not tenant.endpoint_enabled(kind):
        _log_webhook(kind, tenant_id, "endpoint_disabled")
        raise ForbiddenError(f"{kind.capitalize()} webhooks are disabled for this tenant")

    if not verify_tenant_webhook(tenant, body, headers):
        _log_webhook(kind, tenant_id, "signature_failed")
        if SIGNATURE_HEADER not in headers:
            raise AuthenticationError("Webhook signature required but not provided")
        raise AuthenticationError("Invalid webhook signature")

    return tenant, payload


def _validate(model: type[BaseModel], payload: dict[str, Any], kind: str, tenant_id: str) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        _log_webhook(kind, tenant_id, "invalid_payload")
        raise ValidationError("Invalid webhook data", violations_from_pydantic(e)) from e


def _process_order(services: AppServices, data: OrderWebhookPayload) -> Order:
    order = services.orders.create(
        Order(
            tenant_id=data.tenant_id,
            order_number=data.order_number,
            customer_name=data.customer_name,
            customer_email=str(data.customer_email) if data.customer_email else None,
            amount=data.amount,
            status=data.status,
            items=[
                OrderItem(
                    product_name=item.product_name,
                    quantity=item.quantity,
                    price=item.price,
                    product_id=item.product_id,
                )
                for item in data.items
            ],
            metadata=data.metadata,
        )
    )

    try:
        services.notifications.notify_new_order(
            data.tenant_id,
            {
                "id": order.id,
                "orderNumber": order.order_number,
                "customerName": order.customer_name,
                "amount": order.amount,
            },
        )
    except Exception as e:
        services.orders.remove(order.tenant_id, order.id)
        logger.exception("Notification write failed; order %s rolled back", order.order_number)
        raise UnexpectedError("Failed to process order webhook") from e

    services.activity.record(
        ActivityEntry(
            tenant_id=data.tenant_id,
            activity_type="order_created_webhook",
            description=f"Order {order.order_number} created via webhook",
            entity_type="order",
            entity_id=order.id,
            metadata={
                "orderNumber": order.order_number,
                "customerName": order.customer_name,
                "amount": order.amount,
                "source": "webhook",
            },
        )
    )
    services.notifications.broadcast_to_tenant(
        data.tenant_id,
        EVENT_DASHBOARD_REFRESH,
        {"type": "new-order", "orderId": order.id},
    )
    return order


def _process_payment(services: AppServices, data: PaymentWebhookPayload) -> bool:
    """Apply a payment. Returns False when the status needs no action."""
    if not data.is_paid:
        return False

    order = services.orders.get(data.tenant_id, data.order_id)
    if order is None:
        raise NotFoundError("Order not found")

    previous_status = order.status
    services.orders.update_status(data.tenant_id, data.order_id, OrderStatus.PAID)
    order_number = data.order_number or order.order_number

    try:
        services.notifications.notify_payment_received(
            data.tenant_id,
            {
                "id": data.payment_id,
                "orderId": data.order_id,
                "orderNumber": order_number,
                "amount": data.amount,
            },
        )
    except Exception as e:
        services.orders.update_status(data.tenant_id, data.order_id, previous_status)
        logger.exception("Notification write failed; payment %s not applied", data.payment_id)
        raise UnexpectedError("Failed to process payment webhook") from e

    services.activity.record(
        ActivityEntry(
            tenant_id=data.tenant_id,
            activity_type="payment_received_webhook",
            description=f"Payment received for order {order_number}",
            entity_type="payment",
            entity_id=data.payment_id,
            metadata={
                "orderId": data.order_id,
                "orderNumber": order_number,
                "amount": data.amount,
                "paymentId": data.payment_id,
                "source": "webhook",
            },
        )
    )
    services.notifications.broadcast_to_tenant(
        data.tenant_id,
        EVENT_DASHBOARD_REFRESH,
        {"type": "payment-received", "orderId": data.order_id, "paymentId": data.payment_id},
    )
    return True


def register_webhook_routes(app: FastAPI) -> None:
    """Register webhook endpoint routes on the FastAPI app.

    Call this BEFORE install_security_middleware() so routes are available
    for middleware to inspect.
    """

    @app.post("/api/webhooks/orders")
    async def order_webhook(request: Request):
        """Receive order events (signature-verified when the tenant has a secret)."""
        start = time.time()
        tenant, payload = await _authenticate(request, "orders")
        data = _validate(OrderWebhookPayload, payload, "orders", tenant.tenant_id)
        order = _process_order(get_services(request), data)
        _log_webhook("orders", tenant.tenant_id, "processed")
        logger.debug("Order webhook processed in %.1fms", (time.time() - start) * 1000)
        return JSONResponse(
            {
                "success": True,
                "message": "Order created successfully",
                "orderId": order.id,
                "orderNumber": order.order_number,
            }
        )

    @app.post("/api/webhooks/notifications")
    async def notification_webhook(request: Request):
        """Receive custom notifications for the dashboard."""
        tenant, payload = await _authenticate(request, "notifications")
        data = _validate(NotificationWebhookPayload, payload, "notifications", tenant.tenant_id)
        services = get_services(request)
        try:
            notification = services.notifications.create_notification(
                data.tenant_id,
                data.title,
                data.message,
                user_id=data.user_id,
                type=data.type,
                priority=data.priority,
                action_url=data.action_url,
                action_text=data.action_text,
                entity_type=data.entity_type,
                entity_id=data.entity_id,
                metadata=data.metadata,
                expires_at=data.expires_at,
            )
        except Exception as e:
            raise UnexpectedError("Failed to process notification webhook") from e
        _log_webhook("notifications", tenant.tenant_id, "processed")
        return JSONResponse(
            {
                "success": True,
                "message": "Notification created successfully",
                "notificationId": notification.id,
            }
        )

    @app.post("/api/webhooks/payments")
    async def payment_webhook(request: Request):
        """Receive payment confirmations from payment processors."""
        tenant, payload = await _authenticate(request, "payments")
        data = _validate(PaymentWebhookPayload, payload, "payments", tenant.tenant_id)
        applied = _process_payment(get_services(request), data)
        _log_webhook("payments", tenant.tenant_id, "processed" if applied else "acknowledged")
        return JSONResponse({"success": True, "message": "Payment webhook processed successfully"})

    @app.get("/api/webhooks/health")
    async def webhook_health():
        """Liveness probe for webhook monitoring (public)."""
        return {
            "status": "ok",
            "service": "webhook-service",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/webhooks/status")
    async def webhook_status(request: Request):
        """Webhook receive counts for the caller's tenant (requires auth)."""
        context: TenantContext = get_tenant_context(request)
        return {"counts": webhook_counts(context.tenant_id)}

    logger.info("Webhook routes registered: /api/webhooks/{orders,notifications,payments}")
