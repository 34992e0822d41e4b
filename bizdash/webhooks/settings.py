"""Webhook settings API — per-tenant webhook configuration.

The full secret is only returned by generate-secret and the explicit
secret route; every other response carries the masked preview.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from bizdash.deps import AppServices, get_services
from bizdash.errors import NotFoundError, ValidationError
from bizdash.notifications.models import NotificationPriority, NotificationType
from bizdash.security.auth import TenantContext
from bizdash.security.middleware import get_tenant_context
from bizdash.tenants import (
    RETRY_ATTEMPTS_RANGE,
    TIMEOUT_MS_RANGE,
    TenantWebhookConfig,
    secret_preview,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks/settings", tags=["webhooks"])


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class EndpointSwitches(_CamelModel):
    orders: bool | None = None
    notifications: bool | None = None
    payments: bool | None = None


class WebhookSettingsUpdate(_CamelModel):
    webhook_enabled: bool | None = None
    webhook_endpoints: EndpointSwitches | None = None
    webhook_retry_attempts: int | None = Field(default=None, ge=RETRY_ATTEMPTS_RANGE[0], le=RETRY_ATTEMPTS_RANGE[1])
    webhook_timeout_ms: int | None = Field(default=None, ge=TIMEOUT_MS_RANGE[0], le=TIMEOUT_MS_RANGE[1])


def _tenant_or_404(services: AppServices, tenant_id: str) -> TenantWebhookConfig:
    tenant = services.tenants.get(tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


def _webhook_urls(base_url: str) -> dict[str, str]:
    base = base_url.rstrip("/")
    return {
        kind: f"{base}/api/webhooks/{kind}"
        for kind in ("orders", "notifications", "payments", "health")
    }


def _settings_view(tenant: TenantWebhookConfig) -> dict:
    return {
        "webhookEnabled": tenant.webhook_enabled,
        "webhookEndpoints": dict(tenant.endpoints),
        "webhookRetryAttempts": tenant.retry_attempts,
        "webhookTimeoutMs": tenant.timeout_ms,
    }


@router.get("")
async def get_webhook_settings(
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Current webhook configuration, without exposing the full secret."""
    tenant = _tenant_or_404(services, context.tenant_id)
    return {
        **_settings_view(tenant),
        "hasWebhookSecret": tenant.has_secret,
        "webhookSecretPreview": secret_preview(tenant.webhook_secret),
        "webhookUrls": _webhook_urls(services.settings.public_base_url),
    }


@router.patch("")
async def update_webhook_settings(
    body: WebhookSettingsUpdate,
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    endpoints = body.webhook_endpoints.model_dump(exclude_none=True) if body.webhook_endpoints else None
    try:
        tenant = services.tenants.update_settings(
            context.tenant_id,
            webhook_enabled=body.webhook_enabled,
            endpoints=endpoints,
            retry_attempts=body.webhook_retry_attempts,
            timeout_ms=body.webhook_timeout_ms,
        )
    except ValueError as e:
        raise ValidationError("Invalid webhook settings data", [{"field": "body", "message": str(e)}]) from e
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return {"message": "Webhook settings updated successfully", "settings": _settings_view(tenant)}


@router.post("/generate-secret")
async def generate_secret(
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Generate a new secret, replacing the previous one. Shown in full once."""
    secret = services.tenants.rotate_secret(context.tenant_id)
    if secret is None:
        raise NotFoundError("Tenant not found")
    return {
        "message": "Webhook secret generated successfully",
        "secret": secret,
        "preview": secret_preview(secret),
    }


@router.get("/secret")
async def get_secret(
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    tenant = _tenant_or_404(services, context.tenant_id)
    if not tenant.has_secret:
        raise NotFoundError("No webhook secret configured")
    return {"secret": tenant.webhook_secret, "preview": secret_preview(tenant.webhook_secret)}


@router.post("/test")
async def test_webhook_configuration(
    context: TenantContext = Depends(get_tenant_context),
    services: AppServices = Depends(get_services),
):
    """Create a test notification to verify the pipeline end to end."""
    tenant = _tenant_or_404(services, context.tenant_id)
    if not tenant.webhook_enabled:
        raise ValidationError("Webhooks are not enabled for this tenant")

    now = datetime.now(timezone.utc).isoformat()
    notification = services.notifications.create_notification(
        tenant.tenant_id,
        "Webhook Test",
        "This is a test notification to verify your webhook configuration is working correctly.",
        type=NotificationType.INFO,
        priority=NotificationPriority.LOW,
        metadata={"test": True, "timestamp": now, "source": "webhook-settings-test"},
    )
    logger.info("Webhook test notification created for tenant %s", tenant.tenant_id)
    return {
        "message": "Webhook test completed successfully",
        "testNotificationId": notification.id,
        "timestamp": now,
    }
