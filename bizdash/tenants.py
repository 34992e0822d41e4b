"""Tenant records with their webhook configuration.

Secret contract:
- A tenant has at most one active webhook secret (32 random bytes, hex)
- Generating a secret replaces the previous one immediately, no overlap
- A tenant without a secret accepts unsigned webhooks (explicit opt-in to
  enforcement by generating a secret)
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from bizdash.notifications.models import utcnow

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_BYTES = 32

RETRY_ATTEMPTS_RANGE = (1, 10)
TIMEOUT_MS_RANGE = (5000, 120000)

ENDPOINT_KINDS = ("orders", "notifications", "payments")


def generate_webhook_secret() -> str:
    return secrets.token_hex(WEBHOOK_SECRET_BYTES)


def secret_preview(secret: str | None) -> str | None:
    """Masked form safe to display: first 8 and last 4 characters."""
    if not secret:
        return None
    return f"{secret[:8]}...{secret[-4:]}"


@dataclass
class TenantWebhookConfig:
    """A tenant and its webhook settings."""

    tenant_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    webhook_secret: str | None = None
    webhook_enabled: bool = True
    endpoints: dict[str, bool] = field(default_factory=lambda: {k: True for k in ENDPOINT_KINDS})
    retry_attempts: int = 3
    timeout_ms: int = 30000
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def has_secret(self) -> bool:
        return bool(self.webhook_secret)

    def endpoint_enabled(self, kind: str) -> bool:
        return self.webhook_enabled and self.endpoints.get(kind, False)


class TenantStore:
    """In-memory tenant registry."""

    def __init__(self):
        self._tenants: dict[str, TenantWebhookConfig] = {}

    def create(self, name: str = "", tenant_id: str | None = None) -> TenantWebhookConfig:
        tenant = TenantWebhookConfig(name=name)
        if tenant_id:
            tenant.tenant_id = str(tenant_id)
        if tenant.tenant_id in self._tenants:
            raise ValueError(f"Tenant already exists: {tenant.tenant_id}")
        self._tenants[tenant.tenant_id] = tenant
        logger.info("Tenant created: %s (%s)", tenant.tenant_id, name or "unnamed")
        return tenant

    def get(self, tenant_id: str) -> TenantWebhookConfig | None:
        return self._tenants.get(str(tenant_id))

    def rotate_secret(self, tenant_id: str) -> str | None:
        """Generate and store a new webhook secret. Returns None for unknown tenants."""
        tenant = self.get(tenant_id)
        if tenant is None:
            return None
        tenant.webhook_secret = generate_webhook_secret()
        tenant.updated_at = utcnow()
        logger.info("New webhook secret generated for tenant %s", tenant_id)
        return tenant.webhook_secret

    def update_settings(
        self,
        tenant_id: str,
        *,
        webhook_enabled: bool | None = None,
        endpoints: dict[str, bool] | None = None,
        retry_attempts: int | None = None,
        timeout_ms: int | None = None,
    ) -> TenantWebhookConfig | None:
        tenant = self.get(tenant_id)
        if tenant is None:
            return None
        if retry_attempts is not None and not RETRY_ATTEMPTS_RANGE[0] <= retry_attempts <= RETRY_ATTEMPTS_RANGE[1]:
            raise ValueError(f"retry_attempts out of range: {retry_attempts}")
        if timeout_ms is not None and not TIMEOUT_MS_RANGE[0] <= timeout_ms <= TIMEOUT_MS_RANGE[1]:
            raise ValueError(f"timeout_ms out of range: {timeout_ms}")

        if webhook_enabled is not None:
            tenant.webhook_enabled = webhook_enabled
        if endpoints:
            for kind, enabled in endpoints.items():
                if kind in ENDPOINT_KINDS and enabled is not None:
                    tenant.endpoints[kind] = bool(enabled)
        if retry_attempts is not None:
            tenant.retry_attempts = retry_attempts
        if timeout_ms is not None:
            tenant.timeout_ms = timeout_ms
        tenant.updated_at = utcnow()
        logger.info("Webhook settings updated for tenant %s", tenant_id)
        return tenant

    def __len__(self) -> int:
        return len(self._tenants)
