"""Webhook signature verification — constant-time HMAC-SHA256.

Security contract:
- Signature = hex(HMAC-SHA256(tenant_secret, raw_body)) in x-webhook-signature
- Computed over the raw request bytes, never over re-serialized JSON
- All comparisons use hmac.compare_digest() (constant-time)
- Tenant WITH a secret: missing or wrong signature -> reject
- Tenant WITHOUT a secret: no signature required (fail-open by tenant
  choice; enforcement starts once a secret is generated)
"""

from __future__ import annotations

import hashlib
import hmac
import logging

from bizdash.tenants import TenantWebhookConfig

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-webhook-signature"


def compute_signature(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body under the tenant secret."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature_header: str | None, secret: str) -> bool:
    """Verify a hex HMAC-SHA256 signature.

    Args:
        body: Raw request body bytes
        signature_header: Value of the x-webhook-signature header
        secret: Tenant webhook secret

    Returns:
        True if signature is valid
    """
    if not secret or not signature_header:
        return False

    expected = compute_signature(secret, body)
    provided = signature_header.strip().lower()
    return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))


def signature_required(tenant: TenantWebhookConfig) -> bool:
    return tenant.has_secret


def verify_tenant_webhook(tenant: TenantWebhookConfig, body: bytes, headers: dict[str, str]) -> bool:
    """Verify a webhook for a tenant.

    Args:
        tenant: Resolved tenant configuration
        body: Raw request body
        headers: Request headers (lowercase keys)

    Returns:
        True if the request may proceed
    """
    if not signature_required(tenant):
        logger.debug("Tenant %s has no webhook secret; signature not required", tenant.tenant_id)
        return True

    signature = headers.get(SIGNATURE_HEADER)
    if not signature:
        logger.warning("Webhook rejected: missing signature for tenant %s", tenant.tenant_id)
        return False

    if not verify_signature(body, signature, tenant.webhook_secret or ""):
        logger.warning("Invalid webhook signature for tenant %s", tenant.tenant_id)
        return False
    return True
