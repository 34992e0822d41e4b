"""Tenant API authentication — HS256 JWT bearer tokens.

Claims: ``sub`` (user id), ``tenant_id``, ``iat``, ``exp``. The same token
authenticates the WebSocket channel through the ``?token=`` query parameter
(browsers cannot set headers on a WebSocket handshake).

Webhook POST routes are public at this layer: they authenticate by HMAC
signature in the handler instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from bizdash.config import Settings

logger = logging.getLogger(__name__)

# Paths that skip authentication (exact method + path match)
PUBLIC_ALLOWLIST: set[tuple[str, str]] = {
    ("GET", "/api/webhooks/health"),
}

# Webhook receivers: signature-verified by the handler, not token-verified
WEBHOOK_PUBLIC_PATHS = frozenset(
    {
        "/api/webhooks/orders",
        "/api/webhooks/notifications",
        "/api/webhooks/payments",
    }
)

SKIP_METHODS = frozenset({"OPTIONS", "HEAD"})


@dataclass(frozen=True)
class TenantContext:
    """Identity attached to an authenticated request."""

    tenant_id: str
    user_id: str | None = None
    role: str = "member"


def is_webhook_path(path: str) -> bool:
    return path in WEBHOOK_PUBLIC_PATHS


def is_public(method: str, path: str) -> bool:
    if (method, path) in PUBLIC_ALLOWLIST:
        return True
    return method == "POST" and is_webhook_path(path)


def create_token(
    settings: Settings,
    tenant_id: str,
    user_id: str | None = None,
    role: str = "member",
    expires_in: int | None = None,
) -> str:
    """Create a tenant-scoped JWT."""
    now = datetime.now(timezone.utc)
    ttl = settings.token_ttl_seconds if expires_in is None else expires_in
    payload = {
        "sub": user_id or "",
        "tenant_id": str(tenant_id),
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=ttl),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(settings: Settings, token: str) -> TenantContext:
    """Verify a JWT and return its tenant context.

    Raises ValueError if the token is invalid, expired or carries no tenant.
    """
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise ValueError(f"Invalid token: {e}") from e

    tenant_id = claims.get("tenant_id")
    if not tenant_id:
        raise ValueError("Token without tenant")
    return TenantContext(
        tenant_id=str(tenant_id),
        user_id=claims.get("sub") or None,
        role=claims.get("role", "member"),
    )


def extract_bearer_token(header: str | None) -> str | None:
    """Take ``Authorization: Bearer <token>`` and return the token."""
    if not header or not header.startswith("Bearer "):
        return None
    token = header.removeprefix("Bearer ").strip()
    return token or None
