"""Shared fixtures for the bizdash test suite.

- ``settings``: test configuration (no .env, rate limiting off)
- ``services`` / ``app`` / ``client``: a fresh app per test; the TestClient is
  entered as a context manager so HTTP and WebSocket calls share one loop
- ``tenant`` / ``other_tenant`` and ``make_auth_header`` for tenant auth
"""

from __future__ import annotations

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from bizdash.config import Settings
from bizdash.deps import AppServices
from bizdash.security.auth import create_token
from bizdash.serve import create_app
from bizdash.webhooks import handlers


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="development",
        jwt_secret="test-jwt-secret-0123456789abcdef0123456789abcdef",
        cors_origins=["http://localhost:3000"],
        public_base_url="https://dash.example.com",
        rate_limit_enabled=False,
        bus_enabled=False,
    )


@pytest.fixture()
def services(settings) -> AppServices:
    return AppServices.build(settings)


@pytest.fixture()
def app(settings, services):
    return create_app(settings, services)


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture(autouse=True)
def _reset_webhook_counts():
    handlers._webhook_counts.clear()
    yield
    handlers._webhook_counts.clear()


@pytest.fixture()
def tenant(services):
    return services.tenants.create("Acme Store", tenant_id="tenant-a")


@pytest.fixture()
def other_tenant(services):
    return services.tenants.create("Globex", tenant_id="tenant-b")


@pytest.fixture()
def make_auth_header(settings):
    """Factory: Authorization header for a tenant (and optional user)."""

    def _make(tenant_id: str, user_id: str | None = "user-1", expires_in: int | None = None) -> dict[str, str]:
        token = create_token(settings, tenant_id, user_id=user_id, expires_in=expires_in)
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture()
def auth_headers(make_auth_header, tenant):
    return make_auth_header(tenant.tenant_id)


@pytest.fixture()
def sign():
    """Serialize a payload and sign it: returns (body_bytes, headers)."""

    def _sign(payload: dict, secret: str | None) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(payload).encode()
        headers = {"Content-Type": "application/json"}
        if secret:
            headers["x-webhook-signature"] = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        return body, headers

    return _sign
