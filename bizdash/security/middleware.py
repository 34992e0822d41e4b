"""Security middleware for FastAPI: auth, CORS, rate limiting.

Middleware ordering (outermost first):
1. CORS -- handles OPTIONS preflight before auth
2. Rate limiting -- reject floods before processing
3. Auth -- verify Bearer token, inject tenant context
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from bizdash.config import Settings
from bizdash.errors import AuthenticationError
from bizdash.security.auth import (
    SKIP_METHODS,
    TenantContext,
    extract_bearer_token,
    is_public,
    verify_token,
)

logger = logging.getLogger(__name__)

# Only trust X-Forwarded-For when set
_TRUSTED_PROXIES = os.environ.get("TRUSTED_PROXIES", "")


def _get_client_ip(request: Request) -> str:
    """Extract client IP, respecting TRUSTED_PROXIES config."""
    if _TRUSTED_PROXIES:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


class AuthMiddleware(BaseHTTPMiddleware):
    """Authenticate every /api request outside the public allowlist.

    Runs AFTER CORS middleware (so OPTIONS preflights are already handled).
    Runs BEFORE request body parsing (so unauthenticated POST returns 401 not 400).
    """

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self._settings = settings

    async def dispatch(self, request: Request, call_next):
        method = request.method
        path = request.url.path

        if not path.startswith("/api") or method in SKIP_METHODS:
            return await call_next(request)

        if is_public(method, path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        if not token:
            return JSONResponse(
                {"error": "Authentication required"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            context = verify_token(self._settings, token)
        except ValueError as e:
            logger.debug("Auth failed: %s", e)
            return JSONResponse(
                {"error": "Invalid or expired credentials"},
                status_code=401,
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.tenant = context
        return await call_next(request)


def get_tenant_context(request: Request) -> TenantContext:
    """FastAPI dependency: the authenticated tenant of this request."""
    context = getattr(request.state, "tenant", None)
    if context is None:
        # Only reachable when the auth middleware is not installed
        raise AuthenticationError("Authentication required")
    return context


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_security_middleware(app: FastAPI, settings: Settings) -> None:
    """Install all security middleware on the FastAPI app.

    Call this AFTER all routes are registered but BEFORE the app starts.
    Middleware is added in reverse order (last added = outermost = runs first).
    """
    # 3. Auth middleware (innermost -- runs last, after CORS and rate limit)
    app.add_middleware(AuthMiddleware, settings=settings)

    # 2. Rate limiting
    app.state.limiter = Limiter(
        key_func=_get_client_ip,
        default_limits=[settings.rate_limit],
        enabled=settings.rate_limit_enabled,
    )
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # 1. CORS middleware (outermost -- runs first, handles OPTIONS preflight)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
