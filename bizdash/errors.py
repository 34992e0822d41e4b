"""Error taxonomy for the notification pipeline.

Every error carries the HTTP status it maps to. Handlers installed by
``install_error_handlers`` render them as ``{"error": ..., "details": [...]}``.
``TransientDeliveryError`` never reaches a caller: broadcast is best-effort
and the service logs it at the publish boundary.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BizdashError(Exception):
    """Base class for errors raised by bizdash."""

    status_code = 500

    def __init__(self, message: str = "", details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message or self.__class__.__name__
        self.details = details or []

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BizdashError):
    """Malformed or missing payload fields. Lists each violation."""

    status_code = 400

    @property
    def violations(self) -> list[dict[str, Any]]:
        return self.details

    @property
    def fields(self) -> list[str]:
        return [v.get("field", "") for v in self.details]


class AuthenticationError(BizdashError):
    status_code = 401


class ForbiddenError(BizdashError):
    status_code = 403


class NotFoundError(BizdashError):
    status_code = 404


class TransientDeliveryError(BizdashError):
    """Real-time publish failed. Persistence already succeeded."""

    status_code = 503


class UnexpectedError(BizdashError):
    status_code = 500


def violations_from_pydantic(exc: Any) -> list[dict[str, Any]]:
    """Flatten a pydantic ValidationError into ``[{field, message}]``."""
    violations = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        violations.append(
            {
                "field": ".".join(loc) or "body",
                "message": err.get("msg", "invalid value"),
            }
        )
    return violations


async def _bizdash_error_handler(request: Request, exc: BizdashError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    err = ValidationError("Invalid request data", violations_from_pydantic(exc))
    return JSONResponse(err.to_dict(), status_code=err.status_code)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Full detail stays server-side
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def install_error_handlers(app: FastAPI) -> None:
    """Register JSON renderers for the bizdash error taxonomy."""
    app.add_exception_handler(BizdashError, _bizdash_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
