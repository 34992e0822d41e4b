"""Bizdash notification service entrypoint.

Run with ``uvicorn bizdash.serve:app`` or ``python -m bizdash.serve``.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from bizdash import __version__
from bizdash.bus import EventStreamMirror
from bizdash.config import Settings, settings as default_settings
from bizdash.deps import AppServices
from bizdash.errors import install_error_handlers
from bizdash.notifications.routes import router as notifications_router
from bizdash.realtime.websocket import register_realtime_routes
from bizdash.security.middleware import install_security_middleware
from bizdash.webhooks.handlers import register_webhook_routes
from bizdash.webhooks.settings import router as webhook_settings_router

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Settings | None = None, services: AppServices | None = None) -> FastAPI:
    """Build the FastAPI app with routes, error handlers and security middleware."""
    settings = settings or default_settings
    if services is None:
        mirror = EventStreamMirror(settings.redis_url) if settings.bus_enabled else None
        services = AppServices.build(settings, mirror=mirror)

    app = FastAPI(title="Bizdash Notifications", version=__version__)
    app.state.services = services

    install_error_handlers(app)
    register_webhook_routes(app)
    app.include_router(webhook_settings_router)
    app.include_router(notifications_router)
    register_realtime_routes(app)
    install_security_middleware(app, settings)

    logger.info("Bizdash app created (environment=%s, bus=%s)", settings.environment, settings.bus_enabled)
    return app


configure_logging(default_settings.log_level)
app = create_app()


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", 5000))
    uvicorn.run("bizdash.serve:app", host="0.0.0.0", port=port)
