"""WebSocket endpoint for real-time notifications.

Protocol: JSON text frames ``{"event": <name>, "data": <payload>}``.

The client connects with ``/ws/notifications?token=<JWT>`` and then joins
its tenant room with ``join-tenant``. A token only admits the tenant it was
issued for; joining any other room is refused with an ``error`` frame.
All outbound frames go through the session queue, so one task writes to
the socket.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import FastAPI, Query, WebSocket, WebSocketDisconnect

from bizdash.deps import AppServices
from bizdash.realtime.hub import Subscription, offer_event
from bizdash.realtime.protocol import (
    EVENT_ERROR,
    EVENT_JOIN_TENANT,
    EVENT_LEAVE_TENANT,
    EVENT_NOTIFICATION_RECEIVED,
    EVENT_TENANT_JOINED,
    EVENT_TENANT_LEFT,
    decode_frame,
)
from bizdash.security.auth import TenantContext, verify_token

logger = logging.getLogger(__name__)

_POLICY_VIOLATION = 1008


def _send(sub: Subscription, event: str, data: Any) -> None:
    offer_event(sub.queue, {"event": event, "data": data})


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    """Forward queued room events to the socket until it closes."""
    while True:
        message = await sub.queue.get()
        try:
            await websocket.send_json(message)
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Session %s closed while sending %s", sub.sub_id, message.get("event"))
            return


def _handle_frame(services: AppServices, context: TenantContext, sub: Subscription, raw: str) -> None:
    hub = services.hub
    try:
        event, data = decode_frame(raw)
    except ValueError as e:
        _send(sub, EVENT_ERROR, {"message": str(e)})
        return

    if event == EVENT_JOIN_TENANT:
        tenant_id = str(data) if data is not None else ""
        if tenant_id != context.tenant_id:
            logger.warning("Session %s refused join of tenant room %s", sub.sub_id, tenant_id)
            _send(sub, EVENT_ERROR, {"message": "Not allowed to join this tenant", "event": event})
            return
        hub.join(sub.sub_id, tenant_id)
        _send(sub, EVENT_TENANT_JOINED, {"tenantId": tenant_id})
    elif event == EVENT_LEAVE_TENANT:
        if hub.leave(sub.sub_id, str(data)):
            _send(sub, EVENT_TENANT_LEFT, {"tenantId": str(data)})
    elif event == EVENT_NOTIFICATION_RECEIVED:
        logger.info("Notification %s acknowledged by %s", data, sub.sub_id)
    else:
        _send(sub, EVENT_ERROR, {"message": f"Unknown event: {event}"})


def register_realtime_routes(app: FastAPI) -> None:
    """Register the notifications WebSocket on the app."""

    @app.websocket("/ws/notifications")
    async def notifications_socket(websocket: WebSocket, token: str | None = Query(default=None)):
        services: AppServices = websocket.app.state.services

        origin = websocket.headers.get("origin")
        if origin and origin not in services.settings.cors_origins:
            logger.warning("WebSocket rejected: origin %s not allowed", origin)
            await websocket.close(code=_POLICY_VIOLATION)
            return

        try:
            context = verify_token(services.settings, token or "")
        except ValueError:
            await websocket.close(code=_POLICY_VIOLATION)
            return

        await websocket.accept()
        sub = services.hub.subscribe()
        sender = asyncio.create_task(_pump(websocket, sub))
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                raw = message.get("text")
                if raw is None:
                    _send(sub, EVENT_ERROR, {"message": "Only text frames are supported"})
                    continue
                _handle_frame(services, context, sub, raw)
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            services.hub.unsubscribe(sub.sub_id)
