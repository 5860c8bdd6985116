"""
WebSocket Server
================

Socket.IO transport for the CrowdFlash flash-sync channel.  Devices join
the room of the event they are checked in to; admins push flash commands,
flash settings and notifications that are fanned out to every device in
that room.

Architecture:
  - python-socketio ``AsyncServer`` wrapped around the FastAPI app as an
    ASGI application
  - In-memory client manager only: single process, no Redis adapter
  - Optional JWT on connect (``auth: { token }``) establishing user_id and
    role; anonymous connections are accepted, bad tokens are rejected
  - ``EventNamespace`` callbacks never execute commands themselves, they
    enqueue into the ``EventBus`` mailbox of the calling connection

Connection lifecycle:
  1. Client connects, optionally with ``auth: { token: "<jwt>" }``
  2. Server registers the connection with the bus (mailbox + worker)
  3. Client emits ``joinEvent`` for the event it is checked in to
  4. On disconnect, the bus performs an implicit leave for every event
     the connection joined
"""

from __future__ import annotations

import logging
from typing import Any

import socketio

from crowdflash.api.schemas.realtime import ClientEvent
from crowdflash.core.config import Settings, settings
from crowdflash.services.auth_service import decode_access_token

from .eventBus import EventBus, Identity
from .handlers import COMMAND_HANDLERS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Socket.IO server instance
# ---------------------------------------------------------------------------

def create_socket_server(app_settings: Settings = settings) -> socketio.AsyncServer:
    """Build the Socket.IO server with the default in-memory client manager."""
    return socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=app_settings.cors_origins,
        logger=False,
        engineio_logger=False,
        ping_timeout=app_settings.ws_ping_timeout,
        ping_interval=app_settings.ws_ping_interval,
        max_http_buffer_size=1_000_000,  # 1 MB
    )


# ---------------------------------------------------------------------------
# Authentication helper
# ---------------------------------------------------------------------------

def _resolve_identity(auth: Any) -> Identity | None:
    """Identity for a connect attempt, or None when it must be rejected.

    No token means an anonymous connection.  A token that fails
    verification is a rejection.
    """
    token = auth.get("token") if isinstance(auth, dict) else None
    if not token:
        return Identity()
    payload = decode_access_token(token)
    if payload is None:
        return None
    return Identity(user_id=str(payload["sub"]), role=str(payload["role"]))


# ---------------------------------------------------------------------------
# Namespace: socket callbacks -> bus mailbox
# ---------------------------------------------------------------------------

class EventNamespace(socketio.AsyncNamespace):
    """Default namespace handlers.  Method names follow the wire event names."""

    def __init__(self, bus: EventBus, namespace: str = "/") -> None:
        super().__init__(namespace)
        self.bus = bus

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any = None) -> bool:
        identity = _resolve_identity(auth)
        if identity is None:
            logger.info("Connection rejected for sid=%s -- authentication failed", sid)
            return False

        self.bus.connect(sid, identity)
        logger.info(
            "Client connected: sid=%s user_id=%s role=%s",
            sid, identity.user_id, identity.role,
        )
        return True

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        logger.debug("Disconnect received: sid=%s reason=%s", sid, reason)
        await self.bus.disconnect(sid)

    async def on_joinEvent(self, sid: str, data: Any = None) -> None:
        self.bus.submit(sid, ClientEvent.JOIN_EVENT.value, data)

    async def on_leaveEvent(self, sid: str, data: Any = None) -> None:
        self.bus.submit(sid, ClientEvent.LEAVE_EVENT.value, data)

    async def on_triggerFlash(self, sid: str, data: Any = None) -> None:
        self.bus.submit(sid, ClientEvent.TRIGGER_FLASH.value, data)

    async def on_updateFlashSettings(self, sid: str, data: Any = None) -> None:
        self.bus.submit(sid, ClientEvent.UPDATE_FLASH_SETTINGS.value, data)

    async def on_sendEventNotification(self, sid: str, data: Any = None) -> None:
        self.bus.submit(sid, ClientEvent.SEND_EVENT_NOTIFICATION.value, data)

    async def on_getActiveCount(self, sid: str, data: Any = None) -> dict[str, Any] | None:
        """Acknowledged with ``{count}`` once the command reaches the front of the mailbox."""
        reply = self.bus.submit(sid, ClientEvent.GET_ACTIVE_COUNT.value, data, expect_reply=True)
        if reply is None:
            return None
        return await reply


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def create_event_bus(sio: socketio.AsyncServer, app_settings: Settings = settings) -> EventBus:
    """Create the bus over ``sio`` and register the default namespace on it."""
    bus = EventBus(
        sio,
        COMMAND_HANDLERS,
        mailbox_size=app_settings.ws_mailbox_size,
        enforce_admin_commands=app_settings.ws_enforce_admin_commands,
    )
    sio.register_namespace(EventNamespace(bus))
    return bus


def create_socket_app(
    sio: socketio.AsyncServer,
    other_asgi_app: Any = None,
    app_settings: Settings = settings,
) -> socketio.ASGIApp:
    """ASGI app serving Socket.IO and delegating everything else (incl. lifespan)."""
    return socketio.ASGIApp(
        socketio_server=sio,
        other_asgi_app=other_asgi_app,
        socketio_path=app_settings.ws_socketio_path,
    )
