"""
CrowdFlash Real-time Module
===========================

Socket.IO server, event bus and command handlers for the synchronized
flash screen.

Usage in FastAPI app startup::

    from crowdflash.realtime import create_event_bus, create_socket_server

    sio = create_socket_server()
    bus = create_event_bus(sio)
    await bus.start()

The bus owns the presence registry; nothing in this package keeps
presence in module-level state.
"""

from __future__ import annotations

from .eventBus import Connection, EventBus, Identity, room_for_event
from .presenceRegistry import PresenceRegistry
from .socketServer import (
    EventNamespace,
    create_event_bus,
    create_socket_app,
    create_socket_server,
)

__all__ = [
    "Connection",
    "EventBus",
    "EventNamespace",
    "Identity",
    "PresenceRegistry",
    "create_event_bus",
    "create_socket_app",
    "create_socket_server",
    "room_for_event",
]
