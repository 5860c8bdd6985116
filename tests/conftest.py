"""
Shared pytest fixtures for CrowdFlash unit tests.

Provides an in-memory stand-in for ``socketio.AsyncServer`` that records
room membership and per-connection deliveries, and a running ``EventBus``
wired to the production command handlers.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable

import pytest
import pytest_asyncio

from crowdflash.realtime.eventBus import EventBus, Identity
from crowdflash.realtime.handlers import COMMAND_HANDLERS


# ---------------------------------------------------------------------------
# Socket.IO server double
# ---------------------------------------------------------------------------


class FakeSocketServer:
    """Records what a real ``AsyncServer`` would deliver to each sid."""

    def __init__(self) -> None:
        self.rooms: dict[str, set[str]] = defaultdict(set)
        self.inbox: dict[str, list[tuple[str, Any]]] = defaultdict(list)
        self.emitted: list[dict[str, Any]] = []
        self.fail_emits = False

    async def enter_room(self, sid: str, room: str, namespace: str | None = None) -> None:
        self.rooms[room].add(sid)

    async def leave_room(self, sid: str, room: str, namespace: str | None = None) -> None:
        self.rooms[room].discard(sid)

    async def emit(
        self,
        event: str,
        data: Any = None,
        to: str | None = None,
        room: str | None = None,
        skip_sid: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if self.fail_emits:
            raise ConnectionError("transport closed")
        self.emitted.append({"event": event, "data": data, "to": to, "room": room})
        targets = {to} if to else set(self.rooms.get(room, ()))
        for sid in sorted(targets):
            if sid != skip_sid:
                self.inbox[sid].append((event, data))

    def received(self, sid: str, event: str | None = None) -> list[Any]:
        """Payloads delivered to ``sid``, optionally filtered by event name."""
        return [data for name, data in self.inbox[sid] if event is None or name == event]


# ---------------------------------------------------------------------------
# Bus fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest_asyncio.fixture
async def bus(fake_sio: FakeSocketServer):
    """A started bus with open enforcement of admin commands."""
    event_bus = EventBus(fake_sio, COMMAND_HANDLERS, mailbox_size=16)
    await event_bus.start()
    yield event_bus
    await event_bus.close()


@pytest_asyncio.fixture
async def strict_bus(fake_sio: FakeSocketServer):
    """A started bus that requires the admin role for admin commands."""
    event_bus = EventBus(
        fake_sio,
        COMMAND_HANDLERS,
        mailbox_size=16,
        enforce_admin_commands=True,
    )
    await event_bus.start()
    yield event_bus
    await event_bus.close()


@pytest.fixture
def admin_identity() -> Identity:
    return Identity(user_id="admin-1", role="admin")


@pytest.fixture
def join() -> Callable[..., dict[str, Any]]:
    """Build a ``joinEvent`` wire payload."""

    def _build(event_id: str, user_id: str, session_id: str = "session-1") -> dict[str, Any]:
        return {"eventId": event_id, "userId": user_id, "sessionId": session_id}

    return _build
