"""
Unit tests for the Socket.IO namespace: connect authentication, command
intake into the bus and the getActiveCount acknowledgement.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
import socketio

from crowdflash.core.config import Settings
from crowdflash.realtime.socketServer import (
    EventNamespace,
    _resolve_identity,
    create_event_bus,
    create_socket_app,
    create_socket_server,
)
from crowdflash.services.auth_service import ROLE_ADMIN, create_access_token


@pytest.fixture
def namespace(bus) -> EventNamespace:
    return EventNamespace(bus)


class TestResolveIdentity:
    def test_no_auth_is_anonymous(self):
        identity = _resolve_identity(None)
        assert identity is not None
        assert identity.user_id is None
        assert identity.role is None

    def test_empty_token_is_anonymous(self):
        assert _resolve_identity({"token": ""}).user_id is None

    def test_valid_token_sets_identity(self):
        token, _ = create_access_token("admin-1", ROLE_ADMIN)
        identity = _resolve_identity({"token": token})
        assert identity.user_id == "admin-1"
        assert identity.role == ROLE_ADMIN

    def test_bad_token_rejects(self):
        assert _resolve_identity({"token": "not-a-jwt"}) is None

    def test_expired_token_rejects(self):
        token, _ = create_access_token("U1", expires_in=timedelta(seconds=-5))
        assert _resolve_identity({"token": token}) is None


class TestConnect:
    @pytest.mark.asyncio
    async def test_anonymous_connect_registers_connection(self, namespace, bus):
        assert await namespace.on_connect("sid-1", {}) is True
        assert bus.get_connection("sid-1") is not None

    @pytest.mark.asyncio
    async def test_admin_token_marks_connection(self, namespace, bus):
        token, _ = create_access_token("admin-1", ROLE_ADMIN)
        await namespace.on_connect("sid-1", {}, {"token": token})
        assert bus.get_connection("sid-1").is_admin

    @pytest.mark.asyncio
    async def test_invalid_token_refuses_connection(self, namespace, bus):
        assert await namespace.on_connect("sid-1", {}, {"token": "garbage"}) is False
        assert bus.get_connection("sid-1") is None


class TestCommands:
    @pytest.mark.asyncio
    async def test_join_then_count_ack(self, namespace, bus, join):
        await namespace.on_connect("sid-1", {})
        await namespace.on_joinEvent("sid-1", join("E1", "U1"))

        ack = await namespace.on_getActiveCount("sid-1", {"eventId": "E1"})

        assert ack == {"count": 1}

    @pytest.mark.asyncio
    async def test_count_ack_for_unknown_sid_is_empty(self, namespace):
        assert await namespace.on_getActiveCount("ghost", {"eventId": "E1"}) is None

    @pytest.mark.asyncio
    async def test_flash_reaches_room(self, namespace, bus, fake_sio, join):
        await namespace.on_connect("sid-1", {})
        await namespace.on_joinEvent("sid-1", join("E1", "U1"))
        await namespace.on_triggerFlash("sid-1", {"eventId": "E1", "color": "#FDB913", "duration": 500})
        await bus.flush()

        [flash] = fake_sio.received("sid-1", "flash")
        assert flash["color"] == "#FDB913"

    @pytest.mark.asyncio
    async def test_disconnect_leaves_event(self, namespace, bus, fake_sio, join):
        await namespace.on_connect("sid-1", {})
        await namespace.on_connect("sid-2", {})
        await namespace.on_joinEvent("sid-1", join("E1", "U1"))
        await namespace.on_joinEvent("sid-2", join("E1", "U2"))
        await bus.flush()

        await namespace.on_disconnect("sid-1", "transport close")
        await bus.flush()

        assert bus.presence.count("E1") == 1
        assert fake_sio.received("sid-2", "attendeeCountUpdate")[-1] == {"eventId": "E1", "count": 1}


class TestWiring:
    def test_factories_build_an_asgi_app(self):
        app_settings = Settings(allowed_origins="https://a.example, https://b.example")
        sio = create_socket_server(app_settings)
        bus = create_event_bus(sio, app_settings)

        assert isinstance(sio, socketio.AsyncServer)
        assert bus.mailbox_size == app_settings.ws_mailbox_size
        assert isinstance(create_socket_app(sio, None, app_settings), socketio.ASGIApp)

    def test_default_path_is_the_socketio_client_default(self):
        assert Settings().ws_socketio_path == "socket.io"
