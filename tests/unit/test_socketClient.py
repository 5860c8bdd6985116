"""
Unit tests for the device-side realtime client.

``socketio.AsyncClient`` is replaced by a mock so tests can trigger the
handlers the client registered and inspect what it emitted.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from socketio.exceptions import BadNamespaceError
from socketio.exceptions import ConnectionError as SocketConnectionError

from crowdflash.client.flashStateMachine import FlashState, FlashStateMachine
from crowdflash.client.socketClient import FlashClient


@pytest.fixture
def sio() -> MagicMock:
    client = MagicMock()
    client.connect = AsyncMock()
    client.disconnect = AsyncMock()
    client.emit = AsyncMock()
    client.call = AsyncMock()
    client.wait = AsyncMock()
    client.get_sid = MagicMock(return_value="sid-1")
    return client


def _handler(sio: MagicMock, event: str):
    for call in sio.on.call_args_list:
        if call.args[0] == event:
            return call.args[1]
    raise AssertionError(f"no handler registered for {event}")


@pytest.fixture
def client(sio) -> FlashClient:
    return FlashClient("http://localhost:3000", sio=sio)


@pytest_asyncio.fixture
async def connected(client, sio) -> FlashClient:
    await _handler(sio, "connect")()
    return client


# ---------------------------------------------------------------------------
# Connection state
# ---------------------------------------------------------------------------


class TestConnection:
    def test_registers_all_server_events(self, client, sio):
        registered = {call.args[0] for call in sio.on.call_args_list}
        assert {
            "connect",
            "disconnect",
            "connect_error",
            "attendeeCountUpdate",
            "flash",
            "flashSettingsUpdated",
            "notification",
            "activeCount",
        } <= registered

    def test_default_client_reconnects_five_times_fixed_backoff(self):
        client = FlashClient("http://localhost:3000")
        assert client._sio.reconnection is True
        assert client._sio.reconnection_attempts == 5
        assert client._sio.reconnection_delay == 1.0
        assert client._sio.reconnection_delay_max == 1.0

    @pytest.mark.asyncio
    async def test_connect_passes_token_and_path(self, sio):
        client = FlashClient("http://host", token="jwt-123", sio=sio, socketio_path="ws/socket.io")
        await client.connect()

        sio.connect.assert_awaited_once_with(
            "http://host",
            auth={"token": "jwt-123"},
            transports=["websocket"],
            socketio_path="ws/socket.io",
        )

    @pytest.mark.asyncio
    async def test_connect_failure_records_error(self, client, sio):
        sio.connect.side_effect = SocketConnectionError("refused")

        with pytest.raises(SocketConnectionError):
            await client.connect()
        assert client.error == "refused"
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_status_flag_follows_connect_and_disconnect(self, client, sio):
        assert client.is_connected is False
        await _handler(sio, "connect")()
        assert client.is_connected is True
        await _handler(sio, "disconnect")("transport close")
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_error_sets_message(self, client, sio):
        await _handler(sio, "connect_error")({"message": "unauthorized"})
        assert client.error == "unauthorized"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_join_emits_camel_case(self, connected, sio):
        assert await connected.join_event("E1", "U1", "S1") is True
        sio.emit.assert_awaited_once_with("joinEvent", {"eventId": "E1", "userId": "U1", "sessionId": "S1"})

    @pytest.mark.asyncio
    async def test_join_while_offline_is_sent_on_connect(self, client, sio):
        assert await client.join_event("E1", "U1") is False
        sio.emit.assert_not_awaited()

        await _handler(sio, "connect")()

        sio.emit.assert_awaited_once_with("joinEvent", {"eventId": "E1", "userId": "U1"})

    @pytest.mark.asyncio
    async def test_rejoins_after_reconnect(self, connected, sio):
        await connected.join_event("E1", "U1", "S1")
        await _handler(sio, "disconnect")()
        sio.emit.reset_mock()

        await _handler(sio, "connect")()

        sio.emit.assert_awaited_once_with("joinEvent", {"eventId": "E1", "userId": "U1", "sessionId": "S1"})

    @pytest.mark.asyncio
    async def test_leave_forgets_membership(self, connected, sio):
        await connected.join_event("E1", "U1")
        await connected.leave_event("E1", "U1")
        sio.emit.assert_awaited_with("leaveEvent", {"eventId": "E1", "userId": "U1"})
        sio.emit.reset_mock()

        await _handler(sio, "connect")()
        sio.emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_flash_omits_missing_pattern(self, connected, sio):
        await connected.trigger_flash("E1", "#FDB913", 500)
        sio.emit.assert_awaited_once_with("triggerFlash", {"eventId": "E1", "color": "#FDB913", "duration": 500})

    @pytest.mark.asyncio
    async def test_update_flash_settings(self, connected, sio):
        await connected.update_flash_settings("E1", 1500, True, {"color1": "#FDB913", "color2": "#FFFFFF"})
        sio.emit.assert_awaited_once_with(
            "updateFlashSettings",
            {
                "eventId": "E1",
                "flashInterval": 1500,
                "flashEnabled": True,
                "colors": {"color1": "#FDB913", "color2": "#FFFFFF"},
            },
        )

    @pytest.mark.asyncio
    async def test_send_event_notification(self, connected, sio):
        await connected.send_event_notification("E1", "Halftime", "Phones up")
        sio.emit.assert_awaited_once_with(
            "sendEventNotification",
            {"eventId": "E1", "title": "Halftime", "body": "Phones up"},
        )

    @pytest.mark.asyncio
    async def test_get_active_count(self, connected, sio):
        sio.call.return_value = {"count": 7}

        assert await connected.get_active_count("E1") == 7
        sio.call.assert_awaited_once_with("getActiveCount", {"eventId": "E1"}, timeout=None)

    @pytest.mark.asyncio
    async def test_get_active_count_offline(self, client, sio):
        assert await client.get_active_count("E1") is None
        sio.call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_emit_failure_returns_false(self, connected, sio):
        sio.emit.side_effect = BadNamespaceError("/ is not a connected namespace.")
        assert await connected.trigger_flash("E1", "red", 10) is False


# ---------------------------------------------------------------------------
# Listeners
# ---------------------------------------------------------------------------


class TestListeners:
    @pytest.mark.asyncio
    async def test_flash_drives_state_machine(self, sio):
        scheduler = MagicMock()
        machine = FlashStateMachine(MagicMock(), scheduler=scheduler)
        client = FlashClient("http://host", sio=sio, state_machine=machine)

        await _handler(sio, "flash")({"color": "#FDB913", "duration": 500, "timestamp": 1})

        assert machine.state is FlashState.FADING_IN
        assert machine.color == "#FDB913"

    @pytest.mark.asyncio
    async def test_flash_listener_and_unsubscribe(self, client, sio):
        received = []
        unsubscribe = client.on_flash(received.append)

        await _handler(sio, "flash")({"color": "red", "duration": 1, "timestamp": 1})
        unsubscribe()
        await _handler(sio, "flash")({"color": "blue", "duration": 1, "timestamp": 2})

        assert [e["color"] for e in received] == ["red"]

    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self, client, sio):
        listener = AsyncMock()
        client.on_notification(listener)

        payload = {"title": "t", "body": "b", "eventId": "E1", "timestamp": 1}
        await _handler(sio, "notification")(payload)

        listener.assert_awaited_once_with(payload)

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_block_others(self, client, sio):
        after = MagicMock()
        client.on_attendee_count_update(MagicMock(side_effect=RuntimeError("ui gone")))
        client.on_attendee_count_update(after)

        await _handler(sio, "attendeeCountUpdate")({"eventId": "E1", "count": 2})

        after.assert_called_once()
        assert client.attendee_counts == {"E1": 2}

    @pytest.mark.asyncio
    async def test_flash_settings_are_kept(self, client, sio):
        settings = {"flashInterval": 1000, "flashEnabled": False, "colors": {"color1": "a", "color2": "b"}}
        seen = []
        client.on_flash_settings_updated(seen.append)

        await _handler(sio, "flashSettingsUpdated")(settings)

        assert client.flash_settings == settings
        assert seen == [settings]
