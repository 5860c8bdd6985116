"""
Realtime Flash Client
=====================

Device-side wrapper around ``socketio.AsyncClient`` for the CrowdFlash
channel.  Mirrors what the mobile app does with its socket hook:

  - connects over websocket with automatic reconnection (5 attempts,
    fixed 1 s backoff)
  - exposes ``is_connected`` and the last connection ``error`` so a UI
    can render a reconnect indicator
  - emits the client commands (join/leave, admin flash, settings,
    notifications, active-count query)
  - fans received server events out to registered listeners and drives
    an optional ``FlashStateMachine`` from every ``flash``

Room membership is not resumed by the server after a reconnect.  The
client remembers the events it joined and re-emits ``joinEvent`` for each
on every (re)connect; joins requested while offline are sent then too.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError
from socketio.exceptions import SocketIOError

from crowdflash.api.schemas.realtime import (
    ClientEvent,
    EventNotificationPayload,
    FlashColors,
    GetActiveCountPayload,
    JoinEventPayload,
    LeaveEventPayload,
    ServerEvent,
    TriggerFlashPayload,
    UpdateFlashSettingsPayload,
)
from crowdflash.core.config import settings

from .flashStateMachine import FlashStateMachine

logger = logging.getLogger(__name__)

RECONNECTION_ATTEMPTS: int = 5
RECONNECTION_DELAY_SECONDS: float = 1.0

Listener = Callable[[Any], Union[None, Awaitable[None]]]


class FlashClient:
    """Connection to the flash-sync channel for one device."""

    def __init__(
        self,
        url: str,
        *,
        token: Optional[str] = None,
        state_machine: Optional[FlashStateMachine] = None,
        socketio_path: str = settings.ws_socketio_path,
        reconnection_attempts: int = RECONNECTION_ATTEMPTS,
        reconnection_delay: float = RECONNECTION_DELAY_SECONDS,
        sio: Optional[socketio.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.token = token
        self.socketio_path = socketio_path
        self.state_machine = state_machine

        self.is_connected = False
        self.error: Optional[str] = None
        self.attendee_counts: dict[str, int] = {}
        self.flash_settings: Optional[dict[str, Any]] = None

        # event_id -> (user_id, session_id) to re-join after reconnect
        self._joined: dict[str, tuple[str, Optional[str]]] = {}
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

        self._sio = sio or socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=reconnection_attempts,
            reconnection_delay=reconnection_delay,
            reconnection_delay_max=reconnection_delay,
            randomization_factor=0,
            logger=False,
        )
        self._sio.on("connect", self._on_connect)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on("connect_error", self._on_connect_error)
        for event in ServerEvent:
            self._sio.on(event.value, self._make_dispatcher(event.value))

    # -- connection ----------------------------------------------------------

    async def connect(self) -> None:
        """Open the socket.  Raises ``socketio.exceptions.ConnectionError``."""
        try:
            await self._sio.connect(
                self.url,
                auth={"token": self.token} if self.token else None,
                transports=["websocket"],
                socketio_path=self.socketio_path,
            )
        except SocketConnectionError as exc:
            self.error = str(exc)
            logger.error("Socket connection error: %s", exc)
            raise

    async def disconnect(self) -> None:
        await self._sio.disconnect()

    async def wait(self) -> None:
        """Block until the connection ends for good (reconnects exhausted)."""
        await self._sio.wait()

    async def _on_connect(self) -> None:
        self.is_connected = True
        self.error = None
        logger.info("Socket connected: %s", self._sio.get_sid())
        for event_id, (user_id, session_id) in list(self._joined.items()):
            await self._emit_join(event_id, user_id, session_id)

    async def _on_disconnect(self, reason: Any = None) -> None:
        self.is_connected = False
        logger.info("Socket disconnected: %s", reason)

    async def _on_connect_error(self, data: Any = None) -> None:
        self.is_connected = False
        self.error = data.get("message") if isinstance(data, dict) else str(data)
        logger.warning("Socket connection error: %s", self.error)

    # -- commands ------------------------------------------------------------

    async def join_event(self, event_id: str, user_id: str, session_id: Optional[str] = None) -> bool:
        """Join an event room for flash synchronization."""
        self._joined[event_id] = (user_id, session_id)
        return await self._emit_join(event_id, user_id, session_id)

    async def leave_event(self, event_id: str, user_id: str) -> bool:
        self._joined.pop(event_id, None)
        payload = LeaveEventPayload(event_id=event_id, user_id=user_id)
        return await self._emit(ClientEvent.LEAVE_EVENT, payload.to_wire())

    async def trigger_flash(
        self,
        event_id: str,
        color: str,
        duration: int,
        pattern: Optional[str] = None,
    ) -> bool:
        """Trigger a flash for everyone in the event (admin only)."""
        payload = TriggerFlashPayload(event_id=event_id, color=color, duration=duration, pattern=pattern)
        return await self._emit(ClientEvent.TRIGGER_FLASH, payload.to_wire())

    async def update_flash_settings(
        self,
        event_id: str,
        flash_interval: int,
        flash_enabled: bool,
        colors: dict[str, str],
    ) -> bool:
        """Update flash settings for an event (admin only)."""
        payload = UpdateFlashSettingsPayload(
            event_id=event_id,
            flash_interval=flash_interval,
            flash_enabled=flash_enabled,
            colors=FlashColors.model_validate(colors),
        )
        return await self._emit(ClientEvent.UPDATE_FLASH_SETTINGS, payload.to_wire())

    async def send_event_notification(self, event_id: str, title: str, body: str) -> bool:
        """Send a notification to event attendees (admin only)."""
        payload = EventNotificationPayload(event_id=event_id, title=title, body=body)
        return await self._emit(ClientEvent.SEND_EVENT_NOTIFICATION, payload.to_wire())

    async def get_active_count(self, event_id: str, *, timeout: Optional[float] = None) -> Optional[int]:
        """Ask the server for the event's live count.

        Waits indefinitely unless ``timeout`` is given.  Returns None when
        offline or when the server acknowledged without a count.
        """
        if not self.is_connected:
            logger.warning("getActiveCount skipped, socket not connected")
            return None
        payload = GetActiveCountPayload(event_id=event_id)
        reply = await self._sio.call(ClientEvent.GET_ACTIVE_COUNT.value, payload.to_wire(), timeout=timeout)
        if isinstance(reply, dict) and "count" in reply:
            return int(reply["count"])
        return None

    async def _emit_join(self, event_id: str, user_id: str, session_id: Optional[str]) -> bool:
        payload = JoinEventPayload(event_id=event_id, user_id=user_id, session_id=session_id)
        sent = await self._emit(ClientEvent.JOIN_EVENT, payload.to_wire())
        if sent:
            logger.info("Joined event %s", event_id)
        return sent

    async def _emit(self, event: ClientEvent, payload: dict[str, Any]) -> bool:
        if not self.is_connected:
            logger.debug("%s not sent, socket not connected", event.value)
            return False
        try:
            await self._sio.emit(event.value, payload)
        except SocketIOError as exc:
            logger.warning("Emit of %s failed: %s", event.value, exc)
            return False
        return True

    # -- listeners -----------------------------------------------------------

    def on_flash(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(ServerEvent.FLASH.value, callback)

    def on_attendee_count_update(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(ServerEvent.ATTENDEE_COUNT_UPDATE.value, callback)

    def on_flash_settings_updated(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(ServerEvent.FLASH_SETTINGS_UPDATED.value, callback)

    def on_notification(self, callback: Listener) -> Callable[[], None]:
        return self._subscribe(ServerEvent.NOTIFICATION.value, callback)

    def _subscribe(self, event: str, callback: Listener) -> Callable[[], None]:
        self._listeners[event].append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return unsubscribe

    def _make_dispatcher(self, event: str) -> Callable[[Any], Awaitable[None]]:
        async def _handler(data: Any = None) -> None:
            await self._dispatch(event, data)

        return _handler

    async def _dispatch(self, event: str, data: Any) -> None:
        if event == ServerEvent.FLASH.value and self.state_machine is not None and isinstance(data, dict):
            self.state_machine.handle_event(data)
        elif event == ServerEvent.ATTENDEE_COUNT_UPDATE.value and isinstance(data, dict):
            if "eventId" in data and "count" in data:
                self.attendee_counts[data["eventId"]] = data["count"]
        elif event == ServerEvent.FLASH_SETTINGS_UPDATED.value and isinstance(data, dict):
            self.flash_settings = data

        for callback in list(self._listeners[event]):
            try:
                result = callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener for %s failed", event)
