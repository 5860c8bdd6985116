"""
CrowdFlash Command Handlers
===========================

One coroutine per inbound command, keyed by wire event name:
  - attendanceHandler   -- joinEvent, leaveEvent, getActiveCount, disconnect
  - flashHandler        -- triggerFlash, updateFlashSettings (admin)
  - notificationHandler -- sendEventNotification (admin)

``COMMAND_HANDLERS`` is handed to the ``EventBus``; handlers never reach
for module-level state, everything flows through the bus argument.
"""

from __future__ import annotations

from crowdflash.api.schemas.realtime import ClientEvent

from ..eventBus import DISCONNECT_COMMAND, CommandHandler
from . import attendanceHandler, flashHandler, notificationHandler

COMMAND_HANDLERS: dict[str, CommandHandler] = {
    ClientEvent.JOIN_EVENT.value: attendanceHandler.handle_join,
    ClientEvent.LEAVE_EVENT.value: attendanceHandler.handle_leave,
    ClientEvent.GET_ACTIVE_COUNT.value: attendanceHandler.handle_get_count,
    ClientEvent.TRIGGER_FLASH.value: flashHandler.handle_trigger_flash,
    ClientEvent.UPDATE_FLASH_SETTINGS.value: flashHandler.handle_update_settings,
    ClientEvent.SEND_EVENT_NOTIFICATION.value: notificationHandler.handle_notify,
    DISCONNECT_COMMAND: attendanceHandler.handle_disconnect,
}

__all__ = [
    "COMMAND_HANDLERS",
    "attendanceHandler",
    "flashHandler",
    "notificationHandler",
]
