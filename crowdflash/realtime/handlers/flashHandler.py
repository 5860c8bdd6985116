"""
Flash Sync Handler
==================

Admin commands that drive the synchronized flash screen.  Neither command
mutates server state; both fan a payload out to the event room.

Events received FROM clients (admin only):
  triggerFlash          { eventId, color, duration, pattern? }
  updateFlashSettings   { eventId, flashInterval, flashEnabled, colors }

Events emitted TO clients:
  flash                 { color, duration, pattern?, timestamp }
  flashSettingsUpdated  { flashInterval, flashEnabled, colors }

The flash timestamp is taken once per trigger, so every device in the
room receives the identical payload.  ``duration`` is passed through
unclamped.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from crowdflash.api.schemas.realtime import (
    ClientEvent,
    FlashMessage,
    FlashSettingsUpdated,
    ServerEvent,
    TriggerFlashPayload,
    UpdateFlashSettingsPayload,
)

from ..eventBus import Connection, EventBus

logger = logging.getLogger(__name__)


async def handle_trigger_flash(bus: EventBus, conn: Connection, data: Any) -> None:
    """Broadcast a flash command to every device in the event room."""
    if not bus.authorize_admin(conn, ClientEvent.TRIGGER_FLASH.value):
        return
    try:
        payload = TriggerFlashPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring triggerFlash from sid=%s: %d validation errors", conn.sid, exc.error_count())
        return

    message = FlashMessage(
        color=payload.color,
        duration=payload.duration,
        pattern=payload.pattern,
    )
    recipients = await bus.broadcast(payload.event_id, ServerEvent.FLASH.value, message.to_wire())

    logger.info(
        "Admin triggering flash for event %s: %s for %dms (%d devices)",
        payload.event_id, payload.color, payload.duration, recipients,
    )


async def handle_update_settings(bus: EventBus, conn: Connection, data: Any) -> None:
    """Broadcast new flash settings.  Nothing is persisted."""
    if not bus.authorize_admin(conn, ClientEvent.UPDATE_FLASH_SETTINGS.value):
        return
    try:
        payload = UpdateFlashSettingsPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Ignoring updateFlashSettings from sid=%s: %d validation errors",
            conn.sid, exc.error_count(),
        )
        return

    message = FlashSettingsUpdated(
        flash_interval=payload.flash_interval,
        flash_enabled=payload.flash_enabled,
        colors=payload.colors,
    )
    await bus.broadcast(payload.event_id, ServerEvent.FLASH_SETTINGS_UPDATED.value, message.to_wire())

    logger.info(
        "Updating flash settings for event %s: interval=%d enabled=%s",
        payload.event_id, payload.flash_interval, payload.flash_enabled,
    )
