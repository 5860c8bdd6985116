"""
Event Notification Handler
==========================

Admin broadcast of an in-app notification to everyone in an event room.
Delivery is realtime only; there is no push fallback for devices that are
not connected.

Events received FROM clients (admin only):
  sendEventNotification   { eventId, title, body }

Events emitted TO clients:
  notification            { title, body, eventId, timestamp }
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from crowdflash.api.schemas.realtime import (
    ClientEvent,
    EventNotificationPayload,
    NotificationMessage,
    ServerEvent,
)

from ..eventBus import Connection, EventBus

logger = logging.getLogger(__name__)


async def handle_notify(bus: EventBus, conn: Connection, data: Any) -> None:
    if not bus.authorize_admin(conn, ClientEvent.SEND_EVENT_NOTIFICATION.value):
        return
    try:
        payload = EventNotificationPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning(
            "Ignoring sendEventNotification from sid=%s: %d validation errors",
            conn.sid, exc.error_count(),
        )
        return

    message = NotificationMessage(
        title=payload.title,
        body=payload.body,
        event_id=payload.event_id,
    )
    recipients = await bus.broadcast(payload.event_id, ServerEvent.NOTIFICATION.value, message.to_wire())
    logger.info("Sent notification for event %s to %d devices", payload.event_id, recipients)
