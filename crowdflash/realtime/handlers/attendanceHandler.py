"""
Attendance Presence Handler
===========================

Commands that mutate or read event presence:

Events received FROM clients:
  joinEvent        { eventId, userId, sessionId }
  leaveEvent       { eventId, userId }
  getActiveCount   { eventId }                     -> ack { count }

Events emitted TO clients:
  attendeeCountUpdate  { eventId, count }   (to the event room)

The implicit ``disconnect`` command removes the departing connection's
users from every event it joined.  A user who is still joined to the same
event from another device stays present.

An explicit ``leaveEvent`` is different: it removes the user from the
event outright, even while another device still holds the same
(eventId, userId).  Those other devices remain in the room and see the
lowered count, and their later disconnect leaves the count alone.

The userId is trusted as supplied; the attendance store (check-in
records) is not consulted here.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from crowdflash.api.schemas.realtime import (
    ActiveCount,
    AttendeeCountUpdate,
    GetActiveCountPayload,
    JoinEventPayload,
    LeaveEventPayload,
    ServerEvent,
)

from ..eventBus import Connection, EventBus

logger = logging.getLogger(__name__)


async def _broadcast_count(bus: EventBus, event_id: str, count: int) -> None:
    await bus.broadcast(
        event_id,
        ServerEvent.ATTENDEE_COUNT_UPDATE.value,
        AttendeeCountUpdate(event_id=event_id, count=count).to_wire(),
    )


async def handle_join(bus: EventBus, conn: Connection, data: Any) -> None:
    """Add the user to the event's presence and room, then announce the count."""
    try:
        payload = JoinEventPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring joinEvent from sid=%s: %d validation errors", conn.sid, exc.error_count())
        return

    count = bus.presence.join(payload.event_id, payload.user_id)
    await bus.join_room(conn, payload.event_id)
    bus.associate(conn, payload.event_id, payload.user_id)
    await _broadcast_count(bus, payload.event_id, count)

    logger.info(
        "User %s (sid=%s session=%s) joined event %s. Active: %d",
        payload.user_id, conn.sid, payload.session_id, payload.event_id, count,
    )


async def handle_leave(bus: EventBus, conn: Connection, data: Any) -> None:
    """Remove the user from the event and announce the count to who remains."""
    try:
        payload = LeaveEventPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring leaveEvent from sid=%s: %d validation errors", conn.sid, exc.error_count())
        return

    await bus.leave_room(conn, payload.event_id)
    bus.dissociate(conn, payload.event_id, payload.user_id)
    count = bus.presence.leave(payload.event_id, payload.user_id)
    await _broadcast_count(bus, payload.event_id, count)

    logger.info("User %s left event %s. Active: %d", payload.user_id, payload.event_id, count)


async def handle_get_count(bus: EventBus, conn: Connection, data: Any) -> None:
    """Reply with the event's current count to the caller only."""
    try:
        payload = GetActiveCountPayload.model_validate(data)
    except ValidationError as exc:
        logger.warning("Ignoring getActiveCount from sid=%s: %d validation errors", conn.sid, exc.error_count())
        return

    count = bus.presence.count(payload.event_id)
    await bus.direct_reply(
        conn,
        ActiveCount(count=count).to_wire(),
        event=ServerEvent.ACTIVE_COUNT.value,
    )


async def handle_disconnect(bus: EventBus, conn: Connection, data: Any = None) -> None:
    """Implicit leave from every event the connection joined."""
    changed: dict[str, int] = {}

    for event_id, user_id in sorted(conn.memberships):
        still_held = bus.dissociate(conn, event_id, user_id)
        if still_held:
            logger.debug(
                "User %s still joined to event %s from %d other connection(s)",
                user_id, event_id, still_held,
            )
            continue
        if bus.presence.contains(event_id, user_id):
            changed[event_id] = bus.presence.leave(event_id, user_id)

    for event_id in list(conn.rooms):
        await bus.leave_room(conn, event_id)

    for event_id, count in changed.items():
        await _broadcast_count(bus, event_id, count)
        logger.info("Disconnect of sid=%s left event %s. Active: %d", conn.sid, event_id, count)

    if not changed:
        logger.info("Client disconnected: sid=%s", conn.sid)
