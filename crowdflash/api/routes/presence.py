"""
Presence API Routes
===================

Read-only REST view of live event presence, for dashboards and devices
that are not holding a socket.  Complements the ``getActiveCount``
socket command in ``crowdflash/realtime/handlers/attendanceHandler.py``.

Routes:
  GET    /api/v1/events/{event_id}/presence   -- Live attendee count

Counts reflect the in-memory registry of this process only; check-in
records in the attendance store are not consulted.
"""

from __future__ import annotations

from fastapi import APIRouter

from crowdflash.api.deps import EventBusDep
from crowdflash.api.schemas.realtime import PresenceResponse

router = APIRouter(prefix="/events", tags=["Presence"])


# ---------------------------------------------------------------------------
# GET /api/v1/events/{event_id}/presence -- Live attendee count
# ---------------------------------------------------------------------------

@router.get(
    "/{event_id}/presence",
    response_model=PresenceResponse,
    response_model_by_alias=True,
    summary="Get the live attendee count for an event",
    description=(
        "Returns the number of distinct users currently joined to the "
        "event's realtime room. Unknown events report a count of zero."
    ),
)
async def get_presence(event_id: str, bus: EventBusDep) -> PresenceResponse:
    return PresenceResponse(event_id=event_id, count=bus.presence.count(event_id))
