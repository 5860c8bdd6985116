"""
Pydantic v2 schemas for the realtime flash channel
===================================================

Payloads exchanged over Socket.IO between devices and the event bus, plus
the REST presence response.

All payloads use camelCase field names via Pydantic's alias generator to
match the mobile client convention.  Inbound models reject missing or
mistyped required fields; the command handlers treat a
``ValidationError`` as "ignore this command".
"""

from __future__ import annotations

import enum
import time
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _to_camel(snake: str) -> str:
    """Convert a snake_case string to camelCase."""
    parts = snake.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base model that serializes field names to camelCase in JSON."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=_to_camel,
    )

    def to_wire(self) -> dict:
        """Dump by alias, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Event names
# ---------------------------------------------------------------------------

class ClientEvent(str, enum.Enum):
    """Messages sent by devices to the server."""

    JOIN_EVENT = "joinEvent"
    LEAVE_EVENT = "leaveEvent"
    TRIGGER_FLASH = "triggerFlash"
    UPDATE_FLASH_SETTINGS = "updateFlashSettings"
    SEND_EVENT_NOTIFICATION = "sendEventNotification"
    GET_ACTIVE_COUNT = "getActiveCount"


class ServerEvent(str, enum.Enum):
    """Messages sent by the server to devices."""

    ATTENDEE_COUNT_UPDATE = "attendeeCountUpdate"
    FLASH = "flash"
    FLASH_SETTINGS_UPDATED = "flashSettingsUpdated"
    NOTIFICATION = "notification"
    ACTIVE_COUNT = "activeCount"


# ---------------------------------------------------------------------------
# Inbound (client -> server)
# ---------------------------------------------------------------------------

class JoinEventPayload(CamelModel):
    event_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    session_id: Optional[str] = None


class LeaveEventPayload(CamelModel):
    event_id: str = Field(min_length=1)
    user_id: str = Field(min_length=1)


class TriggerFlashPayload(CamelModel):
    event_id: str = Field(min_length=1)
    color: str = Field(min_length=1, description="CSS color, e.g. #FDB913")
    duration: int = Field(ge=0, description="Hold time in milliseconds")
    pattern: Optional[str] = None


class FlashColors(CamelModel):
    color1: str
    color2: str


class UpdateFlashSettingsPayload(CamelModel):
    event_id: str = Field(min_length=1)
    flash_interval: int = Field(ge=0)
    flash_enabled: bool
    colors: FlashColors


class EventNotificationPayload(CamelModel):
    event_id: str = Field(min_length=1)
    title: str
    body: str


class GetActiveCountPayload(CamelModel):
    event_id: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Outbound (server -> client)
# ---------------------------------------------------------------------------

class AttendeeCountUpdate(CamelModel):
    event_id: str
    count: int = Field(ge=0)


class FlashMessage(CamelModel):
    color: str
    duration: int
    pattern: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class FlashSettingsUpdated(CamelModel):
    flash_interval: int
    flash_enabled: bool
    colors: FlashColors


class NotificationMessage(CamelModel):
    title: str
    body: str
    event_id: str
    timestamp: int = Field(default_factory=now_ms)


class ActiveCount(CamelModel):
    count: int = Field(ge=0)


# ---------------------------------------------------------------------------
# REST
# ---------------------------------------------------------------------------

class PresenceResponse(CamelModel):
    """Live attendee count for an event."""

    event_id: str
    count: int = Field(ge=0, description="Distinct users currently joined")
