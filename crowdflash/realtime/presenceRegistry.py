"""
Presence Registry
=================

In-memory map of event id -> set of distinct user ids currently joined to
that event's realtime room.  Used only for the live attendee count shown
on devices and admin dashboards.

Invariants:
  - A user id appears at most once per event (joins are idempotent).
  - An event entry is deleted as soon as its set becomes empty, so the
    map never accumulates empty sets.

Concurrency model: the registry is owned by a single ``EventBus`` and is
only touched from that bus's asyncio event loop, so no locking is done.
State is process-lifetime only and resets on restart.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Distinct-user presence per event."""

    def __init__(self) -> None:
        self._event_users: dict[str, set[str]] = {}

    def join(self, event_id: str, user_id: str) -> int:
        """Add ``user_id`` to the event.  Returns the new attendee count."""
        users = self._event_users.setdefault(event_id, set())
        users.add(user_id)
        return len(users)

    def leave(self, event_id: str, user_id: str) -> int:
        """Remove ``user_id`` from the event if present.

        Deletes the event entry when the last user leaves.  Returns the
        new attendee count (0 for an unknown event).
        """
        users = self._event_users.get(event_id)
        if users is None:
            return 0
        users.discard(user_id)
        if not users:
            del self._event_users[event_id]
            logger.debug("Presence entry removed for event=%s", event_id)
            return 0
        return len(users)

    def count(self, event_id: str) -> int:
        """Current attendee count for the event, 0 if it has no entry."""
        return len(self._event_users.get(event_id, ()))

    def contains(self, event_id: str, user_id: str) -> bool:
        return user_id in self._event_users.get(event_id, ())

    def events(self) -> list[str]:
        """Event ids with at least one present user."""
        return list(self._event_users)

    def clear(self) -> None:
        self._event_users.clear()

    def __len__(self) -> int:
        return len(self._event_users)
