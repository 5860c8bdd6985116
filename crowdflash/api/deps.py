"""
Shared FastAPI dependencies for the CrowdFlash backend.

Provides access to the application's ``EventBus`` (and through it the
live presence registry) from route handlers.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from crowdflash.realtime.eventBus import EventBus


def get_event_bus(request: Request) -> EventBus:
    """Return the running event bus attached to the app at startup.

    Usage in a route::

        @router.get("/items")
        async def list_items(bus: EventBusDep):
            ...
    """
    bus: EventBus | None = getattr(request.app.state, "bus", None)
    if bus is None or not bus.running:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Realtime bus is not running",
        )
    return bus


EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
