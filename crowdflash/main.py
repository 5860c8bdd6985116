"""CrowdFlash Realtime -- Main Application Entry Point

Creates the FastAPI application, configures CORS middleware, registers the
REST routes under the /api/v1 prefix, and wraps everything in the
Socket.IO ASGI application for real-time WebSocket communication.

Run with::

    uvicorn crowdflash.main:asgi_app --host 0.0.0.0 --port 3000

or ``python -m crowdflash``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from crowdflash.core.config import Settings, settings
from crowdflash.realtime import create_event_bus, create_socket_app, create_socket_server


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Startup:
      - Start the event bus, which creates the presence registry.

    Shutdown:
      - Close the bus: stop mailbox workers, clear presence and rooms.
    """
    bus = app.state.bus
    await bus.start()

    yield

    await bus.close()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(app_settings: Settings = settings) -> FastAPI:
    """Build the FastAPI app with its own Socket.IO server and event bus."""
    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        lifespan=lifespan,
    )

    sio = create_socket_server(app_settings)
    app.state.sio = sio
    app.state.bus = create_event_bus(sio, app_settings)

    # -- CORS middleware --
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if app_settings.cors_origins == "*" else app_settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # -- Health check --
    @app.get("/health", tags=["Health"])
    async def health():
        """Lightweight health check for load balancers and readiness probes."""
        return {
            "status": "ok",
            "version": app_settings.app_version,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # -- API route modules --
    from crowdflash.api.routes import presence

    app.include_router(presence.router, prefix=app_settings.api_v1_prefix)

    return app


# ---------------------------------------------------------------------------
# Application instances
# ---------------------------------------------------------------------------

app = create_app()

# Socket.IO in front, FastAPI (routes + lifespan) behind it
asgi_app = create_socket_app(app.state.sio, app)
