"""
E2E test fixtures for the CrowdFlash backend.

Provides:
- A fresh FastAPI app per test, with its own Socket.IO server and bus
- The app's lifespan entered, so the bus is running
- httpx AsyncClient wired via ASGI transport (no network needed)
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from crowdflash.main import create_app


@pytest_asyncio.fixture
async def app() -> AsyncGenerator[FastAPI, None]:
    application = create_app()
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
