"""
Pytest configuration and fixtures for ChipLedger tests.

This module provides shared fixtures for testing async FastAPI endpoints
and MongoDB interactions using mongomock-motor (no real MongoDB required).
"""

import os

# Set env vars before any app imports
os.environ.setdefault("DATABASE_NAME", "chipledger_test")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient


@pytest.fixture
def anyio_backend():
    """Specify anyio backend for async tests."""
    return "asyncio"


@pytest_asyncio.fixture
async def test_db():
    """In-memory MongoDB mock database for unit tests.

    Uses mongomock-motor so no real MongoDB instance is needed.
    The database is ephemeral -- it disappears after each test.

    Yields:
        An AsyncIOMotorDatabase-compatible mock database instance.
    """
    client = AsyncMongoMockClient()
    db = client["chipledger_test"]
    yield db
    client.close()


@pytest.fixture
def add_player(test_db):
    """Insert a player into the registry collection and return its id."""

    async def _add(name: str, deleted: bool = False) -> str:
        player_id = ObjectId()
        await test_db["players"].insert_one(
            {"_id": player_id, "name": name, "is_deleted": deleted}
        )
        return str(player_id)

    return _add


@pytest.fixture
def past_window():
    """A (start_time, minimum_cashout_time) pair that is already open for cashout."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    return now - timedelta(hours=3), now - timedelta(hours=1)


@pytest_asyncio.fixture
async def client(test_db):
    """Async HTTP client for testing FastAPI endpoints.

    The lifespan does not run under ASGITransport, so the services are
    wired against the mock database here.

    Yields:
        AsyncClient: HTTPX async client with the FastAPI app.
    """
    from httpx import ASGITransport, AsyncClient
    from chipledger.main import app
    from chipledger.services import build_services

    app.state.services = build_services(test_db)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.services = None
