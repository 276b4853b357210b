"""
Notekeeper Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the whole suite.
How:   Storage runs in memory or on in-memory SQLite (aiosqlite); HTTP
       tests drive the ASGI app through httpx without a server, with the
       signed-in user injected through a dependency override.

Fixture Hierarchy:
    clock ─┐
    memory_client ──▶ note_store ──▶ app ──▶ test_client
    sql_client                  image_service ─┘
    storage_client (memory and sql, parametrized)
"""

import os
import tempfile
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool


# ══════════════════════════════════════════════════════════════════════════
# Environment Setup
# ══════════════════════════════════════════════════════════════════════════

# Must run before notekeeper.config is imported anywhere
os.environ["DATA_BACKEND"] = "memory"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-not-real"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="notekeeper_test_")
os.environ["LOG_LEVEL"] = "WARNING"

from notekeeper.database import create_tables  # noqa: E402
from notekeeper.services.identity import CurrentUser, get_current_user  # noqa: E402
from notekeeper.services.image_service import ImageService  # noqa: E402
from notekeeper.services.note_store import NoteStore  # noqa: E402
from notekeeper.storage import MemoryStorageClient, SQLStorageClient  # noqa: E402


ALICE = CurrentUser(id="user-alice", display_name="Alice")
BOB = CurrentUser(id="user-bob", display_name="Bob")


class FakeClock:
    """Deterministic epoch-millisecond clock for timestamp tests."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int = 1000) -> int:
        self.now += ms
        return self.now


# ══════════════════════════════════════════════════════════════════════════
# Storage Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_client() -> MemoryStorageClient:
    return MemoryStorageClient()


@pytest_asyncio.fixture
async def sql_client() -> AsyncGenerator[SQLStorageClient, None]:
    """
    SQL engine on a private in-memory SQLite database.

    StaticPool keeps the single connection alive, otherwise every new
    session would see an empty database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    client = SQLStorageClient(engine)
    yield client
    await client.close()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def storage_client(request):
    """Runs the requesting test once per storage engine."""
    if request.param == "memory":
        yield MemoryStorageClient()
        return
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(engine)
    client = SQLStorageClient(engine)
    yield client
    await client.close()


@pytest.fixture
def note_store(memory_client, clock) -> NoteStore:
    return NoteStore(memory_client, clock=clock)


# ══════════════════════════════════════════════════════════════════════════
# File Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def image_service(temp_storage) -> ImageService:
    return ImageService(storage_root=temp_storage, base_url="/images")


@pytest.fixture
def sample_image_bytes():
    """
    Smallest JPEG header that passes magic-byte detection.

    Start of Image (FFD8) + JFIF APP0 marker + End of Image (FFD9).
    """
    return (
        b'\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00'
        b'\xff\xd9'
    )


# ══════════════════════════════════════════════════════════════════════════
# HTTP Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def app(memory_client, note_store, image_service):
    """Application wired to the in-memory store; nobody is signed in."""
    from notekeeper.main import create_app

    application = create_app(storage_client=memory_client, image_service=image_service)
    application.state.note_store = note_store
    return application


@pytest.fixture
def sign_in(app):
    """
    Switch the identity seen by the app.

    Usage:
        sign_in(ALICE)   # later requests act as Alice
        sign_in(None)    # back to anonymous
    """

    def _sign_in(user: Optional[CurrentUser]) -> None:
        if user is None:
            app.dependency_overrides.pop(get_current_user, None)
        else:
            app.dependency_overrides[get_current_user] = lambda: user

    yield _sign_in
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_client(app):
    """httpx client talking to the app in-process; redirects are not followed."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
