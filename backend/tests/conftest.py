# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# Sets up the test environment before app.config is imported and provides
# a blob store backed by a throwaway SQLite database per test.
# =============================================================================

import os

# app.config builds its settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("PURGE_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.config import settings
from app.models import Base
from app.services.blob_store import BlobStore

TEST_CHUNK_SIZE = 1024
TEST_MAX_BYTES = 64 * 1024


class AsyncBytesReader:
    """Minimal async stream over bytes, like UploadFile.

    ``max_read`` caps how much a single read returns, to mimic a socket
    delivering data in small pieces.
    """

    def __init__(self, data: bytes, max_read: int | None = None):
        self._data = data
        self._pos = 0
        self._max_read = max_read
        self.reads = 0

    async def read(self, size: int = -1) -> bytes:
        self.reads += 1
        if size < 0:
            size = len(self._data) - self._pos
        if self._max_read is not None:
            size = min(size, self._max_read)
        chunk = self._data[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """Session factory over a fresh SQLite file with all tables created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'blobs.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


def build_store(session_factory, **overrides) -> BlobStore:
    options = {
        "key_prefix": "wbkost",
        "chunk_size": TEST_CHUNK_SIZE,
        "max_bytes": TEST_MAX_BYTES,
        "allowed_content_types": settings.allowed_content_types_list,
    }
    options.update(overrides)
    return BlobStore(session_factory, **options)


@pytest.fixture
def blob_store(session_factory) -> BlobStore:
    return build_store(session_factory)


@pytest.fixture
def make_token():
    """Build a signed bearer token for a user id."""
    def _make(user_id: str, expires_in: timedelta = timedelta(hours=1), **claims) -> str:
        payload = {"userId": user_id, "exp": datetime.now(timezone.utc) + expires_in, **claims}
        return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return _make


@pytest.fixture
def auth_header(make_token):
    def _header(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}
    return _header


@pytest_asyncio.fixture
async def client(blob_store):
    """HTTP client against the app, wired to the test blob store."""
    from app.dependencies import get_blob_store
    from app.main import app

    app.dependency_overrides[get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
