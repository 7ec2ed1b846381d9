import os
import sys
from pathlib import Path

import pytest

# Add backend/ to sys.path so tests can import 'consultation'
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

# Settings are read at import time; point them at throwaway backends first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.pop("GOOGLE_PROJECT_ID", None)
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import fakeredis
import httpx
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

from consultation.config.redis import set_redis
from consultation.main import app
from consultation.models import database
from consultation.services.connection import ConnectionRegistry, connection_registry


@pytest.fixture
def session_factory(tmp_path, monkeypatch):
    """
    Point the app's engine and session factory at a per-test SQLite file.

    A file (not :memory:) plus NullPool lets the pytest loop and the
    TestClient's loop open their own connections to the same database.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool, future=True
    )
    factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(database, "engine", engine)
    monkeypatch.setattr(database, "AsyncSessionLocal", factory)
    return factory


@pytest.fixture
def fake_redis():
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    set_redis(client)
    yield client
    set_redis(None)


@pytest.fixture(autouse=True)
def reset_registry():
    """The process-wide registry must not leak connections between tests."""
    yield
    connection_registry._connections.clear()
    connection_registry._rooms.clear()


@pytest.fixture
async def db(session_factory, fake_redis):
    await database.init_db()
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def ws_client(session_factory, fake_redis):
    """TestClient with the app lifespan running (tables created on startup)."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def registry():
    return ConnectionRegistry()
