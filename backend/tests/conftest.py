"""Shared pytest fixtures for the Workflow Marketplace test suite.

Provides:
- A throwaway async SQLite database per test
- AsyncSession factory and session
- FastAPI test client (httpx.AsyncClient) wired to the test database
- A scripted fake language-model provider
- Test users with credit balances and JWT auth headers
"""

import json
import os
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

# Override settings BEFORE any app imports
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production-use")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("ANTHROPIC_API_KEY", "")

from db.base import Base  # noqa: E402
from db.database import create_session_factory  # noqa: E402
from core.security import create_access_token  # noqa: E402


# ---------------------------------------------------------------------------
# Fake language-model provider
# ---------------------------------------------------------------------------

class FakeProvider:
    """Replays queued responses; an exception instance in the queue is raised.

    ``on_call`` is awaited at the start of every call, while the request that
    triggered it is still in flight.
    """

    def __init__(self):
        self.responses = []
        self.calls = []
        self.on_call = None

    def queue(self, *responses):
        self.responses.extend(responses)
        return self

    async def complete(self, system, messages):
        self.calls.append({"system": system, "messages": messages})
        if self.on_call is not None:
            await self.on_call()
        if not self.responses:
            raise AssertionError("Unexpected model call")
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def get_status(self):
        return {"configured": True, "connected": True, "model": "fake-model", "usage": {}}


def build_workflow(node_count: int = 6) -> dict:
    """A structurally valid n8n-style workflow with ``node_count`` chained nodes."""
    nodes = [
        {
            "id": f"node_{i}",
            "name": f"Step {i}",
            "type": "n8n-nodes-base.set",
            "typeVersion": 1,
            "position": [(i - 1) * 300, 0],
            "parameters": {},
        }
        for i in range(1, node_count + 1)
    ]
    connections = {
        f"node_{i}": {"main": [[{"node": f"node_{i + 1}", "type": "main", "index": 0}]]}
        for i in range(1, node_count)
    }
    return {"nodes": nodes, "connections": connections}


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh file-backed SQLite database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    # Import all models so Base.metadata knows about them
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for direct service-level tests."""
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Provider / workflow fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def make_workflow():
    return build_workflow


@pytest.fixture
def workflow_json(make_workflow):
    """Serialized valid workflow, as the model would return it."""
    def _dump(node_count: int = 6) -> str:
        return json.dumps(make_workflow(node_count))
    return _dump


# ---------------------------------------------------------------------------
# App / HTTP client fixtures
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def app(session_factory, fake_provider):
    """FastAPI app using the test database and the fake provider."""
    from app.main import create_app
    from app.dependencies import get_db, get_llm_provider
    from core.rate_limit import get_rate_limit_counter

    test_app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    test_app.dependency_overrides[get_db] = override_get_db
    test_app.dependency_overrides[get_llm_provider] = lambda: fake_provider
    get_rate_limit_counter().reset()

    yield test_app

    get_rate_limit_counter().reset()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Test data fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def create_user(db_session):
    """Factory for committed users with a given balance."""
    from db.models.user import User

    async def _create(credits: int = 20, is_active: bool = True) -> User:
        user = User(
            id=str(uuid4()),
            email=f"test-{uuid4().hex[:8]}@example.com",
            name="Test User",
            credits=credits,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _create


@pytest_asyncio.fixture
async def test_user(create_user):
    """A user with 20 credits (four generations)."""
    return await create_user(credits=20)


@pytest.fixture
def auth_headers(test_user) -> dict:
    """Authorization headers with a valid JWT for test_user."""
    token = create_access_token(user_id=test_user.id, email=test_user.email)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    def _headers(user) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}
    return _headers
