"""Fixtures for HTTP contract tests."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.api.app import app
from src.services import create_engine_for, get_async_session, init_models

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def headers_for(user_id: str, name: str | None = None, email: str | None = None) -> dict:
    """Identity headers the upstream authorizer would forward."""
    headers = {"X-User-Id": user_id}
    if name:
        headers["X-User-Name"] = name
    if email:
        headers["X-User-Email"] = email
    return headers


@pytest.fixture
def client():
    """Test client on a fresh in-memory database."""
    engine = create_engine_for(TEST_DATABASE_URL)
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    state = {"ready": False}

    async def override_session():
        # Tables are created lazily so they live on the client's event loop
        if not state["ready"]:
            await init_models(engine)
            state["ready"] = True
        async with maker() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def alice_headers() -> dict:
    return headers_for("user-alice", "Alice", "alice@example.org")


@pytest.fixture
def bob_headers() -> dict:
    return headers_for("user-bob", "Bob", "bob@example.org")


@pytest.fixture
def carol_headers() -> dict:
    return headers_for("user-carol", "Carol", "carol@example.org")


@pytest.fixture
def admin_headers() -> dict:
    return headers_for("user-admin", "Treasurer", "admin@example.org")
