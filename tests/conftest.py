"""Pytest configuration: in-memory database, sessions and caller identities."""

import os

# Set test settings BEFORE any imports from src
# This ensures the engine and AsyncSessionLocal use an in-memory database
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["LEDGER_ADMIN_EMAILS"] = "admin@example.org"

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from src.services import create_engine_for, init_models  # noqa: E402
from src.services.auth_service import AuthContext  # noqa: E402
from src.services.config import AppConfig  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
def app_config() -> AppConfig:
    """Configuration with one bootstrap ledger admin."""
    return AppConfig(
        database_url=TEST_DATABASE_URL,
        allocation_tolerance=Decimal("0.05"),
        ledger_admin_emails=["admin@example.org"],
    )


@pytest.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    engine = create_engine_for(TEST_DATABASE_URL)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Async session on the fresh database."""
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def alice() -> AuthContext:
    return AuthContext(user_id="user-alice", email="alice@example.org", name="Alice")


@pytest.fixture
def bob() -> AuthContext:
    return AuthContext(user_id="user-bob", email="bob@example.org", name="Bob")


@pytest.fixture
def carol() -> AuthContext:
    return AuthContext(user_id="user-carol", email="carol@example.org", name="Carol")


@pytest.fixture
def dave() -> AuthContext:
    return AuthContext(user_id="user-dave", email="dave@example.org", name="Dave")


@pytest.fixture
def admin() -> AuthContext:
    return AuthContext(user_id="user-admin", email="Admin@Example.org", name="Treasurer")
