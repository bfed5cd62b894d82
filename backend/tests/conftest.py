"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; keep tests off any real database or Redis.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from multiauth.core.database import Base
from multiauth.core.session import InMemorySessionStore
from multiauth.crud.user import UserDirectory
from multiauth.models.user import LocalUser
from multiauth.services.identity.base import AuthProvider, LoginRedirect, RemoteUserInfo
from multiauth.services.identity.hooks import AuthHooks
from multiauth.services.identity.mapping import MappingStore
from multiauth.services.identity.orchestrator import LoginPolicy, OAuthAuthenticator

# In-memory SQLite; StaticPool keeps a single shared connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, "execute"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    # Import all models to ensure they're registered with Base.metadata
    from multiauth.models import identity, user  # noqa: F401

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def db(db_session: AsyncSession) -> AsyncSession:
    """Alias for db_session to match test function signatures."""
    return db_session


@pytest.fixture
def directory(db: AsyncSession) -> UserDirectory:
    return UserDirectory(db)


@pytest.fixture
def mappings(db: AsyncSession) -> MappingStore:
    return MappingStore(db)


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def hooks() -> AuthHooks:
    return AuthHooks()


@pytest.fixture
def provider() -> Mock:
    """A provider whose handshake always succeeds as remote user 'alice'."""
    mock_provider = Mock(spec=AuthProvider)
    mock_provider.login = AsyncMock(
        return_value=LoginRedirect(
            redirect_url="https://remote.example/authorize?oauth_token=req-key",
            key="req-key",
            secret="req-secret",
        )
    )
    mock_provider.complete_login = AsyncMock(
        return_value=RemoteUserInfo(name="alice", realname="Alice Liddell", email="alice@example.com")
    )
    mock_provider.logout = AsyncMock()
    mock_provider.save_extra_attributes = AsyncMock()
    return mock_provider


@pytest.fixture
def make_authenticator(provider, session_store, mappings, directory, hooks):
    """Build an authenticator for provider id 'wiki' with the given policy flags."""

    def _make(**policy_flags) -> OAuthAuthenticator:
        return OAuthAuthenticator(
            provider_id="wiki",
            provider=provider,
            session=session_store,
            mappings=mappings,
            directory=directory,
            hooks=hooks,
            policy=LoginPolicy(**policy_flags),
        )

    return _make


@pytest_asyncio.fixture
async def test_user(db: AsyncSession) -> LocalUser:
    """Create a local user called 'Bob'."""
    user = LocalUser(name="Bob", real_name="Bob Builder", email="bob@example.com")
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user
