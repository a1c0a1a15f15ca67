"""Root test configuration."""

import logging
from collections.abc import AsyncIterator

import pytest
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orgguard.authz.context import AuthzContext, build_authz_context
from orgguard.cache import MemoryCache
from orgguard.config import Settings
from orgguard.db.models import Base, OrganizationMemberModel


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
async def session_factory() -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """In-memory SQLite database with the full schema, shared by all sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(cache_backend="memory", authz_cache_ttl_seconds=300)


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache(max_size=1000)


@pytest.fixture
def authz(session, memory_cache, settings) -> AuthzContext:
    return build_authz_context(session, memory_cache, settings)


@pytest.fixture
def add_members(session):
    """Insert organization membership rows: ``await add_members("org", alice="admin")``."""

    async def _add(org_id: str, **roles: str) -> None:
        for user_id, role in roles.items():
            session.add(OrganizationMemberModel(organization_id=org_id, user_id=user_id, role=role))
        await session.commit()

    return _add
