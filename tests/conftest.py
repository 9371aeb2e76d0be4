"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Redis and outbound HTTP.
"""
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB

from hookrelay.database import Base
from hookrelay.services.client_config import ClientConfigService
from hookrelay.services.job_queue import JobQueue

import hookrelay.models  # noqa: F401  (registers tables on Base.metadata)


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@pytest.fixture
async def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    """In-memory SQLite database for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis_mock():
    """AsyncMock standing in for a redis.asyncio client."""
    redis = AsyncMock()
    redis.lpush = AsyncMock(return_value=1)
    redis.brpop = AsyncMock(return_value=None)
    redis.zadd = AsyncMock(return_value=1)
    redis.eval = AsyncMock(return_value=0)
    redis.llen = AsyncMock(return_value=0)
    redis.zcard = AsyncMock(return_value=0)
    redis.ping = AsyncMock(return_value=True)
    redis.set = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def queue(redis_mock):
    return JobQueue(redis_mock, key="test:queue")


@pytest.fixture
def mock_redis(redis_mock):
    """Patch the shared get_redis() so heartbeats and health checks hit the mock."""
    with patch("hookrelay.utils.redis_client.get_redis", new_callable=AsyncMock) as mock:
        mock.return_value = redis_mock
        yield redis_mock


@pytest.fixture
def sample_clients_config():
    """Clients file contents: one client with http + table, one http-only with rules."""
    return {
        "clients": [
            {
                "id": "clientA",
                "destinations": [
                    {"type": "http", "url": "http://dest.example.com/hook"},
                    {"type": "postgres", "schema": "public", "table": "property_updates"},
                ],
            },
            {
                "id": "clientB",
                "secret": "client-b-secret",
                "transformations": [
                    {"source": "value", "target": "nested.value"},
                ],
                "destinations": [
                    {"type": "http", "url": "http://b.example.com/events"},
                ],
            },
        ]
    }


@pytest.fixture
def config_service(sample_clients_config):
    return ClientConfigService.from_dict(sample_clients_config)
