"""
Pytest Configuration and Fixtures for the Monster Arena Tests
=============================================================

Purpose
-------
Centralized fixtures for the battle engine test suite: real PostgreSQL and
Redis through testcontainers for integration tests, and mocks for the
ambient services in unit tests.

Responsibilities
----------------
- Testcontainers setup for PostgreSQL and Redis
- Per-test initialization of DatabaseService and RedisService with a
  clean schema / empty keyspace
- Rules, event bus and config manager fixtures for unit tests

Non-Responsibilities
--------------------
- Test data construction (see tests/builders.py)
- Production configuration (test-specific only)

Architecture Notes
------------------
- Unit tests use mocks (fast, isolated)
- Integration tests use testcontainers (real database/redis)
- Containers are session-scoped; service singletons are initialized per
  test so every test runs on its own event loop
- ENVIRONMENT is forced to "test" before any src import so the database
  engine uses NullPool
"""

from __future__ import annotations

import logging
import os

os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from typing import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

from src.core.database.base import Base
from src.core.database.service import DatabaseService
from src.core.logging.logger import get_logger
from src.core.redis.service import RedisService
from src.database import models  # noqa: F401  (registers every table on Base.metadata)
from src.modules.rules.schema import BattleRules

logger = get_logger(__name__)


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(
        image="postgres:17-alpine",
        driver="asyncpg",
    )
    container.start()

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer, None, None]:
    """
    Start Redis testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting Redis testcontainer...")
    container = RedisContainer(image="redis:7-alpine")
    container.start()

    yield container

    logger.info("Stopping Redis testcontainer...")
    container.stop()


@pytest.fixture(scope="session")
def database_url(postgres_container: PostgresContainer) -> str:
    return postgres_container.get_connection_url().replace("psycopg2", "asyncpg")


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}/0"


# ============================================================================
# SERVICE FIXTURES (Integration Tests)
# ============================================================================


@pytest_asyncio.fixture
async def database(database_url: str) -> AsyncGenerator[None, None]:
    """
    Initialize DatabaseService against a freshly created schema.

    Scope: function (tables are truncated after every test)
    """
    engine = create_async_engine(database_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await DatabaseService.initialize(database_url)
    try:
        yield
    finally:
        await DatabaseService.shutdown()
        table_names = ", ".join(table.name for table in Base.metadata.sorted_tables)
        async with engine.begin() as conn:
            await conn.execute(text(f"TRUNCATE {table_names} RESTART IDENTITY CASCADE"))
        await engine.dispose()


@pytest_asyncio.fixture
async def redis_service(redis_url: str) -> AsyncGenerator[type[RedisService], None]:
    """
    Initialize RedisService against an empty keyspace.

    Scope: function
    """
    await RedisService.initialize(redis_url)
    await RedisService.client().flushdb()
    try:
        yield RedisService
    finally:
        await RedisService.client().flushdb()
        await RedisService.shutdown()


# ============================================================================
# MOCK FIXTURES (Unit Tests)
# ============================================================================


@pytest.fixture
def rules() -> BattleRules:
    """Built-in default battle rules."""
    return BattleRules.default()


@pytest.fixture
def mock_rules_service(mocker, rules):
    """RulesService stand-in that always returns the default rules."""
    service = mocker.MagicMock()
    service.get_rules = mocker.MagicMock(return_value=rules)
    return service


@pytest.fixture
def mock_event_bus(mocker):
    """
    Mock EventBus for unit tests.

    Scope: function
    """
    mock_bus = mocker.MagicMock()
    mock_bus.publish = mocker.AsyncMock(return_value=[])
    mock_bus.subscribe = mocker.MagicMock()
    return mock_bus


@pytest.fixture
def mock_config_manager(mocker):
    """
    Mock ConfigManager that answers every key with the caller's default.

    Scope: function
    """
    mock_config = mocker.MagicMock()
    mock_config.get = mocker.MagicMock(side_effect=lambda key, default=None: default)
    return mock_config


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("tests.arena")
