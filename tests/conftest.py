"""Configuration for pytest testing framework."""

import typing as t
from collections.abc import AsyncGenerator

import pytest

from clinicore.adapters.sql import Sql, SqlSettings
from clinicore.migration import MigrationManager, MigrationSettings, default_migrations
from clinicore.services.repository import RepositorySettings
from clinicore.services.resolution import ResolutionCache, ResolutionCacheSettings


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "unit: fast test without a database")
    config.addinivalue_line(
        "markers", "integration: test against an in-memory SQLite database"
    )


@pytest.fixture
def sql_settings() -> SqlSettings:
    return SqlSettings(database_path=":memory:", wal_mode=False, foreign_keys=True)


@pytest.fixture
async def sql(sql_settings: SqlSettings) -> AsyncGenerator[Sql]:
    """A connected, empty in-memory database."""
    db = Sql(sql_settings)
    await db.connect(":memory:")
    yield db
    await db.disconnect()


@pytest.fixture
def migration_settings() -> MigrationSettings:
    return MigrationSettings(table_name="schema_migrations")


@pytest.fixture
def repository_settings() -> RepositorySettings:
    return RepositorySettings(log_statements=True)


@pytest.fixture
async def clinical_db(sql: Sql, migration_settings: MigrationSettings) -> Sql:
    """In-memory database migrated to the latest clinical schema."""
    manager = MigrationManager(default_migrations(), settings=migration_settings)
    await manager.migrate(sql)
    return sql


@pytest.fixture
def cache_settings() -> ResolutionCacheSettings:
    return ResolutionCacheSettings(max_size=10, ttl=60.0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(cache_settings: ResolutionCacheSettings, clock: FakeClock) -> ResolutionCache:
    return ResolutionCache(cache_settings, clock=t.cast("t.Callable[[], float]", clock))
