import logging
from pathlib import Path

import typing as t
from pydantic_settings import SettingsConfigDict
from sqlalchemy import event
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

from clinicore.config import Config, Settings
from clinicore.depends import depends
from clinicore.logger import configure_stdlib_logging_interception

from ._base import SqlBase


class SqlSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="CLINICORE_SQL_")

    database_path: str = "data/clinicore.db"
    wal_mode: bool = True
    foreign_keys: bool = True
    echo: bool = False

    def is_memory(self, path: str) -> bool:
        return path == ":memory:" or path.startswith("file::memory:")

    def async_url(self, path: str) -> URL:
        return URL.create(drivername="sqlite+aiosqlite", database=path)


class Sql(SqlBase):
    """SQLite handle over SQLAlchemy's aiosqlite dialect.

    pysqlite/aiosqlite open transactions lazily and never around DDL, so the
    driver is put in autocommit mode and BEGIN is emitted explicitly; this
    makes CREATE/ALTER/DROP roll back together with the rest of a
    transaction.
    """

    def __init__(self, settings: SqlSettings | None = None) -> None:
        super().__init__()
        self.settings = settings or depends.get_sync(Config).get(SqlSettings)

    def _default_path(self) -> str:
        return self.settings.database_path

    async def _create_engine(self, path: str) -> AsyncEngine:
        memory = self.settings.is_memory(path)
        if not memory:
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        engine = create_async_engine(
            self.settings.async_url(path),
            poolclass=StaticPool,
        )
        if self.settings.echo:
            # engine echo is routed into loguru
            configure_stdlib_logging_interception()
            logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
        foreign_keys = self.settings.foreign_keys
        wal_mode = self.settings.wal_mode and not memory

        @event.listens_for(engine.sync_engine, "connect")
        def _on_connect(dbapi_connection: t.Any, _: t.Any) -> None:
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            if foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
            if wal_mode:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _on_begin(conn: t.Any) -> None:
            conn.exec_driver_sql("BEGIN")

        return engine
