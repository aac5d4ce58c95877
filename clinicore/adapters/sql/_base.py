from abc import ABC, abstractmethod

import asyncio
import typing as t
from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from clinicore.cleanup import CleanupMixin
from clinicore.depends import depends
from clinicore.logger import Logger

Params = Sequence[t.Any]


class SqlError(Exception):
    """Base exception for connection-level failures."""

    def __init__(
        self,
        message: str,
        sql: str | None = None,
        params: Params | None = None,
    ) -> None:
        self.sql = sql
        self.params = list(params) if params is not None else None
        super().__init__(message)


class DatabaseConnectionError(SqlError):
    """The handle is missing, closed, or could not be opened."""


class StatementError(SqlError):
    """A statement was rejected by the database."""


class QueryResult(BaseModel):
    success: bool = True
    data: list[dict[str, t.Any]] = Field(default_factory=list)
    row_count: int = 0


class CommandResult(BaseModel):
    success: bool = True
    last_inserted_id: int | None = None
    changes: int = 0


class TransactionResult(BaseModel):
    success: bool = True
    results: list[CommandResult] = Field(default_factory=list)


class Command(BaseModel):
    """One statement of a transaction batch."""

    sql: str
    params: list[t.Any] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class Executor(t.Protocol):
    async def execute_query(
        self,
        sql: str,
        params: Params | None = None,
    ) -> QueryResult: ...

    async def execute_command(
        self,
        sql: str,
        params: Params | None = None,
    ) -> CommandResult: ...


class SqlProtocol(Executor, t.Protocol):
    async def execute_transaction(
        self,
        commands: Sequence[Command | Mapping[str, t.Any]],
    ) -> TransactionResult: ...

    def transaction(self) -> t.AsyncContextManager["Transaction"]: ...

    async def connect(self, path: str | None = None) -> bool: ...

    async def disconnect(self) -> bool: ...

    def get_status(self) -> bool: ...


async def _run_query(
    conn: AsyncConnection,
    sql: str,
    params: Params | None,
) -> QueryResult:
    try:
        result = await conn.exec_driver_sql(sql, tuple(params or ()))
    except (DBAPIError, SQLAlchemyError) as e:
        msg = f"Query failed: {getattr(e, 'orig', e)}"
        raise StatementError(msg, sql=sql, params=params) from e
    rows = [dict(row) for row in result.mappings().all()] if result.returns_rows else []
    return QueryResult(data=rows, row_count=len(rows))


async def _run_command(
    conn: AsyncConnection,
    sql: str,
    params: Params | None,
) -> CommandResult:
    try:
        result = await conn.exec_driver_sql(sql, tuple(params or ()))
    except (DBAPIError, SQLAlchemyError) as e:
        msg = f"Command failed: {getattr(e, 'orig', e)}"
        raise StatementError(msg, sql=sql, params=params) from e
    last_id = result.lastrowid if not result.returns_rows else None
    return CommandResult(
        last_inserted_id=last_id or None,
        changes=max(result.rowcount, 0),
    )


class Transaction:
    """Statements issued inside an open BEGIN ... COMMIT block."""

    def __init__(self, conn: AsyncConnection) -> None:
        self._conn = conn
        self.results: list[CommandResult] = []

    async def execute_query(
        self,
        sql: str,
        params: Params | None = None,
    ) -> QueryResult:
        return await _run_query(self._conn, sql, params)

    async def execute_command(
        self,
        sql: str,
        params: Params | None = None,
    ) -> CommandResult:
        result = await _run_command(self._conn, sql, params)
        self.results.append(result)
        return result


class SqlBase(CleanupMixin, ABC):
    """One physical database handle.

    Statements on the handle are serialized; a transaction holds the handle
    from BEGIN until COMMIT or ROLLBACK.
    """

    def __init__(self) -> None:
        super().__init__()
        self._engine: AsyncEngine | None = None
        self._conn: AsyncConnection | None = None
        self._lock = asyncio.Lock()
        self._file_path: str | None = None

    @property
    def logger(self) -> t.Any:
        return depends.get_sync(Logger)

    @property
    def file_path(self) -> str | None:
        return self._file_path

    @abstractmethod
    async def _create_engine(self, path: str) -> AsyncEngine: ...

    async def connect(self, path: str | None = None) -> bool:
        """Open the handle, closing any previously open one first."""
        if self._conn is not None:
            await self.disconnect()
        path = path or self._default_path()
        try:
            self._engine = await self._create_engine(path)
            self._conn = await self._engine.connect()
        except (OSError, SQLAlchemyError) as e:
            await self._dispose_engine()
            msg = f"Failed to connect to database {path}: {e}"
            raise DatabaseConnectionError(msg) from e
        self._file_path = path
        self._cleaned_up = False
        self.register_resource(self._engine)
        self.register_resource(self._conn)
        self.logger.info(f"Connected to database: {path}")
        return True

    def _default_path(self) -> str:
        return ":memory:"

    async def disconnect(self) -> bool:
        async with self._lock:
            if self._conn is None:
                return True
            conn, self._conn = self._conn, None
            self.unregister_resource(conn)
            await conn.close()
            await self._dispose_engine()
        self.logger.info(f"Disconnected from database: {self._file_path}")
        self._file_path = None
        return True

    async def _dispose_engine(self) -> None:
        if self._engine is not None:
            self.unregister_resource(self._engine)
            await self._engine.dispose()
            self._engine = None

    def get_status(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def _require_conn(self, sql: str | None = None) -> AsyncConnection:
        if self._conn is None or self._conn.closed:
            msg = "Database not connected"
            raise DatabaseConnectionError(msg, sql=sql)
        return self._conn

    async def execute_query(
        self,
        sql: str,
        params: Params | None = None,
    ) -> QueryResult:
        async with self._lock:
            conn = self._require_conn(sql)
            async with conn.begin():
                return await _run_query(conn, sql, params)

    async def execute_command(
        self,
        sql: str,
        params: Params | None = None,
    ) -> CommandResult:
        async with self._lock:
            conn = self._require_conn(sql)
            async with conn.begin():
                return await _run_command(conn, sql, params)

    @asynccontextmanager
    async def transaction(self) -> t.AsyncGenerator[Transaction]:
        """Run statements atomically.

        Commits when the block exits normally; rolls back and re-raises
        otherwise.
        """
        async with self._lock:
            conn = self._require_conn()
            trans = await conn.begin()
            try:
                yield Transaction(conn)
            except BaseException:
                await trans.rollback()
                raise
            await trans.commit()

    async def execute_transaction(
        self,
        commands: Sequence[Command | Mapping[str, t.Any]],
    ) -> TransactionResult:
        batch = [
            c if isinstance(c, Command) else Command.model_validate(c)
            for c in commands
        ]
        async with self.transaction() as tx:
            for command in batch:
                await tx.execute_command(command.sql, command.params)
        return TransactionResult(results=tx.results)

    async def test_connection(self) -> bool:
        try:
            result = await self.execute_query("SELECT 1 AS test")
        except SqlError as e:
            self.logger.warning(f"Connection test failed: {e}")
            return False
        return result.row_count > 0

    async def cleanup(self) -> None:
        self._conn = None
        self._engine = None
        await super().cleanup()
