"""SQL repository over the SQLite connection adapter."""

import typing as t
from collections.abc import Collection, Mapping, Sequence

from clinicore.adapters.sql import CommandResult, SqlProtocol
from clinicore.config import Config
from clinicore.depends import depends
from clinicore.logger import Logger as LoggerAdapter

from ._base import (
    Criteria,
    EmptyEntityError,
    NoFieldsToUpdateError,
    QueryOptions,
    RepositoryBase,
    RepositorySettings,
    Row,
)
from .criteria import Statement, StatementBuilder

logger = depends.get_sync(LoggerAdapter)


class SqlRepository[IDType](RepositoryBase[IDType]):
    """Criteria-driven CRUD against one table.

    Subclasses name their table, primary key and column allow-list as class
    attributes; the same values can be passed to the constructor instead.

    Example:
        >>> class PatientRepository(SqlRepository[int]):
        ...     table_name = "PATIENT_DIMENSION"
        ...     primary_key = "PATIENT_NUM"
        ...     fields = ("PATIENT_CD", "AGE_IN_YEARS")
        >>> repo = PatientRepository(sql)
        >>> await repo.find_by_criteria({"AGE_IN_YEARS": {"operator": ">=", "value": 18}})
    """

    table_name: t.ClassVar[str] = ""
    primary_key: t.ClassVar[str] = "id"
    fields: t.ClassVar[Collection[str]] = ()

    def __init__(
        self,
        conn: SqlProtocol,
        *,
        table_name: str | None = None,
        primary_key: str | None = None,
        fields: Collection[str] | None = None,
        settings: RepositorySettings | None = None,
    ) -> None:
        table = table_name or self.table_name
        if not table:
            msg = f"{type(self).__name__} needs a table name"
            raise ValueError(msg)
        self.conn = conn
        self.settings = settings or depends.get_sync(Config).get(RepositorySettings)
        if type(self) is SqlRepository:
            self.entity_name = table
        else:
            self.entity_name = type(self).__name__.removesuffix("Repository")
        self.builder = StatementBuilder(
            table,
            primary_key or self.primary_key,
            fields if fields is not None else self.fields,
            entity_name=self.entity_name,
        )

    @property
    def table(self) -> str:
        return self.builder.table

    @property
    def pk(self) -> str:
        return self.builder.primary_key

    def _trace(self, statement: Statement) -> None:
        if self.settings.log_statements:
            logger.debug(f"{self.entity_name}: {statement.sql} {statement.params}")

    async def _query(self, statement: Statement) -> list[Row]:
        self._trace(statement)
        result = await self.conn.execute_query(statement.sql, statement.params)
        return result.data

    async def _command(self, statement: Statement) -> CommandResult:
        self._trace(statement)
        return await self.conn.execute_command(statement.sql, statement.params)

    async def find_by_id(self, entity_id: IDType) -> Row | None:
        rows = await self._query(self.builder.select_by_id(entity_id))
        return rows[0] if rows else None

    async def find_by_criteria(
        self,
        criteria: Criteria,
        options: QueryOptions | None = None,
    ) -> list[Row]:
        return await self._query(self.builder.select(criteria, options))

    async def find_one_by_criteria(self, criteria: Criteria) -> Row | None:
        rows = await self.find_by_criteria(criteria, QueryOptions(limit=1))
        return rows[0] if rows else None

    async def count_by_criteria(self, criteria: Criteria | None = None) -> int:
        rows = await self._query(self.builder.count(criteria))
        return int(rows[0]["count"]) if rows else 0

    async def create(self, entity: Mapping[str, t.Any]) -> Row:
        values = self.builder.defined_fields(entity, "create")
        if not values:
            raise EmptyEntityError(self.entity_name)
        result = await self._command(self.builder.insert(values))
        created = dict(values)
        if self.pk not in created:
            created[self.pk] = result.last_inserted_id
        logger.debug(f"Created {self.entity_name} {created[self.pk]}")
        return created

    async def update(self, entity_id: IDType, entity: Mapping[str, t.Any]) -> bool:
        values = self.builder.defined_fields(entity, "update", exclude=(self.pk,))
        if not values:
            raise NoFieldsToUpdateError(self.entity_name)
        result = await self._command(self.builder.update_by_id(entity_id, values))
        return result.changes > 0

    async def delete(self, entity_id: IDType) -> bool:
        result = await self._command(self.builder.delete_by_id(entity_id))
        return result.changes > 0

    async def update_by_criteria(
        self,
        criteria: Criteria,
        data: Mapping[str, t.Any],
    ) -> int:
        values = self.builder.defined_fields(data, "update", exclude=(self.pk,))
        if not values:
            raise NoFieldsToUpdateError(self.entity_name, operation="update_by_criteria")
        result = await self._command(self.builder.update(criteria, values))
        return result.changes

    async def delete_by_criteria(self, criteria: Criteria) -> int:
        result = await self._command(self.builder.delete(criteria))
        return result.changes

    async def execute_raw_query(
        self,
        sql: str,
        params: Sequence[t.Any] | None = None,
    ) -> list[Row]:
        """Run a hand-written query. Never pass caller-supplied identifiers."""
        result = await self.conn.execute_query(sql, params)
        return result.data

    async def execute_raw_command(
        self,
        sql: str,
        params: Sequence[t.Any] | None = None,
    ) -> CommandResult:
        return await self.conn.execute_command(sql, params)
