"""Repository Base Classes and Interface.

Provides the foundation shared by every table-backed repository:
- Error hierarchy for repository operations
- Query options (ordering and pagination)
- Repository settings
- Abstract repository with the derived ``*_or_raise`` and ``exists`` helpers
"""

from abc import ABC, abstractmethod
from enum import Enum

import typing as t
from collections.abc import Mapping
from dataclasses import dataclass
from pydantic_settings import SettingsConfigDict

from clinicore.config import Settings

Row = dict[str, t.Any]
Criteria = Mapping[str, t.Any]


class _Unset:
    """Marker for a field that was never given a value."""

    _instance: t.ClassVar["_Unset | None"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: t.Final = _Unset()


def is_defined(value: t.Any) -> bool:
    return value is not None and value is not UNSET


class RepositoryError(Exception):
    """Base exception for repository operations."""

    def __init__(
        self,
        message: str,
        entity_type: str | None = None,
        operation: str | None = None,
    ) -> None:
        self.entity_type = entity_type
        self.operation = operation
        super().__init__(message)


class EntityNotFoundError(RepositoryError):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: t.Any, operation: str = "find") -> None:
        super().__init__(
            f"{entity_type} with ID {entity_id} not found",
            entity_type=entity_type,
            operation=operation,
        )
        self.entity_id = entity_id


class EmptyEntityError(RepositoryError):
    """Raised when ``create`` is given no defined fields."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(
            f"Cannot create {entity_type}: no fields defined",
            entity_type=entity_type,
            operation="create",
        )


class NoFieldsToUpdateError(RepositoryError):
    """Raised when an update carries no defined fields."""

    def __init__(self, entity_type: str, operation: str = "update") -> None:
        super().__init__(
            f"No fields to update for {entity_type}",
            entity_type=entity_type,
            operation=operation,
        )


class InvalidFieldError(RepositoryError):
    """Raised for a field name outside the repository's allow-list."""

    def __init__(self, entity_type: str, field: str, operation: str | None = None) -> None:
        super().__init__(
            f"Unknown field {field!r} for {entity_type}",
            entity_type=entity_type,
            operation=operation,
        )
        self.field = field


class InvalidCriteriaError(RepositoryError):
    """Raised for a malformed criteria value."""

    def __init__(self, entity_type: str, field: str, reason: str) -> None:
        super().__init__(
            f"Invalid criteria for {entity_type}.{field}: {reason}",
            entity_type=entity_type,
            operation="query",
        )
        self.field = field
        self.reason = reason


class SortDirection(Enum):
    """Sort direction enumeration."""

    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, value: "SortDirection | str") -> "SortDirection":
        if isinstance(value, SortDirection):
            return value
        try:
            return cls(value.upper())
        except ValueError:
            msg = f"Invalid sort direction: {value!r}"
            raise ValueError(msg) from None


@dataclass
class QueryOptions:
    """Ordering and pagination for list queries.

    Without ``order_by`` rows come back in whatever order SQLite yields,
    usually primary key order. Callers must not rely on it.
    """

    order_by: str | None = None
    order_direction: SortDirection | str = SortDirection.ASC
    limit: int | None = None
    offset: int | None = None

    def __post_init__(self) -> None:
        self.order_direction = SortDirection.parse(self.order_direction)
        if self.limit is not None and self.limit < 0:
            msg = "limit must be non-negative"
            raise ValueError(msg)
        if self.offset is not None and self.offset < 0:
            msg = "offset must be non-negative"
            raise ValueError(msg)


class RepositorySettings(Settings):
    """Repository configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CLINICORE_REPOSITORY_")

    log_statements: bool = False


class RepositoryBase[IDType](ABC):
    """Abstract base class for row repositories.

    Rows are plain mappings of column name to value.
    """

    entity_name: str = "Entity"

    @abstractmethod
    async def find_by_id(self, entity_id: IDType) -> Row | None:
        """Get a row by primary key, or ``None``."""

    async def find_by_id_or_raise(self, entity_id: IDType) -> Row:
        """Get a row by primary key.

        Raises:
            EntityNotFoundError: If no row has that key
        """
        row = await self.find_by_id(entity_id)
        if row is None:
            raise EntityNotFoundError(self.entity_name, entity_id)
        return row

    @abstractmethod
    async def find_by_criteria(
        self,
        criteria: Criteria,
        options: QueryOptions | None = None,
    ) -> list[Row]:
        """Rows matching every criteria entry."""

    async def find_all(self, options: QueryOptions | None = None) -> list[Row]:
        return await self.find_by_criteria({}, options)

    @abstractmethod
    async def count_by_criteria(self, criteria: Criteria | None = None) -> int: ...

    async def exists(self, criteria: Criteria) -> bool:
        return await self.count_by_criteria(criteria) > 0

    @abstractmethod
    async def create(self, entity: Mapping[str, t.Any]) -> Row:
        """Insert a row.

        Returns:
            The defined fields merged with the generated primary key

        Raises:
            EmptyEntityError: If no field is defined
        """

    @abstractmethod
    async def update(self, entity_id: IDType, entity: Mapping[str, t.Any]) -> bool:
        """Update the defined fields of one row.

        Returns:
            True if a row changed

        Raises:
            NoFieldsToUpdateError: If no updatable field is defined
        """

    async def update_or_raise(self, entity_id: IDType, entity: Mapping[str, t.Any]) -> None:
        if not await self.update(entity_id, entity):
            raise EntityNotFoundError(self.entity_name, entity_id, operation="update")

    @abstractmethod
    async def delete(self, entity_id: IDType) -> bool: ...

    async def delete_or_raise(self, entity_id: IDType) -> None:
        if not await self.delete(entity_id):
            raise EntityNotFoundError(self.entity_name, entity_id, operation="delete")

    @abstractmethod
    async def update_by_criteria(
        self,
        criteria: Criteria,
        data: Mapping[str, t.Any],
    ) -> int: ...

    @abstractmethod
    async def delete_by_criteria(self, criteria: Criteria) -> int: ...
