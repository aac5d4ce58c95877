"""Base classes and types for the migration engine."""

from __future__ import annotations

import hashlib
import inspect
from enum import Enum

import typing as t
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import SettingsConfigDict

from clinicore.config import Settings

if t.TYPE_CHECKING:
    from clinicore.adapters.sql import Transaction

MigrationFn = t.Callable[..., t.Awaitable[None]]


class MigrationStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"


class MigrationError(Exception):
    """Base exception for migration engine failures."""

    def __init__(self, message: str, version: int | None = None) -> None:
        self.version = version
        super().__init__(message)


class DuplicateVersionError(MigrationError):
    """A migration with the same version is already registered."""

    def __init__(self, version: int) -> None:
        super().__init__(f"Migration version {version} is already registered", version)


class MigrationOrderError(MigrationError):
    """A migration was registered below the highest registered version."""

    def __init__(self, version: int, last_version: int) -> None:
        super().__init__(
            f"Migration version {version} registered after version {last_version}",
            version,
        )
        self.last_version = last_version


class IntegrityViolationError(MigrationError):
    """Applied history no longer matches the registered migrations."""

    def __init__(
        self,
        version: int,
        reason: str,
        stored_checksum: str | None = None,
        computed_checksum: str | None = None,
    ) -> None:
        super().__init__(f"Integrity violation at migration {version}: {reason}", version)
        self.reason = reason
        self.stored_checksum = stored_checksum
        self.computed_checksum = computed_checksum


class MigrationFailedError(MigrationError):
    """A migration's (or a rollback's) statements raised."""

    def __init__(self, version: int, cause: BaseException, rollback: bool = False) -> None:
        action = "Rollback of migration" if rollback else "Migration"
        super().__init__(f"{action} {version} failed: {cause}", version)
        self.cause = cause
        self.rollback = rollback


class NoMigrationsAppliedError(MigrationError):
    def __init__(self) -> None:
        super().__init__("No migrations have been applied")


def compute_checksum(*parts: str) -> str:
    """SHA-256 over the stripped parts joined by newlines."""
    payload = "\n".join(part.strip() for part in parts)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _callable_source(fn: t.Callable[..., t.Any]) -> str:
    try:
        return inspect.getsource(fn)
    except (OSError, TypeError):
        return f"{fn.__module__}.{fn.__qualname__}"


class Migration(BaseModel):
    """A versioned schema change.

    A migration is either a list of ``statements`` (with optional
    ``rollback_statements``) or an ``apply`` coroutine function (with an
    optional ``rollback`` one). Both forms run inside the transaction the
    engine opens for them.
    """

    version: int = Field(ge=1)
    name: str
    description: str = ""
    statements: list[str] = Field(default_factory=list)
    rollback_statements: list[str] = Field(default_factory=list)
    apply: MigrationFn | None = None
    rollback: MigrationFn | None = None

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @model_validator(mode="after")
    def _require_body(self) -> Migration:
        if not self.statements and self.apply is None:
            msg = f"Migration {self.version} ({self.name}) has no statements or apply function"
            raise ValueError(msg)
        return self

    @property
    def checksum(self) -> str:
        parts = list(self.statements)
        if self.apply is not None:
            parts.append(_callable_source(self.apply))
        return compute_checksum(*parts)

    @property
    def reversible(self) -> bool:
        return bool(self.rollback_statements) or self.rollback is not None

    async def run_up(self, tx: Transaction) -> None:
        for statement in self.statements:
            await tx.execute_command(statement)
        if self.apply is not None:
            await self.apply(tx)

    async def run_down(self, tx: Transaction) -> None:
        for statement in self.rollback_statements:
            await tx.execute_command(statement)
        if self.rollback is not None:
            await self.rollback(tx)


class MigrationRecord(BaseModel):
    """Bookkeeping row for one applied migration."""

    version: int
    name: str
    checksum: str
    applied_at: datetime

    model_config = ConfigDict(frozen=True)


class MigrationMetrics(BaseModel):
    start_time: datetime = Field(default_factory=datetime.now)
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    steps_completed: int = 0
    steps_skipped: int = 0

    def complete(self) -> None:
        if self.end_time is None:
            self.end_time = datetime.now()
            self.duration_seconds = (self.end_time - self.start_time).total_seconds()


class MigrationResult(BaseModel):
    """Outcome of a successful ``migrate`` run."""

    status: MigrationStatus = MigrationStatus.COMPLETED
    applied: list[MigrationRecord] = Field(default_factory=list)
    skipped: list[int] = Field(default_factory=list)
    metrics: MigrationMetrics = Field(default_factory=MigrationMetrics)

    @property
    def applied_versions(self) -> list[int]:
        return [record.version for record in self.applied]

    @property
    def current_version(self) -> int | None:
        versions = self.skipped + self.applied_versions
        return max(versions) if versions else None


class MigrationStatusReport(BaseModel):
    total: int
    applied: int
    pending: int
    applied_versions: list[int]
    pending_versions: list[int]
    current_version: int | None = None


class ValidationIssue(BaseModel):
    version: int
    error: str

    model_config = ConfigDict(frozen=True)


class ValidationResult(BaseModel):
    valid: bool = True
    errors: list[ValidationIssue] = Field(default_factory=list)


class MigrationSettings(Settings):
    model_config = SettingsConfigDict(env_prefix="CLINICORE_MIGRATION_")

    table_name: str = "schema_migrations"

    @model_validator(mode="after")
    def _check_table_name(self) -> MigrationSettings:
        if not self.table_name.replace("_", "").isalnum():
            msg = f"Invalid bookkeeping table name: {self.table_name!r}"
            raise ValueError(msg)
        return self
