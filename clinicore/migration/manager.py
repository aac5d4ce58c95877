"""Migration manager for bringing a database schema up to date."""

from __future__ import annotations

import typing as t
from collections.abc import Iterable
from datetime import UTC, datetime

from clinicore.config import Config
from clinicore.depends import depends
from clinicore.logger import Logger as LoggerAdapter
from clinicore.migration._base import (
    DuplicateVersionError,
    IntegrityViolationError,
    Migration,
    MigrationError,
    MigrationFailedError,
    MigrationMetrics,
    MigrationOrderError,
    MigrationRecord,
    MigrationResult,
    MigrationSettings,
    MigrationStatusReport,
    NoMigrationsAppliedError,
    ValidationIssue,
    ValidationResult,
)

if t.TYPE_CHECKING:
    from clinicore.adapters.sql import SqlProtocol
    from clinicore.migration.seeds import SeedLoaderProtocol

logger = depends.get_sync(LoggerAdapter)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


class MigrationManager:
    """Applies registered migrations in ascending version order.

    Applied migrations are recorded in a bookkeeping table that lives in the
    database it governs. Each pending migration runs in its own transaction
    together with the insert of its record, so a failure leaves neither a
    partial schema change nor a record behind.

    Example:
        >>> manager = MigrationManager(default_migrations())
        >>> result = await manager.migrate(sql)
        >>> result.applied_versions
        [1, 2, 3, 4]
    """

    def __init__(
        self,
        migrations: Iterable[Migration] = (),
        settings: MigrationSettings | None = None,
    ) -> None:
        self.settings = settings or depends.get_sync(Config).get(MigrationSettings)
        self._migrations: list[Migration] = []
        self._by_version: dict[int, Migration] = {}
        self.register_migrations(migrations)

    @property
    def table_name(self) -> str:
        return self.settings.table_name

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    def register_migration(self, migration: Migration) -> None:
        if migration.version in self._by_version:
            raise DuplicateVersionError(migration.version)
        if self._migrations and migration.version < self._migrations[-1].version:
            raise MigrationOrderError(migration.version, self._migrations[-1].version)
        self._migrations.append(migration)
        self._by_version[migration.version] = migration
        logger.debug(f"Registered migration {migration.version}: {migration.name}")

    def register_migrations(self, migrations: Iterable[Migration]) -> None:
        for migration in migrations:
            self.register_migration(migration)

    async def _ensure_table(self, conn: SqlProtocol) -> None:
        await conn.execute_command(
            f"CREATE TABLE IF NOT EXISTS {_quote(self.table_name)} ("
            "version INTEGER PRIMARY KEY, "
            "name TEXT NOT NULL, "
            "checksum TEXT NOT NULL, "
            "applied_at TEXT NOT NULL)",
        )

    async def get_applied_migrations(self, conn: SqlProtocol) -> list[MigrationRecord]:
        """Return applied records ordered by version, creating the table if needed."""
        await self._ensure_table(conn)
        result = await conn.execute_query(
            f"SELECT version, name, checksum, applied_at FROM {_quote(self.table_name)} "
            "ORDER BY version ASC",
        )
        return [
            MigrationRecord(
                version=row["version"],
                name=row["name"],
                checksum=row["checksum"],
                applied_at=datetime.fromisoformat(row["applied_at"]),
            )
            for row in result.data
        ]

    def _check_history(self, applied: list[MigrationRecord]) -> list[ValidationIssue]:
        issues: list[ValidationIssue] = []
        for index, record in enumerate(applied):
            migration = self._by_version.get(record.version)
            if migration is None:
                issues.append(
                    ValidationIssue(version=record.version, error="applied but not registered"),
                )
                continue
            expected = self._migrations[index] if index < len(self._migrations) else None
            if expected is None or expected.version != record.version:
                issues.append(
                    ValidationIssue(
                        version=record.version,
                        error="applied history has a gap before this version",
                    ),
                )
            if migration.checksum != record.checksum:
                issues.append(ValidationIssue(version=record.version, error="checksum mismatch"))
        return issues

    def _verify(self, applied: list[MigrationRecord]) -> None:
        for issue in self._check_history(applied):
            record = next(r for r in applied if r.version == issue.version)
            migration = self._by_version.get(issue.version)
            raise IntegrityViolationError(
                issue.version,
                issue.error,
                stored_checksum=record.checksum,
                computed_checksum=migration.checksum if migration else None,
            )

    def _pending(self, applied: list[MigrationRecord]) -> list[Migration]:
        highest = applied[-1].version if applied else 0
        return [m for m in self._migrations if m.version > highest]

    async def _apply(self, conn: SqlProtocol, migration: Migration) -> MigrationRecord:
        record = MigrationRecord(
            version=migration.version,
            name=migration.name,
            checksum=migration.checksum,
            applied_at=datetime.now(UTC),
        )
        try:
            async with conn.transaction() as tx:
                await migration.run_up(tx)
                await tx.execute_command(
                    f"INSERT INTO {_quote(self.table_name)} "
                    "(version, name, checksum, applied_at) VALUES (?, ?, ?, ?)",
                    [
                        record.version,
                        record.name,
                        record.checksum,
                        record.applied_at.isoformat(),
                    ],
                )
        except Exception as e:
            logger.error(f"Migration {migration.version} ({migration.name}) failed: {e}")
            raise MigrationFailedError(migration.version, e) from e
        return record

    async def migrate(self, conn: SqlProtocol) -> MigrationResult:
        """Apply every pending migration.

        The applied history is verified first; any checksum drift, unknown
        version or gap raises ``IntegrityViolationError`` before a single
        statement runs.
        """
        metrics = MigrationMetrics()
        applied = await self.get_applied_migrations(conn)
        self._verify(applied)

        pending = self._pending(applied)
        result = MigrationResult(
            skipped=[record.version for record in applied],
            metrics=metrics,
        )
        metrics.steps_skipped = len(applied)
        if not pending:
            logger.debug("Database schema is up to date")
        for migration in pending:
            logger.info(f"Applying migration {migration.version}: {migration.name}")
            result.applied.append(await self._apply(conn, migration))
            metrics.steps_completed += 1

        metrics.complete()
        if result.applied:
            logger.info(
                f"Applied {len(result.applied)} migration(s) "
                f"in {metrics.duration_seconds:.3f}s",
            )
        return result

    async def rollback_last(self, conn: SqlProtocol) -> MigrationRecord:
        """Reverse the most recently applied migration and drop its record."""
        applied = await self.get_applied_migrations(conn)
        if not applied:
            raise NoMigrationsAppliedError
        record = applied[-1]
        migration = self._by_version.get(record.version)
        if migration is None:
            cause = MigrationError(f"Migration {record.version} is not registered", record.version)
            raise MigrationFailedError(record.version, cause, rollback=True)
        if not migration.reversible:
            cause = MigrationError(f"Migration {record.version} has no rollback", record.version)
            raise MigrationFailedError(record.version, cause, rollback=True)

        logger.info(f"Rolling back migration {record.version}: {record.name}")
        try:
            async with conn.transaction() as tx:
                await migration.run_down(tx)
                await tx.execute_command(
                    f"DELETE FROM {_quote(self.table_name)} WHERE version = ?",
                    [record.version],
                )
        except Exception as e:
            logger.error(f"Rollback of migration {record.version} failed: {e}")
            raise MigrationFailedError(record.version, e, rollback=True) from e
        return record

    async def initialize_database(self, conn: SqlProtocol) -> MigrationResult:
        logger.info("Initializing database schema")
        result = await self.migrate(conn)
        logger.info(f"Database initialized at version {result.current_version}")
        return result

    async def initialize_database_with_seeds(
        self,
        conn: SqlProtocol,
        seed_loader: SeedLoaderProtocol,
    ) -> MigrationResult:
        """Migrate, then seed only if nothing had been applied before."""
        was_empty = not await self.get_applied_migrations(conn)
        result = await self.initialize_database(conn)
        if was_empty:
            logger.info("Loading seed data into fresh database")
            await seed_loader.load(conn)
        else:
            logger.debug("Database already initialized, skipping seed data")
        return result

    async def get_migration_status(self, conn: SqlProtocol) -> MigrationStatusReport:
        applied = await self.get_applied_migrations(conn)
        applied_versions = [record.version for record in applied]
        pending_versions = [m.version for m in self._pending(applied)]
        return MigrationStatusReport(
            total=len(self._migrations),
            applied=len(applied_versions),
            pending=len(pending_versions),
            applied_versions=applied_versions,
            pending_versions=pending_versions,
            current_version=applied_versions[-1] if applied_versions else None,
        )

    async def validate_migrations(self, conn: SqlProtocol) -> ValidationResult:
        """Report history problems without raising."""
        issues = self._check_history(await self.get_applied_migrations(conn))
        for issue in issues:
            logger.warning(f"Migration {issue.version}: {issue.error}")
        return ValidationResult(valid=not issues, errors=issues)

    async def reset_database(self, conn: SqlProtocol) -> MigrationResult:
        """Drop every user object, clear the bookkeeping table and re-migrate."""
        logger.warning("Resetting database: all data will be dropped")
        objects = await conn.execute_query(
            "SELECT type, name FROM sqlite_master "
            "WHERE type IN ('trigger', 'view', 'table') AND name NOT LIKE 'sqlite_%' "
            "ORDER BY rowid DESC",
        )
        order = {"trigger": 0, "view": 1, "table": 2}
        rows = sorted(objects.data, key=lambda row: order[row["type"]])
        async with conn.transaction() as tx:
            await tx.execute_command("PRAGMA defer_foreign_keys = ON")
            for row in rows:
                kind = row["type"].upper()
                await tx.execute_command(f"DROP {kind} IF EXISTS {_quote(row['name'])}")
        return await self.migrate(conn)
