"""Versioned schema migrations.

Example:
    >>> from clinicore.migration import MigrationManager, default_migrations
    >>> manager = MigrationManager(default_migrations())
    >>> await manager.initialize_database_with_seeds(sql, StaticSeedLoader(rows))
"""

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
    MigrationStatus,
    MigrationStatusReport,
    NoMigrationsAppliedError,
    ValidationIssue,
    ValidationResult,
    compute_checksum,
)
from clinicore.migration.manager import MigrationManager
from clinicore.migration.seeds import SeedLoaderProtocol, StaticSeedLoader
from clinicore.migration.versions import default_migrations

__all__ = [
    "DuplicateVersionError",
    "IntegrityViolationError",
    "Migration",
    "MigrationError",
    "MigrationFailedError",
    "MigrationManager",
    "MigrationMetrics",
    "MigrationOrderError",
    "MigrationRecord",
    "MigrationResult",
    "MigrationSettings",
    "MigrationStatus",
    "MigrationStatusReport",
    "NoMigrationsAppliedError",
    "SeedLoaderProtocol",
    "StaticSeedLoader",
    "ValidationIssue",
    "ValidationResult",
    "compute_checksum",
    "default_migrations",
]
