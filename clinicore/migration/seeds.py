"""Seed data loading for freshly migrated databases."""

from __future__ import annotations

import re

import typing as t
from collections.abc import Mapping, Sequence

from clinicore.depends import depends
from clinicore.logger import Logger as LoggerAdapter

if t.TYPE_CHECKING:
    from clinicore.adapters.sql import SqlProtocol

logger = depends.get_sync(LoggerAdapter)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@t.runtime_checkable
class SeedLoaderProtocol(t.Protocol):
    async def load(self, conn: SqlProtocol) -> None: ...


class StaticSeedLoader:
    """Insert fixed reference rows, one transaction per table.

    A table that already holds rows is skipped, so loading twice is safe.
    Tables are seeded in mapping order; list parents before children.
    """

    def __init__(self, rows_by_table: Mapping[str, Sequence[Mapping[str, t.Any]]]) -> None:
        for table in rows_by_table:
            if not _IDENTIFIER.match(table):
                msg = f"Invalid seed table name: {table!r}"
                raise ValueError(msg)
        self.rows_by_table = {table: list(rows) for table, rows in rows_by_table.items()}
        self.inserted: dict[str, int] = {}

    async def load(self, conn: SqlProtocol) -> None:
        for table, rows in self.rows_by_table.items():
            if not rows:
                continue
            existing = await conn.execute_query(f"SELECT COUNT(*) AS count FROM {table}")
            if existing.data and existing.data[0]["count"] > 0:
                logger.debug(f"Seed table {table} already populated, skipping")
                continue
            async with conn.transaction() as tx:
                for row in rows:
                    columns = list(row)
                    for column in columns:
                        if not _IDENTIFIER.match(column):
                            msg = f"Invalid seed column name: {column!r}"
                            raise ValueError(msg)
                    placeholders = ", ".join("?" for _ in columns)
                    await tx.execute_command(
                        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                        [row[column] for column in columns],
                    )
            self.inserted[table] = len(rows)
            logger.info(f"Seeded {len(rows)} row(s) into {table}")
