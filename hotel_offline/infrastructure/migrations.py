from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Callable

from hotel_offline.core.errors import SchemaConflictError, SnapshotPersistError
from hotel_offline.domain.models import MigrationRecord
from hotel_offline.domain.schema import MIGRATIONS_TABLE
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.row_codecs import now_iso

MigrationApply = Callable[[SQLiteEngine], None]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Migration:
    name: str
    apply: MigrationApply


class MigrationRunner:
    """Applies named schema migrations exactly once, in declaration order.

    Each migration and its bookkeeping row are committed together; the first
    failure rolls back that migration and stops the run.
    """

    def __init__(self, engine: SQLiteEngine) -> None:
        self._engine = engine

    def run(self, migrations: Sequence[Migration]) -> list[str]:
        self._validate_names(migrations)
        self._ensure_history_table()
        applied = self.applied_names()
        executed: list[str] = []
        for migration in migrations:
            if migration.name in applied:
                continue
            self._apply_migration(migration)
            executed.append(migration.name)
        if executed:
            logger.info("Migrations applied", extra={"extra": {"migrations": executed}})
        return executed

    def status(self, migrations: Sequence[Migration]) -> list[dict[str, object]]:
        records = {record.name: record for record in self.applied_records()}
        return [
            {
                "name": migration.name,
                "applied": migration.name in records,
                "executed_at": records[migration.name].executed_at if migration.name in records else None,
            }
            for migration in migrations
        ]

    def applied_names(self) -> set[str]:
        return {record.name for record in self.applied_records()}

    def applied_records(self) -> list[MigrationRecord]:
        if MIGRATIONS_TABLE not in self._engine.list_tables():
            return []
        rows = self._engine.query(f"SELECT name, executed_at FROM {MIGRATIONS_TABLE} ORDER BY id")
        return [MigrationRecord(name=row["name"], executed_at=row["executed_at"]) for row in rows]

    def _ensure_history_table(self) -> None:
        self._engine.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL UNIQUE,
                executed_at TEXT NOT NULL
            )
            """
        )

    def _apply_migration(self, migration: Migration) -> None:
        logger.info("Running migration %s", migration.name)
        try:
            with self._engine.transaction():
                migration.apply(self._engine)
                self._engine.execute(
                    f"INSERT INTO {MIGRATIONS_TABLE} (name, executed_at) VALUES (?, ?)",
                    (migration.name, now_iso()),
                )
        except SnapshotPersistError:
            raise
        except Exception as exc:
            logger.error(
                "Migration %s failed; rolled back",
                migration.name,
                extra={"extra": {"migration": migration.name, "error_type": type(exc).__name__}},
            )
            raise SchemaConflictError(migration.name, str(exc)) from exc

    @staticmethod
    def _validate_names(migrations: Sequence[Migration]) -> None:
        seen: set[str] = set()
        for migration in migrations:
            if migration.name in seen:
                raise ValueError(f"Duplicate migration name: {migration.name}")
            seen.add(migration.name)
