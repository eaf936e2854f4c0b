from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Callable

from hotel_offline.core.errors import AppError
from hotel_offline.domain.schema import TableSchema
from hotel_offline.infrastructure.conflict_log import ConflictLog
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.migrations import Migration, MigrationRunner
from hotel_offline.infrastructure.outbox import SyncOutbox

PASS = "pass"
WARNING = "warning"
FAIL = "fail"

ProbeResult = dict[str, tuple[str, str, dict[str, Any]]]


class LocalStoreProbe:
    category = "Local database"

    def __init__(
        self,
        engine_provider: Callable[[], SQLiteEngine | None],
        tables: Mapping[str, TableSchema],
        migrations: Sequence[Migration],
    ) -> None:
        self._engine_provider = engine_provider
        self._tables = tables
        self._migrations = migrations

    def check(self) -> ProbeResult:
        engine = self._engine_provider()
        if engine is None or engine.closed:
            return {
                "initialized": (FAIL, "Database is not initialized.", {}),
                "table_integrity": (FAIL, "Cannot validate tables without a database.", {}),
                "migrations": (FAIL, "Cannot validate migrations without a database.", {}),
            }
        try:
            existing = set(engine.list_tables())
            missing = sorted(name for name in self._tables if name not in existing)
            drifted = self._drifted_tables(engine, existing)
            applied = MigrationRunner(engine).applied_names()
        except AppError as exc:
            return {
                "initialized": (PASS, "Database is initialized.", {}),
                "table_integrity": (FAIL, f"Database is not readable: {exc}", {}),
                "migrations": (FAIL, "Cannot read migration history.", {}),
            }

        pending = [migration.name for migration in self._migrations if migration.name not in applied]
        integrity_ok = not missing and not drifted
        return {
            "initialized": (PASS, "Database is initialized.", {"size_bytes": engine.size_bytes()}),
            "table_integrity": (
                PASS if integrity_ok else FAIL,
                "All expected tables are present."
                if integrity_ok
                else f"Missing tables: {', '.join(missing) or '-'}; tables with missing columns: {', '.join(drifted) or '-'}.",
                {"missing_tables": missing, "drifted_tables": drifted, "table_count": len(existing)},
            ),
            "migrations": (
                PASS if not pending else FAIL,
                "All migrations applied." if not pending else f"Pending migrations: {', '.join(pending)}.",
                {"applied": len(applied), "pending": pending},
            ),
        }

    def _drifted_tables(self, engine: SQLiteEngine, existing: set[str]) -> list[str]:
        drifted: list[str] = []
        for name, schema in self._tables.items():
            if name not in existing:
                continue
            actual = {column["name"] for column in engine.table_columns(name)}
            if any(column not in actual for column in schema.column_names):
                drifted.append(name)
        return sorted(drifted)


class SyncQueueProbe:
    category = "Sync"

    def __init__(
        self,
        outbox_provider: Callable[[], SyncOutbox | None],
        conflicts_provider: Callable[[], ConflictLog | None],
    ) -> None:
        self._outbox_provider = outbox_provider
        self._conflicts_provider = conflicts_provider

    def check(self) -> ProbeResult:
        outbox = self._outbox_provider()
        conflicts = self._conflicts_provider()
        if outbox is None or conflicts is None:
            return {
                "sync_queue": (FAIL, "Sync queue is not available.", {}),
                "conflicts": (FAIL, "Conflict log is not available.", {}),
            }
        try:
            counts = outbox.count_by_status()
            unresolved = conflicts.count_unresolved()
        except AppError as exc:
            return {
                "sync_queue": (FAIL, f"Sync queue is not readable: {exc}", {}),
                "conflicts": (FAIL, "Conflict log is not readable.", {}),
            }
        failed = counts.get("failed", 0)
        return {
            "sync_queue": (
                WARNING if failed else PASS,
                f"{failed} sync operation(s) failed." if failed else "No failed sync operations.",
                counts,
            ),
            "conflicts": (
                WARNING if unresolved else PASS,
                f"{unresolved} unresolved conflict(s)." if unresolved else "No unresolved conflicts.",
                {"unresolved": unresolved},
            ),
        }
