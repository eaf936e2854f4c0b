from __future__ import annotations

import json
import logging
from typing import Any, Callable

from hotel_offline.core.errors import ConflictAlreadyResolvedError, RecordNotFoundError, ValidationError
from hotel_offline.domain.models import ConflictRecord, ConflictResolution
from hotel_offline.domain.ports import RecordRepositoryPort
from hotel_offline.domain.schema import BOOKKEEPING_COLUMNS, CONFLICT_LOG_TABLE
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.row_codecs import now_iso

logger = logging.getLogger(__name__)

RepositoryLookup = Callable[[str], RecordRepositoryPort]

_SELECT_COLUMNS = (
    "id, table_name, record_id, local_data, server_data, conflict_type, resolution, "
    "resolved_data, created_at, resolved_at, resolved_by"
)


def _loads(raw: str | None) -> dict[str, Any] | None:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


def _row_to_record(row: dict[str, Any]) -> ConflictRecord:
    return ConflictRecord(
        id=int(row["id"]),
        table_name=row["table_name"],
        record_id=str(row["record_id"]),
        local_data=_loads(row["local_data"]) or {},
        server_data=_loads(row["server_data"]) or {},
        conflict_type=row["conflict_type"],
        created_at=row["created_at"],
        resolution=ConflictResolution(row["resolution"]) if row["resolution"] else None,
        resolved_data=_loads(row["resolved_data"]),
        resolved_at=row["resolved_at"],
        resolved_by=row["resolved_by"],
    )


class ConflictLog:
    """Records divergences between local and remote copies of a row.

    Resolution writes the chosen data back through the owning repository so
    the result is itself queued for sync. Records are kept after resolution.
    """

    def __init__(self, engine: SQLiteEngine, repository_lookup: RepositoryLookup) -> None:
        self._engine = engine
        self._repository_lookup = repository_lookup

    def record(
        self,
        table_name: str,
        record_id: object,
        local_data: dict[str, Any],
        server_data: dict[str, Any],
        conflict_type: str,
    ) -> ConflictRecord:
        self._repository_lookup(table_name)
        with self._engine.transaction():
            self._engine.execute(
                f"""
                INSERT INTO {CONFLICT_LOG_TABLE} (table_name, record_id, local_data, server_data, conflict_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    table_name,
                    str(record_id),
                    json.dumps(local_data),
                    json.dumps(server_data),
                    conflict_type,
                    now_iso(),
                ),
            )
            conflict_id = self._engine.last_insert_rowid()
        logger.info(
            "Sync conflict recorded",
            extra={"extra": {"conflict_id": conflict_id, "table": table_name, "record_id": str(record_id)}},
        )
        return self._require(conflict_id)

    def get(self, conflict_id: int) -> ConflictRecord | None:
        row = self._engine.query_one(
            f"SELECT {_SELECT_COLUMNS} FROM {CONFLICT_LOG_TABLE} WHERE id = ?",
            (conflict_id,),
        )
        return _row_to_record(row) if row else None

    def list_unresolved(self) -> list[ConflictRecord]:
        rows = self._engine.query(
            f"SELECT {_SELECT_COLUMNS} FROM {CONFLICT_LOG_TABLE} WHERE resolved_at IS NULL ORDER BY created_at ASC, id ASC"
        )
        return [_row_to_record(row) for row in rows]

    def list_all(self) -> list[ConflictRecord]:
        rows = self._engine.query(f"SELECT {_SELECT_COLUMNS} FROM {CONFLICT_LOG_TABLE} ORDER BY id ASC")
        return [_row_to_record(row) for row in rows]

    def count_unresolved(self) -> int:
        return int(
            self._engine.query_scalar(f"SELECT COUNT(*) FROM {CONFLICT_LOG_TABLE} WHERE resolved_at IS NULL") or 0
        )

    def count(self) -> int:
        return int(self._engine.query_scalar(f"SELECT COUNT(*) FROM {CONFLICT_LOG_TABLE}") or 0)

    def resolve(
        self,
        conflict_id: int,
        resolution: ConflictResolution | str,
        resolved_data: dict[str, Any] | None = None,
        resolved_by: str | None = None,
    ) -> ConflictRecord:
        try:
            strategy = ConflictResolution(resolution)
        except ValueError as exc:
            raise ValidationError(f"Unknown conflict resolution: {resolution!r}") from exc
        with self._engine.transaction():
            conflict = self._require(conflict_id)
            if conflict.is_resolved:
                raise ConflictAlreadyResolvedError(f"Conflict {conflict_id} was already resolved")
            final_data = self._select_data(conflict, strategy, resolved_data)
            repository = self._repository_lookup(conflict.table_name)
            repository.update(conflict.record_id, self._writable_fields(final_data, repository))
            self._engine.execute(
                f"""
                UPDATE {CONFLICT_LOG_TABLE}
                SET resolution = ?, resolved_data = ?, resolved_at = ?, resolved_by = ?
                WHERE id = ?
                """,
                (strategy.value, json.dumps(final_data), now_iso(), resolved_by, conflict_id),
            )
        logger.info(
            "Sync conflict resolved",
            extra={"extra": {"conflict_id": conflict_id, "resolution": strategy.value}},
        )
        return self._require(conflict_id)

    def _require(self, conflict_id: int) -> ConflictRecord:
        conflict = self.get(conflict_id)
        if conflict is None:
            raise RecordNotFoundError(CONFLICT_LOG_TABLE, conflict_id)
        return conflict

    @staticmethod
    def _select_data(
        conflict: ConflictRecord,
        strategy: ConflictResolution,
        resolved_data: dict[str, Any] | None,
    ) -> dict[str, Any]:
        if strategy is ConflictResolution.LOCAL_WINS:
            return dict(conflict.local_data)
        if strategy is ConflictResolution.SERVER_WINS:
            return dict(conflict.server_data)
        if resolved_data is None:
            raise ValidationError(f"Resolution {strategy.value} requires resolved_data")
        return dict(resolved_data)

    @staticmethod
    def _writable_fields(data: dict[str, Any], repository: RecordRepositoryPort) -> dict[str, Any]:
        primary_key = repository.primary_key
        return {
            name: value
            for name, value in data.items()
            if name not in BOOKKEEPING_COLUMNS and name != primary_key
        }
