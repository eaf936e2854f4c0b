from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from hotel_offline.core.errors import AppError, RecordNotFoundError, ValidationError
from hotel_offline.core.operational_logging import log_operational_error
from hotel_offline.domain.models import SyncBookkeepingFailure, SyncOperation
from hotel_offline.domain.schema import (
    CREATED_AT_COLUMN,
    NEEDS_SYNC_COLUMN,
    SYNCED_AT_COLUMN,
    UPDATED_AT_COLUMN,
    TableSchema,
)
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.outbox import BookkeepingReporter, SyncOutbox
from hotel_offline.infrastructure.query_builder import Filters, Ordering, QueryBuilder
from hotel_offline.infrastructure.row_codecs import decode_row, encode_row, now_iso

logger = logging.getLogger(__name__)

Record = dict[str, Any]

_RESERVED_ON_UPDATE = frozenset({NEEDS_SYNC_COLUMN, SYNCED_AT_COLUMN, CREATED_AT_COLUMN})


class SQLiteRepository:
    """Typed CRUD over one table of the local mirror.

    On syncable tables every create, update and delete flags the row as
    needing sync and appends an entry to the sync outbox in the same
    transaction. A failing outbox append is rolled back on its own and
    reported through the ``BookkeepingReporter``; the mutation is kept.
    """

    def __init__(
        self,
        engine: SQLiteEngine,
        schema: TableSchema,
        outbox: SyncOutbox | None = None,
        reporter: BookkeepingReporter | None = None,
    ) -> None:
        self._engine = engine
        self._schema = schema
        self._outbox = outbox
        self._reporter = reporter or BookkeepingReporter()
        self._query = QueryBuilder(schema)
        self.table_name = schema.name

    @property
    def schema(self) -> TableSchema:
        return self._schema

    @property
    def primary_key(self) -> str:
        return self._schema.primary_key

    def find_by_id(self, record_id: Any) -> Record | None:
        row = self._engine.query_one(self._query.by_key(), (self._coerce_key(record_id),))
        return decode_row(self._schema, row) if row else None

    def find_all(
        self,
        filters: Filters = None,
        order_by: Ordering = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Record]:
        sql, params = self._query.select(filters, order_by, limit, offset)
        return [decode_row(self._schema, row) for row in self._engine.query(sql, params)]

    def count(self, filters: Filters = None) -> int:
        sql, params = self._query.count(filters)
        return int(self._engine.query_scalar(sql, params) or 0)

    def exists(self, record_id: Any) -> bool:
        return self.find_by_id(record_id) is not None

    def create(self, data: Mapping[str, Any]) -> Record:
        values = self._prepare_create(data)
        with self._engine.transaction():
            record = self._insert(values, already_synced=False)
            self._record_change(SyncOperation.INSERT, record[self.primary_key], record, None)
        return record

    def bulk_create(self, records: Iterable[Mapping[str, Any]], mark_as_already_synced: bool = False) -> list[Record]:
        prepared = [self._prepare_create(data) for data in records]
        created: list[Record] = []
        with self._engine.transaction():
            for values in prepared:
                record = self._insert(values, already_synced=mark_as_already_synced)
                if not mark_as_already_synced:
                    self._record_change(SyncOperation.INSERT, record[self.primary_key], record, None)
                created.append(record)
        logger.info(
            "Bulk insert into %s",
            self.table_name,
            extra={"extra": {"table": self.table_name, "count": len(created), "already_synced": mark_as_already_synced}},
        )
        return created

    def update(self, record_id: Any, data: Mapping[str, Any]) -> Record:
        key = self._coerce_key(record_id)
        with self._engine.transaction():
            prior = self.find_by_id(key)
            if prior is None:
                raise RecordNotFoundError(self.table_name, record_id)
            changes = self._prepare_update(key, data)
            if self._schema.has_column(UPDATED_AT_COLUMN):
                changes[UPDATED_AT_COLUMN] = now_iso()
            if self._schema.syncable:
                changes[NEEDS_SYNC_COLUMN] = True
            if changes:
                sql, params = self._query.update(encode_row(self._schema, changes), key)
                self._engine.execute(sql, params)
            record = self.find_by_id(key)
            if record is None:
                raise RecordNotFoundError(self.table_name, record_id)
            self._record_change(SyncOperation.UPDATE, key, record, prior)
        return record

    def delete(self, record_id: Any) -> None:
        key = self._coerce_key(record_id)
        with self._engine.transaction():
            prior = self.find_by_id(key)
            if prior is None:
                raise RecordNotFoundError(self.table_name, record_id)
            self._engine.execute(self._query.delete(), (key,))
            self._record_change(SyncOperation.DELETE, key, None, prior)

    def get_unsynced(self) -> list[Record]:
        if not self._schema.syncable:
            return []
        return self.find_all({NEEDS_SYNC_COLUMN: True}, order_by=self.primary_key)

    def mark_synced(self, record_id: Any) -> None:
        if not self._schema.syncable:
            raise ValidationError(f"{self.table_name} is not a synced table")
        key = self._coerce_key(record_id)
        with self._engine.transaction():
            if self.find_by_id(key) is None:
                raise RecordNotFoundError(self.table_name, record_id)
            sql, params = self._query.update(
                encode_row(self._schema, {NEEDS_SYNC_COLUMN: False, SYNCED_AT_COLUMN: now_iso()}),
                key,
            )
            self._engine.execute(sql, params)

    def table_info(self) -> dict[str, Any]:
        return {
            "table": self.table_name,
            "primary_key": self.primary_key,
            "syncable": self._schema.syncable,
            "columns": self._engine.table_columns(self.table_name),
        }

    def _insert(self, values: dict[str, Any], *, already_synced: bool) -> Record:
        row = dict(values)
        timestamp = now_iso()
        for column in (CREATED_AT_COLUMN, UPDATED_AT_COLUMN):
            if self._schema.has_column(column) and (self._schema.syncable or row.get(column) is None):
                row[column] = timestamp
        if self._schema.syncable:
            row[NEEDS_SYNC_COLUMN] = not already_synced
            row[SYNCED_AT_COLUMN] = timestamp if already_synced else None
        sql, params = self._query.insert(encode_row(self._schema, row))
        self._engine.execute(sql, params)
        if self.primary_key in row and row[self.primary_key] is not None:
            key = row[self.primary_key]
        else:
            key = self._engine.last_insert_rowid()
        record = self.find_by_id(key)
        if record is None:
            raise RecordNotFoundError(self.table_name, key)
        return record

    def _prepare_create(self, data: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ValidationError(f"{self.table_name} records must be mappings, got {type(data).__name__}")
        values = dict(data)
        if self._schema.syncable:
            values.pop(NEEDS_SYNC_COLUMN, None)
            values.pop(SYNCED_AT_COLUMN, None)
            values.pop(CREATED_AT_COLUMN, None)
            values.pop(UPDATED_AT_COLUMN, None)
        encode_row(self._schema, values)
        missing = [name for name in self._schema.required_columns() if values.get(name) is None]
        if missing:
            raise ValidationError(f"Missing required field(s) for {self.table_name}: {', '.join(missing)}")
        if not self._schema.generates_key and values.get(self.primary_key) in (None, ""):
            raise ValidationError(f"{self.table_name} requires an explicit {self.primary_key}")
        if self.primary_key in values and values[self.primary_key] is not None:
            values[self.primary_key] = self._coerce_key(values[self.primary_key])
        return values

    def _prepare_update(self, key: Any, data: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(data, Mapping):
            raise ValidationError(f"{self.table_name} changes must be a mapping, got {type(data).__name__}")
        changes = dict(data)
        if self.primary_key in changes:
            if self._coerce_key(changes.pop(self.primary_key)) != key:
                raise ValidationError(f"The primary key of {self.table_name} cannot be changed")
        if self._schema.syncable:
            reserved = sorted(_RESERVED_ON_UPDATE.intersection(changes))
            if reserved:
                raise ValidationError(f"Bookkeeping column(s) cannot be updated directly: {', '.join(reserved)}")
        encode_row(self._schema, changes)
        cleared = [name for name in self._schema.required_columns() if name in changes and changes[name] is None]
        if cleared:
            raise ValidationError(f"Required field(s) of {self.table_name} cannot be cleared: {', '.join(cleared)}")
        return changes

    def _coerce_key(self, record_id: Any) -> Any:
        if isinstance(record_id, bool) or record_id is None:
            raise ValidationError(f"Invalid key for {self.table_name}: {record_id!r}")
        if self._schema.generates_key:
            if isinstance(record_id, int):
                return record_id
            if isinstance(record_id, str) and record_id.strip().lstrip("-").isdecimal():
                try:
                    return int(record_id)
                except ValueError as exc:
                    raise ValidationError(f"{self.table_name} keys are integers, got {record_id!r}") from exc
            raise ValidationError(f"{self.table_name} keys are integers, got {record_id!r}")
        if not isinstance(record_id, str):
            raise ValidationError(f"{self.table_name} keys are strings, got {record_id!r}")
        return record_id

    def _record_change(
        self,
        operation: SyncOperation,
        record_id: Any,
        payload: Record | None,
        prior_payload: Record | None,
    ) -> None:
        if not self._schema.syncable or self._outbox is None:
            return
        try:
            with self._engine.transaction():
                self._outbox.append(self.table_name, record_id, operation, payload, prior_payload)
        except (AppError, ValueError, TypeError) as exc:
            failure = SyncBookkeepingFailure(
                table_name=self.table_name,
                record_id=str(record_id),
                operation=operation,
                error_type=type(exc).__name__,
                error_message=str(exc),
                occurred_at=now_iso(),
            )
            log_operational_error(
                "Sync outbox append failed; local change kept",
                exc=exc,
                extra={"table": self.table_name, "record_id": str(record_id), "operation": operation.value},
            )
            self._reporter.report(failure)
