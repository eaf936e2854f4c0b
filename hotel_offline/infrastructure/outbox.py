from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable

from hotel_offline.core.errors import RecordNotFoundError, ValidationError
from hotel_offline.core.metrics import MetricsRegistry
from hotel_offline.domain.models import (
    HIGH_PRIORITY,
    NORMAL_PRIORITY,
    OutboxEntry,
    SyncBookkeepingFailure,
    SyncOperation,
    SyncStatus,
)
from hotel_offline.domain.schema import HIGH_PRIORITY_TABLES, SYNC_QUEUE_TABLE
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.row_codecs import now_iso

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[SyncStatus, frozenset[SyncStatus]] = {
    SyncStatus.PENDING: frozenset({SyncStatus.SYNCING}),
    SyncStatus.SYNCING: frozenset({SyncStatus.COMPLETED, SyncStatus.FAILED}),
    SyncStatus.FAILED: frozenset({SyncStatus.PENDING}),
    SyncStatus.COMPLETED: frozenset(),
}

_SELECT_COLUMNS = (
    "id, table_name, record_id, operation, data, old_data, timestamp, "
    "sync_status, retry_count, error_message, priority"
)

BookkeepingCallback = Callable[[SyncBookkeepingFailure], None]


def priority_for(table_name: str, operation: SyncOperation) -> int:
    if operation is SyncOperation.DELETE or table_name in HIGH_PRIORITY_TABLES:
        return HIGH_PRIORITY
    return NORMAL_PRIORITY


def _json_or_none(raw: str | None) -> dict[str, Any] | None:
    if raw is None or raw == "":
        return None
    return json.loads(raw)


def _row_to_entry(row: dict[str, Any]) -> OutboxEntry:
    return OutboxEntry(
        id=int(row["id"]),
        table_name=row["table_name"],
        record_id=str(row["record_id"]),
        operation=SyncOperation(row["operation"]),
        payload=_json_or_none(row["data"]),
        prior_payload=_json_or_none(row["old_data"]),
        timestamp=row["timestamp"],
        sync_status=SyncStatus(row["sync_status"]),
        retry_count=int(row["retry_count"] or 0),
        priority=int(row["priority"]),
        error_message=row["error_message"],
    )


class BookkeepingReporter:
    """Event channel for outbox appends that failed after the mutation was kept."""

    def __init__(self, metrics: MetricsRegistry | None = None) -> None:
        self._metrics = metrics
        self._lock = threading.Lock()
        self._failures: list[SyncBookkeepingFailure] = []
        self._subscribers: list[BookkeepingCallback] = []

    @property
    def failures(self) -> tuple[SyncBookkeepingFailure, ...]:
        with self._lock:
            return tuple(self._failures)

    def subscribe(self, callback: BookkeepingCallback) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def report(self, failure: SyncBookkeepingFailure) -> None:
        with self._lock:
            self._failures.append(failure)
            subscribers = list(self._subscribers)
        if self._metrics is not None:
            self._metrics.increment("outbox.bookkeeping_failures")
        for callback in subscribers:
            callback(failure)

    def clear(self) -> None:
        with self._lock:
            self._failures.clear()


class SyncOutbox:
    """Ordered log of local mutations waiting to be pushed to the remote system."""

    def __init__(self, engine: SQLiteEngine, metrics: MetricsRegistry | None = None) -> None:
        self._engine = engine
        self._metrics = metrics

    def append(
        self,
        table_name: str,
        record_id: object,
        operation: SyncOperation,
        payload: dict[str, Any] | None,
        prior_payload: dict[str, Any] | None,
    ) -> int:
        self._engine.execute(
            f"""
            INSERT INTO {SYNC_QUEUE_TABLE}
                (table_name, record_id, operation, data, old_data, timestamp, sync_status, retry_count, priority)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                table_name,
                str(record_id),
                operation.value,
                json.dumps(payload) if payload is not None else None,
                json.dumps(prior_payload) if prior_payload is not None else None,
                now_iso(),
                SyncStatus.PENDING.value,
                0,
                priority_for(table_name, operation),
            ),
        )
        entry_id = self._engine.last_insert_rowid()
        if self._metrics is not None:
            self._metrics.increment("outbox.appended")
        return entry_id

    def get(self, entry_id: int) -> OutboxEntry | None:
        row = self._engine.query_one(
            f"SELECT {_SELECT_COLUMNS} FROM {SYNC_QUEUE_TABLE} WHERE id = ?",
            (entry_id,),
        )
        return _row_to_entry(row) if row else None

    def list_pending(self, limit: int | None = None) -> list[OutboxEntry]:
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM {SYNC_QUEUE_TABLE} WHERE sync_status = ? "
            "ORDER BY priority ASC, timestamp ASC, id ASC"
        )
        params: list[Any] = [SyncStatus.PENDING.value]
        if limit is not None:
            if limit < 0:
                raise ValidationError("limit must be a non-negative integer")
            sql += " LIMIT ?"
            params.append(limit)
        return [_row_to_entry(row) for row in self._engine.query(sql, params)]

    def list_by_status(self, status: SyncStatus) -> list[OutboxEntry]:
        rows = self._engine.query(
            f"SELECT {_SELECT_COLUMNS} FROM {SYNC_QUEUE_TABLE} WHERE sync_status = ? ORDER BY id ASC",
            (SyncStatus(status).value,),
        )
        return [_row_to_entry(row) for row in rows]

    def entries_for(self, table_name: str, record_id: object) -> list[OutboxEntry]:
        rows = self._engine.query(
            f"SELECT {_SELECT_COLUMNS} FROM {SYNC_QUEUE_TABLE} WHERE table_name = ? AND record_id = ? ORDER BY id ASC",
            (table_name, str(record_id)),
        )
        return [_row_to_entry(row) for row in rows]

    def mark_syncing(self, entry_id: int) -> OutboxEntry:
        return self._transition(entry_id, SyncStatus.SYNCING)

    def mark_completed(self, entry_id: int) -> OutboxEntry:
        return self._transition(entry_id, SyncStatus.COMPLETED)

    def mark_failed(self, entry_id: int, error_message: str) -> OutboxEntry:
        return self._transition(entry_id, SyncStatus.FAILED, error_message=error_message)

    def retry(self, entry_id: int) -> OutboxEntry:
        return self._transition(entry_id, SyncStatus.PENDING)

    def retry_failed(self, max_retries: int | None = None) -> int:
        sql = f"UPDATE {SYNC_QUEUE_TABLE} SET sync_status = ? WHERE sync_status = ?"
        params: list[Any] = [SyncStatus.PENDING.value, SyncStatus.FAILED.value]
        if max_retries is not None:
            sql += " AND retry_count < ?"
            params.append(max_retries)
        requeued = self._engine.execute(sql, params)
        logger.info("Failed outbox entries re-queued", extra={"extra": {"count": requeued}})
        return requeued

    def purge_completed(self) -> int:
        return self._engine.execute(
            f"DELETE FROM {SYNC_QUEUE_TABLE} WHERE sync_status = ?",
            (SyncStatus.COMPLETED.value,),
        )

    def count_by_status(self) -> dict[str, int]:
        counts = {status.value: 0 for status in SyncStatus}
        rows = self._engine.query(
            f"SELECT sync_status, COUNT(*) AS total FROM {SYNC_QUEUE_TABLE} GROUP BY sync_status"
        )
        for row in rows:
            counts[row["sync_status"]] = int(row["total"])
        counts["total"] = sum(counts[status.value] for status in SyncStatus)
        return counts

    def _transition(self, entry_id: int, target: SyncStatus, *, error_message: str | None = None) -> OutboxEntry:
        with self._engine.transaction():
            current = self.get(entry_id)
            if current is None:
                raise RecordNotFoundError(SYNC_QUEUE_TABLE, entry_id)
            if target not in _ALLOWED_TRANSITIONS[current.sync_status]:
                raise ValidationError(
                    f"Outbox entry {entry_id} cannot move from {current.sync_status.value} to {target.value}"
                )
            if target is SyncStatus.FAILED:
                self._engine.execute(
                    f"UPDATE {SYNC_QUEUE_TABLE} SET sync_status = ?, retry_count = retry_count + 1, "
                    "error_message = ? WHERE id = ?",
                    (target.value, error_message, entry_id),
                )
            else:
                self._engine.execute(
                    f"UPDATE {SYNC_QUEUE_TABLE} SET sync_status = ? WHERE id = ?",
                    (target.value, entry_id),
                )
            updated = self.get(entry_id)
        if updated is None:
            raise RecordNotFoundError(SYNC_QUEUE_TABLE, entry_id)
        return updated
