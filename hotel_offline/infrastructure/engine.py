from __future__ import annotations

import contextlib
import logging
import re
import sqlite3
import threading
import uuid
from collections.abc import Iterator, Mapping, Sequence
from typing import Any, Callable

from hotel_offline.core.errors import (
    ConstraintViolationError,
    MalformedStatementError,
    PersistenceError,
    TransactionFailureError,
)

logger = logging.getLogger(__name__)

APPLICATION_ID = 0x484F5346
SQLITE_HEADER = b"SQLite format 3\x00"
_HEADER_SIZE = 100
_APPLICATION_ID_OFFSET = 68
_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Params = Sequence[Any] | Mapping[str, Any]
CommitHook = Callable[[], None]


def quote_identifier(name: str) -> str:
    if not _IDENTIFIER_PATTERN.match(name):
        raise MalformedStatementError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def _validate_params(statement: str, params: Params) -> None:
    if isinstance(params, Mapping):
        return
    expected = statement.count("?")
    actual = len(params)
    if expected != actual:
        raise MalformedStatementError(
            f"SQL param mismatch: expected {expected} placeholders, got {actual} parameters."
        )


class SQLiteEngine:
    """In-memory SQLite database whose full state can be exported and re-imported.

    All access to the connection is serialized by one re-entrant lock; an open
    transaction keeps the lock until commit or rollback. ``on_commit`` runs
    after every outermost commit while the lock is still held.
    """

    def __init__(self, snapshot: bytes | None = None, *, on_commit: CommitHook | None = None) -> None:
        self._connection = sqlite3.connect(":memory:", isolation_level=None, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._closed = False
        self.on_commit = on_commit
        if snapshot is None:
            self._connection.execute(f"PRAGMA application_id = {APPLICATION_ID}")
        else:
            self.load_snapshot(snapshot)

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(self, statement: str, params: Params = ()) -> int:
        with self._lock:
            self._ensure_open()
            if self._depth == 0:
                with self.transaction():
                    return self._run(statement, params).rowcount
            return self._run(statement, params).rowcount

    def query(self, statement: str, params: Params = ()) -> list[dict[str, Any]]:
        with self._lock:
            self._ensure_open()
            cursor = self._run(statement, params)
            return [dict(row) for row in cursor.fetchall()]

    def query_one(self, statement: str, params: Params = ()) -> dict[str, Any] | None:
        with self._lock:
            self._ensure_open()
            row = self._run(statement, params).fetchone()
            return dict(row) if row is not None else None

    def query_scalar(self, statement: str, params: Params = ()) -> Any:
        with self._lock:
            self._ensure_open()
            row = self._run(statement, params).fetchone()
            return row[0] if row is not None else None

    def last_insert_rowid(self) -> int:
        return int(self.query_scalar("SELECT last_insert_rowid()"))

    def begin(self) -> None:
        self._lock.acquire()
        try:
            self._ensure_open()
            if self._depth > 0:
                raise TransactionFailureError("A transaction is already open")
            self._connection.execute("BEGIN")
        except sqlite3.Error as exc:
            self._lock.release()
            raise TransactionFailureError(f"Cannot begin transaction: {exc}") from exc
        except Exception:
            self._lock.release()
            raise
        self._depth = 1

    def commit(self) -> None:
        with self._lock:
            if self._depth != 1:
                raise TransactionFailureError("No outermost transaction is open")
            try:
                self._connection.execute("COMMIT")
            except sqlite3.Error as exc:
                raise TransactionFailureError(f"Commit failed: {exc}") from exc
            self._depth = 0
            self._lock.release()
            if self.on_commit is not None:
                self.on_commit()

    def rollback(self) -> None:
        with self._lock:
            if self._depth != 1:
                raise TransactionFailureError("No outermost transaction is open")
            try:
                if self._connection.in_transaction:
                    self._connection.execute("ROLLBACK")
            finally:
                self._depth = 0
                self._lock.release()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        """Runs the block atomically; nested calls become SAVEPOINTs."""
        with self._lock:
            self._ensure_open()
            if self._depth > 0:
                savepoint_name = f"sp_{uuid.uuid4().hex}"
                self._connection.execute(f"SAVEPOINT {savepoint_name}")
                self._depth += 1
                try:
                    yield
                except Exception:
                    self._connection.execute(f"ROLLBACK TO SAVEPOINT {savepoint_name}")
                    self._connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
                    raise
                else:
                    self._connection.execute(f"RELEASE SAVEPOINT {savepoint_name}")
                finally:
                    self._depth -= 1
                return

            self.begin()
            try:
                yield
            except Exception:
                self.rollback()
                raise
            try:
                self.commit()
            except TransactionFailureError:
                if self._depth == 1:
                    self.rollback()
                raise

    def export(self) -> bytes:
        with self._lock:
            self._ensure_open()
            return self._connection.serialize()

    def load_snapshot(self, data: bytes) -> None:
        with self._lock:
            self._ensure_open()
            if self._depth > 0:
                raise TransactionFailureError("Cannot import a snapshot inside an open transaction")
            if len(data) < _HEADER_SIZE or not data.startswith(SQLITE_HEADER):
                raise PersistenceError("Snapshot is not a SQLite database image")
            application_id = int.from_bytes(data[_APPLICATION_ID_OFFSET : _APPLICATION_ID_OFFSET + 4], "big")
            if application_id != APPLICATION_ID:
                raise PersistenceError(f"Snapshot belongs to another application (id={application_id})")
            try:
                self._connection.deserialize(data)
                self._connection.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
            except sqlite3.Error as exc:
                raise PersistenceError(f"Snapshot could not be loaded: {exc}") from exc

    def list_tables(self) -> list[str]:
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    def table_columns(self, table_name: str) -> list[dict[str, Any]]:
        return self.query(f"PRAGMA table_info({quote_identifier(table_name)})")

    def size_bytes(self) -> int:
        page_count = self.query_scalar("PRAGMA page_count") or 0
        page_size = self.query_scalar("PRAGMA page_size") or 0
        return int(page_count) * int(page_size)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            if self._depth > 0:
                logger.warning("Closing engine with an open transaction; rolling back")
                if self._connection.in_transaction:
                    self._connection.execute("ROLLBACK")
                self._depth = 0
                self._lock.release()
            self._connection.close()
            self._closed = True

    def _ensure_open(self) -> None:
        if self._closed:
            raise PersistenceError("Engine is closed")

    def _run(self, statement: str, params: Params) -> sqlite3.Cursor:
        _validate_params(statement, params)
        try:
            return self._connection.execute(statement, params)
        except sqlite3.IntegrityError as exc:
            raise ConstraintViolationError(str(exc)) from exc
        except (sqlite3.OperationalError, sqlite3.ProgrammingError, sqlite3.InterfaceError, sqlite3.Warning) as exc:
            raise MalformedStatementError(str(exc)) from exc
        except sqlite3.DatabaseError as exc:
            raise TransactionFailureError(str(exc)) from exc
