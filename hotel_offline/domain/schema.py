from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

NEEDS_SYNC_COLUMN = "needs_sync"
SYNCED_AT_COLUMN = "synced_at"
CREATED_AT_COLUMN = "created_at"
UPDATED_AT_COLUMN = "updated_at"
BOOKKEEPING_COLUMNS = frozenset({NEEDS_SYNC_COLUMN, SYNCED_AT_COLUMN, CREATED_AT_COLUMN, UPDATED_AT_COLUMN})

MIGRATIONS_TABLE = "migrations"
SYNC_QUEUE_TABLE = "sync_queue"
CONFLICT_LOG_TABLE = "conflict_log"
LOCAL_SETTINGS_TABLE = "local_settings"

HIGH_PRIORITY_TABLES = frozenset({"invoices", "invoice_items"})
MAIN_TABLES = ("rooms", "guests", "reservations", "invoices", "services", "tasks")


class ColumnType(str, Enum):
    INTEGER = "INTEGER"
    REAL = "REAL"
    TEXT = "TEXT"
    BOOLEAN = "BOOLEAN"
    JSON = "JSON"
    TIMESTAMP = "TIMESTAMP"


@dataclass(frozen=True)
class Column:
    name: str
    type: ColumnType
    required: bool = False


@dataclass(frozen=True)
class TableSchema:
    """Python-side description of a mirrored table.

    ``syncable`` tables carry the ``needs_sync``/``synced_at`` bookkeeping
    columns and every local mutation on them is recorded in the sync queue.
    """

    name: str
    primary_key: str
    columns: tuple[Column, ...]
    syncable: bool = True
    _by_name: dict[str, Column] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {column.name: column for column in self.columns})
        if self.primary_key not in self._by_name:
            raise ValueError(f"Primary key {self.primary_key} is not a column of {self.name}")

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def key_column(self) -> Column:
        return self._by_name[self.primary_key]

    @property
    def generates_key(self) -> bool:
        return self.key_column.type is ColumnType.INTEGER

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        return self._by_name[name]

    def required_columns(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns if column.required)


def _table(name: str, primary_key: str, columns: list[Column], *, syncable: bool = True, timestamps: bool = True) -> TableSchema:
    all_columns = list(columns)
    if timestamps:
        all_columns.append(Column(CREATED_AT_COLUMN, ColumnType.TIMESTAMP))
        all_columns.append(Column(UPDATED_AT_COLUMN, ColumnType.TIMESTAMP))
    if syncable:
        all_columns.append(Column(SYNCED_AT_COLUMN, ColumnType.TIMESTAMP))
        all_columns.append(Column(NEEDS_SYNC_COLUMN, ColumnType.BOOLEAN))
    return TableSchema(name=name, primary_key=primary_key, columns=tuple(all_columns), syncable=syncable)


_INT = ColumnType.INTEGER
_REAL = ColumnType.REAL
_TEXT = ColumnType.TEXT
_BOOL = ColumnType.BOOLEAN
_JSON = ColumnType.JSON
_TS = ColumnType.TIMESTAMP

TABLES: dict[str, TableSchema] = {
    schema.name: schema
    for schema in (
        _table(
            "rooms",
            "id",
            [
                Column("id", _INT),
                Column("room_number", _TEXT, required=True),
                Column("type", _TEXT, required=True),
                Column("status", _TEXT),
                Column("price", _REAL, required=True),
                Column("capacity", _INT, required=True),
                Column("amenities", _JSON),
            ],
        ),
        _table(
            "guests",
            "id",
            [
                Column("id", _INT),
                Column("name", _TEXT, required=True),
                Column("email", _TEXT),
                Column("phone", _TEXT),
                Column("room", _TEXT),
                Column("check_in_date", _TEXT),
                Column("check_out_date", _TEXT),
                Column("status", _TEXT),
            ],
        ),
        _table(
            "reservations",
            "id",
            [
                Column("id", _INT),
                Column("guest_id", _INT),
                Column("room_id", _INT),
                Column("start_date", _TEXT, required=True),
                Column("end_date", _TEXT, required=True),
                Column("status", _TEXT),
                Column("total_amount", _REAL),
            ],
        ),
        _table(
            "invoices",
            "id",
            [
                Column("id", _INT),
                Column("guest_name", _TEXT, required=True),
                Column("room_number", _TEXT, required=True),
                Column("check_in_date", _TEXT, required=True),
                Column("check_out_date", _TEXT, required=True),
                Column("room_type", _TEXT),
                Column("nights", _INT),
                Column("room_rate", _REAL),
                Column("room_total", _REAL),
                Column("service_total", _REAL),
                Column("amount", _REAL),
                Column("status", _TEXT),
                Column("has_service_items", _BOOL),
            ],
        ),
        _table(
            "invoice_items",
            "id",
            [
                Column("id", _INT),
                Column("invoice_id", _INT, required=True),
                Column("service_id", _INT),
                Column("item_name", _TEXT, required=True),
                Column("item_price", _REAL),
                Column("item_date", _TEXT),
                Column("item_type", _TEXT),
            ],
        ),
        _table(
            "user_profiles",
            "user_id",
            [
                Column("user_id", _TEXT),
                Column("full_name", _TEXT),
                Column("position", _TEXT),
                Column("department", _TEXT),
                Column("contact_number", _TEXT),
                Column("role", _TEXT),
            ],
        ),
        _table(
            "access_requests",
            "id",
            [
                Column("id", _INT),
                Column("full_name", _TEXT, required=True),
                Column("email", _TEXT, required=True),
                Column("position", _TEXT, required=True),
                Column("department", _TEXT, required=True),
                Column("reason", _TEXT),
                Column("contact_number", _TEXT),
                Column("request_date", _TS),
                Column("status", _TEXT),
                Column("processed_by", _TEXT),
                Column("processed_at", _TS),
            ],
        ),
        _table(
            "services",
            "id",
            [
                Column("id", _INT),
                Column("name", _TEXT, required=True),
                Column("description", _TEXT),
                Column("price", _REAL),
                Column("category", _TEXT),
                Column("available", _BOOL),
            ],
        ),
        _table(
            "service_requests",
            "id",
            [
                Column("id", _INT),
                Column("guest_id", _INT),
                Column("room_number", _TEXT),
                Column("service_id", _INT),
                Column("description", _TEXT),
                Column("status", _TEXT),
                Column("priority", _TEXT),
                Column("assigned_to", _TEXT),
                Column("requested_at", _TS),
                Column("completed_at", _TS),
            ],
        ),
        _table(
            "tasks",
            "id",
            [
                Column("id", _INT),
                Column("title", _TEXT, required=True),
                Column("description", _TEXT),
                Column("assigned_to", _TEXT),
                Column("status", _TEXT),
                Column("priority", _TEXT),
                Column("due_date", _TS),
                Column("completed_at", _TS),
            ],
        ),
        _table(
            "inventory_categories",
            "id",
            [
                Column("id", _INT),
                Column("name", _TEXT, required=True),
                Column("description", _TEXT),
            ],
        ),
        _table(
            "inventory_items",
            "id",
            [
                Column("id", _INT),
                Column("name", _TEXT, required=True),
                Column("description", _TEXT),
                Column("category_id", _INT),
                Column("quantity", _INT),
                Column("unit", _TEXT),
                Column("min_quantity", _INT),
                Column("price", _REAL),
                Column("supplier", _TEXT),
            ],
        ),
        _table(
            "reports",
            "id",
            [
                Column("id", _INT),
                Column("name", _TEXT, required=True),
                Column("type", _TEXT, required=True),
                Column("data", _JSON),
                Column("parameters", _JSON),
                Column("generated_at", _TS),
                Column("generated_by", _TEXT),
            ],
        ),
        _table(
            SYNC_QUEUE_TABLE,
            "id",
            [
                Column("id", _INT),
                Column("table_name", _TEXT, required=True),
                Column("record_id", _TEXT, required=True),
                Column("operation", _TEXT, required=True),
                Column("data", _JSON),
                Column("old_data", _JSON),
                Column("timestamp", _TS),
                Column("sync_status", _TEXT),
                Column("retry_count", _INT),
                Column("error_message", _TEXT),
                Column("priority", _INT),
            ],
            syncable=False,
            timestamps=False,
        ),
        _table(
            CONFLICT_LOG_TABLE,
            "id",
            [
                Column("id", _INT),
                Column("table_name", _TEXT, required=True),
                Column("record_id", _TEXT, required=True),
                Column("local_data", _JSON),
                Column("server_data", _JSON),
                Column("conflict_type", _TEXT),
                Column("resolution", _TEXT),
                Column("resolved_data", _JSON),
                Column(CREATED_AT_COLUMN, _TS),
                Column("resolved_at", _TS),
                Column("resolved_by", _TEXT),
            ],
            syncable=False,
            timestamps=False,
        ),
        _table(
            "offline_sessions",
            "session_id",
            [
                Column("session_id", _TEXT),
                Column("user_id", _TEXT, required=True),
                Column("user_data", _JSON),
                Column("start_time", _TS),
                Column("last_activity", _TS),
                Column("is_active", _BOOL),
            ],
            syncable=False,
            timestamps=False,
        ),
        _table(
            LOCAL_SETTINGS_TABLE,
            "key",
            [
                Column("key", _TEXT),
                Column("value", _TEXT),
                Column("type", _TEXT),
                Column(UPDATED_AT_COLUMN, _TS),
            ],
            syncable=False,
            timestamps=False,
        ),
    )
}

SYNCABLE_TABLES = tuple(name for name, schema in TABLES.items() if schema.syncable)


def get_table_schema(name: str) -> TableSchema:
    try:
        return TABLES[name]
    except KeyError as exc:
        raise KeyError(f"Unknown table: {name}") from exc
