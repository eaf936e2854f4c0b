from __future__ import annotations

import json
from datetime import date, datetime, timezone
from typing import Any

from hotel_offline.core.errors import ValidationError
from hotel_offline.domain.schema import Column, ColumnType, TableSchema


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _timestamp_to_text(value: datetime | date) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
    return value.isoformat()


def encode_value(table_name: str, column: Column, value: Any) -> Any:
    """Converts a Python value into its stored representation, rejecting type mismatches."""
    if value is None:
        return None
    kind = column.type
    if kind is ColumnType.BOOLEAN:
        if isinstance(value, bool):
            return 1 if value else 0
        if isinstance(value, int) and value in (0, 1):
            return value
    elif kind is ColumnType.INTEGER:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif kind is ColumnType.REAL:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    elif kind is ColumnType.TEXT:
        if isinstance(value, str):
            return value
    elif kind is ColumnType.TIMESTAMP:
        if isinstance(value, str):
            return value
        if isinstance(value, (datetime, date)):
            return _timestamp_to_text(value)
    elif kind is ColumnType.JSON:
        try:
            return json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{table_name}.{column.name} is not JSON serializable: {exc}") from exc
    raise ValidationError(
        f"{table_name}.{column.name} expects {kind.value}, got {type(value).__name__}"
    )


def decode_value(column: Column, raw: Any) -> Any:
    if raw is None:
        return None
    if column.type is ColumnType.BOOLEAN:
        return bool(raw)
    if column.type is ColumnType.JSON:
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return raw
        return raw
    return raw


def encode_row(schema: TableSchema, data: dict[str, Any]) -> dict[str, Any]:
    unknown = [name for name in data if not schema.has_column(name)]
    if unknown:
        raise ValidationError(f"Unknown column(s) for {schema.name}: {', '.join(sorted(unknown))}")
    return {name: encode_value(schema.name, schema.column(name), value) for name, value in data.items()}


def decode_row(schema: TableSchema, row: dict[str, Any]) -> dict[str, Any]:
    decoded: dict[str, Any] = {}
    for name, raw in row.items():
        if schema.has_column(name):
            decoded[name] = decode_value(schema.column(name), raw)
        else:
            decoded[name] = raw
    return decoded
