from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from hotel_offline.core.errors import ValidationError
from hotel_offline.domain.schema import TableSchema
from hotel_offline.infrastructure.engine import quote_identifier
from hotel_offline.infrastructure.row_codecs import encode_value

_OPERATORS = frozenset({"=", "!=", "<", "<=", ">", ">="})


@dataclass(frozen=True)
class Condition:
    column: str
    operator: str
    value: Any


@dataclass(frozen=True)
class OrderBy:
    column: str
    descending: bool = False

    @classmethod
    def parse(cls, text: str) -> "OrderBy":
        parts = text.split()
        if len(parts) == 1:
            return cls(parts[0])
        if len(parts) == 2 and parts[1].upper() in {"ASC", "DESC"}:
            return cls(parts[0], descending=parts[1].upper() == "DESC")
        raise ValidationError(f"Invalid ordering clause: {text!r}")


Filters = Union[Mapping[str, Any], Iterable[Condition], None]
Ordering = Union[str, OrderBy, Sequence[Union[str, OrderBy]], None]


class QueryBuilder:
    """Builds parameterized statements for one table.

    Column names come only from the table schema; caller values are always
    bound as parameters.
    """

    def __init__(self, schema: TableSchema) -> None:
        self._schema = schema
        self._table = quote_identifier(schema.name)

    def select(
        self,
        filters: Filters = None,
        order_by: Ordering = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> tuple[str, list[Any]]:
        where_sql, params = self.where(filters)
        sql = f"SELECT * FROM {self._table}{where_sql}{self._order_sql(order_by)}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(self._non_negative("limit", limit))
        if offset is not None:
            if limit is None:
                sql += " LIMIT -1"
            sql += " OFFSET ?"
            params.append(self._non_negative("offset", offset))
        return sql, params

    def count(self, filters: Filters = None) -> tuple[str, list[Any]]:
        where_sql, params = self.where(filters)
        return f"SELECT COUNT(*) AS total FROM {self._table}{where_sql}", params

    def by_key(self) -> str:
        return f"SELECT * FROM {self._table} WHERE {self._column(self._schema.primary_key)} = ?"

    def insert(self, encoded: Mapping[str, Any]) -> tuple[str, list[Any]]:
        columns = [self._column(name) for name in encoded]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {self._table} ({', '.join(columns)}) VALUES ({placeholders})"
        return sql, list(encoded.values())

    def update(self, encoded: Mapping[str, Any], key_value: Any) -> tuple[str, list[Any]]:
        assignments = ", ".join(f"{self._column(name)} = ?" for name in encoded)
        sql = f"UPDATE {self._table} SET {assignments} WHERE {self._column(self._schema.primary_key)} = ?"
        return sql, [*encoded.values(), key_value]

    def delete(self) -> str:
        return f"DELETE FROM {self._table} WHERE {self._column(self._schema.primary_key)} = ?"

    def where(self, filters: Filters) -> tuple[str, list[Any]]:
        if not filters:
            return "", []
        conditions: Iterable[Condition]
        if isinstance(filters, Mapping):
            conditions = [Condition(column, "=", value) for column, value in filters.items()]
        else:
            conditions = filters
        clauses: list[str] = []
        params: list[Any] = []
        for condition in conditions:
            column_sql = self._column(condition.column)
            if condition.operator not in _OPERATORS:
                raise ValidationError(f"Unsupported operator: {condition.operator!r}")
            if condition.value is None:
                if condition.operator == "=":
                    clauses.append(f"{column_sql} IS NULL")
                    continue
                if condition.operator == "!=":
                    clauses.append(f"{column_sql} IS NOT NULL")
                    continue
                raise ValidationError(f"Operator {condition.operator} cannot compare with NULL")
            clauses.append(f"{column_sql} {condition.operator} ?")
            params.append(encode_value(self._schema.name, self._schema.column(condition.column), condition.value))
        if not clauses:
            return "", []
        return " WHERE " + " AND ".join(clauses), params

    def _order_sql(self, order_by: Ordering) -> str:
        if not order_by:
            return ""
        items = [order_by] if isinstance(order_by, (str, OrderBy)) else list(order_by)
        parts: list[str] = []
        for item in items:
            ordering = OrderBy.parse(item) if isinstance(item, str) else item
            direction = "DESC" if ordering.descending else "ASC"
            parts.append(f"{self._column(ordering.column)} {direction}")
        return " ORDER BY " + ", ".join(parts)

    def _column(self, name: str) -> str:
        if not self._schema.has_column(name):
            raise ValidationError(f"Unknown column for {self._schema.name}: {name!r}")
        return quote_identifier(name)

    @staticmethod
    def _non_negative(label: str, value: int) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(f"{label} must be a non-negative integer")
        return value
