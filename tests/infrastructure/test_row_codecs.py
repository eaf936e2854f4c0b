from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from hotel_offline.core.errors import ValidationError
from hotel_offline.domain.schema import TABLES, Column, ColumnType
from hotel_offline.infrastructure.row_codecs import decode_row, encode_row, encode_value, now_iso


def test_now_iso_is_utc_with_microseconds() -> None:
    stamp = now_iso()

    assert stamp.endswith("Z")
    assert "." in stamp


def test_naive_and_aware_datetimes_are_stored_as_utc() -> None:
    column = Column("check_in", ColumnType.TIMESTAMP)
    aware = datetime(2026, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert encode_value("reservations", column, aware) == "2026-03-01T12:00:00Z"
    assert encode_value("reservations", column, datetime(2026, 3, 1, 12, 0)) == "2026-03-01T12:00:00Z"
    assert encode_value("reservations", column, date(2026, 3, 1)) == "2026-03-01"


@pytest.mark.parametrize(
    ("kind", "value"),
    [
        (ColumnType.INTEGER, "3"),
        (ColumnType.INTEGER, True),
        (ColumnType.REAL, "500"),
        (ColumnType.BOOLEAN, 2),
        (ColumnType.TEXT, 12),
        (ColumnType.JSON, {1, 2}),
    ],
)
def test_type_mismatches_are_rejected(kind: ColumnType, value) -> None:
    with pytest.raises(ValidationError):
        encode_value("rooms", Column("field", kind), value)


def test_row_encoding_of_json_and_booleans() -> None:
    schema = TABLES["rooms"]

    encoded = encode_row(schema, {"amenities": ["WiFi", "TV"], "needs_sync": True, "price": 500})
    decoded = decode_row(schema, {**encoded, "extra": "kept"})

    assert encoded == {"amenities": '["WiFi", "TV"]', "needs_sync": 1, "price": 500.0}
    assert decoded == {"amenities": ["WiFi", "TV"], "needs_sync": True, "price": 500.0, "extra": "kept"}


def test_unknown_columns_are_rejected() -> None:
    with pytest.raises(ValidationError, match="colour"):
        encode_row(TABLES["rooms"], {"colour": "blue"})
