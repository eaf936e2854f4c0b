from __future__ import annotations

import pytest

from hotel_offline.core.errors import RecordNotFoundError, ValidationError
from hotel_offline.domain.models import HIGH_PRIORITY, NORMAL_PRIORITY, SyncOperation
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.outbox import BookkeepingReporter, SyncOutbox
from hotel_offline.infrastructure.seed import DEFAULT_ROOMS

NEW_ROOM = {"room_number": "101", "type": "Standard", "price": 400, "capacity": 2}


def test_create_room_generates_id_and_queues_insert(rooms_repo, outbox: SyncOutbox) -> None:
    room = rooms_repo.create(NEW_ROOM)

    assert isinstance(room["id"], int)
    assert room["needs_sync"] is True
    assert room["synced_at"] is None
    assert room["price"] == 400.0
    assert room["created_at"] == room["updated_at"]
    assert rooms_repo.find_by_id(room["id"]) == room
    entries = outbox.entries_for("rooms", room["id"])
    assert [entry.operation for entry in entries] == [SyncOperation.INSERT]
    assert entries[0].payload == room
    assert entries[0].prior_payload is None
    assert entries[0].priority == NORMAL_PRIORITY


def test_update_after_mark_synced_flags_row_again(rooms_repo, outbox: SyncOutbox) -> None:
    room = rooms_repo.create(NEW_ROOM)
    rooms_repo.mark_synced(room["id"])
    synced = rooms_repo.find_by_id(room["id"])
    assert synced["needs_sync"] is False
    assert synced["synced_at"] is not None
    assert rooms_repo.get_unsynced() == []

    updated = rooms_repo.update(room["id"], {"status": "Occupied"})

    assert updated["status"] == "Occupied"
    assert updated["needs_sync"] is True
    assert updated["updated_at"] >= room["updated_at"]
    assert [row["id"] for row in rooms_repo.get_unsynced()] == [room["id"]]
    update_entry = outbox.entries_for("rooms", room["id"])[-1]
    assert update_entry.operation is SyncOperation.UPDATE
    assert update_entry.prior_payload["status"] == "Available"
    assert update_entry.payload["status"] == "Occupied"


def test_delete_missing_record_raises_not_found_and_queues_nothing(rooms_repo, engine: SQLiteEngine) -> None:
    rooms_repo.create(NEW_ROOM)
    before = engine.export()

    with pytest.raises(RecordNotFoundError):
        rooms_repo.delete(9999)

    assert engine.export() == before
    assert rooms_repo.count() == 1


def test_update_missing_record_raises_not_found(guests_repo) -> None:
    with pytest.raises(RecordNotFoundError):
        guests_repo.update(42, {"name": "Kofi Boateng"})


def test_missing_record_wins_over_invalid_changes(guests_repo) -> None:
    with pytest.raises(RecordNotFoundError):
        guests_repo.update(999999, {"no_such_column": 1})


def test_delete_queues_prior_payload_with_high_priority(guests_repo, outbox: SyncOutbox) -> None:
    guest = guests_repo.create({"name": "Kofi Boateng", "email": "kofi@example.com"})

    guests_repo.delete(guest["id"])

    assert guests_repo.find_by_id(guest["id"]) is None
    entry = outbox.entries_for("guests", guest["id"])[-1]
    assert entry.operation is SyncOperation.DELETE
    assert entry.payload is None
    assert entry.prior_payload["name"] == "Kofi Boateng"
    assert entry.priority == HIGH_PRIORITY


def test_financial_tables_get_high_priority(make_repository, outbox: SyncOutbox) -> None:
    invoices = make_repository("invoices")

    invoice = invoices.create(
        {
            "guest_name": "Ama Mensah",
            "room_number": "Lotus",
            "check_in_date": "2024-03-01",
            "check_out_date": "2024-03-03",
            "amount": 1500.0,
            "has_service_items": False,
        }
    )

    assert invoice["has_service_items"] is False
    assert outbox.entries_for("invoices", invoice["id"])[0].priority == HIGH_PRIORITY


def test_every_mutation_has_exactly_one_outbox_entry(guests_repo, outbox: SyncOutbox) -> None:
    first = guests_repo.create({"name": "Guest One"})
    second = guests_repo.create({"name": "Guest Two"})
    guests_repo.update(first["id"], {"status": "Checked In"})
    guests_repo.update(first["id"], {"status": "Checked Out"})
    guests_repo.delete(second["id"])

    first_ops = [entry.operation for entry in outbox.entries_for("guests", first["id"])]
    second_ops = [entry.operation for entry in outbox.entries_for("guests", second["id"])]

    assert first_ops == [SyncOperation.INSERT, SyncOperation.UPDATE, SyncOperation.UPDATE]
    assert second_ops == [SyncOperation.INSERT, SyncOperation.DELETE]
    assert outbox.count_by_status()["total"] == 5


def test_bulk_create_already_synced_queues_nothing(rooms_repo, outbox: SyncOutbox) -> None:
    created = rooms_repo.bulk_create([dict(room) for room in DEFAULT_ROOMS], mark_as_already_synced=True)

    assert len(created) == 9
    assert all(room["needs_sync"] is False for room in created)
    assert all(room["synced_at"] is not None for room in created)
    assert outbox.count_by_status()["total"] == 0
    assert rooms_repo.get_unsynced() == []


def test_bulk_create_is_atomic(guests_repo, outbox: SyncOutbox) -> None:
    with pytest.raises(ValidationError):
        guests_repo.bulk_create([{"name": "Valid"}, {"email": "missing-name@example.com"}])

    assert guests_repo.count() == 0
    assert outbox.count_by_status()["total"] == 0


def test_bulk_create_pending_sync_queues_each_row(guests_repo, outbox: SyncOutbox) -> None:
    guests_repo.bulk_create([{"name": "One"}, {"name": "Two"}])

    assert outbox.count_by_status()["pending"] == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "Standard", "price": 400, "capacity": 2},
        {"room_number": "101", "type": "Standard", "price": "four hundred", "capacity": 2},
        {"room_number": "101", "type": "Standard", "price": 400, "capacity": 2, "view": "sea"},
        {"room_number": 101, "type": "Standard", "price": 400, "capacity": 2},
    ],
)
def test_invalid_payloads_fail_without_writing(rooms_repo, outbox: SyncOutbox, payload) -> None:
    with pytest.raises(ValidationError):
        rooms_repo.create(payload)

    assert rooms_repo.count() == 0
    assert outbox.count_by_status()["total"] == 0


def test_update_rejects_bookkeeping_and_key_changes(rooms_repo) -> None:
    room = rooms_repo.create(NEW_ROOM)

    with pytest.raises(ValidationError):
        rooms_repo.update(room["id"], {"needs_sync": False})
    with pytest.raises(ValidationError):
        rooms_repo.update(room["id"], {"id": room["id"] + 1})
    with pytest.raises(ValidationError):
        rooms_repo.update(room["id"], {"room_number": None})


def test_string_primary_keys_must_be_explicit(make_repository) -> None:
    profiles = make_repository("user_profiles")

    with pytest.raises(ValidationError):
        profiles.create({"full_name": "No Key"})

    profile = profiles.create({"user_id": "auth0|abc", "full_name": "Front Desk", "role": "staff"})
    assert profiles.find_by_id("auth0|abc") == profile
    assert profiles.exists("auth0|abc")


def test_numeric_string_ids_are_accepted_for_integer_keys(guests_repo) -> None:
    guest = guests_repo.create({"name": "Yaw"})

    assert guests_repo.find_by_id(str(guest["id"]))["name"] == "Yaw"
    with pytest.raises(ValidationError):
        guests_repo.find_by_id("abc")
    with pytest.raises(ValidationError):
        guests_repo.find_by_id("\u00b2")


def test_find_all_filters_orders_and_limits(guests_repo) -> None:
    guests_repo.create({"name": "Charlie", "status": "Checked In"})
    guests_repo.create({"name": "Alice", "status": "Checked In"})
    guests_repo.create({"name": "Bob", "status": "Pending"})

    checked_in = guests_repo.find_all({"status": "Checked In"}, order_by="name ASC")
    first_two = guests_repo.find_all(order_by="name DESC", limit=2)

    assert [guest["name"] for guest in checked_in] == ["Alice", "Charlie"]
    assert [guest["name"] for guest in first_two] == ["Charlie", "Bob"]
    assert guests_repo.count({"status": "Pending"}) == 1


def test_json_columns_round_trip(make_repository) -> None:
    reports = make_repository("reports")

    report = reports.create(
        {"name": "Occupancy", "type": "daily", "data": {"rooms": [101, 102], "rate": 22.5}}
    )

    assert reports.find_by_id(report["id"])["data"] == {"rooms": [101, 102], "rate": 22.5}


def test_non_syncable_tables_skip_the_outbox(make_repository, outbox: SyncOutbox) -> None:
    sessions = make_repository("offline_sessions")

    sessions.create({"session_id": "session-1", "user_id": "auth0|abc", "is_active": True})
    sessions.update("session-1", {"is_active": False})

    assert outbox.count_by_status()["total"] == 0
    assert sessions.get_unsynced() == []
    with pytest.raises(ValidationError):
        sessions.mark_synced("session-1")


def test_mark_synced_missing_record_raises_not_found(guests_repo) -> None:
    with pytest.raises(RecordNotFoundError):
        guests_repo.mark_synced(404)


def test_outbox_failure_keeps_the_mutation_and_reports_it(
    guests_repo, engine: SQLiteEngine, reporter: BookkeepingReporter, metrics
) -> None:
    received = []
    reporter.subscribe(received.append)
    engine.execute("DROP TABLE sync_queue")

    guest = guests_repo.create({"name": "Survivor"})

    assert guests_repo.find_by_id(guest["id"])["name"] == "Survivor"
    assert len(reporter.failures) == 1
    failure = reporter.failures[0]
    assert failure.table_name == "guests"
    assert failure.record_id == str(guest["id"])
    assert failure.operation is SyncOperation.INSERT
    assert failure.error_type == "MalformedStatementError"
    assert received == [failure]
    assert metrics.counter("outbox.bookkeeping_failures") == 1


def test_unsubscribe_stops_notifications(guests_repo, engine: SQLiteEngine, reporter: BookkeepingReporter) -> None:
    received = []
    unsubscribe = reporter.subscribe(received.append)
    unsubscribe()
    engine.execute("DROP TABLE sync_queue")

    guests_repo.create({"name": "Quiet"})

    assert received == []
    assert len(reporter.failures) == 1


def test_table_info_describes_columns(rooms_repo) -> None:
    info = rooms_repo.table_info()

    assert info["table"] == "rooms"
    assert info["primary_key"] == "id"
    assert info["syncable"] is True
    assert {"needs_sync", "synced_at", "amenities"} <= {column["name"] for column in info["columns"]}
