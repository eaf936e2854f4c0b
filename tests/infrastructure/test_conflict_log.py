from __future__ import annotations

import pytest

from hotel_offline.core.errors import ConflictAlreadyResolvedError, RecordNotFoundError, ValidationError
from hotel_offline.domain.models import ConflictResolution, SyncOperation
from hotel_offline.infrastructure.conflict_log import ConflictLog
from hotel_offline.infrastructure.outbox import SyncOutbox


@pytest.fixture
def room(rooms_repo) -> dict:
    created = rooms_repo.create({"room_number": "Mint", "type": "Standard", "price": 500.0, "capacity": 2})
    rooms_repo.mark_synced(created["id"])
    return rooms_repo.find_by_id(created["id"])


def _record(conflict_log: ConflictLog, room: dict):
    local = {**room, "status": "Occupied"}
    server = {**room, "status": "Maintenance", "price": 550.0, "needs_sync": False}
    return conflict_log.record("rooms", room["id"], local, server, "update_update")


def test_recorded_conflict_starts_unresolved(conflict_log: ConflictLog, room: dict) -> None:
    conflict = _record(conflict_log, room)

    assert not conflict.is_resolved
    assert conflict.record_id == str(room["id"])
    assert conflict.local_data["status"] == "Occupied"
    assert conflict_log.count_unresolved() == 1
    assert [item.id for item in conflict_log.list_unresolved()] == [conflict.id]


def test_server_wins_writes_through_repository(
    conflict_log: ConflictLog, rooms_repo, outbox: SyncOutbox, room: dict
) -> None:
    conflict = _record(conflict_log, room)

    resolved = conflict_log.resolve(conflict.id, ConflictResolution.SERVER_WINS, resolved_by="manager")

    stored = rooms_repo.find_by_id(room["id"])
    assert stored["status"] == "Maintenance"
    assert stored["price"] == 550.0
    assert stored["needs_sync"] is True
    assert resolved.is_resolved
    assert resolved.resolution is ConflictResolution.SERVER_WINS
    assert resolved.resolved_by == "manager"
    assert outbox.entries_for("rooms", room["id"])[-1].operation is SyncOperation.UPDATE
    assert conflict_log.count_unresolved() == 0
    assert [item.id for item in conflict_log.list_all()] == [conflict.id]


def test_local_wins_uses_local_copy(conflict_log: ConflictLog, rooms_repo, room: dict) -> None:
    conflict = _record(conflict_log, room)

    conflict_log.resolve(conflict.id, "local_wins")

    assert rooms_repo.find_by_id(room["id"])["status"] == "Occupied"


def test_merged_resolution_requires_data(conflict_log: ConflictLog, rooms_repo, room: dict) -> None:
    conflict = _record(conflict_log, room)

    with pytest.raises(ValidationError):
        conflict_log.resolve(conflict.id, ConflictResolution.MERGED)

    resolved = conflict_log.resolve(conflict.id, ConflictResolution.MERGED, {"status": "Occupied", "price": 550.0})

    assert resolved.resolved_data == {"status": "Occupied", "price": 550.0}
    stored = rooms_repo.find_by_id(room["id"])
    assert (stored["status"], stored["price"]) == ("Occupied", 550.0)


def test_resolving_twice_is_rejected(conflict_log: ConflictLog, room: dict) -> None:
    conflict = _record(conflict_log, room)
    conflict_log.resolve(conflict.id, ConflictResolution.SERVER_WINS)

    with pytest.raises(ConflictAlreadyResolvedError):
        conflict_log.resolve(conflict.id, ConflictResolution.LOCAL_WINS)


def test_unknown_resolution_and_conflict(conflict_log: ConflictLog, room: dict) -> None:
    conflict = _record(conflict_log, room)

    with pytest.raises(ValidationError):
        conflict_log.resolve(conflict.id, "coin_flip")
    with pytest.raises(RecordNotFoundError):
        conflict_log.resolve(conflict.id + 100, ConflictResolution.SERVER_WINS)


def test_failed_write_back_leaves_conflict_unresolved(conflict_log: ConflictLog, rooms_repo, room: dict) -> None:
    conflict = _record(conflict_log, room)
    rooms_repo.delete(room["id"])

    with pytest.raises(RecordNotFoundError):
        conflict_log.resolve(conflict.id, ConflictResolution.SERVER_WINS)

    assert not conflict_log.get(conflict.id).is_resolved
