from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class SyncOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    COMPLETED = "completed"
    FAILED = "failed"


class ConflictResolution(str, Enum):
    LOCAL_WINS = "local_wins"
    SERVER_WINS = "server_wins"
    MANUAL = "manual"
    MERGED = "merged"


class SettingType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


HIGH_PRIORITY = 1
NORMAL_PRIORITY = 2


@dataclass(frozen=True)
class OutboxEntry:
    id: int
    table_name: str
    record_id: str
    operation: SyncOperation
    payload: dict[str, Any] | None
    prior_payload: dict[str, Any] | None
    timestamp: str
    sync_status: SyncStatus
    retry_count: int
    priority: int
    error_message: str | None = None

    def to_document(self) -> dict[str, Any]:
        """Ten-field document handed to the sync process."""
        return {
            "id": self.id,
            "table_name": self.table_name,
            "record_id": self.record_id,
            "operation": self.operation.value,
            "data": json.dumps(self.payload) if self.payload is not None else None,
            "old_data": json.dumps(self.prior_payload) if self.prior_payload is not None else None,
            "timestamp": self.timestamp,
            "sync_status": self.sync_status.value,
            "retry_count": self.retry_count,
            "priority": self.priority,
        }


@dataclass(frozen=True)
class ConflictRecord:
    id: int
    table_name: str
    record_id: str
    local_data: dict[str, Any]
    server_data: dict[str, Any]
    conflict_type: str | None
    created_at: str
    resolution: ConflictResolution | None = None
    resolved_data: dict[str, Any] | None = None
    resolved_at: str | None = None
    resolved_by: str | None = None

    @property
    def is_resolved(self) -> bool:
        return self.resolved_at is not None


@dataclass(frozen=True)
class MigrationRecord:
    name: str
    executed_at: str


@dataclass(frozen=True)
class LocalSetting:
    key: str
    value: Any
    type: SettingType
    updated_at: str | None = None


@dataclass(frozen=True)
class SyncBookkeepingFailure:
    """Outbox append that failed after its primary mutation was kept."""

    table_name: str
    record_id: str
    operation: SyncOperation
    error_type: str
    error_message: str
    occurred_at: str


@dataclass(frozen=True)
class HealthCheckItem:
    key: str
    status: str
    message: str
    category: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HealthReport:
    generated_at: str
    status: str
    checks: tuple[HealthCheckItem, ...]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
