from __future__ import annotations

from typing import Any, Protocol


class BlockStorePort(Protocol):
    def open(self) -> None:
        ...

    def get(self, key: str) -> bytes | None:
        ...

    def put(self, key: str, data: bytes) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...


class DeviceIdentityPort(Protocol):
    def device_id(self) -> str:
        ...


class RecordRepositoryPort(Protocol):
    table_name: str
    primary_key: str

    def find_by_id(self, record_id: Any) -> dict[str, Any] | None:
        ...

    def update(self, record_id: Any, data: dict[str, Any]) -> dict[str, Any]:
        ...


class HealthProbePort(Protocol):
    category: str

    def check(self) -> dict[str, tuple[str, str, dict[str, Any]]]:
        ...
