from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path

from hotel_offline.core.errors import StorageError

logger = logging.getLogger(__name__)

APP_DIR_NAME = "HotelOffline"
DEVICE_FILE_NAME = "device.json"


def resolve_appdata_dir() -> Path:
    env_dir = os.environ.get("LOCALAPPDATA")
    if env_dir:
        base_dir = Path(env_dir)
    else:
        base_dir = Path.home() / ".local" / "share"
    return base_dir / APP_DIR_NAME


class DeviceIdentityStore:
    """Persists the random per-installation token used to derive the storage key.

    The token is generated once and never rewritten: losing it makes every
    stored snapshot unreadable.
    """

    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / DEVICE_FILE_NAME
        self._cached: str | None = None

    @property
    def config_path(self) -> Path:
        return self._config_path

    def device_id(self) -> str:
        if self._cached is not None:
            return self._cached
        payload = self._load_payload()
        device_id = str(payload.get("device_id", "")).strip()
        if not device_id:
            device_id = self._generate_device_id()
            payload["device_id"] = device_id
            self._write_payload(payload)
            logger.info("Generated new device identifier", extra={"extra": {"path": str(self._config_path)}})
        self._cached = device_id
        return device_id

    def _load_payload(self) -> dict[str, str]:
        if not self._config_path.exists():
            return {}
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StorageError(f"Device identity file is unreadable: {self._config_path}") from exc
        if not isinstance(payload, dict):
            raise StorageError(f"Device identity file is malformed: {self._config_path}")
        return payload

    def _write_payload(self, payload: dict[str, str]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @staticmethod
    def _generate_device_id() -> str:
        return f"device_{uuid.uuid4().hex}"
