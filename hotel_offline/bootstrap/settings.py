from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from hotel_offline.infrastructure.device_identity import resolve_appdata_dir

DATA_DIR_ENV = "HOTEL_OFFLINE_DATA_DIR"
LOG_DIR_ENV = "HOTEL_OFFLINE_LOG_DIR"
LOG_MAX_BYTES_ENV = "HOTEL_OFFLINE_LOG_MAX_BYTES"
BLOCKS_DIR_NAME = "blocks"
SNAPSHOT_KEY = "main"


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_data_dir() -> Path:
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return resolve_appdata_dir()


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get(LOG_DIR_ENV)
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(resolve_data_dir() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "HotelOffline" / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


@dataclass(frozen=True)
class StoreSettings:
    data_dir: Path
    snapshot_key: str = SNAPSHOT_KEY

    @property
    def blocks_dir(self) -> Path:
        return self.data_dir / BLOCKS_DIR_NAME

    @classmethod
    def from_env(cls) -> "StoreSettings":
        return cls(data_dir=resolve_data_dir())
