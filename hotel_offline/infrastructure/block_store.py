from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from hotel_offline.core.errors import StorageError
from hotel_offline.core.metrics import measure_time
from hotel_offline.infrastructure.crypto import SnapshotCipher

logger = logging.getLogger(__name__)

BLOCK_SUFFIX = ".blk"
_ROTATION_SUFFIX = ".rotate"
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


class EncryptedBlockStore:
    """Key/value store of encrypted blobs, one file per key.

    Writes go to a temporary file that is fsynced and then atomically
    renamed over the previous block, so a reader sees either the old or the
    new snapshot.
    """

    def __init__(self, base_dir: Path, cipher: SnapshotCipher) -> None:
        self._base_dir = base_dir
        self._cipher = cipher

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def open(self) -> None:
        try:
            self._base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot open block store at {self._base_dir}") from exc

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            blob = path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Cannot read block {key!r}") from exc
        return self._cipher.decrypt(blob, associated_data=key.encode("utf-8"))

    @measure_time("block_store.put_ms")
    def put(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        blob = self._cipher.encrypt(data, associated_data=key.encode("utf-8"))
        self._atomic_write(path, blob)
        logger.debug("Block written", extra={"extra": {"key": key, "bytes": len(blob)}})

    def delete(self, key: str) -> None:
        path = self._path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot delete block {key!r}") from exc

    def exists(self, key: str) -> bool:
        return self._path_for(key).exists()

    def keys(self) -> list[str]:
        if not self._base_dir.exists():
            return []
        return sorted(path.name[: -len(BLOCK_SUFFIX)] for path in self._base_dir.glob(f"*{BLOCK_SUFFIX}"))

    def rotate_key(self, new_cipher: SnapshotCipher) -> list[str]:
        """Re-encrypts every block with ``new_cipher`` and switches to it.

        All new blobs are staged and fsynced before any block is replaced; a
        failure while staging leaves every block readable with the old key.
        """
        plaintexts = {key: self.get(key) for key in self.keys()}
        staged: list[tuple[str, Path]] = []
        try:
            for key, data in plaintexts.items():
                if data is None:
                    continue
                staging_path = self._path_for(key).with_name(f"{key}{BLOCK_SUFFIX}{_ROTATION_SUFFIX}")
                staged.append((key, staging_path))
                self._write_file(staging_path, new_cipher.encrypt(data, associated_data=key.encode("utf-8")))
        except StorageError:
            for _, staging_path in staged:
                staging_path.unlink(missing_ok=True)
            logger.error("Key rotation aborted; blocks keep the previous key", exc_info=True)
            raise

        rotated: list[str] = []
        try:
            for key, staging_path in staged:
                os.replace(staging_path, self._path_for(key))
                rotated.append(key)
        except OSError as exc:
            self._restore_blocks(rotated, plaintexts)
            for _, staging_path in staged:
                staging_path.unlink(missing_ok=True)
            raise StorageError(f"Key rotation failed after {len(rotated)} block(s)") from exc
        self._cipher = new_cipher
        logger.info("Block store key rotated", extra={"extra": {"blocks": len(rotated)}})
        return rotated

    def _restore_blocks(self, keys: list[str], plaintexts: dict[str, bytes | None]) -> None:
        for key in keys:
            data = plaintexts[key]
            if data is not None:
                self._atomic_write(self._path_for(key), self._cipher.encrypt(data, associated_data=key.encode("utf-8")))

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid block key: {key!r}")
        return self._base_dir / f"{key}{BLOCK_SUFFIX}"

    @staticmethod
    def _write_file(path: Path, blob: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as handle:
                handle.write(blob)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            path.unlink(missing_ok=True)
            raise StorageError(f"Cannot write block {path.name}") from exc

    @classmethod
    def _atomic_write(cls, path: Path, blob: bytes) -> None:
        tmp_path = path.with_name(f"{path.name}.new")
        cls._write_file(tmp_path, blob)
        try:
            os.replace(tmp_path, path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Cannot write block {path.name}") from exc
