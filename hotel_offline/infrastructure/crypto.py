"""Snapshot encryption: AES-256-GCM with a key derived from the device identifier."""

from __future__ import annotations

import os
import struct

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from hotel_offline.core.errors import DecryptionFailureError

APP_SALT = b"lavimac_hotel_offline"
KEY_INFO = "hotel_offline/snapshot/v1"
KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

BLOCK_MAGIC = b"HOSB"
FORMAT_VERSION = 1
_HEADER = struct.Struct(">4sB")


def derive_key(device_id: str, *, salt: bytes = APP_SALT, info: str = KEY_INFO, length: int = KEY_SIZE) -> bytes:
    if not device_id:
        raise ValueError("device_id is required to derive the storage key")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info.encode("utf-8"),
    )
    return hkdf.derive(device_id.encode("utf-8"))


class SnapshotCipher:
    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"Expected a {KEY_SIZE}-byte key, got {len(key)} bytes")
        self._aead = AESGCM(key)

    @classmethod
    def from_device_id(cls, device_id: str, *, salt: bytes = APP_SALT) -> "SnapshotCipher":
        return cls(derive_key(device_id, salt=salt))

    def encrypt(self, plaintext: bytes, *, associated_data: bytes | None = None) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext, associated_data)
        return _HEADER.pack(BLOCK_MAGIC, FORMAT_VERSION) + nonce + ciphertext

    def decrypt(self, blob: bytes, *, associated_data: bytes | None = None) -> bytes:
        minimum = _HEADER.size + NONCE_SIZE + TAG_SIZE
        if len(blob) < minimum:
            raise DecryptionFailureError(f"Encrypted block is truncated ({len(blob)} bytes)")
        magic, version = _HEADER.unpack_from(blob)
        if magic != BLOCK_MAGIC:
            raise DecryptionFailureError("Encrypted block has an unknown header")
        if version != FORMAT_VERSION:
            raise DecryptionFailureError(f"Unsupported encrypted block version: {version}")
        nonce = blob[_HEADER.size : _HEADER.size + NONCE_SIZE]
        ciphertext = blob[_HEADER.size + NONCE_SIZE :]
        try:
            return self._aead.decrypt(nonce, ciphertext, associated_data)
        except InvalidTag as exc:
            raise DecryptionFailureError("Encrypted block failed authentication (wrong key or tampered data)") from exc
