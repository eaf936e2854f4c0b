from __future__ import annotations

import logging

from hotel_offline.bootstrap.data_service import DataService
from hotel_offline.bootstrap.settings import StoreSettings
from hotel_offline.core.metrics import metrics_registry
from hotel_offline.domain.ports import DeviceIdentityPort
from hotel_offline.infrastructure.block_store import EncryptedBlockStore
from hotel_offline.infrastructure.crypto import SnapshotCipher
from hotel_offline.infrastructure.device_identity import DeviceIdentityStore

logger = logging.getLogger(__name__)


def build_block_store(settings: StoreSettings, device_identity: DeviceIdentityPort) -> EncryptedBlockStore:
    cipher = SnapshotCipher.from_device_id(device_identity.device_id())
    return EncryptedBlockStore(settings.blocks_dir, cipher)


def build_data_service(
    settings: StoreSettings | None = None,
    device_identity: DeviceIdentityPort | None = None,
) -> DataService:
    settings = settings or StoreSettings.from_env()
    device_identity = device_identity or DeviceIdentityStore(settings.data_dir)
    logger.info("Data directory: %s", settings.data_dir)
    return DataService(
        build_block_store(settings, device_identity),
        snapshot_key=settings.snapshot_key,
        metrics=metrics_registry,
    )
