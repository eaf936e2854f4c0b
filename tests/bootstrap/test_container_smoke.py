from __future__ import annotations

from pathlib import Path

from hotel_offline.bootstrap.container import build_data_service
from hotel_offline.bootstrap.settings import StoreSettings
from hotel_offline.domain.models import ServiceState
from hotel_offline.infrastructure.device_identity import DeviceIdentityStore


def test_build_data_service_smoke(tmp_path: Path) -> None:
    settings = StoreSettings(data_dir=tmp_path)
    service = build_data_service(settings, DeviceIdentityStore(tmp_path))

    try:
        assert service.state is ServiceState.UNINITIALIZED
        service.initialize()

        assert service.is_ready
        assert service.get_repository("rooms").count() == 9
        assert (settings.blocks_dir / "main.blk").exists()
    finally:
        service.close()


def test_same_device_reopens_its_snapshot(tmp_path: Path) -> None:
    settings = StoreSettings(data_dir=tmp_path)
    first = build_data_service(settings, DeviceIdentityStore(tmp_path))
    first.initialize()
    first.get_repository("guests").create({"name": "Kojo"})
    first.close()

    second = build_data_service(settings, DeviceIdentityStore(tmp_path))
    second.initialize()
    try:
        assert [guest["name"] for guest in second.get_repository("guests").find_all()] == ["Kojo"]
    finally:
        second.close()
