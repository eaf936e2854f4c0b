from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from hotel_offline.bootstrap.data_service import DataService
from hotel_offline.core.metrics import MetricsRegistry
from hotel_offline.domain.schema import TABLES
from hotel_offline.infrastructure.block_store import EncryptedBlockStore
from hotel_offline.infrastructure.conflict_log import ConflictLog
from hotel_offline.infrastructure.crypto import SnapshotCipher
from hotel_offline.infrastructure.engine import SQLiteEngine
from hotel_offline.infrastructure.migrations import MigrationRunner
from hotel_offline.infrastructure.outbox import BookkeepingReporter, SyncOutbox
from hotel_offline.infrastructure.repository import SQLiteRepository
from hotel_offline.infrastructure.rooms_repository import RoomsRepository
from hotel_offline.infrastructure.schema_migrations import DEFAULT_MIGRATIONS
from hotel_offline.infrastructure.settings_repository import LocalSettingsRepository

FIXED_DEVICE_ID = "device_0123456789abcdef0123456789abcdef"


@pytest.fixture
def engine() -> SQLiteEngine:
    engine = SQLiteEngine()
    MigrationRunner(engine).run(DEFAULT_MIGRATIONS)
    yield engine
    engine.close()


@pytest.fixture
def metrics() -> MetricsRegistry:
    return MetricsRegistry()


@pytest.fixture
def reporter(metrics: MetricsRegistry) -> BookkeepingReporter:
    return BookkeepingReporter(metrics)


@pytest.fixture
def outbox(engine: SQLiteEngine, metrics: MetricsRegistry) -> SyncOutbox:
    return SyncOutbox(engine, metrics)


@pytest.fixture
def make_repository(
    engine: SQLiteEngine, outbox: SyncOutbox, reporter: BookkeepingReporter
) -> Callable[[str], SQLiteRepository]:
    classes = {"rooms": RoomsRepository, "local_settings": LocalSettingsRepository}

    def _make(table_name: str) -> SQLiteRepository:
        repository_class = classes.get(table_name, SQLiteRepository)
        return repository_class(engine, TABLES[table_name], outbox, reporter)

    return _make


@pytest.fixture
def guests_repo(make_repository) -> SQLiteRepository:
    return make_repository("guests")


@pytest.fixture
def rooms_repo(make_repository) -> RoomsRepository:
    return make_repository("rooms")


@pytest.fixture
def settings_repo(make_repository) -> LocalSettingsRepository:
    return make_repository("local_settings")


@pytest.fixture
def conflict_log(engine: SQLiteEngine, make_repository) -> ConflictLog:
    return ConflictLog(engine, make_repository)


@pytest.fixture
def cipher() -> SnapshotCipher:
    return SnapshotCipher.from_device_id(FIXED_DEVICE_ID)


@pytest.fixture
def block_store(tmp_path: Path, cipher: SnapshotCipher) -> EncryptedBlockStore:
    store = EncryptedBlockStore(tmp_path / "blocks", cipher)
    store.open()
    return store


@pytest.fixture
def service_factory(tmp_path: Path) -> Callable[..., DataService]:
    created: list[DataService] = []

    def _build(device_id: str = FIXED_DEVICE_ID, **kwargs) -> DataService:
        store = EncryptedBlockStore(tmp_path / "data" / "blocks", SnapshotCipher.from_device_id(device_id))
        kwargs.setdefault("metrics", MetricsRegistry())
        service = DataService(store, **kwargs)
        created.append(service)
        return service

    yield _build
    for service in created:
        service.close()


@pytest.fixture
def data_service(service_factory) -> DataService:
    service = service_factory()
    service.initialize()
    return service
