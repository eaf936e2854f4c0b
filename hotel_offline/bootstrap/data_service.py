from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Callable, Union

from hotel_offline.application.health_check import HealthCheckUseCase
from hotel_offline.bootstrap.settings import SNAPSHOT_KEY
from hotel_offline.core.errors import (
    NotReadyError,
    PersistenceError,
    SnapshotPersistError,
    StorageError,
    UnknownRepositoryError,
    ValidationError,
)
from hotel_offline.core.metrics import MetricsRegistry
from hotel_offline.core.observability import OperationContext, log_event
from hotel_offline.core.operational_logging import log_operational_error
from hotel_offline.domain.models import HealthReport, ServiceState, SyncBookkeepingFailure
from hotel_offline.domain.ports import BlockStorePort
from hotel_offline.domain.schema import MAIN_TABLES, MIGRATIONS_TABLE, TABLES, NEEDS_SYNC_COLUMN
from hotel_offline.infrastructure.conflict_log import ConflictLog
from hotel_offline.infrastructure.engine import SQLiteEngine, quote_identifier
from hotel_offline.infrastructure.health_probes import LocalStoreProbe, SyncQueueProbe
from hotel_offline.infrastructure.migrations import Migration, MigrationRunner
from hotel_offline.infrastructure.outbox import BookkeepingCallback, BookkeepingReporter, SyncOutbox
from hotel_offline.infrastructure.repository import SQLiteRepository
from hotel_offline.infrastructure.rooms_repository import RoomsRepository
from hotel_offline.infrastructure.schema_migrations import DEFAULT_MIGRATIONS
from hotel_offline.infrastructure.seed import seed_if_empty
from hotel_offline.infrastructure.settings_repository import LocalSettingsRepository

logger = logging.getLogger(__name__)

REPOSITORY_NAMES: tuple[str, ...] = tuple(TABLES)

_REPOSITORY_CLASSES: dict[str, type[SQLiteRepository]] = {
    "rooms": RoomsRepository,
    "local_settings": LocalSettingsRepository,
}


@dataclass(frozen=True)
class TransactionOperation:
    repository: str
    method: str
    args: tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=dict)


OperationSpec = Union[TransactionOperation, Mapping[str, Any]]


def _coerce_operation(operation: OperationSpec) -> TransactionOperation:
    if isinstance(operation, TransactionOperation):
        return operation
    if isinstance(operation, Mapping):
        try:
            return TransactionOperation(
                repository=operation["repository"],
                method=operation["method"],
                args=tuple(operation.get("args", ())),
                kwargs=dict(operation.get("kwargs", {})),
            )
        except KeyError as exc:
            raise ValidationError(f"Transaction operation is missing {exc.args[0]!r}") from exc
    raise ValidationError(f"Unsupported transaction operation: {operation!r}")


class DataService:
    """Entry point of the local data layer.

    Owns the lifecycle ``uninitialized -> initializing -> ready`` (or
    ``failed``), the encrypted snapshot, the engine and every repository.
    Each committed change is written through to the block store before the
    mutating call returns.
    """

    def __init__(
        self,
        block_store: BlockStorePort,
        *,
        migrations: Sequence[Migration] = DEFAULT_MIGRATIONS,
        snapshot_key: str = SNAPSHOT_KEY,
        metrics: MetricsRegistry | None = None,
        seed_defaults: bool = True,
    ) -> None:
        self._block_store = block_store
        self._migrations = tuple(migrations)
        self._snapshot_key = snapshot_key
        self._metrics = metrics or MetricsRegistry()
        self._seed_defaults = seed_defaults
        self._reporter = BookkeepingReporter(self._metrics)
        self._lifecycle_lock = threading.RLock()
        self._state = ServiceState.UNINITIALIZED
        self._engine: SQLiteEngine | None = None
        self._outbox: SyncOutbox | None = None
        self._conflicts: ConflictLog | None = None
        self._repositories: dict[str, SQLiteRepository] = {}
        self._health_check = HealthCheckUseCase(
            [
                LocalStoreProbe(self._ready_engine, TABLES, self._migrations),
                SyncQueueProbe(
                    lambda: self._outbox if self.is_ready else None,
                    lambda: self._conflicts if self.is_ready else None,
                ),
            ]
        )

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ServiceState.READY

    @property
    def metrics(self) -> MetricsRegistry:
        return self._metrics

    @property
    def outbox(self) -> SyncOutbox:
        self._require_ready()
        assert self._outbox is not None
        return self._outbox

    @property
    def conflicts(self) -> ConflictLog:
        self._require_ready()
        assert self._conflicts is not None
        return self._conflicts

    @property
    def settings(self) -> LocalSettingsRepository:
        repository = self.get_repository("local_settings")
        assert isinstance(repository, LocalSettingsRepository)
        return repository

    @property
    def bookkeeping_failures(self) -> tuple[SyncBookkeepingFailure, ...]:
        return self._reporter.failures

    def subscribe_bookkeeping_failures(self, callback: BookkeepingCallback) -> Callable[[], None]:
        return self._reporter.subscribe(callback)

    def initialize(self) -> None:
        with self._lifecycle_lock:
            if self._state is ServiceState.READY:
                return
            self._state = ServiceState.INITIALIZING
            engine: SQLiteEngine | None = None
            with OperationContext("data_service.initialize") as operation:
                try:
                    self._block_store.open()
                    engine = self._load_or_create_engine()
                    MigrationRunner(engine).run(self._migrations)
                    outbox = SyncOutbox(engine, self._metrics)
                    repositories = self._build_repositories(engine, outbox)
                    conflicts = ConflictLog(engine, lambda name: self._lookup(repositories, name))
                    seeded = seed_if_empty(repositories) if self._seed_defaults else {}
                except Exception as exc:
                    self._state = ServiceState.FAILED
                    if engine is not None:
                        engine.close()
                    log_operational_error(
                        "Data layer initialization failed",
                        exc=exc,
                        extra={"snapshot_key": self._snapshot_key},
                    )
                    raise

                self._engine = engine
                self._outbox = outbox
                self._conflicts = conflicts
                self._repositories = repositories
                self._state = ServiceState.READY
                log_event(
                    logger,
                    "data_service_ready",
                    {"repositories": len(repositories), "seeded": seeded},
                    operation.correlation_id,
                )

    def get_repository(self, name: str) -> SQLiteRepository:
        self._require_ready()
        return self._lookup(self._repositories, name)

    def execute_transaction(self, operations: Iterable[OperationSpec]) -> list[Any]:
        """Runs repository calls atomically and persists the snapshot once at commit."""
        self._require_ready()
        assert self._engine is not None
        planned = [_coerce_operation(operation) for operation in operations]
        bound = [(operation, self._bind(operation)) for operation in planned]
        with OperationContext("data_service.execute_transaction"):
            results: list[Any] = []
            try:
                with self._engine.transaction():
                    for operation, method in bound:
                        results.append(method(*operation.args, **dict(operation.kwargs)))
            except Exception as exc:
                log_operational_error(
                    "Transaction rolled back",
                    exc=exc,
                    extra={"operations": len(planned), "completed": len(results)},
                )
                raise
            return results

    def get_statistics(self) -> dict[str, Any]:
        self._require_ready()
        assert self._engine is not None and self._outbox is not None and self._conflicts is not None
        unsynced = {
            name: repository.count({NEEDS_SYNC_COLUMN: True})
            for name, repository in self._repositories.items()
            if repository.schema.syncable
        }
        return {
            "tables": {name: self._repositories[name].count() for name in MAIN_TABLES},
            "unsynced": {name: count for name, count in unsynced.items() if count},
            "sync": self._outbox.count_by_status(),
            "conflicts": {"unresolved": self._conflicts.count_unresolved(), "total": self._conflicts.count()},
            "database": {"size_bytes": self._engine.size_bytes(), "table_count": len(self._engine.list_tables())},
            "bookkeeping_failures": len(self._reporter.failures),
            "metrics": self._metrics.snapshot(),
        }

    def check_health(self) -> HealthReport:
        report = self._health_check.run()
        logger.info("Health check completed", extra={"extra": {"status": report.status}})
        return report

    def get_database_info(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "state": self._state.value,
            "snapshot_key": self._snapshot_key,
            "snapshot_stored": self._block_store.exists(self._snapshot_key),
            "repositories": list(REPOSITORY_NAMES),
        }
        if self.is_ready and self._engine is not None:
            info["tables"] = self._engine.list_tables()
            info["size_bytes"] = self._engine.size_bytes()
            info["migrations"] = MigrationRunner(self._engine).status(self._migrations)
        return info

    def migration_status(self) -> list[dict[str, object]]:
        self._require_ready()
        assert self._engine is not None
        return MigrationRunner(self._engine).status(self._migrations)

    def reset(self) -> dict[str, int]:
        """Deletes every row except migration history and restores the defaults."""
        self._require_ready()
        assert self._engine is not None
        with OperationContext("data_service.reset") as operation:
            with self._engine.transaction():
                tables = [name for name in self._engine.list_tables() if name != MIGRATIONS_TABLE]
                for table_name in tables:
                    self._engine.execute(f"DELETE FROM {quote_identifier(table_name)}")
                seeded = seed_if_empty(self._repositories) if self._seed_defaults else {}
            self._reporter.clear()
            log_event(logger, "data_service_reset", {"tables": len(tables), "seeded": seeded}, operation.correlation_id)
        return seeded

    def persist(self) -> None:
        self._require_ready()
        assert self._engine is not None
        self._persist(self._engine)

    def close(self) -> None:
        with self._lifecycle_lock:
            if self._engine is not None:
                self._engine.close()
            self._engine = None
            self._outbox = None
            self._conflicts = None
            self._repositories = {}
            self._state = ServiceState.UNINITIALIZED

    def _load_or_create_engine(self) -> SQLiteEngine:
        snapshot = self._block_store.get(self._snapshot_key)
        if snapshot is None:
            logger.info("No stored snapshot; creating an empty database")
            engine = SQLiteEngine()
            engine.on_commit = lambda: self._persist(engine)
            self._persist(engine)
            return engine
        engine = SQLiteEngine(snapshot)
        engine.on_commit = lambda: self._persist(engine)
        logger.info("Snapshot loaded", extra={"extra": {"bytes": len(snapshot)}})
        return engine

    def _persist(self, engine: SQLiteEngine) -> None:
        try:
            with self._metrics.timed("snapshot.persist_ms"):
                self._block_store.put(self._snapshot_key, engine.export())
        except (StorageError, PersistenceError) as exc:
            raise SnapshotPersistError(f"Snapshot could not be persisted: {exc}") from exc
        self._metrics.increment("snapshot.persisted")

    def _build_repositories(self, engine: SQLiteEngine, outbox: SyncOutbox) -> dict[str, SQLiteRepository]:
        repositories: dict[str, SQLiteRepository] = {}
        for name in REPOSITORY_NAMES:
            repository_class = _REPOSITORY_CLASSES.get(name, SQLiteRepository)
            repositories[name] = repository_class(engine, TABLES[name], outbox, self._reporter)
        return repositories

    def _bind(self, operation: TransactionOperation) -> Callable[..., Any]:
        repository = self.get_repository(operation.repository)
        if operation.method.startswith("_"):
            raise ValidationError(f"Method {operation.method!r} is not a repository operation")
        method = getattr(repository, operation.method, None)
        if not callable(method):
            raise ValidationError(f"Repository {operation.repository} has no operation {operation.method!r}")
        return method

    def _ready_engine(self) -> SQLiteEngine | None:
        return self._engine if self.is_ready else None

    def _require_ready(self) -> None:
        if self._state is not ServiceState.READY:
            raise NotReadyError(f"Data service is {self._state.value}; call initialize() first")

    @staticmethod
    def _lookup(repositories: Mapping[str, SQLiteRepository], name: str) -> SQLiteRepository:
        try:
            return repositories[name]
        except KeyError as exc:
            raise UnknownRepositoryError(name) from exc
