from __future__ import annotations


class AppError(Exception):
    pass


class BusinessError(AppError):
    pass


class ValidationError(BusinessError):
    pass


class RecordNotFoundError(BusinessError):
    def __init__(self, table_name: str, record_id: object) -> None:
        super().__init__(f"Record {record_id!r} not found in {table_name}")
        self.table_name = table_name
        self.record_id = record_id


class ConflictAlreadyResolvedError(ValidationError):
    pass


class NotReadyError(AppError):
    pass


class UnknownRepositoryError(AppError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown repository: {name}")
        self.name = name


class InfraError(AppError):
    pass


class PersistenceError(InfraError):
    pass


class TransactionFailureError(PersistenceError):
    pass


class MalformedStatementError(TransactionFailureError):
    pass


class ConstraintViolationError(TransactionFailureError):
    pass


class SchemaConflictError(PersistenceError):
    def __init__(self, migration_name: str, message: str) -> None:
        super().__init__(f"Migration {migration_name} failed: {message}")
        self.migration_name = migration_name


class SnapshotPersistError(PersistenceError):
    pass


class StorageError(InfraError):
    pass


class DecryptionFailureError(StorageError):
    pass
