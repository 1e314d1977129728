"""Services package."""

from family_ledger.services.storage import (
    AtomicStore,
    AuditStorageInterface,
    InMemoryAuditStorage,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    SnapshotStore,
    StorageConnectionError,
    StorageError,
)

__all__ = [
    "AtomicStore",
    "AuditStorageInterface",
    "InMemoryAuditStorage",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
    "SnapshotStore",
    "StorageConnectionError",
    "StorageError",
]
