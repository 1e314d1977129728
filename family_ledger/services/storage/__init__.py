"""
Storage Services Package

Provides the snapshot store interface, its implementations (JSON file,
Google Sheets, in-memory) and the AtomicStore critical section that every
mutation goes through.
"""

from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    SnapshotStore,
    StorageConnectionError,
    StorageError,
)
from family_ledger.services.storage.atomic import AtomicStore
from family_ledger.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
)
from family_ledger.services.storage.json_file import JsonFileSnapshotStore
from family_ledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemorySnapshotStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "SnapshotStore",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    # Implementations
    "AtomicStore",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsSnapshotStore",
    "InMemoryAuditStorage",
    "InMemorySnapshotStore",
    "JsonFileSnapshotStore",
]
