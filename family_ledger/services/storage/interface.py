"""
Abstract Storage Interface

DESIGN DECISION: The persisted store is a whole-snapshot load/save pair.
This allows us to:
1. Keep the original db.json layout as a first-class backend
2. Use Google Sheets so a household can look at its data directly
3. Use in-memory storage for testing
4. Keep ledger logic decoupled from the storage implementation

A SnapshotStore is NOT transactional and does not serialize concurrent
callers. Every mutation must go through AtomicStore, which owns the lock.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from family_ledger.models.audit import AuditEvent
from family_ledger.models.ledger import Snapshot


class SnapshotStore(ABC):
    """
    Abstract interface for the persisted store.

    Any storage implementation (JSON file, Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load(self) -> Snapshot:
        """
        Read the full snapshot.

        Returns:
            The stored snapshot. An empty store yields an empty Snapshot.

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save(self, snapshot: Snapshot) -> None:
        """
        Replace the stored snapshot.

        Args:
            snapshot: The complete new content of the store

        Raises:
            StorageError: If the write fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one service call).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'transaction', 'asset')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
