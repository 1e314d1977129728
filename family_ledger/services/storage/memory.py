"""
In-Memory Storage

Used by the tests and by the "memory" backend for throwaway sessions.
Snapshots are deep-copied in both directions so callers can never mutate
the stored state behind the store's back.
"""

from typing import Optional
from uuid import UUID

from family_ledger.models.audit import AuditEvent
from family_ledger.models.ledger import Snapshot
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    SnapshotStore,
)


class InMemorySnapshotStore(SnapshotStore):
    """Keeps the snapshot in process memory."""

    def __init__(self, initial: Optional[Snapshot] = None):
        self._snapshot = initial.model_copy(deep=True) if initial else Snapshot()
        self.save_count = 0

    async def load(self) -> Snapshot:
        return self._snapshot.model_copy(deep=True)

    async def save(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot.model_copy(deep=True)
        self.save_count += 1


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only audit log held in a list."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        events = [
            e for e in self.events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self.events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
