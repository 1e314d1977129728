"""
Atomic Store Wrapper

The single-writer critical section around a SnapshotStore.

Writers:
    async with store.transaction() as snapshot:
        ...mutate snapshot...
    # saved here if the block did not raise

Readers:
    snapshot = await store.read()

GUARANTEES:
- At most one transaction() block runs at a time (whole-store lock)
- A block that raises saves nothing; the committed state is unchanged
- read() never takes the writer lock and never observes a save in progress:
  it returns a copy of the last snapshot whose save() completed
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from family_ledger.models.ledger import Snapshot
from family_ledger.services.storage.interface import SnapshotStore


class AtomicStore:
    """Serializes load -> mutate -> save against a non-transactional store."""

    def __init__(self, store: SnapshotStore):
        self._store = store
        self._lock = asyncio.Lock()
        self._committed: Optional[Snapshot] = None
        self._logger = structlog.get_logger(__name__)

    @property
    def backend(self) -> SnapshotStore:
        return self._store

    async def _current(self) -> Snapshot:
        """Committed snapshot, loading it from the backend on first use."""
        if self._committed is None:
            self._committed = await self._store.load()
        return self._committed

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Snapshot]:
        """
        Exclusive read-modify-write block.

        Yields a private working copy. It is saved and published only if
        the block exits cleanly.
        The lock is held across the blocking backend load and save.
        """
        async with self._lock:
            # Always reload inside the lock: the backend is the record of truth.
            committed = await self._store.load()
            self._committed = committed
            working = committed.model_copy(deep=True)
            yield working
            await self._store.save(working)
            self._committed = working.model_copy(deep=True)
            self._logger.debug(
                "snapshot_committed",
                transactions=len(working.transactions),
                assets=len(working.assets),
            )

    async def read(self) -> Snapshot:
        """Self-consistent copy of the last committed snapshot."""
        snapshot = await self._current()
        return snapshot.model_copy(deep=True)
