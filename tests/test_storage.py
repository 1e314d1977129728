"""Tests for the snapshot stores and the atomic write wrapper."""

import asyncio
from decimal import Decimal

import pytest

from conftest import run_async
from family_ledger.audit import AuditLogger
from family_ledger.config import AppSettings
from family_ledger.errors import ForbiddenError
from family_ledger.models.ledger import Asset, Snapshot, User
from family_ledger.orchestrator import LedgerService
from family_ledger.services.storage import (
    AtomicStore,
    InMemorySnapshotStore,
    JsonFileSnapshotStore,
    StorageError,
)


class SlowStore(InMemorySnapshotStore):
    """Yields to the event loop on every call so writers interleave."""

    async def load(self) -> Snapshot:
        await asyncio.sleep(0)
        return await super().load()

    async def save(self, snapshot: Snapshot) -> None:
        await asyncio.sleep(0)
        await super().save(snapshot)


class FailingSaveStore(InMemorySnapshotStore):
    """Loads fine, refuses to save."""

    async def save(self, snapshot: Snapshot) -> None:
        raise StorageError("disk full")


class TestAtomicStore:
    """Tests for AtomicStore."""

    def test_commit_is_visible_to_readers(self):
        """A clean block is saved and published."""
        backend = InMemorySnapshotStore()
        store = AtomicStore(backend)

        async def scenario():
            async with store.transaction() as snapshot:
                snapshot.users.append(User(email="a@b.c", name="A"))
            return await store.read()

        snapshot = run_async(scenario())
        assert len(snapshot.users) == 1
        assert backend.save_count == 1

    def test_raising_block_saves_nothing(self):
        """An exception inside the block discards the working copy."""
        backend = InMemorySnapshotStore()
        store = AtomicStore(backend)

        async def scenario():
            with pytest.raises(ForbiddenError):
                async with store.transaction() as snapshot:
                    snapshot.users.append(User(email="a@b.c", name="A"))
                    raise ForbiddenError("no")
            return await store.read()

        snapshot = run_async(scenario())
        assert snapshot.users == []
        assert backend.save_count == 0

    def test_failed_save_keeps_committed_state(self):
        """If save raises, readers still see the previous snapshot."""
        initial = Snapshot(assets=[Asset(user_id="u", name="Bank", balance=Decimal("5"))])
        store = AtomicStore(FailingSaveStore(initial))

        async def scenario():
            with pytest.raises(StorageError):
                async with store.transaction() as snapshot:
                    snapshot.assets[0].balance = Decimal("0")
            return await store.read()

        snapshot = run_async(scenario())
        assert snapshot.assets[0].balance == Decimal("5")

    def test_read_returns_a_copy(self):
        """Mutating a read result does not touch committed state."""
        store = AtomicStore(InMemorySnapshotStore())

        async def scenario():
            first = await store.read()
            first.users.append(User(email="a@b.c", name="A"))
            return await store.read()

        assert run_async(scenario()).users == []

    def test_concurrent_writers_serialize(self):
        """Twenty concurrent expenses on one asset lose no update."""

        async def scenario():
            service = LedgerService(
                store=AtomicStore(SlowStore()),
                audit_logger=AuditLogger(),
                app_settings=AppSettings(),
            )
            user = await service.register_user({"email": "c@example.com", "password": "x"})
            bill = (await service.list_bills(user.id))[0]
            groceries = next(
                c for c in await service.list_categories(user.id) if c.name == "Groceries"
            )
            asset = await service.create_asset(user.id, {"name": "Bank", "balance": "1000"})
            await asyncio.gather(*[
                service.create_transaction(user.id, {
                    "bill_id": bill.id,
                    "category_id": groceries.id,
                    "type": "expense",
                    "amount": "10",
                    "asset_id": asset.id,
                })
                for _ in range(20)
            ])
            assets = await service.list_assets(user.id)
            txs = await service.list_transactions(user.id)
            return assets[0].balance, len(txs)

        balance, count = run_async(scenario())
        assert balance == Decimal("800")
        assert count == 20


class TestJsonFileSnapshotStore:
    """Tests for the db.json backend."""

    def test_missing_file_is_empty(self, tmp_path):
        """A store with no file yet loads as an empty snapshot."""
        store = JsonFileSnapshotStore(tmp_path / "db.json")
        snapshot = run_async(store.load())
        assert snapshot == Snapshot()

    def test_save_then_load(self, tmp_path):
        """Saved data reloads with exact decimals."""
        path = tmp_path / "db.json"
        store = JsonFileSnapshotStore(path)
        snapshot = Snapshot(assets=[
            Asset(user_id="u", name="Bank", balance=Decimal("10.05"), initial_balance=Decimal("1")),
        ])
        run_async(store.save(snapshot))

        reloaded = run_async(JsonFileSnapshotStore(path).load())
        assert reloaded.assets[0].balance == Decimal("10.05")
        assert reloaded.assets[0].id == snapshot.assets[0].id

    def test_save_leaves_no_temp_files(self, tmp_path):
        """The temp file is renamed into place."""
        store = JsonFileSnapshotStore(tmp_path / "db.json")
        run_async(store.save(Snapshot()))
        assert [p.name for p in tmp_path.iterdir()] == ["db.json"]

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        """Unparseable content is a StorageError."""
        path = tmp_path / "db.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            run_async(JsonFileSnapshotStore(path).load())

    def test_service_persists_across_instances(self, tmp_path):
        """A second service over the same file sees the first one's writes."""
        path = tmp_path / "db.json"

        def make_service():
            return LedgerService(
                store=AtomicStore(JsonFileSnapshotStore(path)),
                app_settings=AppSettings(),
            )

        user = run_async(make_service().register_user({"email": "j@example.com", "password": "x"}))
        bills = run_async(make_service().list_bills(user.id))
        assert [b.name for b in bills] == ["Personal"]
