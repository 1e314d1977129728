"""
Tests for the Google Sheets backend.

No real API calls: the client is replaced by an in-memory fake that
behaves like gspread worksheets.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import run_async
from family_ledger.audit import AuditLogger
from family_ledger.config import AppSettings, GoogleSheetsSettings
from family_ledger.models.audit import AuditEventBuilder, AuditEventType
from family_ledger.models.ledger import (
    Asset,
    Bill,
    Category,
    Snapshot,
    Transaction,
    TransactionType,
    User,
)
from family_ledger.orchestrator import LedgerService
from family_ledger.services.storage import (
    AtomicStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsSnapshotStore,
    StorageError,
)


class FakeWorksheet:
    def __init__(self, client, title):
        self.values: list[list[str]] = []
        self._client = client
        self._title = title

    def _check(self):
        if self._title in self._client.failing:
            raise RuntimeError(f"{self._title}: quota exceeded")

    def get_all_values(self):
        return [list(row) for row in self.values]

    def clear(self):
        self._check()
        self.values = []

    def update(self, values, range_name="A1", value_input_option="RAW"):
        self._check()
        self.values = [list(row) for row in values]

    def append_row(self, row, value_input_option="RAW"):
        self._check()
        self.values.append(list(row))


class FakeSheetsClient(GoogleSheetsClient):
    """GoogleSheetsClient with worksheets held in a dict."""

    def __init__(self, settings):
        super().__init__(settings)
        self.sheets: dict[str, FakeWorksheet] = {}
        self.failing: set[str] = set()

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            sheet = FakeWorksheet(self, title)
            sheet.append_row(columns)
            self.sheets[title] = sheet
        return self.sheets[title]

    def write_ranges(self, data):
        """Rejects the whole batch if any target sheet is failing."""
        titles = [item["range"].split("!")[0].strip("'") for item in data]
        for title in titles:
            if title in self.failing:
                raise RuntimeError(f"{title}: quota exceeded")
        for title, item in zip(titles, data):
            self.sheets[title].values = [list(row) for row in item["values"]]


@pytest.fixture
def fake_client(tmp_path):
    credentials = tmp_path / "credentials.json"
    credentials.write_text("{}", encoding="utf-8")
    settings = GoogleSheetsSettings(
        credentials_path=str(credentials),
        spreadsheet_id="sheet-id",
        worksheet_prefix="Ledger_",
    )
    return FakeSheetsClient(settings)


class TestGoogleSheetsSnapshotStore:
    """Tests for GoogleSheetsSnapshotStore."""

    def test_empty_sheets_load_empty_snapshot(self, fake_client):
        """Fresh worksheets hold only headers."""
        snapshot = run_async(GoogleSheetsSnapshotStore(fake_client).load())
        assert snapshot == Snapshot()
        assert "Ledger_Transactions" in fake_client.sheets

    def test_save_then_load(self, fake_client):
        """Entities come back equal, optional links included."""
        user = User(email="a@example.com", name="A", password_hash="h")
        bill = Bill(name="Home", user_id=user.id)
        category = Category(
            bill_id=bill.id, user_id=user.id, name="Food",
            type=TransactionType.EXPENSE, is_seed=True,
        )
        asset = Asset(
            user_id=user.id, name="Bank",
            balance=Decimal("900.50"), initial_balance=Decimal("1000"),
        )
        linked = Transaction(
            bill_id=bill.id, category_id=category.id, user_id=user.id,
            type=TransactionType.EXPENSE, amount=Decimal("99.50"),
            date=date(2024, 3, 1), asset_id=asset.id,
        )
        unlinked = Transaction(
            bill_id=bill.id, category_id=category.id, user_id=user.id,
            type=TransactionType.EXPENSE, amount=Decimal("1"),
        )
        snapshot = Snapshot(
            users=[user], bills=[bill], categories=[category],
            transactions=[linked, unlinked], assets=[asset],
        )

        store = GoogleSheetsSnapshotStore(fake_client)
        run_async(store.save(snapshot))
        restored = run_async(store.load())

        assert restored == snapshot
        assert restored.transactions[1].asset_id is None
        assert restored.categories[0].parent_id is None
        assert restored.assets[0].balance == Decimal("900.50")

    def test_save_rewrites_rows(self, fake_client):
        """A shorter save blanks the rows left over from a longer one."""
        store = GoogleSheetsSnapshotStore(fake_client)
        run_async(store.save(Snapshot(users=[User(email="a@example.com", name="A")])))
        run_async(store.save(Snapshot()))
        assert fake_client.sheets["Ledger_Users"].values[1] == [""] * 4
        assert run_async(store.load()).users == []

    def test_failed_save_changes_no_sheet(self, fake_client):
        """One failing worksheet leaves every worksheet as it was."""
        store = GoogleSheetsSnapshotStore(fake_client)
        user = User(email="a@example.com", name="A")
        before = Snapshot(users=[user], assets=[Asset(user_id=user.id, name="Bank")])
        run_async(store.save(before))

        fake_client.failing.add("Ledger_Assets")
        with pytest.raises(StorageError):
            run_async(store.save(Snapshot()))

        fake_client.failing.clear()
        assert run_async(store.load()) == before

    def test_failed_write_through_service_keeps_balance(self, fake_client):
        """A transaction whose save fails leaves no row and the asset untouched."""
        store = GoogleSheetsSnapshotStore(fake_client)
        service = LedgerService(
            store=AtomicStore(store),
            audit_logger=AuditLogger(),
            app_settings=AppSettings(),
        )
        user = run_async(service.register_user({"email": "s@example.com", "password": "x"}))
        bill = run_async(service.list_bills(user.id))[0]
        groceries = next(
            c for c in run_async(service.list_categories(user.id)) if c.name == "Groceries"
        )
        asset = run_async(service.create_asset(user.id, {"name": "Bank", "balance": "1000"}))

        fake_client.failing.add("Ledger_Assets")
        with pytest.raises(StorageError):
            run_async(service.create_transaction(user.id, {
                "bill_id": bill.id, "category_id": groceries.id,
                "type": "expense", "amount": "200", "asset_id": asset.id,
            }))
        fake_client.failing.clear()

        stored = run_async(store.load())
        assert stored.transactions == []
        assert stored.find_asset(asset.id).balance == Decimal("1000")
        assert run_async(service.list_assets(user.id))[0].balance == Decimal("1000")


class TestGoogleSheetsAuditStorage:
    """Tests for GoogleSheetsAuditStorage."""

    def test_append_and_query(self, fake_client):
        """Events are appended as rows and read back."""
        storage = GoogleSheetsAuditStorage(fake_client)
        cid = uuid4()
        event = AuditEventBuilder.entity_changed(
            AuditEventType.BILL_CREATED, "u1", "bill", "b1", cid, details={"name": "Home"},
        )
        assert run_async(storage.append_event(event)) is True

        by_cid = run_async(storage.get_events_by_correlation_id(cid))
        assert [e.event_id for e in by_cid] == [event.event_id]
        assert by_cid[0].details == {"name": "Home"}
        assert run_async(storage.get_events_by_entity("bill", "b1"))[0].user_id == "u1"
        assert len(run_async(storage.get_recent_events(limit=5))) == 1
