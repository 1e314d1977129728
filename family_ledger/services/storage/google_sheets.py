"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Non-technical family members can look at the ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for a household)
- A save sends every collection sheet in one batch request. AtomicStore
  serializes writers and only publishes the snapshot after save returns.
- gspread calls are blocking; they run while the AtomicStore lock is held.
- Limited query capabilities (we filter in Python)

Layout: one worksheet per collection, header row = model field names,
one entity per row.
"""

import json
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from family_ledger.config import GoogleSheetsSettings, get_settings
from family_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from family_ledger.models.ledger import (
    Asset,
    Bill,
    BillShare,
    Category,
    Snapshot,
    Transaction,
    User,
)
from family_ledger.services.storage.interface import (
    AuditStorageInterface,
    SnapshotStore,
    StorageConnectionError,
    StorageError,
)


# Snapshot attribute -> (worksheet title, entity model)
COLLECTIONS: dict[str, tuple[str, type[BaseModel]]] = {
    "users": ("Users", User),
    "bills": ("Bills", Bill),
    "bill_shares": ("BillShares", BillShare),
    "categories": ("Categories", Category),
    "transactions": ("Transactions", Transaction),
    "assets": ("Assets", Asset),
}

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "user_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


def _cell(value) -> str:
    """Render a JSON-mode value as a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError as e:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                ) from e
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}") from e

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound as e:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                ) from e
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def write_ranges(self, data: list[dict]) -> None:
        """
        Write several ranges in one values.batchUpdate request.

        Args:
            data: [{"range": "'Sheet'!A1", "values": [[...], ...]}, ...]
        """
        self.get_spreadsheet().values_batch_update(
            body={"valueInputOption": "RAW", "data": data}
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsSnapshotStore(SnapshotStore):
    """
    Google Sheets implementation of the snapshot store.

    Each collection is one worksheet. Empty cells fall back to the
    model defaults on load (so optional links read back as None).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _title(self, base: str) -> str:
        return f"{self._client.settings.worksheet_prefix}{base}"

    @staticmethod
    def _columns(model: type[BaseModel]) -> list[str]:
        return list(model.model_fields.keys())

    @staticmethod
    def _entity_to_row(entity: BaseModel, columns: list[str]) -> list[str]:
        data = entity.model_dump(mode="json")
        return [_cell(data.get(col)) for col in columns]

    @staticmethod
    def _row_to_entity(header: list[str], row: list[str], model: type[BaseModel]) -> BaseModel:
        data = {
            col: value
            for col, value in zip(header, row)
            if col and value != ""
        }
        return model.model_validate(data)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def load(self) -> Snapshot:
        """Read every collection worksheet into a Snapshot."""
        try:
            collections = {}
            for attr, (base, model) in COLLECTIONS.items():
                sheet = self._client.get_worksheet(self._title(base), self._columns(model))
                values = sheet.get_all_values()
                if not values:
                    collections[attr] = []
                    continue
                header, rows = values[0], values[1:]
                collections[attr] = [
                    self._row_to_entity(header, row, model)
                    for row in rows
                    if row and row[0]
                ]
            return Snapshot(**collections)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load snapshot from Google Sheets: {e}") from e

    async def save(self, snapshot: Snapshot) -> None:
        """
        Rewrite every collection worksheet from the snapshot.

        All rows are built first and sent in a single batch request, so a
        failed save leaves every worksheet as it was. Rows left over from a
        longer previous save are overwritten with blanks, never cleared
        ahead of the write.
        """
        try:
            data = []
            for attr, (base, model) in COLLECTIONS.items():
                columns = self._columns(model)
                title = self._title(base)
                sheet = self._client.get_worksheet(title, columns)
                rows = [columns] + [
                    self._entity_to_row(entity, columns)
                    for entity in getattr(snapshot, attr)
                ]
                stale = len(sheet.get_all_values()) - len(rows)
                rows.extend([""] * len(columns) for _ in range(stale))
                data.append({"range": f"'{title}'!A1", "values": rows})
            self._client.write_ranges(data)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save snapshot to Google Sheets: {e}") from e


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            user_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue  # Skip malformed rows
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}") from e
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
