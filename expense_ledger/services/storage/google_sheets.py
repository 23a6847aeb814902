"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is supported as a storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

Each collection lives in its own worksheet, one document per row, keyed by
the first column. Nested fields (entryTemplate, recurrence) are stored as
JSON strings.

ATOMICITY: A batch of writes is translated into ONE spreadsheets.batchUpdate
call (updateCells / appendCells / deleteDimension requests). Sheets applies
all requests of a batchUpdate or none of them, which gives us the same
all-or-nothing batch the engine relies on.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Limited query capabilities (we filter in Python)
- Commits are not retried; connection set-up and reads are
"""

import json
from datetime import datetime
from typing import Any, NamedTuple, Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_ledger.config import get_settings
from expense_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_ledger.models.entry import Entry
from expense_ledger.models.recurring import RecurringTemplate
from expense_ledger.services.storage.interface import (
    AuditStorageInterface,
    BatchLimitExceededError,
    Collection,
    ConnectionError,
    EntryQuery,
    LedgerStoreInterface,
    StorageError,
    WriteKind,
    WriteOperation,
)

logger = structlog.get_logger(__name__)


# Column mappings: (document field, cell kind)
ENTRY_COLUMNS = [
    ("id", "str"),
    ("ownerId", "str"),
    ("type", "str"),
    ("originalAmount", "str"),
    ("currency", "str"),
    ("category", "str"),
    ("description", "str"),
    ("date", "str"),
    ("recurringTemplateId", "str"),
    ("originalDate", "str"),
    ("isRecurringInstance", "bool"),
    ("isModified", "bool"),
    ("createdBy", "str"),
    ("createdAt", "str"),
    ("updatedAt", "str"),
    ("updatedBy", "str"),
]

TEMPLATE_COLUMNS = [
    ("id", "str"),
    ("ownerId", "str"),
    ("entryTemplate", "json"),
    ("recurrence", "json"),
    ("startDate", "str"),
    ("instancesCreated", "int"),
    ("createdBy", "str"),
    ("createdAt", "str"),
    ("updatedAt", "str"),
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

COLUMNS = {
    Collection.ENTRIES: ENTRY_COLUMNS,
    Collection.TEMPLATES: TEMPLATE_COLUMNS,
}


def document_to_row(document: dict[str, Any], columns: list[tuple[str, str]]) -> list[str]:
    """Convert a document to a spreadsheet row."""
    row = []
    for name, kind in columns:
        value = document.get(name)
        if value is None:
            row.append("")
        elif kind == "json":
            row.append(json.dumps(value))
        elif kind == "bool":
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_document(row: list[str], columns: list[tuple[str, str]]) -> dict[str, Any]:
    """Convert a spreadsheet row back to a document. Empty cells are omitted."""
    document: dict[str, Any] = {}
    for index, (name, kind) in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell == "":
            continue
        if kind == "json":
            document[name] = json.loads(cell)
        elif kind == "bool":
            document[name] = cell.lower() == "true"
        elif kind == "int":
            document[name] = int(cell)
        else:
            document[name] = cell
    return document


class SheetSnapshot(NamedTuple):
    """A worksheet's id, column layout and current values (header included)."""
    sheet_id: int
    columns: list[tuple[str, str]]
    rows: list[list[str]]

    def row_index(self) -> dict[str, int]:
        """Document key -> 0-based row index in the sheet."""
        return {
            row[0]: index
            for index, row in enumerate(self.rows)
            if index > 0 and row and row[0]
        }


def _row_data(document: dict[str, Any], columns: list[tuple[str, str]]) -> dict:
    return {
        "values": [
            {"userEnteredValue": {"stringValue": cell}}
            for cell in document_to_row(document, columns)
        ]
    }


def build_batch_requests(
    operations: list[WriteOperation],
    snapshots: dict[Collection, SheetSnapshot],
) -> list[dict]:
    """
    Translate write operations into spreadsheets.batchUpdate requests.

    Operations are folded per key first (a later write to the same key wins),
    then emitted as row updates, appends, and finally row deletions from the
    bottom up so earlier row indexes stay valid.
    """
    staged: dict[Collection, dict[str, Optional[dict[str, Any]]]] = {}
    indexes = {collection: snapshot.row_index() for collection, snapshot in snapshots.items()}

    for op in operations:
        snapshot = snapshots[op.collection]
        pending = staged.setdefault(op.collection, {})
        if op.key in pending:
            current = pending[op.key]
        elif op.key in indexes[op.collection]:
            current = row_to_document(snapshot.rows[indexes[op.collection][op.key]], snapshot.columns)
        else:
            current = None

        if op.kind == WriteKind.SET:
            pending[op.key] = {**op.data, "id": op.key}
        elif op.kind == WriteKind.MERGE:
            pending[op.key] = {**(current or {}), **op.data, "id": op.key}
        else:
            pending[op.key] = None

    updates: list[dict] = []
    appends: list[dict] = []
    deletes: list[tuple[int, int]] = []

    for collection, pending in staged.items():
        snapshot = snapshots[collection]
        index = indexes[collection]
        new_rows = []
        for key, document in pending.items():
            row_number = index.get(key)
            if document is None:
                if row_number is not None:
                    deletes.append((snapshot.sheet_id, row_number))
            elif row_number is not None:
                updates.append({
                    "updateCells": {
                        "range": {
                            "sheetId": snapshot.sheet_id,
                            "startRowIndex": row_number,
                            "endRowIndex": row_number + 1,
                            "startColumnIndex": 0,
                            "endColumnIndex": len(snapshot.columns),
                        },
                        "rows": [_row_data(document, snapshot.columns)],
                        "fields": "userEnteredValue",
                    }
                })
            else:
                new_rows.append(_row_data(document, snapshot.columns))
        if new_rows:
            appends.append({
                "appendCells": {
                    "sheetId": snapshot.sheet_id,
                    "rows": new_rows,
                    "fields": "userEnteredValue",
                }
            })

    deletes.sort(reverse=True)
    removals = [
        {
            "deleteDimension": {
                "range": {
                    "sheetId": sheet_id,
                    "dimension": "ROWS",
                    "startIndex": row_number,
                    "endIndex": row_number + 1,
                }
            }
        }
        for sheet_id, row_number in deletes
    ]
    return updates + appends + removals


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

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
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(self, title: str, header: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(header),
            )
            sheet.append_row(header)
        return sheet

    def get_collection_sheet(self, collection: Collection) -> gspread.Worksheet:
        """Get or create the worksheet holding a collection."""
        title = (
            self._settings.entries_sheet_name
            if collection == Collection.ENTRIES
            else self._settings.templates_sheet_name
        )
        header = [name for name, _ in COLUMNS[collection]]
        return self._get_or_create_sheet(title, header, rows=1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )


class GoogleSheetsLedgerStore(LedgerStoreInterface):
    """
    Google Sheets implementation of the ledger store.

    Reads fetch the whole worksheet and filter in Python.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        max_batch_writes: Optional[int] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self.max_batch_writes = max_batch_writes or get_settings().recurrence.max_batch_writes

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _snapshot(self, collection: Collection) -> SheetSnapshot:
        sheet = self._client.get_collection_sheet(collection)
        return SheetSnapshot(
            sheet_id=sheet.id,
            columns=COLUMNS[collection],
            rows=sheet.get_all_values(),
        )

    def _documents(self, collection: Collection) -> list[dict[str, Any]]:
        try:
            snapshot = self._snapshot(collection)
        except Exception as e:
            raise StorageError(f"Failed to read {collection.value}: {e}")

        documents = []
        for row in snapshot.rows[1:]:  # Skip header
            if not row or not row[0]:  # Skip empty rows
                continue
            documents.append(row_to_document(row, snapshot.columns))
        return documents

    async def get_template(self, template_id: str) -> Optional[RecurringTemplate]:
        for document in self._documents(Collection.TEMPLATES):
            if document.get("id") == template_id:
                return RecurringTemplate.model_validate(document)
        return None

    async def get_entry(self, entry_id: str) -> Optional[Entry]:
        for document in self._documents(Collection.ENTRIES):
            if document.get("id") == entry_id:
                return Entry.model_validate(document)
        return None

    def _matching(self, query: EntryQuery) -> list[dict[str, Any]]:
        matches = [d for d in self._documents(Collection.ENTRIES) if query.matches(d)]
        matches.sort(key=lambda d: (d.get("date", ""), d.get("id", "")), reverse=query.descending)
        if query.limit is not None:
            matches = matches[:query.limit]
        return matches

    async def find_entries(self, query: EntryQuery) -> list[Entry]:
        return [Entry.model_validate(document) for document in self._matching(query)]

    async def count_entries(self, query: EntryQuery) -> int:
        return len(self._matching(query))

    async def list_templates(self, owner_ids: list[str]) -> list[RecurringTemplate]:
        if len(owner_ids) > self.max_in_values:
            raise StorageError(
                f"At most {self.max_in_values} owner ids per query, got {len(owner_ids)}"
            )
        wanted = set(owner_ids)
        templates = [
            RecurringTemplate.model_validate(document)
            for document in self._documents(Collection.TEMPLATES)
            if document.get("ownerId") in wanted
        ]
        templates.sort(key=lambda t: t.created_at, reverse=True)
        return templates

    async def commit(self, operations: list[WriteOperation]) -> None:
        if len(operations) > self.max_batch_writes:
            raise BatchLimitExceededError(
                f"Batch of {len(operations)} writes exceeds limit of {self.max_batch_writes}"
            )
        if not operations:
            return

        collections = {op.collection for op in operations}
        try:
            snapshots = {collection: self._snapshot(collection) for collection in collections}
        except Exception as e:
            raise StorageError(f"Failed to read sheets before commit: {e}")

        requests = build_batch_requests(operations, snapshots)
        if not requests:
            return

        try:
            self._client.get_spreadsheet().batch_update({"requests": requests})
        except Exception as e:
            raise StorageError(f"Failed to commit batch of {len(operations)} writes: {e}")

        logger.debug("sheets_batch_committed", writes=len(operations), requests=len(requests))


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
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_message=safe_get(9) or None,
            is_user_action=safe_get(10).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, json.JSONDecodeError):
                logger.warning("audit_row_unreadable", event_id=row[0])
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        sheet = self._client.get_audit_sheet()
        sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        events = [
            e for e in self._all_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        events = self._all_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
