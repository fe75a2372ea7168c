"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as an alternative record store for
users without a hosted database:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- No row-level security, so owner scoping is enforced here by filtering
  on the user_id column
- No transactions (every write is a single row operation)
- Limited query capabilities (we filter in Python)
- gspread is blocking, so sheet calls run in worker threads

One worksheet per collection, one record per row. Column names match the
hosted API's field names so rows and JSON bodies share a layout.
"""

import asyncio
import json
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional
from uuid import UUID

import gspread
import requests
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel, ValidationError

from finora.config import GoogleSheetsSettings, get_settings
from finora.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finora.models.records import RECORD_MODELS, Category, RecordCollection, TransactionKind
from finora.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    RecordStoreInterface,
    RemoteFailureError,
    TransportError,
    assign_new_record,
)


logger = structlog.get_logger(__name__)


# Column layout per collection (wire field names)
RECORD_COLUMNS: dict[RecordCollection, list[str]] = {
    RecordCollection.TRANSACTIONS: [
        "id",
        "user_id",
        "type",
        "category",
        "amount",
        "date",
        "note",
        "created_at",
        "updated_at",
    ],
    RecordCollection.GOALS: [
        "id",
        "user_id",
        "title",
        "target_amount",
        "current_amount",
        "deadline",
        "created_at",
    ],
    RecordCollection.BUDGETS: [
        "id",
        "user_id",
        "category_id",
        "limit_amount",
        "current_amount",
        "month",
    ],
    RecordCollection.ACCOUNTS: [
        "id",
        "user_id",
        "name",
        "balance",
        "created_at",
    ],
}

# Read-only reference sheet
CATEGORY_COLUMNS = ["id", "user_id", "type", "name"]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(value: Any) -> str:
    """Render one value as a RAW spreadsheet cell."""
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def record_to_row(collection: RecordCollection, record: BaseModel) -> list[str]:
    """Convert a record to a spreadsheet row in the collection's column order."""
    data = record.model_dump(by_alias=True)
    return [_cell(data.get(column)) for column in RECORD_COLUMNS[collection]]


def row_to_record(collection: RecordCollection, row: list) -> BaseModel:
    """
    Convert a spreadsheet row to a record.

    Empty cells are treated as missing so model defaults apply.
    """
    columns = RECORD_COLUMNS[collection]
    data = {
        column: row[index]
        for index, column in enumerate(columns)
        if index < len(row) and row[index] != ""
    }
    return RECORD_MODELS[collection].model_validate(data)


@contextmanager
def _sheet_errors(action: str) -> Iterator[None]:
    """Translate gspread/transport failures into storage errors."""
    try:
        yield
    except gspread.exceptions.APIError as e:
        raise RemoteFailureError(f"Failed to {action}: {e}")
    except requests.RequestException as e:
        raise TransportError(f"Failed to {action}: {e}")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

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
                raise TransportError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except ValueError as e:
                raise TransportError(f"Invalid Google credentials: {e}")
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
                raise TransportError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
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

    def get_collection_sheet(self, collection: RecordCollection) -> gspread.Worksheet:
        return self.get_sheet(
            self._settings.sheet_name_for(collection.value),
            RECORD_COLUMNS[collection],
        )

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Column 0 is the record id, column 1 the owner. gspread is blocking, so
    every sheet round trip runs in a worker thread.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _owned_rows(
        self,
        collection: RecordCollection,
        owner: str,
    ) -> tuple[gspread.Worksheet, list[tuple[int, list]]]:
        """(sheet, [(1-based row index, row), ...]) for the owner's rows."""
        sheet = self._client.get_collection_sheet(collection)
        all_rows = sheet.get_all_values()
        owned = [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is the header
            if len(row) > 1 and row[0] and row[1] == owner
        ]
        return sheet, owned

    def _find_row(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> tuple[gspread.Worksheet, int, list]:
        sheet, owned = self._owned_rows(collection, owner)
        for idx, row in owned:
            if row[0] == record_id:
                return sheet, idx, row
        raise NotFoundError(f"{collection.value} record not found: {record_id}")

    async def list_records(
        self,
        collection: RecordCollection,
        owner: str,
        filters: Optional[dict[str, str]] = None,
    ) -> list[BaseModel]:
        columns = RECORD_COLUMNS[collection]
        with _sheet_errors(f"list {collection.value}"):
            _, owned = await asyncio.to_thread(self._owned_rows, collection, owner)

        records = []
        for _, row in owned:
            cells = dict(zip(columns, row))
            if any(cells.get(key) != str(value) for key, value in (filters or {}).items()):
                continue
            try:
                records.append(row_to_record(collection, row))
            except ValidationError:
                logger.warning("malformed_row_skipped", collection=collection.value, record_id=row[0])
        return records

    async def create_record(
        self,
        collection: RecordCollection,
        owner: str,
        payload: BaseModel,
    ) -> BaseModel:
        record = assign_new_record(collection, owner, payload)

        def append() -> None:
            sheet = self._client.get_collection_sheet(collection)
            sheet.append_row(record_to_row(collection, record), value_input_option="RAW")

        with _sheet_errors(f"save {collection.value} record"):
            await asyncio.to_thread(append)
        return record

    async def get_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> BaseModel:
        with _sheet_errors(f"get {collection.value} record"):
            _, _, row = await asyncio.to_thread(self._find_row, collection, owner, record_id)
        return row_to_record(collection, row)

    async def update_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
        changes: BaseModel,
    ) -> BaseModel:
        model_cls = RECORD_MODELS[collection]

        def rewrite() -> BaseModel:
            sheet, idx, row = self._find_row(collection, owner, record_id)

            data = row_to_record(collection, row).model_dump(by_alias=True)
            data.update(changes.model_dump(by_alias=True, exclude_unset=True))
            if "updated_at" in model_cls.model_fields:
                data["updated_at"] = datetime.now(timezone.utc)
            record = model_cls.model_validate(data)

            sheet.update(
                range_name=f"A{idx}",
                values=[record_to_row(collection, record)],
                value_input_option="RAW",
            )
            return record

        with _sheet_errors(f"update {collection.value} record"):
            return await asyncio.to_thread(rewrite)

    async def delete_record(
        self,
        collection: RecordCollection,
        owner: str,
        record_id: str,
    ) -> None:
        def remove() -> None:
            try:
                sheet, idx, _ = self._find_row(collection, owner, record_id)
            except NotFoundError:
                return
            sheet.delete_rows(idx)

        with _sheet_errors(f"delete {collection.value} record"):
            await asyncio.to_thread(remove)

    async def delete_owned_records(
        self,
        collection: RecordCollection,
        owner: str,
    ) -> Optional[int]:
        def remove_all() -> int:
            sheet, owned = self._owned_rows(collection, owner)
            # Bottom-up so earlier indices stay valid
            for idx, _ in reversed(owned):
                sheet.delete_rows(idx)
            return len(owned)

        with _sheet_errors(f"delete {collection.value} records"):
            return await asyncio.to_thread(remove_all)

    async def list_categories(
        self,
        owner: str,
        kind: Optional[TransactionKind] = None,
    ) -> list[Category]:
        def read() -> list[list]:
            return self._client.get_categories_sheet().get_all_values()[1:]

        with _sheet_errors("list categories"):
            rows = await asyncio.to_thread(read)

        categories = []
        for row in rows:
            if not row or not row[0]:
                continue
            data = {
                column: row[index]
                for index, column in enumerate(CATEGORY_COLUMNS)
                if index < len(row) and row[index] != ""
            }
            try:
                category = Category.model_validate(data)
            except ValidationError:
                logger.warning("malformed_row_skipped", collection="categories", record_id=row[0])
                continue
            if category.visible_to(owner) and (kind is None or category.kind == kind):
                categories.append(category)
        return categories


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
            owner=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            def append() -> None:
                sheet = self._client.get_audit_sheet()
                sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

            with _sheet_errors("write audit event"):
                await asyncio.to_thread(append)
            return True
        except RemoteFailureError as e:
            # Audit logging must not break the main flow
            logger.warning("audit_event_not_persisted", event_id=str(event.event_id), error=str(e))
            return False

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        def read() -> list[list]:
            return self._client.get_audit_sheet().get_all_values()[1:]

        with _sheet_errors("read audit events"):
            all_rows = await asyncio.to_thread(read)

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except (ValueError, ValidationError):
                    continue

        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
