"""
Google Sheets Document Store

DESIGN DECISION: Google Sheets is offered as a hosted backend because:
1. Users can view and back up their records directly in Sheets
2. No database setup required
3. Easy to export/migrate later

Layout: one worksheet per collection path ('users/u1/transactions'
becomes the worksheet 'users.u1.transactions'), header row
[id, data_json], one document per row.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- Filtering happens in Python after reading the whole worksheet
- Subscriptions are served by polling

Atomicity: a batch is staged in memory against freshly read rows and
then sent as ONE spreadsheet batch_update covering every touched
worksheet; the API applies all of its requests or none of them.

Only the rows a batch targets are written. New documents are appended
after the last row with data, existing ones are rewritten in place and
deleted ones are blanked. Rows never move, so concurrent writers to
other documents of the same collection are not overwritten.

gspread is blocking; every call runs in a worker thread so the event
loop (and the polling subscriptions on it) keeps running.
"""

import asyncio
import json
from typing import Any, Optional, Sequence

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from finance_tracker.config import GoogleSheetsSettings, get_settings
from finance_tracker.services.storage.interface import (
    ConnectionError,
    Document,
    DocumentStore,
    FieldFilter,
    OnChange,
    StorageError,
    Subscription,
    WriteOperation,
    apply_operations,
    filter_documents,
)


logger = structlog.get_logger(__name__)

HEADER = ["id", "data_json"]


def worksheet_title(collection_path: str) -> str:
    """Sheets titles can't contain '/'."""
    return collection_path.replace("/", ".")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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

    def get_collection_sheet(
        self,
        collection_path: str,
        create: bool = True,
    ) -> Optional[gspread.Worksheet]:
        """Get (or create) the worksheet backing a collection."""
        spreadsheet = self.get_spreadsheet()
        title = worksheet_title(collection_path)
        try:
            return spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            if not create:
                return None
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(HEADER),
            )
            sheet.append_row(HEADER)
            return sheet


class GoogleSheetsDocumentStore(DocumentStore):
    """
    Google Sheets implementation of the document store.

    Document bodies are JSON-serialized into the second column.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        poll_interval_seconds: Optional[float] = None,
    ):
        self._client = client or GoogleSheetsClient()
        if poll_interval_seconds is None:
            poll_interval_seconds = get_settings().google_sheets.poll_interval_seconds
        self._poll_interval = poll_interval_seconds

    @staticmethod
    def _rows_to_documents(rows: list[list[str]]) -> dict[str, dict[str, Any]]:
        """Convert worksheet rows (header excluded) to {id: data}."""
        documents: dict[str, dict[str, Any]] = {}
        for row in rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            raw = row[1] if len(row) > 1 else ""
            try:
                documents[row[0]] = json.loads(raw) if raw else {}
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupt document {row[0]}: {e}")
        return documents

    @staticmethod
    def _row_numbers(rows: list[list[str]]) -> dict[str, list[int]]:
        """{id: sheet row numbers}, 1-based; the header is row 1."""
        numbers: dict[str, list[int]] = {}
        for index, row in enumerate(rows):
            if row and row[0]:
                numbers.setdefault(row[0], []).append(index + 2)
        return numbers

    @staticmethod
    def _cells(values: list[str]) -> dict[str, Any]:
        return {"values": [{"userEnteredValue": {"stringValue": v}} for v in values]}

    def _row_requests(
        self,
        collection_path: str,
        rows: list[list[str]],
        documents: dict[str, dict[str, Any]],
        doc_ids: Sequence[str],
    ) -> list[dict[str, Any]]:
        """
        Requests writing the rows of `doc_ids` and nothing else.

        A document that ended up more than once in the sheet keeps its
        last row; the others are blanked along with deleted documents.
        """
        numbers = self._row_numbers(rows)
        rewrites: list[tuple[int, list[str]]] = []
        appends: list[list[str]] = []
        blanks: list[int] = []

        for doc_id in doc_ids:
            existing = numbers.get(doc_id, [])
            if doc_id in documents:
                values = [doc_id, json.dumps(documents[doc_id], ensure_ascii=False, sort_keys=True)]
                if existing:
                    rewrites.append((existing[-1], values))
                    blanks.extend(existing[:-1])
                else:
                    appends.append(values)
            else:
                blanks.extend(existing)

        if not (rewrites or appends or blanks):
            return []

        sheet_id = self._client.get_collection_sheet(collection_path).id
        requests = [
            {
                "updateCells": {
                    "start": {"sheetId": sheet_id, "rowIndex": number - 1, "columnIndex": 0},
                    "rows": [self._cells(values)],
                    "fields": "userEnteredValue",
                }
            }
            for number, values in rewrites
        ]
        requests += [
            {
                "updateCells": {
                    "start": {"sheetId": sheet_id, "rowIndex": number - 1, "columnIndex": 0},
                    "rows": [{"values": [{}, {}]}],
                    "fields": "userEnteredValue",
                }
            }
            for number in blanks
        ]
        if appends:
            requests.append({
                "appendCells": {
                    "sheetId": sheet_id,
                    "rows": [self._cells(values) for values in appends],
                    "fields": "userEnteredValue",
                }
            })
        return requests

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, collection_path: str) -> list[list[str]]:
        """Raw rows of a collection, header excluded."""
        sheet = self._client.get_collection_sheet(collection_path, create=False)
        if sheet is None:
            return []
        return sheet.get_all_values()[1:]

    def _read_collection(self, collection_path: str) -> dict[str, dict[str, Any]]:
        return self._rows_to_documents(self._read_rows(collection_path))

    def _commit(self, operations: Sequence[WriteOperation]) -> list[str]:
        """Stage the batch against fresh rows and send it as one request."""
        touched = list(dict.fromkeys(op.collection_path for op in operations))
        rows = {path: self._read_rows(path) for path in touched}
        staged = {path: self._rows_to_documents(rows[path]) for path in touched}
        apply_operations(staged, operations)

        requests = []
        for path in touched:
            doc_ids = list(dict.fromkeys(
                op.id for op in operations if op.collection_path == path
            ))
            requests += self._row_requests(path, rows[path], staged[path], doc_ids)

        if requests:
            self._client.get_spreadsheet().batch_update({"requests": requests})
        return touched

    async def batch_write(self, operations: Sequence[WriteOperation]) -> None:
        """Write every operation of the batch in a single API call."""
        if not operations:
            return

        try:
            touched = await asyncio.to_thread(self._commit, operations)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to write batch: {e}")

        logger.debug(
            "batch_committed",
            operations=len(operations),
            collections=touched,
        )

    async def query(
        self,
        collection_path: str,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        try:
            documents = await asyncio.to_thread(self._read_collection, collection_path)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to query {collection_path}: {e}")

        return filter_documents(
            [Document(id=doc_id, data=data) for doc_id, data in documents.items()],
            filters,
            order_by,
            descending,
        )

    async def get(self, collection_path: str, doc_id: str) -> Optional[Document]:
        try:
            documents = await asyncio.to_thread(self._read_collection, collection_path)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get {collection_path}/{doc_id}: {e}")

        if doc_id not in documents:
            return None
        return Document(id=doc_id, data=documents[doc_id])

    async def subscribe(
        self,
        collection_path: str,
        on_change: OnChange,
        filters: Sequence[FieldFilter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        """Poll the worksheet and push the snapshot whenever it differs."""

        async def poll() -> None:
            last: Optional[list[Document]] = None
            while True:
                try:
                    snapshot = await self.query(collection_path, filters, order_by, descending)
                except StorageError as e:
                    logger.warning(
                        "subscription_poll_failed",
                        collection_path=collection_path,
                        error=str(e),
                    )
                else:
                    if snapshot != last:
                        last = snapshot
                        try:
                            on_change(snapshot)
                        except Exception as e:
                            logger.error(
                                "subscriber_failed",
                                collection_path=collection_path,
                                error=str(e),
                            )
                await asyncio.sleep(self._poll_interval)

        task = asyncio.get_running_loop().create_task(poll())
        return Subscription(task.cancel)
