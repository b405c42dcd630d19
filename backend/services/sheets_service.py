"""
Google Sheets service — service-account client for the Sheets API v4.

Every board reads its answers from a teacher's spreadsheet, and the legacy
user store keeps its Users/Logs tables in the DATABASE_SPREADSHEET_ID
spreadsheet. Both go through SheetsClient, which authenticates with the
service account stored in SERVICE_ACCOUNT_CREDS so access does not depend
on the requesting user's own Google permissions.

Calls are retried with exponential backoff when the failure looks
transient (timeouts, quota, 5xx). HTTP errors are translated into the
application's typed errors:
  403 → AuthorizationError  (spreadsheet not shared with the service account)
  404 → ConfigurationError  (wrong spreadsheet id or sheet name)
  429 / 5xx → ExternalAPIError
"""
import logging
import time

from flask import current_app
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from services.error_service import (
    AuthorizationError,
    ConfigurationError,
    ExternalAPIError,
    is_retryable_error,
)

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def quote_sheet_name(sheet_name):
    """Quote a sheet title for A1 notation ('It''s' style escaping)."""
    return "'" + (sheet_name or "").replace("'", "''") + "'"


def a1_range(sheet_name, cell_range=None):
    """Build an A1 range such as 'Sheet 1'!A2:D2."""
    quoted = quote_sheet_name(sheet_name)
    return f"{quoted}!{cell_range}" if cell_range else quoted


def column_letter(index):
    """1-based column index to letters: 1 → A, 27 → AA."""
    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def _http_status(exc):
    resp = getattr(exc, "resp", None)
    return getattr(resp, "status", None)


class SheetsClient:
    """Thin wrapper over the Sheets API with retry and error translation."""

    def __init__(self, service, max_retries=3, retry_delay_ms=500,
                 max_retry_delay_ms=5000, sleep=time.sleep):
        self.service = service
        self.max_retries = max(1, max_retries)
        self.retry_delay_ms = retry_delay_ms
        self.max_retry_delay_ms = max_retry_delay_ms
        self._sleep = sleep

    @classmethod
    def from_service_account_info(cls, info, **kwargs):
        """Build a client from the parsed service account JSON."""
        creds = service_account.Credentials.from_service_account_info(
            info, scopes=SCOPES
        )
        service = build("sheets", "v4", credentials=creds, cache_discovery=False)
        return cls(service, **kwargs)

    # ---- public API -------------------------------------------------------

    def get_values(self, spreadsheet_id, cell_range):
        """Return the 2D values list for a range ([] when the range is empty)."""
        request = self.service.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id, range=cell_range
        )
        result = self._execute(request, "get_values")
        return result.get("values", [])

    def update_values(self, spreadsheet_id, cell_range, values):
        request = self.service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=cell_range,
            valueInputOption="RAW",
            body={"values": values},
        )
        return self._execute(request, "update_values")

    def append_row(self, spreadsheet_id, sheet_name, row):
        request = self.service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=a1_range(sheet_name),
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        )
        return self._execute(request, "append_row")

    def sheet_titles(self, spreadsheet_id):
        """Map sheet title → numeric sheetId for a spreadsheet."""
        request = self.service.spreadsheets().get(
            spreadsheetId=spreadsheet_id,
            fields="sheets.properties(sheetId,title)",
        )
        result = self._execute(request, "sheet_titles")
        return {
            s["properties"]["title"]: s["properties"]["sheetId"]
            for s in result.get("sheets", [])
        }

    def add_sheet(self, spreadsheet_id, title):
        """Create a sheet (tab) with the given title."""
        request = self.service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": title}}}]},
        )
        return self._execute(request, "add_sheet")

    def delete_row(self, spreadsheet_id, sheet_name, row_number):
        """Delete one 1-based sheet row."""
        sheet_id = self.sheet_titles(spreadsheet_id).get(sheet_name)
        if sheet_id is None:
            raise ConfigurationError(f"Sheet '{sheet_name}' not found")
        request = self.service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"requests": [{
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_number - 1,
                        "endIndex": row_number,
                    }
                }
            }]},
        )
        return self._execute(request, "delete_row")

    # ---- internals --------------------------------------------------------

    def _execute(self, request, operation):
        """Execute a request, retrying transient failures with backoff."""
        last_error = None
        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                delay_ms = self._backoff_ms(attempt, last_error)
                logger.warning(
                    "[--] Sheets %s retry %d/%d after %dms",
                    operation, attempt - 1, self.max_retries - 1, delay_ms,
                )
                self._sleep(delay_ms / 1000.0)
            try:
                return request.execute()
            except HttpError as exc:
                last_error = exc
                status = _http_status(exc)
                if status == 403:
                    logger.error("[ERR] Sheets %s permission denied", operation)
                    raise AuthorizationError(
                        "Permission denied: spreadsheet is not shared with the service account"
                    )
                if status == 404:
                    logger.error("[ERR] Sheets %s not found", operation)
                    raise ConfigurationError("Spreadsheet or sheet not found")
                if status not in (429, 500, 502, 503, 504):
                    raise ExternalAPIError(
                        f"Sheets API returned HTTP {status}", status_code=status
                    )
            except OSError as exc:
                # socket timeouts and connection resets
                last_error = exc
                if str(exc) and not is_retryable_error(str(exc)):
                    raise ExternalAPIError(f"Sheets API call failed: {exc}")

        status = _http_status(last_error) if isinstance(last_error, HttpError) else None
        logger.error(
            "[ERR] Sheets %s failed after %d attempts: %s",
            operation, self.max_retries, last_error,
        )
        if status == 429:
            raise ExternalAPIError("Sheets API rate limit exceeded", status_code=429)
        raise ExternalAPIError(
            f"Sheets API {operation} failed: service unavailable", status_code=status
        )

    def _backoff_ms(self, attempt, last_error):
        base = self.retry_delay_ms
        if isinstance(last_error, HttpError) and _http_status(last_error) == 429:
            base *= 2
        return min(base * (2 ** (attempt - 2)), self.max_retry_delay_ms)


def build_sheets_client(properties):
    """
    Create a SheetsClient from the stored service account credentials.

    Raises:
        ConfigurationError: when no usable credentials are stored.
    """
    info = properties.service_account_info()
    if not info:
        raise ConfigurationError("Service account credentials are not configured")
    return SheetsClient.from_service_account_info(
        info,
        max_retries=current_app.config.get("SHEETS_MAX_RETRIES") or 3,
        retry_delay_ms=current_app.config.get("SHEETS_RETRY_DELAY_MS") or 0,
        max_retry_delay_ms=current_app.config.get("SHEETS_MAX_RETRY_DELAY_MS") or 0,
    )
