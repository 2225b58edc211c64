"""
backend/nailbook/services/google_sheets.py

Google Sheets integration: reads intake-form responses.

Handles:
- Service-account credentials from settings
- Fetching the response range
- Turning sheet rows into FormRecord objects for the reconciler
- One-call sheet sync for the HTTP and cron triggers
"""

import logging
from typing import Optional

from google.oauth2.service_account import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..config import Settings, settings as default_settings
from .bookings.reconciler import FormRecord, SyncReport, sync_form_records

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets.readonly"]

# columns added by Forms/Sheets, never customer answers
SYSTEM_COLUMNS = ("timestamp", "booking id (autofill)", "booking id")


class SheetsNotConfigured(RuntimeError):
    pass


def _build_service(s: Settings):
    if not (s.google_service_account_email and s.google_service_account_private_key):
        raise SheetsNotConfigured("Google service account is not configured")
    credentials = Credentials.from_service_account_info(
        {
            "type": "service_account",
            "client_email": s.google_service_account_email,
            "private_key": s.google_service_account_private_key.replace("\\n", "\n"),
            "token_uri": "https://oauth2.googleapis.com/token",
        },
        scopes=SCOPES,
    )
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def fetch_sheet_rows(
    range_a1: Optional[str] = None,
    sheet_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> list[list[str]]:
    """All rows of the response range, header row first."""
    s = settings or default_settings
    sheet_id = sheet_id or s.google_sheets_id
    if not sheet_id:
        raise SheetsNotConfigured("GOOGLE_SHEETS_ID is not set")
    range_a1 = range_a1 or s.google_sheets_range

    service = _build_service(s)
    try:
        response = (
            service.spreadsheets()
            .values()
            .get(spreadsheetId=sheet_id, range=range_a1)
            .execute()
        )
    except HttpError as e:
        logger.error(f"Failed to read sheet {sheet_id} {range_a1}: {e}")
        raise
    rows = response.get("values", [])
    logger.info(f"Fetched {len(rows)} rows from {range_a1}")
    return rows


def rows_to_form_records(rows: list[list[str]], booking_id_column: str = "bookingId") -> list[FormRecord]:
    """
    Convert raw rows (header first) into FormRecords.

    The row reference is the 1-based sheet row number, so a resubmitted
    sync of the same sheet maps to the same references.
    """
    if not rows:
        return []
    header = [str(h).strip() for h in rows[0]]
    wanted = booking_id_column.strip().lower()
    try:
        code_idx = next(i for i, h in enumerate(header) if h.lower() == wanted)
    except StopIteration:
        code_idx = next(
            (i for i, h in enumerate(header) if h.lower() in ("booking id", "booking id (autofill)")),
            None,
        )
    if code_idx is None:
        logger.warning(f"Booking id column {booking_id_column!r} not in sheet header")
        return []

    drop = set(SYSTEM_COLUMNS) | {wanted}
    records = []
    for index, row in enumerate(rows[1:]):
        code = row[code_idx].strip() if code_idx < len(row) else ""
        if not code:
            continue
        fields, order = {}, []
        for col, key in enumerate(header):
            if not key or key.lower() in drop:
                continue
            fields[key] = row[col] if col < len(row) else ""
            order.append(key)
        records.append(FormRecord(
            booking_code=code,
            fields=fields,
            field_order=order,
            row_reference=str(index + 2),
        ))
    return records


def sync_sheet_responses(db, events=None, settings: Optional[Settings] = None) -> SyncReport:
    """Fetch the response sheet and reconcile every row against its booking."""
    s = settings or default_settings
    rows = fetch_sheet_rows(settings=s)
    records = rows_to_form_records(rows, s.google_sheets_booking_id_column)
    report = sync_form_records(db, records, settings=s, events=events)
    logger.info(
        f"Sheet sync: rows={len(records)} processed={report.processed} "
        f"skipped={report.skipped} failed={len(report.failed)}"
    )
    return report
