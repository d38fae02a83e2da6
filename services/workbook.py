"""
Spreadsheet recipient source.

Reads the first worksheet of an uploaded .xlsx file and turns each usable
row into a RecipientUnit. The parsed workbook is kept (ParsedWorkbook) so the
job can write per-row outcomes back into the same file when it finishes.

Expected header row (row 1, case-insensitive):

    Client | ClientEmailId | SisRepresentativeName | SisRepresentativeEmail | ...

"Name" / "Email" are accepted as aliases for the first two. Result columns
EmailStatus, EmailTimestamp and EmailError are appended to the header when
they aren't there yet.

Rows are skipped when:
- name or email is blank
- EmailStatus already says "accepted", or the legacy EmailSent column says
  yes/y — so re-uploading a partially sent file only sends the remainder
"""

import io
import logging
from dataclasses import dataclass
from typing import Optional
from zipfile import BadZipFile

from openpyxl import load_workbook, Workbook
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from jobs.record import RecipientUnit

logger = logging.getLogger(__name__)

NAME_COLUMNS = ("client", "name")
EMAIL_COLUMNS = ("clientemailid", "email")
REP_NAME_COLUMN = "sisrepresentativename"
REP_EMAIL_COLUMN = "sisrepresentativeemail"
COMPANY_COLUMNS = ("companyname", "company")
LEGACY_SENT_COLUMN = "emailsent"

STATUS_COLUMN = "EmailStatus"
TIMESTAMP_COLUMN = "EmailTimestamp"
ERROR_COLUMN = "EmailError"


class WorkbookError(Exception):
    """The upload isn't a readable workbook or lacks the required columns."""


@dataclass
class ParsedWorkbook:
    workbook: Workbook
    worksheet: Worksheet
    recipients: list[RecipientUnit]
    status_col: int        # 1-based column indexes, as openpyxl uses them
    timestamp_col: int
    error_col: int
    skipped_rows: int = 0


def _cell_text(value) -> str:
    return "" if value is None else str(value).strip()


def _find_column(header: list[str], *candidates: str) -> Optional[int]:
    lowered = [h.lower() for h in header]
    for candidate in candidates:
        if candidate in lowered:
            return lowered.index(candidate) + 1
    return None


def parse_recipient_workbook(content: bytes) -> ParsedWorkbook:
    """
    Parse an uploaded workbook into recipients, keeping it open for writeback.

    Raises:
        WorkbookError: unreadable file or missing name/email columns.
    """
    try:
        workbook = load_workbook(io.BytesIO(content))
    except (InvalidFileException, BadZipFile, KeyError, ValueError, OSError) as e:
        raise WorkbookError(f"Could not read workbook: {e}") from e

    sheet = workbook.worksheets[0]
    header = [_cell_text(cell.value) for cell in sheet[1]]

    name_col = _find_column(header, *NAME_COLUMNS)
    email_col = _find_column(header, *EMAIL_COLUMNS)
    if name_col is None or email_col is None:
        raise WorkbookError(
            "Workbook must have a 'Client' (or 'Name') and a 'ClientEmailId' (or 'Email') column"
        )
    rep_name_col = _find_column(header, REP_NAME_COLUMN)
    rep_email_col = _find_column(header, REP_EMAIL_COLUMN)
    company_col = _find_column(header, *COMPANY_COLUMNS)
    legacy_sent_col = _find_column(header, LEGACY_SENT_COLUMN)

    def ensure_column(title: str) -> int:
        existing = _find_column(header, title.lower())
        if existing is not None:
            return existing
        header.append(title)
        col = len(header)
        sheet.cell(row=1, column=col, value=title)
        return col

    status_col = ensure_column(STATUS_COLUMN)
    timestamp_col = ensure_column(TIMESTAMP_COLUMN)
    error_col = ensure_column(ERROR_COLUMN)

    def value_at(row: int, col: Optional[int]) -> str:
        return _cell_text(sheet.cell(row=row, column=col).value) if col else ""

    recipients: list[RecipientUnit] = []
    skipped = 0
    for row in range(2, sheet.max_row + 1):
        name = value_at(row, name_col)
        email = value_at(row, email_col)
        if not name or not email:
            skipped += 1
            continue

        already_sent = (
            value_at(row, status_col).lower() == "accepted"
            or value_at(row, legacy_sent_col).lower() in ("yes", "y")
        )
        if already_sent:
            skipped += 1
            continue

        rep_email = value_at(row, rep_email_col)
        metadata = {
            "clientName": name,
            "firstName": name.split()[0],
            "companyName": value_at(row, company_col),
            "representativeName": value_at(row, rep_name_col),
        }
        recipients.append(RecipientUnit(
            name=name,
            email=email,
            cc=(rep_email,) if rep_email else (),
            metadata=metadata,
            source_ref=row,
        ))

    logger.info(f"Parsed workbook: {len(recipients)} recipients, {skipped} rows skipped")
    return ParsedWorkbook(
        workbook=workbook,
        worksheet=sheet,
        recipients=recipients,
        status_col=status_col,
        timestamp_col=timestamp_col,
        error_col=error_col,
        skipped_rows=skipped,
    )
