"""
Result materialization — the downloadable file a finished job leaves behind.

When a job completes or is cancelled, the scheduler hands its materializer
the ordered list of (recipient, outcome) pairs and stores the artifact it
returns in the ResultStore. The download endpoint pulls from the store.

Two materializers (Strategy pattern, like the senders in worker/senders.py):

    WorkbookMaterializer → the uploaded spreadsheet, annotated in place
                           (EmailStatus / EmailTimestamp / EmailError per row)
    ReportMaterializer   → a fresh spreadsheet for list sources (campaigns,
                           JSON recipient lists) with one row per recipient

Artifacts are write-once per job and kept for the life of the process.
"""

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Sequence
from zoneinfo import ZoneInfo

from openpyxl import Workbook

from jobs.record import RecipientOutcome, RecipientUnit
from models.enums import RecipientStatus
from services.workbook import ParsedWorkbook, STATUS_COLUMN, TIMESTAMP_COLUMN, ERROR_COLUMN

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Cell text written for each outcome
STATUS_LABELS = {
    RecipientStatus.ACCEPTED: "Accepted",
    RecipientStatus.ERROR: "Error",
    RecipientStatus.CANCELLED: "Cancelled",
}

OutcomeList = Sequence[tuple[RecipientUnit, RecipientOutcome]]


class ResultAlreadyStoredError(Exception):
    """A job tried to store a second artifact."""


@dataclass(frozen=True)
class ResultArtifact:
    content: bytes
    filename: str
    media_type: str = XLSX_MEDIA_TYPE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ResultStore:
    """Job id → artifact. In memory, never evicted."""

    def __init__(self):
        self._artifacts: dict[str, ResultArtifact] = {}

    def put(self, job_id: str, artifact: ResultArtifact) -> None:
        if job_id in self._artifacts:
            raise ResultAlreadyStoredError(f"Result for job {job_id} already stored")
        self._artifacts[job_id] = artifact
        logger.info(f"Stored result for job {job_id} ({len(artifact.content)} bytes)")

    def get(self, job_id: str) -> Optional[ResultArtifact]:
        return self._artifacts.get(job_id)

    def has(self, job_id: str) -> bool:
        return job_id in self._artifacts


def format_timestamp(moment: datetime, tz: ZoneInfo) -> str:
    """'2025-03-01 14:05:09' in the configured zone."""
    return moment.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


class AbstractResultMaterializer(ABC):

    def __init__(self, tz_name: str = "UTC"):
        self._tz = ZoneInfo(tz_name)

    @abstractmethod
    def materialize(self, job_id: str, outcomes: OutcomeList) -> ResultArtifact:
        """
        Build the artifact for a finished job.

        Args:
            job_id: the job being finalized (used for the filename)
            outcomes: every recipient that was attempted or cancelled, in
                      processing order; recipients never reached are absent

        Returns:
            ResultArtifact ready to be stored.
        """
        ...

    @staticmethod
    def _save(workbook: Workbook) -> bytes:
        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()


class WorkbookMaterializer(AbstractResultMaterializer):
    """Writes outcomes back into the uploaded workbook at each recipient's row."""

    def __init__(self, parsed: ParsedWorkbook, tz_name: str = "UTC"):
        super().__init__(tz_name)
        self._parsed = parsed

    def materialize(self, job_id: str, outcomes: OutcomeList) -> ResultArtifact:
        sheet = self._parsed.worksheet
        for unit, outcome in outcomes:
            if unit.source_ref is None:
                continue
            row = unit.source_ref
            sheet.cell(row=row, column=self._parsed.status_col, value=STATUS_LABELS[outcome.status])
            sheet.cell(
                row=row,
                column=self._parsed.timestamp_col,
                value=format_timestamp(outcome.timestamp, self._tz),
            )
            # Cancelled rows keep whatever error text a previous run left
            if outcome.status is RecipientStatus.ACCEPTED:
                sheet.cell(row=row, column=self._parsed.error_col, value="")
            elif outcome.status is RecipientStatus.ERROR:
                sheet.cell(row=row, column=self._parsed.error_col, value=outcome.error or "")

        return ResultArtifact(
            content=self._save(self._parsed.workbook),
            filename=f"updated-{job_id}.xlsx",
        )


class ReportMaterializer(AbstractResultMaterializer):
    """Builds a standalone outcome sheet for sources that have no spreadsheet."""

    HEADER = ["Name", "Email", STATUS_COLUMN, TIMESTAMP_COLUMN, ERROR_COLUMN]

    def materialize(self, job_id: str, outcomes: OutcomeList) -> ResultArtifact:
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Results"
        sheet.append(self.HEADER)
        for unit, outcome in outcomes:
            sheet.append([
                unit.name,
                unit.email,
                STATUS_LABELS[outcome.status],
                format_timestamp(outcome.timestamp, self._tz),
                outcome.error or "",
            ])

        return ResultArtifact(
            content=self._save(workbook),
            filename=f"report-{job_id}.xlsx",
        )
