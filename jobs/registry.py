"""
Job registry — the process-wide store of dispatch job state.

One JobRegistry is created per application (see api/main.py) and handed to
whoever needs it; nothing imports a global instance. State is in memory only:
a restart loses every job, which is an accepted trade-off.

Who writes what:
- create()          → the dispatch endpoint, before launching the background task
- update/complete() → only the BatchScheduler task that owns the job
- request_cancel()  → the cancel endpoint (flag only; the scheduler reacts)
Everyone else reads copies via get() / list_recent() or subscribes to events.

Because every write for a job comes from its single scheduler task on the
event loop, updates never interleave and need no locking.

"Not found" is a normal answer here: lookups return None instead of raising.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from jobs.events import ProgressEventBus, ProgressCallback
from jobs.record import JobRecord, MUTABLE_FIELDS
from models.enums import JobStatus, TerminalStatus

logger = logging.getLogger(__name__)


class JobRegistry:

    def __init__(
        self,
        bus: Optional[ProgressEventBus] = None,
        history_limit: int = 20,
        recent_events_limit: int = 10,
        failures_preview_limit: int = 5,
    ):
        self._bus = bus or ProgressEventBus()
        self._jobs: dict[str, JobRecord] = {}
        self._order: list[str] = []    # job ids in creation order
        self.history_limit = history_limit
        self.recent_events_limit = recent_events_limit
        self.failures_preview_limit = failures_preview_limit

    @property
    def bus(self) -> ProgressEventBus:
        return self._bus

    def __len__(self) -> int:
        return len(self._jobs)

    def create(
        self,
        total: int,
        *,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
    ) -> JobRecord:
        """Allocate a new queued job and open its event channel."""
        job_id = uuid.uuid4().hex
        record = JobRecord(
            job_id=job_id,
            total=total,
            batch_size=batch_size,
            batch_delay_seconds=batch_delay_seconds,
            created_at=datetime.now(timezone.utc),
        )
        self._jobs[job_id] = record
        self._order.append(job_id)
        self._bus.open(job_id, record.copy())
        logger.debug(f"Job {job_id} created for {total} recipients")
        return record.copy()

    def get(self, job_id: str) -> Optional[JobRecord]:
        record = self._jobs.get(job_id)
        return record.copy() if record else None

    def update(self, job_id: str, **fields) -> Optional[JobRecord]:
        """
        Merge fields into the job's state and publish a progress event.

        Nothing is stamped implicitly — callers set updated_at themselves.
        Terminal jobs are frozen: the call returns their snapshot untouched.

        Raises:
            ValueError: a field name that JobRecord doesn't have.
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown job fields: {sorted(unknown)}")

        record = self._jobs.get(job_id)
        if record is None:
            return None
        if record.is_terminal:
            logger.debug(f"Ignoring update to finished job {job_id}")
            return record.copy()

        for name, value in fields.items():
            setattr(record, name, value)

        snapshot = record.copy()
        self._bus.publish(job_id, snapshot)
        return record.copy()

    def complete(
        self,
        job_id: str,
        status: TerminalStatus,
        error_message: Optional[str] = None,
    ) -> Optional[JobRecord]:
        """Move a job to a terminal status and emit the end-of-stream event."""
        record = self._jobs.get(job_id)
        if record is None:
            return None
        if record.is_terminal:
            return record.copy()

        now = datetime.now(timezone.utc)
        record.status = TerminalStatus(status).as_job_status()
        record.completed_at = now
        record.updated_at = now
        if error_message is not None:
            record.error_message = error_message

        self._bus.close(job_id, record.copy())
        return record.copy()

    def request_cancel(self, job_id: str) -> Optional[JobRecord]:
        """
        Raise the cancellation flag. The scheduler notices at its next checkpoint.

        Idempotent: a second call, or a call on a finished job, changes nothing.
        """
        record = self._jobs.get(job_id)
        if record is None:
            return None
        if record.is_terminal or record.cancel_requested:
            return record.copy()

        record.cancel_requested = True
        record.updated_at = datetime.now(timezone.utc)
        self._bus.publish(job_id, record.copy())
        logger.info(f"Cancellation requested for job {job_id}")
        return record.copy()

    def is_cancel_requested(self, job_id: str) -> bool:
        record = self._jobs.get(job_id)
        return bool(record and record.cancel_requested)

    def list_recent(self) -> list[JobRecord]:
        """
        The last `history_limit` jobs in creation order, with embedded lists
        trimmed (newest recent events, oldest failures).
        """
        ids = self._order[-self.history_limit:] if self.history_limit > 0 else []
        return [
            self._jobs[job_id].copy(
                max_recent=self.recent_events_limit,
                max_failures=self.failures_preview_limit,
            )
            for job_id in ids
        ]

    def active_count(self) -> int:
        return sum(1 for record in self._jobs.values() if not record.is_terminal)

    def subscribe(
        self,
        job_id: str,
        on_progress: ProgressCallback,
        on_complete: ProgressCallback,
    ) -> Optional[Callable[[], None]]:
        return self._bus.subscribe(job_id, on_progress, on_complete)
