"""
In-memory data model for dispatch jobs.

These are plain dataclasses, not ORM models: job state is deliberately
ephemeral and lives only as long as the process (see jobs/registry.py).

- RecipientUnit: one addressee, flattened from a spreadsheet row or a prospect
- RecipientOutcome: what happened to one RecipientUnit (accepted/error/cancelled)
- RecentEvent / FailureRecord: entries embedded in a JobRecord
- JobRecord: the full progress snapshot pushed to observers

Every JobRecord handed out by the registry is a copy (see JobRecord.copy),
so API handlers and stream subscribers can never mutate the live state.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from types import MappingProxyType
from typing import Mapping, Optional

from models.enums import JobStatus, RecipientStatus


@dataclass(frozen=True)
class RecipientUnit:
    """
    One addressee plus what the sender and the result writer need.

    metadata holds personalization values keyed by template placeholder
    (e.g. {"firstName": "Asha", "companyName": "Acme"}). source_ref is an
    opaque back-reference into the source document — for spreadsheets it is
    the worksheet row number — and is only read by result materializers.
    """
    name: str
    email: str
    cc: tuple[str, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=dict)
    source_ref: Optional[int] = None

    def __post_init__(self):
        # frozen=True stops attribute assignment; this stops dict mutation too
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))
        object.__setattr__(self, "cc", tuple(self.cc))


@dataclass(frozen=True)
class RecipientOutcome:
    status: RecipientStatus
    timestamp: datetime
    error: Optional[str] = None


@dataclass(frozen=True)
class RecentEvent:
    timestamp: datetime
    client_name: str
    client_email: str
    status: RecipientStatus    # ACCEPTED or ERROR
    error: Optional[str] = None


@dataclass(frozen=True)
class FailureRecord:
    client_name: str
    client_email: str
    error: str


@dataclass
class JobRecord:
    """
    Progress state of one dispatch job.

    Invariants maintained by the scheduler that owns the job:
    - processed == sent + errors after every update
    - processed <= total
    - recent_events holds at most the registry's recent-events limit
    - once status is terminal, nothing changes and completed_at is set
    """

    # ── Identity ────────────────────────────────────────────────
    job_id: str
    status: JobStatus = JobStatus.QUEUED

    # ── Counters ────────────────────────────────────────────────
    total: int = 0
    processed: int = 0
    sent: int = 0
    errors: int = 0

    # ── Last touched recipient ──────────────────────────────────
    last_to: Optional[str] = None
    last_client_name: Optional[str] = None
    last_status: Optional[str] = None          # "sent" | "error"

    # ── Errors ──────────────────────────────────────────────────
    error_message: Optional[str] = None        # loop-level failure only
    failures: list[FailureRecord] = field(default_factory=list)
    recent_events: list[RecentEvent] = field(default_factory=list)

    # ── Batch configuration ─────────────────────────────────────
    batch_size: Optional[int] = None
    batch_delay_seconds: Optional[float] = None

    # ── Timing ──────────────────────────────────────────────────
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_remaining_seconds: Optional[float] = None
    estimated_completion_at: Optional[datetime] = None

    # ── Cancellation ────────────────────────────────────────────
    cancel_requested: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def copy(self, *, max_recent: Optional[int] = None, max_failures: Optional[int] = None) -> "JobRecord":
        """
        Detached snapshot. Lists are copied so the caller can't reach the
        registry's state; the entries themselves are frozen dataclasses.

        max_recent keeps the newest N events, max_failures the oldest N failures.
        """
        recent = list(self.recent_events)
        if max_recent is not None:
            recent = recent[-max_recent:] if max_recent > 0 else []
        failures = list(self.failures)
        if max_failures is not None:
            failures = failures[:max_failures]
        return replace(self, recent_events=recent, failures=failures)


# Field names update() is allowed to touch; job_id is identity and never merged.
MUTABLE_FIELDS = frozenset(f.name for f in fields(JobRecord)) - {"job_id"}
