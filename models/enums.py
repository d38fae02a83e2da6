"""
Shared enumerations used across the entire project.

Using Python enums (inheriting from str) means:
- They serialize to JSON automatically ("running", not "JobStatus.RUNNING")
- They work as SQLAlchemy column values
- They work as FastAPI query parameters
- Typos become immediate errors instead of silent bugs
"""

import enum


class JobStatus(str, enum.Enum):
    QUEUED = "queued"          # job created, background task not started yet
    RUNNING = "running"        # scheduler loop is working through batches
    COMPLETED = "completed"    # every recipient processed (some may have errored)
    FAILED = "failed"          # the loop itself blew up
    CANCELLED = "cancelled"    # operator asked to stop, remaining recipients skipped

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class TerminalStatus(str, enum.Enum):
    """The only statuses JobRegistry.complete() accepts."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    def as_job_status(self) -> JobStatus:
        return JobStatus(self.value)


class RecipientStatus(str, enum.Enum):
    ACCEPTED = "accepted"      # transport accepted the message
    ERROR = "error"            # send raised, recorded as a failure
    CANCELLED = "cancelled"    # never attempted because the job was cancelled


class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TrackingAction(str, enum.Enum):
    OPEN = "open"
    CLICK = "click"
