"""
Pydantic schemas for the /send endpoints.

These are NOT the in-memory job records — they define the HTTP contract:
- JobProgressResponse: full snapshot (poll endpoint and every SSE event)
- JobHistoryEntry / JobHistoryResponse: trimmed view for GET /send/history
- DispatchStarted: what POST /send/ returns immediately
- CancelResponse: result of POST /send/{job_id}/cancel
- RecipientIn / RecipientListDispatch: JSON list source for POST /send/recipients

from_attributes=True lets Pydantic read straight from the JobRecord
dataclasses, the same way it reads ORM objects elsewhere in the API.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from models.enums import JobStatus, RecipientStatus


class RecentEventResponse(BaseModel):
    timestamp: datetime
    client_name: str
    client_email: str
    status: RecipientStatus
    error: Optional[str] = None

    model_config = {"from_attributes": True}


class FailureResponse(BaseModel):
    client_name: str
    client_email: str
    error: str

    model_config = {"from_attributes": True}


class JobProgressResponse(BaseModel):
    job_id: str
    status: JobStatus
    total: int
    processed: int
    sent: int
    errors: int
    last_to: Optional[str] = None
    last_client_name: Optional[str] = None
    last_status: Optional[str] = None
    error_message: Optional[str] = None
    failures: list[FailureResponse] = []
    recent_events: list[RecentEventResponse] = []
    batch_size: Optional[int] = None
    batch_delay_seconds: Optional[float] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_remaining_seconds: Optional[float] = None
    estimated_completion_at: Optional[datetime] = None
    cancel_requested: bool = False
    result_ready: bool = False

    model_config = {"from_attributes": True}


class JobHistoryEntry(BaseModel):
    """Essential fields only — history is for operator visibility, not detail."""

    job_id: str
    status: JobStatus
    total: int
    processed: int
    sent: int
    errors: int
    started_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    batch_size: Optional[int] = None
    batch_delay_seconds: Optional[float] = None
    last_to: Optional[str] = None
    last_client_name: Optional[str] = None
    failures: list[FailureResponse] = []
    recent_events: list[RecentEventResponse] = []

    model_config = {"from_attributes": True}


class JobHistoryResponse(BaseModel):
    jobs: list[JobHistoryEntry]


class DispatchStarted(BaseModel):
    job_id: str
    total: int
    status: JobStatus = JobStatus.QUEUED


class CancelResponse(BaseModel):
    ok: bool = True
    job_id: str
    status: JobStatus
    cancel_requested: bool


class RecipientIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    cc: list[EmailStr] = []
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None


class RecipientListDispatch(BaseModel):
    """Request body for POST /send/recipients."""

    recipients: list[RecipientIn] = Field(..., min_length=1)
    sender: EmailStr
    sender_name: Optional[str] = None
    subject: str = Field(..., min_length=1, max_length=998)
    body: str = Field(..., min_length=1)
    attachment_base64: Optional[str] = None
    attachment_filename: str = "attachment.pdf"
    batch_size: Optional[int] = Field(default=None, ge=1, le=1000)
    batch_delay_seconds: Optional[float] = Field(default=None, ge=0)
    dry_run: bool = False
