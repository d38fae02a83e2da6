"""
Pydantic schemas for the /campaigns endpoints.

CampaignCreate / CampaignUpdate: what the client sends
CampaignResponse: what the API returns (read from the ORM object)
CampaignSendStarted: POST /campaigns/{id}/send → job id to attach to
TestEmailRequest: POST /campaigns/test → one message, sent synchronously
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from models.enums import CampaignStatus


class CampaignCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    sender_name: str = Field(..., min_length=1, max_length=255)
    sender_email: EmailStr
    subject: str = Field(..., min_length=1, max_length=998)
    pitch: str = Field(..., min_length=1)
    segment_id: UUID


class CampaignUpdate(BaseModel):
    """Partial update; only drafts can be edited."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    sender_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    sender_email: Optional[EmailStr] = None
    subject: Optional[str] = Field(default=None, min_length=1, max_length=998)
    pitch: Optional[str] = Field(default=None, min_length=1)
    segment_id: Optional[UUID] = None


class CampaignResponse(BaseModel):
    id: UUID
    name: str
    sender_name: str
    sender_email: str
    subject: str
    pitch: str
    segment_id: UUID
    segment_name: str
    status: CampaignStatus
    total_prospects: int
    sent_emails: int
    failed_emails: int
    opened_emails: int
    clicked_emails: int
    last_job_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CampaignListResponse(BaseModel):
    campaigns: list[CampaignResponse]
    total: int


class CampaignSendStarted(BaseModel):
    ok: bool = True
    campaign_id: UUID
    job_id: str
    total: int


class TestEmailRequest(BaseModel):
    to: EmailStr
    sender_name: str = Field(..., min_length=1)
    sender_email: EmailStr
    subject: str = Field(..., min_length=1, max_length=998)
    pitch: str = Field(..., min_length=1)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None


class TestEmailResponse(BaseModel):
    ok: bool = True
    to: str
