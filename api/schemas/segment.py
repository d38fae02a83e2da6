"""Pydantic schemas for the /segments and /prospects endpoints."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class SegmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""


class SegmentResponse(BaseModel):
    id: UUID
    name: str
    description: str
    prospect_count: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SegmentDeleted(BaseModel):
    ok: bool = True
    deleted_prospects: int


class ProspectIn(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: Optional[str] = None
    client_email: EmailStr
    company_name: Optional[str] = None


class ProspectBulkCreate(BaseModel):
    """Request body for POST /prospects/ — everything lands in one segment."""

    segment_id: UUID
    prospects: list[ProspectIn] = Field(..., min_length=1)


class ProspectResponse(BaseModel):
    id: UUID
    first_name: str
    last_name: Optional[str] = None
    client_email: str
    company_name: Optional[str] = None
    segment_id: Optional[UUID] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProspectBulkResult(BaseModel):
    created: int
    segment_id: UUID
    prospect_count: int
