"""
Campaign and EmailTracking ORM models.

A campaign is a composed message (subject + pitch template) aimed at one
segment. Sending it starts an in-memory dispatch job; the job id is kept in
last_job_id so the UI can reattach to the live progress stream.

Counters:
- sent_emails / failed_emails: mirrored from the dispatch job while it runs
- opened_emails / clicked_emails: recomputed from email_tracking rows
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Text, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utcnow
from models.enums import CampaignStatus


class Campaign(Base):
    __tablename__ = "campaigns"

    # ── Identity ────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Message ─────────────────────────────────────────────────
    sender_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sender_email: Mapped[str] = mapped_column(String(320), nullable=False)
    subject: Mapped[str] = mapped_column(String(998), nullable=False)
    pitch: Mapped[str] = mapped_column(Text, nullable=False)

    # ── Audience ────────────────────────────────────────────────
    segment_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    segment_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Progress ────────────────────────────────────────────────
    status: Mapped[str] = mapped_column(
        String(20), default=CampaignStatus.DRAFT.value, nullable=False, index=True
    )
    total_prospects: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    sent_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    opened_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicked_emails: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ── Lifecycle timestamps ────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Campaign {self.id} {self.name!r} {self.status}>"


class EmailTracking(Base):
    """One row per (campaign, prospect email) that was accepted by the transport."""

    __tablename__ = "email_tracking"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False, index=True
    )
    prospect_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)

    email_sent: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_opened: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_clicked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
