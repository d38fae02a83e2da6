"""
Segment ORM model — a named group of prospects that a campaign targets.

prospect_count is denormalized: it is recomputed after bulk prospect imports
so the campaign form can show segment sizes without a COUNT per row.
"""

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, utcnow


class Segment(Base):
    __tablename__ = "segments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    prospect_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<Segment {self.id} {self.name!r} ({self.prospect_count})>"
