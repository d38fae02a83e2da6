"""
Keeps a Campaign row in step with the dispatch job sending it.

The listener runs inside the job's background task, long after the request
that started it has returned, so it opens a fresh session from the session
factory for every write instead of reusing the request's session.

    on_recipient → sent_emails / failed_emails mirrored from the job;
                   accepted sends get an email_tracking row
    on_finished  → campaign status follows the job's terminal status

Tracking rows are telemetry: if creating one fails, the send still counts as
accepted (the scheduler logs listener errors and moves on).
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs.record import JobRecord, RecipientOutcome, RecipientUnit
from models.campaign import Campaign, EmailTracking
from models.enums import CampaignStatus, JobStatus, RecipientStatus
from scheduler.listener import DispatchListener

logger = logging.getLogger(__name__)

# Job terminal status → campaign status
_FINAL_STATUS = {
    JobStatus.COMPLETED: CampaignStatus.COMPLETED,
    JobStatus.FAILED: CampaignStatus.FAILED,
    JobStatus.CANCELLED: CampaignStatus.CANCELLED,
}


class CampaignProgressListener(DispatchListener):

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], campaign_id: uuid.UUID):
        self._session_factory = session_factory
        self._campaign_id = campaign_id

    async def on_recipient(self, unit: RecipientUnit, outcome: RecipientOutcome, record: JobRecord) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(Campaign)
                .where(Campaign.id == self._campaign_id)
                .values(
                    sent_emails=record.sent,
                    failed_emails=record.errors,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            await session.commit()

        if outcome.status is RecipientStatus.ACCEPTED:
            await self._create_tracking_record(unit.email)

    async def on_finished(self, record: JobRecord) -> None:
        status = _FINAL_STATUS.get(record.status)
        if status is None:
            return
        now = datetime.now(timezone.utc)
        values = {
            "status": status.value,
            "sent_emails": record.sent,
            "failed_emails": record.errors,
            "updated_at": now,
            "completed_at": now,
        }

        async with self._session_factory() as session:
            await session.execute(
                update(Campaign).where(Campaign.id == self._campaign_id).values(**values)
            )
            await session.commit()
        logger.info(f"Campaign {self._campaign_id} finished as {status.value}")

    async def _create_tracking_record(self, email: str) -> None:
        async with self._session_factory() as session:
            session.add(EmailTracking(campaign_id=self._campaign_id, prospect_email=email))
            await session.commit()


async def refresh_campaign_metrics(session: AsyncSession, campaign_id: uuid.UUID) -> None:
    """Recompute opened/clicked counters from tracking rows (caller commits)."""
    query = select(
        func.count(EmailTracking.id).filter(EmailTracking.email_opened.is_(True)).label("opened"),
        func.count(EmailTracking.id).filter(EmailTracking.email_clicked.is_(True)).label("clicked"),
    ).where(EmailTracking.campaign_id == campaign_id)
    row = (await session.execute(query)).one()
    await session.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id)
        .values(opened_emails=row.opened, clicked_emails=row.clicked)
    )
