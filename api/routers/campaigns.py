"""
Campaign endpoints.

POST   /campaigns/                     → Create a draft campaign for a segment
GET    /campaigns/                     → List campaigns with filtering + pagination
POST   /campaigns/test                 → Send one test email right now
GET    /campaigns/{campaign_id}        → Get a single campaign
PUT    /campaigns/{campaign_id}        → Edit a draft
DELETE /campaigns/{campaign_id}        → Delete a campaign that isn't running
POST   /campaigns/{campaign_id}/send   → Start sending to the segment

Sending goes through the same Dispatcher as spreadsheet uploads. The
campaign row only mirrors the job: a CampaignProgressListener copies the
counters and the terminal status back as the job runs, and last_job_id lets
a client attach to /send/{job_id}/stream.
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import aiosmtplib
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.dependencies import get_db, get_dispatcher, get_mail_transport, get_session_factory, get_settings
from api.routers.send import SMTP_NOT_CONFIGURED
from api.schemas.campaign import (
    CampaignCreate,
    CampaignListResponse,
    CampaignResponse,
    CampaignSendStarted,
    CampaignUpdate,
    TestEmailRequest,
    TestEmailResponse,
)
from config.settings import Settings
from jobs.record import RecipientUnit
from jobs.results import ReportMaterializer
from models.campaign import Campaign
from models.enums import CampaignStatus
from models.prospect import Prospect
from models.segment import Segment
from services.campaign_progress import CampaignProgressListener
from services.dispatch import Dispatcher, make_renderer
from services.mailer import MailTransport, build_message, format_sender
from services.templating import html_to_text, render_html
from worker.senders import MailSender

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


def prospect_to_recipient(prospect: Prospect) -> RecipientUnit:
    return RecipientUnit(
        name=prospect.full_name,
        email=prospect.client_email,
        metadata={
            "clientName": prospect.full_name,
            "firstName": prospect.first_name,
            "lastName": prospect.last_name or "",
            "companyName": prospect.company_name or "",
        },
    )


async def _get_campaign_or_404(db: AsyncSession, campaign_id: UUID) -> Campaign:
    campaign = await db.get(Campaign, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


async def _get_segment_or_404(db: AsyncSession, segment_id: UUID) -> Segment:
    segment = await db.get(Segment, segment_id)
    if not segment:
        raise HTTPException(status_code=404, detail="Segment not found")
    return segment


@router.post("/", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    campaign_in: CampaignCreate,
    db: AsyncSession = Depends(get_db),
) -> CampaignResponse:
    segment = await _get_segment_or_404(db, campaign_in.segment_id)
    campaign = Campaign(
        name=campaign_in.name,
        sender_name=campaign_in.sender_name,
        sender_email=str(campaign_in.sender_email),
        subject=campaign_in.subject,
        pitch=campaign_in.pitch,
        segment_id=segment.id,
        segment_name=segment.name,
        total_prospects=segment.prospect_count,
    )
    db.add(campaign)
    await db.commit()
    await db.refresh(campaign)
    return CampaignResponse.model_validate(campaign)


@router.get("/", response_model=CampaignListResponse)
async def list_campaigns(
    status: Optional[CampaignStatus] = Query(None, description="Filter by campaign status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Campaigns per page"),
    db: AsyncSession = Depends(get_db),
) -> CampaignListResponse:
    conditions = []
    if status:
        conditions.append(Campaign.status == status.value)

    count_query = select(func.count(Campaign.id)).where(*conditions)
    total = (await db.execute(count_query)).scalar() or 0

    offset = (page - 1) * page_size
    query = (
        select(Campaign)
        .where(*conditions)
        .order_by(Campaign.created_at.desc())
        .offset(offset)
        .limit(page_size)
    )
    result = await db.execute(query)
    return CampaignListResponse(
        campaigns=[CampaignResponse.model_validate(c) for c in result.scalars().all()],
        total=total,
    )


@router.post("/test", response_model=TestEmailResponse)
async def send_test_email(
    request: TestEmailRequest,
    config: Settings = Depends(get_settings),
    transport: MailTransport = Depends(get_mail_transport),
) -> TestEmailResponse:
    """
    Render the pitch for one address and send it synchronously.

    No job is created. Transport failures come back as 502 so the caller can
    tell a bad SMTP setup from a bad request.
    """
    if not config.smtp_configured:
        raise HTTPException(status_code=500, detail=SMTP_NOT_CONFIGURED)

    variables = {
        "firstName": request.first_name or "",
        "lastName": request.last_name or "",
        "companyName": request.company_name or "",
        "clientName": " ".join(p for p in (request.first_name, request.last_name) if p),
    }
    html = render_html(request.pitch, variables)
    message = build_message(
        sender=format_sender(str(request.sender_email), request.sender_name),
        to=str(request.to),
        subject=f"[TEST] {request.subject}",
        html=html,
        text=html_to_text(html),
    )
    try:
        await transport.send(message)
    except (aiosmtplib.SMTPException, OSError) as e:
        logger.warning(f"Test email to {request.to} failed: {e}")
        raise HTTPException(status_code=502, detail=f"Failed to send test email: {e}")
    return TestEmailResponse(to=str(request.to))


@router.get("/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> CampaignResponse:
    return CampaignResponse.model_validate(await _get_campaign_or_404(db, campaign_id))


@router.put("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: UUID,
    campaign_in: CampaignUpdate,
    db: AsyncSession = Depends(get_db),
) -> CampaignResponse:
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status != CampaignStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail="Only draft campaigns can be edited")

    changes = campaign_in.model_dump(exclude_unset=True, exclude_none=True)
    if "segment_id" in changes:
        segment = await _get_segment_or_404(db, changes["segment_id"])
        campaign.segment_name = segment.name
        campaign.total_prospects = segment.prospect_count
    if "sender_email" in changes:
        changes["sender_email"] = str(changes["sender_email"])
    for name, value in changes.items():
        setattr(campaign, name, value)

    await db.commit()
    await db.refresh(campaign)
    return CampaignResponse.model_validate(campaign)


@router.delete("/{campaign_id}", status_code=204)
async def delete_campaign(
    campaign_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status == CampaignStatus.RUNNING.value:
        raise HTTPException(status_code=400, detail="Cannot delete a running campaign")
    await db.delete(campaign)
    await db.commit()


@router.post("/{campaign_id}/send", response_model=CampaignSendStarted, status_code=201)
async def send_campaign(
    campaign_id: UUID,
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
    transport: MailTransport = Depends(get_mail_transport),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CampaignSendStarted:
    """
    Start the campaign's dispatch job.

    The campaign is flipped to `running` and committed BEFORE the job is
    launched, so the listener's later writes (counters, terminal status)
    can never be overwritten by this request.
    """
    campaign = await _get_campaign_or_404(db, campaign_id)
    if campaign.status != CampaignStatus.DRAFT.value:
        raise HTTPException(status_code=400, detail=f"Campaign is {campaign.status}, not draft")

    result = await db.execute(
        select(Prospect)
        .where(Prospect.segment_id == campaign.segment_id)
        .order_by(Prospect.created_at)
    )
    prospects = result.scalars().all()
    if not prospects:
        raise HTTPException(status_code=400, detail="Segment has no prospects")

    if not config.smtp_configured:
        raise HTTPException(status_code=500, detail=SMTP_NOT_CONFIGURED)

    recipients = [prospect_to_recipient(p) for p in prospects]

    campaign.status = CampaignStatus.RUNNING.value
    campaign.total_prospects = len(recipients)
    campaign.sent_emails = 0
    campaign.failed_emails = 0
    campaign.started_at = datetime.now(timezone.utc)
    await db.commit()

    sender = MailSender(
        transport,
        sender=format_sender(campaign.sender_email, campaign.sender_name),
        subject=campaign.subject,
        render_html=make_renderer(
            campaign.pitch,
            tracking_base_url=config.TRACKING_BASE_URL,
            tracking_secret=config.TRACKING_SECRET,
            campaign_id=campaign.id,
        ),
        default_cc=config.DEFAULT_CC_ADDRESSES,
    )
    record = dispatcher.start(
        recipients,
        sender,
        batch_size=config.batch_size,
        batch_delay_seconds=config.batch_delay_seconds,
        materializer=ReportMaterializer(config.RESULT_TIMEZONE),
        listener=CampaignProgressListener(session_factory, campaign.id),
    )

    campaign.last_job_id = record.job_id
    await db.commit()
    logger.info(f"Campaign {campaign.id} sending to {len(recipients)} prospects as job {record.job_id}")
    return CampaignSendStarted(campaign_id=campaign.id, job_id=record.job_id, total=record.total)
