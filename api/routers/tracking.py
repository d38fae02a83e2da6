"""
Open / click tracking.

GET /track/{campaign_id}?email=&action=open           → 1x1 transparent GIF
GET /track/{campaign_id}?email=&action=click&redirect=&sig= → 307 to the real link

Links in campaign emails are rewritten to point here (services/templating.py).
A hit marks the matching email_tracking row and recomputes the campaign's
opened/clicked counters. A click also counts as an open: a client that
blocks images still followed a link, so the mail was read.

Unknown campaigns or emails still get the pixel / redirect; tracking must
never break what the recipient sees. Redirects are only followed when `sig`
matches the HMAC add_tracking() put on the link, so the tracker can only
send people where a campaign email already pointed them.
"""

import base64
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_settings
from config.settings import Settings
from models.campaign import EmailTracking
from models.enums import TrackingAction
from services.campaign_progress import refresh_campaign_metrics
from services.templating import verify_redirect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/track", tags=["tracking"])

TRANSPARENT_GIF = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")


@router.get("/{campaign_id}")
async def track(
    campaign_id: UUID,
    email: str = Query(..., min_length=1),
    action: TrackingAction = Query(TrackingAction.OPEN),
    redirect: Optional[str] = Query(None),
    sig: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> Response:
    if action is TrackingAction.CLICK:
        if not redirect:
            raise HTTPException(status_code=400, detail="Click tracking requires a redirect URL")
        if not sig or not verify_redirect(config.TRACKING_SECRET, str(campaign_id), email, redirect, sig):
            logger.warning(f"Rejected unsigned redirect for campaign {campaign_id}")
            raise HTTPException(status_code=400, detail="Invalid tracking signature")

    result = await db.execute(
        select(EmailTracking).where(
            EmailTracking.campaign_id == campaign_id,
            EmailTracking.prospect_email == email,
        )
    )
    record = result.scalars().first()
    if record is None:
        logger.debug(f"No tracking record for {email} in campaign {campaign_id}")
    else:
        now = datetime.now(timezone.utc)
        if not record.email_opened:
            record.email_opened = True
            record.opened_at = now
        if action is TrackingAction.CLICK and not record.email_clicked:
            record.email_clicked = True
            record.clicked_at = now
        await db.flush()
        await refresh_campaign_metrics(db, campaign_id)
        await db.commit()

    if action is TrackingAction.CLICK:
        return RedirectResponse(url=redirect, status_code=307)
    return Response(
        content=TRANSPARENT_GIF,
        media_type="image/gif",
        headers={"Cache-Control": "no-store, no-cache, must-revalidate"},
    )
