"""
Prospect endpoints.

GET    /prospects/?segment_id=   → List prospects, optionally for one segment
POST   /prospects/               → Bulk-create prospects in a segment
DELETE /prospects/{prospect_id}  → Remove one prospect

Segment.prospect_count is recomputed after every write so it never drifts
from the actual number of rows.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from api.schemas.segment import ProspectBulkCreate, ProspectBulkResult, ProspectResponse
from models.prospect import Prospect
from models.segment import Segment

router = APIRouter(prefix="/prospects", tags=["prospects"])


async def refresh_prospect_count(db: AsyncSession, segment_id: UUID) -> int:
    """Recount a segment's prospects and store the result (caller commits)."""
    count_query = select(func.count(Prospect.id)).where(Prospect.segment_id == segment_id)
    count = (await db.execute(count_query)).scalar() or 0
    await db.execute(update(Segment).where(Segment.id == segment_id).values(prospect_count=count))
    return count


@router.get("/", response_model=list[ProspectResponse])
async def list_prospects(
    segment_id: Optional[UUID] = Query(None, description="Only prospects in this segment"),
    db: AsyncSession = Depends(get_db),
) -> list[ProspectResponse]:
    query = select(Prospect)
    if segment_id:
        query = query.where(Prospect.segment_id == segment_id)
    result = await db.execute(query.order_by(Prospect.created_at))
    return [ProspectResponse.model_validate(p) for p in result.scalars().all()]


@router.post("/", response_model=ProspectBulkResult, status_code=201)
async def create_prospects(
    bulk: ProspectBulkCreate,
    db: AsyncSession = Depends(get_db),
) -> ProspectBulkResult:
    segment = await db.get(Segment, bulk.segment_id)
    if not segment:
        raise HTTPException(status_code=404, detail="Segment not found")

    db.add_all([
        Prospect(
            first_name=p.first_name,
            last_name=p.last_name,
            client_email=str(p.client_email),
            company_name=p.company_name,
            segment_id=bulk.segment_id,
        )
        for p in bulk.prospects
    ])
    await db.flush()
    count = await refresh_prospect_count(db, bulk.segment_id)
    await db.commit()
    return ProspectBulkResult(
        created=len(bulk.prospects),
        segment_id=bulk.segment_id,
        prospect_count=count,
    )


@router.delete("/{prospect_id}", status_code=204)
async def delete_prospect(
    prospect_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> None:
    prospect = await db.get(Prospect, prospect_id)
    if not prospect:
        raise HTTPException(status_code=404, detail="Prospect not found")

    segment_id = prospect.segment_id
    await db.delete(prospect)
    await db.flush()
    if segment_id:
        await refresh_prospect_count(db, segment_id)
    await db.commit()
