"""
Segment endpoints.

POST   /segments/               → Create an (empty) segment
GET    /segments/               → List segments, newest first
GET    /segments/{segment_id}   → Get one segment
DELETE /segments/{segment_id}   → Delete a segment and its prospects
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db
from api.schemas.segment import SegmentCreate, SegmentDeleted, SegmentResponse
from models.prospect import Prospect
from models.segment import Segment

router = APIRouter(prefix="/segments", tags=["segments"])


@router.post("/", response_model=SegmentResponse, status_code=201)
async def create_segment(
    segment_in: SegmentCreate,
    db: AsyncSession = Depends(get_db),
) -> SegmentResponse:
    segment = Segment(name=segment_in.name, description=segment_in.description)
    db.add(segment)
    await db.commit()
    await db.refresh(segment)
    return SegmentResponse.model_validate(segment)


@router.get("/", response_model=list[SegmentResponse])
async def list_segments(db: AsyncSession = Depends(get_db)) -> list[SegmentResponse]:
    result = await db.execute(select(Segment).order_by(Segment.created_at.desc()))
    return [SegmentResponse.model_validate(s) for s in result.scalars().all()]


@router.get("/{segment_id}", response_model=SegmentResponse)
async def get_segment(
    segment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SegmentResponse:
    segment = await db.get(Segment, segment_id)
    if not segment:
        raise HTTPException(status_code=404, detail="Segment not found")
    return SegmentResponse.model_validate(segment)


@router.delete("/{segment_id}", response_model=SegmentDeleted)
async def delete_segment(
    segment_id: UUID,
    db: AsyncSession = Depends(get_db),
) -> SegmentDeleted:
    """
    Delete a segment together with its prospects.

    Prospects are deleted explicitly rather than left to the FK cascade:
    SQLite only cascades with foreign keys switched on, and we want the count.
    """
    segment = await db.get(Segment, segment_id)
    if not segment:
        raise HTTPException(status_code=404, detail="Segment not found")

    result = await db.execute(delete(Prospect).where(Prospect.segment_id == segment_id))
    await db.delete(segment)
    await db.commit()
    return SegmentDeleted(deleted_prospects=result.rowcount or 0)
