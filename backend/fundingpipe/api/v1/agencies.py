"""Source agency API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundingpipe.models.base import get_db
from fundingpipe.models.discovery_run import DiscoveryRun
from fundingpipe.models.source_agency import SourceAgency
from fundingpipe.schemas.source_agency import DiscoveryRunRead, SourceAgencyRead, SourceAgencyWithRuns

router = APIRouter(prefix="/agencies", tags=["agencies"])


@router.get("", response_model=list[SourceAgencyRead])
async def list_agencies(
    db: AsyncSession = Depends(get_db),
    is_active: bool | None = Query(None, description="Filter by active status"),
):
    query = select(SourceAgency)
    if is_active is not None:
        query = query.where(SourceAgency.is_active == is_active)
    result = await db.execute(query.order_by(SourceAgency.code))
    return result.scalars().all()


@router.get("/{code}", response_model=SourceAgencyWithRuns)
async def get_agency(code: str, db: AsyncSession = Depends(get_db)):
    """Get one agency with its ten most recent discovery runs."""
    result = await db.execute(select(SourceAgency).where(SourceAgency.code == code))
    agency = result.scalar_one_or_none()
    if not agency:
        raise HTTPException(status_code=404, detail="Agency not found")

    runs_result = await db.execute(
        select(DiscoveryRun)
        .where(DiscoveryRun.agency_id == agency.id)
        .order_by(DiscoveryRun.started_at.desc())
        .limit(10)
    )
    runs = runs_result.scalars().all()

    return SourceAgencyWithRuns(
        **SourceAgencyRead.model_validate(agency).model_dump(),
        recent_runs=[DiscoveryRunRead.model_validate(run) for run in runs],
    )
