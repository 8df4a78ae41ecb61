"""Structured program API endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fundingpipe.models.base import get_db
from fundingpipe.models.structured_program import StructuredProgram
from fundingpipe.schemas.structured_program import StructuredProgramRead, StructuredProgramSummary

router = APIRouter(prefix="/programs", tags=["programs"])


@router.get("", response_model=list[StructuredProgramSummary])
async def list_programs(
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    category: str | None = Query(None, description="Filter by category"),
    status: str | None = Query(None, description="ACTIVE or EXPIRED"),
    deadline_from: date | None = Query(None, description="Deadline on or after"),
    needs_enrichment: bool | None = Query(None, description="Only programs without semantic enrichment"),
):
    query = select(StructuredProgram)

    if category:
        query = query.where(StructuredProgram.category == category)
    if status:
        query = query.where(StructuredProgram.status == status)
    if deadline_from:
        query = query.where(StructuredProgram.deadline >= deadline_from)
    if needs_enrichment:
        query = query.where(StructuredProgram.semantic_enriched_at.is_(None))

    query = query.order_by(StructuredProgram.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/by-hash/{content_hash}", response_model=StructuredProgramRead)
async def get_program_by_hash(content_hash: str, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(StructuredProgram).where(StructuredProgram.content_hash == content_hash))
    program = result.scalar_one_or_none()
    if not program:
        raise HTTPException(status_code=404, detail="Program not found")
    return program


@router.get("/{program_id}", response_model=StructuredProgramRead)
async def get_program(program_id: UUID, db: AsyncSession = Depends(get_db)):
    program = await db.get(StructuredProgram, program_id)
    if not program:
        raise HTTPException(status_code=404, detail="Program not found")
    return program
