"""Pydantic schemas for StructuredProgram model."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class StructuredProgramSummary(BaseModel):
    """Minimal program info for list views."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content_hash: str
    title: str
    ministry: str | None = None
    announcing_agency: str | None = None
    category: str | None = None
    deadline: date | None = None
    budget_amount: int | None = None
    status: str


class StructuredProgramRead(StructuredProgramSummary):
    """Full program output."""

    agency_code: str | None = None
    announcement_url: str | None = None
    announcement_type: str | None = None
    description: str | None = None
    industry_tags: list[str] | None = None
    keywords: list[str] | None = None
    application_start: date | None = None
    published_at: date | None = None
    min_trl: int | None = None
    max_trl: int | None = None
    trl_confidence: str
    trl_stage: str | None = None
    eligibility_criteria: dict | None = None
    requires_manual_review: bool = False

    primary_target_industry: str | None = None
    secondary_target_industries: list[str] | None = None
    semantic_sub_domain: dict | None = None
    technology_domains_specific: list[str] | None = None
    target_company_profile: str | None = None
    program_intent: str | None = None
    semantic_confidence: float | None = None
    semantic_enriched_at: datetime | None = None
    semantic_enrichment_model: str | None = None

    created_at: datetime
    updated_at: datetime
