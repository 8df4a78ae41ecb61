"""Structured program model — canonical record extracted from announcements."""

from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, Column, Date, DateTime, Float, Index, Integer, String, Text,
)
from sqlalchemy.orm import relationship

from fundingpipe.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class StructuredProgram(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "structured_programs"

    # Dedup identity
    content_hash = Column(String(64), unique=True, nullable=False, index=True)

    # Core
    title = Column(Text, nullable=False)
    ministry = Column(String(255))
    announcing_agency = Column(String(255))
    agency_code = Column(String(50), index=True)
    announcement_url = Column(Text)
    announcement_type = Column(String(20), default="R_D_PROJECT")  # R_D_PROJECT, SURVEY, EVENT, NOTICE
    description = Column(Text)
    status = Column(String(20), default="ACTIVE", nullable=False)  # ACTIVE, EXPIRED

    # Classification
    category = Column(String(50), index=True)
    industry_tags = Column(JSONType, default=list)
    keywords = Column(JSONType, default=list)

    # Dates
    deadline = Column(Date, index=True)
    application_start = Column(Date)
    published_at = Column(Date)

    # Budget in KRW
    budget_amount = Column(BigInteger)

    # TRL
    min_trl = Column(Integer)
    max_trl = Column(Integer)
    trl_confidence = Column(String(10), default="missing", nullable=False)  # explicit, inferred, missing
    trl_stage = Column(String(30))

    eligibility_criteria = Column(JSONType)
    requires_manual_review = Column(Boolean, default=False, nullable=False)

    # Semantic enrichment (written by the backfill)
    primary_target_industry = Column(String(255))
    secondary_target_industries = Column(JSONType, default=list)
    semantic_sub_domain = Column(JSONType)
    technology_domains_specific = Column(JSONType, default=list)
    target_company_profile = Column(Text)
    program_intent = Column(String(30))
    semantic_confidence = Column(Float)
    semantic_enriched_at = Column(DateTime(timezone=True), index=True)
    semantic_enrichment_model = Column(String(100))

    scrape_jobs = relationship("ScrapeJob", back_populates="program")
    extraction_logs = relationship("ExtractionLog", back_populates="program")

    __table_args__ = (
        Index("idx_program_category_deadline", "category", "deadline"),
        CheckConstraint(
            "semantic_enriched_at IS NULL OR semantic_confidence IS NOT NULL",
            name="ck_program_enriched_has_confidence",
        ),
        CheckConstraint(
            "min_trl IS NULL OR max_trl IS NULL OR min_trl <= max_trl",
            name="ck_program_trl_order",
        ),
    )
