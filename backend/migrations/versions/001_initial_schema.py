"""Initial schema — source_agencies, discovery_runs, structured_programs, scrape_jobs, extraction_logs.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Source agencies
    op.create_table(
        "source_agencies",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("code", sa.String(50), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("platform", sa.String(50), nullable=False, index=True),
        sa.Column("base_url", sa.String(500), nullable=False),
        sa.Column("listing_path", sa.String(500), nullable=False, server_default=""),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("config_json", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True)),
        sa.Column("last_success_at", sa.DateTime(timezone=True)),
        sa.Column("last_job_count", sa.Integer, server_default=sa.text("0")),
        sa.Column("consecutive_failures", sa.Integer, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_agency_active_platform", "source_agencies", ["is_active", "platform"])

    # Discovery runs
    op.create_table(
        "discovery_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("agency_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("source_agencies.id"), nullable=False, index=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("date_from", sa.Date),
        sa.Column("date_to", sa.Date),
        sa.Column("jobs_found", sa.Integer, server_default=sa.text("0")),
        sa.Column("jobs_new", sa.Integer, server_default=sa.text("0")),
        sa.Column("jobs_failed", sa.Integer, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text),
    )

    # Structured programs
    op.create_table(
        "structured_programs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("content_hash", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("ministry", sa.String(255)),
        sa.Column("announcing_agency", sa.String(255)),
        sa.Column("agency_code", sa.String(50), index=True),
        sa.Column("announcement_url", sa.Text),
        sa.Column("announcement_type", sa.String(20), server_default="R_D_PROJECT"),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="ACTIVE"),
        sa.Column("category", sa.String(50), index=True),
        sa.Column("industry_tags", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("keywords", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("deadline", sa.Date, index=True),
        sa.Column("application_start", sa.Date),
        sa.Column("published_at", sa.Date),
        sa.Column("budget_amount", sa.BigInteger),
        sa.Column("min_trl", sa.Integer),
        sa.Column("max_trl", sa.Integer),
        sa.Column("trl_confidence", sa.String(10), nullable=False, server_default="missing"),
        sa.Column("trl_stage", sa.String(30)),
        sa.Column("eligibility_criteria", postgresql.JSONB),
        sa.Column("requires_manual_review", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("primary_target_industry", sa.String(255)),
        sa.Column("secondary_target_industries", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("semantic_sub_domain", postgresql.JSONB),
        sa.Column("technology_domains_specific", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("target_company_profile", sa.Text),
        sa.Column("program_intent", sa.String(30)),
        sa.Column("semantic_confidence", sa.Float),
        sa.Column("semantic_enriched_at", sa.DateTime(timezone=True), index=True),
        sa.Column("semantic_enrichment_model", sa.String(100)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "semantic_enriched_at IS NULL OR semantic_confidence IS NOT NULL",
            name="ck_program_enriched_has_confidence",
        ),
        sa.CheckConstraint(
            "min_trl IS NULL OR max_trl IS NULL OR min_trl <= max_trl",
            name="ck_program_trl_order",
        ),
    )
    op.create_index("idx_program_category_deadline", "structured_programs", ["category", "deadline"])

    # Scrape jobs
    op.create_table(
        "scrape_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("identity_key", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column("announcement_url", sa.Text, nullable=False),
        sa.Column("source_announcement_id", sa.String(100)),
        sa.Column("agency_code", sa.String(50), nullable=False, index=True),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("ministry", sa.String(255)),
        sa.Column("announcing_agency", sa.String(255)),
        sa.Column("listing_posted_at", sa.Date, index=True),
        sa.Column("listing_deadline", sa.Date),
        sa.Column("detail_page_data", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("attachment_folder", sa.Text),
        sa.Column("attachment_filenames", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("attachment_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("date_range", sa.String(50)),
        sa.Column("page_number", sa.Integer),
        sa.Column("scraping_status", sa.String(20), nullable=False, server_default="SCRAPED"),
        sa.Column("scraping_error", sa.Text),
        sa.Column("scraped_at", sa.DateTime(timezone=True)),
        sa.Column("processing_status", sa.String(20), nullable=False, server_default="PENDING", index=True),
        sa.Column("processing_attempts", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("processing_error", sa.Text),
        sa.Column("processing_worker", sa.String(255)),
        sa.Column("processing_started_at", sa.DateTime(timezone=True)),
        sa.Column("processing_heartbeat_at", sa.DateTime(timezone=True)),
        sa.Column("processed_at", sa.DateTime(timezone=True)),
        sa.Column("funding_program_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("structured_programs.id"), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "processing_status != 'PROCESSING' "
            "OR (processing_worker IS NOT NULL AND processing_started_at IS NOT NULL)",
            name="ck_job_processing_has_owner",
        ),
        sa.CheckConstraint(
            "processing_status != 'COMPLETED' OR funding_program_id IS NOT NULL",
            name="ck_job_completed_has_program",
        ),
        sa.CheckConstraint(
            "processing_status != 'SKIPPED' OR funding_program_id IS NULL",
            name="ck_job_skipped_has_no_program",
        ),
    )
    op.create_index("idx_job_claim", "scrape_jobs", ["scraping_status", "processing_status", "created_at"])
    op.create_index("idx_job_agency_posted", "scrape_jobs", ["agency_code", "listing_posted_at"])

    # Extraction logs (insert-only)
    op.create_table(
        "extraction_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("scrape_job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_jobs.id"), nullable=False, index=True),
        sa.Column("funding_program_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("structured_programs.id"), index=True),
        sa.Column("field_name", sa.String(50), nullable=False, index=True),
        sa.Column("data_source", sa.String(20), nullable=False),
        sa.Column("confidence", sa.String(10), nullable=False),
        sa.Column("extracted_value", sa.Text),
        sa.Column("pattern_id", sa.String(100)),
        sa.Column("sources_attempted", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("extraction_logs")
    op.drop_table("scrape_jobs")
    op.drop_table("structured_programs")
    op.drop_table("discovery_runs")
    op.drop_table("source_agencies")
