"""Extraction log model — insert-only audit of one field extraction attempt."""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import relationship

from fundingpipe.models.base import Base, JSONType, UUIDMixin

DATA_SOURCES = ("native-parse", "cloud-ocr", "generic-ocr", "listing-metadata", "llm-extract", "none")
CONFIDENCE_BUCKETS = ("high", "medium", "low", "none")


class ExtractionLog(UUIDMixin, Base):
    __tablename__ = "extraction_logs"

    scrape_job_id = Column(Uuid(as_uuid=True), ForeignKey("scrape_jobs.id"), nullable=False, index=True)
    funding_program_id = Column(Uuid(as_uuid=True), ForeignKey("structured_programs.id"), index=True)

    field_name = Column(String(50), nullable=False, index=True)
    data_source = Column(String(20), nullable=False)
    confidence = Column(String(10), nullable=False)
    extracted_value = Column(Text)
    pattern_id = Column(String(100))
    sources_attempted = Column(JSONType, default=list)  # [{"backend", "data_source", "success", ...}]

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    scrape_job = relationship("ScrapeJob", back_populates="extraction_logs")
    program = relationship("StructuredProgram", back_populates="extraction_logs")
