"""Discovery run model — audit log per agency discovery execution."""

from sqlalchemy import Column, Date, String, Integer, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship

from fundingpipe.models.base import Base, UUIDMixin


class DiscoveryRun(UUIDMixin, Base):
    __tablename__ = "discovery_runs"

    agency_id = Column(Uuid(as_uuid=True), ForeignKey("source_agencies.id"), nullable=False, index=True)

    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True))
    status = Column(String(20), nullable=False, default="running")  # running, success, failed
    date_from = Column(Date)
    date_to = Column(Date)
    jobs_found = Column(Integer, default=0)
    jobs_new = Column(Integer, default=0)
    jobs_failed = Column(Integer, default=0)
    error_message = Column(Text)

    agency = relationship("SourceAgency", back_populates="discovery_runs")
