"""Source agency model — per-agency listing config and discovery state."""

from sqlalchemy import Column, String, Integer, Boolean, DateTime, Index
from sqlalchemy.orm import relationship

from fundingpipe.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class SourceAgency(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "source_agencies"

    code = Column(String(50), unique=True, nullable=False, index=True)  # ntis, iitp, tipa, ...
    name = Column(String(255), nullable=False)

    # Platform info
    platform = Column(String(50), nullable=False, index=True)
    base_url = Column(String(500), nullable=False)
    listing_path = Column(String(500), nullable=False, default="")

    # Discovery config
    is_active = Column(Boolean, default=True, nullable=False)
    config_json = Column(JSONType, default=dict)

    # Discovery state
    last_scraped_at = Column(DateTime(timezone=True))
    last_success_at = Column(DateTime(timezone=True))
    last_job_count = Column(Integer, default=0)
    consecutive_failures = Column(Integer, default=0)

    discovery_runs = relationship("DiscoveryRun", back_populates="agency")

    __table_args__ = (
        Index("idx_agency_active_platform", "is_active", "platform"),
    )

    @property
    def listing_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.listing_path or ''}"
