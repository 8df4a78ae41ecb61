"""Pydantic schemas package."""

from fundingpipe.schemas.eligibility import EligibilityCriteria
from fundingpipe.schemas.scrape_job import (
    JobResetRequest,
    QueueStats,
    ScrapeJobRead,
    ScrapeJobSummary,
)
from fundingpipe.schemas.structured_program import (
    StructuredProgramRead,
    StructuredProgramSummary,
)
from fundingpipe.schemas.source_agency import (
    DiscoveryRunRead,
    SourceAgencyRead,
    SourceAgencyWithRuns,
)

__all__ = [
    "EligibilityCriteria",
    # ScrapeJob
    "JobResetRequest",
    "QueueStats",
    "ScrapeJobRead",
    "ScrapeJobSummary",
    # StructuredProgram
    "StructuredProgramRead",
    "StructuredProgramSummary",
    # SourceAgency
    "DiscoveryRunRead",
    "SourceAgencyRead",
    "SourceAgencyWithRuns",
]
