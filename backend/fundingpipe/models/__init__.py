"""Models package — import every model so string relationships resolve."""

from fundingpipe.models.base import Base  # noqa: F401
from fundingpipe.models.source_agency import SourceAgency  # noqa: F401
from fundingpipe.models.discovery_run import DiscoveryRun  # noqa: F401
from fundingpipe.models.structured_program import StructuredProgram  # noqa: F401
from fundingpipe.models.scrape_job import ScrapeJob, ProcessingStatus, ScrapingStatus, JobState  # noqa: F401
from fundingpipe.models.extraction_log import ExtractionLog  # noqa: F401
