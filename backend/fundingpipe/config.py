"""Application configuration from environment variables."""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Application
    app_name: str = "Funding Announcement Pipeline"
    debug: bool = False
    # Only the "primary" instance dispatches scheduled discovery
    instance_role: str = "primary"

    # Database
    database_url: str = "postgresql+asyncpg://fundingpipe@localhost:5432/fundingpipe"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # Discovery
    attachment_dir: str = "/app/data/attachments"
    scrape_timeout: int = 120
    max_browser_pages: int = 50
    discovery_lookback_days: int = 1
    discovery_page_delay: float = 3.0
    discovery_detail_delay: float = 2.0

    # Processing
    max_processing_attempts: int = 3
    worker_poll_interval: int = 5
    worker_max_idle_polls: int = 16
    processing_lease_seconds: int = 900

    # Text extraction
    libreoffice_binary: str = "soffice"
    libreoffice_timeout: int = 120
    tesseract_lang: str = "kor+eng"
    cloud_editor_enabled: bool = False
    cloud_editor_url: str = "https://www.hancomdocs.com"
    cloud_editor_email: str | None = None
    cloud_editor_password: str | None = None

    # Semantic enrichment
    anthropic_api_key: str | None = None
    enrichment_model: str = "claude-sonnet-4-5-20250929"
    enrichment_confidence_threshold: float = 0.7
    enrichment_requests_per_minute: int = 50
    enrichment_cost_per_call_krw: int = 27
    backfill_checkpoint_path: str = "logs/semantic-backfill-checkpoint.json"
    backfill_log_path: str = "logs/semantic-backfill-log.jsonl"

    # Field extraction LLM pass, for fields the pattern rules miss
    enable_tier2_extraction: bool = False
    tier2_model: str = "claude-haiku-4-5"
    max_tier2_cost_per_job: float = 50  # KRW

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def sync_database_url(self) -> str:
        return self.database_url.replace("postgresql+asyncpg://", "postgresql://")


@lru_cache
def get_settings() -> Settings:
    return Settings()
