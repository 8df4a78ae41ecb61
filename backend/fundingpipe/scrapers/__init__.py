"""Scraper package — import all scrapers to trigger @register_scraper decorators."""

from fundingpipe.scrapers.ntis import NtisScraper  # noqa: F401
from fundingpipe.scrapers.board import BoardScraper  # noqa: F401
