"""Scraper registry — maps agency platform names to discovery scraper classes."""

import logging
from typing import Type

from fundingpipe.scrapers.base import BaseDiscoveryScraper

logger = logging.getLogger(__name__)

# Platform name -> scraper class mapping
_REGISTRY: dict[str, Type[BaseDiscoveryScraper]] = {}


def register_scraper(platform: str):
    """Decorator to register a scraper class for a platform."""
    def decorator(cls: Type[BaseDiscoveryScraper]):
        _REGISTRY[platform] = cls
        logger.debug(f"Registered scraper for platform: {platform}")
        return cls
    return decorator


def get_scraper_class(platform: str) -> Type[BaseDiscoveryScraper] | None:
    return _REGISTRY.get(platform)


def list_platforms() -> list[str]:
    return list(_REGISTRY.keys())
