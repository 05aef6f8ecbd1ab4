"""
Retail source scrapers.

One implementation per source, all satisfying SourceScraper, looked up
through the registry by source id.
"""

from scrapers.base import SourceScraper
from scrapers.registry import ScraperRegistry, get_scraper_registry

__all__ = [
    "SourceScraper",
    "ScraperRegistry",
    "get_scraper_registry",
]
