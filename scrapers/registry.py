"""
Scraper registry: source -> scraper implementation.

Sources are dispatched on their scraper_key; a source without one is
keyed by its slugified name ("Amazon.fr" -> "amazon_fr").
"""

import re
from typing import Callable, Optional
import structlog

from models.scraping import ScrapingSource
from exceptions import InvalidScanConfigError
from scrapers.amazon import AMAZON_FR, AMAZON_NL, AmazonScraper
from scrapers.base import SourceScraper
from scrapers.bol_com import BolComScraper
from scrapers.house_of_niche import HouseOfNicheScraper

logger = structlog.get_logger(__name__)

ScraperFactory = Callable[[ScrapingSource, Optional[int], Optional[int]], SourceScraper]


def source_key(source: ScrapingSource) -> str:
    """Registry key for a source."""
    raw = source.scraper_key or source.name
    return re.sub(r"[^a-z0-9]+", "_", raw.strip().lower()).strip("_")


class ScraperRegistry:
    """Maps registry keys to scraper factories."""

    def __init__(self) -> None:
        self._factories: dict[str, ScraperFactory] = {}

    def register(self, key: str, factory: ScraperFactory) -> None:
        normalized = key.strip().lower()
        if not normalized:
            raise ValueError("Scraper key must be non-empty")
        if normalized in self._factories:
            raise ValueError(f"Scraper '{normalized}' already registered")
        self._factories[normalized] = factory

    def supports(self, source: ScrapingSource) -> bool:
        return source_key(source) in self._factories

    def resolve_key(self, source: ScrapingSource) -> str:
        """
        Registry key for a source that has a scraper.

        Raises:
            InvalidScanConfigError: No scraper is registered for the source
        """
        key = source_key(source)
        if key not in self._factories:
            known = ", ".join(self.registered_keys()) or "<empty>"
            logger.warning("scraper_not_registered", source_id=source.id, key=key)
            raise InvalidScanConfigError(
                f"No scraper for source '{source.name}'. Known: {known}",
                details={"source_id": source.id, "scraper_key": key}
            )
        return key

    def create(
        self,
        source: ScrapingSource,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None
    ) -> SourceScraper:
        """Build the scraper for a source."""
        factory = self._factories[self.resolve_key(source)]
        return factory(source, timeout_ms, max_retries)

    def registered_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self._factories))


def _default_registry() -> ScraperRegistry:
    registry = ScraperRegistry()
    registry.register(
        "bol_com",
        lambda source, timeout_ms, max_retries: BolComScraper(source, timeout_ms, max_retries)
    )
    registry.register(
        "amazon_fr",
        lambda source, timeout_ms, max_retries: AmazonScraper(source, AMAZON_FR, timeout_ms, max_retries)
    )
    registry.register(
        "amazon_nl",
        lambda source, timeout_ms, max_retries: AmazonScraper(source, AMAZON_NL, timeout_ms, max_retries)
    )
    registry.register(
        "house_of_niche",
        lambda source, timeout_ms, max_retries: HouseOfNicheScraper(source, timeout_ms, max_retries)
    )
    return registry


# Singleton instance
_scraper_registry: Optional[ScraperRegistry] = None


def get_scraper_registry() -> ScraperRegistry:
    """Get or create the scraper registry with the built-in sources."""
    global _scraper_registry
    if _scraper_registry is None:
        _scraper_registry = _default_registry()
    return _scraper_registry
