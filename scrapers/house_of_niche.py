"""
House of Niche (NL) search scraper.

A single-merchant niche perfumery: every listing is sold by House of
Niche itself, so there is no seller element to read.
"""

from typing import Optional
from urllib.parse import quote_plus

from bs4.element import Tag

from config import settings
from models.scraping import ScrapedListing, ScrapingSource
from scrapers.base import SelectorSet
from scrapers.extraction import (
    parse_localized_price,
    parse_shipping_cost,
    select_link,
    select_text,
)
from scrapers.page_client import PageClient
from scrapers.rate_limiter import get_rate_limiter
from scrapers.search import run_search

HON_BASE_URL = "https://www.houseofniche.com"
HON_SEARCH_PATH = "/search?q="

# Smaller shop; slower than the marketplace default
HON_RATE_LIMIT_MS = 1500

HON_SELECTORS = SelectorSet(
    containers=(
        ".search-results",
        ".product-grid",
        ".products",
    ),
    items=(
        ".product-item",
        ".product-card",
        ".search-result-item",
    ),
    title=(
        ".product-title",
        ".product-name",
        "h3",
        "h4",
    ),
    price=(
        ".current-price",
        ".product-price",
        ".price",
    ),
    link=(
        "a.product-link",
        "a",
    ),
    availability=(
        ".availability",
        ".stock-status",
        ".in-stock",
    ),
    shipping=(
        ".shipping-info",
        ".delivery-info",
    ),
    unavailable_phrases=(
        "out of stock",
        "niet op voorraad",
        "uitverkocht",
    ),
)


class HouseOfNicheScraper:
    """Search results scraper for houseofniche.com."""

    merchant_default = "House of Niche"

    def __init__(
        self,
        source: ScrapingSource,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        client: Optional[PageClient] = None
    ):
        self.source = source
        self.selectors = HON_SELECTORS.with_overrides(source.selector_config)
        self.max_listings = settings.scraper_max_listings
        self.base_url = (source.base_url or HON_BASE_URL).rstrip("/")
        self.client = client or PageClient(
            source_name=source.name,
            rate_limiter=get_rate_limiter(
                source.id,
                source.rate_limit_ms if source.rate_limit_ms is not None else HON_RATE_LIMIT_MS
            ),
            timeout_ms=timeout_ms or settings.scan_timeout_ms,
            max_retries=max_retries or settings.scan_max_retries,
            accept_language="nl-NL,nl;q=0.9,en;q=0.8",
        )
        self._blocked = False

    def search_url(self, term: str) -> str:
        return f"{self.base_url}{HON_SEARCH_PATH}{quote_plus(term)}"

    def search_products(self, term: str) -> list[ScrapedListing]:
        outcome = run_search(
            self.client,
            self.search_url(term),
            self.selectors,
            self._parse_item,
            self.max_listings,
            term,
        )
        self._blocked = outcome.blocked
        return outcome.listings

    def scrape_product(self, term: str) -> Optional[ScrapedListing]:
        listings = self.search_products(term)
        return listings[0] if listings else None

    def has_anti_bot_protection(self) -> bool:
        return self._blocked

    def _parse_item(self, item: Tag) -> Optional[ScrapedListing]:
        title = select_text(item, self.selectors.title)
        price = parse_localized_price(select_text(item, self.selectors.price), self.source.country)
        if not title or price is None:
            return None

        status_text = (select_text(item, self.selectors.availability) or "").lower()
        available = not any(phrase in status_text for phrase in self.selectors.unavailable_phrases)

        return ScrapedListing(
            title=title,
            price=price,
            currency="EUR",
            url=select_link(item, self.selectors.link, self.base_url),
            merchant=self.merchant_default,
            availability=available,
            shipping_cost=parse_shipping_cost(
                select_text(item, self.selectors.shipping), self.source.country
            ),
        )
