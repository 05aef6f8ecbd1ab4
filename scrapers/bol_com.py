"""
Bol.com (NL) search scraper.
"""

from typing import Optional
from urllib.parse import quote_plus

from bs4.element import Tag
import structlog

from config import settings
from models.scraping import ScrapedListing, ScrapingSource
from scrapers.base import SelectorSet
from scrapers.extraction import (
    parse_localized_price,
    parse_shipping_cost,
    select_first,
    select_link,
    select_text,
)
from scrapers.page_client import PageClient
from scrapers.rate_limiter import get_rate_limiter
from scrapers.search import run_search

logger = structlog.get_logger(__name__)

BOL_BASE_URL = "https://www.bol.com"
BOL_SEARCH_PATH = "/nl/nl/s/?searchtext="

BOL_SELECTORS = SelectorSet(
    containers=(
        "[data-testid='product-grid']",
        ".product-grid",
        ".search-results",
        ".product-list",
        ".js_search_result_container",
        ".search-result-list",
        ".js_listpage",
        "[data-test='search-results']",
    ),
    items=(
        "[data-testid='product-item']",
        "[data-test='product-item']",
        ".product-item",
        ".js_item_root",
    ),
    title=(
        "[data-testid='product-title']",
        "[data-test='product-title']",
        "a[data-test='title']",
        ".product-title",
        "h3 a",
        ".product-name",
    ),
    price=(
        "[data-test='price']",
        "[data-testid='price']",
        ".promo-price",
        ".price-block__price",
    ),
    link=(
        "a[data-test='product-title']",
        "a[data-test='title']",
        "a.product-title",
        "h3 a",
        "a[href*='/p/']",
    ),
    merchant=(
        "[data-test='seller-name']",
        ".product-seller__name",
        ".product-seller a",
    ),
    availability=(
        "[data-test='delivery-highlight']",
        "[data-test='delivery-info']",
        ".product-delivery-highlight",
    ),
    shipping=(
        "[data-test='shipping-costs']",
        "[data-test='delivery-info']",
        ".product-delivery",
    ),
    unavailable_phrases=(
        "niet leverbaar",
        "tijdelijk uitverkocht",
        "uitverkocht",
        "niet beschikbaar",
    ),
)

PRICE_FRACTION_SELECTORS = (
    "[data-test='price-fraction']",
    ".promo-price__fraction",
)


class BolComScraper:
    """Search results scraper for bol.com."""

    merchant_default = "Bol.com"

    def __init__(
        self,
        source: ScrapingSource,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        client: Optional[PageClient] = None
    ):
        self.source = source
        self.selectors = BOL_SELECTORS.with_overrides(source.selector_config)
        self.max_listings = settings.scraper_max_listings
        self.base_url = (source.base_url or BOL_BASE_URL).rstrip("/")
        self.client = client or PageClient(
            source_name=source.name,
            rate_limiter=get_rate_limiter(
                source.id,
                source.rate_limit_ms if source.rate_limit_ms is not None else settings.scraper_default_rate_limit_ms
            ),
            timeout_ms=timeout_ms or settings.scan_timeout_ms,
            max_retries=max_retries or settings.scan_max_retries,
            accept_language="nl-NL,nl;q=0.9,en;q=0.6",
        )
        self._blocked = False

    def search_url(self, term: str) -> str:
        return f"{self.base_url}{BOL_SEARCH_PATH}{quote_plus(term)}"

    def search_products(self, term: str) -> list[ScrapedListing]:
        """
        Listings from the bol.com search page.

        Returns an empty list on a bot wall; raises ScraperError only
        when the page cannot be fetched.
        """
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
        """Most relevant listing (first search result)."""
        listings = self.search_products(term)
        return listings[0] if listings else None

    def has_anti_bot_protection(self) -> bool:
        return self._blocked

    def _parse_item(self, item: Tag) -> Optional[ScrapedListing]:
        title = select_text(item, self.selectors.title)
        price = parse_localized_price(self._price_text(item), self.source.country)
        if not title or price is None:
            return None

        status_text = (select_text(item, self.selectors.availability) or "").lower()
        available = not any(phrase in status_text for phrase in self.selectors.unavailable_phrases)

        return ScrapedListing(
            title=title,
            price=price,
            currency="EUR",
            url=select_link(item, self.selectors.link, self.base_url),
            merchant=select_text(item, self.selectors.merchant) or self.merchant_default,
            availability=available,
            shipping_cost=parse_shipping_cost(
                select_text(item, self.selectors.shipping), self.source.country
            ),
        )

    def _price_text(self, item: Tag) -> Optional[str]:
        """Bol renders 12,99 as '12' plus a '99' fraction element."""
        element = select_first(item, self.selectors.price)
        if element is None:
            return None

        fraction = select_first(element, PRICE_FRACTION_SELECTORS)
        if fraction is None:
            return element.get_text(" ", strip=True)

        whole = "".join(element.find_all(string=True, recursive=False)).strip()
        if not whole:
            whole = element.get_text("", strip=True).replace(fraction.get_text("", strip=True), "", 1)
        cents = fraction.get_text("", strip=True)
        if cents in ("-", "–", ""):
            cents = "00"
        return f"{whole.rstrip(',.')},{cents}"
