"""
Amazon search scraper.

One class serves every Amazon storefront; the marketplace (domain,
merchant label, language) is passed in by the registry.
"""

from dataclasses import dataclass
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


@dataclass(frozen=True)
class AmazonMarketplace:
    domain: str
    merchant: str
    accept_language: str
    max_listings: int = 8


AMAZON_FR = AmazonMarketplace(
    domain="www.amazon.fr",
    merchant="Amazon FR",
    accept_language="fr-FR,fr;q=0.9,en;q=0.6",
)

AMAZON_NL = AmazonMarketplace(
    domain="www.amazon.nl",
    merchant="Amazon NL",
    accept_language="nl-NL,nl;q=0.9,en;q=0.6",
)

AMAZON_SELECTORS = SelectorSet(
    containers=(
        "[data-component-type='s-search-results']",
        ".s-main-slot",
        "#search",
    ),
    items=(
        "[data-component-type='s-search-result']",
        ".s-result-item[data-asin]",
        "[data-asin]:not([data-asin=''])",
    ),
    title=(
        "h2 a span",
        "h2 span",
        ".a-size-base-plus",
        ".a-size-medium",
    ),
    price=(
        ".a-price .a-offscreen",
    ),
    link=(
        "h2 a",
        "a.a-link-normal.s-no-outline",
        "a.a-link-normal",
    ),
    merchant=(),
    availability=(
        ".a-color-price",
        ".a-size-base.a-color-secondary",
    ),
    shipping=(
        "[data-cy='delivery-recipe']",
        ".s-align-children-center .a-color-base",
    ),
    unavailable_phrases=(
        "indisponible",
        "actuellement indisponible",
        "niet beschikbaar",
        "currently unavailable",
    ),
)


class AmazonScraper:
    """Search results scraper for an Amazon marketplace."""

    def __init__(
        self,
        source: ScrapingSource,
        marketplace: AmazonMarketplace = AMAZON_FR,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
        client: Optional[PageClient] = None
    ):
        self.source = source
        self.marketplace = marketplace
        self.selectors = AMAZON_SELECTORS.with_overrides(source.selector_config)
        self.max_listings = min(marketplace.max_listings, settings.scraper_max_listings)
        self.base_url = f"https://{marketplace.domain}"
        self.client = client or PageClient(
            source_name=source.name,
            rate_limiter=get_rate_limiter(
                source.id,
                source.rate_limit_ms if source.rate_limit_ms is not None else settings.scraper_default_rate_limit_ms
            ),
            timeout_ms=timeout_ms or settings.scan_timeout_ms,
            max_retries=max_retries or settings.scan_max_retries,
            accept_language=marketplace.accept_language,
        )
        self._blocked = False

    def search_url(self, term: str) -> str:
        return f"{self.base_url}/s?k={quote_plus(term)}"

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
        # Sponsored carousels and layout rows carry an empty data-asin
        if item.has_attr("data-asin") and not item.get("data-asin"):
            return None

        title = select_text(item, self.selectors.title)
        price = parse_localized_price(self._price_text(item), self.source.country)
        if not title or price is None:
            return None

        status_text = (select_text(item, self.selectors.availability) or "").lower()
        available = not any(phrase in status_text for phrase in self.selectors.unavailable_phrases)

        asin = item.get("data-asin") or None
        url = select_link(item, self.selectors.link, self.base_url)
        if url is None and asin:
            url = f"{self.base_url}/dp/{asin}"

        return ScrapedListing(
            title=title,
            price=price,
            currency="EUR",
            url=url,
            merchant=self.marketplace.merchant,
            availability=available,
            shipping_cost=parse_shipping_cost(
                select_text(item, self.selectors.shipping), self.source.country
            ),
        )

    def _price_text(self, item: Tag) -> Optional[str]:
        text = select_text(item, self.selectors.price)
        if text:
            return text

        whole = select_text(item, (".a-price-whole",))
        if not whole:
            return None
        fraction = select_text(item, (".a-price-fraction",)) or "00"
        return f"{whole.rstrip(',.')},{fraction}"
