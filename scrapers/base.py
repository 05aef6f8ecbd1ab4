"""
Scraper capability contract and shared helpers.

Each retail source is a separate class that satisfies SourceScraper;
there is no scraper base class. Common behaviour (fetching, selector
fallbacks, bot-wall detection) lives in plain helpers the source
classes compose.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Optional, Protocol, runtime_checkable

from bs4 import BeautifulSoup

from models.scraping import ScrapedListing, ScrapingSource


@runtime_checkable
class SourceScraper(Protocol):
    """What the price-scan orchestrator needs from a source."""

    source: ScrapingSource

    def search_products(self, term: str) -> list[ScrapedListing]:
        """Listings on the source's search page for a term (may be empty)."""
        ...

    def scrape_product(self, term: str) -> Optional[ScrapedListing]:
        """Best single listing for a term, or None."""
        ...

    def has_anti_bot_protection(self) -> bool:
        """True if the last page fetched was a bot challenge."""
        ...


# Phrases that only show up on challenge / block pages
ANTI_BOT_PHRASES = (
    "captcha",
    "robot check",
    "are you a robot",
    "not a robot",
    "verify you are human",
    "verification required",
    "security check",
    "cloudflare",
    "access denied",
    "enter the characters you see below",
    "api-services-support@amazon.com",
)

ANTI_BOT_SELECTORS = (
    "form[action*='validateCaptcha']",
    "#captchacharacters",
    "#challenge-form",
    ".cf-browser-verification",
    "iframe[src*='captcha']",
    "#captcha",
    ".g-recaptcha",
    "#robot-check",
    ".bot-check",
)


def detect_anti_bot(soup: BeautifulSoup) -> Optional[str]:
    """
    Look for a bot challenge on a parsed page.

    Only the title and visible text are checked; scripts and meta tags
    routinely mention "robots".

    Returns:
        The indicator that matched, or None
    """
    for selector in ANTI_BOT_SELECTORS:
        try:
            if soup.select_one(selector) is not None:
                return selector
        except Exception:
            continue

    title = soup.title.get_text(" ", strip=True).lower() if soup.title else ""
    body = soup.body or soup
    visible = " ".join(
        text.strip().lower()
        for text in body.find_all(string=True)
        if text.parent is not None and text.parent.name not in ("script", "style", "noscript")
    )

    for phrase in ANTI_BOT_PHRASES:
        if phrase in title or phrase in visible:
            return phrase
    return None


@dataclass(frozen=True)
class SelectorSet:
    """
    CSS selector fallbacks for one source, tried in order.

    A source's selector_config can prepend its own candidates per key
    (containers, items, title, price, link, merchant, availability,
    shipping) without a code change.
    """
    containers: tuple[str, ...] = ()
    items: tuple[str, ...] = ()
    title: tuple[str, ...] = ()
    price: tuple[str, ...] = ()
    link: tuple[str, ...] = ()
    merchant: tuple[str, ...] = ()
    availability: tuple[str, ...] = ()
    shipping: tuple[str, ...] = ()
    unavailable_phrases: tuple[str, ...] = field(default=())

    def with_overrides(self, config: Optional[dict[str, Any]]) -> "SelectorSet":
        if not config:
            return self
        updates = {}
        for key in ("containers", "items", "title", "price", "link", "merchant", "availability", "shipping"):
            extra = config.get(key)
            if isinstance(extra, str):
                extra = [extra]
            if extra:
                updates[key] = tuple(extra) + tuple(s for s in getattr(self, key) if s not in extra)
        return replace(self, **updates) if updates else self


def build_search_term(brand: str, product_name: str, variant_size: Optional[str] = None) -> str:
    """Brand + name + size, collapsed to single spaces."""
    parts = [brand, product_name, variant_size or ""]
    return " ".join(" ".join(parts).split())


@dataclass
class SearchOutcome:
    """Listings from one search page, plus the bot wall if one was hit."""
    listings: list[ScrapedListing] = field(default_factory=list)
    blocked_by: Optional[str] = None
    container_found: bool = False

    @property
    def blocked(self) -> bool:
        return self.blocked_by is not None
