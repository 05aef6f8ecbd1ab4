"""
Search page runner shared by the source scrapers.
"""

from typing import Callable, Optional

from bs4.element import Tag
import structlog

from models.scraping import ScrapedListing
from scrapers.base import SearchOutcome, SelectorSet, detect_anti_bot
from scrapers.extraction import parse_soup, select_all, select_first
from scrapers.page_client import PageClient

logger = structlog.get_logger(__name__)

ItemParser = Callable[[Tag], Optional[ScrapedListing]]


def run_search(
    client: PageClient,
    url: str,
    selectors: SelectorSet,
    parse_item: ItemParser,
    max_listings: int,
    term: str
) -> SearchOutcome:
    """
    Fetch a search page and extract up to max_listings listings.

    A listing that fails to parse (no title, no price) is dropped on its
    own; the rest of the page still counts.

    Raises:
        ScraperError: The page could not be fetched at all
    """
    html = client.fetch(url)
    soup = parse_soup(html)

    outcome = SearchOutcome()
    container = select_first(soup, selectors.containers)
    outcome.container_found = container is not None

    if container is None:
        indicator = detect_anti_bot(soup)
        if indicator:
            outcome.blocked_by = indicator
            logger.warning(
                "anti_bot_detected",
                source=client.source_name,
                indicator=indicator,
                term=term
            )
            return outcome
        logger.debug("results_container_missing", source=client.source_name, term=term)

    items = select_all(container or soup, selectors.items)
    dropped = 0

    for item in items:
        try:
            listing = parse_item(item)
        except Exception as e:
            logger.debug("listing_parse_failed", source=client.source_name, error=str(e))
            listing = None

        if listing is None:
            dropped += 1
            continue

        outcome.listings.append(listing)
        if len(outcome.listings) >= max_listings:
            break

    logger.info(
        "search_page_scraped",
        source=client.source_name,
        term=term,
        items=len(items),
        listings=len(outcome.listings),
        dropped=dropped
    )

    return outcome
