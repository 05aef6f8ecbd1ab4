"""
Tolerant extraction helpers for search result pages.

Every helper tries its selectors in order and treats a failing or
empty selector as "try the next one".
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag
import structlog

logger = structlog.get_logger(__name__)

# Countries whose storefronts write 1.234,56
COMMA_DECIMAL_COUNTRIES = {"NL", "BE", "FR", "DE", "AT", "ES", "IT", "PT", "LU"}

FREE_SHIPPING_PHRASES = (
    "gratis verzending",
    "gratis bezorgd",
    "livraison gratuite",
    "livraison offerte",
    "free delivery",
    "free shipping",
)


def select_first(node: Tag, selectors: tuple[str, ...]) -> Optional[Tag]:
    """First element matched by any selector."""
    for selector in selectors:
        try:
            found = node.select_one(selector)
        except Exception as e:
            logger.debug("selector_failed", selector=selector, error=str(e))
            continue
        if found is not None:
            return found
    return None


def select_all(node: Tag, selectors: tuple[str, ...]) -> list[Tag]:
    """Elements of the first selector that matches anything."""
    for selector in selectors:
        try:
            found = node.select(selector)
        except Exception as e:
            logger.debug("selector_failed", selector=selector, error=str(e))
            continue
        if found:
            return found
    return []


def select_text(node: Tag, selectors: tuple[str, ...]) -> Optional[str]:
    """Stripped text of the first selector that yields non-empty text."""
    for selector in selectors:
        element = select_first(node, (selector,))
        if element is None:
            continue
        text = element.get_text(" ", strip=True)
        if text:
            return " ".join(text.split())
    return None


def select_link(node: Tag, selectors: tuple[str, ...], base_url: str) -> Optional[str]:
    """Absolute href of the first matching anchor."""
    for selector in selectors:
        element = select_first(node, (selector,))
        if element is None:
            continue
        href = element.get("href")
        if href:
            return urljoin(base_url, href)
    return None


def parse_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def parse_localized_price(text: Optional[str], country: str) -> Optional[Decimal]:
    """
    Parse a price as shown on a storefront of the given country.

    NL/FR style: "1.234,56", "12,99 €", "12,-". UK/US style: "1,234.56".

    Returns:
        Decimal with 2 places, or None
    """
    if not text:
        return None

    cleaned = text.replace("\xa0", " ").replace("\u202f", " ").strip()
    # Bol.com writes whole euros as "12,-"
    cleaned = re.sub(r",\s*[-–—]", ",00", cleaned)
    cleaned = re.sub(r"[^\d.,]", "", cleaned)
    if not cleaned or not re.search(r"\d", cleaned):
        return None

    if country.upper() in COMMA_DECIMAL_COUNTRIES:
        if "," in cleaned:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        elif re.fullmatch(r"\d{1,3}(\.\d{3})+", cleaned):
            cleaned = cleaned.replace(".", "")
    else:
        cleaned = cleaned.replace(",", "")

    cleaned = cleaned.strip(".")
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None

    if value < 0:
        return None
    return value.quantize(Decimal("0.01"))


def parse_shipping_cost(text: Optional[str], country: str) -> Optional[Decimal]:
    """Shipping text -> cost (0.00 when free), or None if it has no price."""
    if not text:
        return None
    lowered = text.lower()
    if any(phrase in lowered for phrase in FREE_SHIPPING_PHRASES):
        return Decimal("0.00")
    return parse_localized_price(text, country)
