"""
Product matcher: how likely is a scraped listing the same product?

Confidence is the strongest of three signals, minus penalties for
listing types that are never a like-for-like offer:

    EAN match              -> 1.0
    brand + size match     -> up to 0.9
    fuzzy title similarity -> up to 0.7

Penalties (tester, gift set, sample, ...) are subtracted and the
result is clamped to [0, 1].
"""

import re
from dataclasses import dataclass
from typing import Optional

from rapidfuzz import fuzz
import structlog

from models.product import NormalizedProductResponse
from models.scraping import ScrapedListing
from utils.text_utils import normalize_match_text

logger = structlog.get_logger(__name__)


EAN_WEIGHT = 1.0
BRAND_SIZE_WEIGHT = 0.9
FUZZY_TITLE_WEIGHT = 0.7

# Sizes within 5% of each other are the same size
SIZE_TOLERANCE = 0.05

PENALTY_RULES: tuple[tuple[str, float], ...] = (
    ("tester", 0.3),
    ("gift set", 0.4),
    ("bundle", 0.3),
    ("refill", 0.2),
    ("sample", 0.5),
    ("mini", 0.1),
    ("travel", 0.1),
)

# Words that appear in nearly every fragrance title
STOP_WORDS = {
    "the", "a", "an", "and", "or", "in", "on", "at", "to", "for", "of", "with",
    "by", "from", "perfume", "cologne", "eau", "de", "parfum", "toilette",
    "spray", "bottle", "voor", "pour", "en", "et",
}

SIZE_PATTERN = re.compile(
    r"(\d+(?:[.,]\d+)?)\s*(ml|milliliters?|millilitres?|l|liters?|litres?|kg|kilograms?|g|grams?)\b",
    re.IGNORECASE
)

UNIT_FACTORS = {"ml": ("volume", 1), "l": ("volume", 1000), "g": ("mass", 1), "kg": ("mass", 1000)}


@dataclass
class MatchScore:
    """Score breakdown for one listing."""
    confidence: float
    ean_score: float = 0.0
    brand_size_score: float = 0.0
    title_score: float = 0.0
    penalty: float = 0.0


def _unit_key(unit: str) -> Optional[str]:
    unit = unit.lower()
    if unit.startswith("ml") or unit.startswith("milli"):
        return "ml"
    if unit.startswith("kg") or unit.startswith("kilo"):
        return "kg"
    if unit.startswith("l"):
        return "l"
    if unit.startswith("g"):
        return "g"
    return None


def extract_sizes(text: Optional[str]) -> list[tuple[str, float]]:
    """All sizes in a text as (dimension, base-unit amount)."""
    if not text:
        return []
    sizes = []
    for amount, unit in SIZE_PATTERN.findall(text):
        key = _unit_key(unit)
        if key is None:
            continue
        dimension, factor = UNIT_FACTORS[key]
        sizes.append((dimension, float(amount.replace(",", ".")) * factor))
    return sizes


def sizes_match(product_size: Optional[str], title: str) -> bool:
    """True if any size in the title is within tolerance of the product size."""
    wanted = extract_sizes(product_size)
    if not wanted:
        return False
    dimension, amount = wanted[0]
    for other_dimension, other_amount in extract_sizes(title):
        if other_dimension != dimension:
            continue
        tolerance = max(amount, other_amount) * SIZE_TOLERANCE
        if abs(amount - other_amount) <= tolerance:
            return True
    return False


def _strip_stop_words(text: str) -> str:
    return " ".join(w for w in text.split() if w not in STOP_WORDS)


class ProductMatcher:
    """Scores scraped listings against a catalog product."""

    def __init__(
        self,
        penalty_rules: tuple[tuple[str, float], ...] = PENALTY_RULES,
        min_confidence: float = 0.0
    ):
        self.penalty_rules = penalty_rules
        self.min_confidence = min_confidence

    def score(self, product: NormalizedProductResponse, listing: ScrapedListing) -> MatchScore:
        """
        Score one listing.

        Args:
            product: Catalog product being priced
            listing: Listing scraped from a source

        Returns:
            MatchScore with confidence in [0, 1]
        """
        title = listing.title or ""
        ean_score = EAN_WEIGHT if self._ean_matches(product.ean, listing) else 0.0
        brand_size_score = self._brand_size_score(product, title) * BRAND_SIZE_WEIGHT
        title_score = self._title_score(product, title) * FUZZY_TITLE_WEIGHT
        penalty = self.penalty_for(title)

        confidence = max(ean_score, brand_size_score, title_score) - penalty
        confidence = round(min(1.0, max(0.0, confidence)), 4)

        return MatchScore(
            confidence=confidence,
            ean_score=ean_score,
            brand_size_score=round(brand_size_score, 4),
            title_score=round(title_score, 4),
            penalty=round(penalty, 4),
        )

    def penalty_for(self, title: str) -> float:
        lowered = title.lower()
        total = 0.0
        for pattern, penalty in self.penalty_rules:
            if re.search(rf"\b{re.escape(pattern)}\b", lowered):
                total += penalty
        return total

    # ===================
    # SIGNALS
    # ===================

    def _ean_matches(self, ean: Optional[str], listing: ScrapedListing) -> bool:
        if not ean:
            return False
        if listing.ean:
            return listing.ean == ean
        digits = re.sub(r"\D", "", listing.title or "")
        return ean in digits

    def _brand_size_score(self, product: NormalizedProductResponse, title: str) -> float:
        brand = normalize_match_text(product.brand) or ""
        normalized_title = normalize_match_text(title) or ""
        if not brand or not normalized_title:
            return 0.0

        similarity = fuzz.partial_ratio(brand, normalized_title) / 100
        if similarity > 0.8:
            score = 0.6
        elif similarity > 0.6:
            score = 0.4
        elif similarity > 0.4:
            score = 0.2
        else:
            score = 0.0

        if sizes_match(product.variant_size, title):
            score += 0.4

        return min(1.0, score)

    def _title_score(self, product: NormalizedProductResponse, title: str) -> float:
        name = _strip_stop_words(normalize_match_text(product.product_name) or "")
        listing_title = normalize_match_text(title) or ""
        cleaned_title = _strip_stop_words(listing_title)
        if not name or not cleaned_title:
            return 0.0

        similarity = fuzz.token_set_ratio(name, cleaned_title) / 100

        brand = normalize_match_text(product.brand)
        if brand and brand in listing_title:
            similarity += 0.2

        return min(1.0, similarity)
