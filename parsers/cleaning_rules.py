"""
Cleaning rules for supplier spreadsheet values.

Every function here is total: bad input yields a neutral value (None,
the default, or the input unchanged), never an exception. Every function
is also idempotent, so cleaning an already-clean value returns it as is.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from models.product import CaseStyle


VALID_EAN_LENGTHS = (8, 12, 13, 14)

SIZE_UNIT_ALIASES = {
    "millilitres": "ml",
    "milliliters": "ml",
    "millilitre": "ml",
    "milliliter": "ml",
    "mls": "ml",
    "litres": "l",
    "liters": "l",
    "litre": "l",
    "liter": "l",
    "ltr": "l",
    "kilograms": "kg",
    "kilogram": "kg",
    "kilos": "kg",
    "kilo": "kg",
    "grams": "g",
    "gram": "g",
    "grs": "g",
    "gr": "g",
}

CURRENCY_ALIASES = {
    "EURO": "EUR",
    "EUROS": "EUR",
    "€": "EUR",
    "DOLLAR": "USD",
    "DOLLARS": "USD",
    "$": "USD",
    "POUND": "GBP",
    "POUNDS": "GBP",
    "£": "GBP",
}

# Multi-unit words first so "twin pack" reads as 2
PACK_INDICATORS = (
    ("quad", 4),
    ("triple", 3),
    ("twin", 2),
    ("duo", 2),
    ("single", 1),
    ("bundle", 1),
    ("pack", 1),
    ("set", 1),
)

UNAVAILABLE_WORDS = (
    "unavailable",
    "not available",
    "out of stock",
    "sold out",
    "inactive",
    "false",
    "no",
    "0",
)

AVAILABLE_WORDS = (
    "available",
    "in stock",
    "active",
    "true",
    "yes",
    "1",
)

_SIZE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)(ml|kg|l|g)(?![a-z])")
_SIZE_ALIAS_PATTERN = re.compile(
    "(" + "|".join(sorted(SIZE_UNIT_ALIASES, key=len, reverse=True)) + r")(?![a-z])"
)
_LEADING_NUMBER = re.compile(r"\d*\.?\d+")
_TITLE_WORD = re.compile(r"\w\S*")
_SPECIAL_CHARS = re.compile(r"[^\w\s\-.]")
_EMPTY_MARKERS = {"", "nan", "none", "null"}


def _as_text(value: Any) -> str:
    """Render a raw spreadsheet cell as text ('' for blanks)."""
    if value is None:
        return ""
    text = str(value)
    if text.strip().lower() in _EMPTY_MARKERS:
        return ""
    return text


def _word_pattern(words: tuple[str, ...]) -> re.Pattern:
    return re.compile(
        r"\b(" + "|".join(re.escape(w) for w in words) + r")\b",
        re.IGNORECASE
    )


_UNAVAILABLE_PATTERN = _word_pattern(UNAVAILABLE_WORDS)
_AVAILABLE_PATTERN = _word_pattern(AVAILABLE_WORDS)


# ===================
# STRINGS
# ===================

def to_title_case(value: str) -> str:
    """Capitalize each word, lower-casing the rest of it."""
    return _TITLE_WORD.sub(
        lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(),
        value
    )


def clean_string(
    value: Any,
    trim: bool = True,
    case: Optional[CaseStyle] = None,
    remove_special_chars: bool = False
) -> str:
    """
    Clean a free-text cell.

    Args:
        value: Raw cell value
        trim: Strip surrounding whitespace
        case: Optional case folding (lower, upper or title)
        remove_special_chars: Drop anything but word chars, spaces, '-' and '.'

    Returns:
        Cleaned string ('' for blank input)
    """
    cleaned = _as_text(value)
    if not cleaned:
        return ""

    if trim:
        cleaned = cleaned.strip()

    if remove_special_chars:
        cleaned = _SPECIAL_CHARS.sub("", cleaned)

    if case == CaseStyle.LOWER:
        cleaned = cleaned.lower()
    elif case == CaseStyle.UPPER:
        cleaned = cleaned.upper()
    elif case == CaseStyle.TITLE:
        cleaned = to_title_case(cleaned)

    return cleaned


# ===================
# SIZES
# ===================

def normalize_size(value: Any) -> Optional[str]:
    """
    Normalize a size/volume cell.

    "100 ML" -> "100ml", "1,5 Litre" -> "1.5l", "250 grams" -> "250g".
    Values with no <number><unit> match come back lower-cased with
    whitespace removed.
    """
    text = _as_text(value)
    if not text:
        return None

    normalized = re.sub(r"\s+", "", text.lower())
    normalized = _SIZE_ALIAS_PATTERN.sub(lambda m: SIZE_UNIT_ALIASES[m.group(0)], normalized)
    normalized = re.sub(r"(\d),(\d)", r"\1.\2", normalized)

    match = _SIZE_PATTERN.search(normalized)
    if match:
        number, unit = match.groups()
        return f"{number}{unit}"

    return normalized


# ===================
# IDENTIFIERS
# ===================

def clean_ean(value: Any) -> Optional[str]:
    """
    Strip non-digits from an EAN/GTIN.

    Returns:
        Digits only when the length is 8, 12, 13 or 14; otherwise None
    """
    text = _as_text(value)
    if not text:
        return None

    # Excel hands numeric EANs back as floats ("8712345678906.0")
    if re.fullmatch(r"\d+\.0+", text.strip()):
        text = text.strip().split(".")[0]

    digits = re.sub(r"\D", "", text)
    if len(digits) in VALID_EAN_LENGTHS:
        return digits
    return None


def is_valid_ean(ean: Optional[str]) -> bool:
    """Format check only (no checksum)."""
    return bool(ean) and re.fullmatch(r"\d{8,14}", ean) is not None


# ===================
# PRICES & CURRENCY
# ===================

def parse_price(value: Any) -> Optional[Decimal]:
    """
    Parse a price written in either US or European notation.

    A comma means European notation: dots are thousands separators and
    the comma is the decimal point ("1.234,56" -> 1234.56). Without a
    comma the text is read as-is ("45.00" -> 45.00).

    Returns:
        Decimal rounded to 2 places, or None when unparsable or negative
    """
    if isinstance(value, Decimal):
        text = format(value, "f")
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        text = format(Decimal(repr(value)), "f")
    else:
        text = _as_text(value)
    if not text:
        return None

    negative = text.strip().startswith("-")
    cleaned = re.sub(r"[^\d.,]", "", text)

    if "," in cleaned:
        cleaned = cleaned.replace(".", "")
        cleaned = cleaned.replace(",", ".", 1).replace(",", "")

    match = _LEADING_NUMBER.match(cleaned)
    if not match:
        return None

    try:
        price = Decimal(match.group(0))
    except InvalidOperation:
        return None

    if negative or price < 0:
        return None

    return price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def normalize_currency(value: Any, default: str = "EUR") -> str:
    """Map currency words and symbols to ISO codes; pass anything else through upper-cased."""
    text = _as_text(value).strip().upper()
    if not text:
        return default
    return CURRENCY_ALIASES.get(text, text)


# ===================
# PACKS & AVAILABILITY
# ===================

def parse_pack_size(value: Any) -> int:
    """
    Infer units per pack.

    A leading integer wins ("6 x 50ml" -> 6); otherwise a pack word
    ("duo" -> 2). Defaults to 1.
    """
    text = _as_text(value)
    if not text:
        return 1

    match = re.search(r"\d+", text)
    if match:
        size = int(match.group(0))
        return size if size > 0 else 1

    lowered = text.lower()
    for word, size in PACK_INDICATORS:
        if word in lowered:
            return size

    return 1


def parse_availability(value: Any) -> bool:
    """
    Read a stock/availability cell.

    Unknown or ambiguous text counts as available.
    """
    if isinstance(value, bool):
        return value

    text = _as_text(value).strip()
    if not text:
        return True

    if _UNAVAILABLE_PATTERN.search(text):
        return False
    if _AVAILABLE_PATTERN.search(text):
        return True

    return True
