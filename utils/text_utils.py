"""
Text utilities for comparing product names, brands and headers.

Supplier files mix accents, case and punctuation freely, so every
comparison goes through one of these normalizers first.
"""

import re
import unicodedata
from typing import Optional


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping base characters.

    "Crème Brûlée" → "Creme Brulee"
    """
    # NFD separates base chars from their combining marks (category 'Mn')
    normalized = unicodedata.normalize('NFD', text)
    return ''.join(
        c for c in normalized
        if unicodedata.category(c) != 'Mn'
    )


def normalize_match_text(text: Optional[str]) -> Optional[str]:
    """
    Normalize a brand or product name for duplicate detection.

    - "  L'Oréal Paris " → "loreal paris"
    - "Eau-de-Parfum"    → "eau de parfum"

    Args:
        text: Original name (may have accents, mixed case, punctuation)

    Returns:
        Lowercase ASCII words separated by single spaces, or None if empty
    """
    if not text:
        return None

    text = strip_accents(text.strip()).lower()
    text = text.replace("'", "").replace("’", "")
    text = re.sub(r"[^a-z0-9]+", " ", text).strip()

    return text or None


def natural_key(brand: Optional[str], product_name: Optional[str]) -> Optional[str]:
    """
    Name+brand key used when no EAN is available.

    Returns:
        "brand|name" in normalized form, or None if either part is empty
    """
    brand_key = normalize_match_text(brand)
    name_key = normalize_match_text(product_name)
    if not brand_key or not name_key:
        return None
    return f"{brand_key}|{name_key}"


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a spreadsheet header for alias lookup.

    "Wholesale_Price (€)" → "wholesale price"
    """
    if not header:
        return ""
    text = strip_accents(str(header)).lower()
    text = re.sub(r"\(.*?\)", " ", text)
    text = re.sub(r"[^a-z0-9]+", " ", text)
    return text.strip()
