"""
Unit tests for the cleaning rules.

Run: pytest tests/unit/test_cleaning_rules.py -v
"""

import pytest
from decimal import Decimal

from models.product import CaseStyle
from parsers.cleaning_rules import (
    clean_ean,
    clean_string,
    is_valid_ean,
    normalize_currency,
    normalize_size,
    parse_availability,
    parse_pack_size,
    parse_price,
    to_title_case,
)


class TestCleanString:
    """Tests for clean_string()"""

    def test_trims_whitespace(self):
        """Should strip surrounding whitespace."""
        assert clean_string("  Dior  ") == "Dior"

    def test_blank_markers_become_empty(self):
        """None, NaN and 'null' cells should read as empty."""
        assert clean_string(None) == ""
        assert clean_string("nan") == ""
        assert clean_string(" NULL ") == ""

    @pytest.mark.parametrize("case,expected", [
        (CaseStyle.LOWER, "eau de parfum"),
        (CaseStyle.UPPER, "EAU DE PARFUM"),
        (CaseStyle.TITLE, "Eau De Parfum"),
    ])
    def test_case_folding(self, case, expected):
        """Should apply the requested case style."""
        assert clean_string("eau DE parfum", case=case) == expected

    def test_removes_special_chars(self):
        """Should keep word chars, spaces, dashes and dots only."""
        assert clean_string("Boss® Bottled!", remove_special_chars=True) == "Boss Bottled"

    def test_no_trim_keeps_spaces(self):
        """Should leave whitespace alone when trim is off."""
        assert clean_string(" Dior ", trim=False) == " Dior "

    def test_title_case_keeps_apostrophes_inside_word(self):
        """Should not capitalize after an apostrophe."""
        assert to_title_case("l'oreal paris") == "L'oreal Paris"


class TestNormalizeSize:
    """Tests for normalize_size()"""

    @pytest.mark.parametrize("raw,expected", [
        ("100 ML", "100ml"),
        ("1,5 Litre", "1.5l"),
        ("250 grams", "250g"),
        ("2 kilo", "2kg"),
        ("50ml", "50ml"),
    ])
    def test_normalizes_units(self, raw, expected):
        """Should collapse spacing and unit aliases."""
        assert normalize_size(raw) == expected

    def test_unknown_size_lowercased(self):
        """Should return lower-cased text without whitespace when no unit matches."""
        assert normalize_size("Travel Size") == "travelsize"

    def test_blank_returns_none(self):
        """Should return None for blanks."""
        assert normalize_size("") is None
        assert normalize_size(None) is None


class TestCleanEan:
    """Tests for clean_ean() and is_valid_ean()"""

    def test_strips_separators(self):
        """Should keep digits only."""
        assert clean_ean("123-456-789-0123") == "1234567890123"

    def test_excel_float_ean(self):
        """Should drop the '.0' Excel adds to numeric cells."""
        assert clean_ean("8712345678906.0") == "8712345678906"

    @pytest.mark.parametrize("raw", ["12345678", "737052347998", "3348901250146", "12345678901234"])
    def test_valid_lengths(self, raw):
        """Should accept 8, 12, 13 and 14 digit codes."""
        assert clean_ean(raw) == raw

    @pytest.mark.parametrize("raw", ["1234", "1234567890", "123456789012345", "abc"])
    def test_invalid_lengths_return_none(self, raw):
        """Should reject any other length."""
        assert clean_ean(raw) is None

    def test_is_valid_ean(self):
        """Format check only."""
        assert is_valid_ean("3348901250146") is True
        assert is_valid_ean(None) is False
        assert is_valid_ean("12ab") is False


class TestParsePrice:
    """Tests for parse_price()"""

    @pytest.mark.parametrize("raw,expected", [
        ("1.234,56", Decimal("1234.56")),
        ("45.00", Decimal("45.00")),
        ("€ 29,95", Decimal("29.95")),
        ("12,5", Decimal("12.50")),
        ("EUR 19.999", Decimal("20.00")),
        (45, Decimal("45.00")),
        (12.3, Decimal("12.30")),
    ])
    def test_parses_notations(self, raw, expected):
        """Should read both European and US notation."""
        assert parse_price(raw) == expected

    @pytest.mark.parametrize("raw", ["abc", "", None, "-5,00", "-3"])
    def test_unparsable_or_negative_returns_none(self, raw):
        """Should return None for text, blanks and negative prices."""
        assert parse_price(raw) is None


class TestNormalizeCurrency:
    """Tests for normalize_currency()"""

    def test_symbols_and_words(self):
        """Should map symbols and words to ISO codes."""
        assert normalize_currency("€") == "EUR"
        assert normalize_currency("dollars") == "USD"
        assert normalize_currency("£") == "GBP"

    def test_default_when_blank(self):
        """Should fall back to the default."""
        assert normalize_currency(None) == "EUR"
        assert normalize_currency("", default="USD") == "USD"

    def test_unknown_passes_through_uppercased(self):
        """Should upper-case codes it does not know."""
        assert normalize_currency("chf") == "CHF"


class TestParsePackSize:
    """Tests for parse_pack_size()"""

    @pytest.mark.parametrize("raw,expected", [
        ("6 x 50ml", 6),
        ("duo", 2),
        ("Twin Pack", 2),
        ("quad set", 4),
        ("gift set", 1),
        ("0", 1),
        (None, 1),
    ])
    def test_pack_sizes(self, raw, expected):
        """Leading integer wins, then pack words, default 1."""
        assert parse_pack_size(raw) == expected


class TestParseAvailability:
    """Tests for parse_availability()"""

    @pytest.mark.parametrize("raw", ["out of stock", "Sold Out", "not available", "no", "0", False])
    def test_unavailable(self, raw):
        """Should read stock-out wording as unavailable."""
        assert parse_availability(raw) is False

    @pytest.mark.parametrize("raw", ["in stock", "Available", "yes", "", None, "ask supplier", True])
    def test_available(self, raw):
        """Unknown or blank text counts as available."""
        assert parse_availability(raw) is True
