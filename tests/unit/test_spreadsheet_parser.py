"""
Unit tests for the spreadsheet reader and column mapping suggestion.

Run: pytest tests/unit/test_spreadsheet_parser.py -v
"""

import pytest
from io import BytesIO

import pandas as pd

from exceptions import SpreadsheetParseError
from models.import_session import FileType
from parsers.spreadsheet_parser import (
    detect_file_type,
    parse_spreadsheet,
    suggest_column_mapping,
)


class TestDetectFileType:
    """Tests for detect_file_type()"""

    @pytest.mark.parametrize("filename,expected", [
        ("prices.xlsx", FileType.EXCEL),
        ("PRICES.XLS", FileType.EXCEL),
        ("prices.csv", FileType.CSV),
        ("export.txt", FileType.CSV),
    ])
    def test_known_extensions(self, filename, expected):
        assert detect_file_type(filename) == expected

    def test_unsupported_extension_raises(self):
        """Should reject anything but CSV and Excel."""
        with pytest.raises(SpreadsheetParseError) as exc_info:
            detect_file_type("catalog.pdf")

        assert exc_info.value.code == "SPREADSHEET_PARSE_ERROR"


class TestParseCsv:
    """Tests for parse_spreadsheet() with CSV input"""

    def test_semicolon_delimited(self):
        """Should sniff ';' and keep every cell as text."""
        # Arrange
        content = (
            "Merk;Productnaam;Prijs;EAN\n"
            "Dior;Sauvage;45,50;3348901250146\n"
            "Chanel;Bleu;62,00;0031458910736\n"
        ).encode("utf-8")

        # Act
        result = parse_spreadsheet(content, "leverancier.csv")

        # Assert
        assert result.file_type == FileType.CSV
        assert result.headers == ["Merk", "Productnaam", "Prijs", "EAN"]
        assert result.row_count == 2
        assert result.rows[0]["Prijs"] == "45,50"
        # Leading zeros survive because nothing is read as a number
        assert result.rows[1]["EAN"] == "0031458910736"

    def test_comma_delimited_with_blank_cells(self):
        """Should read ',' files and turn blank cells into None."""
        content = b"Brand,Product,Price,Size\nDior,Sauvage,45.50,\n,,,\nChanel,Bleu,62.00,50ml\n"

        result = parse_spreadsheet(content, "supplier.csv")

        assert result.row_count == 2
        assert result.rows[0]["Size"] is None
        assert result.rows[1]["Brand"] == "Chanel"

    def test_cp1252_encoding(self):
        """Should fall back to Windows encodings."""
        content = "Brand;Product;Price\nLancôme;Idôle;39,90\n".encode("cp1252")

        result = parse_spreadsheet(content, "supplier.csv")

        assert result.rows[0]["Brand"] == "Lancôme"

    def test_empty_file_raises(self):
        """Should wrap reader failures in SpreadsheetParseError."""
        with pytest.raises(SpreadsheetParseError):
            parse_spreadsheet(b"", "empty.csv")

    def test_header_only_has_no_data(self):
        """A header without rows parses but has no data."""
        result = parse_spreadsheet(b"Brand,Product,Price\n", "supplier.csv")

        assert result.headers == ["Brand", "Product", "Price"]
        assert result.has_data is False


class TestParseExcel:
    """Tests for parse_spreadsheet() with Excel input"""

    def test_reads_first_sheet_as_text(self):
        """Should read .xlsx through openpyxl as text cells."""
        # Arrange
        buffer = BytesIO()
        pd.DataFrame({
            "Brand": ["Dior", "Chanel"],
            "Product": ["Sauvage", "Bleu"],
            "Price": ["45.50", "62.00"],
            "Unnamed: 3": [None, None],
        }).to_excel(buffer, index=False)

        # Act
        result = parse_spreadsheet(buffer.getvalue(), "supplier.xlsx")

        # Assert
        assert result.file_type == FileType.EXCEL
        assert result.headers == ["Brand", "Product", "Price"]
        assert result.rows[1] == {"Brand": "Chanel", "Product": "Bleu", "Price": "62.00"}

    def test_corrupt_excel_raises(self):
        """Should raise SpreadsheetParseError for unreadable workbooks."""
        with pytest.raises(SpreadsheetParseError) as exc_info:
            parse_spreadsheet(b"not a workbook", "supplier.xlsx")

        assert exc_info.value.details["filename"] == "supplier.xlsx"


class TestSuggestColumnMapping:
    """Tests for suggest_column_mapping()"""

    def test_exact_aliases(self):
        """Should map common English headers."""
        mapping = suggest_column_mapping(["Brand", "Product Name", "Wholesale Price", "EAN", "Size"])

        assert mapping.brand == "Brand"
        assert mapping.product_name == "Product Name"
        assert mapping.wholesale_price == "Wholesale Price"
        assert mapping.ean == "EAN"
        assert mapping.variant_size == "Size"
        assert mapping.is_usable

    def test_dutch_headers(self):
        """Should map Dutch supplier headers."""
        mapping = suggest_column_mapping(["Merk", "Productnaam", "Prijs", "Inhoud"])

        assert mapping.brand == "Merk"
        assert mapping.product_name == "Productnaam"
        assert mapping.wholesale_price == "Prijs"
        assert mapping.variant_size == "Inhoud"

    def test_partial_match_and_units_in_header(self):
        """Should match headers that contain an alias, ignoring '(…)' parts."""
        mapping = suggest_column_mapping(["Brand", "Article Description", "Net Price (€)"])

        assert mapping.product_name == "Article Description"
        assert mapping.wholesale_price == "Net Price (€)"

    def test_header_used_once(self):
        """A header should map to one field only."""
        mapping = suggest_column_mapping(["Price"])

        assert mapping.wholesale_price == "Price"
        assert mapping.last_purchase_price is None

    def test_unknown_headers_leave_required_missing(self):
        """Should report what could not be mapped."""
        mapping = suggest_column_mapping(["Col A", "Col B"])

        assert mapping.missing_required() == ["brand", "product_name", "wholesale_price"]
