"""
Unit tests for ImportService.

Run: pytest tests/unit/test_import_service.py -v
"""

import pytest

from config import settings
from exceptions import ImportTooLargeError, ImportValidationError, InvalidColumnMappingError
from models.import_session import (
    DuplicateCheckRequest,
    FileType,
    ImportRequest,
    ImportStatus,
)
from models.product import ColumnMapping
from services.import_service import ImportService

from tests.factories import NormalizedProductFactory


@pytest.fixture
def service(mock_db):
    return ImportService()


class TestStartImport:
    """Tests for ImportService.start_import()"""

    def test_runs_session_to_completion(self, service, mock_supabase, column_mapping, sample_rows):
        """Should open a session, import, and close it as completed."""
        # Arrange
        request = ImportRequest(
            rows=sample_rows,
            column_mapping=column_mapping,
            supplier_id="supplier-1",
            filename="march.json",
        )

        # Act
        response = service.start_import(request)

        # Assert
        assert response.status == ImportStatus.COMPLETED
        assert response.progress.successful_rows == 3
        session = mock_supabase.rows("import_sessions")[0]
        assert session["id"] == response.import_session_id
        assert session["filename"] == "march.json"
        assert session["status"] == "completed"
        products = mock_supabase.rows("normalized_products")
        assert {p["supplier_id"] for p in products} == {"supplier-1"}

    def test_missing_required_mapping_rejected(self, service, mock_supabase, sample_rows):
        """Should refuse before any session is opened."""
        request = ImportRequest(rows=sample_rows, column_mapping=ColumnMapping(brand="Brand"))

        with pytest.raises(InvalidColumnMappingError) as exc_info:
            service.start_import(request)

        assert exc_info.value.details["missing_fields"] == ["product_name", "wholesale_price"]
        assert mock_supabase.rows("import_sessions") == []

    def test_too_many_rows_rejected(self, service, column_mapping, sample_rows, monkeypatch):
        """Should enforce import_max_rows."""
        monkeypatch.setattr(settings, "import_max_rows", 2)
        request = ImportRequest(rows=sample_rows, column_mapping=column_mapping)

        with pytest.raises(ImportTooLargeError):
            service.start_import(request)

    def test_strict_mode_rejects_whole_import(self, service, mock_supabase, column_mapping, sample_rows):
        """With import_only_valid=False one bad row stops everything."""
        # Arrange
        rows = [dict(row) for row in sample_rows]
        rows[2]["Price"] = "n/a"
        request = ImportRequest(rows=rows, column_mapping=column_mapping, import_only_valid=False)

        # Act
        with pytest.raises(ImportValidationError) as exc_info:
            service.start_import(request)

        # Assert
        errors = exc_info.value.details["errors"]
        assert errors == [{"row": 3, "field": "wholesale_price", "message": "Wholesale price is required and must be a valid number"}]
        assert mock_supabase.rows("normalized_products") == []
        assert mock_supabase.rows("import_sessions")[0]["status"] == "failed"

    def test_strict_mode_passes_when_all_valid(self, service, column_mapping, sample_rows):
        request = ImportRequest(rows=sample_rows, column_mapping=column_mapping, import_only_valid=False)

        response = service.start_import(request)

        assert response.progress.successful_rows == 3

    def test_progress_callback(self, service, column_mapping, sample_rows, monkeypatch):
        """Should forward progress copies to the caller."""
        monkeypatch.setattr(settings, "import_batch_delay_ms", 0)
        reports = []
        request = ImportRequest(rows=sample_rows, column_mapping=column_mapping, batch_size=1)

        service.start_import(request, on_progress=reports.append)

        assert reports[-1].is_complete
        assert [r.processed_rows for r in reports] == [1, 2, 3, 3]


class TestImportFile:
    """Tests for ImportService.import_file() and preview_file()"""

    CSV = (
        "Merk;Productnaam;Prijs;EAN\n"
        "Dior;Sauvage;45,50;3348901250146\n"
        "Chanel;Bleu de Chanel;62,00;3145891073607\n"
    ).encode("utf-8")

    def test_suggests_mapping_when_none_given(self, service, mock_supabase):
        """An empty mapping is replaced by the header suggestion."""
        # Arrange
        request = ImportRequest(rows=[], column_mapping=ColumnMapping())

        # Act
        response = service.import_file(self.CSV, "leverancier.csv", request)

        # Assert
        assert response.progress.successful_rows == 2
        session = mock_supabase.rows("import_sessions")[0]
        assert session["filename"] == "leverancier.csv"
        assert session["file_type"] == FileType.CSV.value
        prices = sorted(p["wholesale_price"] for p in mock_supabase.rows("normalized_products"))
        assert prices == ["45.50", "62.00"]

    def test_explicit_mapping_is_kept(self, service):
        """A mapping that leaves out the price column fails validation."""
        request = ImportRequest(
            rows=[],
            column_mapping=ColumnMapping(brand="Merk", product_name="Productnaam"),
        )

        with pytest.raises(InvalidColumnMappingError):
            service.import_file(self.CSV, "leverancier.csv", request)

    def test_preview(self, service):
        """Should return headers, sample rows and a suggestion."""
        preview = service.preview_file(self.CSV, "leverancier.csv")

        assert preview.row_count == 2
        assert preview.headers == ["Merk", "Productnaam", "Prijs", "EAN"]
        assert preview.suggested_mapping.wholesale_price == "Prijs"
        assert preview.missing_required == []
        assert preview.sample_rows[0]["Merk"] == "Dior"


class TestCheckDuplicates:
    """Tests for ImportService.check_duplicates()"""

    def test_reports_without_writing(self, service, mock_supabase, column_mapping, sample_rows):
        """Should list collisions and leave the catalog alone."""
        # Arrange
        mock_supabase.set_table_data("normalized_products", [
            NormalizedProductFactory.create(id="existing-1", ean="3145891073607")
        ])
        request = DuplicateCheckRequest(rows=sample_rows, column_mapping=column_mapping)

        # Act
        response = service.check_duplicates(request)

        # Assert
        assert response.total_rows == 3
        assert response.duplicate_count == 1
        assert response.duplicates[0].row == 2
        assert response.duplicates[0].existing_id == "existing-1"
        assert len(mock_supabase.rows("normalized_products")) == 1
        assert mock_supabase.rows("import_sessions") == []

    def test_repeat_within_file(self, service, column_mapping, sample_rows):
        request = DuplicateCheckRequest(rows=sample_rows + [sample_rows[0]], column_mapping=column_mapping)

        response = service.check_duplicates(request)

        assert response.duplicate_count == 1
        assert response.duplicates[0].row == 4
