"""
API tests for the import and scraping routes.

Run: pytest tests/unit/test_routes.py -v
"""

import json
import pytest

from models.scraping import PriceScanRequest, ScrapingSource
from scrapers import ScraperRegistry
from services.price_scan_service import PriceScanService

from tests.factories import ImportSessionFactory, NormalizedProductFactory, ScrapingSourceFactory


CSV = (
    "Merk;Productnaam;Prijs;Inhoud;EAN\n"
    "Dior;Sauvage;45,50;100 ml;3348901250146\n"
    "Chanel;Bleu de Chanel;62,00;50 ml;3145891073607\n"
).encode("utf-8")


class NoResultScraper:
    """Scraper that never finds anything."""

    def __init__(self, source: ScrapingSource):
        self.source = source
        self.terms: list[str] = []

    def search_products(self, term):
        return []

    def scrape_product(self, term):
        self.terms.append(term)
        return None

    def has_anti_bot_protection(self):
        return False


@pytest.fixture
def client(test_client_with_mock_db):
    return test_client_with_mock_db


class TestHealth:
    def test_health_reports_counts(self, client, mock_supabase):
        mock_supabase.set_table_data("scraping_sources", [ScrapingSourceFactory.bol_com()])

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"]["sources_count"] == 1


class TestImportRoutes:
    """Tests for /api/imports"""

    def test_upload_imports_file(self, client, mock_supabase):
        """Should suggest a mapping from the Dutch headers and import."""
        # Act
        response = client.post(
            "/api/imports/upload",
            files={"file": ("leverancier.csv", CSV, "text/csv")},
            data={"supplier_id": "supplier-1"},
        )

        # Assert
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "completed"
        assert body["progress"]["successful_rows"] == 2
        products = mock_supabase.rows("normalized_products")
        assert sorted(p["brand"] for p in products) == ["Chanel", "Dior"]
        assert {p["variant_size"] for p in products} == {"100ml", "50ml"}

    def test_upload_bad_mapping_json(self, client):
        response = client.post(
            "/api/imports/upload",
            files={"file": ("leverancier.csv", CSV, "text/csv")},
            data={"column_mapping": "{not json"},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_COLUMN_MAPPING"

    def test_upload_explicit_mapping(self, client, mock_supabase):
        mapping = {"brand": "Merk", "product_name": "Productnaam", "wholesale_price": "Prijs"}

        response = client.post(
            "/api/imports/upload",
            files={"file": ("leverancier.csv", CSV, "text/csv")},
            data={"column_mapping": json.dumps(mapping)},
        )

        assert response.status_code == 200
        assert {p["ean"] for p in mock_supabase.rows("normalized_products")} == {None}

    def test_preview(self, client):
        response = client.post(
            "/api/imports/preview",
            files={"file": ("leverancier.csv", CSV, "text/csv")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["row_count"] == 2
        assert body["suggested_mapping"]["brand"] == "Merk"

    def test_unreadable_file(self, client):
        response = client.post(
            "/api/imports/preview",
            files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "SPREADSHEET_PARSE_ERROR"

    def test_create_import_from_rows(self, client, mock_supabase, sample_rows):
        payload = {
            "rows": sample_rows,
            "column_mapping": {
                "brand": "Brand", "product_name": "Product", "wholesale_price": "Price",
                "variant_size": "Size", "ean": "EAN",
            },
            "duplicate_strategy": "skip",
        }

        response = client.post("/api/imports", json=payload)

        assert response.status_code == 200
        assert response.json()["progress"]["successful_rows"] == 3

    def test_list_imports(self, client, mock_supabase):
        """Newest session first, with pagination totals."""
        mock_supabase.set_table_data("import_sessions", [
            ImportSessionFactory.create(id="session-old", started_at="2026-03-01T09:00:00+00:00"),
            ImportSessionFactory.create(id="session-new", started_at="2026-03-02T09:00:00+00:00"),
        ])

        response = client.get("/api/imports", params={"page_size": 1})

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["total_pages"] == 2
        assert [s["id"] for s in body["data"]] == ["session-new"]

    def test_get_import_not_found(self, client):
        """Errors come back in the standard envelope."""
        response = client.get("/api/imports/missing")

        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "IMPORT_SESSION_NOT_FOUND"
        assert error["details"] == {"id": "missing"}

    def test_rollback_preview_and_rollback(self, client, mock_supabase):
        # Arrange
        mock_supabase.set_table_data("import_sessions", [ImportSessionFactory.create(id="session-1")])
        mock_supabase.set_table_data("normalized_products", [
            NormalizedProductFactory.create(import_session_id="session-1", ean="3348901250146"),
            NormalizedProductFactory.create(import_session_id="session-1", ean="3145891073607"),
        ])

        # Act
        preview = client.get("/api/imports/session-1/rollback/preview")
        result = client.post(
            "/api/imports/session-1/rollback",
            json={"backup_before_rollback": False, "reason": "Wrong file"},
        )

        # Assert
        assert preview.status_code == 200
        assert preview.json()["products_to_rollback"] == 2
        assert result.status_code == 200
        assert result.json()["rolled_back_products"] == 2
        assert mock_supabase.rows("normalized_products") == []

    def test_rollback_running_session_conflicts(self, client, mock_supabase):
        mock_supabase.set_table_data("import_sessions", [
            ImportSessionFactory.create(id="session-1", status="running")
        ])

        response = client.post("/api/imports/session-1/rollback", json={})

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "ROLLBACK_NOT_ALLOWED"

    def test_restore_missing_backup(self, client):
        response = client.post("/api/imports/backups/backup_missing_1/restore")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "BACKUP_NOT_FOUND"


class TestScrapingRoutes:
    """Tests for /api/scraping"""

    @pytest.fixture
    def scan_data(self, mock_supabase, supplier):
        mock_supabase.set_table_data("suppliers", [supplier])
        mock_supabase.set_table_data("scraping_sources", [
            ScrapingSourceFactory.amazon_fr(),
            ScrapingSourceFactory.bol_com(),
        ])
        mock_supabase.set_table_data("normalized_products", [
            NormalizedProductFactory.create(brand="Dior", product_name="Sauvage"),
        ])
        return mock_supabase

    @pytest.fixture
    def scan_service(self, scan_data, monkeypatch):
        """Price scan service with offline scrapers in place of the singleton."""
        registry = ScraperRegistry()
        registry.register("bol_com", lambda source, timeout_ms, retries: NoResultScraper(source))
        registry.register("amazon_fr", lambda source, timeout_ms, retries: NoResultScraper(source))
        service = PriceScanService(registry=registry, sleep=lambda _: None)
        monkeypatch.setattr("services.price_scan_service._price_scan_service", service)
        return service

    def test_list_sources_in_priority_order(self, client, scan_data):
        response = client.get("/api/scraping/sources")

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == ["source-bol", "source-amazon-fr"]

    def test_price_scan_accepted(self, client, scan_service, scan_data):
        """Returns 202 with the job id; the job runs after the response."""
        # Act
        response = client.post("/api/scraping/price-scan", json={
            "supplier_id": "supplier-1",
            "source_ids": ["source-bol", "source-amazon-fr"],
            "delay_between_batches_ms": 0,
        })

        # Assert
        assert response.status_code == 202
        job_id = response.json()["job_id"]
        assert response.json()["total_products"] == 1

        job = client.get(f"/api/scraping/jobs/{job_id}").json()
        assert job["status"] == "completed"
        assert job["processed_products"] == 1
        assert job["failed_products"] == 1

    def test_price_scan_unknown_supplier(self, client, scan_service):
        response = client.post("/api/scraping/price-scan", json={
            "supplier_id": "missing",
            "source_ids": ["source-bol"],
        })

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SUPPLIER_NOT_FOUND"

    def test_price_scan_requires_sources(self, client, scan_service):
        response = client.post("/api/scraping/price-scan", json={
            "supplier_id": "supplier-1",
            "source_ids": [],
        })

        assert response.status_code == 422

    def test_list_jobs(self, client, scan_service):
        scan_service.start_scan(PriceScanRequest(supplier_id="supplier-1", source_ids=["source-bol"]))

        response = client.get("/api/scraping/jobs")

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["data"][0]["status"] == "pending"

    def test_stop_job(self, client, scan_service):
        job_id = scan_service.start_scan(PriceScanRequest(supplier_id="supplier-1", source_ids=["source-bol"])).job_id

        response = client.post(f"/api/scraping/jobs/{job_id}/stop")

        assert response.status_code == 200
        assert response.json()["status"] == "stopped"

    def test_job_not_found(self, client, scan_service):
        response = client.get("/api/scraping/jobs/missing/results")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "SCRAPING_JOB_NOT_FOUND"
