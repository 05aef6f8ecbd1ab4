"""
Unit tests for PriceScanService.

Scrapers are in-memory fakes registered on a fresh ScraperRegistry, so
the job loop, counters and lowest-price marking run for real against the
mock store without touching the network.

Run: pytest tests/unit/test_price_scan_service.py -v
"""

import pytest
from decimal import Decimal
from typing import Callable, Optional

from exceptions import (
    InactiveSourceError,
    InvalidScanConfigError,
    JobNotStoppableError,
    ScraperError,
    ScrapingJobNotFoundError,
    ScrapingSourceNotFoundError,
    SupplierNotFoundError,
)
from models.scraping import PriceScanRequest, ScrapedListing, ScrapingJobStatus, ScrapingSource
from scrapers import ScraperRegistry
from services.price_scan_service import PriceScanService
from services.scraping_job_service import ScrapingJobService

from tests.factories import NormalizedProductFactory, ScrapingSourceFactory


SOURCE_IDS = ["source-bol", "source-amazon-fr"]


class FakeScraper:
    """
    Scraper double keyed on the first word of the search term (the brand).

    prices: brand -> price string of the listing to return
    titles: brand -> listing title (defaults to the search term)
    fail_for: brands whose search raises ScraperError
    """

    def __init__(
        self,
        source: dict,
        prices: Optional[dict] = None,
        titles: Optional[dict] = None,
        fail_for: tuple = (),
        on_scrape: Optional[Callable[[str], None]] = None
    ):
        self.source = ScrapingSource(**source)
        self.prices = prices or {}
        self.titles = titles or {}
        self.fail_for = fail_for
        self.on_scrape = on_scrape
        self.terms: list[str] = []

    def search_products(self, term: str) -> list[ScrapedListing]:
        listing = self.scrape_product(term)
        return [listing] if listing else []

    def scrape_product(self, term: str) -> Optional[ScrapedListing]:
        self.terms.append(term)
        if self.on_scrape:
            self.on_scrape(term)

        brand = term.split()[0]
        if brand in self.fail_for:
            raise ScraperError(self.source.name, "Failed to fetch page: HTTP 503")
        if brand not in self.prices:
            return None
        return ScrapedListing(
            title=self.titles.get(brand, term),
            price=Decimal(self.prices[brand]),
            url=f"{self.source.base_url}/p/{brand.lower()}",
        )

    def has_anti_bot_protection(self) -> bool:
        return False


class RecordingJobService(ScrapingJobService):
    """Keeps every progress write for later inspection."""

    def __init__(self):
        super().__init__()
        self.progress: list[dict] = []

    def update_progress(self, job_id: str, **fields) -> None:
        self.progress.append(fields)
        super().update_progress(job_id, **fields)


def _registry(bol: FakeScraper, amazon: FakeScraper, created: Optional[list] = None) -> ScraperRegistry:
    def factory(scraper):
        def build(source, timeout_ms, max_retries):
            if created is not None:
                created.append((source.id, timeout_ms, max_retries))
            return scraper
        return build

    registry = ScraperRegistry()
    registry.register("bol_com", factory(bol))
    registry.register("amazon_fr", factory(amazon))
    return registry


def _request(**overrides) -> PriceScanRequest:
    data = {
        "supplier_id": "supplier-1",
        "source_ids": SOURCE_IDS,
        "batch_size": 1,
        "delay_between_batches_ms": 250,
    }
    data.update(overrides)
    return PriceScanRequest(**data)


@pytest.fixture
def catalog(mock_db, mock_supabase, supplier):
    """Two supplier-1 products, one for another supplier, both sources."""
    mock_supabase.set_table_data("suppliers", [
        supplier,
        {"id": "supplier-2", "name": "Leeg BV", "created_at": supplier["created_at"]},
    ])
    mock_supabase.set_table_data("scraping_sources", [
        ScrapingSourceFactory.bol_com(),
        ScrapingSourceFactory.amazon_fr(),
    ])
    mock_supabase.set_table_data("normalized_products", [
        NormalizedProductFactory.create(
            id="prod-dior", brand="Dior", product_name="Sauvage Eau de Toilette",
            variant_size="100ml", ean="3348901250146", wholesale_price="40.00"
        ),
        NormalizedProductFactory.create(
            id="prod-chanel", brand="Chanel", product_name="Bleu de Chanel",
            variant_size="50ml", ean="3145891073607", wholesale_price="62.00"
        ),
        NormalizedProductFactory.create(id="prod-other", supplier_id="supplier-3", brand="Dior"),
    ])
    return mock_supabase


@pytest.fixture
def scrapers():
    bol = FakeScraper(ScrapingSourceFactory.bol_com(), prices={"Dior": "59.00"})
    amazon = FakeScraper(ScrapingSourceFactory.amazon_fr(), prices={"Dior": "54.90"}, fail_for=("Chanel",))
    return bol, amazon


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def service(catalog, scrapers, sleeps):
    bol, amazon = scrapers
    return PriceScanService(
        jobs=RecordingJobService(),
        registry=_registry(bol, amazon),
        sleep=sleeps.append,
    )


class TestStartScan:
    """Tests for PriceScanService.start_scan()"""

    def test_creates_pending_job(self, service, catalog):
        """Should count the supplier's products and queue a job."""
        # Act
        response = service.start_scan(_request(batch_size=1))

        # Assert
        assert response.status == ScrapingJobStatus.PENDING
        assert response.total_products == 2
        assert response.total_batches == 2
        assert response.message == "Price scan queued for 2 products on 2 sources"

        job = catalog.rows("scraping_jobs")[0]
        assert job["id"] == response.job_id
        assert job["source_ids"] == SOURCE_IDS
        assert job["config"]["batch_size"] == 1
        assert job["config"]["delay_between_batches_ms"] == 250

    def test_unknown_supplier(self, service):
        with pytest.raises(SupplierNotFoundError):
            service.start_scan(_request(supplier_id="missing"))

    def test_unknown_source(self, service):
        with pytest.raises(ScrapingSourceNotFoundError):
            service.start_scan(_request(source_ids=["source-bol", "source-nowhere"]))

    def test_inactive_source(self, service, catalog):
        catalog.set_table_data("scraping_sources", [
            ScrapingSourceFactory.bol_com(is_active=False),
            ScrapingSourceFactory.amazon_fr(),
        ])

        with pytest.raises(InactiveSourceError) as exc_info:
            service.start_scan(_request())

        assert exc_info.value.details["source_ids"] == ["source-bol"]

    def test_source_without_scraper(self, service, catalog):
        """A configured source nobody wrote a scraper for is rejected."""
        catalog.set_table_data("scraping_sources", [
            ScrapingSourceFactory.bol_com(id="source-mm", name="MediaMarkt", scraper_key="mediamarkt"),
        ])

        with pytest.raises(InvalidScanConfigError) as exc_info:
            service.start_scan(_request(source_ids=["source-mm"]))

        assert exc_info.value.details["scraper_key"] == "mediamarkt"
        assert catalog.rows("scraping_jobs") == []

    def test_supplier_without_products(self, service, catalog):
        with pytest.raises(InvalidScanConfigError):
            service.start_scan(_request(supplier_id="supplier-2"))

        assert catalog.rows("scraping_jobs") == []


class TestRunJob:
    """Tests for PriceScanService.run_job()"""

    def test_runs_to_completion(self, service, catalog, scrapers, sleeps):
        """A source that raises never fails the job."""
        # Arrange
        job_id = service.start_scan(_request()).job_id

        # Act
        job = service.run_job(job_id)

        # Assert
        assert job.status == ScrapingJobStatus.COMPLETED
        assert job.processed_products == 2
        assert job.successful_products == 1
        assert job.failed_products == 1
        assert job.search_attempts == 4
        assert job.current_batch == 2
        assert job.current_product is None
        assert job.completed_at is not None
        assert sleeps == [0.25]

        bol, amazon = scrapers
        assert bol.terms == ["Chanel Bleu de Chanel 50ml", "Dior Sauvage Eau de Toilette 100ml"]
        assert amazon.terms == bol.terms

    def test_processed_only_grows(self, service):
        job_id = service.start_scan(_request()).job_id

        service.run_job(job_id)

        processed = [p["processed_products"] for p in service.jobs.progress if "processed_products" in p]
        assert processed == [1, 2]

    def test_lowest_price_marked(self, service, catalog):
        """The cheaper of the two Dior listings is flagged."""
        # Arrange
        job_id = service.start_scan(_request()).job_id

        # Act
        service.run_job(job_id)

        # Assert
        results = catalog.rows("price_scraping_results")
        assert len(results) == 2
        lowest = [r for r in results if r["is_lowest_price"]]
        assert len(lowest) == 1
        assert lowest[0]["source_id"] == "source-amazon-fr"
        assert lowest[0]["price"] == "54.90"
        assert lowest[0]["confidence_score"] == 0.9
        assert {r["normalized_product_id"] for r in results} == {"prod-dior"}

    def test_request_settings_reach_scrapers(self, catalog, scrapers):
        bol, amazon = scrapers
        created = []
        service = PriceScanService(registry=_registry(bol, amazon, created), sleep=lambda _: None)
        job_id = service.start_scan(_request(timeout_ms=15000, max_retries=2)).job_id

        service.run_job(job_id)

        assert created == [("source-bol", 15000, 2), ("source-amazon-fr", 15000, 2)]

    def test_low_confidence_listing_dropped(self, catalog, sleeps):
        """A listing that is clearly another product is not stored."""
        bol = FakeScraper(
            ScrapingSourceFactory.bol_com(),
            prices={"Dior": "9.99"},
            titles={"Dior": "Random gift set sample"},
        )
        amazon = FakeScraper(ScrapingSourceFactory.amazon_fr())
        service = PriceScanService(registry=_registry(bol, amazon), sleep=sleeps.append)
        job_id = service.start_scan(_request()).job_id

        job = service.run_job(job_id)

        assert job.successful_products == 0
        assert job.failed_products == 2
        assert catalog.rows("price_scraping_results") == []

    def test_denied_domain_filtered(self, service, catalog):
        catalog.set_table_data("scraping_sources", [
            ScrapingSourceFactory.bol_com(),
            ScrapingSourceFactory.amazon_fr(selector_config={"deny_domains": ["amazon.fr"]}),
        ])
        job_id = service.start_scan(_request()).job_id

        service.run_job(job_id)

        results = catalog.rows("price_scraping_results")
        assert [r["source_id"] for r in results] == ["source-bol"]
        assert results[0]["is_lowest_price"] is True

    def test_store_failure_fails_job(self, service, catalog):
        """An orchestrator-level error ends the job as failed."""
        job_id = service.start_scan(_request()).job_id
        catalog.fail_on("normalized_products", "select", Exception("connection reset"))

        job = service.run_job(job_id)

        assert job.status == ScrapingJobStatus.FAILED
        assert "connection reset" in job.error_message

    def test_only_pending_jobs_run(self, service, scrapers):
        job_id = service.start_scan(_request()).job_id
        service.run_job(job_id)
        bol, _ = scrapers
        searched = len(bol.terms)

        job = service.run_job(job_id)

        assert job.status == ScrapingJobStatus.COMPLETED
        assert len(bol.terms) == searched


class TestStopJob:
    """Tests for PriceScanService.stop_job()"""

    def test_stop_honoured_at_next_batch(self, catalog, sleeps):
        """A stop during batch 1 leaves batch 2 unscanned."""
        # Arrange
        holder = {}

        def stop_once(term):
            if not holder.get("stopped"):
                holder["stopped"] = True
                holder["service"].stop_job(holder["job_id"])

        bol = FakeScraper(ScrapingSourceFactory.bol_com(), prices={"Dior": "59.00"}, on_scrape=stop_once)
        amazon = FakeScraper(ScrapingSourceFactory.amazon_fr())
        service = PriceScanService(registry=_registry(bol, amazon), sleep=sleeps.append)
        holder["service"] = service
        holder["job_id"] = service.start_scan(_request()).job_id

        # Act
        job = service.run_job(holder["job_id"])

        # Assert
        assert job.status == ScrapingJobStatus.STOPPED
        assert job.stop_requested is True
        assert job.processed_products == 1
        assert bol.terms == ["Chanel Bleu de Chanel 50ml"]

    def test_pending_job_stops_immediately(self, service, scrapers):
        job_id = service.start_scan(_request()).job_id

        stopped = service.stop_job(job_id)
        job = service.run_job(job_id)

        assert stopped.status == ScrapingJobStatus.STOPPED
        assert job.status == ScrapingJobStatus.STOPPED
        bol, _ = scrapers
        assert bol.terms == []

    def test_finished_job_cannot_stop(self, service):
        job_id = service.start_scan(_request()).job_id
        service.run_job(job_id)

        with pytest.raises(JobNotStoppableError):
            service.stop_job(job_id)

    def test_unknown_job(self, service):
        with pytest.raises(ScrapingJobNotFoundError):
            service.stop_job("missing")


class TestResultsAndAnalysis:
    """Tests for get_results() and analyze()"""

    def test_lowest_only_filter(self, service):
        job_id = service.start_scan(_request()).job_id
        service.run_job(job_id)

        results = service.get_results(job_id, lowest_only=True)

        assert len(results) == 1
        assert results[0].price == Decimal("54.90")

    def test_margin_analysis(self, service):
        """Margin is lowest competitor price over wholesale."""
        # Arrange
        job_id = service.start_scan(_request()).job_id
        service.run_job(job_id)

        # Act
        analyses = service.analyze(job_id)

        # Assert
        assert len(analyses) == 1
        analysis = analyses[0]
        assert analysis.normalized_product_id == "prod-dior"
        assert analysis.result_count == 2
        assert analysis.lowest_price == Decimal("54.90")
        assert analysis.highest_price == Decimal("59.00")
        assert analysis.average_price == Decimal("56.95")
        assert analysis.lowest_price_source_id == "source-amazon-fr"
        assert analysis.margin_opportunity_pct == 37.25
        assert analysis.is_opportunity is True
        assert analysis.reliable_matches == 2

    def test_opportunities_only(self, service, catalog, monkeypatch):
        from config import settings

        monkeypatch.setattr(settings, "margin_opportunity_threshold_pct", 50.0)
        job_id = service.start_scan(_request()).job_id
        service.run_job(job_id)

        assert service.analyze(job_id, opportunities_only=True) == []
        assert len(service.analyze(job_id)) == 1
