"""
Price-scan orchestrator.

Runs a scraping job over a supplier's catalog:

    pending -> running -> completed | failed | stopped

Products are processed in batches. Within a batch every product is
searched on every selected source in priority order. A stop request is
honoured at the next batch boundary. A source that raises counts as
"no result from that source" and never fails the job.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Optional
from urllib.parse import urlparse
import structlog

from config import settings
from models.product import NormalizedProductResponse
from models.scraping import (
    PriceAnalysis,
    PriceScanRequest,
    PriceScanResponse,
    PriceScrapingResult,
    ScrapingJobResponse,
    ScrapingJobStatus,
    ScrapingSource,
)
from scrapers import ScraperRegistry, SourceScraper, get_scraper_registry
from scrapers.base import build_search_term
from services.catalog_service import CatalogService
from services.price_result_service import PriceResultService
from services.product_matcher import ProductMatcher
from services.scraping_job_service import ScrapingJobService
from services.scraping_source_service import ScrapingSourceService
from exceptions import InactiveSourceError, InvalidScanConfigError, ScrapingSourceNotFoundError

logger = structlog.get_logger(__name__)


@dataclass
class ScanConfig:
    """Effective job configuration (request values over settings defaults)."""
    batch_size: int
    delay_between_batches_ms: int
    max_retries: int
    timeout_ms: int
    confidence_threshold: float
    min_match_confidence: float

    @classmethod
    def from_request(cls, request: PriceScanRequest) -> "ScanConfig":
        return cls(
            batch_size=request.batch_size or settings.scan_batch_size,
            delay_between_batches_ms=(
                request.delay_between_batches_ms
                if request.delay_between_batches_ms is not None
                else settings.scan_delay_between_batches_ms
            ),
            max_retries=request.max_retries or settings.scan_max_retries,
            timeout_ms=request.timeout_ms or settings.scan_timeout_ms,
            confidence_threshold=(
                request.confidence_threshold
                if request.confidence_threshold is not None
                else settings.scan_confidence_threshold
            ),
            min_match_confidence=settings.scan_min_match_confidence,
        )

    @classmethod
    def from_job(cls, config: dict[str, Any]) -> "ScanConfig":
        """
        Rebuild from a stored job config.

        Raises:
            InvalidScanConfigError: Stored config is unusable
        """
        try:
            scan_config = cls(
                batch_size=int(config.get("batch_size", settings.scan_batch_size)),
                delay_between_batches_ms=int(config.get(
                    "delay_between_batches_ms", settings.scan_delay_between_batches_ms
                )),
                max_retries=int(config.get("max_retries", settings.scan_max_retries)),
                timeout_ms=int(config.get("timeout_ms", settings.scan_timeout_ms)),
                confidence_threshold=float(config.get(
                    "confidence_threshold", settings.scan_confidence_threshold
                )),
                min_match_confidence=float(config.get(
                    "min_match_confidence", settings.scan_min_match_confidence
                )),
            )
        except (TypeError, ValueError) as e:
            raise InvalidScanConfigError(f"Invalid job configuration: {e}")

        if scan_config.batch_size < 1:
            raise InvalidScanConfigError("batch_size must be at least 1", details={"batch_size": scan_config.batch_size})
        return scan_config

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_size": self.batch_size,
            "delay_between_batches_ms": self.delay_between_batches_ms,
            "max_retries": self.max_retries,
            "timeout_ms": self.timeout_ms,
            "confidence_threshold": self.confidence_threshold,
            "min_match_confidence": self.min_match_confidence,
        }


@dataclass
class JobCounters:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    search_attempts: int = 0
    results: list[PriceScrapingResult] = field(default_factory=list)


class PriceScanService:
    """
    Starts, runs, stops and summarises price-scan jobs.

    Handles:
    - Scan request validation (supplier, sources, catalog not empty)
    - The batch loop with cooperative stop
    - Lowest-price marking once the loop ends
    - Per-product price analysis over a job's results
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        sources: Optional[ScrapingSourceService] = None,
        jobs: Optional[ScrapingJobService] = None,
        results: Optional[PriceResultService] = None,
        registry: Optional[ScraperRegistry] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.catalog = catalog or CatalogService()
        self.sources = sources or ScrapingSourceService()
        self.jobs = jobs or ScrapingJobService()
        self.results = results or PriceResultService()
        self.registry = registry or get_scraper_registry()
        self._sleep = sleep

    # ===================
    # START / STOP
    # ===================

    def start_scan(self, request: PriceScanRequest) -> PriceScanResponse:
        """
        Validate a scan request and create a pending job.

        The caller schedules run_job(job_id) in the background.

        Raises:
            SupplierNotFoundError: Unknown supplier
            ScrapingSourceNotFoundError: Unknown source id
            InactiveSourceError: A selected source is disabled
            InvalidScanConfigError: No scraper for a source, or no products
        """
        logger.info(
            "price_scan_requested",
            supplier_id=request.supplier_id,
            sources=request.source_ids
        )

        self.sources.get_supplier(request.supplier_id)
        selected = self._validate_sources(request.source_ids)

        total_products = self.catalog.count_by_supplier(request.supplier_id)
        if total_products == 0:
            raise InvalidScanConfigError(
                "Supplier has no products to scan",
                details={"supplier_id": request.supplier_id}
            )

        config = ScanConfig.from_request(request)
        job = self.jobs.create(
            supplier_id=request.supplier_id,
            source_ids=[s.id for s in selected],
            total_products=total_products,
            batch_size=config.batch_size,
            config=config.to_dict(),
        )

        return PriceScanResponse(
            job_id=job.id,
            status=job.status,
            total_products=total_products,
            total_batches=job.total_batches,
            message=f"Price scan queued for {total_products} products on {len(selected)} sources",
        )

    def stop_job(self, job_id: str) -> ScrapingJobResponse:
        """
        Request a stop.

        Raises:
            ScrapingJobNotFoundError: Unknown job
            JobNotStoppableError: Job already finished
        """
        return self.jobs.request_stop(job_id)

    def _validate_sources(self, source_ids: list[str]) -> list[ScrapingSource]:
        found = self.sources.get_many(source_ids)
        found_ids = {s.id for s in found}
        for source_id in source_ids:
            if source_id not in found_ids:
                raise ScrapingSourceNotFoundError(source_id)

        inactive = [s.id for s in found if not s.is_active]
        if inactive:
            raise InactiveSourceError(inactive)

        for source in found:
            self.registry.resolve_key(source)

        return found

    # ===================
    # JOB LOOP
    # ===================

    def run_job(self, job_id: str) -> ScrapingJobResponse:
        """
        Run a pending job to a terminal status.

        Never raises for product or source failures. An orchestrator
        level failure (bad config, store unavailable) ends the job as
        failed with the error message.

        Returns:
            Final job state
        """
        job = self.jobs.get_by_id(job_id)
        if job.status != ScrapingJobStatus.PENDING:
            logger.warning("scraping_job_not_pending", job_id=job_id, status=job.status.value)
            return job

        counters = JobCounters()
        try:
            config = ScanConfig.from_job(job.config)
            sources = self.sources.get_many(job.source_ids)
            if not sources:
                raise InvalidScanConfigError("Job has no usable sources", details={"job_id": job_id})
            scrapers = [
                (source, self.registry.create(source, config.timeout_ms, config.max_retries))
                for source in sources
            ]
            matcher = ProductMatcher(min_confidence=config.min_match_confidence)

            products = self.catalog.list_by_supplier(job.supplier_id)
            batches = [
                products[i:i + config.batch_size]
                for i in range(0, len(products), config.batch_size)
            ]

            self.jobs.mark_running(job_id)
            self.jobs.update_progress(
                job_id,
                total_products=len(products),
                total_batches=len(batches),
            )

            stopped = False
            for batch_index, batch in enumerate(batches, start=1):
                if self.jobs.is_stop_requested(job_id):
                    stopped = True
                    logger.info("scraping_job_stopping", job_id=job_id, batch=batch_index)
                    break

                self.jobs.update_progress(job_id, current_batch=batch_index)
                for product in batch:
                    self._scan_product(job_id, product, scrapers, matcher, counters)

                logger.info(
                    "scan_batch_completed",
                    job_id=job_id,
                    batch=batch_index,
                    total_batches=len(batches),
                    processed=counters.processed,
                    failed=counters.failed
                )

                if batch_index < len(batches) and config.delay_between_batches_ms > 0:
                    self._sleep(config.delay_between_batches_ms / 1000)

            self._mark_lowest_prices(counters.results)
            status = ScrapingJobStatus.STOPPED if stopped else ScrapingJobStatus.COMPLETED
            final = self.jobs.finalize(job_id, status)

            logger.info(
                "scraping_job_done",
                job_id=job_id,
                status=status.value,
                processed=counters.processed,
                successful=counters.successful,
                failed=counters.failed,
                results=len(counters.results)
            )
            return final

        except Exception as e:
            logger.error("scraping_job_failed", job_id=job_id, error=str(e))
            return self.jobs.finalize(job_id, ScrapingJobStatus.FAILED, error_message=str(e))

    def _scan_product(
        self,
        job_id: str,
        product: NormalizedProductResponse,
        scrapers: list[tuple[ScrapingSource, SourceScraper]],
        matcher: ProductMatcher,
        counters: JobCounters
    ) -> None:
        term = build_search_term(product.brand, product.product_name, product.variant_size)
        found_any = False

        for source, scraper in scrapers:
            counters.search_attempts += 1
            self.jobs.update_progress(
                job_id,
                current_product=f"{product.brand} {product.product_name}",
                current_source=source.name,
                current_search_term=term,
                search_attempts=counters.search_attempts,
            )

            try:
                listing = scraper.scrape_product(term)
            except Exception as e:
                logger.warning(
                    "source_scrape_failed",
                    job_id=job_id,
                    product_id=product.id,
                    source=source.name,
                    error=str(e)
                )
                continue

            if listing is None:
                logger.debug(
                    "source_no_result",
                    product_id=product.id,
                    source=source.name,
                    blocked=scraper.has_anti_bot_protection()
                )
                continue

            if not _domain_allowed(source, listing.url):
                logger.debug("listing_domain_filtered", source=source.name, url=listing.url)
                continue

            match = matcher.score(product, listing)
            if match.confidence < matcher.min_confidence:
                logger.debug(
                    "listing_below_confidence",
                    product_id=product.id,
                    source=source.name,
                    confidence=match.confidence
                )
                continue

            result = self.results.record(
                job_id=job_id,
                product_id=product.id,
                source_id=source.id,
                listing=listing,
                confidence_score=match.confidence,
                search_term=term,
            )
            counters.results.append(result)
            found_any = True

        counters.processed += 1
        if found_any:
            counters.successful += 1
        else:
            counters.failed += 1

        self.jobs.update_progress(
            job_id,
            processed_products=counters.processed,
            successful_products=counters.successful,
            failed_products=counters.failed,
        )

    def _mark_lowest_prices(self, results: list[PriceScrapingResult]) -> None:
        """Flag the cheapest result per product; earliest scraped wins ties."""
        lowest: dict[str, PriceScrapingResult] = {}
        for result in results:
            current = lowest.get(result.normalized_product_id)
            if current is None or result.price < current.price:
                lowest[result.normalized_product_id] = result

        ids = [r.id for r in lowest.values() if r.id]
        if ids:
            self.results.mark_lowest(ids)
            for result in lowest.values():
                result.is_lowest_price = True

    # ===================
    # RESULTS
    # ===================

    def get_job(self, job_id: str) -> ScrapingJobResponse:
        return self.jobs.get_by_id(job_id)

    def get_results(
        self,
        job_id: str,
        product_id: Optional[str] = None,
        lowest_only: bool = False
    ) -> list[PriceScrapingResult]:
        self.jobs.get_by_id(job_id)
        return self.results.list_by_job(job_id, product_id=product_id, lowest_only=lowest_only)

    def analyze(self, job_id: str, opportunities_only: bool = False) -> list[PriceAnalysis]:
        """
        Competitor price summary per product in a job.

        Margin opportunity is (lowest - wholesale) / wholesale * 100.

        Args:
            job_id: Job to analyse
            opportunities_only: Only products above the margin threshold

        Returns:
            One PriceAnalysis per product that has results
        """
        job = self.jobs.get_by_id(job_id)
        threshold = float(job.config.get("confidence_threshold", settings.scan_confidence_threshold))
        results = self.results.list_by_job(job_id)

        by_product: dict[str, list[PriceScrapingResult]] = {}
        for result in results:
            by_product.setdefault(result.normalized_product_id, []).append(result)

        products = {
            row["id"]: NormalizedProductResponse(**row)
            for row in self.catalog.get_by_ids(list(by_product))
        }

        analyses = []
        for product_id, product_results in by_product.items():
            product = products.get(product_id)
            if product is None:
                continue
            analysis = _analyse_product(product, product_results, threshold)
            if opportunities_only and not analysis.is_opportunity:
                continue
            analyses.append(analysis)

        analyses.sort(key=lambda a: (
            a.margin_opportunity_pct is None,
            -(a.margin_opportunity_pct or 0.0),
            a.brand,
            a.product_name,
        ))
        logger.info("price_analysis_built", job_id=job_id, products=len(analyses))
        return analyses


def _analyse_product(
    product: NormalizedProductResponse,
    results: list[PriceScrapingResult],
    confidence_threshold: float
) -> PriceAnalysis:
    prices = [r.price for r in results]
    lowest = min(results, key=lambda r: r.price)
    average = (sum(prices) / len(prices)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    margin: Optional[float] = None
    if product.wholesale_price > 0:
        margin = round(float((lowest.price - product.wholesale_price) / product.wholesale_price * 100), 2)

    return PriceAnalysis(
        normalized_product_id=product.id,
        brand=product.brand,
        product_name=product.product_name,
        wholesale_price=product.wholesale_price,
        result_count=len(results),
        lowest_price=lowest.price,
        highest_price=max(prices),
        average_price=average,
        lowest_price_source_id=lowest.source_id,
        margin_opportunity_pct=margin,
        is_opportunity=margin is not None and margin > settings.margin_opportunity_threshold_pct,
        reliable_matches=sum(1 for r in results if r.confidence_score >= confidence_threshold),
    )


def _domain_allowed(source: ScrapingSource, url: Optional[str]) -> bool:
    """Apply the source's allow_domains / deny_domains lists, if any."""
    allow = source.selector_config.get("allow_domains") or []
    deny = source.selector_config.get("deny_domains") or []
    if not allow and not deny:
        return True

    host = urlparse(url).netloc.lower() if url else ""
    if allow and not any(host.endswith(d.lower()) for d in allow):
        return False
    if deny and any(host.endswith(d.lower()) for d in deny):
        return False
    return True


# Singleton instance
_price_scan_service: Optional[PriceScanService] = None


def get_price_scan_service() -> PriceScanService:
    """Get or create price scan service instance."""
    global _price_scan_service
    if _price_scan_service is None:
        _price_scan_service = PriceScanService()
    return _price_scan_service
