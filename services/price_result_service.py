"""
Price scraping result persistence (price_scraping_results).
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from models.scraping import PriceScrapingResult, ScrapedListing
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

LOOKUP_CHUNK_SIZE = 100


class PriceResultService:
    """Stores one row per (job, product, source) listing."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "price_scraping_results"

    def record(
        self,
        job_id: str,
        product_id: str,
        source_id: str,
        listing: ScrapedListing,
        confidence_score: float,
        search_term: Optional[str] = None
    ) -> PriceScrapingResult:
        """
        Persist a matched listing.

        Returns:
            Stored result
        """
        data = {
            "job_id": job_id,
            "normalized_product_id": product_id,
            "source_id": source_id,
            "title": listing.title,
            "price": str(listing.price),
            "currency": listing.currency,
            "url": listing.url,
            "merchant": listing.merchant,
            "availability": listing.availability,
            "shipping_cost": str(listing.shipping_cost) if listing.shipping_cost is not None else None,
            "is_lowest_price": False,
            "confidence_score": confidence_score,
            "search_term": search_term,
            "scraped_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            result = self.db.table(self.table).insert(data).execute()
        except Exception as e:
            logger.error("record_price_result_failed", job_id=job_id, product_id=product_id, error=str(e))
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No data returned")
        return PriceScrapingResult(**result.data[0])

    def list_by_job(
        self,
        job_id: str,
        product_id: Optional[str] = None,
        lowest_only: bool = False
    ) -> list[PriceScrapingResult]:
        """Results of a job in scrape order."""
        try:
            query = self.db.table(self.table).select("*").eq("job_id", job_id)
            if product_id:
                query = query.eq("normalized_product_id", product_id)
            if lowest_only:
                query = query.eq("is_lowest_price", True)
            result = query.order("scraped_at").execute()
        except Exception as e:
            logger.error("list_price_results_failed", job_id=job_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [PriceScrapingResult(**row) for row in result.data or []]

    def mark_lowest(self, result_ids: list[str]) -> None:
        """Flag results as the lowest price for their product."""
        unique = sorted(set(result_ids))
        try:
            for start in range(0, len(unique), LOOKUP_CHUNK_SIZE):
                chunk = unique[start:start + LOOKUP_CHUNK_SIZE]
                (
                    self.db.table(self.table)
                    .update({"is_lowest_price": True})
                    .in_("id", chunk)
                    .execute()
                )
        except Exception as e:
            logger.error("mark_lowest_price_failed", error=str(e))
            raise DatabaseError("update", str(e))


# Singleton instance
_price_result_service: Optional[PriceResultService] = None


def get_price_result_service() -> PriceResultService:
    """Get or create price result service instance."""
    global _price_result_service
    if _price_result_service is None:
        _price_result_service = PriceResultService()
    return _price_result_service
