"""
Scraping source and supplier lookups.

Sources are configured rows in scraping_sources (name, country,
rate limit, selector overrides). Suppliers are only read here, to
validate scan requests.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.scraping import ScrapingSource
from exceptions import (
    DatabaseError,
    ScrapingSourceNotFoundError,
    SupplierNotFoundError,
)

logger = structlog.get_logger(__name__)


class ScrapingSourceService:
    """Read access to scraping sources and suppliers."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "scraping_sources"
        self.suppliers_table = "suppliers"

    def get_all(self, active_only: bool = False) -> list[ScrapingSource]:
        """Sources ordered by priority, then name."""
        logger.debug("getting_scraping_sources", active_only=active_only)

        try:
            query = self.db.table(self.table).select("*")
            if active_only:
                query = query.eq("is_active", True)
            result = query.order("priority").execute()
        except Exception as e:
            logger.error("get_scraping_sources_failed", error=str(e))
            raise DatabaseError("select", str(e))

        sources = [ScrapingSource(**row) for row in result.data or []]
        sources.sort(key=lambda s: (s.priority, s.name.lower()))
        return sources

    def get_by_id(self, source_id: str) -> ScrapingSource:
        """
        Get one source.

        Raises:
            ScrapingSourceNotFoundError: If the source doesn't exist
        """
        sources = self.get_many([source_id])
        if not sources:
            raise ScrapingSourceNotFoundError(source_id)
        return sources[0]

    def get_many(self, source_ids: list[str]) -> list[ScrapingSource]:
        """
        Sources for the given ids, in priority order.

        Unknown ids are simply absent from the result.
        """
        unique = sorted(set(source_ids))
        if not unique:
            return []

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .in_("id", unique)
                .execute()
            )
        except Exception as e:
            logger.error("get_scraping_sources_by_id_failed", error=str(e))
            raise DatabaseError("select", str(e))

        sources = [ScrapingSource(**row) for row in result.data or []]
        sources.sort(key=lambda s: (s.priority, s.name.lower()))
        return sources

    def get_supplier(self, supplier_id: str) -> dict:
        """
        Get a supplier row.

        Raises:
            SupplierNotFoundError: If the supplier doesn't exist
        """
        try:
            result = (
                self.db.table(self.suppliers_table)
                .select("*")
                .eq("id", supplier_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_supplier_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise SupplierNotFoundError(supplier_id)
        return result.data[0]


# Singleton instance
_scraping_source_service: Optional[ScrapingSourceService] = None


def get_scraping_source_service() -> ScrapingSourceService:
    """Get or create scraping source service instance."""
    global _scraping_source_service
    if _scraping_source_service is None:
        _scraping_source_service = ScrapingSourceService()
    return _scraping_source_service
