"""
Business logic services.

Each service handles one domain area.
"""

from services.catalog_service import CatalogService, get_catalog_service
from services.import_session_service import ImportSessionService, get_import_session_service
from services.import_service import ImportService, get_import_service
from services.rollback_service import RollbackService, get_rollback_service
from services.scraping_source_service import ScrapingSourceService, get_scraping_source_service
from services.scraping_job_service import ScrapingJobService, get_scraping_job_service
from services.price_result_service import PriceResultService, get_price_result_service
from services.price_scan_service import PriceScanService, get_price_scan_service

__all__ = [
    "CatalogService",
    "get_catalog_service",
    "ImportSessionService",
    "get_import_session_service",
    "ImportService",
    "get_import_service",
    "RollbackService",
    "get_rollback_service",
    "ScrapingSourceService",
    "get_scraping_source_service",
    "ScrapingJobService",
    "get_scraping_job_service",
    "PriceResultService",
    "get_price_result_service",
    "PriceScanService",
    "get_price_scan_service",
]
