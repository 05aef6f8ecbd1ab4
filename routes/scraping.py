"""
Competitor price-scan API routes.

Scans run in the background; clients poll the job for progress.
"""

from fastapi import APIRouter, BackgroundTasks, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.scraping import (
    PriceAnalysis,
    PriceScanRequest,
    PriceScanResponse,
    PriceScrapingResult,
    ScrapingJobListResponse,
    ScrapingJobResponse,
    ScrapingJobStatus,
    ScrapingSource,
)
from services.price_scan_service import get_price_scan_service
from services.scraping_job_service import get_scraping_job_service
from services.scraping_source_service import get_scraping_source_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# SOURCES
# ===================

@router.get("/sources", response_model=list[ScrapingSource])
async def list_sources(
    active_only: bool = Query(False, description="Only active sources")
):
    """Configured scraping sources in priority order."""
    try:
        service = get_scraping_source_service()
        return service.get_all(active_only=active_only)

    except Exception as e:
        return handle_error(e)


# ===================
# PRICE SCAN
# ===================

@router.post("/price-scan", response_model=PriceScanResponse, status_code=202)
async def start_price_scan(request: PriceScanRequest, background_tasks: BackgroundTasks):
    """
    Start a price scan for a supplier's catalog.

    Returns the job id immediately; the scan runs in the background.

    Raises:
        404: Supplier or source not found
        422: Inactive source, unsupported source or empty catalog
    """
    try:
        service = get_price_scan_service()
        response = service.start_scan(request)
        background_tasks.add_task(service.run_job, response.job_id)

        logger.info(
            "price_scan_scheduled",
            job_id=response.job_id,
            products=response.total_products
        )
        return response

    except Exception as e:
        return handle_error(e)


@router.get("/jobs", response_model=ScrapingJobListResponse)
async def list_jobs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    supplier_id: Optional[str] = Query(None, description="Filter by supplier"),
    status: Optional[ScrapingJobStatus] = Query(None, description="Filter by status")
):
    """List scraping jobs, newest first."""
    try:
        service = get_scraping_job_service()
        jobs, total = service.get_all(
            page=page,
            page_size=page_size,
            supplier_id=supplier_id,
            status=status
        )

        return ScrapingJobListResponse.create(jobs, total=total, page=page, page_size=page_size)

    except Exception as e:
        return handle_error(e)


@router.get("/jobs/{job_id}", response_model=ScrapingJobResponse)
async def get_job(job_id: str):
    """
    Poll a job's status and progress.

    Raises:
        404: Job not found
    """
    try:
        service = get_scraping_job_service()
        return service.get_by_id(job_id)

    except Exception as e:
        return handle_error(e)


@router.post("/jobs/{job_id}/stop", response_model=ScrapingJobResponse)
async def stop_job(job_id: str):
    """
    Stop a job at the next batch boundary.

    Raises:
        404: Job not found
        409: Job already finished
    """
    try:
        service = get_price_scan_service()
        return service.stop_job(job_id)

    except Exception as e:
        return handle_error(e)


@router.get("/jobs/{job_id}/results", response_model=list[PriceScrapingResult])
async def get_job_results(
    job_id: str,
    product_id: Optional[str] = Query(None, description="Filter by normalized product"),
    lowest_only: bool = Query(False, description="Only the lowest price per product")
):
    """Scraped prices of a job in scrape order."""
    try:
        service = get_price_scan_service()
        return service.get_results(job_id, product_id=product_id, lowest_only=lowest_only)

    except Exception as e:
        return handle_error(e)


@router.get("/jobs/{job_id}/analysis", response_model=list[PriceAnalysis])
async def get_job_analysis(
    job_id: str,
    opportunities_only: bool = Query(False, description="Only products above the margin threshold")
):
    """Lowest/highest/average competitor price and margin per product."""
    try:
        service = get_price_scan_service()
        return service.analyze(job_id, opportunities_only=opportunities_only)

    except Exception as e:
        return handle_error(e)
