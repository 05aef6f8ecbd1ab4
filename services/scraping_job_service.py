"""
Scraping job service.

The scraping_jobs row is what polling clients read: status, counters
and the product/source currently being scraped.
"""

from datetime import datetime, timezone
from math import ceil
from typing import Any, Optional
import structlog

from config import get_supabase_client
from models.scraping import (
    ScrapingJobResponse,
    ScrapingJobStatus,
    TERMINAL_JOB_STATUSES,
)
from exceptions import (
    DatabaseError,
    JobNotStoppableError,
    ScrapingJobNotFoundError,
)

logger = structlog.get_logger(__name__)


class ScrapingJobService:
    """Scraping job persistence and lifecycle transitions."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "scraping_jobs"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, job_id: str) -> ScrapingJobResponse:
        """
        Get a job.

        Raises:
            ScrapingJobNotFoundError: If the job doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", job_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_scraping_job_failed", job_id=job_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ScrapingJobNotFoundError(job_id)

        return ScrapingJobResponse(**result.data[0])

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        supplier_id: Optional[str] = None,
        status: Optional[ScrapingJobStatus] = None
    ) -> tuple[list[ScrapingJobResponse], int]:
        """
        List jobs, newest first.

        Returns:
            Tuple of (jobs, total count)
        """
        logger.info("getting_scraping_jobs", page=page, supplier_id=supplier_id, status=status)

        try:
            query = self.db.table(self.table).select("*", count="exact")
            if supplier_id:
                query = query.eq("supplier_id", supplier_id)
            if status:
                query = query.eq("status", status.value)

            offset = (page - 1) * page_size
            result = (
                query.order("created_at", desc=True)
                .range(offset, offset + page_size - 1)
                .execute()
            )
            jobs = [ScrapingJobResponse(**row) for row in result.data]
            return jobs, result.count or 0

        except Exception as e:
            logger.error("get_scraping_jobs_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def is_stop_requested(self, job_id: str) -> bool:
        return self.get_by_id(job_id).stop_requested

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(
        self,
        supplier_id: str,
        source_ids: list[str],
        total_products: int,
        batch_size: int,
        config: dict[str, Any]
    ) -> ScrapingJobResponse:
        """Create a pending job."""
        data = {
            "supplier_id": supplier_id,
            "source_ids": source_ids,
            "status": ScrapingJobStatus.PENDING.value,
            "total_products": total_products,
            "processed_products": 0,
            "successful_products": 0,
            "failed_products": 0,
            "current_batch": 0,
            "total_batches": ceil(total_products / batch_size) if total_products else 0,
            "search_attempts": 0,
            "stop_requested": False,
            "config": config,
            "created_at": _now(),
        }

        try:
            result = self.db.table(self.table).insert(data).execute()
        except Exception as e:
            logger.error("create_scraping_job_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No data returned")

        job = ScrapingJobResponse(**result.data[0])
        logger.info(
            "scraping_job_created",
            job_id=job.id,
            supplier_id=supplier_id,
            sources=len(source_ids),
            products=total_products
        )
        return job

    def mark_running(self, job_id: str) -> ScrapingJobResponse:
        updated = self._update(job_id, {
            "status": ScrapingJobStatus.RUNNING.value,
            "started_at": _now(),
        })
        logger.info("scraping_job_started", job_id=job_id)
        return ScrapingJobResponse(**updated)

    def update_progress(self, job_id: str, **fields: Any) -> None:
        """Write progress fields (counters, current product/source)."""
        self._update(job_id, fields)

    def request_stop(self, job_id: str) -> ScrapingJobResponse:
        """
        Ask a job to stop at the next batch boundary.

        A pending job has no batch in flight and stops immediately.

        Raises:
            ScrapingJobNotFoundError: If the job doesn't exist
            JobNotStoppableError: If the job already finished
        """
        job = self.get_by_id(job_id)
        if job.status in TERMINAL_JOB_STATUSES:
            raise JobNotStoppableError(job_id, job.status.value)

        data: dict[str, Any] = {"stop_requested": True}
        if job.status == ScrapingJobStatus.PENDING:
            data["status"] = ScrapingJobStatus.STOPPED.value
            data["completed_at"] = _now()

        updated = self._update(job_id, data)
        logger.info("scraping_job_stop_requested", job_id=job_id, status=updated.get("status"))
        return ScrapingJobResponse(**updated)

    def finalize(
        self,
        job_id: str,
        status: ScrapingJobStatus,
        error_message: Optional[str] = None
    ) -> ScrapingJobResponse:
        """Move a job to completed, failed or stopped."""
        data: dict[str, Any] = {
            "status": status.value,
            "completed_at": _now(),
            "current_product": None,
            "current_source": None,
            "current_search_term": None,
        }
        if error_message:
            data["error_message"] = error_message

        updated = self._update(job_id, data)
        logger.info("scraping_job_finalized", job_id=job_id, status=status.value)
        return ScrapingJobResponse(**updated)

    def _update(self, job_id: str, data: dict) -> dict:
        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", job_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_scraping_job_failed", job_id=job_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ScrapingJobNotFoundError(job_id)
        return result.data[0]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Singleton instance
_scraping_job_service: Optional[ScrapingJobService] = None


def get_scraping_job_service() -> ScrapingJobService:
    """Get or create scraping job service instance."""
    global _scraping_job_service
    if _scraping_job_service is None:
        _scraping_job_service = ScrapingJobService()
    return _scraping_job_service
