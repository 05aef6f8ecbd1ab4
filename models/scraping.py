"""
Price-scan schemas: sources, jobs, listings and results.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional
from enum import Enum
from decimal import Decimal
from datetime import datetime

from models.base import BaseSchema, PaginatedResponse


class ScrapingJobStatus(str, Enum):
    """Job lifecycle: pending -> running -> completed | failed | stopped."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_JOB_STATUSES = {
    ScrapingJobStatus.COMPLETED,
    ScrapingJobStatus.FAILED,
    ScrapingJobStatus.STOPPED,
}


class ScrapingSource(BaseModel):
    """External retail source configuration."""
    id: str
    name: str
    base_url: str
    country: str = Field(..., min_length=2, max_length=2)
    is_active: bool = True
    priority: int = Field(0, description="Lower runs first")
    rate_limit_ms: Optional[int] = Field(None, ge=0)
    scraper_key: Optional[str] = Field(None, description="Registry key; derived from name when empty")
    selector_config: dict[str, Any] = Field(default_factory=dict)
    
    @field_validator("country")
    @classmethod
    def country_uppercase(cls, v: str) -> str:
        return v.upper()
    
    @field_validator("selector_config", mode="before")
    @classmethod
    def null_config_is_empty(cls, v):
        return v or {}


class ScrapedListing(BaseModel):
    """One offer extracted from a search results page."""
    title: str
    price: Decimal = Field(..., ge=0)
    currency: str = "EUR"
    url: Optional[str] = None
    merchant: Optional[str] = None
    availability: bool = True
    shipping_cost: Optional[Decimal] = Field(None, ge=0)
    ean: Optional[str] = None
    confidence_score: float = Field(0.8, ge=0, le=1)


class PriceScanRequest(BaseSchema):
    """Scan trigger payload."""
    supplier_id: str = Field(..., min_length=1)
    source_ids: list[str] = Field(..., min_length=1)
    batch_size: Optional[int] = Field(None, ge=1, le=100)
    delay_between_batches_ms: Optional[int] = Field(None, ge=0, le=300000)
    max_retries: Optional[int] = Field(None, ge=1, le=10)
    timeout_ms: Optional[int] = Field(None, ge=1000, le=120000)
    confidence_threshold: Optional[float] = Field(None, ge=0, le=1)


class PriceScanResponse(BaseModel):
    """Scan trigger result."""
    job_id: str
    status: ScrapingJobStatus
    total_products: int
    total_batches: int
    message: str


class ScrapingJobResponse(BaseModel):
    """Full job state as seen by polling clients."""
    id: str
    supplier_id: str
    source_ids: list[str] = Field(default_factory=list)
    status: ScrapingJobStatus
    total_products: int = 0
    processed_products: int = 0
    successful_products: int = 0
    failed_products: int = 0
    current_batch: int = 0
    total_batches: int = 0
    current_product: Optional[str] = None
    current_source: Optional[str] = None
    current_search_term: Optional[str] = None
    search_attempts: int = 0
    stop_requested: bool = False
    config: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    
    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES
    
    @property
    def percent_complete(self) -> float:
        if not self.total_products:
            return 0.0
        return round(self.processed_products / self.total_products * 100, 1)


class ScrapingJobListResponse(PaginatedResponse[ScrapingJobResponse]):
    """Paginated list of scraping jobs."""


class PriceScrapingResult(BaseModel):
    """Persisted listing for one product on one source within a job."""
    id: Optional[str] = None
    job_id: str
    normalized_product_id: str
    source_id: str
    title: str
    price: Decimal
    currency: str = "EUR"
    url: Optional[str] = None
    merchant: Optional[str] = None
    availability: bool = True
    shipping_cost: Optional[Decimal] = None
    is_lowest_price: bool = False
    confidence_score: float = Field(..., ge=0, le=1)
    search_term: Optional[str] = None
    scraped_at: datetime


class PriceAnalysis(BaseModel):
    """Competitor price summary for one product."""
    normalized_product_id: str
    brand: str
    product_name: str
    wholesale_price: Decimal
    result_count: int
    lowest_price: Optional[Decimal] = None
    highest_price: Optional[Decimal] = None
    average_price: Optional[Decimal] = None
    lowest_price_source_id: Optional[str] = None
    margin_opportunity_pct: Optional[float] = None
    is_opportunity: bool = False
    reliable_matches: int = 0
