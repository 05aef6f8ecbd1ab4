"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    PaginatedResponse,
    TimestampMixin,
)
from models.product import (
    REQUIRED_FIELDS,
    OPTIONAL_FIELDS,
    CaseStyle,
    ColumnMapping,
    CleaningRules,
    NormalizedProductRecord,
    NormalizedProductResponse,
)
from models.import_session import (
    DuplicateStrategy,
    ImportStatus,
    FileType,
    DuplicateDetectionConfig,
    RowIssue,
    DuplicateEntry,
    ImportProgress,
    ImportRequest,
    ImportResponse,
    ImportSessionResponse,
    ImportSessionListResponse,
    ImportSnapshot,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    ImportPreviewResponse,
)
from models.rollback import (
    RollbackStrategy,
    ImpactLevel,
    RollbackRequest,
    RollbackResult,
    RollbackPreview,
    ImportBackup,
    ImportBackupSummary,
    RestoreResult,
)
from models.scraping import (
    ScrapingJobStatus,
    TERMINAL_JOB_STATUSES,
    ScrapingSource,
    ScrapedListing,
    PriceScanRequest,
    PriceScanResponse,
    ScrapingJobResponse,
    ScrapingJobListResponse,
    PriceScrapingResult,
    PriceAnalysis,
)

__all__ = [
    # Base
    "BaseSchema",
    "PaginatedResponse",
    "TimestampMixin",

    # Product
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "CaseStyle",
    "ColumnMapping",
    "CleaningRules",
    "NormalizedProductRecord",
    "NormalizedProductResponse",

    # Import
    "DuplicateStrategy",
    "ImportStatus",
    "FileType",
    "DuplicateDetectionConfig",
    "RowIssue",
    "DuplicateEntry",
    "ImportProgress",
    "ImportRequest",
    "ImportResponse",
    "ImportSessionResponse",
    "ImportSessionListResponse",
    "ImportSnapshot",
    "DuplicateCheckRequest",
    "DuplicateCheckResponse",
    "ImportPreviewResponse",

    # Rollback
    "RollbackStrategy",
    "ImpactLevel",
    "RollbackRequest",
    "RollbackResult",
    "RollbackPreview",
    "ImportBackup",
    "ImportBackupSummary",
    "RestoreResult",

    # Scraping
    "ScrapingJobStatus",
    "TERMINAL_JOB_STATUSES",
    "ScrapingSource",
    "ScrapedListing",
    "PriceScanRequest",
    "PriceScanResponse",
    "ScrapingJobResponse",
    "ScrapingJobListResponse",
    "PriceScrapingResult",
    "PriceAnalysis",
]
