"""
Import session schemas.

A session is one run of the import pipeline over one uploaded file.
"""

from pydantic import BaseModel, Field
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, PaginatedResponse
from models.product import CleaningRules, ColumnMapping


class DuplicateStrategy(str, Enum):
    """What to do with a row whose natural key already exists."""
    SKIP = "skip"
    OVERWRITE = "overwrite"
    FLAG = "flag"
    ERROR = "error"


class ImportStatus(str, Enum):
    """Import session lifecycle. Anything but RUNNING is terminal."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ROLLED_BACK = "rolled_back"


class FileType(str, Enum):
    CSV = "csv"
    EXCEL = "excel"
    JSON = "json"


class DuplicateDetectionConfig(BaseModel):
    """Natural keys consulted when resolving duplicates."""
    strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    check_ean: bool = True
    check_name_brand: bool = True


class RowIssue(BaseModel):
    """Row-level error, warning or duplicate entry."""
    row: int = Field(..., ge=1, description="1-based row number in the source file")
    field: str
    message: str
    data: Optional[dict[str, Any]] = None


class DuplicateEntry(RowIssue):
    """Row that collided with an existing catalog record."""
    existing_id: Optional[str] = None
    matched_on: Optional[str] = Field(None, description="ean or name_brand")


class ImportProgress(BaseModel):
    """Aggregate progress of one import run."""
    total_rows: int = 0
    processed_rows: int = 0
    successful_rows: int = 0
    failed_rows: int = 0
    skipped_rows: int = 0
    duplicate_rows: int = Field(0, description="Rows that matched an existing product, whatever the strategy")
    current_batch: int = 0
    total_batches: int = 0
    errors: list[RowIssue] = Field(default_factory=list)
    warnings: list[RowIssue] = Field(default_factory=list)
    duplicates: list[DuplicateEntry] = Field(default_factory=list)
    is_complete: bool = False
    
    @property
    def percent_complete(self) -> float:
        if not self.total_rows:
            return 100.0 if self.is_complete else 0.0
        return round(self.processed_rows / self.total_rows * 100, 1)


class ImportRequest(BaseSchema):
    """
    Import trigger payload.
    
    Rows are raw key/value records as read from the spreadsheet.
    """
    
    rows: list[dict[str, Any]] = Field(..., description="Raw spreadsheet rows")
    column_mapping: ColumnMapping
    supplier_id: Optional[str] = None
    filename: str = Field("upload.json", max_length=255)
    file_type: FileType = FileType.JSON
    batch_size: Optional[int] = Field(None, ge=1, le=500)
    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    check_ean: bool = True
    check_name_brand: bool = True
    import_only_valid: bool = True
    cleaning_rules: Optional[CleaningRules] = None
    imported_by: Optional[str] = None
    notes: Optional[str] = None


class ImportResponse(BaseModel):
    """Import trigger result."""
    import_session_id: str
    status: ImportStatus
    progress: ImportProgress


class ImportSessionResponse(BaseModel):
    """Import session as stored."""
    id: str
    filename: str
    file_type: Optional[str] = None
    supplier_id: Optional[str] = None
    row_count: int = 0
    strategy: DuplicateStrategy
    import_only_valid: bool = True
    status: ImportStatus
    success_count: int = 0
    fail_count: int = 0
    skip_count: int = 0
    duplicate_count: int = 0
    errors: list[dict] = Field(default_factory=list)
    warnings: list[dict] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    imported_by: Optional[str] = None
    notes: Optional[str] = None


class ImportSessionListResponse(PaginatedResponse[ImportSessionResponse]):
    """Paginated list of import sessions."""


class ImportSnapshot(BaseModel):
    """Prior state of one entity type captured before an import writes."""
    id: Optional[str] = None
    import_session_id: str
    entity_type: str
    snapshot_data: list[dict[str, Any]] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class DuplicateCheckRequest(BaseSchema):
    """Dry-run duplicate check payload."""
    rows: list[dict[str, Any]]
    column_mapping: ColumnMapping
    supplier_id: Optional[str] = None
    check_ean: bool = True
    check_name_brand: bool = True


class DuplicateCheckResponse(BaseModel):
    """Rows that would collide with the catalog."""
    total_rows: int
    duplicate_count: int
    duplicates: list[DuplicateEntry]


class ImportPreviewResponse(BaseModel):
    """Parsed upload with a suggested column mapping."""
    filename: str
    file_type: FileType
    headers: list[str]
    row_count: int
    sample_rows: list[dict[str, Any]]
    suggested_mapping: ColumnMapping
    missing_required: list[str]
