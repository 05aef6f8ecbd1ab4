"""
Custom exception classes for the application.

Every error carries a stable code, an HTTP status and a details dict.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.
    
    All custom exceptions inherit from this.
    
    Attributes:
        code: Error code (e.g., "PRODUCT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """
    
    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)
    
    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""
    
    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""
    
    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""
    
    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""
    
    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""
    
    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class SpreadsheetParseError(ValidationError):
    """Uploaded spreadsheet could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=message,
            details=details
        )


class InvalidColumnMappingError(ValidationError):
    """Column mapping does not resolve every required field."""

    def __init__(self, missing_fields: list[str]):
        super().__init__(
            code="INVALID_COLUMN_MAPPING",
            message=f"Column mapping is missing required fields: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields}
        )


# ===================
# IMPORT ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session not found."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class ImportValidationError(ValidationError):
    """Rows failed validation and partial imports were not allowed."""

    def __init__(self, errors: list[dict]):
        super().__init__(
            code="IMPORT_VALIDATION_FAILED",
            message=f"Import validation failed with {len(errors)} errors",
            details={"errors": errors}
        )


class ImportTooLargeError(ValidationError):
    """Import exceeds the configured row limit."""

    def __init__(self, row_count: int, max_rows: int):
        super().__init__(
            code="IMPORT_TOO_LARGE",
            message=f"Import has {row_count} rows, maximum is {max_rows}",
            details={"row_count": row_count, "max_rows": max_rows}
        )


# ===================
# ROLLBACK ERRORS
# ===================

class RollbackNotAllowedError(ConflictError):
    """Session is in a state that cannot be rolled back."""

    def __init__(self, session_id: str, status: str):
        super().__init__(
            code="ROLLBACK_NOT_ALLOWED",
            message=f"Cannot roll back an import that is {status}",
            details={"import_session_id": session_id, "status": status}
        )


class BackupNotFoundError(NotFoundError):
    """Import backup not found."""

    def __init__(self, backup_id: str):
        super().__init__(
            resource="Import backup",
            identifier=backup_id,
            code="BACKUP_NOT_FOUND"
        )


# ===================
# SCRAPING ERRORS
# ===================

class SupplierNotFoundError(NotFoundError):
    """Supplier not found."""

    def __init__(self, supplier_id: str):
        super().__init__(
            resource="Supplier",
            identifier=supplier_id,
            code="SUPPLIER_NOT_FOUND"
        )


class ScrapingSourceNotFoundError(NotFoundError):
    """Scraping source not found."""

    def __init__(self, source_id: str):
        super().__init__(
            resource="Scraping source",
            identifier=source_id,
            code="SCRAPING_SOURCE_NOT_FOUND"
        )


class InactiveSourceError(ValidationError):
    """Scraping source is disabled."""

    def __init__(self, source_ids: list[str]):
        super().__init__(
            code="SCRAPING_SOURCE_INACTIVE",
            message="Some selected sources are inactive",
            details={"source_ids": source_ids}
        )


class InvalidScanConfigError(ValidationError):
    """Price-scan job configuration is unusable."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="INVALID_SCAN_CONFIG",
            message=message,
            details=details
        )


class ScrapingJobNotFoundError(NotFoundError):
    """Scraping job not found."""

    def __init__(self, job_id: str):
        super().__init__(
            resource="Scraping job",
            identifier=job_id,
            code="SCRAPING_JOB_NOT_FOUND"
        )


class JobNotStoppableError(ConflictError):
    """Job already reached a terminal status."""

    def __init__(self, job_id: str, status: str):
        super().__init__(
            code="JOB_NOT_STOPPABLE",
            message=f"Job is {status} and cannot be stopped",
            details={"job_id": job_id, "status": status}
        )


class ScraperError(ExternalServiceError):
    """Retail source could not be fetched."""

    def __init__(self, source: str, message: str, url: Optional[str] = None):
        super().__init__(
            service="scraper",
            message=message,
            details={"source": source, "url": url}
        )
