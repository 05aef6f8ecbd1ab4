"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Spreadsheets
    SpreadsheetParseError,
    InvalidColumnMappingError,

    # Imports
    ImportSessionNotFoundError,
    ImportValidationError,
    ImportTooLargeError,

    # Rollback
    RollbackNotAllowedError,
    BackupNotFoundError,

    # Scraping
    SupplierNotFoundError,
    ScrapingSourceNotFoundError,
    InactiveSourceError,
    InvalidScanConfigError,
    ScrapingJobNotFoundError,
    JobNotStoppableError,
    ScraperError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Spreadsheets
    "SpreadsheetParseError",
    "InvalidColumnMappingError",

    # Imports
    "ImportSessionNotFoundError",
    "ImportValidationError",
    "ImportTooLargeError",

    # Rollback
    "RollbackNotAllowedError",
    "BackupNotFoundError",

    # Scraping
    "SupplierNotFoundError",
    "ScrapingSourceNotFoundError",
    "InactiveSourceError",
    "InvalidScanConfigError",
    "ScrapingJobNotFoundError",
    "JobNotStoppableError",
    "ScraperError",
]
