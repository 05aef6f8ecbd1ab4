"""
Import service.

Entry point for supplier imports: validates the request, opens an
import session, and hands the rows to the batch import engine.
"""

from typing import Optional, Union
from io import BytesIO
import structlog

from config import settings
from models.import_session import (
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    DuplicateDetectionConfig,
    ImportPreviewResponse,
    ImportProgress,
    ImportRequest,
    ImportResponse,
    ImportStatus,
)
from models.product import ColumnMapping
from parsers.data_normalizer import DataNormalizer
from parsers.spreadsheet_parser import parse_spreadsheet, suggest_column_mapping
from services.catalog_service import CatalogService
from services.duplicate_resolver import DuplicateResolver
from services.import_engine import BatchImportEngine, ImportOptions, ProgressCallback
from services.import_session_service import ImportSessionService
from services.snapshot_service import SnapshotService
from exceptions import (
    ImportTooLargeError,
    ImportValidationError,
    InvalidColumnMappingError,
)

logger = structlog.get_logger(__name__)

PREVIEW_SAMPLE_ROWS = 5


class ImportService:
    """
    Supplier import workflow.

    Handles:
    - Request validation (mapping, row limit, strict validation mode)
    - Session lifecycle around the batch import engine
    - Upload parsing, mapping suggestions and duplicate dry runs
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        sessions: Optional[ImportSessionService] = None,
        snapshots: Optional[SnapshotService] = None
    ):
        self.catalog = catalog or CatalogService()
        self.sessions = sessions or ImportSessionService()
        self.snapshots = snapshots or SnapshotService(catalog=self.catalog)

    def start_import(
        self,
        request: ImportRequest,
        on_progress: Optional[ProgressCallback] = None
    ) -> ImportResponse:
        """
        Run an import session to completion.

        Args:
            request: Rows, mapping and options
            on_progress: Called with a progress copy after every batch

        Returns:
            ImportResponse with the session id and final progress

        Raises:
            InvalidColumnMappingError: Required fields not mapped
            ImportTooLargeError: More rows than import_max_rows
            ImportValidationError: import_only_valid is False and rows failed validation
            DatabaseError: Store failure (session is marked failed)
        """
        self._validate_request(request.column_mapping, len(request.rows))

        session = self.sessions.create(
            filename=request.filename,
            row_count=len(request.rows),
            strategy=request.duplicate_strategy,
            import_only_valid=request.import_only_valid,
            file_type=request.file_type,
            supplier_id=request.supplier_id,
            imported_by=request.imported_by,
            notes=request.notes,
        )

        if not request.import_only_valid:
            self._require_all_valid(request, session.id)

        engine = BatchImportEngine(
            catalog=self.catalog,
            sessions=self.sessions,
            snapshots=self.snapshots,
            cleaning_rules=request.cleaning_rules,
        )
        options = ImportOptions(
            batch_size=request.batch_size or settings.import_batch_size,
            strategy=request.duplicate_strategy,
            duplicate_config=DuplicateDetectionConfig(
                strategy=request.duplicate_strategy,
                check_ean=request.check_ean,
                check_name_brand=request.check_name_brand,
            ),
            on_progress=on_progress,
            import_session_id=session.id,
            supplier_id=request.supplier_id,
        )

        progress = engine.run(request.rows, request.column_mapping, options)

        return ImportResponse(
            import_session_id=session.id,
            status=ImportStatus.COMPLETED,
            progress=progress,
        )

    def import_file(
        self,
        file: Union[bytes, BytesIO],
        filename: str,
        request: ImportRequest,
        on_progress: Optional[ProgressCallback] = None
    ) -> ImportResponse:
        """
        Parse an uploaded spreadsheet, then import its rows.

        An empty column mapping is replaced by the one suggested from
        the file's headers.
        """
        parsed = parse_spreadsheet(file, filename)
        mapping = request.column_mapping
        if not mapping.mapped_columns():
            mapping = suggest_column_mapping(parsed.headers)
            logger.info("column_mapping_suggested", filename=filename, mapping=mapping.mapped_columns())

        request = request.model_copy(update={
            "rows": parsed.rows,
            "filename": filename,
            "file_type": parsed.file_type,
            "column_mapping": mapping,
        })
        return self.start_import(request, on_progress=on_progress)

    def preview_file(self, file: Union[bytes, BytesIO], filename: str) -> ImportPreviewResponse:
        """Headers, a few sample rows and a suggested mapping for an upload."""
        parsed = parse_spreadsheet(file, filename)
        mapping = suggest_column_mapping(parsed.headers)
        return ImportPreviewResponse(
            filename=filename,
            file_type=parsed.file_type,
            headers=parsed.headers,
            row_count=parsed.row_count,
            sample_rows=parsed.rows[:PREVIEW_SAMPLE_ROWS],
            suggested_mapping=mapping,
            missing_required=mapping.missing_required(),
        )

    def check_duplicates(self, request: DuplicateCheckRequest) -> DuplicateCheckResponse:
        """Report rows that would collide with the catalog, without writing."""
        self._validate_request(request.column_mapping, len(request.rows))

        resolver = DuplicateResolver(catalog=self.catalog)
        duplicates = resolver.find_duplicates(
            request.rows,
            request.column_mapping,
            DuplicateDetectionConfig(
                check_ean=request.check_ean,
                check_name_brand=request.check_name_brand,
            ),
            supplier_id=request.supplier_id,
        )

        logger.info(
            "duplicates_checked",
            rows=len(request.rows),
            duplicates=len(duplicates)
        )

        return DuplicateCheckResponse(
            total_rows=len(request.rows),
            duplicate_count=len(duplicates),
            duplicates=duplicates,
        )

    # ===================
    # VALIDATION
    # ===================

    @staticmethod
    def _validate_request(mapping: ColumnMapping, row_count: int) -> None:
        missing = mapping.missing_required()
        if missing:
            raise InvalidColumnMappingError(missing)
        if row_count > settings.import_max_rows:
            raise ImportTooLargeError(row_count, settings.import_max_rows)

    def _require_all_valid(self, request: ImportRequest, session_id: str) -> None:
        """
        Strict mode: every row must normalize before anything is written.

        Raises:
            ImportValidationError: With every row error; the session is
                marked failed first.
        """
        normalizer = DataNormalizer(request.cleaning_rules)
        progress = ImportProgress(total_rows=len(request.rows))

        for index, raw_row in enumerate(request.rows):
            normalized = normalizer.normalize_row(
                raw_row, request.column_mapping, index + 1, supplier_id=request.supplier_id
            )
            progress.errors.extend(normalized.errors)
            progress.warnings.extend(normalized.warnings)
            if not normalized.is_valid:
                progress.failed_rows += 1

        if not progress.failed_rows:
            return

        logger.warning(
            "import_validation_failed",
            import_session_id=session_id,
            invalid_rows=progress.failed_rows
        )
        self.sessions.finalize(session_id, ImportStatus.FAILED, progress)
        raise ImportValidationError([e.model_dump(exclude={"data"}) for e in progress.errors])


# Singleton instance
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create import service instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
