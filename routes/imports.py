"""
Supplier import API routes.

Imports, upload previews, duplicate dry runs, session history,
rollback and backup restore.
"""

from fastapi import APIRouter, File, Form, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from typing import Optional
import json
import structlog

from models.import_session import (
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    DuplicateStrategy,
    ImportPreviewResponse,
    ImportRequest,
    ImportResponse,
    ImportSessionListResponse,
    ImportSessionResponse,
    ImportStatus,
)
from models.product import ColumnMapping
from models.rollback import (
    ImportBackupSummary,
    RestoreResult,
    RollbackPreview,
    RollbackRequest,
    RollbackResult,
    RollbackStrategy,
)
from services.import_service import get_import_service
from services.import_session_service import get_import_session_service
from services.rollback_service import get_rollback_service
from exceptions import AppError, ValidationError

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


def _parse_mapping(column_mapping: Optional[str]) -> ColumnMapping:
    """Form field JSON -> ColumnMapping (empty when not sent)."""
    if not column_mapping:
        return ColumnMapping()
    try:
        return ColumnMapping(**json.loads(column_mapping))
    except (json.JSONDecodeError, TypeError, PydanticValidationError) as e:
        raise ValidationError(
            "column_mapping must be a JSON object of field -> column",
            code="INVALID_COLUMN_MAPPING",
            details={"error": str(e)}
        )


# ===================
# IMPORT ROUTES
# ===================

@router.post("", response_model=ImportResponse)
async def create_import(request: ImportRequest):
    """
    Import already-parsed rows.

    Runs to completion and returns the final progress. Invalid rows are
    reported per row; with import_only_valid=false any invalid row
    rejects the whole import (422).
    """
    logger.info(
        "import_requested",
        rows=len(request.rows),
        strategy=request.duplicate_strategy.value,
        supplier_id=request.supplier_id
    )

    try:
        service = get_import_service()
        return await run_in_threadpool(service.start_import, request)

    except Exception as e:
        return handle_error(e)


@router.post("/upload", response_model=ImportResponse)
async def upload_import(
    file: UploadFile = File(..., description="CSV or Excel supplier file"),
    column_mapping: Optional[str] = Form(None, description="JSON field -> column mapping; suggested when omitted"),
    supplier_id: Optional[str] = Form(None),
    duplicate_strategy: DuplicateStrategy = Form(DuplicateStrategy.SKIP),
    import_only_valid: bool = Form(True),
    batch_size: Optional[int] = Form(None, ge=1, le=500),
    imported_by: Optional[str] = Form(None),
    notes: Optional[str] = Form(None)
):
    """
    Upload a supplier spreadsheet and import it.

    Raises:
        422: Unreadable file, unusable mapping or strict-mode validation failure
    """
    logger.info(
        "import_upload_started",
        filename=file.filename,
        content_type=file.content_type
    )

    try:
        content = await file.read()
        request = ImportRequest(
            rows=[],
            column_mapping=_parse_mapping(column_mapping),
            supplier_id=supplier_id,
            filename=file.filename or "upload",
            duplicate_strategy=duplicate_strategy,
            import_only_valid=import_only_valid,
            batch_size=batch_size,
            imported_by=imported_by,
            notes=notes,
        )

        service = get_import_service()
        return await run_in_threadpool(
            service.import_file, content, file.filename or "upload", request
        )

    except Exception as e:
        return handle_error(e)


@router.post("/preview", response_model=ImportPreviewResponse)
async def preview_import(file: UploadFile = File(...)):
    """Headers, sample rows and a suggested column mapping for a file."""
    try:
        content = await file.read()
        service = get_import_service()
        return service.preview_file(content, file.filename or "upload")

    except Exception as e:
        return handle_error(e)


@router.post("/check-duplicates", response_model=DuplicateCheckResponse)
async def check_duplicates(request: DuplicateCheckRequest):
    """Which rows would collide with the catalog (nothing is written)."""
    try:
        service = get_import_service()
        return await run_in_threadpool(service.check_duplicates, request)

    except Exception as e:
        return handle_error(e)


# ===================
# SESSION ROUTES
# ===================

@router.get("", response_model=ImportSessionListResponse)
async def list_imports(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    supplier_id: Optional[str] = Query(None, description="Filter by supplier"),
    status: Optional[ImportStatus] = Query(None, description="Filter by status")
):
    """List import sessions, newest first."""
    try:
        service = get_import_session_service()
        sessions, total = service.get_all(
            page=page,
            page_size=page_size,
            supplier_id=supplier_id,
            status=status
        )

        return ImportSessionListResponse.create(sessions, total=total, page=page, page_size=page_size)

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}", response_model=ImportSessionResponse)
async def get_import(session_id: str):
    """
    Get an import session.

    Raises:
        404: Session not found
    """
    try:
        service = get_import_session_service()
        return service.get_by_id(session_id)

    except Exception as e:
        return handle_error(e)


# ===================
# ROLLBACK ROUTES
# ===================

@router.get("/{session_id}/rollback/preview", response_model=RollbackPreview)
async def preview_rollback(
    session_id: str,
    strategy: RollbackStrategy = Query(RollbackStrategy.ALL, description="Rollback strategy")
):
    """What a rollback would delete and restore."""
    try:
        service = get_rollback_service()
        return service.preview(session_id, strategy)

    except Exception as e:
        return handle_error(e)


@router.post("/{session_id}/rollback", response_model=RollbackResult)
async def rollback_import(session_id: str, request: RollbackRequest):
    """
    Roll back an import session.

    Raises:
        404: Session not found
        409: Session still running or cancelled
    """
    logger.info(
        "rollback_requested",
        session_id=session_id,
        strategy=request.rollback_strategy.value,
        backup=request.backup_before_rollback
    )

    try:
        service = get_rollback_service()
        return await run_in_threadpool(
            service.rollback,
            session_id,
            request.rollback_strategy,
            request.backup_before_rollback,
            request.reason,
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{session_id}/backups", response_model=list[ImportBackupSummary])
async def list_backups(session_id: str):
    """Backups taken before rollbacks of this session."""
    try:
        service = get_rollback_service()
        return service.list_backups(session_id)

    except Exception as e:
        return handle_error(e)


@router.post("/backups/{backup_id}/restore", response_model=RestoreResult)
async def restore_backup(backup_id: str):
    """
    Re-insert the products held in a backup.

    Raises:
        404: Backup not found
    """
    try:
        service = get_rollback_service()
        return await run_in_threadpool(service.restore, backup_id)

    except Exception as e:
        return handle_error(e)
