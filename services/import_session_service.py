"""
Import session service.

The import_sessions row is the read model for an import: created when
the session starts, rewritten after every batch, terminal once its
status leaves "running".
"""

from datetime import datetime, timezone
from typing import Optional
import structlog

from config import get_supabase_client
from models.import_session import (
    DuplicateStrategy,
    FileType,
    ImportProgress,
    ImportSessionResponse,
    ImportStatus,
)
from exceptions import ImportSessionNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)

# Keep stored issue lists bounded
MAX_STORED_ISSUES = 500


class ImportSessionService:
    """Import session persistence."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "import_sessions"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, session_id: str) -> ImportSessionResponse:
        """
        Get an import session.

        Raises:
            ImportSessionNotFoundError: If the session doesn't exist
        """
        logger.debug("getting_import_session", session_id=session_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_import_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ImportSessionNotFoundError(session_id)

        return ImportSessionResponse(**result.data[0])

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        supplier_id: Optional[str] = None,
        status: Optional[ImportStatus] = None
    ) -> tuple[list[ImportSessionResponse], int]:
        """
        List sessions, newest first.

        Returns:
            Tuple of (sessions, total count)
        """
        logger.info("getting_import_sessions", page=page, supplier_id=supplier_id, status=status)

        try:
            query = self.db.table(self.table).select("*", count="exact")
            if supplier_id:
                query = query.eq("supplier_id", supplier_id)
            if status:
                query = query.eq("status", status.value)

            offset = (page - 1) * page_size
            result = (
                query.order("started_at", desc=True)
                .range(offset, offset + page_size - 1)
                .execute()
            )

            sessions = [ImportSessionResponse(**row) for row in result.data]
            return sessions, result.count or 0

        except Exception as e:
            logger.error("get_import_sessions_failed", error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(
        self,
        filename: str,
        row_count: int,
        strategy: DuplicateStrategy,
        import_only_valid: bool = True,
        file_type: FileType = FileType.JSON,
        supplier_id: Optional[str] = None,
        imported_by: Optional[str] = None,
        notes: Optional[str] = None
    ) -> ImportSessionResponse:
        """
        Open a running session.

        Returns:
            Created session
        """
        data = {
            "filename": filename,
            "file_type": file_type.value,
            "supplier_id": supplier_id,
            "row_count": row_count,
            "strategy": strategy.value,
            "import_only_valid": import_only_valid,
            "status": ImportStatus.RUNNING.value,
            "success_count": 0,
            "fail_count": 0,
            "skip_count": 0,
            "duplicate_count": 0,
            "errors": [],
            "warnings": [],
            "started_at": _now(),
            "imported_by": imported_by,
            "notes": notes,
        }

        try:
            result = self.db.table(self.table).insert(data).execute()
        except Exception as e:
            logger.error("create_import_session_failed", filename=filename, error=str(e))
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No data returned")

        session = ImportSessionResponse(**result.data[0])
        logger.info(
            "import_session_created",
            session_id=session.id,
            filename=filename,
            rows=row_count,
            strategy=strategy.value
        )
        return session

    def record_progress(self, session_id: str, progress: ImportProgress) -> None:
        """Persist cumulative counts after a batch."""
        self._update(session_id, _progress_fields(progress))

    def finalize(
        self,
        session_id: str,
        status: ImportStatus,
        progress: Optional[ImportProgress] = None,
        error_message: Optional[str] = None
    ) -> ImportSessionResponse:
        """
        Move a session to a terminal status.

        Args:
            session_id: Session to close
            status: COMPLETED, FAILED or CANCELLED
            progress: Final counts, if any rows were processed
            error_message: Engine-level failure reason
        """
        session = self.get_by_id(session_id)
        completed_at = datetime.now(timezone.utc)
        started_at = session.started_at
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)

        data = {
            "status": status.value,
            "completed_at": completed_at.isoformat(),
            "duration_ms": int((completed_at - started_at).total_seconds() * 1000),
        }
        if progress is not None:
            data.update(_progress_fields(progress))
        if error_message:
            errors = list(data.get("errors", session.errors))
            errors.append({"row": 0, "field": "general", "message": error_message})
            data["errors"] = errors[:MAX_STORED_ISSUES]

        updated = self._update(session_id, data)

        logger.info(
            "import_session_finalized",
            session_id=session_id,
            status=status.value,
            duration_ms=data["duration_ms"]
        )
        return ImportSessionResponse(**updated)

    def mark_rolled_back(self, session_id: str, note: str) -> ImportSessionResponse:
        """Record that a rollback ran against this session."""
        session = self.get_by_id(session_id)
        notes = f"{session.notes}\n{note}" if session.notes else note
        updated = self._update(session_id, {
            "status": ImportStatus.ROLLED_BACK.value,
            "notes": notes,
        })
        logger.info("import_session_rolled_back", session_id=session_id)
        return ImportSessionResponse(**updated)

    def _update(self, session_id: str, data: dict) -> dict:
        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", session_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_import_session_failed", session_id=session_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ImportSessionNotFoundError(session_id)
        return result.data[0]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _progress_fields(progress: ImportProgress) -> dict:
    return {
        "success_count": progress.successful_rows,
        "fail_count": progress.failed_rows,
        "skip_count": progress.skipped_rows,
        "duplicate_count": progress.duplicate_rows,
        "errors": [e.model_dump() for e in progress.errors[:MAX_STORED_ISSUES]],
        "warnings": [w.model_dump() for w in progress.warnings[:MAX_STORED_ISSUES]],
    }


# Singleton instance
_import_session_service: Optional[ImportSessionService] = None


def get_import_session_service() -> ImportSessionService:
    """Get or create import session service instance."""
    global _import_session_service
    if _import_session_service is None:
        _import_session_service = ImportSessionService()
    return _import_session_service
