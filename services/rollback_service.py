"""
Rollback service.

Undoes an import session: deletes the products it created, puts back
the products it overwrote (from the session snapshot), and can back up
whatever it is about to delete so the rollback itself can be undone.

Deletions are independent. A failure on one product is recorded and
the rest still run; nothing here stops halfway silently.
"""

import time
from typing import Optional
import structlog

from config import get_supabase_client
from models.import_session import ImportStatus
from models.rollback import (
    ImpactLevel,
    ImportBackup,
    ImportBackupSummary,
    RestoreResult,
    RollbackPreview,
    RollbackResult,
    RollbackStrategy,
)
from services.catalog_service import CatalogService
from services.import_session_service import ImportSessionService
from services.snapshot_service import SnapshotService
from exceptions import (
    BackupNotFoundError,
    DatabaseError,
    RollbackNotAllowedError,
)

logger = structlog.get_logger(__name__)

LARGE_ROLLBACK_THRESHOLD = 100

SELECTIVE_WARNING = (
    "Selective rollback has no selection yet; every product from this import will be removed"
)
FAILED_ONLY_WARNING = (
    "failed_only removes products missing a name, EAN or price; "
    "valid products imported without an EAN are included"
)

BLOCKED_STATUSES = {ImportStatus.RUNNING, ImportStatus.CANCELLED}


def is_incomplete(row: dict) -> bool:
    """Heuristic for rows a failed_only rollback removes."""
    return (
        not (row.get("product_name") or "").strip()
        or not row.get("ean")
        or row.get("wholesale_price") is None
    )


def estimate_impact(count: int) -> ImpactLevel:
    if count == 0:
        return ImpactLevel.NONE
    if count < 10:
        return ImpactLevel.LOW
    if count < LARGE_ROLLBACK_THRESHOLD:
        return ImpactLevel.MEDIUM
    return ImpactLevel.HIGH


class RollbackService:
    """
    Rollback, preview, backup and restore for import sessions.

    Owns the import_backups table; reads snapshots through SnapshotService.
    """

    def __init__(
        self,
        catalog: Optional[CatalogService] = None,
        sessions: Optional[ImportSessionService] = None,
        snapshots: Optional[SnapshotService] = None
    ):
        self.db = get_supabase_client()
        self.backup_table = "import_backups"
        self.catalog = catalog or CatalogService()
        self.sessions = sessions or ImportSessionService()
        self.snapshots = snapshots or SnapshotService(catalog=self.catalog)

    # ===================
    # PREVIEW
    # ===================

    def preview(
        self,
        import_session_id: str,
        strategy: RollbackStrategy = RollbackStrategy.ALL
    ) -> RollbackPreview:
        """
        What a rollback would remove and restore, without doing it.

        Raises:
            ImportSessionNotFoundError: Unknown session
        """
        self.sessions.get_by_id(import_session_id)

        created = self.catalog.list_by_session(import_session_id)
        targets = self._select_targets(created, strategy)
        overwritten = self._overwritten_only(
            self.catalog.list_updated_by_session(import_session_id)
            if strategy != RollbackStrategy.FAILED_ONLY else [],
            created
        )

        warnings = self._strategy_warnings(strategy)
        if len(targets) > LARGE_ROLLBACK_THRESHOLD:
            warnings.append(f"Large rollback: {len(targets)} products will be deleted")

        return RollbackPreview(
            import_session_id=import_session_id,
            strategy=strategy,
            total_products=len(created),
            products_to_rollback=len(targets),
            products_to_restore=len(overwritten),
            estimated_impact=estimate_impact(len(targets) + len(overwritten)),
            warnings=warnings,
        )

    # ===================
    # ROLLBACK
    # ===================

    def rollback(
        self,
        import_session_id: str,
        strategy: RollbackStrategy = RollbackStrategy.ALL,
        backup_before_rollback: bool = True,
        reason: Optional[str] = None
    ) -> RollbackResult:
        """
        Roll back an import session.

        Safe to repeat: a second run finds nothing tagged with the session
        and reports zero products.

        Args:
            import_session_id: Session to undo
            strategy: all, failed_only or selective (behaves as all)
            backup_before_rollback: Store deleted rows for restore()
            reason: Free text kept in the session notes

        Returns:
            RollbackResult listing removed and failed product ids

        Raises:
            ImportSessionNotFoundError: Unknown session
            RollbackNotAllowedError: Session is running or cancelled
            DatabaseError: Reading targets or writing the backup failed
                (nothing has been deleted yet)
        """
        session = self.sessions.get_by_id(import_session_id)
        if session.status in BLOCKED_STATUSES:
            raise RollbackNotAllowedError(import_session_id, session.status.value)

        logger.info(
            "rollback_started",
            import_session_id=import_session_id,
            strategy=strategy.value,
            backup=backup_before_rollback
        )

        created = self.catalog.list_by_session(import_session_id)
        targets = self._select_targets(created, strategy)
        overwritten = self._overwritten_only(
            self.catalog.list_updated_by_session(import_session_id)
            if strategy != RollbackStrategy.FAILED_ONLY else [],
            created
        )

        result = RollbackResult(
            success=True,
            message="",
            warnings=self._strategy_warnings(strategy),
        )

        if backup_before_rollback and targets:
            result.backup_id = self.create_backup(import_session_id, targets)

        for row in targets:
            product_id = row["id"]
            try:
                self.catalog.delete(product_id)
                result.removed_ids.append(product_id)
            except Exception as e:
                logger.warning("rollback_delete_failed", product_id=product_id, error=str(e))
                result.failed_ids.append(product_id)
                result.errors.append(f"Failed to delete product {product_id}: {e}")

        if overwritten:
            self._restore_overwritten(import_session_id, overwritten, result)

        result.rolled_back_products = len(result.removed_ids)
        result.success = not result.failed_ids and not result.errors
        result.message = self._summary(result, len(targets))

        note = f"Rolled back ({strategy.value}): {result.message}"
        if reason:
            note = f"{note} Reason: {reason}"
        self.sessions.mark_rolled_back(import_session_id, note)

        logger.info(
            "rollback_completed",
            import_session_id=import_session_id,
            removed=result.rolled_back_products,
            restored=result.restored_products,
            failed=len(result.failed_ids)
        )

        return result

    def _restore_overwritten(
        self,
        import_session_id: str,
        overwritten: list[dict],
        result: RollbackResult
    ) -> None:
        """Put overwritten products back to their snapshot state."""
        snapshot = self.snapshots.get_snapshot(import_session_id)
        if snapshot is None:
            result.warnings.append(
                f"No snapshot for this import; {len(overwritten)} overwritten products were not restored"
            )
            return

        prior_by_id = {row["id"]: row for row in snapshot.snapshot_data if row.get("id")}

        for row in overwritten:
            product_id = row["id"]
            prior = prior_by_id.get(product_id)
            if prior is None:
                result.warnings.append(f"Product {product_id} is not in the snapshot and was left as is")
                continue
            try:
                self.catalog.replace_row(product_id, prior)
                result.restored_products += 1
            except Exception as e:
                logger.warning("rollback_restore_failed", product_id=product_id, error=str(e))
                result.failed_ids.append(product_id)
                result.errors.append(f"Failed to restore product {product_id}: {e}")

    # ===================
    # BACKUPS
    # ===================

    def create_backup(self, import_session_id: str, rows: list[dict]) -> str:
        """
        Store rows about to be deleted.

        Returns:
            Backup id ("backup_<session>_<epoch ms>")

        Raises:
            DatabaseError: Backup could not be written
        """
        backup_id = f"backup_{import_session_id}_{int(time.time() * 1000)}"

        try:
            self.db.table(self.backup_table).insert({
                "id": backup_id,
                "import_session_id": import_session_id,
                "backup_data": rows,
                "product_count": len(rows),
            }).execute()
        except Exception as e:
            logger.error("create_backup_failed", import_session_id=import_session_id, error=str(e))
            raise DatabaseError("insert", str(e))

        logger.info("import_backup_created", backup_id=backup_id, products=len(rows))
        return backup_id

    def get_backup(self, backup_id: str) -> ImportBackup:
        """
        Raises:
            BackupNotFoundError: Unknown backup id
        """
        try:
            result = (
                self.db.table(self.backup_table)
                .select("*")
                .eq("id", backup_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_backup_failed", backup_id=backup_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise BackupNotFoundError(backup_id)
        return ImportBackup(**result.data[0])

    def list_backups(self, import_session_id: str) -> list[ImportBackupSummary]:
        """Backups taken for a session, newest first."""
        try:
            result = (
                self.db.table(self.backup_table)
                .select("id, import_session_id, product_count, created_at")
                .eq("import_session_id", import_session_id)
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            logger.error("list_backups_failed", import_session_id=import_session_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [ImportBackupSummary(**row) for row in result.data]

    def restore(self, backup_id: str) -> RestoreResult:
        """
        Re-insert a backup's products under fresh ids.

        Each row is inserted independently; failures are listed.
        """
        backup = self.get_backup(backup_id)
        result = RestoreResult(success=True, backup_id=backup_id, restored_products=0)

        logger.info("restore_started", backup_id=backup_id, products=len(backup.backup_data))

        for row in backup.backup_data:
            try:
                stored = self.catalog.insert_raw(row)
                result.restored_ids.append(stored["id"])
            except Exception as e:
                logger.warning("restore_row_failed", backup_id=backup_id, error=str(e))
                result.errors.append(f"Failed to restore {row.get('id', 'product')}: {e}")

        result.restored_products = len(result.restored_ids)
        result.success = not result.errors

        logger.info(
            "restore_completed",
            backup_id=backup_id,
            restored=result.restored_products,
            failed=len(result.errors)
        )
        return result

    # ===================
    # HELPERS
    # ===================

    @staticmethod
    def _select_targets(created: list[dict], strategy: RollbackStrategy) -> list[dict]:
        if strategy == RollbackStrategy.FAILED_ONLY:
            return [row for row in created if is_incomplete(row)]
        return list(created)

    @staticmethod
    def _overwritten_only(updated: list[dict], created: list[dict]) -> list[dict]:
        """Updated rows the session did not also create (those are deleted, not restored)."""
        created_ids = {row["id"] for row in created}
        return [row for row in updated if row["id"] not in created_ids]

    @staticmethod
    def _strategy_warnings(strategy: RollbackStrategy) -> list[str]:
        if strategy == RollbackStrategy.SELECTIVE:
            return [SELECTIVE_WARNING]
        if strategy == RollbackStrategy.FAILED_ONLY:
            return [FAILED_ONLY_WARNING]
        return []

    @staticmethod
    def _summary(result: RollbackResult, target_count: int) -> str:
        if target_count == 0 and not result.restored_products and not result.failed_ids:
            return "No products to roll back"
        message = f"Removed {len(result.removed_ids)} of {target_count} products"
        if result.restored_products:
            message += f", restored {result.restored_products} overwritten products"
        if result.failed_ids:
            message += f"; {len(result.failed_ids)} failed"
        return message


# Singleton instance
_rollback_service: Optional[RollbackService] = None


def get_rollback_service() -> RollbackService:
    """Get or create rollback service instance."""
    global _rollback_service
    if _rollback_service is None:
        _rollback_service = RollbackService()
    return _rollback_service
