"""
Snapshot service.

Captures the catalog as it was before an import session writes
anything, so a later rollback can restore overwritten products.
"""

from typing import Optional
import structlog

from config import get_supabase_client
from models.import_session import ImportSnapshot
from services.catalog_service import CatalogService
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

ENTITY_TYPE = "normalized_product"


class SnapshotService:
    """Owns the import_snapshots table."""

    def __init__(self, catalog: Optional[CatalogService] = None):
        self.db = get_supabase_client()
        self.table = "import_snapshots"
        self.catalog = catalog or CatalogService()

    def snapshot(
        self,
        import_session_id: str,
        supplier_id: Optional[str] = None
    ) -> ImportSnapshot:
        """
        Serialize every current product and store it against the session.

        Must finish before the session's first write; the import engine
        calls it synchronously before partitioning rows.

        Args:
            import_session_id: Session the snapshot belongs to
            supplier_id: Limit to one supplier's catalog (imports only
                ever touch that supplier's rows)

        Returns:
            Stored ImportSnapshot

        Raises:
            DatabaseError: If reading or storing fails
        """
        logger.info("creating_import_snapshot", import_session_id=import_session_id, supplier_id=supplier_id)

        rows = self.catalog.fetch_all(supplier_id=supplier_id)

        try:
            result = self.db.table(self.table).insert({
                "import_session_id": import_session_id,
                "entity_type": ENTITY_TYPE,
                "snapshot_data": rows,
                "entity_count": len(rows),
            }).execute()
        except Exception as e:
            logger.error("create_snapshot_failed", import_session_id=import_session_id, error=str(e))
            raise DatabaseError("insert", str(e))

        if not result.data:
            raise DatabaseError("insert", "No data returned")

        logger.info(
            "import_snapshot_created",
            import_session_id=import_session_id,
            entities=len(rows)
        )

        return ImportSnapshot(**result.data[0])

    def get_snapshot(self, import_session_id: str) -> Optional[ImportSnapshot]:
        """Snapshot for a session, or None if it was never captured."""
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("import_session_id", import_session_id)
                .eq("entity_type", ENTITY_TYPE)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error("get_snapshot_failed", import_session_id=import_session_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            return None
        return ImportSnapshot(**result.data[0])
