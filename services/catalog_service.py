"""
Normalized product catalog service.

Store access for the normalized_products table. Imports write here,
rollbacks delete and restore here, and price scans read from here.
"""

from typing import Any, Optional
from datetime import datetime
import structlog

from config import get_supabase_client
from models.product import NormalizedProductRecord, NormalizedProductResponse
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)

# PostgREST caps a select at 1000 rows; page through anything bigger
PAGE_SIZE = 1000

# Keep `in.(...)` filters well under URL length limits
LOOKUP_CHUNK_SIZE = 100


class CatalogService:
    """
    Normalized product persistence.

    Rows carry import_session_id (session that created them) and
    updated_by_session_id (last session that overwrote them).
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "normalized_products"

    # ===================
    # READ OPERATIONS
    # ===================

    def find_by_eans(
        self,
        eans: list[str],
        supplier_id: Optional[str] = None
    ) -> list[dict]:
        """
        Bulk lookup by EAN.

        Args:
            eans: EANs to look up (duplicates ignored)
            supplier_id: Restrict to one supplier's catalog

        Returns:
            Matching product rows
        """
        unique = sorted({e for e in eans if e})
        if not unique:
            return []

        logger.debug("finding_products_by_ean", count=len(unique), supplier_id=supplier_id)

        rows: list[dict] = []
        try:
            for start in range(0, len(unique), LOOKUP_CHUNK_SIZE):
                chunk = unique[start:start + LOOKUP_CHUNK_SIZE]
                query = self.db.table(self.table).select("*").in_("ean", chunk)
                if supplier_id:
                    query = query.eq("supplier_id", supplier_id)
                rows.extend(query.execute().data or [])
            return rows

        except Exception as e:
            logger.error("find_products_by_ean_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def find_by_names(
        self,
        product_names: list[str],
        supplier_id: Optional[str] = None
    ) -> list[dict]:
        """
        Bulk lookup by product name, for name+brand matching.

        Brand comparison happens in the caller on normalized text.
        """
        unique = sorted({n for n in product_names if n})
        if not unique:
            return []

        logger.debug("finding_products_by_name", count=len(unique), supplier_id=supplier_id)

        rows: list[dict] = []
        try:
            for start in range(0, len(unique), LOOKUP_CHUNK_SIZE):
                chunk = unique[start:start + LOOKUP_CHUNK_SIZE]
                query = self.db.table(self.table).select("*").in_("product_name", chunk)
                if supplier_id:
                    query = query.eq("supplier_id", supplier_id)
                rows.extend(query.execute().data or [])
            return rows

        except Exception as e:
            logger.error("find_products_by_name_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def fetch_all(self, supplier_id: Optional[str] = None) -> list[dict]:
        """
        Every product row, paged through the store's row cap.

        Args:
            supplier_id: Restrict to one supplier

        Returns:
            Raw rows exactly as stored
        """
        logger.debug("fetching_all_products", supplier_id=supplier_id)

        rows: list[dict] = []
        offset = 0
        try:
            while True:
                query = self.db.table(self.table).select("*")
                if supplier_id:
                    query = query.eq("supplier_id", supplier_id)
                page = (
                    query.order("id")
                    .range(offset, offset + PAGE_SIZE - 1)
                    .execute()
                ).data or []
                rows.extend(page)
                if len(page) < PAGE_SIZE:
                    break
                offset += PAGE_SIZE
            return rows

        except Exception as e:
            logger.error("fetch_all_products_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def list_by_supplier(self, supplier_id: str) -> list[NormalizedProductResponse]:
        """Supplier's catalog in a stable order (brand, name)."""
        rows = self.fetch_all(supplier_id=supplier_id)
        rows.sort(key=lambda r: ((r.get("brand") or "").lower(), (r.get("product_name") or "").lower(), r["id"]))
        return [NormalizedProductResponse(**row) for row in rows]

    def count_by_supplier(self, supplier_id: str) -> int:
        try:
            result = (
                self.db.table(self.table)
                .select("id", count="exact")
                .eq("supplier_id", supplier_id)
                .execute()
            )
            return result.count or 0
        except Exception as e:
            logger.error("count_products_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    def list_by_session(self, import_session_id: str) -> list[dict]:
        """Rows created by an import session."""
        return self._select_eq("import_session_id", import_session_id)

    def list_updated_by_session(self, import_session_id: str) -> list[dict]:
        """Pre-existing rows that an import session overwrote."""
        return self._select_eq("updated_by_session_id", import_session_id)

    def get_by_ids(self, product_ids: list[str]) -> list[dict]:
        unique = sorted(set(product_ids))
        rows: list[dict] = []
        try:
            for start in range(0, len(unique), LOOKUP_CHUNK_SIZE):
                chunk = unique[start:start + LOOKUP_CHUNK_SIZE]
                rows.extend(
                    self.db.table(self.table).select("*").in_("id", chunk).execute().data or []
                )
            return rows
        except Exception as e:
            logger.error("get_products_by_ids_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def _select_eq(self, column: str, value: str) -> list[dict]:
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq(column, value)
                .execute()
            )
            return result.data or []
        except Exception as e:
            logger.error("select_products_failed", column=column, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def insert(
        self,
        record: NormalizedProductRecord,
        import_session_id: Optional[str] = None
    ) -> dict:
        """
        Insert a normalized product.

        Args:
            record: Validated record
            import_session_id: Session tag used by rollback

        Returns:
            Stored row
        """
        try:
            result = (
                self.db.table(self.table)
                .insert(record.to_row(import_session_id))
                .execute()
            )
            if not result.data:
                raise DatabaseError("insert", "No data returned")
            return result.data[0]

        except DatabaseError:
            raise
        except Exception as e:
            logger.error("insert_product_failed", brand=record.brand, error=str(e))
            raise DatabaseError("insert", str(e))

    def update(
        self,
        product_id: str,
        record: NormalizedProductRecord,
        import_session_id: Optional[str] = None
    ) -> dict:
        """
        Overwrite an existing product with a new record.

        The creating session tag is left alone; updated_by_session_id
        records who overwrote it so rollback can restore it.
        """
        data = record.to_row()
        data["updated_at"] = datetime.utcnow().isoformat()
        if import_session_id:
            data["updated_by_session_id"] = import_session_id

        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", product_id)
                .execute()
            )
            if not result.data:
                raise DatabaseError("update", f"Product {product_id} not updated")
            return result.data[0]

        except DatabaseError:
            raise
        except Exception as e:
            logger.error("update_product_failed", product_id=product_id, error=str(e))
            raise DatabaseError("update", str(e))

    def replace_row(self, product_id: str, row: dict[str, Any]) -> dict:
        """Write a previously captured row back verbatim (except its id)."""
        data = {k: v for k, v in row.items() if k != "id"}
        try:
            result = (
                self.db.table(self.table)
                .update(data)
                .eq("id", product_id)
                .execute()
            )
            if not result.data:
                raise DatabaseError("update", f"Product {product_id} not restored")
            return result.data[0]
        except DatabaseError:
            raise
        except Exception as e:
            logger.error("restore_product_failed", product_id=product_id, error=str(e))
            raise DatabaseError("update", str(e))

    def insert_raw(self, row: dict[str, Any]) -> dict:
        """Insert a serialized row under a fresh id."""
        data = {k: v for k, v in row.items() if k not in ("id", "created_at", "updated_at")}
        try:
            result = self.db.table(self.table).insert(data).execute()
            if not result.data:
                raise DatabaseError("insert", "No data returned")
            return result.data[0]
        except DatabaseError:
            raise
        except Exception as e:
            logger.error("insert_raw_product_failed", error=str(e))
            raise DatabaseError("insert", str(e))

    def delete(self, product_id: str) -> None:
        """Hard delete one product."""
        try:
            self.db.table(self.table).delete().eq("id", product_id).execute()
        except Exception as e:
            logger.error("delete_product_failed", product_id=product_id, error=str(e))
            raise DatabaseError("delete", str(e))


# Singleton instance
_catalog_service: Optional[CatalogService] = None


def get_catalog_service() -> CatalogService:
    """Get or create catalog service instance."""
    global _catalog_service
    if _catalog_service is None:
        _catalog_service = CatalogService()
    return _catalog_service
