"""
Supplier lookups and config updates.
"""

from typing import Optional
from datetime import datetime
import structlog

from config import get_supabase_client
from models.supplier import Supplier
from exceptions import DatabaseError, SupplierNotFoundError

logger = structlog.get_logger(__name__)


class SupplierService:
    """Suppliers table access."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "suppliers"

    def get_supplier(self, supplier_id: str) -> Optional[Supplier]:
        """
        Get a supplier with parsed config.

        Args:
            supplier_id: Supplier UUID

        Returns:
            Supplier or None if not found
        """
        logger.debug("getting_supplier", supplier_id=supplier_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", supplier_id)
                .execute()
            )

            if not result.data:
                return None

            return Supplier(**result.data[0])

        except Exception as e:
            logger.error("get_supplier_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    def require_supplier(self, supplier_id: str) -> Supplier:
        supplier = self.get_supplier(supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(supplier_id)
        return supplier

    def get_suppliers(self) -> list[Supplier]:
        """Get all suppliers."""
        try:
            result = self.db.table(self.table).select("*").order("name").execute()
            return [Supplier(**row) for row in result.data]

        except Exception as e:
            logger.error("get_suppliers_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def update_config(self, supplier_id: str, config: dict) -> Supplier:
        """
        Replace the supplier's config JSON.

        Args:
            supplier_id: Supplier UUID
            config: Full camelCase config dict

        Returns:
            Updated Supplier
        """
        try:
            result = (
                self.db.table(self.table)
                .update({"config": config})
                .eq("id", supplier_id)
                .execute()
            )

            if not result.data:
                raise SupplierNotFoundError(supplier_id)

            logger.info("supplier_config_updated", supplier_id=supplier_id)
            return Supplier(**result.data[0])

        except SupplierNotFoundError:
            raise
        except Exception as e:
            logger.error("update_supplier_config_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("update", str(e))

    def advance_sync_timestamp(self, supplier: Supplier, batch_date: datetime) -> Supplier:
        """
        Record the date of the latest successfully processed batch.

        Unknown keys are kept and keys that were never set stay absent.
        """
        config = supplier.config.model_dump(mode="json", by_alias=True, exclude_unset=True)
        config["latestProductsSyncTimeStamp"] = batch_date.isoformat()

        logger.info(
            "advancing_supplier_sync_timestamp",
            supplier_id=supplier.id,
            batch_date=config["latestProductsSyncTimeStamp"]
        )
        return self.update_config(supplier.id, config)


# Singleton instance
_supplier_service: Optional[SupplierService] = None


def get_supplier_service() -> SupplierService:
    """Get or create SupplierService instance."""
    global _supplier_service
    if _supplier_service is None:
        _supplier_service = SupplierService()
    return _supplier_service
