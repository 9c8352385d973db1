"""
Imported (downstream) product persistence.

Imported products are materialized elsewhere; this service only reads
and updates them.
"""

from typing import Any, Optional
import structlog

from config import get_supabase_client
from models.imported_product import ImportedProduct, ImportedVariant
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


class ImportedProductService:
    """products / product_variants table access."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.products_table = "products"
        self.variants_table = "product_variants"

    def get_imported_product(self, supplier_id: str, vendor_product_id: str) -> Optional[ImportedProduct]:
        """
        Get the imported product for a supplier's productKey.

        Only products flagged imported are returned.
        """
        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .eq("vendor_product_id", vendor_product_id)
                .eq("imported", True)
                .limit(1)
                .execute()
            )

            if not result.data:
                return None

            return self._attach_variants(result.data)[0]

        except DatabaseError:
            raise
        except Exception as e:
            logger.error(
                "get_imported_product_failed",
                supplier_id=supplier_id,
                vendor_product_id=vendor_product_id,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

    def get_products_by_vendor_ids(self, supplier_id: str, vendor_product_ids: list[str]) -> list[ImportedProduct]:
        """Get the supplier's products (imported or not) for a set of productKeys."""
        if not vendor_product_ids:
            return []

        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .in_("vendor_product_id", vendor_product_ids)
                .execute()
            )

            return self._attach_variants(result.data)

        except DatabaseError:
            raise
        except Exception as e:
            logger.error("get_imported_products_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_variant_for_supplier(self, vendor_variant_id: str, supplier_id: str) -> Optional[tuple[ImportedVariant, ImportedProduct]]:
        """
        Downstream variant for a supplier variantKey, with its parent product.

        Returns:
            (variant, product) or None
        """
        try:
            variants = (
                self.db.table(self.variants_table)
                .select("*")
                .eq("vendor_variant_id", vendor_variant_id)
                .execute()
            )
            if not variants.data:
                return None

            product_ids = list({row["product_id"] for row in variants.data})
            products = (
                self.db.table(self.products_table)
                .select("*")
                .in_("id", product_ids)
                .eq("supplier_id", supplier_id)
                .execute()
            )
            owned = {row["id"]: row for row in products.data}

            for row in variants.data:
                if row["product_id"] in owned:
                    return ImportedVariant(**row), ImportedProduct(**owned[row["product_id"]])
            return None

        except Exception as e:
            logger.error("get_imported_variant_failed", vendor_variant_id=vendor_variant_id, error=str(e))
            raise DatabaseError("select", str(e))

    def _attach_variants(self, product_rows: list[dict]) -> list[ImportedProduct]:
        ids = [row["id"] for row in product_rows]
        try:
            result = (
                self.db.table(self.variants_table)
                .select("*")
                .in_("product_id", ids)
                .execute()
            )
        except Exception as e:
            logger.error("get_imported_variants_failed", error=str(e))
            raise DatabaseError("select", str(e))

        by_product: dict[str, list[dict]] = {}
        for row in result.data:
            by_product.setdefault(row["product_id"], []).append(row)

        return [
            ImportedProduct(**{**row, "variants": by_product.get(row["id"], [])})
            for row in product_rows
        ]

    def update_product(self, product_id: str, data: dict[str, Any]) -> None:
        try:
            self.db.table(self.products_table).update(data).eq("id", product_id).execute()
        except Exception as e:
            logger.error("update_imported_product_failed", product_id=product_id, error=str(e))
            raise DatabaseError("update", str(e))

    def update_products(self, product_ids: list[str], data: dict[str, Any]) -> None:
        if not product_ids:
            return
        try:
            self.db.table(self.products_table).update(data).in_("id", product_ids).execute()
        except Exception as e:
            logger.error("update_imported_products_failed", count=len(product_ids), error=str(e))
            raise DatabaseError("update", str(e))

    def update_variant(self, variant_id: str, data: dict[str, Any]) -> None:
        try:
            self.db.table(self.variants_table).update(data).eq("id", variant_id).execute()
        except Exception as e:
            logger.error("update_imported_variant_failed", variant_id=variant_id, error=str(e))
            raise DatabaseError("update", str(e))

    def update_variants(self, variant_ids: list[str], data: dict[str, Any]) -> None:
        if not variant_ids:
            return
        try:
            self.db.table(self.variants_table).update(data).in_("id", variant_ids).execute()
        except Exception as e:
            logger.error("update_imported_variants_failed", count=len(variant_ids), error=str(e))
            raise DatabaseError("update", str(e))


# Singleton instance
_imported_product_service: Optional[ImportedProductService] = None


def get_imported_product_service() -> ImportedProductService:
    """Get or create ImportedProductService instance."""
    global _imported_product_service
    if _imported_product_service is None:
        _imported_product_service = ImportedProductService()
    return _imported_product_service
