"""
Canonical supplied product persistence.

Products are keyed by (product_id, supplier_id) and variants by
(variant_id, product_id, supplied_product_id). Rows are never deleted;
retired records are DISABLED with zero stock.
"""

from typing import Any, Optional
from uuid import uuid4
import structlog

from config import get_supabase_client, settings
from models.supplied_product import (
    InventoryPolicy,
    RecordState,
    SuppliedProductInput,
    SuppliedProductRecord,
    SuppliedVariantRecord,
)
from exceptions import DatabaseError

logger = structlog.get_logger(__name__)


PRODUCT_CONFLICT_KEY = "product_id,supplier_id"
VARIANT_CONFLICT_KEY = "variant_id,product_id,supplied_product_id"

RETIRED_VARIANT = {
    "state": RecordState.DISABLED.value,
    "inventory_quantity": 0,
    "inventory_policy": InventoryPolicy.DENY.value,
}


class SuppliedProductService:
    """
    Supplied product business logic.

    Handles canonical upserts, retirement and generated SKUs.
    """

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.products_table = "supplied_products"
        self.variants_table = "supplied_product_variants"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_supplier(self, supplier_id: str) -> list[SuppliedProductRecord]:
        """
        Get every supplied product of a supplier with its variants.

        Args:
            supplier_id: Supplier UUID

        Returns:
            List of SuppliedProductRecord
        """
        logger.debug("getting_supplied_products", supplier_id=supplier_id)

        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .eq("supplier_id", supplier_id)
                .execute()
            )

            return self._attach_variants(result.data)

        except DatabaseError:
            raise
        except Exception as e:
            logger.error("get_supplied_products_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_ids(self, product_ids: list[str]) -> list[SuppliedProductRecord]:
        """Get supplied products by id with their variants."""
        if not product_ids:
            return []

        try:
            result = (
                self.db.table(self.products_table)
                .select("*")
                .in_("id", product_ids)
                .execute()
            )

            return self._attach_variants(result.data)

        except DatabaseError:
            raise
        except Exception as e:
            logger.error("get_supplied_products_by_ids_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, product_id: str) -> Optional[SuppliedProductRecord]:
        products = self.get_by_ids([product_id])
        return products[0] if products else None

    def _attach_variants(self, product_rows: list[dict]) -> list[SuppliedProductRecord]:
        if not product_rows:
            return []

        ids = [row["id"] for row in product_rows]
        try:
            result = (
                self.db.table(self.variants_table)
                .select("*")
                .in_("supplied_product_id", ids)
                .execute()
            )
        except Exception as e:
            logger.error("get_supplied_variants_failed", error=str(e))
            raise DatabaseError("select", str(e))

        by_product: dict[str, list[SuppliedVariantRecord]] = {}
        for row in result.data:
            by_product.setdefault(row["supplied_product_id"], []).append(SuppliedVariantRecord(**row))

        return [
            SuppliedProductRecord(**{**row, "variants": by_product.get(row["id"], [])})
            for row in product_rows
        ]

    def find_variants(self, column: str, value: str) -> list[dict]:
        """Variant rows where `column` equals `value`."""
        try:
            result = (
                self.db.table(self.variants_table)
                .select("*")
                .eq(column, value)
                .execute()
            )
            return result.data

        except Exception as e:
            logger.error("find_supplied_variants_failed", column=column, error=str(e))
            raise DatabaseError("select", str(e))

    def get_supplier_ids(self, product_ids: list[str]) -> dict[str, str]:
        """Map of supplied product id -> supplier id."""
        if not product_ids:
            return {}

        try:
            result = (
                self.db.table(self.products_table)
                .select("id, supplier_id")
                .in_("id", product_ids)
                .execute()
            )
            return {row["id"]: row["supplier_id"] for row in result.data}

        except Exception as e:
            logger.error("get_supplier_ids_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def has_enabled_variant(self, variant_id: str, product_id: str, supplier_id: str) -> bool:
        """
        Check for an ENABLED canonical variant under an ENABLED canonical product.

        Args:
            variant_id: Supplier variantKey
            product_id: Supplier productKey
            supplier_id: Supplier UUID
        """
        try:
            products = (
                self.db.table(self.products_table)
                .select("id")
                .eq("product_id", product_id)
                .eq("supplier_id", supplier_id)
                .eq("state", RecordState.ENABLED.value)
                .execute()
            )
            if not products.data:
                return False

            variants = (
                self.db.table(self.variants_table)
                .select("id")
                .eq("variant_id", variant_id)
                .eq("state", RecordState.ENABLED.value)
                .in_("supplied_product_id", [row["id"] for row in products.data])
                .limit(1)
                .execute()
            )
            return bool(variants.data)

        except Exception as e:
            logger.error("has_enabled_variant_failed", variant_id=variant_id, error=str(e))
            raise DatabaseError("select", str(e))

    # ===================
    # WRITE OPERATIONS
    # ===================

    def upsert_product(self, product: SuppliedProductInput, supplier_id: str) -> str:
        """
        Upsert a supplied product and its variants.

        Generated SKUs are created for variants that have none.

        Args:
            product: Canonical product with the variants to write
            supplier_id: Supplier UUID

        Returns:
            Supplied product id
        """
        logger.debug(
            "upserting_supplied_product",
            product_id=product.product_id,
            supplier_id=supplier_id,
            variants=len(product.variants)
        )

        try:
            product_row = {**product.to_row(), "supplier_id": supplier_id}
            result = (
                self.db.table(self.products_table)
                .upsert(product_row, on_conflict=PRODUCT_CONFLICT_KEY)
                .execute()
            )
            supplied_product_id = result.data[0]["id"]

            variant_rows = []
            if product.variants:
                rows = [
                    {**variant.to_row(), "supplied_product_id": supplied_product_id}
                    for variant in product.variants
                ]
                variant_result = (
                    self.db.table(self.variants_table)
                    .upsert(rows, on_conflict=VARIANT_CONFLICT_KEY)
                    .execute()
                )
                variant_rows = variant_result.data

        except Exception as e:
            logger.error(
                "upsert_supplied_product_failed",
                product_id=product.product_id,
                supplier_id=supplier_id,
                error=str(e)
            )
            raise DatabaseError("upsert", str(e))

        self.create_generated_skus(variant_rows)
        return supplied_product_id

    def disable_variants(self, variant_ids: list[str]) -> None:
        """Retire canonical variants: DISABLED, zero stock, tracked."""
        if not variant_ids:
            return

        try:
            (
                self.db.table(self.variants_table)
                .update(RETIRED_VARIANT)
                .in_("id", variant_ids)
                .execute()
            )
            logger.info("supplied_variants_disabled", count=len(variant_ids))

        except Exception as e:
            logger.error("disable_supplied_variants_failed", error=str(e))
            raise DatabaseError("update", str(e))

    def disable_missing(self, supplier_id: str, kept_product_ids: list[str]) -> list[str]:
        """
        Disable every ENABLED supplied product of the supplier not in kept_product_ids.

        All variants of the disabled products are retired as well.

        Returns:
            Ids of the products that were disabled
        """
        kept = set(kept_product_ids)

        try:
            result = (
                self.db.table(self.products_table)
                .select("id")
                .eq("supplier_id", supplier_id)
                .eq("state", RecordState.ENABLED.value)
                .execute()
            )
            to_disable = [row["id"] for row in result.data if row["id"] not in kept]

            if not to_disable:
                return []

            (
                self.db.table(self.products_table)
                .update({"state": RecordState.DISABLED.value})
                .in_("id", to_disable)
                .execute()
            )
            (
                self.db.table(self.variants_table)
                .update(RETIRED_VARIANT)
                .in_("supplied_product_id", to_disable)
                .execute()
            )

            logger.info(
                "missing_supplied_products_disabled",
                supplier_id=supplier_id,
                count=len(to_disable)
            )
            return to_disable

        except Exception as e:
            logger.error("disable_missing_supplied_products_failed", supplier_id=supplier_id, error=str(e))
            raise DatabaseError("update", str(e))

    # ===================
    # GENERATED SKUS
    # ===================

    def create_generated_skus(self, variant_rows: list[dict[str, Any]]) -> None:
        """Assign a generated SKU to every variant row that has none."""
        for row in variant_rows:
            if row.get("generated_sku"):
                continue

            generated_sku = self._create_unique_sku(row["id"])
            try:
                (
                    self.db.table(self.variants_table)
                    .update({"generated_sku": generated_sku})
                    .eq("id", row["id"])
                    .execute()
                )
            except Exception as e:
                logger.error("create_generated_sku_failed", variant_id=row["id"], error=str(e))
                raise DatabaseError("update", str(e))

    def _create_unique_sku(self, seed: str) -> str:
        sku = generated_sku_for(seed)
        while not self._is_sku_unique(sku):
            sku = generated_sku_for(str(uuid4()))
        return sku

    def _is_sku_unique(self, sku: str) -> bool:
        try:
            result = (
                self.db.table(self.variants_table)
                .select("id")
                .eq("generated_sku", sku)
                .limit(1)
                .execute()
            )
            return not result.data

        except Exception as e:
            logger.error("check_generated_sku_failed", sku=sku, error=str(e))
            raise DatabaseError("select", str(e))


def generated_sku_for(seed: str) -> str:
    """Prefix plus the last 8 characters of a UUID."""
    return settings.generated_sku_prefix + seed[-8:]


# Singleton instance
_supplied_product_service: Optional[SuppliedProductService] = None


def get_supplied_product_service() -> SuppliedProductService:
    """Get or create SuppliedProductService instance."""
    global _supplied_product_service
    if _supplied_product_service is None:
        _supplied_product_service = SuppliedProductService()
    return _supplied_product_service
