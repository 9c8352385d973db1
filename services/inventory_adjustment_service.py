"""
Inventory adjustments.

Ad-hoc stock / price changes pushed by a supplier outside of a batch.
A request is all or nothing: every item is resolved first, and only if
all of them resolve are the updates applied, in a single transaction.
"""

from typing import Any, Optional
from uuid import UUID
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from config.database import get_supabase_client
from models.adjustment import AdjustmentItem
from models.imported_product import MISSING_WHOLESALE_PRICE
from models.supplier import Supplier
from models.supplied_product import InventoryPolicy, RecordState
from services.supplied_product_service import SuppliedProductService, get_supplied_product_service
from services.imported_product_service import ImportedProductService, get_imported_product_service
from exceptions import (
    AdjustmentItemError,
    AdjustmentRequestError,
    AdjustmentResolutionError,
    DatabaseError,
)

logger = structlog.get_logger(__name__)


KEY_REQUIRED_MESSAGE = "Must pass a valid value for either variantKey or sku"
WHOLESALE_BILLING = "WHOLESALE"

# Downstream fields other platforms accept from an adjustment
WHOLESALE_RELATED_FIELDS = ("wholesale_price", "state", "disabled_at", "disabled_code", "disabled_event")


def is_valid_uuid(value: str) -> bool:
    try:
        UUID(value)
        return True
    except (ValueError, TypeError):
        return False


def parse_adjustment_request(payload: Any) -> list[AdjustmentItem]:
    """
    Validate a raw adjustment request body.

    Args:
        payload: Decoded JSON body, expected to be a list of items

    Returns:
        Parsed items, in request order

    Raises:
        AdjustmentRequestError: Schema errors, empty body, items without
            exactly one of sku / variantKey, or the same key sent twice
    """
    if not isinstance(payload, list) or not payload:
        raise AdjustmentRequestError([{"path": "", "message": "Expected a non-empty list of adjustment items"}])

    issues = []
    items = []
    seen: set[tuple[str, str]] = set()

    for index, raw in enumerate(payload):
        try:
            item = AdjustmentItem.model_validate(raw)
        except PydanticValidationError as e:
            for error in e.errors():
                path = ".".join(str(part) for part in (index, *error["loc"]))
                issues.append({"path": path, "message": error["msg"]})
            continue

        if bool(item.sku) == bool(item.variant_key):
            issues.append({"path": index, "message": KEY_REQUIRED_MESSAGE})
            continue

        key, value = item.lookup
        if (key, value) in seen:
            issues.append({"path": index, "message": f"Duplicate {key} value of {value} in request"})
            continue
        seen.add((key, value))
        items.append(item)

    if issues:
        raise AdjustmentRequestError(issues)

    return items


class InventoryAdjustmentService:
    """
    Adjustment resolution.

    Handles lookup of the canonical variant, building the canonical and
    downstream row updates and applying them atomically.
    """

    def __init__(
        self,
        db=None,
        supplied_products: Optional[SuppliedProductService] = None,
        imported_products: Optional[ImportedProductService] = None
    ):
        self.db = db or get_supabase_client()
        self.supplied_products = supplied_products or get_supplied_product_service()
        self.imported_products = imported_products or get_imported_product_service()

    def process_adjustments(self, items: list[AdjustmentItem], supplier: Supplier) -> None:
        """
        Resolve and apply a list of adjustments.

        Args:
            items: Parsed adjustment items
            supplier: Requesting supplier

        Raises:
            AdjustmentResolutionError: One or more items failed; nothing applied
            DatabaseError: The transaction failed; nothing applied
        """
        variant_updates = []
        product_variant_updates = []
        issues = []

        for index, item in enumerate(items):
            try:
                canonical = self.resolve_variant(item, supplier)
                variant_updates.append({"id": canonical["id"], "data": self.get_supplied_variant_update(item)})
                downstream = self.get_product_variant_update(canonical, item, supplier)
            except AdjustmentItemError as e:
                issues.append({"path": index, "message": str(e)})
                continue

            if downstream is None:
                continue

            if settings.is_among_platforms("MERCHANT_API"):
                product_variant_updates.append(downstream)
            elif settings.is_among_platforms("SHOPIFY", "WOOCOMMERCE", "NIC_AND_ZOE"):
                if "wholesale_price" in downstream["data"]:
                    product_variant_updates.append({
                        "id": downstream["id"],
                        "data": {
                            key: value for key, value in downstream["data"].items()
                            if key in WHOLESALE_RELATED_FIELDS
                        },
                    })

        if issues:
            logger.warning(
                "inventory_adjustment_rejected",
                supplier_id=supplier.id,
                items=len(items),
                errors=len(issues)
            )
            raise AdjustmentResolutionError(issues)

        self.apply(variant_updates, product_variant_updates)

        logger.info(
            "inventory_adjustment_applied",
            supplier_id=supplier.id,
            variants=len(variant_updates),
            downstream_variants=len(product_variant_updates)
        )

    # ===================
    # RESOLUTION
    # ===================

    def resolve_variant(self, item: AdjustmentItem, supplier: Supplier) -> dict:
        """
        Find the single canonical variant an item refers to.

        variantKey matches the supplier variant id (or the row id when it
        is a UUID); sku matches sku or generated sku.

        Raises:
            AdjustmentItemError: No match, no match for this supplier, or
                more than one match
        """
        if item.variant_key:
            rows = self.supplied_products.find_variants("variant_id", item.variant_key)
            if is_valid_uuid(item.variant_key):
                rows += self.supplied_products.find_variants("id", item.variant_key)
        elif item.sku:
            rows = self.supplied_products.find_variants("sku", item.sku)
            rows += self.supplied_products.find_variants("generated_sku", item.sku)
        else:
            raise AdjustmentItemError(KEY_REQUIRED_MESSAGE)

        currency = supplier.config.currency
        if item.currency and currency and item.currency.lower() != currency.lower():
            raise AdjustmentItemError("Currency value does not match value inside of supplier configuration")

        key, value = item.lookup

        # OR-matching can return the same row twice
        rows = list({row["id"]: row for row in rows}.values())
        if not rows:
            raise AdjustmentItemError(f"No variant found with {key} value of {value}")

        owners = self.supplied_products.get_supplier_ids(
            list({row["supplied_product_id"] for row in rows})
        )
        matched = [row for row in rows if owners.get(row["supplied_product_id"]) == supplier.id]

        if not matched:
            raise AdjustmentItemError(
                f"No variant matched with {key} value of {value} and supplier {supplier.id}"
            )
        if len(matched) > 1:
            raise AdjustmentItemError(
                f"Multiple variants matched with {key} value of {value} and supplier {supplier.id}"
            )

        return matched[0]

    @staticmethod
    def get_supplied_variant_update(item: AdjustmentItem) -> dict:
        """Canonical fields to write; only what the item carries."""
        data = {}
        if item.quantity is not None:
            data["inventory_quantity"] = item.quantity
        if item.price_amount is not None:
            data["price"] = item.price_amount
        if item.compare_to_price_amount is not None:
            data["compare_at_price"] = item.compare_to_price_amount
        if item.wholesale_price_amount is not None:
            data["wholesale_price"] = item.wholesale_price_amount
        if item.unlimited is not None:
            data["inventory_policy"] = (
                InventoryPolicy.CONTINUE.value if item.unlimited else InventoryPolicy.DENY.value
            )
        return data

    def get_product_variant_update(
        self,
        canonical: dict,
        item: AdjustmentItem,
        supplier: Supplier
    ) -> Optional[dict]:
        """
        Downstream update for the imported counterpart of a canonical variant.

        Returns:
            {"id", "data"} or None when the variant was never imported

        Raises:
            AdjustmentItemError: Wholesale price sent for a commission-billed supplier
        """
        found = self.imported_products.get_variant_for_supplier(canonical["variant_id"], supplier.id)
        if found is None:
            return None
        variant, product = found

        data = {}
        if item.quantity is not None:
            data["qty"] = item.quantity
        if item.price_amount is not None:
            data["price"] = item.price_amount
        if item.compare_to_price_amount is not None:
            data["compare_at_price"] = item.compare_to_price_amount
        if item.wholesale_price_amount is not None:
            data["wholesale_price"] = item.wholesale_price_amount
        if item.unlimited is not None:
            data["track_inventory"] = not item.unlimited
        if item.unlimited:
            data["qty"] = settings.unlimited_stock_quantity

        if item.wholesale_price_amount:
            if supplier.config.billing_type != WHOLESALE_BILLING:
                raise AdjustmentItemError("Cannot update wholesalePrice, brand is commission billing")

            if variant.disabled_code == MISSING_WHOLESALE_PRICE:
                if self.supplied_products.has_enabled_variant(
                    variant.vendor_variant_id, product.vendor_product_id, supplier.id
                ):
                    data.update(
                        state=RecordState.ENABLED.value,
                        disabled_code=None,
                        disabled_at=None,
                        disabled_event=None
                    )
                else:
                    data.update(disabled_code=None, disabled_event="Supplier product variant is disabled")

        return {"id": variant.id, "data": data}

    # ===================
    # APPLY
    # ===================

    def apply(self, variant_updates: list[dict], product_variant_updates: list[dict]) -> None:
        """Apply canonical and downstream updates in one database transaction."""
        try:
            self.db.rpc(
                "apply_inventory_adjustments",
                {
                    "variant_updates": variant_updates,
                    "product_variant_updates": product_variant_updates,
                }
            ).execute()

        except Exception as e:
            logger.error("apply_inventory_adjustments_failed", error=str(e))
            raise DatabaseError("rpc", str(e))


# Singleton instance
_inventory_adjustment_service: Optional[InventoryAdjustmentService] = None


def get_inventory_adjustment_service() -> InventoryAdjustmentService:
    """Get or create InventoryAdjustmentService instance."""
    global _inventory_adjustment_service
    if _inventory_adjustment_service is None:
        _inventory_adjustment_service = InventoryAdjustmentService()
    return _inventory_adjustment_service
