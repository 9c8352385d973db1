"""
Supplied product sync.

Writes canonical supplied products and keeps the imported (downstream)
copies consistent with them using minimal field-level updates.

Flow for one batch (upsert_all):
    1. Upsert every canonical product, retiring variants missing from it
    2. Disable canonical products missing from the batch
    3. Propagate each upserted product to its imported product
    4. Cascade step 2 to the imported products and notify
"""

from datetime import datetime, timezone
from typing import Any, Optional
import json
import structlog

from config import settings
from models.supplied_product import (
    InventoryPolicy,
    RecordState,
    SuppliedProductInput,
    SuppliedProductRecord,
    SuppliedVariantRecord,
)
from models.supplier import Supplier
from models.imported_product import ImportedProduct, ImportedVariant
from models.notification import (
    InventoryPriceUpdateItem,
    ProductImageSyncItem,
    VariantStatusUpdateItem,
)
from services.supplied_product_service import SuppliedProductService, get_supplied_product_service
from services.imported_product_service import ImportedProductService, get_imported_product_service
from services.notification_service import NotificationService, get_notification_service
from exceptions import AppError, CanonicalIntegrityError
from utils.image_utils import clean_image_url, first_image_url, image_src, is_valid_image_url, parse_json_value

logger = structlog.get_logger(__name__)


# Downstream fields that are reported in inventory/price messages
INVENTORY_PRICE_FIELDS = ("qty", "price", "compare_at_price", "sku")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SuppliedProductSyncService:
    """
    Canonical upsert and downstream propagation.
    """

    def __init__(
        self,
        supplied_products: Optional[SuppliedProductService] = None,
        imported_products: Optional[ImportedProductService] = None,
        notifications: Optional[NotificationService] = None
    ):
        self.supplied_products = supplied_products or get_supplied_product_service()
        self.imported_products = imported_products or get_imported_product_service()
        self.notifications = notifications or get_notification_service()

    # ===================
    # UPSERT
    # ===================

    def upsert_all(
        self,
        products: list[SuppliedProductInput],
        supplier: Supplier,
        batch_timestamp: datetime
    ) -> list[str]:
        """
        Apply a full batch of canonical products.

        Products not in `products` are treated as removed by the supplier.

        Args:
            products: Accepted canonical products, checked_on already set
            supplier: Owning supplier
            batch_timestamp: Shared checked_on of this pass

        Returns:
            Ids of the upserted supplied products
        """
        logger.info(
            "supplied_products_sync_started",
            supplier_id=supplier.id,
            products=len(products),
            batch_timestamp=batch_timestamp.isoformat()
        )

        supplied_product_ids = [self._write_canonical(product, supplier) for product in products]

        disabled_ids = self.supplied_products.disable_missing(supplier.id, supplied_product_ids)

        failed = 0
        for supplied_product_id in supplied_product_ids:
            try:
                self.sync_imported_product(supplied_product_id, supplier)
            except AppError as e:
                failed += 1
                logger.warning(
                    "imported_product_sync_failed",
                    supplier_id=supplier.id,
                    supplied_product_id=supplied_product_id,
                    error=e.message
                )

        self.disable_imported_products_and_variants(disabled_ids, supplier.id)

        logger.info(
            "supplied_products_sync_completed",
            supplier_id=supplier.id,
            upserted=len(supplied_product_ids),
            disabled=len(disabled_ids),
            propagation_failures=failed
        )
        return supplied_product_ids

    def upsert(self, product: SuppliedProductInput, supplier: Supplier) -> str:
        """
        Upsert one canonical product and propagate it downstream.

        Returns:
            Supplied product id
        """
        supplied_product_id = self._write_canonical(product, supplier)
        self.sync_imported_product(supplied_product_id, supplier)
        return supplied_product_id

    def _write_canonical(self, product: SuppliedProductInput, supplier: Supplier) -> str:
        supplied_product_id = self.supplied_products.upsert_product(product, supplier.id)

        record = self.supplied_products.get_by_id(supplied_product_id)
        if record is None:
            raise CanonicalIntegrityError(
                f"Could not find upserted supplied product with id: {supplied_product_id}",
                details={"product_id": product.product_id, "supplier_id": supplier.id}
            )

        incoming_keys = {variant.variant_id for variant in product.variants}
        to_retire = [
            variant.id for variant in record.variants
            if variant.state == RecordState.ENABLED and variant.variant_id not in incoming_keys
        ]
        if to_retire:
            logger.info(
                "retiring_missing_variants",
                supplied_product_id=supplied_product_id,
                count=len(to_retire)
            )
            self.supplied_products.disable_variants(to_retire)

        return supplied_product_id

    # ===================
    # DOWNSTREAM PROPAGATION
    # ===================

    def sync_imported_product(self, supplied_product_id: str, supplier: Supplier) -> None:
        """
        Propagate one canonical product to its imported product, if imported.

        Canonical variants with no downstream counterpart are skipped;
        materializing them is not done here.
        """
        supplied_product = self.supplied_products.get_by_id(supplied_product_id)
        if supplied_product is None:
            raise CanonicalIntegrityError(
                f"Could not find supplied product with id: {supplied_product_id}"
            )

        imported = self.imported_products.get_imported_product(supplier.id, supplied_product.product_id)
        if imported is None:
            return

        product_update = self.get_imported_product_update(supplied_product, imported)
        if product_update:
            self.imported_products.update_product(imported.id, product_update)

        not_imported = []
        for variant in supplied_product.variants:
            imported_variant = imported.variant_for(variant.variant_id)
            if imported_variant is None:
                not_imported.append(variant.variant_id)
                continue

            update = self.get_imported_variant_update(variant, imported_variant, supplier)
            if not update:
                continue

            try:
                self.imported_products.update_variant(imported_variant.id, update)
            except AppError as e:
                logger.warning(
                    "imported_variant_update_failed",
                    vendor_variant_id=variant.variant_id,
                    error=e.message
                )
                continue

            changed = {key: update[key] for key in INVENTORY_PRICE_FIELDS if key in update}
            if changed:
                if "qty" in changed:
                    changed["quantity"] = changed["qty"]
                item = InventoryPriceUpdateItem(
                    id=imported_variant.item_id or imported_variant.id,
                    variant_id=imported_variant.shopify_id,
                    product_id=imported.vendor_product_id,
                    vendor_variant_id=imported_variant.vendor_variant_id,
                    shopify_id=imported.shopify_id,
                    **changed
                )
                self.notifications.send_inventory_price_update([item], supplier.id)

        if not_imported:
            logger.info(
                "supplied_variants_not_imported",
                supplied_product_id=supplied_product_id,
                variant_keys=not_imported
            )

        self.sync_images(supplied_product, supplier, imported)

    def get_imported_product_update(
        self,
        supplied_product: SuppliedProductRecord,
        imported: ImportedProduct
    ) -> dict[str, Any]:
        """Changed product-level fields."""
        data: dict[str, Any] = {}

        if supplied_product.state != imported.state:
            data["state"] = supplied_product.state.value
            data["disabled_at"] = None if supplied_product.state == RecordState.ENABLED else _now()

        if settings.is_among_platforms("MERCHANT_API"):
            if supplied_product.category != imported.category:
                data["category"] = supplied_product.category
            if supplied_product.product_type != imported.product_type:
                data["product_type"] = supplied_product.product_type

        return data

    def get_imported_variant_update(
        self,
        variant: SuppliedVariantRecord,
        imported_variant: ImportedVariant,
        supplier: Supplier
    ) -> dict[str, Any]:
        """
        Changed variant-level fields.

        A disabled variant only gets state, qty 0, tracked inventory and
        disabled_at.
        """
        data: dict[str, Any] = {}

        if variant.state != imported_variant.state:
            if variant.state == RecordState.DISABLED:
                return {
                    "state": variant.state.value,
                    "qty": 0,
                    "track_inventory": True,
                    "disabled_at": _now(),
                }

            data["state"] = variant.state.value
            data["qty"] = downstream_quantity(variant, supplier)
            data["disabled_at"] = None

        unlimited = variant.inventory_policy == InventoryPolicy.CONTINUE
        if unlimited and imported_variant.track_inventory:
            data["track_inventory"] = False
            data["qty"] = settings.unlimited_stock_quantity
        elif not unlimited and not imported_variant.track_inventory:
            data["track_inventory"] = True
            data["qty"] = downstream_quantity(variant, supplier)
        elif not unlimited and "qty" not in data:
            quantity = downstream_quantity(variant, supplier)
            if quantity != imported_variant.qty:
                data["qty"] = quantity

        if variant.price != imported_variant.price and supplier.config.update_prices:
            data["price"] = variant.price

        if variant.compare_at_price != imported_variant.compare_at_price:
            data["compare_at_price"] = variant.compare_at_price

        if variant.sku != imported_variant.sku:
            data["sku"] = variant.sku

        return data

    # ===================
    # RETIREMENT CASCADE
    # ===================

    def disable_imported_products_and_variants(self, supplied_product_ids: list[str], supplier_id: str) -> None:
        """
        Disable the imported products of retired supplied products.

        Every variant gets DISABLED, qty 0 and tracked inventory, and one
        status message is sent per product.
        """
        if not supplied_product_ids:
            return

        supplied = self.supplied_products.get_by_ids(supplied_product_ids)
        imported = self.imported_products.get_products_by_vendor_ids(
            supplier_id,
            [product.product_id for product in supplied]
        )
        if not imported:
            return

        disabled_at = _now()
        self.imported_products.update_products(
            [product.id for product in imported],
            {"state": RecordState.DISABLED.value, "disabled_at": disabled_at}
        )

        for product in imported:
            self.imported_products.update_variants(
                [variant.id for variant in product.variants],
                {
                    "state": RecordState.DISABLED.value,
                    "qty": 0,
                    "track_inventory": True,
                    "disabled_at": disabled_at,
                }
            )

            items = [
                VariantStatusUpdateItem(
                    is_enabled_products=False,
                    item_id=variant.item_id,
                    product_id=product.shopify_id,
                    qty=0
                )
                for variant in product.variants
            ]
            if items:
                self.notifications.send_variant_status_update(items, supplier_id)

        logger.info(
            "imported_products_disabled",
            supplier_id=supplier_id,
            count=len(imported)
        )

    # ===================
    # IMAGES
    # ===================

    def sync_images(
        self,
        supplied_product: SuppliedProductRecord,
        supplier: Supplier,
        imported: Optional[ImportedProduct] = None
    ) -> None:
        """
        Rewrite downstream images when the canonical images changed.

        Compares the comma-joined product image URLs and the sorted list of
        normalized first-image URLs per variant. A variant image is only
        attached if the product lists the same URL.
        """
        if not supplier.config.catalog_sync_images:
            return

        if imported is None:
            imported = self.imported_products.get_imported_product(supplier.id, supplied_product.product_id)
            if imported is None:
                return

        product_images = parse_json_value(supplied_product.images) or []
        product_urls = [image.get("url") or image.get("src") for image in product_images]
        incoming_src_list = ",".join(url for url in product_urls if url)

        incoming_variant_images = [
            clean_image_url(first_image_url(variant.images))
            for variant in sorted(supplied_product.variants, key=lambda v: v.variant_id)
        ]
        existing_variant_images = [
            clean_image_url(image_src(variant.image))
            for variant in sorted(imported.variants, key=lambda v: v.vendor_variant_id or "")
        ]

        product_images_changed = incoming_src_list != (imported.image or "")
        variant_images_changed = incoming_variant_images != existing_variant_images
        if not product_images_changed and not variant_images_changed:
            return

        logger.info(
            "syncing_product_images",
            imported_product_id=imported.id,
            product_images_changed=product_images_changed,
            variant_images_changed=variant_images_changed
        )

        product_update: dict[str, Any] = {"image": incoming_src_list}
        if settings.is_among_platforms("MERCHANT_API"):
            product_update["vendor_images"] = json.dumps(product_images)
        self.imported_products.update_product(imported.id, product_update)

        by_key = {variant.variant_id: variant for variant in supplied_product.variants}
        variant_image_map: dict[str, str] = {}

        for imported_variant in imported.variants:
            match = by_key.get(imported_variant.vendor_variant_id)
            if match is None:
                continue

            images = parse_json_value(match.images) or []
            variant_image = images[0] if images and isinstance(images[0], dict) else None

            image_update = None
            if variant_image and variant_image.get("url") and variant_image["url"] in product_urls:
                image_update = {key: value for key, value in variant_image.items() if key != "url"}
                image_update["src"] = variant_image["url"]

            self.imported_products.update_variant(imported_variant.id, {"image": image_update})

            src = image_update["src"] if image_update else None
            if src and imported_variant.shopify_id and is_valid_image_url(src):
                variant_image_map[imported_variant.shopify_id] = src

        if imported.shopify_id and not settings.is_among_platforms("MERCHANT_API"):
            self.notifications.send_product_images(
                [ProductImageSyncItem(
                    product_id=imported.shopify_id,
                    images=incoming_src_list,
                    variant_image_map=variant_image_map
                )],
                supplier.id
            )


def downstream_quantity(variant: SuppliedVariantRecord, supplier: Supplier) -> int:
    """
    Quantity exposed downstream.

    Unlimited stock maps to the sentinel quantity, tracked stock has the
    supplier's stock threshold held back and never goes below zero.
    """
    if variant.inventory_policy == InventoryPolicy.CONTINUE:
        return settings.unlimited_stock_quantity
    quantity = (variant.inventory_quantity or 0) - supplier.config.threshold
    return max(0, int(quantity))


# Singleton instance
_sync_service: Optional[SuppliedProductSyncService] = None


def get_supplied_product_sync_service() -> SuppliedProductSyncService:
    """Get or create SuppliedProductSyncService instance."""
    global _sync_service
    if _sync_service is None:
        _sync_service = SuppliedProductSyncService()
    return _sync_service
