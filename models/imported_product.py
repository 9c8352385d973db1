"""
Imported (downstream) product schemas.

An imported product is the storefront-facing copy of a supplied product.
It is linked through vendor_product_id / vendor_variant_id, which hold the
supplier's productKey and variantKey.
"""

from pydantic import Field
from typing import Any, Optional
from datetime import datetime

from models.base import BaseSchema, TimestampMixin
from models.supplied_product import RecordState


MISSING_WHOLESALE_PRICE = "missing_wholesale_price"


class ImportedVariant(BaseSchema, TimestampMixin):
    """Row of the product_variants table."""

    id: str
    product_id: str
    vendor_variant_id: Optional[str] = None
    item_id: Optional[str] = None
    shopify_id: Optional[str] = None
    state: RecordState = RecordState.ENABLED
    qty: Optional[int] = None
    track_inventory: bool = True
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    wholesale_price: Optional[float] = None
    sku: Optional[str] = None
    image: Optional[dict[str, Any]] = None
    disabled_at: Optional[datetime] = None
    disabled_code: Optional[str] = None
    disabled_event: Optional[str] = None


class ImportedProduct(BaseSchema, TimestampMixin):
    """Row of the products table, variants attached by the service."""

    id: str
    supplier_id: str
    vendor_product_id: str
    shopify_id: Optional[str] = None
    imported: bool = False
    state: RecordState = RecordState.ENABLED
    disabled_at: Optional[datetime] = None
    category: Optional[str] = None
    product_type: Optional[str] = None
    image: Optional[str] = Field(None, description="Comma-joined image URLs")
    vendor_images: Optional[str] = None
    variants: list[ImportedVariant] = Field(default_factory=list)

    def variant_for(self, variant_key: str) -> Optional[ImportedVariant]:
        """Imported variant linked to a supplier variantKey."""
        for variant in self.variants:
            if variant.vendor_variant_id == variant_key:
                return variant
        return None
