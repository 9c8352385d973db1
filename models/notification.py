"""
Outbound notification schemas.

Messages are consumed by marketplace integrations and are camelCase.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum

from models.base import CamelSchema


class MessageType(str, Enum):
    UPDATE_INVENTORY_PRICES = "UPDATE_INVENTORY_PRICES"
    ENABLED_DISABLED_PRODUCTS = "ENABLED_DISABLED_PRODUCTS"
    SYNC_PRODUCT_IMAGES = "SYNC_PRODUCT_IMAGES"


class InventoryPriceUpdateItem(CamelSchema):
    """
    One changed downstream variant.

    Only the changed fields among qty, price, compare_at_price and sku are set;
    quantity mirrors qty.
    """
    id: str
    variant_id: Optional[str] = None
    product_id: Optional[str] = None
    vendor_variant_id: Optional[str] = None
    shopify_id: Optional[str] = None
    qty: Optional[int] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    sku: Optional[str] = None


class VariantStatusUpdateItem(CamelSchema):
    """Status change for a downstream variant of a disabled product."""
    is_enabled_products: bool = False
    item_id: Optional[str] = None
    product_id: Optional[str] = None
    qty: int = 0


class ProductImageSyncItem(CamelSchema):
    product_id: Optional[str] = None
    images: Optional[str] = Field(None, description="Comma-joined image URLs")
    variant_image_map: dict[str, Any] = Field(default_factory=dict)


class OutboundMessage(CamelSchema):
    """Envelope published to the queue."""
    data: dict[str, Any]
    type: MessageType
    vendor_id: str
    queue_message_id: str
    marketplace_platform: str
    client_id: Optional[str] = None
