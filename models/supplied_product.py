"""
Canonical supplied product schemas.

SuppliedProduct/SuppliedProductVariant mirror what the supplier sent and
are keyed by (product_id, supplier_id) and
(variant_id, product_id, supplied_product_id). product_id and variant_id
hold the supplier's productKey and variantKey.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, TimestampMixin
from models.batch import BatchProduct, BatchVariant, Image


class RecordState(str, Enum):
    ENABLED = "ENABLED"
    DISABLED = "DISABLED"


class InventoryPolicy(str, Enum):
    """deny = tracked stock, continue = unlimited."""
    DENY = "deny"
    CONTINUE = "continue"


def to_image_list(images: Optional[list[Image]]) -> Optional[list[dict]]:
    """Stored images carry both url and src."""
    if images is None:
        return None
    return [{**image.model_dump(exclude_none=True), "src": image.url} for image in images]


class SuppliedVariantInput(BaseSchema):
    """Canonical variant values derived from one batch variant."""

    variant_id: str
    product_id: str
    name: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[dict[str, Any]] = None
    price: Optional[float] = None
    compare_at_price: Optional[float] = None
    wholesale_price: Optional[float] = None
    inventory_quantity: Optional[int] = None
    inventory_policy: InventoryPolicy = InventoryPolicy.DENY
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    images: Optional[list[dict[str, Any]]] = None
    image_id: Optional[str] = None
    requires_shipping: bool = True
    is_taxable: bool = True
    state: RecordState = RecordState.ENABLED
    weight: Optional[float] = None
    weight_unit: Optional[str] = None
    country_of_origin_code: Optional[str] = None
    harmonized_code: Optional[str] = None
    checked_on: Optional[datetime] = None

    @classmethod
    def from_batch(cls, product: BatchProduct, variant: BatchVariant) -> "SuppliedVariantInput":
        options = product.options or []
        values = variant.options or {}
        option_values = [
            values.get(options[index]) if index < len(options) else None
            for index in range(3)
        ]
        weight = variant.shipping_measurements.weight if variant.shipping_measurements else None

        return cls(
            variant_id=variant.variant_key,
            product_id=product.product_key,
            name=" / ".join(value for value in option_values if value is not None),
            sku=variant.sku,
            barcode=variant.barcode.model_dump(by_alias=True) if variant.barcode else None,
            price=variant.price.amount if variant.price else None,
            compare_at_price=variant.compare_to_price.amount if variant.compare_to_price else None,
            wholesale_price=variant.wholesale_price.amount if variant.wholesale_price else None,
            inventory_quantity=variant.stock.quantity if variant.stock else None,
            inventory_policy=(
                InventoryPolicy.CONTINUE if variant.stock and variant.stock.unlimited
                else InventoryPolicy.DENY
            ),
            option1=option_values[0],
            option2=option_values[1],
            option3=option_values[2],
            images=to_image_list(variant.images),
            image_id=variant.images[0].id if variant.images else None,
            state=RecordState.ENABLED if variant.active else RecordState.DISABLED,
            weight=weight.value if weight else None,
            weight_unit=weight.unit if weight else None,
            country_of_origin_code=variant.country_of_origin_code,
            harmonized_code=variant.harmonized_code,
        )

    @property
    def option_values(self) -> tuple[Optional[str], Optional[str], Optional[str]]:
        return (self.option1, self.option2, self.option3)

    def to_row(self) -> dict:
        """Column values for insert/update."""
        return self.model_dump(mode="json")

    def comparable(self) -> dict:
        """Values compared against the canonical row, without bookkeeping."""
        return self.model_dump(mode="json", exclude={"checked_on"})


class SuppliedProductInput(BaseSchema):
    """Canonical product values derived from one batch product."""

    product_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    body_html: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    product_type: Optional[str] = None
    product_kind: Optional[str] = None
    options: Optional[list[str]] = None
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    images: Optional[list[dict[str, Any]]] = None
    tags: Optional[list[str]] = None
    custom_data: Optional[dict[str, Any]] = None
    state: RecordState = RecordState.ENABLED
    status: str = "active"
    checked_on: Optional[datetime] = None
    variants: list[SuppliedVariantInput] = Field(default_factory=list)

    @classmethod
    def from_batch(cls, product: BatchProduct) -> "SuppliedProductInput":
        """Product only; variants are added as they are accepted."""
        options = product.options or []
        return cls(
            product_id=product.product_key,
            name=product.name,
            description=product.description,
            body_html=product.description,
            brand=product.brand_name,
            category=product.product_category,
            product_type=product.product_type,
            product_kind=product.product_kind,
            options=product.options,
            option1=options[0] if len(options) > 0 else None,
            option2=options[1] if len(options) > 1 else None,
            option3=options[2] if len(options) > 2 else None,
            images=to_image_list(product.images),
            tags=product.tags,
            custom_data=product.custom_data,
            state=RecordState.ENABLED if product.active else RecordState.DISABLED,
            status="active" if product.active else "inactive",
        )

    def to_row(self) -> dict:
        return self.model_dump(mode="json", exclude={"variants"})


class SuppliedVariantRecord(SuppliedVariantInput, TimestampMixin):
    """Row of the supplied_product_variants table."""

    id: str
    supplied_product_id: str
    generated_sku: Optional[str] = None


class SuppliedProductRecord(SuppliedProductInput, TimestampMixin):
    """Row of the supplied_products table, variants attached by the service."""

    id: str
    supplier_id: str
    variants: list[SuppliedVariantRecord] = Field(default_factory=list)
