"""
EDI catalog parser.

Maps products held by the supplier product cache for EDI suppliers
(Shopify-like rows: handle, option1_name, variants with grams / weight_unit)
into a product batch submission.
"""

from datetime import datetime
from typing import Any, Optional
import structlog

from models.batch import (
    Barcode,
    BatchInfo,
    BatchProduct,
    BatchSubmission,
    BatchVariant,
    Image,
    Money,
    ShippingMeasurements,
    Stock,
    Weight,
)

logger = structlog.get_logger(__name__)


DEFAULT_CURRENCY = "USD"

WEIGHT_UNITS = {
    "g": "GRAM",
    "kg": "KILOGRAM",
    "oz": "OUNCE",
    "lb": "POUND",
}

# Multipliers from grams
GRAM_CONVERSIONS = {
    "GRAM": 1.0,
    "KILOGRAM": 0.001,
    "OUNCE": 0.035274,
    "POUND": 0.00220462,
}


def to_weight_unit(unit: Optional[str]) -> Optional[str]:
    """EDI unit code (g, kg, oz, lb) to batch weight unit; unknown codes pass through."""
    return WEIGHT_UNITS.get(unit, unit)


def grams_to_unit(grams: float, unit: Optional[str]) -> float:
    return grams * GRAM_CONVERSIONS.get(unit, 1.0)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _position(image: dict) -> int:
    try:
        return int(image.get("position"))
    except (TypeError, ValueError):
        return 0


def _money(amount: Any) -> Money:
    return Money(amount=_to_float(amount), currency=DEFAULT_CURRENCY)


def parse_edi_variant(variant: dict[str, Any], product_options: list[str]) -> BatchVariant:
    options = {}
    for index, name in enumerate(product_options):
        value = variant.get(f"option{index + 1}_value")
        if value:
            options[name] = value

    unit = to_weight_unit(variant.get("weight_unit"))
    grams = _to_float(variant.get("grams"))
    weight_value = grams_to_unit(grams, unit) if grams else None

    quantity = variant.get("inventory_qty")

    return BatchVariant(
        variant_key=variant.get("sku"),
        active=True,
        name=" / ".join(options.values()),
        options=options,
        sku=variant.get("sku"),
        barcode=Barcode(code=variant["barcode"], code_type="UNKNOWN") if variant.get("barcode") else None,
        price=_money(variant.get("price")),
        compare_to_price=_money(variant.get("compare_at_price")),
        wholesale_price=_money(variant.get("wholesale_price")),
        shipping_measurements=ShippingMeasurements(weight=Weight(unit=unit, value=weight_value)),
        stock=Stock(
            quantity=int(quantity) if quantity not in (None, "") else None,
            unlimited=variant.get("inventory_policy") == "continue"
        ),
        images=[Image(url=variant["image"])] if variant.get("image") else None,
    )


def parse_edi_product(product: dict[str, Any]) -> BatchProduct:
    options = [
        product[key] for key in ("option1_name", "option2_name", "option3_name")
        if product.get(key)
    ]

    tags = product.get("tags")
    images = sorted(product.get("images") or [], key=_position)

    return BatchProduct(
        product_key=product.get("handle"),
        active=product.get("status") == "active",
        name=product.get("title"),
        description=product.get("body_html"),
        brand_name=product.get("vendor"),
        product_type=product.get("type"),
        product_category=product.get("product_category"),
        options=options,
        tags=[tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None,
        images=[Image(url=image["src"]) for image in images if image.get("src")],
        variants=[parse_edi_variant(variant, options) for variant in product.get("variants") or []],
    )


def parse_edi_products(products: list[dict[str, Any]], sync_timestamp: datetime) -> BatchSubmission:
    """
    Build a batch submission from cached EDI products.

    Args:
        products: Raw cache products
        sync_timestamp: Cache sync time, used as batch date

    Returns:
        BatchSubmission named productBatch-<timestamp>
    """
    submission = BatchSubmission(
        batch=BatchInfo(
            batch_name=f"productBatch-{sync_timestamp.isoformat()}",
            batch_date=sync_timestamp,
        ),
        products=[parse_edi_product(product) for product in products],
    )

    logger.info(
        "edi_products_parsed",
        products=len(submission.products),
        variants=sum(len(product.variants) for product in submission.products)
    )
    return submission
