"""
Supplier schemas.

Supplier configuration is stored as camelCase JSON on the suppliers row;
unknown keys are kept so updates never drop settings owned elsewhere.
"""

from pydantic import ConfigDict, Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime
import json
import re

from models.base import BaseSchema, CamelSchema


class ReconciliationStrategy(str, Enum):
    """How incoming variants are matched to canonical records."""
    IMMUTABLE_VARIANT_KEY = "immutable_variant_key"
    IMMUTABLE_PRODUCT_KEY = "immutable_product_key"


class ProductsSyncSettings(CamelSchema):
    model_config = ConfigDict(extra="allow")

    immutable_variant_key: Optional[bool] = None
    has_pricing: bool = False
    has_inventory: bool = False
    has_wholesale_pricing: bool = False
    async_mode: bool = False
    spc_sync_enabled: bool = False

    @property
    def strategy(self) -> Optional[ReconciliationStrategy]:
        """
        Strategy selected by the settings.

        immutableVariantKey=true selects the variant strategy, any other
        explicit value selects the product strategy, absence selects none.
        """
        if self.immutable_variant_key is True:
            return ReconciliationStrategy.IMMUTABLE_VARIANT_KEY
        if "immutable_variant_key" in self.model_fields_set:
            return ReconciliationStrategy.IMMUTABLE_PRODUCT_KEY
        return None


class SupplierConfig(CamelSchema):
    model_config = ConfigDict(extra="allow")

    products_sync_settings: Optional[ProductsSyncSettings] = None
    currency: Optional[str] = None
    stock_threshold: Optional[float] = Field(None, description="Units held back from downstream stock")
    update_prices: bool = False
    catalog_sync_images: bool = False
    billing_type: Optional[str] = Field(None, description="WHOLESALE or COMMISSION")
    latest_products_sync_time_stamp: Optional[datetime] = None

    @property
    def sync_settings(self) -> ProductsSyncSettings:
        return self.products_sync_settings or ProductsSyncSettings()

    @property
    def threshold(self) -> float:
        return self.stock_threshold or 0


class Supplier(BaseSchema):
    """Row of the suppliers table with parsed config."""

    id: str
    name: Optional[str] = None
    platform: Optional[str] = None
    config: SupplierConfig = Field(default_factory=SupplierConfig)

    @field_validator("config", mode="before")
    @classmethod
    def parse_config(cls, v: Any):
        """Config may be stored as a JSON string."""
        if v is None:
            return {}
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v

    @property
    def code(self) -> str:
        """Slug used by the supplier product cache."""
        return re.sub(r"\W+", "-", (self.name or "").lower())
