"""
Inventory adjustment schemas.
"""

from pydantic import Field
from typing import Optional, Union

from models.base import CamelSchema
from models.batch import Money


class AdjustmentItem(CamelSchema):
    """
    One ad-hoc adjustment.

    Exactly one of sku / variant_key identifies the variant. Fields left
    unset are never written.
    """

    sku: Optional[str] = Field(None, min_length=1)
    variant_key: Optional[str] = Field(None, min_length=1)
    quantity: Optional[int] = Field(None, ge=0)
    price: Optional[Money] = None
    compare_to_price: Optional[Money] = None
    wholesale_price: Optional[Money] = None
    unlimited: Optional[bool] = None
    currency: Optional[str] = Field(None, max_length=3)

    @property
    def lookup(self) -> tuple[str, str]:
        """(wire key, value) used to find the variant."""
        if self.variant_key:
            return "variantKey", self.variant_key
        return "sku", self.sku

    @property
    def price_amount(self) -> Optional[float]:
        return self.price.amount if self.price else None

    @property
    def compare_to_price_amount(self) -> Optional[float]:
        return self.compare_to_price.amount if self.compare_to_price else None

    @property
    def wholesale_price_amount(self) -> Optional[float]:
        return self.wholesale_price.amount if self.wholesale_price else None


class AdjustmentIssue(CamelSchema):
    path: Union[int, str]
    message: str


class AdjustmentErrorResponse(CamelSchema):
    errors: list[AdjustmentIssue]
