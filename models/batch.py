"""
Product batch schemas: supplier submissions, persisted batches and results.

Submissions arrive camelCase (productKey, variantKey, compareToPrice...)
and results are returned the same way.
"""

from pydantic import ConfigDict, Field, SerializeAsAny, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime, timezone

from models.base import CamelSchema, BaseSchema, TimestampMixin, Pagination


BATCH_TYPE = "SUPPLIED_PRODUCT"


class BatchStatus(str, Enum):
    """Batch lifecycle: PENDING -> PROCESSING -> SUCCESS | ERROR."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ===================
# SUBMISSION
# ===================

class Money(CamelSchema):
    amount: Optional[float] = None
    currency: Optional[str] = Field(None, max_length=3)


class Stock(CamelSchema):
    quantity: Optional[int] = None
    unlimited: bool = False


class Image(CamelSchema):
    id: Optional[str] = None
    url: str
    alt: Optional[str] = None


class Barcode(CamelSchema):
    code: str
    code_type: Optional[str] = None


class Weight(CamelSchema):
    value: Optional[float] = None
    unit: Optional[str] = None


class ShippingMeasurements(CamelSchema):
    weight: Optional[Weight] = None


class BatchVariantPayload(CamelSchema):
    """
    One variant as received in a submission.

    Only the identity fields are read here; everything else is kept as
    sent and parsed into a BatchVariant when the batch is processed, so a
    malformed field only rejects the variant's own product.
    """
    model_config = ConfigDict(extra="allow")

    variant_key: Optional[str] = Field(None, description="Supplier's variant identifier")
    options: Any = None
    ref_id: Optional[int] = Field(None, description="Position in the product, assigned on ingestion")

    @field_validator("variant_key", mode="before")
    @classmethod
    def key_as_string(cls, v):
        if v is None or isinstance(v, str):
            return v
        return str(v)

    def to_variant(self) -> "BatchVariant":
        """
        Parse the full variant.

        Raises:
            pydantic.ValidationError: A field has the wrong shape
        """
        if isinstance(self, BatchVariant):
            return self
        return BatchVariant.model_validate(self.model_dump(by_alias=True))


class BatchVariant(BatchVariantPayload):
    """
    One fully parsed variant.

    variant_key may be missing here; the batch validator reports it
    instead of rejecting the whole request.
    """
    model_config = ConfigDict(extra="ignore")

    variant_key: Optional[str] = Field(None, description="Supplier's variant identifier")
    active: bool = True
    name: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[Barcode] = None
    mpn: Optional[str] = None
    price: Optional[Money] = None
    compare_to_price: Optional[Money] = None
    wholesale_price: Optional[Money] = None
    stock: Optional[Stock] = None
    options: Optional[dict[str, str]] = None
    images: Optional[list[Image]] = None
    shipping_measurements: Optional[ShippingMeasurements] = None
    country_of_origin_code: Optional[str] = None
    harmonized_code: Optional[str] = None
    ref_id: Optional[int] = Field(None, description="Position in the product, assigned on ingestion")


class BatchProduct(CamelSchema):
    """One product as sent by the supplier."""

    product_key: Optional[str] = Field(None, description="Supplier's product identifier")
    active: bool = True
    name: Optional[str] = None
    description: Optional[str] = None
    brand_name: Optional[str] = None
    product_type: Optional[str] = None
    product_kind: Optional[str] = None
    product_category: Optional[str] = None
    supplier_url: Optional[str] = None
    options: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    images: Optional[list[Image]] = None
    custom_data: Optional[dict[str, Any]] = None
    variants: list[SerializeAsAny[BatchVariantPayload]] = Field(default_factory=list)
    ref_id: Optional[int] = Field(None, description="Position in the batch, assigned on ingestion")

    @field_validator("variants", mode="before")
    @classmethod
    def null_variants_as_empty(cls, v):
        return v if v is not None else []


class BatchInfo(CamelSchema):
    batch_name: str = Field(..., min_length=1, max_length=255)
    batch_date: datetime

    @field_validator("batch_date")
    @classmethod
    def batch_date_utc(cls, v: datetime) -> datetime:
        """Batch dates are compared across submissions, keep them in UTC."""
        return as_utc(v)


class BatchSubmission(CamelSchema):
    """Body of a product batch upsert."""
    batch: BatchInfo
    products: list[BatchProduct] = Field(default_factory=list)

    def with_ref_ids(self) -> "BatchSubmission":
        """Copy with positional ref ids on every product and variant."""
        products = []
        for index, product in enumerate(self.products):
            variants = [
                variant.model_copy(update={"ref_id": variant_index})
                for variant_index, variant in enumerate(product.variants)
            ]
            products.append(product.model_copy(update={"ref_id": index, "variants": variants}))
        return self.model_copy(update={"products": products})


# ===================
# RESULTS
# ===================

class VariantError(CamelSchema):
    variant_key: Optional[str] = None
    ref_id: Optional[int] = None
    reason: str


class ProductError(CamelSchema):
    product_key: Optional[str] = None
    ref_id: Optional[int] = None
    reason: str
    variants: Optional[list[VariantError]] = None


class ImportedVariantKey(CamelSchema):
    variant_key: str


class ImportedProductKey(CamelSchema):
    product_key: str
    variants: list[ImportedVariantKey] = Field(default_factory=list)


class BatchResult(CamelSchema):
    """Outcome of a batch, returned to the supplier and stored on the batch row."""

    id: str = ""
    batch_name: str
    batch_date: datetime
    batch_run_date: Optional[datetime] = None
    status: BatchStatus = BatchStatus.PENDING
    products_imported_count: Optional[int] = None
    products_not_imported_count: Optional[int] = None
    products_imported: list[ImportedProductKey] = Field(default_factory=list)
    products_not_imported: list[ProductError] = Field(default_factory=list)
    custom_data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_record(cls, record: "BatchRecord") -> "BatchResult":
        """Build the API view of a persisted batch."""
        stored = record.result or {}
        imported = stored.get("productsImported") or []
        not_imported = stored.get("productsNotImported") or []
        return cls(
            id=record.id,
            batch_name=record.name,
            batch_date=record.date,
            batch_run_date=record.run_date,
            status=record.status,
            products_imported_count=len(imported) if "productsImported" in stored else None,
            products_not_imported_count=len(not_imported) if "productsNotImported" in stored else None,
            products_imported=imported,
            products_not_imported=not_imported,
            custom_data=stored.get("customData") or {},
        )


# ===================
# PERSISTED BATCH
# ===================

class BatchRecord(BaseSchema, TimestampMixin):
    """Row of the batches table."""

    id: str
    supplier_id: str
    type: str = BATCH_TYPE
    status: BatchStatus
    name: str
    date: datetime
    run_date: Optional[datetime] = None
    content: Optional[dict[str, Any]] = None
    result: Optional[dict[str, Any]] = None

    @property
    def submission(self) -> Optional[BatchSubmission]:
        """Stored submission snapshot, if any."""
        if not self.content:
            return None
        return BatchSubmission.model_validate(self.content)


class BatchQuery(BaseSchema):
    """Filters for listing batches."""
    page_index: int = Field(0, ge=0)
    page_size: int = Field(250, ge=1, le=1000)
    batch_name: Optional[str] = None
    status: Optional[BatchStatus] = None
    batch_run_earliest: Optional[datetime] = None
    batch_run_latest: Optional[datetime] = None


class BatchListResponse(CamelSchema):
    batches: list[BatchResult]
    pagination: Pagination


class BatchStatusResponse(CamelSchema):
    status: BatchStatus
