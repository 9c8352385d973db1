"""
Pydantic models for validation and serialization.

Wire schemas (supplier-facing) are camelCase, table rows are snake_case.
"""

from models.base import (
    BaseSchema,
    CamelSchema,
    TimestampMixin,
    Pagination,
)
from models.batch import (
    BATCH_TYPE,
    BatchStatus,
    Money,
    Stock,
    Image,
    BatchVariantPayload,
    BatchVariant,
    BatchProduct,
    BatchInfo,
    BatchSubmission,
    VariantError,
    ProductError,
    ImportedProductKey,
    ImportedVariantKey,
    BatchResult,
    BatchRecord,
    BatchQuery,
    BatchListResponse,
    BatchStatusResponse,
)
from models.supplier import (
    ReconciliationStrategy,
    ProductsSyncSettings,
    SupplierConfig,
    Supplier,
)
from models.supplied_product import (
    RecordState,
    InventoryPolicy,
    SuppliedVariantInput,
    SuppliedProductInput,
    SuppliedVariantRecord,
    SuppliedProductRecord,
)
from models.imported_product import (
    MISSING_WHOLESALE_PRICE,
    ImportedVariant,
    ImportedProduct,
)
from models.adjustment import (
    AdjustmentItem,
    AdjustmentIssue,
    AdjustmentErrorResponse,
)
from models.notification import (
    MessageType,
    InventoryPriceUpdateItem,
    VariantStatusUpdateItem,
    ProductImageSyncItem,
    OutboundMessage,
)

__all__ = [
    # Base
    "BaseSchema",
    "CamelSchema",
    "TimestampMixin",
    "Pagination",

    # Batch
    "BATCH_TYPE",
    "BatchStatus",
    "Money",
    "Stock",
    "Image",
    "BatchVariantPayload",
    "BatchVariant",
    "BatchProduct",
    "BatchInfo",
    "BatchSubmission",
    "VariantError",
    "ProductError",
    "ImportedProductKey",
    "ImportedVariantKey",
    "BatchResult",
    "BatchRecord",
    "BatchQuery",
    "BatchListResponse",
    "BatchStatusResponse",

    # Supplier
    "ReconciliationStrategy",
    "ProductsSyncSettings",
    "SupplierConfig",
    "Supplier",

    # Supplied products
    "RecordState",
    "InventoryPolicy",
    "SuppliedVariantInput",
    "SuppliedProductInput",
    "SuppliedVariantRecord",
    "SuppliedProductRecord",

    # Imported products
    "MISSING_WHOLESALE_PRICE",
    "ImportedVariant",
    "ImportedProduct",

    # Adjustments
    "AdjustmentItem",
    "AdjustmentIssue",
    "AdjustmentErrorResponse",

    # Notifications
    "MessageType",
    "InventoryPriceUpdateItem",
    "VariantStatusUpdateItem",
    "ProductImageSyncItem",
    "OutboundMessage",
]
