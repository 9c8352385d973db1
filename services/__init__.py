"""
Business logic services.

Each service handles one domain area.
"""

from services.batch_validator import BatchValidationResult, validate_batch, is_batch_valid
from services.variant_matching import MatchKind, MatchOutcome, classify_variant, find_candidates
from services.batch_service import BatchService, get_batch_service
from services.supplier_service import SupplierService, get_supplier_service
from services.supplied_product_service import SuppliedProductService, get_supplied_product_service
from services.imported_product_service import ImportedProductService, get_imported_product_service
from services.notification_service import NotificationService, get_notification_service
from services.supplied_product_sync_service import (
    SuppliedProductSyncService,
    get_supplied_product_sync_service,
)
from services.product_batch_processor import (
    ProductBatchProcessor,
    PreprocessResult,
    get_product_batch_processor,
)
from services.inventory_adjustment_service import (
    InventoryAdjustmentService,
    get_inventory_adjustment_service,
    parse_adjustment_request,
)
from services.tasks_service import TasksService, get_tasks_service

__all__ = [
    "BatchValidationResult",
    "validate_batch",
    "is_batch_valid",
    "MatchKind",
    "MatchOutcome",
    "classify_variant",
    "find_candidates",
    "BatchService",
    "get_batch_service",
    "SupplierService",
    "get_supplier_service",
    "SuppliedProductService",
    "get_supplied_product_service",
    "ImportedProductService",
    "get_imported_product_service",
    "NotificationService",
    "get_notification_service",
    "SuppliedProductSyncService",
    "get_supplied_product_sync_service",
    "ProductBatchProcessor",
    "PreprocessResult",
    "get_product_batch_processor",
    "InventoryAdjustmentService",
    "get_inventory_adjustment_service",
    "parse_adjustment_request",
    "TasksService",
    "get_tasks_service",
]
