"""
Admin API routes.

Operator triggers for work that normally runs on a schedule.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import structlog

from models.batch import BATCH_TYPE, BatchStatus
from services.batch_service import get_batch_service
from services.supplier_service import get_supplier_service
from services.product_batch_processor import get_product_batch_processor
from services.tasks_service import get_tasks_service
from integrations.supplier_product_cache import SupplierProductCacheError
from routes.deps import require_admin
from exceptions import (
    AppError,
    BatchNotFoundError,
    BatchNotPendingError,
    ExternalServiceError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_admin)])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.post("/suppliers/{supplier_id}/product-cache-sync", status_code=202)
def post_product_cache_sync(supplier_id: str):
    """
    Import the supplier's catalog from the supplier product cache.

    Raises:
        404: Supplier not found
        503: Supplier product cache unavailable
    """
    try:
        supplier = get_supplier_service().require_supplier(supplier_id)

        try:
            batch_id = get_tasks_service().supplier_product_cache_sync(supplier)
        except SupplierProductCacheError as e:
            raise ExternalServiceError("supplier_product_cache", str(e))

        return {"success": True, "batchId": batch_id}

    except Exception as e:
        return handle_error(e)


@router.post("/batches/{batch_id}/process", status_code=202)
def post_batch_process(batch_id: str):
    """
    Process one PENDING batch now.

    Raises:
        404: Batch not found
        409: Batch is not PENDING
        422: Batch is not a product batch
    """
    try:
        batch = get_batch_service().get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)

        if batch.status != BatchStatus.PENDING:
            raise BatchNotPendingError(batch_id, batch.status.value)

        if batch.type != BATCH_TYPE:
            raise ValidationError(
                message=f"Batch {batch_id} is not of type {BATCH_TYPE}, cannot be processed.",
                code="INVALID_BATCH_TYPE"
            )

        supplier = get_supplier_service().require_supplier(batch.supplier_id)
        result = get_product_batch_processor().process(batch.id, supplier)

        return {"success": True, "status": result.status.value}

    except Exception as e:
        return handle_error(e)


@router.post("/batches/process-pending")
def post_process_pending_batches():
    """Process every PENDING product batch."""
    try:
        results = get_tasks_service().process_pending_batches()
        return {
            "processed": len(results),
            "results": {batch_id: status.value for batch_id, status in results.items()},
        }

    except Exception as e:
        return handle_error(e)
