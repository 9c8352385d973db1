"""
Product batch API routes.

Suppliers submit their full catalog as a batch and poll batch results.
Responses are camelCase.
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from typing import Optional
from datetime import datetime
import structlog

from models.base import Pagination
from models.batch import (
    BatchListResponse,
    BatchQuery,
    BatchResult,
    BatchStatus,
    BatchStatusResponse,
    BatchSubmission,
)
from models.supplier import Supplier
from services.batch_service import get_batch_service
from services.product_batch_processor import get_product_batch_processor
from routes.deps import get_current_supplier
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
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


# ===================
# BATCH SUBMISSION
# ===================

@router.put("/batch", response_model=BatchResult, status_code=201)
def upsert_product_batch(
    submission: BatchSubmission,
    supplier: Supplier = Depends(get_current_supplier)
):
    """
    Submit a product batch.

    Returns:
        201: Batch processed successfully
        202: Batch accepted, will be processed in the background (async mode)
        422: Batch rejected or failed; the result explains why
    """
    try:
        processor = get_product_batch_processor()

        preprocessed = processor.preprocess(supplier, submission)
        if not preprocessed.valid:
            return JSONResponse(status_code=422, content=preprocessed.batch_result.to_wire())

        if preprocessed.is_async:
            logger.info("batch_accepted_async", batch_id=preprocessed.batch_id, supplier_id=supplier.id)
            return JSONResponse(status_code=202, content=preprocessed.batch_result.to_wire())

        result = processor.process(preprocessed.batch_id, supplier, preprocessed.batch_result)
        status_code = 201 if result.status == BatchStatus.SUCCESS else 422
        return JSONResponse(status_code=status_code, content=result.to_wire())

    except Exception as e:
        return handle_error(e)


# ===================
# BATCH LOOKUP
# ===================

@router.get("/batches", response_model=BatchListResponse)
def list_batches(
    page_index: int = Query(0, ge=0, description="Zero-based page"),
    page_size: int = Query(250, ge=1, le=1000, description="Items per page"),
    batch_name: Optional[str] = Query(None, description="Case-insensitive name filter"),
    status: Optional[BatchStatus] = Query(None, description="Filter by status"),
    batch_run_earliest: Optional[datetime] = Query(None, description="Run on or after"),
    batch_run_latest: Optional[datetime] = Query(None, description="Run on or before"),
    supplier: Supplier = Depends(get_current_supplier)
):
    """List the supplier's product batches, newest first."""
    try:
        query = BatchQuery(
            page_index=page_index,
            page_size=page_size,
            batch_name=batch_name,
            status=status,
            batch_run_earliest=batch_run_earliest,
            batch_run_latest=batch_run_latest,
        )
        records, total = get_batch_service().list_batches(query, supplier.id)

        return BatchListResponse(
            batches=[BatchResult.from_record(record) for record in records],
            pagination=Pagination.create(total, page_index, page_size)
        )

    except Exception as e:
        return handle_error(e)


@router.get("/batches/{batch_id}", response_model=BatchResult)
def get_batch(batch_id: str, supplier: Supplier = Depends(get_current_supplier)):
    """
    Get a batch result.

    Raises:
        404: Batch not found for this supplier
    """
    try:
        record = get_batch_service().require_batch(batch_id, supplier.id)
        return BatchResult.from_record(record)

    except Exception as e:
        return handle_error(e)


@router.get("/batches/{batch_id}/status", response_model=BatchStatusResponse)
def get_batch_status(batch_id: str, supplier: Supplier = Depends(get_current_supplier)):
    try:
        record = get_batch_service().require_batch(batch_id, supplier.id)
        return BatchStatusResponse(status=record.status)

    except Exception as e:
        return handle_error(e)
