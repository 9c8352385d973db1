"""
Inventory API routes.

Ad-hoc stock and price adjustments between batches.
"""

from fastapi import APIRouter, Body, Depends, Response
from fastapi.responses import JSONResponse
from typing import Any
import structlog

from models.adjustment import AdjustmentErrorResponse
from models.supplier import Supplier
from services.inventory_adjustment_service import (
    get_inventory_adjustment_service,
    parse_adjustment_request,
)
from routes.deps import get_current_supplier
from exceptions import AppError, AdjustmentRequestError, AdjustmentResolutionError

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, (AdjustmentRequestError, AdjustmentResolutionError)):
        return JSONResponse(
            status_code=e.status_code,
            content=AdjustmentErrorResponse(errors=e.issues).to_wire()
        )
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


@router.post("/adjustment", status_code=204)
def post_inventory_adjustment(
    payload: Any = Body(..., description="List of adjustment items"),
    supplier: Supplier = Depends(get_current_supplier)
):
    """
    Apply inventory adjustments, all or nothing.

    Raises:
        400: Malformed request (schema, missing or duplicate keys)
        422: One or more items could not be resolved; nothing applied
    """
    try:
        items = parse_adjustment_request(payload)
        get_inventory_adjustment_service().process_adjustments(items, supplier)
        return Response(status_code=204)

    except Exception as e:
        return handle_error(e)
