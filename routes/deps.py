"""
Shared route dependencies: request authentication.
"""

from fastapi import Header
from typing import Optional
import hmac
import structlog

from config import settings
from models.supplier import Supplier
from services.supplier_service import get_supplier_service
from exceptions import AuthenticationError

logger = structlog.get_logger(__name__)


def _key_matches(sent: Optional[str], expected: str) -> bool:
    return sent is not None and hmac.compare_digest(sent, expected)


def get_current_supplier(
    x_supplier_id: str = Header(..., description="Calling supplier UUID"),
    x_api_key: Optional[str] = Header(None, description="API key, required when configured")
) -> Supplier:
    """
    Resolve the calling supplier.

    Raises:
        AuthenticationError: API key configured and not matching
        SupplierNotFoundError: Unknown supplier id
    """
    if settings.api_key and not _key_matches(x_api_key, settings.api_key):
        logger.warning("supplier_auth_failed", supplier_id=x_supplier_id)
        raise AuthenticationError()

    return get_supplier_service().require_supplier(x_supplier_id)


def require_admin(
    x_admin_key: Optional[str] = Header(None, description="Admin key")
) -> None:
    if not settings.admin_api_key or not _key_matches(x_admin_key, settings.admin_api_key):
        logger.warning("admin_auth_failed")
        raise AuthenticationError("Invalid or missing admin key")
