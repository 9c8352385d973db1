"""
Supplier product cache client.

The cache mirrors supplier catalogs pulled from external platforms (EDI
feeds). Requests are authenticated with a short-lived HS256 service token.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
import jwt
import requests
import structlog

from config import settings

logger = structlog.get_logger(__name__)


TOKEN_TTL = timedelta(hours=1)
REQUEST_TIMEOUT = 30


class SupplierProductCacheError(Exception):
    """Supplier product cache request failure."""
    pass


def get_token() -> str:
    """Signed service token, valid for one hour."""
    if not settings.service_secret_key:
        raise SupplierProductCacheError("SERVICE_SECRET_KEY is not configured")

    now = datetime.now(timezone.utc)
    payload = {
        "tokenCreatedAt": now.isoformat(),
        "iat": int(now.timestamp()),
        "exp": int((now + TOKEN_TTL).timestamp()),
    }
    return jwt.encode(payload, settings.service_secret_key, algorithm="HS256")


def _get(path: str) -> dict:
    if not settings.supplier_product_cache_url:
        raise SupplierProductCacheError("SUPPLIER_PRODUCT_CACHE_URL is not configured")

    url = f"{settings.supplier_product_cache_url.rstrip('/')}/{path.lstrip('/')}"
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {get_token()}",
    }

    try:
        response = requests.get(url, headers=headers, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json() or {}

    except requests.exceptions.RequestException as e:
        logger.error("supplier_product_cache_request_failed", path=path, error=str(e))
        raise SupplierProductCacheError(f"Supplier product cache request failed: {str(e)}")


def get_supplier(supplier_code: str) -> Optional[dict[str, Any]]:
    """
    Cache-side supplier record.

    Args:
        supplier_code: Slugged supplier name

    Returns:
        Supplier dict (with productCacheSync.latestSyncTimestamp) or None
    """
    data = _get(f"supplier/{supplier_code}")
    return data.get("body")


def get_products(supplier_code: str) -> list[dict[str, Any]]:
    """All cached products of a supplier, in the platform's raw shape."""
    data = _get(f"supplier-cache/{supplier_code}/products")
    body = data.get("body") or {}
    products = body.get("products") or []

    logger.info("supplier_product_cache_products_fetched", supplier_code=supplier_code, count=len(products))
    return products
