"""
API route modules.

Each module defines routes for one domain area.
"""

from routes.products import router as products_router
from routes.inventory import router as inventory_router
from routes.admin import router as admin_router

__all__ = [
    "products_router",
    "inventory_router",
    "admin_router",
]
