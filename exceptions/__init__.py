"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    AuthenticationError,
    DatabaseError,

    # Suppliers
    SupplierNotFoundError,
    MissingSyncSettingsError,

    # Batches
    BatchNotFoundError,
    StaleBatchError,
    UnsupportedStrategyError,
    BatchNotPendingError,
    CanonicalIntegrityError,

    # Adjustments
    AdjustmentItemError,
    AdjustmentRequestError,
    AdjustmentResolutionError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "AuthenticationError",
    "DatabaseError",

    # Suppliers
    "SupplierNotFoundError",
    "MissingSyncSettingsError",

    # Batches
    "BatchNotFoundError",
    "StaleBatchError",
    "UnsupportedStrategyError",
    "BatchNotPendingError",
    "CanonicalIntegrityError",

    # Adjustments
    "AdjustmentItemError",
    "AdjustmentRequestError",
    "AdjustmentResolutionError",
]
