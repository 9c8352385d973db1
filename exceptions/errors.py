"""
Custom exception classes for the application.

Every error carries a code, an HTTP status and a details dict so routes
can return the same envelope regardless of where the error was raised.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "BATCH_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None,
        status_code: int = 422
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status_code,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class AuthenticationError(AppError):
    """Missing or invalid credentials (401)."""

    def __init__(self, message: str = "Invalid or missing API key"):
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SUPPLIER ERRORS
# ===================

class SupplierNotFoundError(NotFoundError):
    """Supplier not found."""

    def __init__(self, supplier_id: str):
        super().__init__(
            resource="Supplier",
            identifier=supplier_id,
            code="SUPPLIER_NOT_FOUND"
        )


class MissingSyncSettingsError(ValidationError):
    """Supplier has no product sync settings configured."""

    def __init__(self, supplier_id: str):
        super().__init__(
            code="MISSING_SYNC_SETTINGS",
            message="No product sync settings defined in supplier config",
            details={"supplier_id": supplier_id},
            status_code=400
        )


# ===================
# BATCH ERRORS
# ===================

class BatchNotFoundError(NotFoundError):
    """Batch not found for this supplier."""

    def __init__(self, batch_id: str):
        super().__init__(
            resource="Batch",
            identifier=batch_id,
            code="BATCH_NOT_FOUND"
        )


class StaleBatchError(ConflictError):
    """A newer successful batch already exists for the supplier."""

    def __init__(self, batch_id: str, batch_date: str):
        super().__init__(
            code="STALE_BATCH",
            message="A completed batch exists that has more recent product information.",
            details={"batch_id": batch_id, "batch_date": batch_date}
        )


class UnsupportedStrategyError(AppError):
    """Reconciliation strategy exists by name but is not implemented."""

    def __init__(self, strategy: str):
        super().__init__(
            code="UNSUPPORTED_STRATEGY",
            message="Immutable product key strategy is not supported yet",
            status_code=501,
            details={"strategy": strategy}
        )


class BatchNotPendingError(ConflictError):
    """Batch was already picked up; it can only be processed while PENDING."""

    def __init__(self, batch_id: str, status: str):
        super().__init__(
            code="BATCH_NOT_PENDING",
            message=f"Batch {batch_id} is not in a pending state, cannot be processed.",
            details={"batch_id": batch_id, "status": status}
        )


class CanonicalIntegrityError(AppError):
    """Canonical records are in a state that should be impossible."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="CANONICAL_INTEGRITY_ERROR",
            message=message,
            status_code=500,
            details=details
        )


# ===================
# ADJUSTMENT ERRORS
# ===================

class AdjustmentItemError(Exception):
    """Single adjustment item could not be resolved.

    Never leaves the resolver on its own; it is collected into an
    AdjustmentResolutionError keyed by the item index.
    """
    pass


class AdjustmentRequestError(ValidationError):
    """Adjustment request is malformed as a whole (400)."""

    def __init__(self, issues: list[dict]):
        super().__init__(
            code="ADJUSTMENT_REQUEST_INVALID",
            message="Invalid adjustment request",
            details={"issues": issues},
            status_code=400
        )
        self.issues = issues


class AdjustmentResolutionError(ValidationError):
    """One or more adjustment items failed; nothing was applied (422)."""

    def __init__(self, issues: list[dict]):
        super().__init__(
            code="ADJUSTMENT_RESOLUTION_FAILED",
            message=f"Adjustment failed with {len(issues)} errors",
            details={"issues": issues}
        )
        self.issues = issues
