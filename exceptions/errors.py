"""
Custom exception classes for the sync engine.

Store failures (load/save) are escalated to the caller; per-item sync
failures are logged and contained by the synchronizers.
"""

from typing import Optional, Any
from datetime import datetime, timezone


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "MAPPING_LOAD_ERROR")
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


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper().replace(' ', '_')}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


# ===================
# MAPPING STORE ERRORS
# ===================

class MappingLoadError(AppError):
    """Mapping document missing, malformed or not unique."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="MAPPING_LOAD_ERROR",
            message=message,
            status_code=409,
            details={"file_path": file_path, **(details or {})}
        )


class MappingWriteError(AppError):
    """Mapping document could not be written."""

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="MAPPING_WRITE_ERROR",
            message=message,
            status_code=500,
            details={"file_path": file_path, **(details or {})}
        )


# ===================
# ORDER MAPPING ERRORS
# ===================

class DuplicateOrderError(DuplicateError):
    """Marketplace order already has an order mapping."""

    def __init__(self, marketplace_order_id: str):
        super().__init__(
            resource="Order mapping",
            field="marketplace_order_id",
            value=marketplace_order_id
        )


class OrderNotFoundError(NotFoundError):
    """No order mapping for the marketplace order."""

    def __init__(self, marketplace_order_id: str):
        super().__init__(
            resource="Order mapping",
            identifier=marketplace_order_id,
            code="ORDER_MAPPING_NOT_FOUND"
        )


# ===================
# SYNC ERRORS
# ===================

class SyncError(ExternalServiceError):
    """
    Call to the inventory system or the marketplace failed.

    Raised after retries are exhausted, or immediately for
    non-transient failures (4xx other than 429).
    """

    def __init__(
        self,
        service: str,
        message: str,
        method: Optional[str] = None,
        path: Optional[str] = None,
        status: Optional[int] = None,
        transient: bool = False,
        details: Optional[dict] = None
    ):
        self.method = method
        self.path = path
        self.status = status
        self.transient = transient
        super().__init__(
            service=service,
            message=message,
            code="SYNC_ERROR",
            details={
                "method": method,
                "path": path,
                "status": status,
                "transient": transient,
                **(details or {})
            }
        )


# ===================
# WEBHOOK ERRORS
# ===================

class WebhookError(ValidationError):
    """Webhook request could not be validated or parsed (400)."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="WEBHOOK_ERROR",
            message=message,
            details=details,
            status_code=400
        )
