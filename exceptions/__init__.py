"""
Custom exceptions module.

Unmapped identifiers are not exceptions: lookups return an explicit
unmapped result instead.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    DuplicateError,
    ExternalServiceError,

    # Mapping store
    MappingLoadError,
    MappingWriteError,

    # Order mapping
    DuplicateOrderError,
    OrderNotFoundError,

    # External APIs
    SyncError,

    # Webhooks
    WebhookError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "DuplicateError",
    "ExternalServiceError",

    # Mapping store
    "MappingLoadError",
    "MappingWriteError",

    # Order mapping
    "DuplicateOrderError",
    "OrderNotFoundError",

    # External APIs
    "SyncError",

    # Webhooks
    "WebhookError",
]
