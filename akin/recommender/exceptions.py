"""Custom exceptions for the Akin engine.

Defines specific exception types for better error handling and reporting.
Each exception carries the HTTP status code the API layer responds with.
"""

from typing import Any, Dict, Optional


class AkinException(Exception):
    """Base exception for Akin errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class StorageError(AkinException):
    """Raised when a document store read or write fails."""

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        info: Dict[str, Any] = {}
        if collection is not None:
            info["collection"] = collection
        if error is not None:
            info["error"] = str(error)
            info["error_type"] = type(error).__name__
        info.update(details or {})
        super().__init__(message=message, status_code=500, details=info)


class ConfigurationError(AkinException):
    """Raised when decay, action-weight or pool configuration is invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details)


class NotFoundError(AkinException):
    """Raised when a user has no row in the requested collection."""

    def __init__(self, collection: str, user_id: Any):
        message = f"No {collection} row found for user {user_id}"
        super().__init__(
            message=message,
            status_code=404,
            details={"collection": collection, "user_id": user_id},
        )
