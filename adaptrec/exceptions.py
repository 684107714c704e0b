"""Custom exceptions for AdaptRec.

Defines specific exception types for the recommendation engine and the
HTTP layer that serves it.
"""

from typing import Any, Dict, Optional


class AdaptRecException(Exception):
    """Base exception for AdaptRec errors."""

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


class ValidationError(AdaptRecException):
    """Raised when a product cannot be turned into a feature vector."""

    def __init__(self, product_id: Any, reason: str):
        message = f"Product {product_id!r} is malformed: {reason}"
        super().__init__(
            message=message,
            status_code=422,
            details={"product_id": product_id, "reason": reason},
        )


class TrainingError(AdaptRecException):
    """Raised when a training pass fails and its update is discarded."""

    def __init__(self, generation: int, error: Exception):
        message = f"Training failed at generation {generation}: {str(error)}"
        super().__init__(
            message=message,
            status_code=500,
            details={
                "generation": generation,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class CatalogNotFoundError(AdaptRecException):
    """Raised when the catalog file cannot be found."""

    def __init__(self, catalog_path: str):
        message = f"Catalog not found at '{catalog_path}'. Please generate one first."
        super().__init__(
            message=message,
            status_code=503,
            details={"catalog_path": catalog_path},
        )


class SessionNotFoundError(AdaptRecException):
    """Raised when a user has no active session."""

    def __init__(self, user_id: str):
        message = f"No active session for user {user_id}. Please log in first."
        super().__init__(
            message=message,
            status_code=404,
            details={"user_id": user_id},
        )


class UnknownProductError(AdaptRecException):
    """Raised when a purchase references a product missing from the catalog."""

    def __init__(self, product_id: Any):
        message = f"Product {product_id!r} is not in the catalog"
        super().__init__(
            message=message,
            status_code=404,
            details={"product_id": product_id},
        )
