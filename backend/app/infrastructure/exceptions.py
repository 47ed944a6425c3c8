"""
Custom Exceptions for CoachBridge

Hierarchical exception classes for proper error handling across layers.
Each family maps to one HTTP status in ``app.main``.
"""

from typing import Optional, Dict, Any


class CoachBridgeError(Exception):
    """Base exception for all CoachBridge errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


class AuthenticationError(CoachBridgeError):
    """Raised when no authenticated principal can be resolved."""

    def __init__(self, message: str = "User not authenticated"):
        super().__init__(message)


class ValidationError(CoachBridgeError):
    """Raised when input validation fails."""
    pass


class PlanNotFoundError(ValidationError):
    """Raised when a price/product id is not in the plan catalog."""

    def __init__(self, price_id: Optional[str] = None):
        details = {"price_id": price_id} if price_id else {}
        super().__init__("Invalid plan selected", details)


class AlreadySubscribedError(ValidationError):
    """Raised when a user with an active subscription starts another checkout."""

    def __init__(self, user_id: str, subscription_id: Optional[str] = None):
        details = {"user_id": user_id}
        if subscription_id:
            details["subscription_id"] = subscription_id
        super().__init__("User already has an active subscription", details)


class CheckoutNotPaidError(ValidationError):
    """Raised when a checkout session is finalized before payment completed."""

    def __init__(self, session_id: str, payment_status: Optional[str] = None):
        details = {"session_id": session_id}
        if payment_status:
            details["payment_status"] = payment_status
        super().__init__("Payment not completed", details)


class WebhookSignatureError(ValidationError):
    """Raised when a webhook payload fails signature verification."""

    def __init__(self, message: str = "Invalid signature", original_error: Optional[Exception] = None):
        super().__init__(message, original_error=original_error)


class DatabaseError(CoachBridgeError):
    """Raised when database operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if table:
            details["table"] = table
        super().__init__(message, details, original_error)


class NotFoundError(DatabaseError):
    """Raised when a requested resource is not found."""
    pass


class DuplicateError(DatabaseError):
    """Raised when attempting to create a duplicate resource."""
    pass


class PaymentProviderError(CoachBridgeError):
    """Raised when a Stripe API call fails."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details, original_error)


class ConfigurationError(CoachBridgeError):
    """Raised when configuration is missing or invalid."""

    def __init__(
        self,
        message: str,
        missing_keys: Optional[list] = None,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if missing_keys:
            details["missing_keys"] = missing_keys
        super().__init__(message, details, original_error)
