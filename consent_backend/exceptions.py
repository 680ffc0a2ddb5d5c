"""
Custom Exceptions for the consent backend

Provides a unified exception hierarchy for the consent lifecycle,
credit ledger, payload encryption and the payment collaborator.
"""

from typing import Optional, Dict, Any

from .constants import ErrorCodes


class ConsentBackendError(Exception):
    """
    Base exception for all consent backend errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str = "CONSENT_BACKEND_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses"""
        result: Dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# =============================================================================
# INPUT AND IDENTITY ERRORS
# =============================================================================

class ValidationError(ConsentBackendError):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, ErrorCodes.VALIDATION_ERROR, details)


class AuthenticationError(ConsentBackendError):
    """Raised when credentials or an access token are rejected"""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, ErrorCodes.AUTHENTICATION_FAILED)


class EmailAlreadyRegisteredError(ConsentBackendError):
    """Raised on signup with an email that already has an account"""

    def __init__(self) -> None:
        super().__init__("Email already registered", ErrorCodes.EMAIL_ALREADY_REGISTERED)


# =============================================================================
# CONSENT ERRORS
# =============================================================================

class UnauthorizedError(ConsentBackendError):
    """
    Raised when the acting user has no rights over a resource.

    Carries no detail on whether the resource exists.
    """

    def __init__(self) -> None:
        super().__init__("Action not authorized", ErrorCodes.UNAUTHORIZED)


class NotFoundError(ConsentBackendError):
    """Raised when a resource does not exist"""

    def __init__(self, resource: str, resource_id: Optional[Any] = None):
        details: Dict[str, Any] = {"resource": resource}
        if resource_id is not None:
            details["id"] = resource_id
        super().__init__(f"{resource} not found", ErrorCodes.NOT_FOUND, details)


class PartnerNotFoundError(ConsentBackendError):
    """Raised when the partner email does not resolve to a user"""

    def __init__(self) -> None:
        super().__init__("Partner not found", ErrorCodes.PARTNER_NOT_FOUND)


class InvalidTransitionError(ConsentBackendError):
    """Raised when a consent status change is requested from a terminal status"""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            message=f"Consent is already {current_status}",
            error_code=ErrorCodes.INVALID_TRANSITION,
            details={"current": current_status, "requested": requested_status}
        )


# =============================================================================
# LEDGER ERRORS
# =============================================================================

class InsufficientCreditError(ConsentBackendError):
    """Raised when a non-subscribed user holds no pack credit"""

    def __init__(self, user_id: Optional[int] = None):
        details: Dict[str, Any] = {}
        if user_id is not None:
            details["user_id"] = user_id
        super().__init__("No consent credit available", ErrorCodes.INSUFFICIENT_CREDIT, details)


class DuplicateEventError(ConsentBackendError):
    """Raised when a payment event has already been applied"""

    def __init__(self, event_id: str):
        super().__init__(
            message="Payment event already applied",
            error_code=ErrorCodes.DUPLICATE_EVENT,
            details={"event_id": event_id}
        )


# =============================================================================
# STORAGE ERRORS
# =============================================================================

class TransientFailureError(ConsentBackendError):
    """Raised on contention or lock timeout; the caller may retry"""

    def __init__(self, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(
            "Storage is busy, retry the request",
            ErrorCodes.TRANSIENT_FAILURE,
            details
        )


# =============================================================================
# ENCRYPTION ERRORS
# =============================================================================

class EncryptionError(ConsentBackendError):
    """Base exception for encryption-related errors"""

    def __init__(
        self,
        message: str = "Encryption operation failed",
        error_code: str = ErrorCodes.ENCRYPTION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, error_code, details)


class DecryptionFailedError(EncryptionError):
    """Raised when ciphertext cannot be decrypted with the current key"""

    def __init__(self, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__("Decryption operation failed", ErrorCodes.DECRYPTION_FAILED, details)


# =============================================================================
# PAYMENT ERRORS
# =============================================================================

class PaymentProviderUnavailableError(ConsentBackendError):
    """Raised when no payment provider is configured or it cannot be reached"""

    def __init__(self, reason: Optional[str] = None):
        details: Dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        super().__init__(
            "Payment provider not available",
            ErrorCodes.PAYMENT_PROVIDER_UNAVAILABLE,
            details
        )
