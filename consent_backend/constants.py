"""
Constants for the consent backend

Pack pricing, pagination defaults and payment event names.
"""

from typing import Dict, Final

# =============================================================================
# SERVICE IDENTIFICATION
# =============================================================================

SERVICE_NAME: Final[str] = "consent-backend"
SERVICE_VERSION: Final[str] = "0.1.0"

# =============================================================================
# PACK PRICING
# =============================================================================

class PackPricing:
    """Consent pack sizes and their price in minor currency units"""
    PRICES: Final[Dict[int, int]] = {
        1: 100,    # 1.00 for a single consent
        10: 1000,  # 10.00 for a pack of ten
    }


# =============================================================================
# HISTORY PAGINATION
# =============================================================================

class Pagination:
    DEFAULT_SKIP: Final[int] = 0
    DEFAULT_TAKE: Final[int] = 10
    MAX_TAKE: Final[int] = 100


# =============================================================================
# PAYMENT EVENTS
# =============================================================================

class PaymentEvents:
    """Payment provider event types and metadata keys"""
    PAYMENT_SUCCEEDED: Final[str] = "payment_intent.succeeded"

    METADATA_USER_ID: Final[str] = "userId"
    METADATA_PACK_QUANTITY: Final[str] = "packQuantity"


# =============================================================================
# ERROR CODES
# =============================================================================

class ErrorCodes:
    """Standardized error codes returned to API callers"""
    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"
    AUTHENTICATION_FAILED: Final[str] = "AUTHENTICATION_FAILED"
    EMAIL_ALREADY_REGISTERED: Final[str] = "EMAIL_ALREADY_REGISTERED"
    UNAUTHORIZED: Final[str] = "UNAUTHORIZED"
    NOT_FOUND: Final[str] = "NOT_FOUND"
    INSUFFICIENT_CREDIT: Final[str] = "INSUFFICIENT_CREDIT"
    PARTNER_NOT_FOUND: Final[str] = "PARTNER_NOT_FOUND"
    INVALID_TRANSITION: Final[str] = "INVALID_TRANSITION"
    TRANSIENT_FAILURE: Final[str] = "TRANSIENT_FAILURE"
    DUPLICATE_EVENT: Final[str] = "DUPLICATE_EVENT"
    ENCRYPTION_FAILED: Final[str] = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED: Final[str] = "DECRYPTION_FAILED"
    PAYMENT_PROVIDER_UNAVAILABLE: Final[str] = "PAYMENT_PROVIDER_UNAVAILABLE"
