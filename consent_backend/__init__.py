"""
Consent Backend
Bilateral consents gated by a credit ledger, with biometric confirmation and notifications
"""

__version__ = "0.1.0"

# Core exports
from .config import BackendSettings, get_settings

# Storage
from .storage import Database, UnitOfWork

# Components
from .ledger import Ledger, Balance
from .crypto import EncryptionGateway
from .consent import (
    ConsentEngine, ConsentStatus, PaymentStatus, PartyRole,
    ConfirmationState, ConsentView, advance
)
from .notifications import NotificationSink, NotificationType, NotificationRecord

# Collaborators
from .accounts import AccountService
from .payments import PurchaseService, PaymentProvider

# Errors
from .exceptions import (
    ConsentBackendError,
    ValidationError,
    UnauthorizedError,
    NotFoundError,
    InsufficientCreditError,
    PartnerNotFoundError,
    TransientFailureError,
    DuplicateEventError,
)

__all__ = [
    # Config
    "BackendSettings",
    "get_settings",

    # Storage
    "Database",
    "UnitOfWork",

    # Components
    "Ledger",
    "Balance",
    "EncryptionGateway",
    "ConsentEngine",
    "ConsentStatus",
    "PaymentStatus",
    "PartyRole",
    "ConfirmationState",
    "ConsentView",
    "advance",
    "NotificationSink",
    "NotificationType",
    "NotificationRecord",

    # Collaborators
    "AccountService",
    "PurchaseService",
    "PaymentProvider",

    # Errors
    "ConsentBackendError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "InsufficientCreditError",
    "PartnerNotFoundError",
    "TransientFailureError",
    "DuplicateEventError",
]
