"""
Consent lifecycle management
Creation, partner decision, biometric confirmation and history
"""

from .models import (
    ConsentStatus,
    PaymentStatus,
    PartyRole,
    ConfirmationState,
    ConsentView,
    PartyProfile,
    advance,
    revoke_partner,
)
from .engine import ConsentEngine

__all__ = [
    "ConsentStatus",
    "PaymentStatus",
    "PartyRole",
    "ConfirmationState",
    "ConsentView",
    "PartyProfile",
    "advance",
    "revoke_partner",
    "ConsentEngine",
]
