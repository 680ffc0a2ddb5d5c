"""
Consent pack purchases
"""

from .models import PaymentSheet, WebhookOutcome
from .provider import PaymentProvider
from .service import PurchaseService

__all__ = ["PaymentSheet", "WebhookOutcome", "PaymentProvider", "PurchaseService"]
