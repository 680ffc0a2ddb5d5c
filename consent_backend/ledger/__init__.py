"""
Consent credit ledger
"""

from .ledger import Ledger
from .models import Balance, subscription_active

__all__ = ["Ledger", "Balance", "subscription_active"]
