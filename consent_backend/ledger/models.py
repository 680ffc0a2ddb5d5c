"""
Ledger read models
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Balance(BaseModel):
    """A user's current entitlement to create consents"""
    is_subscribed: bool = Field(..., description="Active subscription, no credit consumed")
    quantity: int = Field(..., ge=0, description="Available pack credits")

    @property
    def can_create_consent(self) -> bool:
        return self.is_subscribed or self.quantity >= 1


def subscription_active(is_subscribed: bool, end_date: Optional[datetime], now: datetime) -> bool:
    """Subscription counts only while its end date, if any, is in the future"""
    if not is_subscribed:
        return False
    return end_date is None or end_date > now
