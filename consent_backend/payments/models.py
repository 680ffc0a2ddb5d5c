"""
Purchase flow data models
"""

from typing import Optional

from pydantic import BaseModel


class PaymentSheet(BaseModel):
    """Everything the client payment sheet needs to collect a card payment"""
    payment_intent: str
    ephemeral_key: str
    customer: str
    publishable_key: Optional[str] = None
    amount: int
    currency: str
    quantity: int


class WebhookOutcome(BaseModel):
    received: bool = True
    applied: bool = False
    duplicate: bool = False
    event_type: Optional[str] = None
    pack_quantity: Optional[int] = None
