"""
Payment provider contract
Only the calls the purchase flow needs; provider SDK wiring lives outside this package
"""

from typing import Any, Dict, Mapping, Optional, Protocol


class PaymentProvider(Protocol):
    """Card payment provider used for consent pack purchases"""

    def create_customer(self, email: str) -> str:
        """Register a customer and return its provider id"""
        ...

    def create_ephemeral_key(self, customer_id: str) -> str:
        """Short-lived key letting the mobile client act for the customer"""
        ...

    def create_payment_intent(self, amount: int, currency: str, customer_id: str,
                              metadata: Mapping[str, str]) -> Dict[str, Any]:
        """Create a payment intent; the result carries ``id`` and ``client_secret``"""
        ...

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook delivery and return the event.

        Implementations raise ValidationError when the signature does not match.
        """
        ...
