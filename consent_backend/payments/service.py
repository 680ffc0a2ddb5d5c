"""
Purchase collaborator
Payment intent creation and the confirmed-payment webhook that credits the ledger
"""

from typing import Any, Dict, Mapping, Optional

import structlog

from ..constants import PackPricing, PaymentEvents
from ..exceptions import (
    DuplicateEventError,
    NotFoundError,
    PaymentProviderUnavailableError,
    ValidationError,
)
from ..ledger import Ledger
from ..storage import Database, UserDB
from .models import PaymentSheet, WebhookOutcome
from .provider import PaymentProvider

logger = structlog.get_logger(__name__)


def _metadata_int(metadata: Mapping[str, Any], key: str) -> int:
    try:
        return int(metadata[key])
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError("Invalid payment metadata", field=key) from e


class PurchaseService:
    """
    Sells consent packs.

    Credits are granted only by a confirmed payment event, never when the
    payment sheet is created.
    """

    def __init__(self, database: Database, ledger: Ledger,
                 provider: Optional[PaymentProvider] = None,
                 currency: str = "eur", publishable_key: Optional[str] = None):
        self.database = database
        self.ledger = ledger
        self.provider = provider
        self.currency = currency
        self.publishable_key = publishable_key

    def _require_provider(self) -> PaymentProvider:
        if self.provider is None:
            raise PaymentProviderUnavailableError("no payment provider configured")
        return self.provider

    def create_payment_sheet(self, user_id: int, quantity: int) -> PaymentSheet:
        amount = PackPricing.PRICES.get(quantity)
        if amount is None:
            raise ValidationError(
                f"Packs are sold by {sorted(PackPricing.PRICES)} consents", field="quantity"
            )
        provider = self._require_provider()

        with self.database.session() as session:
            user = session.get(UserDB, user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            email = user.email
            customer_id = user.payment_customer_id

        if not customer_id:
            customer_id = provider.create_customer(email)
            with self.database.unit_of_work() as uow:
                user = uow.session.get(UserDB, user_id)
                if user.payment_customer_id:
                    # a concurrent purchase stored one first
                    customer_id = user.payment_customer_id
                else:
                    user.payment_customer_id = customer_id
            logger.info("Payment customer linked", user_id=user_id)

        ephemeral_key = provider.create_ephemeral_key(customer_id)
        intent = provider.create_payment_intent(
            amount,
            self.currency,
            customer_id,
            {
                PaymentEvents.METADATA_USER_ID: str(user_id),
                PaymentEvents.METADATA_PACK_QUANTITY: str(quantity),
            },
        )

        logger.info("Payment intent created", user_id=user_id, quantity=quantity,
                    amount=amount, payment_intent_id=intent.get("id"))
        return PaymentSheet(
            payment_intent=intent["client_secret"],
            ephemeral_key=ephemeral_key,
            customer=customer_id,
            publishable_key=self.publishable_key,
            amount=amount,
            currency=self.currency,
            quantity=quantity,
        )

    def handle_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        """
        Apply a provider webhook delivery.

        Redelivered confirmations are absorbed as no-ops keyed by the payment
        intent id.
        """
        event = self._require_provider().construct_event(payload, signature)
        event_type = event.get("type")
        logger.info("Payment webhook received", event_type=event_type)

        if event_type != PaymentEvents.PAYMENT_SUCCEEDED:
            return WebhookOutcome(event_type=event_type)

        return self.apply_succeeded_payment(event)

    def apply_succeeded_payment(self, event: Dict[str, Any]) -> WebhookOutcome:
        intent = (event.get("data") or {}).get("object") or {}
        metadata = intent.get("metadata") or {}

        user_id = _metadata_int(metadata, PaymentEvents.METADATA_USER_ID)
        quantity = _metadata_int(metadata, PaymentEvents.METADATA_PACK_QUANTITY)
        if quantity <= 0:
            raise ValidationError("Invalid payment metadata", field=PaymentEvents.METADATA_PACK_QUANTITY)

        event_id = intent.get("id") or event.get("id")
        if not event_id:
            raise ValidationError("Payment event has no id", field="id")

        try:
            new_quantity = self.ledger.apply_payment(event_id, user_id, quantity)
        except DuplicateEventError:
            logger.info("Duplicate payment event ignored", event_id=event_id, user_id=user_id)
            return WebhookOutcome(event_type=PaymentEvents.PAYMENT_SUCCEEDED, duplicate=True)

        return WebhookOutcome(
            event_type=PaymentEvents.PAYMENT_SUCCEEDED,
            applied=True,
            pack_quantity=new_quantity,
        )
