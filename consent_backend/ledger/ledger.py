"""
Consent credit ledger
Per-user pack credits plus subscription flag; all writes are single-statement atomic updates
"""

from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from ..exceptions import (
    DuplicateEventError,
    InsufficientCreditError,
    NotFoundError,
    TransientFailureError,
    ValidationError,
)
from ..storage import (
    Database,
    PackConsentementDB,
    ProcessedPaymentEventDB,
    UnitOfWork,
    UserDB,
    utcnow,
)
from .models import Balance, subscription_active

logger = structlog.get_logger(__name__)


class Ledger:
    """Reads and mutates the pack_consentements table"""

    def __init__(self, database: Database):
        self.database = database

    def get_balance(self, user_id: int, uow: Optional[UnitOfWork] = None) -> Balance:
        """Current entitlement; reads inside ``uow`` when one is given"""
        if uow is not None:
            return self._read_balance(uow.session, user_id)
        with self.database.session() as session:
            return self._read_balance(session, user_id)

    def _read_balance(self, session, user_id: int) -> Balance:
        user = session.get(UserDB, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        quantity = session.execute(
            select(PackConsentementDB.quantity).where(PackConsentementDB.user_id == user_id)
        ).scalar_one_or_none()

        return Balance(
            is_subscribed=subscription_active(
                user.is_subscribed, user.subscription_end_date, utcnow()
            ),
            quantity=quantity or 0,
        )

    def consume_one_credit(self, uow: UnitOfWork, user_id: int) -> int:
        """
        Take one credit inside the caller's unit of work.

        The decrement is a conditional UPDATE, so two concurrent callers can
        never both spend the last credit. Returns the remaining quantity.
        """
        result = uow.session.execute(
            update(PackConsentementDB)
            .where(
                PackConsentementDB.user_id == user_id,
                PackConsentementDB.quantity >= 1,
            )
            .values(quantity=PackConsentementDB.quantity - 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("Credit consumption refused", user_id=user_id)
            raise InsufficientCreditError(user_id)

        remaining = self._quantity(uow, user_id)
        logger.info("Consumed consent credit", user_id=user_id, remaining=remaining)
        return remaining

    def add_credits(self, uow: UnitOfWork, user_id: int, amount: int) -> int:
        """Increment the user's credits, creating the ledger row on first purchase"""
        if amount <= 0:
            raise ValidationError("Credit amount must be positive", field="quantity")

        session = uow.session
        now = utcnow()
        result = session.execute(
            update(PackConsentementDB)
            .where(PackConsentementDB.user_id == user_id)
            .values(quantity=PackConsentementDB.quantity + amount, purchased_at=now)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            if session.get(UserDB, user_id) is None:
                raise NotFoundError("User", user_id)
            session.add(PackConsentementDB(user_id=user_id, quantity=amount, purchased_at=now))
            try:
                session.flush()
            except IntegrityError as e:
                # another transaction created the row first
                raise TransientFailureError("concurrent ledger creation") from e

        new_quantity = self._quantity(uow, user_id)
        logger.info("Added consent credits", user_id=user_id, amount=amount, quantity=new_quantity)
        return new_quantity

    def apply_payment(self, event_id: str, user_id: int, amount: int) -> int:
        """
        Credit a confirmed payment at most once.

        The event id is recorded in the same unit of work as the credit, so a
        redelivered confirmation raises DuplicateEventError and changes nothing.
        """
        if not event_id:
            raise ValidationError("Payment event id is required", field="event_id")

        with self.database.unit_of_work() as uow:
            session = uow.session
            seen = session.execute(
                select(ProcessedPaymentEventDB.id).where(ProcessedPaymentEventDB.event_id == event_id)
            ).first()
            if seen is not None:
                raise DuplicateEventError(event_id)
            if session.get(UserDB, user_id) is None:
                raise NotFoundError("User", user_id)

            session.add(ProcessedPaymentEventDB(event_id=event_id, user_id=user_id, quantity=amount))
            try:
                session.flush()
            except IntegrityError as e:
                raise DuplicateEventError(event_id) from e

            new_quantity = self.add_credits(uow, user_id, amount)

        logger.info("Applied payment", event_id=event_id, user_id=user_id, amount=amount)
        return new_quantity

    def _quantity(self, uow: UnitOfWork, user_id: int) -> int:
        return uow.session.execute(
            select(PackConsentementDB.quantity).where(PackConsentementDB.user_id == user_id)
        ).scalar_one()
