"""Shared fixtures: a file-backed SQLite database and the wired components."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

import pytest
from sqlalchemy import func, select

from consent_backend.config import BackendSettings
from consent_backend.consent import ConsentEngine
from consent_backend.crypto.encrypt import EncryptionGateway
from consent_backend.exceptions import ValidationError
from consent_backend.ledger import Ledger
from consent_backend.notifications import NotificationSink
from consent_backend.storage import Database, PackConsentementDB, UserDB

TEST_SECRET = "test-payload-secret"


@pytest.fixture
def database(tmp_path) -> Database:
    # file-backed so worker threads share one database
    db = Database(f"sqlite:///{tmp_path / 'consent.db'}", lock_timeout_ms=30000)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def ledger(database: Database) -> Ledger:
    return Ledger(database)


@pytest.fixture
def encryption() -> EncryptionGateway:
    return EncryptionGateway(TEST_SECRET)


@pytest.fixture
def notifications(database: Database) -> NotificationSink:
    return NotificationSink(database)


@pytest.fixture
def engine(database, ledger, encryption, notifications) -> ConsentEngine:
    return ConsentEngine(database, ledger, encryption, notifications)


@pytest.fixture
def make_user(database: Database) -> Callable[..., int]:
    """Insert a user directly, optionally with a ledger row; returns the id."""

    def _make_user(email: str, first_name: Optional[str] = None,
                   quantity: Optional[int] = None, subscribed: bool = False,
                   subscription_end_date: Optional[datetime] = None) -> int:
        with database.unit_of_work() as uow:
            user = UserDB(
                email=email,
                password_hash="not-a-real-hash",
                first_name=first_name,
                is_subscribed=subscribed,
                subscription_end_date=subscription_end_date,
            )
            uow.session.add(user)
            uow.session.flush()
            if quantity is not None:
                uow.session.add(PackConsentementDB(user_id=user.id, quantity=quantity))
            return user.id

    return _make_user


@pytest.fixture
def count_rows(database: Database) -> Callable[..., int]:
    def _count_rows(model, *criteria) -> int:
        with database.session() as session:
            stmt = select(func.count()).select_from(model)
            for criterion in criteria:
                stmt = stmt.where(criterion)
            return session.execute(stmt).scalar_one()

    return _count_rows


class FakePaymentProvider:
    """In-process payment provider recording every call."""

    VALID_SIGNATURE = "valid-signature"

    def __init__(self) -> None:
        self.customers: List[str] = []
        self.intents: List[Dict[str, Any]] = []

    def create_customer(self, email: str) -> str:
        self.customers.append(email)
        return f"cus_{len(self.customers)}"

    def create_ephemeral_key(self, customer_id: str) -> str:
        return f"ek_{customer_id}"

    def create_payment_intent(self, amount: int, currency: str, customer_id: str,
                              metadata: Mapping[str, str]) -> Dict[str, Any]:
        intent = {
            "id": f"pi_{len(self.intents) + 1}",
            "client_secret": f"pi_{len(self.intents) + 1}_secret",
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "metadata": dict(metadata),
        }
        self.intents.append(intent)
        return intent

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        if signature != self.VALID_SIGNATURE:
            raise ValidationError("Invalid webhook signature", field="signature")
        return json.loads(payload)


def payment_succeeded_event(intent_id: str, user_id: Any, quantity: Any) -> Dict[str, Any]:
    return {
        "id": f"evt_{intent_id}",
        "type": "payment_intent.succeeded",
        "data": {"object": {
            "id": intent_id,
            "metadata": {"userId": str(user_id), "packQuantity": str(quantity)},
        }},
    }


@pytest.fixture
def payment_provider() -> FakePaymentProvider:
    return FakePaymentProvider()


@pytest.fixture
def settings(tmp_path) -> BackendSettings:
    return BackendSettings(
        database_url=f"sqlite:///{tmp_path / 'api.db'}",
        aes_secret_key=TEST_SECRET,
        jwt_secret="test-jwt-secret",
        lock_timeout_ms=30000,
        payment_publishable_key="pk_test_123",
    )
