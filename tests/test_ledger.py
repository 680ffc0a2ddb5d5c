"""
Tests for the consent credit ledger
"""

from datetime import timedelta

import pytest

from consent_backend.exceptions import (
    DuplicateEventError,
    InsufficientCreditError,
    NotFoundError,
    ValidationError,
)
from consent_backend.storage import PackConsentementDB, ProcessedPaymentEventDB, utcnow


class TestBalance:

    @pytest.fixture(autouse=True)
    def _setup(self, ledger, make_user):
        self.ledger = ledger
        self.make_user = make_user

    def test_user_without_ledger_row_has_zero(self):
        user_id = self.make_user("a@example.com")

        balance = self.ledger.get_balance(user_id)

        assert balance.quantity == 0
        assert not balance.is_subscribed
        assert not balance.can_create_consent

    def test_pack_quantity_is_reported(self):
        user_id = self.make_user("a@example.com", quantity=3)

        balance = self.ledger.get_balance(user_id)

        assert balance.quantity == 3
        assert balance.can_create_consent

    def test_subscription_without_end_date(self):
        user_id = self.make_user("a@example.com", subscribed=True)

        assert self.ledger.get_balance(user_id).is_subscribed

    def test_expired_subscription_does_not_count(self):
        user_id = self.make_user(
            "a@example.com",
            subscribed=True,
            subscription_end_date=utcnow() - timedelta(days=1),
        )

        assert not self.ledger.get_balance(user_id).is_subscribed

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.ledger.get_balance(9999)


class TestConsumeAndAdd:

    @pytest.fixture(autouse=True)
    def _setup(self, database, ledger, make_user):
        self.database = database
        self.ledger = ledger
        self.make_user = make_user

    def test_consume_decrements(self):
        user_id = self.make_user("a@example.com", quantity=2)

        with self.database.unit_of_work() as uow:
            remaining = self.ledger.consume_one_credit(uow, user_id)

        assert remaining == 1
        assert self.ledger.get_balance(user_id).quantity == 1

    def test_consume_with_zero_credits(self):
        user_id = self.make_user("a@example.com", quantity=0)

        with pytest.raises(InsufficientCreditError):
            with self.database.unit_of_work() as uow:
                self.ledger.consume_one_credit(uow, user_id)

        assert self.ledger.get_balance(user_id).quantity == 0

    def test_consume_without_ledger_row(self):
        user_id = self.make_user("a@example.com")

        with pytest.raises(InsufficientCreditError):
            with self.database.unit_of_work() as uow:
                self.ledger.consume_one_credit(uow, user_id)

    def test_consume_rolled_back_with_its_unit_of_work(self):
        user_id = self.make_user("a@example.com", quantity=1)

        with pytest.raises(RuntimeError):
            with self.database.unit_of_work() as uow:
                self.ledger.consume_one_credit(uow, user_id)
                raise RuntimeError("later step failed")

        assert self.ledger.get_balance(user_id).quantity == 1

    def test_explicit_begin_and_rollback(self):
        user_id = self.make_user("a@example.com", quantity=1)

        uow = self.database.unit_of_work()
        uow.begin()
        self.ledger.consume_one_credit(uow, user_id)
        uow.rollback()

        assert not uow.active
        assert self.ledger.get_balance(user_id).quantity == 1

    def test_add_credits_creates_row(self, count_rows):
        user_id = self.make_user("a@example.com")

        with self.database.unit_of_work() as uow:
            quantity = self.ledger.add_credits(uow, user_id, 10)

        assert quantity == 10
        assert count_rows(PackConsentementDB, PackConsentementDB.user_id == user_id) == 1

    def test_add_credits_increments(self):
        user_id = self.make_user("a@example.com", quantity=2)

        with self.database.unit_of_work() as uow:
            quantity = self.ledger.add_credits(uow, user_id, 1)

        assert quantity == 3

    @pytest.mark.parametrize("amount", [0, -1])
    def test_add_credits_rejects_non_positive(self, amount):
        user_id = self.make_user("a@example.com")

        with pytest.raises(ValidationError):
            with self.database.unit_of_work() as uow:
                self.ledger.add_credits(uow, user_id, amount)

    def test_add_credits_unknown_user(self):
        with pytest.raises(NotFoundError):
            with self.database.unit_of_work() as uow:
                self.ledger.add_credits(uow, 9999, 1)


class TestApplyPayment:

    @pytest.fixture(autouse=True)
    def _setup(self, ledger, make_user, count_rows):
        self.ledger = ledger
        self.make_user = make_user
        self.count_rows = count_rows

    def test_payment_credits_once(self):
        user_id = self.make_user("a@example.com")

        assert self.ledger.apply_payment("pi_1", user_id, 10) == 10

        with pytest.raises(DuplicateEventError):
            self.ledger.apply_payment("pi_1", user_id, 10)

        assert self.ledger.get_balance(user_id).quantity == 10
        assert self.count_rows(ProcessedPaymentEventDB) == 1

    def test_distinct_payments_accumulate(self):
        user_id = self.make_user("a@example.com")

        self.ledger.apply_payment("pi_1", user_id, 1)
        self.ledger.apply_payment("pi_2", user_id, 10)

        assert self.ledger.get_balance(user_id).quantity == 11

    def test_failed_credit_leaves_no_event(self):
        with pytest.raises(NotFoundError):
            self.ledger.apply_payment("pi_1", 9999, 1)

        assert self.count_rows(ProcessedPaymentEventDB) == 0

    def test_event_id_required(self):
        user_id = self.make_user("a@example.com")

        with pytest.raises(ValidationError):
            self.ledger.apply_payment("", user_id, 1)
