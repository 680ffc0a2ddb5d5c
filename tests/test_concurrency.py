"""
Concurrent access tests: real threads against one file-backed database
"""

import threading
from typing import Callable, List

import pytest

from consent_backend.consent import ConsentEngine
from consent_backend.exceptions import (
    ConsentBackendError,
    InsufficientCreditError,
    TransientFailureError,
)
from consent_backend.ledger import Ledger
from consent_backend.notifications import NotificationSink
from consent_backend.notifications import NotificationType
from consent_backend.storage import ConsentDB, Database, NotificationDB, UserDB

PAYLOAD = {"message": "concurrent"}


def run_together(calls: List[Callable[[], object]]) -> List[object]:
    """Start every call at the same instant; collect results or raised errors in order"""
    barrier = threading.Barrier(len(calls))
    outcomes: List[object] = [None] * len(calls)

    def worker(index: int, call: Callable[[], object]) -> None:
        barrier.wait()
        try:
            outcomes[index] = call()
        except ConsentBackendError as e:
            outcomes[index] = e

    threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


class TestConcurrentCreation:

    def test_last_credit_spent_once(self, engine, ledger, make_user, count_rows):
        alice = make_user("alice@example.com", quantity=1)
        make_user("bob@example.com")

        outcomes = run_together([
            lambda: engine.create(alice, "bob@example.com", PAYLOAD),
            lambda: engine.create(alice, "bob@example.com", PAYLOAD),
        ])

        created = [o for o in outcomes if isinstance(o, int)]
        refused = [o for o in outcomes if isinstance(o, InsufficientCreditError)]
        assert len(created) == 1
        assert len(refused) == 1
        assert ledger.get_balance(alice).quantity == 0
        assert count_rows(ConsentDB) == 1
        assert count_rows(NotificationDB) == 1

    @pytest.mark.parametrize("workers,credits", [(8, 3), (5, 5)])
    def test_credits_never_overspent(self, engine, ledger, make_user, count_rows,
                                     workers, credits):
        alice = make_user("alice@example.com", quantity=credits)
        make_user("bob@example.com")

        outcomes = run_together([
            lambda: engine.create(alice, "bob@example.com", PAYLOAD)
            for _ in range(workers)
        ])

        created = [o for o in outcomes if isinstance(o, int)]
        assert len(created) == min(workers, credits)
        assert all(
            isinstance(o, InsufficientCreditError) for o in outcomes if not isinstance(o, int)
        )
        assert ledger.get_balance(alice).quantity == credits - len(created)
        assert count_rows(ConsentDB) == len(created)


class TestConcurrentConfirmation:

    def test_simultaneous_confirmations_validate_once(self, engine, make_user, count_rows):
        alice = make_user("alice@example.com", quantity=10)
        bob = make_user("bob@example.com")
        consent_ids = [engine.create(alice, "bob@example.com", PAYLOAD) for _ in range(5)]

        calls = []
        for consent_id in consent_ids:
            calls.append(lambda cid=consent_id: engine.confirm_biometric(cid, alice))
            calls.append(lambda cid=consent_id: engine.confirm_biometric(cid, bob))
            calls.append(lambda cid=consent_id: engine.confirm_biometric(cid, bob))

        outcomes = run_together(calls)

        assert not [o for o in outcomes if isinstance(o, Exception)]
        for consent_id in consent_ids:
            view = engine.get_consent(consent_id, alice)
            assert view.initiator_confirmed
            assert view.partner_confirmed
            assert view.biometric_validated
            assert count_rows(
                NotificationDB,
                NotificationDB.consent_id == consent_id,
                NotificationDB.type == NotificationType.BIOMETRIC_CONFIRMATION.value,
            ) == 1

    def test_accept_and_confirm_race(self, engine, make_user, count_rows):
        alice = make_user("alice@example.com", quantity=1)
        bob = make_user("bob@example.com")
        consent_id = engine.create(alice, "bob@example.com", PAYLOAD)

        outcomes = run_together([
            lambda: engine.accept_by_partner(consent_id, bob),
            lambda: engine.confirm_biometric(consent_id, bob),
        ])

        assert not [o for o in outcomes if isinstance(o, Exception)]
        view = engine.get_consent(consent_id, alice)
        assert view.partner_confirmed
        assert view.biometric_validated
        assert count_rows(
            NotificationDB,
            NotificationDB.type == NotificationType.BIOMETRIC_CONFIRMATION.value,
        ) == 1


class TestConcurrentPayments:

    def test_redelivered_payment_credited_once(self, ledger, make_user, count_rows):
        alice = make_user("alice@example.com")

        outcomes = run_together([
            lambda: ledger.apply_payment("pi_same", alice, 10) for _ in range(4)
        ])

        assert len([o for o in outcomes if isinstance(o, int)]) == 1
        assert ledger.get_balance(alice).quantity == 10


class TestLockTimeout:

    @pytest.fixture(autouse=True)
    def _setup(self, tmp_path, encryption, make_user):
        # shares the file with the make_user fixture database but waits only 200ms
        self.database = Database(f"sqlite:///{tmp_path / 'consent.db'}", lock_timeout_ms=200)
        self.ledger = Ledger(self.database)
        self.engine = ConsentEngine(self.database, self.ledger, encryption,
                                    NotificationSink(self.database))
        self.alice = make_user("alice@example.com", quantity=3)
        make_user("bob@example.com")
        yield
        self.database.dispose()

    def test_blocked_create_is_transient_and_leaves_no_trace(self, count_rows):
        holder = self.database.unit_of_work()
        session = holder.begin()
        session.get(UserDB, self.alice)

        try:
            with pytest.raises(TransientFailureError):
                self.engine.create(self.alice, "bob@example.com", PAYLOAD)
        finally:
            holder.rollback()

        assert self.ledger.get_balance(self.alice).quantity == 3
        assert count_rows(ConsentDB) == 0
        assert count_rows(NotificationDB) == 0

        self.engine.create(self.alice, "bob@example.com", PAYLOAD)

        assert self.ledger.get_balance(self.alice).quantity == 2
        assert count_rows(ConsentDB) == 1

    def test_blocked_read_is_transient(self):
        holder = self.database.unit_of_work()
        session = holder.begin()
        session.get(UserDB, self.alice)

        try:
            with pytest.raises(TransientFailureError):
                self.ledger.get_balance(self.alice)
        finally:
            holder.rollback()

        assert self.ledger.get_balance(self.alice).quantity == 3
