"""
Tests for the notification sink
"""

import pytest

from consent_backend.notifications import NotificationType


class TestNotificationSink:

    @pytest.fixture(autouse=True)
    def _setup(self, database, notifications, make_user):
        self.database = database
        self.sink = notifications
        self.alice = make_user("alice@example.com")
        self.bob = make_user("bob@example.com")

    def test_emit_stores_unread(self):
        record = self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "hello", consent_id=7)

        assert record.id is not None
        assert record.user_id == self.alice
        assert record.consent_id == 7
        assert not record.is_read
        assert [n.id for n in self.sink.list_unread(self.alice)] == [record.id]

    def test_unread_newest_first(self):
        first = self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "one")
        second = self.sink.emit(self.alice, NotificationType.BIOMETRIC_CONFIRMATION, "two")

        assert [n.id for n in self.sink.list_unread(self.alice)] == [second.id, first.id]

    def test_emit_joins_unit_of_work(self):
        with pytest.raises(RuntimeError):
            with self.database.unit_of_work() as uow:
                self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "lost", uow=uow)
                raise RuntimeError("abort")

        assert self.sink.list_unread(self.alice) == []

    def test_mark_read(self):
        first = self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "one")
        second = self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "two")

        updated = self.sink.mark_read(self.alice, [first.id])

        assert updated == 1
        assert [n.id for n in self.sink.list_unread(self.alice)] == [second.id]

    def test_mark_read_ignores_other_users(self):
        foreign = self.sink.emit(self.bob, NotificationType.CONSENT_REQUEST, "bob's")

        assert self.sink.mark_read(self.alice, [foreign.id]) == 0
        assert [n.id for n in self.sink.list_unread(self.bob)] == [foreign.id]

    def test_mark_read_twice(self):
        record = self.sink.emit(self.alice, NotificationType.CONSENT_REQUEST, "one")

        assert self.sink.mark_read(self.alice, [record.id]) == 1
        assert self.sink.mark_read(self.alice, [record.id]) == 0

    def test_mark_read_empty(self):
        assert self.sink.mark_read(self.alice, []) == 0
