"""
Notification sink
Persists lifecycle events for their recipients and tracks read state
"""

from typing import List, Optional, Sequence

import structlog
from sqlalchemy import select, update

from ..storage import Database, NotificationDB, UnitOfWork
from .models import NotificationRecord, NotificationType

logger = structlog.get_logger(__name__)


class NotificationSink:
    """Write-once notifications; only the read flag ever changes"""

    def __init__(self, database: Database):
        self.database = database

    def emit(self, recipient_user_id: int, notification_type: NotificationType,
             message: str, consent_id: Optional[int] = None,
             uow: Optional[UnitOfWork] = None) -> NotificationRecord:
        """
        Store an unread notification.

        When ``uow`` is given the insert joins that unit of work and is only
        visible once it commits.
        """
        if uow is not None:
            return self._insert(uow, recipient_user_id, notification_type, message, consent_id)

        with self.database.unit_of_work() as own:
            return self._insert(own, recipient_user_id, notification_type, message, consent_id)

    def _insert(self, uow: UnitOfWork, recipient_user_id: int,
                notification_type: NotificationType, message: str,
                consent_id: Optional[int]) -> NotificationRecord:
        row = NotificationDB(
            user_id=recipient_user_id,
            type=notification_type.value,
            message=message,
            consent_id=consent_id,
            is_read=False,
        )
        uow.session.add(row)
        uow.session.flush()

        logger.info("Notification emitted", notification_id=row.id,
                    recipient=recipient_user_id, type=notification_type.value,
                    consent_id=consent_id)
        return NotificationRecord.model_validate(row)

    def list_unread(self, user_id: int) -> List[NotificationRecord]:
        with self.database.session() as session:
            rows = session.execute(
                select(NotificationDB)
                .where(NotificationDB.user_id == user_id, NotificationDB.is_read.is_(False))
                .order_by(NotificationDB.created_at.desc(), NotificationDB.id.desc())
            ).scalars().all()
            return [NotificationRecord.model_validate(row) for row in rows]

    def mark_read(self, user_id: int, notification_ids: Sequence[int]) -> int:
        """Mark the caller's notifications read; ids owned by others are ignored"""
        ids = list(notification_ids)
        if not ids:
            return 0

        with self.database.unit_of_work() as uow:
            result = uow.session.execute(
                update(NotificationDB)
                .where(
                    NotificationDB.id.in_(ids),
                    NotificationDB.user_id == user_id,
                    NotificationDB.is_read.is_(False),
                )
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount

        logger.info("Notifications marked read", user_id=user_id, requested=len(ids), updated=count)
        return count
