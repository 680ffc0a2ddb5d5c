"""
Notification sink for consent lifecycle events
"""

from .models import NotificationRecord, NotificationType
from .sink import NotificationSink

__all__ = ["NotificationRecord", "NotificationType", "NotificationSink"]
