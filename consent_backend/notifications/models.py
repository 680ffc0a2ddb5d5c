"""
Notification data models
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class NotificationType(str, Enum):
    """Kinds of lifecycle events delivered to users"""
    CONSENT_REQUEST = "CONSENT_REQUEST"
    BIOMETRIC_CONFIRMATION = "BIOMETRIC_CONFIRMATION"


class NotificationRecord(BaseModel):
    """Notification as returned to its recipient"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    type: NotificationType
    message: str
    consent_id: Optional[int] = None
    is_read: bool = False
    created_at: datetime
