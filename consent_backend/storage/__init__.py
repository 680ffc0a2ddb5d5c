"""
Persistence for the consent backend
SQLAlchemy tables plus the unit-of-work transaction boundary
"""

from .database import Database, UnitOfWork
from .models import (
    Base,
    UserDB,
    PackConsentementDB,
    ConsentDB,
    NotificationDB,
    ProcessedPaymentEventDB,
    utcnow,
)

__all__ = [
    "Database",
    "UnitOfWork",
    "Base",
    "UserDB",
    "PackConsentementDB",
    "ConsentDB",
    "NotificationDB",
    "ProcessedPaymentEventDB",
    "utcnow",
]
