"""
Database tables for the consent backend
SQLAlchemy models for users, the credit ledger, consents and notifications
"""

from datetime import datetime, UTC

from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(UTC).replace(tzinfo=None)


class UserDB(Base):
    """Account owned by the auth collaborator; referenced elsewhere by id only"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(128), nullable=False)

    first_name = Column(String(100))
    last_name = Column(String(100))
    date_of_birth = Column(DateTime)
    photo_url = Column(Text)

    payment_customer_id = Column(String(128))
    is_subscribed = Column(Boolean, nullable=False, default=False)
    subscription_end_date = Column(DateTime)

    score = Column(Integer, nullable=False, default=0)
    badges = Column(Text)  # JSON list

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class PackConsentementDB(Base):
    """One ledger row per user holding the available pack credits"""
    __tablename__ = "pack_consentements"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_pack_consentements_quantity_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    quantity = Column(Integer, nullable=False, default=0)
    purchased_at = Column(DateTime, nullable=False, default=utcnow)


class ConsentDB(Base):
    """Bilateral consent record"""
    __tablename__ = "consents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    status = Column(String(16), nullable=False)
    payment_status = Column(String(16), nullable=False)

    initiator_confirmed = Column(Boolean, nullable=False, default=False)
    partner_confirmed = Column(Boolean, nullable=False, default=False)
    biometric_validated = Column(Boolean, nullable=False, default=False)
    biometric_validated_at = Column(DateTime)

    deleted_by_initiator = Column(Boolean, nullable=False, default=False)
    deleted_by_partner = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False)

    encrypted_data = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    initiator = relationship(UserDB, foreign_keys=[user_id])
    partner = relationship(UserDB, foreign_keys=[partner_id])


class NotificationDB(Base):
    """Notification addressed to a user; consent_id is a loose reference"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(64), nullable=False)
    message = Column(Text, nullable=False)
    consent_id = Column(Integer)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class ProcessedPaymentEventDB(Base):
    """Payment confirmations already credited to the ledger"""
    __tablename__ = "processed_payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(255), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
