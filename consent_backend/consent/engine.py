"""
Consent lifecycle engine
Creation gated by the credit ledger, partner decision, two-party biometric confirmation
"""

from typing import Any, Dict, List, Optional, Union

import structlog
from sqlalchemy import and_, not_, or_, select
from sqlalchemy.orm import Session, selectinload

from ..constants import Pagination
from ..crypto.encrypt import EncryptionGateway
from ..exceptions import (
    InsufficientCreditError,
    InvalidTransitionError,
    NotFoundError,
    PartnerNotFoundError,
    UnauthorizedError,
    ValidationError,
)
from ..ledger import Ledger
from ..notifications import NotificationSink, NotificationType
from ..storage import ConsentDB, Database, UserDB, utcnow
from .models import (
    ConfirmationState,
    ConsentStatus,
    ConsentView,
    PartyProfile,
    PartyRole,
    PaymentStatus,
    advance,
    revoke_partner,
)

logger = structlog.get_logger(__name__)


def _confirmation_of(consent: ConsentDB) -> ConfirmationState:
    return ConfirmationState(
        initiator_confirmed=consent.initiator_confirmed,
        partner_confirmed=consent.partner_confirmed,
        biometric_validated=consent.biometric_validated,
    )


def _role_of(consent: ConsentDB, user_id: int) -> Optional[PartyRole]:
    if consent.user_id == user_id:
        return PartyRole.INITIATOR
    if consent.partner_id == user_id:
        return PartyRole.PARTNER
    return None


def _to_view(consent: ConsentDB, with_parties: bool = False) -> ConsentView:
    view = ConsentView(
        id=consent.id,
        user_id=consent.user_id,
        partner_id=consent.partner_id,
        status=ConsentStatus(consent.status),
        payment_status=PaymentStatus(consent.payment_status),
        initiator_confirmed=consent.initiator_confirmed,
        partner_confirmed=consent.partner_confirmed,
        biometric_validated=consent.biometric_validated,
        biometric_validated_at=consent.biometric_validated_at,
        deleted_by_initiator=consent.deleted_by_initiator,
        deleted_by_partner=consent.deleted_by_partner,
        archived=consent.archived,
        encrypted_data=consent.encrypted_data,
        created_at=consent.created_at,
    )
    if with_parties:
        view.user = PartyProfile.model_validate(consent.initiator)
        view.partner = PartyProfile.model_validate(consent.partner)
    return view


class ConsentEngine:
    """Sole writer of consent rows"""

    def __init__(self, database: Database, ledger: Ledger,
                 encryption: EncryptionGateway, notifications: NotificationSink):
        self.database = database
        self.ledger = ledger
        self.encryption = encryption
        self.notifications = notifications

    def create(self, initiator_id: int, partner_email: str, payload: Dict[str, Any]) -> int:
        """
        Create a consent addressed to the user registered under ``partner_email``.

        Credit consumption, the consent insert and the partner's
        CONSENT_REQUEST notification share one unit of work.
        """
        email = partner_email.strip().lower()

        with self.database.unit_of_work() as uow:
            session = uow.session

            initiator = session.get(UserDB, initiator_id)
            if initiator is None:
                raise NotFoundError("User", initiator_id)

            partner = session.execute(
                select(UserDB).where(UserDB.email == email)
            ).scalar_one_or_none()
            if partner is None:
                raise PartnerNotFoundError()
            if partner.id == initiator.id:
                raise ValidationError("Cannot create a consent with yourself", field="partner_email")

            balance = self.ledger.get_balance(initiator_id, uow=uow)
            if not balance.can_create_consent:
                raise InsufficientCreditError(initiator_id)
            if not balance.is_subscribed:
                self.ledger.consume_one_credit(uow, initiator_id)

            consent = ConsentDB(
                user_id=initiator.id,
                partner_id=partner.id,
                status=ConsentStatus.PENDING.value,
                payment_status=(
                    PaymentStatus.COMPLETED if balance.is_subscribed else PaymentStatus.PENDING
                ).value,
                initiator_confirmed=True,
                partner_confirmed=False,
                biometric_validated=False,
                deleted_by_initiator=False,
                deleted_by_partner=False,
                archived=False,
                encrypted_data=self.encryption.encrypt_json(payload),
                created_at=utcnow(),
            )
            session.add(consent)
            session.flush()
            consent_id = consent.id
            partner_id = partner.id

            self.notifications.emit(
                partner.id,
                NotificationType.CONSENT_REQUEST,
                f"New consent request from {initiator.first_name or 'a user'}",
                consent_id,
                uow=uow,
            )

        logger.info("Consent created", consent_id=consent_id, initiator_id=initiator_id,
                    partner_id=partner_id, subscribed=balance.is_subscribed)
        return consent_id

    def accept_by_partner(self, consent_id: int, acting_user_id: int) -> ConsentView:
        return self._decide(consent_id, acting_user_id, ConsentStatus.ACCEPTED)

    def refuse_by_partner(self, consent_id: int, acting_user_id: int) -> ConsentView:
        return self._decide(consent_id, acting_user_id, ConsentStatus.REFUSED)

    def _decide(self, consent_id: int, acting_user_id: int, target: ConsentStatus) -> ConsentView:
        with self.database.unit_of_work() as uow:
            consent = self._lock(uow.session, consent_id)
            if consent is None or consent.partner_id != acting_user_id:
                logger.warning("Partner decision refused", consent_id=consent_id,
                               acting_user_id=acting_user_id)
                raise UnauthorizedError()

            if consent.status != ConsentStatus.PENDING.value:
                raise InvalidTransitionError(consent.status, target.value)

            consent.status = target.value
            if target is ConsentStatus.ACCEPTED:
                consent.partner_confirmed = True
            else:
                consent.partner_confirmed = revoke_partner(_confirmation_of(consent)).partner_confirmed

            view = _to_view(consent)

        logger.info("Partner decided consent", consent_id=consent_id, status=target.value)
        return view

    def confirm_biometric(self, consent_id: int, acting_user_id: int) -> ConsentView:
        """
        Record the acting party's biometric confirmation.

        The row is locked for the read-modify-write; when the confirmation
        completes the pair, ``biometric_validated`` is stamped and the other
        party is notified in the same unit of work, exactly once.
        """
        with self.database.unit_of_work() as uow:
            consent = self._lock(uow.session, consent_id)
            if consent is None:
                raise NotFoundError("Consent", consent_id)

            role = _role_of(consent, acting_user_id)
            if role is None:
                logger.warning("Biometric confirmation refused", consent_id=consent_id,
                               acting_user_id=acting_user_id)
                raise UnauthorizedError()

            state, fired = advance(_confirmation_of(consent), role)
            consent.initiator_confirmed = state.initiator_confirmed
            consent.partner_confirmed = state.partner_confirmed

            if fired:
                consent.biometric_validated = True
                consent.biometric_validated_at = utcnow()
                recipient = consent.user_id if role.other is PartyRole.INITIATOR else consent.partner_id
                self.notifications.emit(
                    recipient,
                    NotificationType.BIOMETRIC_CONFIRMATION,
                    f"The {role.value} validated consent #{consent_id} biometrically.",
                    consent_id,
                    uow=uow,
                )

            view = _to_view(consent)

        logger.info("Biometric confirmation recorded", consent_id=consent_id,
                    role=role.value, validated=view.biometric_validated, fired=fired)
        return view

    def soft_delete(self, consent_id: int, acting_user_id: int) -> None:
        """Hide a consent from its initiator; the partner's view is untouched"""
        with self.database.unit_of_work() as uow:
            consent = self._lock(uow.session, consent_id)
            if consent is None or consent.user_id != acting_user_id:
                logger.warning("Consent deletion refused", consent_id=consent_id,
                               acting_user_id=acting_user_id)
                raise UnauthorizedError()
            consent.deleted_by_initiator = True

        logger.info("Consent deleted by initiator", consent_id=consent_id)

    def list_history(self, user_id: int,
                     status: Optional[Union[ConsentStatus, str]] = None,
                     skip: int = Pagination.DEFAULT_SKIP,
                     take: int = Pagination.DEFAULT_TAKE) -> List[ConsentView]:
        """
        Consents the user is party to, newest first.

        A consent disappears from a side's history once that side deleted it.
        Payloads are returned encrypted.
        """
        status_filter = self._parse_status(status)
        if skip < 0:
            raise ValidationError("skip must not be negative", field="skip")
        if take < 1 or take > Pagination.MAX_TAKE:
            raise ValidationError(f"take must be between 1 and {Pagination.MAX_TAKE}", field="take")

        stmt = (
            select(ConsentDB)
            .where(or_(
                and_(ConsentDB.user_id == user_id, not_(ConsentDB.deleted_by_initiator)),
                and_(ConsentDB.partner_id == user_id, not_(ConsentDB.deleted_by_partner)),
            ))
            .options(selectinload(ConsentDB.initiator), selectinload(ConsentDB.partner))
            .order_by(ConsentDB.created_at.desc(), ConsentDB.id.desc())
            .offset(skip)
            .limit(take)
        )
        if status_filter is not None:
            stmt = stmt.where(ConsentDB.status == status_filter.value)

        with self.database.session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_to_view(row, with_parties=True) for row in rows]

    def get_consent(self, consent_id: int, acting_user_id: int) -> ConsentView:
        with self.database.session() as session:
            consent = self._party_consent(session, consent_id, acting_user_id)
            return _to_view(consent, with_parties=True)

    def decrypt_payload(self, consent_id: int, acting_user_id: int) -> Dict[str, Any]:
        """Explicit disclosure path for the consent content; parties only"""
        with self.database.session() as session:
            consent = self._party_consent(session, consent_id, acting_user_id)
            ciphertext = consent.encrypted_data

        logger.info("Consent payload disclosed", consent_id=consent_id, acting_user_id=acting_user_id)
        return self.encryption.decrypt_json(ciphertext)

    def _party_consent(self, session: Session, consent_id: int, acting_user_id: int) -> ConsentDB:
        consent = session.get(ConsentDB, consent_id)
        if consent is None:
            raise NotFoundError("Consent", consent_id)
        if _role_of(consent, acting_user_id) is None:
            raise UnauthorizedError()
        return consent

    @staticmethod
    def _lock(session: Session, consent_id: int) -> Optional[ConsentDB]:
        return session.execute(
            select(ConsentDB).where(ConsentDB.id == consent_id).with_for_update()
        ).scalar_one_or_none()

    @staticmethod
    def _parse_status(status: Optional[Union[ConsentStatus, str]]) -> Optional[ConsentStatus]:
        if status is None or isinstance(status, ConsentStatus):
            return status
        normalized = status.strip().upper()
        if normalized in ("", "ALL"):
            return None
        try:
            return ConsentStatus(normalized)
        except ValueError as e:
            raise ValidationError(f"Unknown consent status: {status}", field="status") from e
