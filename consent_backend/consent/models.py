"""
Consent data models
Status enums, the two-party confirmation state and read views
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConsentStatus(str, Enum):
    """Partner decision on a consent; ACCEPTED and REFUSED are terminal"""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REFUSED = "REFUSED"


class PaymentStatus(str, Enum):
    """COMPLETED when covered by a subscription, PENDING when paid from a pack"""
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"


class PartyRole(str, Enum):
    """Side of a consent the acting user is on"""
    INITIATOR = "initiator"
    PARTNER = "partner"

    @property
    def other(self) -> "PartyRole":
        return PartyRole.PARTNER if self is PartyRole.INITIATOR else PartyRole.INITIATOR


class ConfirmationState(BaseModel):
    """
    Two-party confirmation lattice of a consent.

    Each flag only advances; ``biometric_validated`` is set once both flags
    are true and never reverts.
    """
    model_config = ConfigDict(frozen=True)

    initiator_confirmed: bool = True
    partner_confirmed: bool = False
    biometric_validated: bool = False

    @property
    def both_confirmed(self) -> bool:
        return self.initiator_confirmed and self.partner_confirmed


def advance(state: ConfirmationState, role: PartyRole) -> Tuple[ConfirmationState, bool]:
    """
    Record ``role``'s confirmation.

    Returns the new state and whether the both-confirmed edge fired on this
    call. The edge fires at most once over the life of a consent.
    """
    if role is PartyRole.INITIATOR:
        new_state = state.model_copy(update={"initiator_confirmed": True})
    else:
        new_state = state.model_copy(update={"partner_confirmed": True})

    fired = new_state.both_confirmed and not state.biometric_validated
    if fired:
        new_state = new_state.model_copy(update={"biometric_validated": True})
    return new_state, fired


def revoke_partner(state: ConfirmationState) -> ConfirmationState:
    """A refusal withdraws the partner's confirmation; validation stays monotonic"""
    return state.model_copy(update={"partner_confirmed": False})


class PartyProfile(BaseModel):
    """Public profile of one side of a consent"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str = ""
    last_name: str = ""
    photo_url: str = ""

    @field_validator("first_name", "last_name", "photo_url", mode="before")
    @classmethod
    def _blank_if_missing(cls, value: Optional[str]) -> str:
        return value or ""


class ConsentView(BaseModel):
    """Consent as seen by either party; the payload stays encrypted"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    partner_id: int
    status: ConsentStatus
    payment_status: PaymentStatus

    initiator_confirmed: bool
    partner_confirmed: bool
    biometric_validated: bool
    biometric_validated_at: Optional[datetime] = None

    deleted_by_initiator: bool
    deleted_by_partner: bool
    archived: bool

    encrypted_data: str
    created_at: datetime

    user: Optional[PartyProfile] = Field(default=None, description="Initiator profile")
    partner: Optional[PartyProfile] = Field(default=None, description="Partner profile")
