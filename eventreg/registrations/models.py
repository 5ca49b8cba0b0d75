"""Data models for registrations and their registrants."""

from __future__ import annotations

import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import EmailStr, Field, ValidationInfo, field_validator

from eventreg.core.types import (
    EventType,
    Gender,
    PaymentStatus,
    RegistrationStatus,
)
from eventreg.core.validation import RecordModel
from eventreg.users.models import normalize_email


class UserRegistrant(RecordModel):
    """A registrant who has a user account."""

    registrantType: Literal["user"]
    user: str = Field(..., min_length=1)


class FamilyMemberRegistrant(RecordModel):
    """A registrant recorded as a member of a family."""

    registrantType: Literal["familyMember"]
    familyMember: str = Field(..., min_length=1)


class ExternalRegistrant(RecordModel):
    """A registrant who is not in the system, described inline."""

    registrantType: Literal["external"]
    name: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    gender: Optional[Gender] = None
    dateOfBirth: Optional[datetime.date] = None

    lowercase_email = field_validator("email", mode="before")(normalize_email)


Registrant = Annotated[
    Union[UserRegistrant, FamilyMemberRegistrant, ExternalRegistrant],
    Field(discriminator="registrantType"),
]


class RegistrationRequest(RecordModel):
    """What a caller submits to register for a section."""

    registrationType: EventType
    registeredBy: Optional[str] = None
    familyMembers: list[str] = Field(default_factory=list, validate_default=True)
    teamName: Optional[str] = None
    teamMembers: list[Registrant] = Field(default_factory=list, validate_default=True)
    notes: Optional[str] = None

    @field_validator("familyMembers")
    @classmethod
    def family_has_members(cls, value: list[str], info: ValidationInfo) -> list[str]:
        """A family registration needs at least one family member."""
        if info.data.get("registrationType") == "family" and not value:
            raise ValueError("a family registration needs at least one family member")
        return value

    @field_validator("teamMembers")
    @classmethod
    def team_has_members(cls, value: list, info: ValidationInfo) -> list:
        """A team registration needs at least one team member."""
        if info.data.get("registrationType") == "team" and not value:
            raise ValueError("a team registration needs at least one team member")
        return value


class RegistrationRecord(RegistrationRequest):
    """A registration document in Firestore."""

    eventId: str = Field(..., min_length=1)
    eventSectionId: str = Field(..., min_length=1)
    status: RegistrationStatus = "pending"
    paymentStatus: PaymentStatus = "unpaid"
    totalAmount: float = Field(0, ge=0)
    amountPaid: float = Field(0, ge=0)
    seats: int = Field(1, ge=1)


class RegistrationUpdate(RecordModel):
    """Fields a caller may change on an existing registration."""

    status: Optional[RegistrationStatus] = None
    paymentStatus: Optional[PaymentStatus] = None
    teamName: Optional[str] = None
    notes: Optional[str] = None
