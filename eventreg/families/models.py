"""Data models for the families blueprint."""

from __future__ import annotations

import datetime
from typing import Any, Optional

from pydantic import Field

from eventreg.core.types import Gender
from eventreg.core.validation import RecordModel, age_on, parse_date
from eventreg.users.models import Address


class EmergencyContact(RecordModel):
    """Who to call when the family's main contact cannot be reached."""

    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class FamilyRecord(RecordModel):
    """A family document in Firestore."""

    name: str = Field(..., min_length=1)
    mainContact: str = Field(..., min_length=1)
    members: list[str] = Field(default_factory=list)
    emergencyContact: Optional[EmergencyContact] = None
    address: Optional[Address] = None
    phoneNumber: Optional[str] = None
    notes: Optional[str] = None


class FamilyMemberRecord(RecordModel):
    """A person in a family who may or may not have a user account."""

    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    dateOfBirth: Optional[datetime.date] = None
    gender: Optional[Gender] = None
    userId: Optional[str] = None


def with_member_fields(member: dict[str, Any], today: datetime.date | None = None) -> dict[str, Any]:
    """Add the read-only fullName, age and hasUserAccount fields."""
    member["fullName"] = f"{member.get('firstName', '')} {member.get('lastName', '')}".strip()
    born = parse_date(member.get("dateOfBirth"))
    member["age"] = age_on(born, today or datetime.date.today()) if born else None
    member["hasUserAccount"] = bool(member.get("userId"))
    return member
