"""Data models for the users blueprint."""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from eventreg.core.constants import MIN_PASSWORD_LENGTH
from eventreg.core.types import Gender
from eventreg.core.validation import RecordModel


def normalize_email(value: object) -> object:
    """Trim and lowercase an email before format validation."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


class Address(RecordModel):
    """A postal address embedded in users and families."""

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipCode: Optional[str] = None


class UserRecord(RecordModel):
    """A user document in Firestore."""

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)
    phone: Optional[str] = None
    address: Optional[Address] = None
    isAdmin: bool = False
    familyId: Optional[str] = None
    dateOfBirth: Optional[datetime.date] = None
    gender: Optional[Gender] = None

    lowercase_email = field_validator("email", mode="before")(normalize_email)
