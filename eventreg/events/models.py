"""Data models for events and event sections."""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import Field, ValidationInfo, field_validator, model_validator

from eventreg.core.types import EventType
from eventreg.core.validation import RecordModel, as_utc


class EventRecord(RecordModel):
    """An event document in Firestore."""

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    location: str = Field(..., min_length=1)
    registrationId: str = Field(..., min_length=1)
    startDate: datetime.datetime
    endDate: datetime.datetime
    registrationDeadline: Optional[datetime.datetime] = None
    maxParticipants: Optional[int] = Field(None, ge=1)
    basePrice: Optional[float] = Field(None, ge=0)
    eventType: EventType
    isPublished: bool = False

    @field_validator("endDate")
    @classmethod
    def ends_after_start(cls, value: datetime.datetime, info: ValidationInfo) -> datetime.datetime:
        """Reject an event that ends before it starts."""
        start = info.data.get("startDate")
        if start is not None and as_utc(value) < as_utc(start):
            raise ValueError("endDate must not be before startDate")
        return value


class AgeRestrictions(RecordModel):
    """Inclusive age bounds for a section."""

    minAge: Optional[int] = Field(None, ge=0)
    maxAge: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def min_not_above_max(self) -> AgeRestrictions:
        """Reject an empty age range."""
        if self.minAge is not None and self.maxAge is not None and self.minAge > self.maxAge:
            raise ValueError("minAge must not be greater than maxAge")
        return self


class SectionRecord(RecordModel):
    """An event section document in Firestore."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: datetime.date
    time: str = Field(..., min_length=1)
    location: Optional[str] = None
    maxParticipants: Optional[int] = Field(None, ge=1)
    price: Optional[float] = Field(None, ge=0)
    ageRestrictions: Optional[AgeRestrictions] = None
