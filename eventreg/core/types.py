"""Core data types for the eventreg application."""

from typing import Literal, Optional, TypedDict

EventType = Literal["individual", "team", "family"]
RegistrationStatus = Literal["pending", "confirmed", "cancelled"]
PaymentStatus = Literal["unpaid", "partial", "paid"]
PaymentMethod = Literal["credit", "debit", "cash", "check", "other"]
PaymentRecordStatus = Literal["pending", "completed", "failed", "refunded"]
Gender = Literal["male", "female", "other", "prefer not to say"]


class Participant(TypedDict):
    """A resolved participant identity for display and reporting."""

    registrantType: str
    id: Optional[str]  # noqa: UP045
    name: str
    email: Optional[str]  # noqa: UP045
    dateOfBirth: Optional[str]  # noqa: UP045
