"""Data models for the payments blueprint."""

from __future__ import annotations

import datetime
from typing import Optional

from pydantic import Field

from eventreg.core.types import PaymentMethod, PaymentRecordStatus
from eventreg.core.validation import RecordModel


class PaymentRecord(RecordModel):
    """A payment against a registration."""

    registrationId: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    paymentMethod: PaymentMethod
    transactionId: Optional[str] = None
    status: PaymentRecordStatus = "pending"
    notes: Optional[str] = None
    paymentDate: Optional[datetime.datetime] = None
