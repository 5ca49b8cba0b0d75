"""Service layer for payments.

A registration's ``amountPaid`` is the sum of its completed payments. It is
adjusted in the same transaction that records or changes a payment.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app

from eventreg.core.constants import COMPLETED, PAYMENTS, REGISTRATIONS
from eventreg.core.validation import to_document, validate, validate_update
from eventreg.db import (
    get_document,
    get_in_transaction,
    run_transaction,
    snapshot_to_dict,
    stamp_created,
    stamp_updated,
    storage_retry,
    utcnow,
)
from eventreg.errors import ValidationError
from eventreg.registrations.metrics import outstanding_balance, payment_status_for

from .models import PaymentRecord

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

IMMUTABLE_FIELDS = ("registrationId", "amount")


def _check_balance(registration: dict[str, Any], amount: float) -> None:
    balance = outstanding_balance(registration)
    if amount > balance:
        raise ValidationError(
            f"amount: {amount:.2f} exceeds the outstanding balance of {balance:.2f}.",
            field="amount",
        )


def _apply_to_registration(
    transaction: Transaction,
    registration_ref: DocumentReference,
    registration: dict[str, Any],
    delta: float,
) -> None:
    """Add ``delta`` to amountPaid and recompute the payment status."""
    paid = round(max(0.0, float(registration.get("amountPaid") or 0) + delta), 2)
    total = float(registration.get("totalAmount") or 0)
    transaction.update(
        registration_ref,
        stamp_updated(
            {"amountPaid": paid, "paymentStatus": payment_status_for(total, paid)},
            registration,
        ),
    )


class PaymentService:
    """Handles business logic and data access for payments."""

    @staticmethod
    def _create_transaction(
        transaction: Transaction,
        db: Client,
        payment_ref: DocumentReference,
        data: dict[str, Any],
    ) -> None:
        registration_ref = db.collection(REGISTRATIONS).document(data["registrationId"])
        registration = get_in_transaction(transaction, registration_ref, "Registration")
        _check_balance(registration, data["amount"])
        transaction.create(payment_ref, data)
        if data["status"] == COMPLETED:
            _apply_to_registration(
                transaction, registration_ref, registration, data["amount"]
            )

    @staticmethod
    @storage_retry
    def create_payment(db: Client, payload: Any) -> dict[str, Any]:
        """Record a payment against a registration.

        Raises:
            NotFoundError: If the registration does not exist.
            ValidationError: If the amount exceeds the outstanding balance.
        """
        record = validate(PaymentRecord, payload)
        data = to_document(record)
        if data.get("paymentDate") is None:
            data["paymentDate"] = utcnow()
        stamp_created(data)

        payment_ref = db.collection(PAYMENTS).document()
        run_transaction(db, PaymentService._create_transaction, db, payment_ref, data)

        current_app.logger.info(
            f"Payment {payment_ref.id} of {record.amount:.2f} recorded for "
            f"registration {record.registrationId} ({record.status})."
        )
        data["id"] = payment_ref.id
        return data

    @staticmethod
    @storage_retry
    def get_payment(db: Client, payment_id: str) -> dict[str, Any]:
        """Fetch a payment by id."""
        return get_document(db, PAYMENTS, payment_id, "Payment")

    @staticmethod
    @storage_retry
    def list_payments(
        db: Client, registration_id: str | None = None
    ) -> list[dict[str, Any]]:
        """List payments, optionally for one registration, oldest first."""
        query: Any = db.collection(PAYMENTS)
        if registration_id:
            query = query.where(
                filter=firestore.FieldFilter("registrationId", "==", registration_id)
            )
        payments = [snapshot_to_dict(doc) for doc in query.stream()]
        payments.sort(key=lambda p: p.get("paymentDate") or p.get("createdAt"))
        return payments

    @staticmethod
    def _update_transaction(
        transaction: Transaction,
        db: Client,
        payment_ref: DocumentReference,
        changes: Any,
    ) -> dict[str, Any]:
        current = get_in_transaction(transaction, payment_ref, "Payment")
        updates = validate_update(PaymentRecord, current, changes)

        was_completed = current.get("status") == COMPLETED
        now_completed = updates.get("status", current.get("status")) == COMPLETED
        if was_completed != now_completed:
            registration_ref = db.collection(REGISTRATIONS).document(
                current["registrationId"]
            )
            registration = get_in_transaction(
                transaction, registration_ref, "Registration"
            )
            amount = float(current["amount"])
            if now_completed:
                _check_balance(registration, amount)
            _apply_to_registration(
                transaction,
                registration_ref,
                registration,
                amount if now_completed else -amount,
            )

        stamp_updated(updates, current)
        transaction.update(payment_ref, updates)
        current.update(updates)
        return current

    @staticmethod
    @storage_retry
    def update_payment(db: Client, payment_id: str, changes: Any) -> dict[str, Any]:
        """Update a payment. Completing or un-completing it adjusts amountPaid."""
        if isinstance(changes, dict):
            for field in IMMUTABLE_FIELDS:
                if field in changes:
                    raise ValidationError(f"{field} cannot be changed.", field=field)
        payment_ref = db.collection(PAYMENTS).document(payment_id)
        updated = run_transaction(
            db, PaymentService._update_transaction, db, payment_ref, changes
        )
        if isinstance(changes, dict) and "status" in changes:
            current_app.logger.info(
                f"Payment {payment_id} status set to {updated['status']}."
            )
        return updated

    @staticmethod
    def _delete_transaction(
        transaction: Transaction, db: Client, payment_ref: DocumentReference
    ) -> None:
        current = get_in_transaction(transaction, payment_ref, "Payment")
        if current.get("status") == COMPLETED:
            registration_ref = db.collection(REGISTRATIONS).document(
                current["registrationId"]
            )
            snapshot = registration_ref.get(transaction=transaction)
            if snapshot.exists:
                _apply_to_registration(
                    transaction,
                    registration_ref,
                    snapshot_to_dict(snapshot),
                    -float(current["amount"]),
                )
        transaction.delete(payment_ref)

    @staticmethod
    @storage_retry
    def delete_payment(db: Client, payment_id: str) -> None:
        """Delete a payment, reverting it from amountPaid if it was completed."""
        payment_ref = db.collection(PAYMENTS).document(payment_id)
        run_transaction(db, PaymentService._delete_transaction, db, payment_ref)
        current_app.logger.info(f"Payment {payment_id} deleted.")
