"""Service layer for registrations.

Seat accounting lives here. A section's ``registeredCount`` (and its event's)
is the number of seats held by non-cancelled registrations. Every change to
it happens inside a Firestore transaction that re-reads the counter, so two
concurrent registrations can never both take the last seat.
"""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app

from eventreg.core.constants import (
    CANCELLED,
    EVENT_SECTIONS,
    EVENTS,
    REGISTRATIONS,
    USERS,
)
from eventreg.core.types import Participant
from eventreg.core.validation import age_on, as_utc, parse_date, to_document, validate
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
from eventreg.errors import (
    CapacityExceededError,
    NotFoundError,
    RegistrationClosedError,
    ValidationError,
)
from eventreg.utils import EmailError, display_name, send_email

from .metrics import seat_count, with_derived
from .models import RegistrationRecord, RegistrationRequest, RegistrationUpdate
from .resolution import resolve_participants

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction


def _check_deadline(event: dict[str, Any], now: datetime.datetime) -> None:
    deadline = event.get("registrationDeadline")
    if isinstance(deadline, datetime.datetime) and now > as_utc(deadline):
        raise RegistrationClosedError()


def _check_age_restrictions(
    section: dict[str, Any], participants: list[Participant]
) -> None:
    """Reject participants whose age on the section date is out of bounds."""
    limits = section.get("ageRestrictions") or {}
    min_age, max_age = limits.get("minAge"), limits.get("maxAge")
    if min_age is None and max_age is None:
        return
    on = parse_date(section.get("date")) or datetime.date.today()
    for person in participants:
        born = parse_date(person.get("dateOfBirth"))
        if born is None:
            continue
        age = age_on(born, on)
        if (min_age is not None and age < min_age) or (
            max_age is not None and age > max_age
        ):
            raise ValidationError(
                f"{person['name']} is {age}, outside the allowed ages for this section.",
                field="ageRestrictions",
            )


def _check_capacity(record: dict[str, Any], seats: int, label: str) -> None:
    limit = record.get("maxParticipants")
    held = record.get("registeredCount", 0)
    if limit is not None and held + seats > limit:
        raise CapacityExceededError(
            f"This {label} has {max(0, limit - held)} seat(s) left; {seats} requested."
        )


class RegistrationService:
    """Handles business logic and data access for registrations."""

    @staticmethod
    def _register_transaction(  # noqa: PLR0913
        transaction: Transaction,
        db: Client,
        section_ref: DocumentReference,
        registration_ref: DocumentReference,
        data: dict[str, Any],
        participants: list[Participant],
    ) -> dict[str, Any]:
        """Reserve seats and write the registration in one atomic commit.

        Firestore re-runs this function with the same arguments when a
        competing commit aborts it, so ``data`` is copied, never changed.
        """
        data = dict(data)
        section = get_in_transaction(transaction, section_ref, "Section")
        event_ref = db.collection(EVENTS).document(section["eventId"])
        event = get_in_transaction(transaction, event_ref, "Event")

        now = utcnow()
        _check_deadline(event, now)
        _check_age_restrictions(section, participants)
        seats = data["seats"]
        _check_capacity(section, seats, "section")
        _check_capacity(event, seats, "event")

        price = section.get("price")
        if price is None:
            price = event.get("basePrice")
        data["eventId"] = event_ref.id
        data["totalAmount"] = round(seats * float(price or 0), 2)
        validate(RegistrationRecord, data)
        stamp_created(data)

        registrations = list(section.get("registrations") or [])
        registrations.append(registration_ref.id)
        transaction.create(registration_ref, data)
        transaction.update(
            section_ref,
            stamp_updated(
                {
                    "registeredCount": section.get("registeredCount", 0) + seats,
                    "registrations": registrations,
                },
                section,
            ),
        )
        transaction.update(
            event_ref,
            stamp_updated(
                {"registeredCount": event.get("registeredCount", 0) + seats}, event
            ),
        )
        return data

    @staticmethod
    @storage_retry
    def register(db: Client, section_id: str, payload: Any) -> dict[str, Any]:
        """Register participants for a section, atomically reserving their seats.

        Raises:
            ValidationError: On a malformed payload or an age restriction.
            NotFoundError: If the section, event or a referenced person is missing.
            RegistrationClosedError: After the event's registration deadline.
            CapacityExceededError: If the section or event has too few seats left.
        """
        request_record = validate(RegistrationRequest, payload)
        if request_record.registeredBy:
            get_document(db, USERS, request_record.registeredBy, "User")

        data = to_document(request_record)
        data.update(
            {
                "eventSectionId": section_id,
                "status": "pending",
                "paymentStatus": "unpaid",
                "amountPaid": 0,
                "seats": seat_count(data),
            }
        )
        participants = resolve_participants(db, data, strict=True)

        section_ref = db.collection(EVENT_SECTIONS).document(section_id)
        registration_ref = db.collection(REGISTRATIONS).document()
        data = run_transaction(
            db,
            RegistrationService._register_transaction,
            db,
            section_ref,
            registration_ref,
            data,
            participants,
        )

        current_app.logger.info(
            f"Registration {registration_ref.id} created for section {section_id} "
            f"({data['seats']} seat(s))."
        )
        data["id"] = registration_ref.id
        return with_derived(data)

    @staticmethod
    @storage_retry
    def get_registration(db: Client, registration_id: str) -> dict[str, Any]:
        """Fetch a registration with its derived counts."""
        return with_derived(
            get_document(db, REGISTRATIONS, registration_id, "Registration")
        )

    @staticmethod
    @storage_retry
    def list_registrations(db: Client, section_id: str) -> list[dict[str, Any]]:
        """List a section's registrations, oldest first."""
        get_document(db, EVENT_SECTIONS, section_id, "Section")
        docs = (
            db.collection(REGISTRATIONS)
            .where(filter=firestore.FieldFilter("eventSectionId", "==", section_id))
            .stream()
        )
        registrations = [with_derived(snapshot_to_dict(doc)) for doc in docs]
        registrations.sort(key=lambda r: r.get("createdAt") or utcnow())
        return registrations

    @staticmethod
    @storage_retry
    def list_for_user(db: Client, user_id: str) -> list[dict[str, Any]]:
        """List the registrations a user made, newest first."""
        get_document(db, USERS, user_id, "User")
        docs = (
            db.collection(REGISTRATIONS)
            .where(filter=firestore.FieldFilter("registeredBy", "==", user_id))
            .stream()
        )
        registrations = [with_derived(snapshot_to_dict(doc)) for doc in docs]
        registrations.sort(key=lambda r: r.get("createdAt") or utcnow(), reverse=True)
        return registrations

    @staticmethod
    @storage_retry
    def get_participants(db: Client, registration_id: str) -> list[Participant]:
        """Return the normalized participant identities of a registration."""
        registration = get_document(db, REGISTRATIONS, registration_id, "Registration")
        return resolve_participants(db, registration)

    @staticmethod
    def _adjust_seats(
        transaction: Transaction,
        refs: list[tuple[DocumentReference, dict[str, Any]]],
        delta: int,
        extra: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        """Write a seat delta to each (ref, snapshot) pair."""
        for ref, record in refs:
            updates = {"registeredCount": max(0, record.get("registeredCount", 0) + delta)}
            updates.update((extra or {}).get(ref.id, {}))
            transaction.update(ref, stamp_updated(updates, record))

    @staticmethod
    def _update_transaction(
        transaction: Transaction,
        db: Client,
        registration_ref: DocumentReference,
        changes: dict[str, Any],
    ) -> dict[str, Any]:
        changes = dict(changes)
        current = get_in_transaction(transaction, registration_ref, "Registration")
        old_status = current.get("status", "pending")
        new_status = changes.get("status", old_status)
        seats = current.get("seats") or seat_count(current)

        was_active = old_status != CANCELLED
        now_active = new_status != CANCELLED
        if was_active != now_active:
            section_ref = db.collection(EVENT_SECTIONS).document(current["eventSectionId"])
            event_ref = db.collection(EVENTS).document(current["eventId"])
            section = get_in_transaction(transaction, section_ref, "Section")
            event_snapshot = event_ref.get(transaction=transaction)
            event = snapshot_to_dict(event_snapshot) if event_snapshot.exists else None

            if now_active:
                _check_capacity(section, seats, "section")
                if event is not None:
                    _check_capacity(event, seats, "event")
            targets = [(section_ref, section)]
            if event is not None:
                targets.append((event_ref, event))
            RegistrationService._adjust_seats(
                transaction, targets, seats if now_active else -seats
            )

        stamp_updated(changes, current)
        transaction.update(registration_ref, changes)
        current.update(changes)
        return current

    @staticmethod
    @storage_retry
    def update_registration(
        db: Client, registration_id: str, payload: Any
    ) -> dict[str, Any]:
        """Update a registration's status, payment status, team name or notes.

        Any status may move to any other. Cancelling releases the seats and
        reinstating a cancelled registration takes them back, subject to
        capacity.
        """
        changes = validate(RegistrationUpdate, payload).model_dump(exclude_unset=True)
        if not changes:
            raise ValidationError("No changes supplied.")
        registration_ref = db.collection(REGISTRATIONS).document(registration_id)
        updated = run_transaction(
            db, RegistrationService._update_transaction, db, registration_ref, changes
        )
        if "status" in changes:
            current_app.logger.info(
                f"Registration {registration_id} status set to {changes['status']}."
            )
        return with_derived(updated)

    @staticmethod
    def _delete_transaction(
        transaction: Transaction,
        db: Client,
        registration_ref: DocumentReference,
    ) -> None:
        current = get_in_transaction(transaction, registration_ref, "Registration")
        section_ref = db.collection(EVENT_SECTIONS).document(current["eventSectionId"])
        event_ref = db.collection(EVENTS).document(current["eventId"])
        section_snapshot = section_ref.get(transaction=transaction)
        event_snapshot = event_ref.get(transaction=transaction)

        active = current.get("status") != CANCELLED
        seats = (current.get("seats") or seat_count(current)) if active else 0
        targets = []
        extra = {}
        if section_snapshot.exists:
            section = snapshot_to_dict(section_snapshot)
            targets.append((section_ref, section))
            extra[section_ref.id] = {
                "registrations": [
                    r for r in section.get("registrations") or [] if r != registration_ref.id
                ]
            }
        if event_snapshot.exists and seats:
            targets.append((event_ref, snapshot_to_dict(event_snapshot)))

        transaction.delete(registration_ref)
        RegistrationService._adjust_seats(transaction, targets, -seats, extra)

    @staticmethod
    @storage_retry
    def delete_registration(db: Client, registration_id: str) -> None:
        """Delete a registration, releasing its seats if it was active."""
        registration_ref = db.collection(REGISTRATIONS).document(registration_id)
        run_transaction(
            db, RegistrationService._delete_transaction, db, registration_ref
        )
        current_app.logger.info(f"Registration {registration_id} deleted.")

    @staticmethod
    def send_confirmation(db: Client, registration: dict[str, Any]) -> bool:
        """Email the registering user a confirmation. Failures are only logged."""
        user_id = registration.get("registeredBy")
        if not user_id:
            return False
        try:
            user = get_document(db, USERS, user_id, "User")
            if not user.get("email"):
                return False
            event = get_document(db, EVENTS, registration["eventId"], "Event")
            section = get_document(
                db, EVENT_SECTIONS, registration["eventSectionId"], "Section"
            )
            send_email(
                to=user["email"],
                subject=f"Registration received: {event.get('title')}",
                template="email/registration_confirmation.html",
                user_name=display_name(user),
                event=event,
                section=section,
                registration=registration,
            )
        except (EmailError, NotFoundError) as e:
            current_app.logger.error(
                f"Confirmation email for registration {registration.get('id')} failed: {e}"
            )
            return False
        except Exception:
            # The registration is already committed.
            current_app.logger.exception(
                f"Confirmation email for registration {registration.get('id')} failed."
            )
            return False
        return True

