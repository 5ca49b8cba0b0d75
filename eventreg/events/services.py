"""Service layer for events and event sections."""

from __future__ import annotations

import datetime
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app
from google.api_core import exceptions as google_exceptions

from eventreg.core.constants import (
    EVENT_REGISTRATION_IDS,
    EVENT_SECTIONS,
    EVENT_SLUGS,
    EVENTS,
    REGISTRATIONS,
)
from eventreg.core.validation import (
    as_utc,
    slugify,
    to_document,
    validate,
    validate_update,
)
from eventreg.db import (
    claim_slug,
    get_document,
    get_in_transaction,
    run_transaction,
    snapshot_to_dict,
    stamp_created,
    stamp_updated,
    storage_retry,
)
from eventreg.errors import ConflictError, NotFoundError, UniquenessConflict

from .models import EventRecord, SectionRecord

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction

_EPOCH = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


def _duplicate_registration_id() -> UniquenessConflict:
    return UniquenessConflict(
        "An event with this registrationId already exists.", field="registrationId"
    )


def _check_capacity_not_below_held(updates: dict[str, Any], current: dict[str, Any]) -> None:
    """Refuse to shrink capacity below the seats already held."""
    limit = updates.get("maxParticipants")
    held = current.get("registeredCount", 0)
    if limit is not None and limit < held:
        raise ConflictError(
            f"maxParticipants cannot be lower than the {held} seats already registered."
        )


class EventService:
    """Handles business logic and data access for events."""

    @staticmethod
    def _create_transaction(
        transaction: Transaction,
        db: Client,
        event_ref: DocumentReference,
        claim_ref: DocumentReference,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Claim the slug and registrationId and write the event in one commit."""
        data = dict(data)
        data["titleSlug"] = claim_slug(
            transaction, db, EVENT_SLUGS, slugify(data["title"]), event_ref.id
        )
        transaction.create(claim_ref, {"eventId": event_ref.id})
        transaction.create(event_ref, data)
        return data

    @staticmethod
    @storage_retry
    def create_event(db: Client, payload: Any) -> dict[str, Any]:
        """Create an event with a globally unique registrationId."""
        record = validate(EventRecord, payload)
        data = to_document(record)
        data["sections"] = []
        data["registeredCount"] = 0
        stamp_created(data)

        event_ref = db.collection(EVENTS).document()
        claim_ref = db.collection(EVENT_REGISTRATION_IDS).document(record.registrationId)
        try:
            data = run_transaction(
                db, EventService._create_transaction, db, event_ref, claim_ref, data
            )
        except google_exceptions.Conflict as e:
            raise _duplicate_registration_id() from e

        current_app.logger.info(f"Event {event_ref.id} created.")
        data["id"] = event_ref.id
        return data

    @staticmethod
    def _find_event(db: Client, id_or_slug: str) -> dict[str, Any]:
        """Look an event up by document id, falling back to its slug."""
        snapshot = db.collection(EVENTS).document(id_or_slug).get()
        if snapshot.exists:
            return snapshot_to_dict(snapshot)
        matches = list(
            db.collection(EVENTS)
            .where(filter=firestore.FieldFilter("titleSlug", "==", id_or_slug))
            .limit(1)
            .stream()
        )
        if not matches:
            raise NotFoundError("Event not found.")
        return snapshot_to_dict(matches[0])

    @staticmethod
    @storage_retry
    def get_event(db: Client, id_or_slug: str) -> dict[str, Any]:
        """Fetch an event by id or slug, with its sections in order."""
        event = EventService._find_event(db, id_or_slug)
        section_ids = event.get("sections") or []
        details = []
        if section_ids:
            refs = [db.collection(EVENT_SECTIONS).document(sid) for sid in section_ids]
            found = {doc.id: snapshot_to_dict(doc) for doc in db.get_all(refs) if doc.exists}
            details = [found[sid] for sid in section_ids if sid in found]
        event["sectionDetails"] = details
        return event

    @staticmethod
    @storage_retry
    def list_events(db: Client, published: bool | None = None) -> list[dict[str, Any]]:
        """List events ordered by start date."""
        query: Any = db.collection(EVENTS)
        if published is not None:
            query = query.where(filter=firestore.FieldFilter("isPublished", "==", published))
        events = [snapshot_to_dict(doc) for doc in query.stream()]
        events.sort(key=lambda e: as_utc(e["startDate"]) if e.get("startDate") else _EPOCH)
        return events

    @staticmethod
    def _update_transaction(
        transaction: Transaction,
        db: Client,
        event_ref: DocumentReference,
        changes: Any,
    ) -> dict[str, Any]:
        current = get_in_transaction(transaction, event_ref, "Event")
        updates = validate_update(EventRecord, current, changes)
        _check_capacity_not_below_held(updates, current)

        if "title" in updates:
            updates["titleSlug"] = claim_slug(
                transaction,
                db,
                EVENT_SLUGS,
                slugify(updates["title"]),
                event_ref.id,
                current.get("titleSlug"),
            )

        old_id = current.get("registrationId")
        new_id = updates.get("registrationId")
        if new_id and new_id != old_id:
            transaction.create(
                db.collection(EVENT_REGISTRATION_IDS).document(new_id),
                {"eventId": event_ref.id},
            )
            if old_id:
                transaction.delete(db.collection(EVENT_REGISTRATION_IDS).document(old_id))

        stamp_updated(updates, current)
        transaction.update(event_ref, updates)
        current.update(updates)
        return current

    @staticmethod
    @storage_retry
    def update_event(db: Client, id_or_slug: str, changes: Any) -> dict[str, Any]:
        """Update an event. Changing the registrationId moves its claim."""
        event_id = EventService._find_event(db, id_or_slug)["id"]
        event_ref = db.collection(EVENTS).document(event_id)
        try:
            return run_transaction(
                db, EventService._update_transaction, db, event_ref, changes
            )
        except google_exceptions.Conflict as e:
            raise _duplicate_registration_id() from e

    @staticmethod
    def _delete_transaction(
        transaction: Transaction, db: Client, event_ref: DocumentReference
    ) -> int:
        """Delete the event, its sections and its claims if no seats are held.

        Reading the event and each section here makes a concurrent
        registration, which writes both, conflict with the delete.
        """
        event = get_in_transaction(transaction, event_ref, "Event")
        section_refs = []
        for section_id in event.get("sections") or []:
            section_ref = db.collection(EVENT_SECTIONS).document(section_id)
            snapshot = section_ref.get(transaction=transaction)
            if not snapshot.exists:
                continue
            if (snapshot.to_dict() or {}).get("registeredCount", 0) > 0:
                raise ConflictError("This event has sections with active registrations.")
            section_refs.append(section_ref)
        if event.get("registeredCount", 0) > 0:
            raise ConflictError("This event has active registrations.")

        for section_ref in section_refs:
            SectionService._delete_section_records(db, transaction, section_ref.id)
            transaction.delete(section_ref)
        if event.get("registrationId"):
            transaction.delete(
                db.collection(EVENT_REGISTRATION_IDS).document(event["registrationId"])
            )
        if event.get("titleSlug"):
            transaction.delete(db.collection(EVENT_SLUGS).document(event["titleSlug"]))
        transaction.delete(event_ref)
        return len(section_refs)

    @staticmethod
    @storage_retry
    def delete_event(db: Client, id_or_slug: str) -> None:
        """Delete an event and its sections.

        Raises:
            ConflictError: If any section still holds active registrations.
        """
        event_id = EventService._find_event(db, id_or_slug)["id"]
        event_ref = db.collection(EVENTS).document(event_id)
        count = run_transaction(db, EventService._delete_transaction, db, event_ref)
        current_app.logger.info(f"Event {event_id} deleted with {count} section(s).")


class SectionService:
    """Handles business logic and data access for event sections."""

    @staticmethod
    def _create_transaction(
        transaction: Transaction,
        event_ref: DocumentReference,
        section_ref: DocumentReference,
        data: dict[str, Any],
    ) -> None:
        """Write the section and append it to its event."""
        event = get_in_transaction(transaction, event_ref, "Event")
        sections = list(event.get("sections") or [])
        sections.append(section_ref.id)
        transaction.create(section_ref, data)
        transaction.update(event_ref, stamp_updated({"sections": sections}, event))

    @staticmethod
    @storage_retry
    def create_section(db: Client, event_id: str, payload: Any) -> dict[str, Any]:
        """Add a section to an event."""
        record = validate(SectionRecord, payload)
        data = to_document(record)
        data["eventId"] = event_id
        data["slug"] = slugify(record.title)
        data["registrations"] = []
        data["registeredCount"] = 0
        stamp_created(data)

        event_ref = db.collection(EVENTS).document(event_id)
        section_ref = db.collection(EVENT_SECTIONS).document()
        run_transaction(
            db, SectionService._create_transaction, event_ref, section_ref, data
        )

        current_app.logger.info(f"Section {section_ref.id} added to event {event_id}.")
        data["id"] = section_ref.id
        return data

    @staticmethod
    @storage_retry
    def get_section(db: Client, section_id: str) -> dict[str, Any]:
        """Fetch a section by id."""
        return get_document(db, EVENT_SECTIONS, section_id, "Section")

    @staticmethod
    @storage_retry
    def list_sections(db: Client, event_id: str) -> list[dict[str, Any]]:
        """List an event's sections ordered by date and time."""
        get_document(db, EVENTS, event_id, "Event")
        docs = (
            db.collection(EVENT_SECTIONS)
            .where(filter=firestore.FieldFilter("eventId", "==", event_id))
            .stream()
        )
        sections = [snapshot_to_dict(doc) for doc in docs]
        sections.sort(key=lambda s: (s.get("date") or "", s.get("time") or ""))
        return sections

    @staticmethod
    def _update_transaction(
        transaction: Transaction, section_ref: DocumentReference, changes: Any
    ) -> dict[str, Any]:
        current = get_in_transaction(transaction, section_ref, "Section")
        updates = validate_update(SectionRecord, current, changes)
        _check_capacity_not_below_held(updates, current)
        if "title" in updates:
            updates["slug"] = slugify(updates["title"])
        stamp_updated(updates, current)
        transaction.update(section_ref, updates)
        current.update(updates)
        return current

    @staticmethod
    @storage_retry
    def update_section(db: Client, section_id: str, changes: Any) -> dict[str, Any]:
        """Update a section."""
        section_ref = db.collection(EVENT_SECTIONS).document(section_id)
        return run_transaction(
            db, SectionService._update_transaction, section_ref, changes
        )

    @staticmethod
    def _delete_section_records(db: Client, batch: Any, section_id: str) -> None:
        """Queue deletes for a section's (cancelled) registrations."""
        registrations = (
            db.collection(REGISTRATIONS)
            .where(filter=firestore.FieldFilter("eventSectionId", "==", section_id))
            .stream()
        )
        for doc in registrations:
            batch.delete(doc.reference)

    @staticmethod
    def _delete_transaction(
        transaction: Transaction,
        db: Client,
        section_ref: DocumentReference,
    ) -> str:
        section = get_in_transaction(transaction, section_ref, "Section")
        if section.get("registeredCount", 0) > 0:
            raise ConflictError("This section has active registrations.")
        event_ref = db.collection(EVENTS).document(section["eventId"])
        event_snapshot = event_ref.get(transaction=transaction)

        SectionService._delete_section_records(db, transaction, section_ref.id)
        transaction.delete(section_ref)
        if event_snapshot.exists:
            event = snapshot_to_dict(event_snapshot)
            sections = [s for s in event.get("sections") or [] if s != section_ref.id]
            transaction.update(event_ref, stamp_updated({"sections": sections}, event))
        return section["eventId"]

    @staticmethod
    @storage_retry
    def delete_section(db: Client, section_id: str) -> None:
        """Delete a section and detach it from its event.

        Raises:
            ConflictError: If the section still holds active registrations.
        """
        section_ref = db.collection(EVENT_SECTIONS).document(section_id)
        event_id = run_transaction(
            db, SectionService._delete_transaction, db, section_ref
        )
        current_app.logger.info(f"Section {section_id} deleted from event {event_id}.")
