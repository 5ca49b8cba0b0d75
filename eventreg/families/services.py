"""Service layer for families and their members."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app

from eventreg.core.constants import FAMILIES, FAMILY_MEMBERS, FAMILY_SLUGS, USERS
from eventreg.core.validation import slugify, to_document, validate, validate_update
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
from eventreg.errors import NotFoundError, ValidationError

from .models import FamilyMemberRecord, FamilyRecord, with_member_fields

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction


class FamilyService:
    """Handles business logic and data access for families."""

    @staticmethod
    def _read_users(
        transaction: Transaction, db: Client, user_ids: list[str]
    ) -> dict[str, dict[str, Any]]:
        """Read users inside the transaction, keyed by id, skipping missing ones."""
        users = {}
        for uid in user_ids:
            snapshot = db.collection(USERS).document(uid).get(transaction=transaction)
            if snapshot.exists:
                users[uid] = snapshot_to_dict(snapshot)
        return users

    @staticmethod
    def _require_users(user_ids: list[str], found: dict[str, Any]) -> None:
        """Raise NotFoundError if any referenced user is missing."""
        for uid in user_ids:
            if uid not in found:
                raise NotFoundError(f"User {uid} not found.")

    @staticmethod
    def _member_list(main_contact: str, members: list[str]) -> list[str]:
        """Return members with the main contact first and no duplicates."""
        ordered = [main_contact]
        for uid in members:
            if uid not in ordered:
                ordered.append(uid)
        return ordered

    @staticmethod
    def _link_users(
        db: Client, writes: Any, family_id: str | None, users: list[dict[str, Any]]
    ) -> None:
        for user in users:
            writes.update(
                db.collection(USERS).document(user["id"]),
                stamp_updated({"familyId": family_id}, user),
            )

    @staticmethod
    def _create_transaction(
        transaction: Transaction,
        db: Client,
        family_ref: DocumentReference,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Claim the slug, write the family and link its users in one commit."""
        data = dict(data)
        users = FamilyService._read_users(transaction, db, data["members"])
        FamilyService._require_users(data["members"], users)
        data["slug"] = claim_slug(
            transaction, db, FAMILY_SLUGS, slugify(data["name"]), family_ref.id
        )
        transaction.create(family_ref, data)
        FamilyService._link_users(db, transaction, family_ref.id, list(users.values()))
        return data

    @staticmethod
    @storage_retry
    def create_family(db: Client, payload: Any) -> dict[str, Any]:
        """Create a family and link its users to it."""
        record = validate(FamilyRecord, payload)
        data = to_document(record)
        data["members"] = FamilyService._member_list(record.mainContact, record.members)
        stamp_created(data)

        family_ref = db.collection(FAMILIES).document()
        data = run_transaction(
            db, FamilyService._create_transaction, db, family_ref, data
        )

        current_app.logger.info(f"Family {family_ref.id} created.")
        data["id"] = family_ref.id
        return FamilyService._with_counts(data)

    @staticmethod
    def _with_counts(family: dict[str, Any], members: list[dict[str, Any]] | None = None) -> dict[str, Any]:
        family["userCount"] = len(family.get("members") or [])
        if members is not None:
            family["familyMembers"] = members
            family["memberCount"] = len(members)
        return family

    @staticmethod
    @storage_retry
    def get_family(db: Client, family_id: str) -> dict[str, Any]:
        """Fetch a family with its family members."""
        family = get_document(db, FAMILIES, family_id, "Family")
        members = FamilyService._list_members(db, family_id)
        return FamilyService._with_counts(family, members)

    @staticmethod
    @storage_retry
    def list_families(db: Client) -> list[dict[str, Any]]:
        """List all families ordered by name."""
        docs = db.collection(FAMILIES).order_by("name").stream()
        return [FamilyService._with_counts(snapshot_to_dict(doc)) for doc in docs]

    @staticmethod
    def _update_transaction(
        transaction: Transaction,
        db: Client,
        family_ref: DocumentReference,
        changes: Any,
    ) -> dict[str, Any]:
        current = get_in_transaction(transaction, family_ref, "Family")
        updates = validate_update(FamilyRecord, current, changes)

        old_members = list(current.get("members") or [])
        new_members = old_members
        if "members" in updates or "mainContact" in updates:
            main_contact = updates.get("mainContact", current.get("mainContact"))
            new_members = FamilyService._member_list(
                main_contact, updates.get("members", old_members)
            )
            updates["members"] = new_members
        removed = [m for m in old_members if m not in new_members]
        users = FamilyService._read_users(transaction, db, new_members + removed)
        FamilyService._require_users(new_members, users)

        if "name" in updates:
            updates["slug"] = claim_slug(
                transaction,
                db,
                FAMILY_SLUGS,
                slugify(updates["name"]),
                family_ref.id,
                current.get("slug"),
            )
        stamp_updated(updates, current)
        transaction.update(family_ref, updates)
        added = [users[m] for m in new_members if m not in old_members]
        FamilyService._link_users(db, transaction, family_ref.id, added)
        FamilyService._link_users(
            db, transaction, None, [users[m] for m in removed if m in users]
        )

        current.update(updates)
        return current

    @staticmethod
    @storage_retry
    def update_family(db: Client, family_id: str, changes: Any) -> dict[str, Any]:
        """Update a family, relinking users whose membership changed."""
        family_ref = db.collection(FAMILIES).document(family_id)
        updated = run_transaction(
            db, FamilyService._update_transaction, db, family_ref, changes
        )
        return FamilyService._with_counts(updated)

    @staticmethod
    @storage_retry
    def delete_family(db: Client, family_id: str) -> None:
        """Delete a family, its family members and the users' links to it."""
        family = get_document(db, FAMILIES, family_id, "Family")
        batch = db.batch()
        member_docs = (
            db.collection(FAMILY_MEMBERS)
            .where(filter=firestore.FieldFilter("familyId", "==", family_id))
            .stream()
        )
        for doc in member_docs:
            batch.delete(doc.reference)
        users = [
            snapshot_to_dict(doc)
            for doc in db.get_all(
                [db.collection(USERS).document(uid) for uid in family.get("members") or []]
            )
            if doc.exists
        ]
        FamilyService._link_users(db, batch, None, users)
        if family.get("slug"):
            batch.delete(db.collection(FAMILY_SLUGS).document(family["slug"]))
        batch.delete(db.collection(FAMILIES).document(family_id))
        batch.commit()
        current_app.logger.info(f"Family {family_id} deleted.")

    @staticmethod
    def _list_members(db: Client, family_id: str) -> list[dict[str, Any]]:
        docs = (
            db.collection(FAMILY_MEMBERS)
            .where(filter=firestore.FieldFilter("familyId", "==", family_id))
            .stream()
        )
        members = [with_member_fields(snapshot_to_dict(doc)) for doc in docs]
        members.sort(key=lambda m: (m.get("lastName", ""), m.get("firstName", "")))
        return members

    @staticmethod
    @storage_retry
    def list_members(db: Client, family_id: str) -> list[dict[str, Any]]:
        """List a family's members."""
        get_document(db, FAMILIES, family_id, "Family")
        return FamilyService._list_members(db, family_id)

    @staticmethod
    def _get_member(db: Client, family_id: str, member_id: str) -> dict[str, Any]:
        member = get_document(db, FAMILY_MEMBERS, member_id, "Family member")
        if member.get("familyId") != family_id:
            raise NotFoundError("Family member not found.")
        return member

    @staticmethod
    @storage_retry
    def add_member(db: Client, family_id: str, payload: Any) -> dict[str, Any]:
        """Add a family member to a family."""
        get_document(db, FAMILIES, family_id, "Family")
        record = validate(FamilyMemberRecord, payload)
        if record.userId:
            get_document(db, USERS, record.userId, "User")

        data = to_document(record)
        data["familyId"] = family_id
        stamp_created(data)
        _, member_ref = db.collection(FAMILY_MEMBERS).add(data)

        data["id"] = member_ref.id
        return with_member_fields(data)

    @staticmethod
    @storage_retry
    def update_member(
        db: Client, family_id: str, member_id: str, changes: Any
    ) -> dict[str, Any]:
        """Update a family member."""
        current = FamilyService._get_member(db, family_id, member_id)
        if isinstance(changes, dict) and "familyId" in changes:
            raise ValidationError("familyId cannot be changed.", field="familyId")
        updates = validate_update(FamilyMemberRecord, current, changes)
        if updates.get("userId"):
            get_document(db, USERS, updates["userId"], "User")
        stamp_updated(updates, current)
        db.collection(FAMILY_MEMBERS).document(member_id).update(updates)
        current.update(updates)
        return with_member_fields(current)

    @staticmethod
    @storage_retry
    def delete_member(db: Client, family_id: str, member_id: str) -> None:
        """Remove a family member."""
        FamilyService._get_member(db, family_id, member_id)
        db.collection(FAMILY_MEMBERS).document(member_id).delete()
