"""Service layer for user accounts."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app
from google.api_core import exceptions as google_exceptions
from werkzeug.security import generate_password_hash

from eventreg.core.constants import FAMILIES, USER_EMAILS, USERS
from eventreg.core.validation import to_document, validate, validate_update
from eventreg.db import (
    get_document,
    get_in_transaction,
    run_transaction,
    snapshot_to_dict,
    stamp_created,
    stamp_updated,
    storage_retry,
)
from eventreg.errors import ConflictError, UniquenessConflict
from eventreg.utils import public_user

from .models import UserRecord

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference
    from google.cloud.firestore_v1.transaction import Transaction


def _duplicate_email() -> UniquenessConflict:
    return UniquenessConflict("A user with this email already exists.", field="email")


class UserService:
    """Handles business logic and data access for users."""

    @staticmethod
    def _create_transaction(
        transaction: Transaction,
        user_ref: DocumentReference,
        claim_ref: DocumentReference,
        data: dict[str, Any],
    ) -> None:
        """Claim the email and write the user in one atomic commit."""
        transaction.create(claim_ref, {"userId": user_ref.id})
        transaction.create(user_ref, data)

    @staticmethod
    @storage_retry
    def create_user(db: Client, payload: Any) -> dict[str, Any]:
        """Create a user, enforcing email uniqueness at the storage level."""
        record = validate(UserRecord, payload)
        if record.familyId:
            get_document(db, FAMILIES, record.familyId, "Family")

        data = to_document(record)
        data["password"] = generate_password_hash(record.password)
        stamp_created(data)

        user_ref = db.collection(USERS).document()
        claim_ref = db.collection(USER_EMAILS).document(record.email)
        try:
            run_transaction(
                db, UserService._create_transaction, user_ref, claim_ref, data
            )
        except google_exceptions.Conflict as e:
            raise _duplicate_email() from e

        current_app.logger.info(f"User {user_ref.id} created.")
        data["id"] = user_ref.id
        return public_user(data)

    @staticmethod
    @storage_retry
    def get_user(db: Client, user_id: str) -> dict[str, Any]:
        """Fetch a user by id without the password hash."""
        return public_user(get_document(db, USERS, user_id, "User"))

    @staticmethod
    @storage_retry
    def list_users(db: Client) -> list[dict[str, Any]]:
        """List all users ordered by name."""
        docs = db.collection(USERS).order_by("name").stream()
        return [public_user(snapshot_to_dict(doc)) for doc in docs]

    @staticmethod
    def _update_transaction(
        transaction: Transaction,
        db: Client,
        user_ref: DocumentReference,
        changes: Any,
    ) -> dict[str, Any]:
        current = get_in_transaction(transaction, user_ref, "User")
        updates = validate_update(UserRecord, current, changes)
        if "familyId" in updates and updates["familyId"]:
            get_document(db, FAMILIES, updates["familyId"], "Family")
        if "password" in updates:
            updates["password"] = generate_password_hash(updates["password"])

        old_email = current.get("email")
        new_email = updates.get("email")
        if new_email and new_email != old_email:
            transaction.create(
                db.collection(USER_EMAILS).document(new_email), {"userId": user_ref.id}
            )
            if old_email:
                transaction.delete(db.collection(USER_EMAILS).document(old_email))

        stamp_updated(updates, current)
        transaction.update(user_ref, updates)
        current.update(updates)
        return current

    @staticmethod
    @storage_retry
    def update_user(db: Client, user_id: str, changes: Any) -> dict[str, Any]:
        """Update a user. Changing the email moves its uniqueness claim."""
        user_ref = db.collection(USERS).document(user_id)
        try:
            updated = run_transaction(
                db, UserService._update_transaction, db, user_ref, changes
            )
        except google_exceptions.Conflict as e:
            raise _duplicate_email() from e
        return public_user(updated)

    @staticmethod
    def _delete_transaction(
        transaction: Transaction, db: Client, user_ref: DocumentReference
    ) -> None:
        user = get_in_transaction(transaction, user_ref, "User")
        contact_of = (
            db.collection(FAMILIES)
            .where(filter=firestore.FieldFilter("mainContact", "==", user_ref.id))
            .limit(1)
            .stream()
        )
        if any(doc.exists for doc in contact_of):
            raise ConflictError(
                "This user is a family's main contact; assign another one first."
            )
        family = None
        if user.get("familyId"):
            family_ref = db.collection(FAMILIES).document(user["familyId"])
            snapshot = family_ref.get(transaction=transaction)
            if snapshot.exists:
                family = snapshot_to_dict(snapshot)

        transaction.delete(user_ref)
        if user.get("email"):
            transaction.delete(db.collection(USER_EMAILS).document(user["email"]))
        if family is not None:
            members = [m for m in family.get("members") or [] if m != user_ref.id]
            transaction.update(family_ref, stamp_updated({"members": members}, family))

    @staticmethod
    @storage_retry
    def delete_user(db: Client, user_id: str) -> None:
        """Delete a user, release its email and drop it from its family.

        Raises:
            ConflictError: If the user is the main contact of a family.
        """
        user_ref = db.collection(USERS).document(user_id)
        run_transaction(db, UserService._delete_transaction, db, user_ref)
        current_app.logger.info(f"User {user_id} deleted.")
