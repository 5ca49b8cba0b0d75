"""Resolve a registration's registrants into participant identities."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from flask import current_app

from eventreg.core.constants import FAMILY_MEMBERS, UNKNOWN_NAME, USERS
from eventreg.core.types import Participant
from eventreg.errors import NotFoundError
from eventreg.utils import display_name

from .metrics import team_size

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client


def _fetch(db: Client, collection: str, ids: set[str]) -> dict[str, dict[str, Any]]:
    if not ids:
        return {}
    refs = [db.collection(collection).document(doc_id) for doc_id in sorted(ids)]
    return {doc.id: doc.to_dict() or {} for doc in db.get_all(refs) if doc.exists}


def _identity(registrant_type: str, doc_id: str | None, record: dict[str, Any] | None) -> Participant:
    record = record or {}
    dob = record.get("dateOfBirth")
    return Participant(
        registrantType=registrant_type,
        id=doc_id,
        name=display_name(record) if record else UNKNOWN_NAME,
        email=record.get("email"),
        dateOfBirth=str(dob)[:10] if dob else None,
    )


def resolve_participants(
    db: Client, registration: dict[str, Any], strict: bool = False
) -> list[Participant]:
    """Return one identity per person in a registration.

    Family members come first, then team members (team registrations only).
    A registration with neither resolves to the registering user. For user
    and familyMember registrants only the reference is authoritative.

    Raises:
        NotFoundError: If ``strict`` and a referenced record does not exist.
    """
    family_ids = list(registration.get("familyMembers") or [])
    team = list(registration.get("teamMembers") or []) if team_size(registration) else []
    registered_by = registration.get("registeredBy")

    user_ids = {m["user"] for m in team if m.get("registrantType") == "user"}
    member_ids = set(family_ids) | {
        m["familyMember"] for m in team if m.get("registrantType") == "familyMember"
    }
    if not family_ids and not team and registered_by:
        user_ids.add(registered_by)

    users = _fetch(db, USERS, user_ids)
    members = _fetch(db, FAMILY_MEMBERS, member_ids)

    def lookup(kind: str, doc_id: str) -> Participant:
        source = users if kind == "user" else members
        if doc_id not in source:
            label = "User" if kind == "user" else "Family member"
            if strict:
                raise NotFoundError(f"{label} {doc_id} not found.")
            current_app.logger.warning(
                f"Registration {registration.get('id')} references missing {label.lower()} {doc_id}."
            )
        return _identity(kind, doc_id, source.get(doc_id))

    participants = [lookup("familyMember", mid) for mid in family_ids]
    for member in team:
        kind = member.get("registrantType")
        if kind == "user":
            participants.append(lookup("user", member["user"]))
        elif kind == "familyMember":
            participants.append(lookup("familyMember", member["familyMember"]))
        else:
            participants.append(_identity("external", None, member))
    if not participants and registered_by:
        participants.append(lookup("user", registered_by))
    return participants
