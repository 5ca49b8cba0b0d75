"""Tests for the user service."""

from __future__ import annotations

import datetime
from unittest.mock import patch

from werkzeug.security import check_password_hash

from eventreg.errors import (
    ConflictError,
    NotFoundError,
    UniquenessConflict,
    ValidationError,
)
from eventreg.families.services import FamilyService
from eventreg.users.services import UserService

from .mock_utils import FirestoreTestCase


class UserServiceTestCase(FirestoreTestCase):
    """Test case for creating, updating and deleting users."""

    def test_create_user_normalizes_email_and_hides_password(self) -> None:
        """The email is trimmed and lowercased and the password never returned."""
        user = self.make_user(email="  Ada@Example.COM ")

        self.assertEqual(user["email"], "ada@example.com")
        self.assertNotIn("password", user)
        self.assertFalse(user["isAdmin"])

        stored = self.db.collection("users").document(user["id"]).get().to_dict()
        self.assertNotEqual(stored["password"], "secret123")
        self.assertTrue(check_password_hash(stored["password"], "secret123"))

    def test_create_user_claims_email(self) -> None:
        """Creating a user writes a claim document keyed by the email."""
        user = self.make_user()
        claim = self.db.collection("userEmails").document("ada@example.com").get()
        self.assertTrue(claim.exists)
        self.assertEqual(claim.to_dict()["userId"], user["id"])

    def test_duplicate_email_is_rejected(self) -> None:
        """A second user with the same email (in any case) is a conflict."""
        self.make_user()

        with self.assertRaises(UniquenessConflict) as cm:
            self.make_user(email="ADA@example.com", name="Impostor")

        self.assertEqual(cm.exception.field, "email")
        users = [doc for doc in self.db.collection("users").stream() if doc.exists]
        self.assertEqual(len(users), 1)

    def test_short_password_names_field(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_user(password="abc")
        self.assertEqual(cm.exception.field, "password")

    def test_invalid_email_names_field(self) -> None:
        with self.assertRaises(ValidationError) as cm:
            self.make_user(email="not-an-email")
        self.assertEqual(cm.exception.field, "email")

    def test_unknown_family_is_rejected(self) -> None:
        with self.assertRaises(NotFoundError):
            self.make_user(familyId="missing")

    def test_update_email_moves_claim(self) -> None:
        """Changing the email releases the old claim and takes the new one."""
        user = self.make_user()

        updated = UserService.update_user(
            self.db, user["id"], {"email": "Countess@Example.com"}
        )

        self.assertEqual(updated["email"], "countess@example.com")
        emails = self.db.collection("userEmails")
        self.assertTrue(emails.document("countess@example.com").get().exists)
        self.assertFalse(emails.document("ada@example.com").get().exists)

    def test_update_to_taken_email_is_rejected(self) -> None:
        user = self.make_user()
        self.make_user(email="charles@example.com", name="Charles Babbage")

        with self.assertRaises(UniquenessConflict):
            UserService.update_user(
                self.db, user["id"], {"email": "charles@example.com"}
            )

        self.assertEqual(UserService.get_user(self.db, user["id"])["email"], "ada@example.com")

    def test_update_rehashes_password(self) -> None:
        user = self.make_user()
        UserService.update_user(self.db, user["id"], {"password": "newsecret"})
        stored = self.db.collection("users").document(user["id"]).get().to_dict()
        self.assertTrue(check_password_hash(stored["password"], "newsecret"))

    def test_update_rejects_unknown_field(self) -> None:
        user = self.make_user()
        with self.assertRaises(ValidationError) as cm:
            UserService.update_user(self.db, user["id"], {"nickname": "Ada"})
        self.assertEqual(cm.exception.field, "nickname")

    def test_updated_at_strictly_increases(self) -> None:
        """Even with a frozen clock every update moves updatedAt forward."""
        frozen = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        with patch("eventreg.db.utcnow", return_value=frozen):
            user = self.make_user()
            first = UserService.update_user(self.db, user["id"], {"phone": "555-0100"})
            second = UserService.update_user(self.db, user["id"], {"phone": "555-0101"})

        self.assertGreater(first["updatedAt"], user["updatedAt"])
        self.assertGreater(second["updatedAt"], first["updatedAt"])
        self.assertEqual(second["createdAt"], user["createdAt"])

    def test_delete_user_releases_email(self) -> None:
        user = self.make_user()

        UserService.delete_user(self.db, user["id"])

        with self.assertRaises(NotFoundError):
            UserService.get_user(self.db, user["id"])
        again = self.make_user()
        self.assertNotEqual(again["id"], user["id"])

    def test_delete_main_contact_is_refused(self) -> None:
        user = self.make_user()
        FamilyService.create_family(self.db, {"name": "Lovelace", "mainContact": user["id"]})

        with self.assertRaises(ConflictError):
            UserService.delete_user(self.db, user["id"])

        self.assertEqual(UserService.get_user(self.db, user["id"])["id"], user["id"])

    def test_delete_member_leaves_family_and_stamps_it(self) -> None:
        frozen = datetime.datetime(2030, 1, 1, tzinfo=datetime.timezone.utc)
        with patch("eventreg.db.utcnow", return_value=frozen):
            ada = self.make_user()
            charles = self.make_user(email="charles@example.com", name="Charles Babbage")
            family = FamilyService.create_family(
                self.db,
                {"name": "Lovelace", "mainContact": ada["id"], "members": [charles["id"]]},
            )

            UserService.delete_user(self.db, charles["id"])

        stored = FamilyService.get_family(self.db, family["id"])
        self.assertEqual(stored["members"], [ada["id"]])
        self.assertGreater(stored["updatedAt"], family["updatedAt"])

    def test_list_users_is_ordered_by_name(self) -> None:
        self.make_user(email="charles@example.com", name="Charles Babbage")
        self.make_user()

        names = [u["name"] for u in UserService.list_users(self.db)]

        self.assertEqual(names, ["Ada Lovelace", "Charles Babbage"])
