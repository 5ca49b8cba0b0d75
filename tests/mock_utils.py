"""Mock utilities for Firestore."""

from __future__ import annotations

import datetime
import functools
import threading
import unittest
import unittest.mock
from typing import Any, Callable, Optional

from google.api_core.exceptions import AlreadyExists
from mockfirestore import CollectionReference, MockFirestore, Query
from mockfirestore.document import DocumentReference

from eventreg import create_app

TEST_CONFIG = {
    "TESTING": True,
    "STORAGE_RETRY_ATTEMPTS": 3,
    "STORAGE_RETRY_MAX_WAIT": 0,
}

# Serializes mock transactions the way Firestore serializes conflicting ones.
_TRANSACTION_LOCK = threading.RLock()


def _write(ref: Any, op: str, data: Any) -> None:
    if op == "delete":
        ref.delete()
    elif op == "update":
        ref.update(data)
    else:
        ref.set(data)


class MockBatch:
    def __init__(self, db: Any) -> None:
        self.db = db
        self.writes: list[tuple[Any, str, Any]] = []
        self.commit = unittest.mock.MagicMock(side_effect=self._real_commit)

    def create(self, ref: Any, data: Any) -> None:
        self.writes.append((ref, "create", data))

    def update(self, ref: Any, data: Any) -> None:
        self.writes.append((ref, "update", data))

    def set(self, ref: Any, data: Any, merge: bool = False) -> None:
        self.writes.append((ref, "update" if merge else "set", data))

    def delete(self, ref: Any) -> None:
        self.writes.append((ref, "delete", None))

    def _real_commit(self) -> None:
        for ref, op, data in self.writes:
            _write(ref, op, data)


class MockTransaction(MockBatch):
    """Buffers writes and applies them on commit, failing creates of existing docs."""

    def rollback(self) -> None:
        self.writes.clear()

    def _real_commit(self) -> None:
        created: set[tuple[str, ...]] = set()
        for ref, op, _ in self.writes:
            if op != "create":
                continue
            path = tuple(ref._path)
            if path in created or ref.get().exists:
                raise AlreadyExists(f"Document already exists: {'/'.join(path)}")
            created.add(path)
        super()._real_commit()


def mock_transactional(func: Callable[..., Any], aborts: int = 0) -> Callable[..., Any]:
    """Stand-in for firestore.transactional that runs and commits under a lock.

    The first ``aborts`` runs are discarded and the function is called again
    with the same arguments, as Firestore does when a commit is aborted.
    """

    @functools.wraps(func)
    def wrapper(transaction: MockTransaction, *args: Any, **kwargs: Any) -> Any:
        remaining = aborts
        with _TRANSACTION_LOCK:
            while True:
                try:
                    result = func(transaction, *args, **kwargs)
                except Exception:
                    transaction.rollback()
                    raise
                if remaining:
                    remaining -= 1
                    transaction.rollback()
                    continue
                transaction.commit()
                return result

    return wrapper


def aborting_transactional(aborts: int = 1) -> Callable[..., Any]:
    """Return a mock_transactional whose transactions abort ``aborts`` times."""
    return functools.partial(mock_transactional, aborts=aborts)


class MockFirestoreBuilder:
    """Builder to modularize mockfirestore patching."""

    @staticmethod
    def patch_db_read() -> None:
        """Apply monkeypatches to mockfirestore to support FieldFilter and equality."""

        def collection_where(
            self: Any,
            field_path: Optional[str] = None,
            op_string: Optional[str] = None,
            value: Any = None,
            filter: Any = None,
        ) -> Any:
            if filter:
                return self._where(filter.field_path, filter.op_string, filter.value)
            return self._where(field_path, op_string, value)

        if not hasattr(CollectionReference, "_where"):
            CollectionReference._where = CollectionReference.where
            CollectionReference.where = collection_where

        def query_where(
            self: Any,
            field_path: Optional[str] = None,
            op_string: Optional[str] = None,
            value: Any = None,
            filter: Any = None,
        ) -> Any:
            if filter:
                return self._where(filter.field_path, filter.op_string, filter.value)
            return self._where(field_path, op_string, value)

        if not hasattr(Query, "_where"):
            Query._where = Query.where
            Query.where = query_where

        def doc_ref_eq(self: Any, other: Any) -> bool:
            if not isinstance(other, DocumentReference):
                return False
            return self._path == other._path

        if not hasattr(DocumentReference, "_orig_eq"):
            DocumentReference._orig_eq = DocumentReference.__eq__
            DocumentReference.__eq__ = doc_ref_eq
        DocumentReference.__hash__ = lambda self: hash(tuple(self._path))

        # Patch DocumentReference.get to handle transaction argument
        if not hasattr(DocumentReference, "_orig_get"):
            DocumentReference._orig_get = DocumentReference.get

            def doc_ref_get(self: Any, transaction: Any = None) -> Any:
                """Handle transaction argument in get."""
                return self._orig_get()

            DocumentReference.get = doc_ref_get

    @staticmethod
    def build_db() -> MockFirestore:
        """Return a MockFirestore with batch and transaction support."""
        db = MockFirestore()
        db.batch = lambda: MockBatch(db)
        db.transaction = lambda **kwargs: MockTransaction(db)
        return db


def patch_mockfirestore() -> None:
    """Apply monkeypatches to mockfirestore to support FieldFilter and equality."""
    MockFirestoreBuilder.patch_db_read()


class FirestoreTestCase(unittest.TestCase):
    """Base case: an app wired to a fresh MockFirestore, inside an app context."""

    def setUp(self) -> None:
        patch_mockfirestore()
        self.db = MockFirestoreBuilder.build_db()
        transactional = unittest.mock.patch(
            "firebase_admin.firestore.transactional", mock_transactional
        )
        transactional.start()
        self.addCleanup(transactional.stop)

        self.app = create_app(dict(TEST_CONFIG), db=self.db)
        self.client = self.app.test_client()
        self.ctx = self.app.app_context()
        self.ctx.push()
        self.addCleanup(self.ctx.pop)

    def make_user(self, email: str = "ada@example.com", **fields: Any) -> dict[str, Any]:
        from eventreg.users.services import UserService

        payload = {"name": "Ada Lovelace", "email": email, "password": "secret123"}
        payload.update(fields)
        return UserService.create_user(self.db, payload)

    def make_event(self, registration_id: str = "SPRING-2030", **fields: Any) -> dict[str, Any]:
        from eventreg.events.services import EventService

        payload = {
            "title": "Spring Games",
            "description": "A weekend of games.",
            "location": "Main Hall",
            "registrationId": registration_id,
            "startDate": datetime.datetime(2030, 4, 1, 9, tzinfo=datetime.timezone.utc),
            "endDate": datetime.datetime(2030, 4, 2, 17, tzinfo=datetime.timezone.utc),
            "eventType": "individual",
        }
        payload.update(fields)
        return EventService.create_event(self.db, payload)

    def make_section(self, event_id: str, **fields: Any) -> dict[str, Any]:
        from eventreg.events.services import SectionService

        payload = {"title": "Morning Heat", "date": "2030-04-01", "time": "09:00"}
        payload.update(fields)
        return SectionService.create_section(self.db, event_id, payload)

    def abort_transactions(self, aborts: int = 1) -> None:
        """Make every transaction abort ``aborts`` times before it commits."""
        patcher = unittest.mock.patch(
            "firebase_admin.firestore.transactional", aborting_transactional(aborts)
        )
        patcher.start()
        self.addCleanup(patcher.stop)
