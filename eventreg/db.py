"""Firestore client lifecycle, retries and write stamping."""

from __future__ import annotations

import atexit
import datetime
import functools
import sys
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore
from flask import current_app, g
from google.api_core import exceptions as google_exceptions
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from .core.validation import as_utc
from .errors import NotFoundError, StorageUnavailableError

if TYPE_CHECKING:
    from flask import Flask
    from google.cloud.firestore_v1.client import Client

EXTENSION_KEY = "firestore"

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)


def init_app(app: Flask, client: Client | None = None) -> None:
    """Attach a Firestore client to the app for its whole lifetime.

    Outside of testing the connection is checked once, and the process exits
    if the database cannot be reached.
    """
    if client is None:
        client = firestore.client()
    app.extensions[EXTENSION_KEY] = client

    if not app.config.get("TESTING"):
        try:
            verify_connection(client)
        except Exception as e:
            app.logger.critical(f"Error connecting to Firestore: {e}")
            sys.exit(1)
        app.logger.info("Firestore connected.")
        atexit.register(close_client, client)

    app.teardown_appcontext(release_db)


def verify_connection(client: Client) -> None:
    """Issue a cheap read to prove the database is reachable."""
    next(iter(client.collections()), None)


def close_client(client: Client) -> None:
    """Close the client's underlying channels, if it has any."""
    close = getattr(client, "close", None)
    if callable(close):
        close()


def get_db() -> Client:
    """Return the Firestore client for the current request."""
    if "db" not in g:
        g.db = current_app.extensions[EXTENSION_KEY]
    return g.db


def release_db(e: BaseException | None = None) -> None:
    """Drop the request's handle on the client."""
    g.pop("db", None)


def storage_retry(func: Any) -> Any:
    """Retry a storage operation on transient errors with exponential backoff.

    Deterministic failures (validation, conflicts, missing records) are
    raised immediately.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        attempts, max_wait = _retry_settings()
        retrying = Retrying(
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            wait=wait_random_exponential(multiplier=0.5, max=max_wait),
            stop=stop_after_attempt(attempts),
            reraise=False,
        )
        try:
            return retrying(func, *args, **kwargs)
        except RetryError as e:
            cause = e.last_attempt.exception()
            _log_error(f"Storage unavailable after {attempts} attempts: {cause}")
            raise StorageUnavailableError() from cause

    return wrapper


def _retry_settings() -> tuple[int, float]:
    try:
        config = current_app.config
    except RuntimeError:
        return 5, 8.0
    return (
        int(config.get("STORAGE_RETRY_ATTEMPTS", 5)),
        float(config.get("STORAGE_RETRY_MAX_WAIT", 8.0)),
    )


def _log_error(message: str) -> None:
    try:
        current_app.logger.error(message)
    except RuntimeError:
        pass


def run_transaction(db: Client, func: Any, *args: Any) -> Any:
    """Run ``func(transaction, *args)`` inside a Firestore transaction."""
    return firestore.transactional(func)(db.transaction(), *args)


def utcnow() -> datetime.datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


def stamp_created(data: dict[str, Any]) -> dict[str, Any]:
    """Set createdAt and updatedAt on a new document."""
    now = utcnow()
    data["createdAt"] = now
    data["updatedAt"] = now
    return data


def stamp_updated(data: dict[str, Any], previous: dict[str, Any] | None = None) -> dict[str, Any]:
    """Set updatedAt on an update, strictly after the stored value."""
    now = utcnow()
    prior = (previous or {}).get("updatedAt")
    if isinstance(prior, datetime.datetime) and now <= as_utc(prior):
        now = as_utc(prior) + datetime.timedelta(microseconds=1)
    data["updatedAt"] = now
    return data


def snapshot_to_dict(snapshot: Any) -> dict[str, Any]:
    """Return a snapshot's data with its id included."""
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


def get_document(db: Client, collection: str, doc_id: str, label: str) -> dict[str, Any]:
    """Fetch a document by id.

    Raises:
        NotFoundError: If the document does not exist.
    """
    if not doc_id:
        raise NotFoundError(f"{label} not found.")
    snapshot = db.collection(collection).document(doc_id).get()
    if not snapshot.exists:
        raise NotFoundError(f"{label} not found.")
    return snapshot_to_dict(snapshot)


def get_in_transaction(transaction: Any, ref: Any, label: str) -> dict[str, Any]:
    """Read a document inside a transaction, raising NotFoundError if missing."""
    snapshot = ref.get(transaction=transaction)
    if not snapshot.exists:
        raise NotFoundError(f"{label} not found.")
    return snapshot_to_dict(snapshot)


def claim_slug(
    transaction: Any,
    db: Client,
    collection: str,
    base: str,
    owner_id: str,
    current: str | None = None,
) -> str:
    """Reserve ``base`` or the first free ``base-N`` through claim documents.

    A slug already claimed by ``owner_id`` is kept. When a different slug is
    taken, the ``current`` claim is released. Must run before the
    transaction's other writes.
    """
    root = base or "untitled"
    slug = root
    count = 1
    while True:
        ref = db.collection(collection).document(slug)
        snapshot = ref.get(transaction=transaction)
        if not snapshot.exists:
            transaction.create(ref, {"ownerId": owner_id})
            break
        if (snapshot.to_dict() or {}).get("ownerId") == owner_id:
            break
        slug = f"{root}-{count}"
        count += 1
    if current and current != slug:
        transaction.delete(db.collection(collection).document(current))
    return slug
