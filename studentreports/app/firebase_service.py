from __future__ import annotations

import logging
import os
import time
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, Optional, TypeVar

import firebase_admin
from fastapi import HTTPException
from firebase_admin import auth as firebase_auth, credentials, firestore, storage
from google.api_core import exceptions as gcp_exceptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (
    gcp_exceptions.ServiceUnavailable,
    gcp_exceptions.DeadlineExceeded,
    gcp_exceptions.InternalServerError,
)


def _initialize_app() -> firebase_admin.App:
    """Initialize the default Firebase app using env-based credentials."""

    # Prevent double initialization
    if firebase_admin._apps:
        return firebase_admin.get_app()

    emulator_host = os.environ.get("FIRESTORE_EMULATOR_HOST")
    credentials_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "firebase_key.json")

    if emulator_host:
        cred = credentials.AnonymousCredentials()
    else:
        if not os.path.exists(credentials_path):
            raise RuntimeError(
                f"Firebase credentials not found at {credentials_path}"
            )
        cred = credentials.Certificate(credentials_path)

    options: Dict[str, Any] = {}
    bucket_name = os.environ.get("FIREBASE_STORAGE_BUCKET", "").strip()
    if bucket_name:
        options["storageBucket"] = bucket_name

    app = firebase_admin.initialize_app(cred, options or None)
    logger.info("Firebase initialized (emulator=%s)", bool(emulator_host))
    return app


@lru_cache(maxsize=1)
def get_db() -> firestore.Client:
    _initialize_app()
    return firestore.client()


@lru_cache(maxsize=1)
def get_bucket():
    """Return the Firebase Storage bucket used for artwork uploads."""

    _initialize_app()
    return storage.bucket()


def verify_and_decode_token(authorization: Optional[str]) -> Dict[str, Any]:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Authorization header must be a Bearer token")

    _initialize_app()
    try:
        return firebase_auth.verify_id_token(token)
    except Exception as exc:  # pragma: no cover - firebase library raises many subclasses
        raise HTTPException(status_code=401, detail="Invalid or expired Firebase token") from exc


def retry_firestore_operation(
    operation: Callable[[], T],
    max_retries: int = 3,
    delay: float = 1.0,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``operation`` retrying transient Firestore errors with exponential backoff."""

    for attempt in range(1, max_retries + 1):
        try:
            return operation()
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_retries:
                raise
            logger.warning(
                "Firestore operation failed (attempt %s/%s), retrying in %.1fs: %s",
                attempt,
                max_retries,
                delay,
                exc,
            )
            sleep(delay)
            delay *= 2

    raise RuntimeError("Max retries exceeded")


# Firestore rejects write batches with more than 500 operations.
BATCH_LIMIT = 500


def delete_documents(db: firestore.Client, doc_refs: Iterable[Any]) -> int:
    """Delete ``doc_refs`` using write batches and return how many were deleted."""

    deleted = 0
    batch = db.batch()
    pending = 0
    for doc_ref in doc_refs:
        batch.delete(doc_ref)
        pending += 1
        if pending == BATCH_LIMIT:
            batch.commit()
            deleted += pending
            batch = db.batch()
            pending = 0

    if pending:
        batch.commit()
        deleted += pending
    return deleted
