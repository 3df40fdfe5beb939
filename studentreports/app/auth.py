"""Session resolution and access checks for the student reports backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException

from .config import (
    COLLECTION_ADMIN_USERS,
    COLLECTION_CLASSES,
    COLLECTION_TEACHERS,
    COLLECTION_WHITELIST,
    get_dev_admin_emails,
)
from .firebase_service import get_db, verify_and_decode_token
from .schemas import SessionUser

logger = logging.getLogger(__name__)


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _first_by_email(db, collection: str, email: str) -> Optional[Dict[str, Any]]:
    snapshots = db.collection(collection).where("email", "==", email).limit(1).get()
    for snapshot in snapshots:
        return snapshot.to_dict() or {}
    return None


def is_user_admin(db, email: Optional[str]) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False

    if normalized in get_dev_admin_emails():
        return True

    try:
        record = _first_by_email(db, COLLECTION_ADMIN_USERS, normalized)
    except Exception as exc:  # pragma: no cover - depends on Firestore availability
        logger.error("Admin lookup failed for %s: %s", normalized, exc)
        return False

    return bool(record and record.get("isAdmin") is True)


def _whitelist_contains(db, email: str, normalized: str) -> bool:
    collection = db.collection(COLLECTION_WHITELIST)
    for candidate in dict.fromkeys((normalized, email)):
        if _first_by_email(db, COLLECTION_WHITELIST, candidate) is not None:
            return True
        if collection.document(candidate).get().exists:
            return True

    # Older entries kept the email in whatever case it was typed.
    for snapshot in collection.stream():
        stored = (snapshot.to_dict() or {}).get("email") or snapshot.id
        if _normalize_email(stored) == normalized:
            return True
    return False


def is_user_whitelisted(db, email: Optional[str]) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False

    try:
        return _whitelist_contains(db, (email or "").strip(), normalized)
    except Exception as exc:  # pragma: no cover - depends on Firestore availability
        logger.warning("Whitelist lookup failed for %s, using fallback list: %s", normalized, exc)
        return normalized in get_dev_admin_emails()


def get_user_display_name(db, email: Optional[str]) -> Optional[str]:
    """Return "First Last" from the admin users, then the teachers collection."""

    normalized = _normalize_email(email)
    if not normalized:
        return None

    for collection in (COLLECTION_ADMIN_USERS, COLLECTION_TEACHERS):
        record = _first_by_email(db, collection, normalized)
        if record is None:
            continue
        name = f"{record.get('firstName', '')} {record.get('lastName', '')}".strip()
        if name:
            return name

    return None


def teaches_any_class(db, email: str) -> bool:
    snapshots = (
        db.collection(COLLECTION_CLASSES)
        .where("teacherEmail", "==", email)
        .limit(1)
        .get()
    )
    return len(list(snapshots)) > 0


def resolve_session_user(db, decoded_token: Dict[str, Any]) -> SessionUser:
    token_email = decoded_token.get("email")
    email = _normalize_email(token_email)
    if not email:
        raise HTTPException(status_code=400, detail="Firebase token is missing an email address")

    is_admin = is_user_admin(db, email)
    if not is_admin and not is_user_whitelisted(db, token_email) and not teaches_any_class(db, email):
        logger.info("Rejected sign-in for %s: not an admin, whitelisted user or teacher", email)
        raise HTTPException(status_code=403, detail="You do not have access to this application")

    display_name = get_user_display_name(db, email) or decoded_token.get("name")
    return SessionUser(email=email, display_name=display_name, is_admin=is_admin)


def get_current_user(
    authorization: Optional[str] = Header(None),
    db=Depends(get_db),
) -> SessionUser:
    decoded_token = verify_and_decode_token(authorization)
    return resolve_session_user(db, decoded_token)


def require_admin(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user


def ensure_class_access(user: SessionUser, class_record: Dict[str, Any]) -> None:
    """Teachers may only touch their own classes; admins may touch any."""

    if user.is_admin:
        return
    if _normalize_email(class_record.get("teacherEmail")) != user.email:
        raise HTTPException(status_code=403, detail="You do not have permission to access this class")
