"""One-off data maintenance: normalising legacy documents and wiping data."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from firebase_admin import firestore

from .config import (
    COLLECTION_ADMIN_USERS,
    COLLECTION_CLASSES,
    COLLECTION_REPORTS,
    COLLECTION_STUDENTS,
    COLLECTION_TEACHERS,
)
from .firebase_service import BATCH_LIMIT, delete_documents
from .schemas import ExistingDataSummary, MigrationResult
from .storage_service import delete_image_by_url

logger = logging.getLogger(__name__)

# Denormalised copies that older imports stored alongside the foreign keys.
CLASS_REDUNDANT_FIELDS = ("teacherFirstName", "teacherLastName")
REPORT_REDUNDANT_FIELDS = (
    "teacherFirstName",
    "teacherLastName",
    "studentFirstName",
    "studentLastName",
    "classDay",
    "classTime",
    "classLocation",
    "classLevel",
)

DATA_COLLECTIONS = (
    COLLECTION_REPORTS,
    COLLECTION_STUDENTS,
    COLLECTION_CLASSES,
    COLLECTION_TEACHERS,
    COLLECTION_ADMIN_USERS,
)


def _strip_fields(db: firestore.Client, collection: str, fields: Tuple[str, ...]) -> int:
    updates: List[Tuple[Any, Dict[str, Any]]] = []
    for snapshot in db.collection(collection).stream():
        data = snapshot.to_dict() or {}
        present = [name for name in fields if name in data]
        if present:
            updates.append((snapshot.reference, {name: firestore.DELETE_FIELD for name in present}))

    for start in range(0, len(updates), BATCH_LIMIT):
        batch = db.batch()
        for doc_ref, changes in updates[start : start + BATCH_LIMIT]:
            batch.update(doc_ref, changes)
        batch.commit()

    return len(updates)


def migrate_data_structure(db: firestore.Client) -> MigrationResult:
    """Remove denormalised teacher, student and class fields from classes and reports."""

    logger.info("Starting data structure migration")
    classes_updated = _strip_fields(db, COLLECTION_CLASSES, CLASS_REDUNDANT_FIELDS)
    logger.info("Normalized %s classes", classes_updated)
    reports_updated = _strip_fields(db, COLLECTION_REPORTS, REPORT_REDUNDANT_FIELDS)
    logger.info("Normalized %s reports", reports_updated)
    return MigrationResult(classes_updated=classes_updated, reports_updated=reports_updated)


def clear_all_data(db: firestore.Client, bucket=None) -> Dict[str, int]:
    """Delete every document in the data collections. The whitelist is kept.

    When ``bucket`` is given, report artwork is removed from Storage as well.
    """

    deleted: Dict[str, int] = {}
    for collection in DATA_COLLECTIONS:
        snapshots = list(db.collection(collection).stream())
        if bucket is not None and collection == COLLECTION_REPORTS:
            for snapshot in snapshots:
                delete_image_by_url(bucket, (snapshot.to_dict() or {}).get("artworkUrl"))
        deleted[collection] = delete_documents(db, [snapshot.reference for snapshot in snapshots])
        logger.warning("Cleared %s documents from %s", deleted[collection], collection)
    return deleted


def check_existing_data(db: firestore.Client) -> ExistingDataSummary:
    counts = {collection: sum(1 for _ in db.collection(collection).stream()) for collection in DATA_COLLECTIONS}
    return ExistingDataSummary(has_data=any(counts.values()), counts=counts)
