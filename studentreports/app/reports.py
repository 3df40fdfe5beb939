"""Firestore access for student reports (one report document per student)."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import HTTPException
from firebase_admin import firestore

from .config import COLLECTION_REPORTS
from .models import ReportData, record_from_snapshot, timestamp_value, utcnow
from .schemas import ReportPayload, ReportUpdatePayload

logger = logging.getLogger(__name__)


def _reports_for_student_newest_first(db: firestore.Client, student_id: str) -> List[Dict[str, Any]]:
    snapshots = db.collection(COLLECTION_REPORTS).where("studentId", "==", student_id).get()
    records = [record_from_snapshot(snapshot) for snapshot in snapshots]
    records.sort(key=lambda record: timestamp_value(record.get("updatedAt")), reverse=True)
    return records


def get_reports_for_student(db: firestore.Client, student_id: str) -> List[ReportData]:
    """Return the most recently updated report of the student, if any."""

    records = _reports_for_student_newest_first(db, student_id)
    return [ReportData.model_validate(record) for record in records[:1]]


def get_reports_for_class(db: firestore.Client, class_id: str) -> List[ReportData]:
    snapshots = db.collection(COLLECTION_REPORTS).where("classId", "==", class_id).get()
    records = [record_from_snapshot(snapshot) for snapshot in snapshots]
    records.sort(key=lambda record: timestamp_value(record.get("createdAt")), reverse=True)
    return [ReportData.model_validate(record) for record in records]


def get_report(db: firestore.Client, report_id: str) -> ReportData:
    snapshot = db.collection(COLLECTION_REPORTS).document(report_id).get()
    if not snapshot.exists:
        raise HTTPException(status_code=404, detail="Report not found")
    return ReportData.model_validate(record_from_snapshot(snapshot))


def create_or_update_report(db: firestore.Client, payload: ReportPayload) -> str:
    """Upsert the report of ``payload.student_id`` and return its document id.

    A save without ``artwork_url`` removes any stored artwork reference.
    """

    now = utcnow()
    data: Dict[str, Any] = {
        "studentId": payload.student_id,
        "classId": payload.class_id,
        "teacherEmail": payload.teacher_email,
        "reportText": payload.report_text,
        "updatedAt": now,
    }

    existing = _reports_for_student_newest_first(db, payload.student_id)
    if not existing:
        if payload.artwork_url:
            data["artworkUrl"] = payload.artwork_url
        data["createdAt"] = now
        _, doc_ref = db.collection(COLLECTION_REPORTS).add(data)
        logger.info("Created report %s for student %s", doc_ref.id, payload.student_id)
        return doc_ref.id

    report_id = existing[0]["id"]
    data["artworkUrl"] = payload.artwork_url if payload.artwork_url else firestore.DELETE_FIELD
    db.collection(COLLECTION_REPORTS).document(report_id).update(data)

    for duplicate in existing[1:]:
        db.collection(COLLECTION_REPORTS).document(duplicate["id"]).delete()
        logger.info("Deleted duplicate report %s for student %s", duplicate["id"], payload.student_id)

    return report_id


def cleanup_duplicate_reports(db: firestore.Client, student_id: str) -> int:
    """Delete all but the most recently updated report of a student."""

    records = _reports_for_student_newest_first(db, student_id)
    removed = 0
    for record in records[1:]:
        db.collection(COLLECTION_REPORTS).document(record["id"]).delete()
        logger.info("Deleted duplicate report for student %s: %s", student_id, record["id"])
        removed += 1
    return removed


def load_report_for_editing(db: firestore.Client, student_id: str) -> List[ReportData]:
    try:
        cleanup_duplicate_reports(db, student_id)
    except Exception as exc:  # pragma: no cover - depends on Firestore availability
        logger.warning("Duplicate cleanup failed for student %s: %s", student_id, exc)
    return get_reports_for_student(db, student_id)


def update_report(db: firestore.Client, report_id: str, updates: ReportUpdatePayload) -> ReportData:
    doc_ref = db.collection(COLLECTION_REPORTS).document(report_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Report not found")

    changes: Dict[str, Any] = updates.model_dump(by_alias=True, exclude_unset=True)
    changes["updatedAt"] = utcnow()
    doc_ref.update(changes)
    return ReportData.model_validate(record_from_snapshot(doc_ref.get()))


def delete_report(db: firestore.Client, report_id: str) -> None:
    doc_ref = db.collection(COLLECTION_REPORTS).document(report_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Report not found")
    doc_ref.delete()
