"""Classes, students, teachers and admin users stored in Firestore."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from fastapi import HTTPException
from firebase_admin import firestore

from . import reports as report_service
from .config import (
    COLLECTION_ADMIN_USERS,
    COLLECTION_CLASSES,
    COLLECTION_REPORTS,
    COLLECTION_STUDENTS,
    COLLECTION_TEACHERS,
    COLLECTION_WHITELIST,
    MAX_REPORT_LENGTH,
)
from .firebase_service import delete_documents, retry_firestore_operation
from .models import (
    AdminUser,
    ClassRecord,
    Student,
    Teacher,
    WhitelistedUser,
    record_from_snapshot,
    timestamp_value,
    utcnow,
)
from .schemas import (
    AdminUserUpdatePayload,
    ClassImportRow,
    ClassPayload,
    ClassUpdatePayload,
    CleanupResult,
    ImportResult,
    ReportImportRow,
    ReportPayload,
    Statistics,
    StudentImportRow,
    StudentPayload,
    StudentUpdatePayload,
    TeacherReportCount,
    UserImportRow,
    WhitelistPayload,
)
from .storage_service import delete_image_by_url

logger = logging.getLogger(__name__)


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _all_records(db: firestore.Client, collection: str) -> List[Dict[str, Any]]:
    return [record_from_snapshot(snapshot) for snapshot in db.collection(collection).stream()]


def _records_where(db: firestore.Client, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
    snapshots = db.collection(collection).where(field, "==", value).get()
    return [record_from_snapshot(snapshot) for snapshot in snapshots]


# --- classes -----------------------------------------------------------------


def get_classes_for_teacher(db: firestore.Client, teacher_email: str) -> List[ClassRecord]:
    email = _normalize_email(teacher_email)
    records = retry_firestore_operation(lambda: _records_where(db, COLLECTION_CLASSES, "teacherEmail", email))
    records.sort(key=lambda record: str(record.get("classLevel", "")))
    return [ClassRecord.model_validate(record) for record in records]


def get_all_classes(db: firestore.Client) -> List[ClassRecord]:
    records = retry_firestore_operation(lambda: _all_records(db, COLLECTION_CLASSES))
    records.sort(key=lambda record: str(record.get("teacherEmail", "")))
    return [ClassRecord.model_validate(record) for record in records]


def get_class(db: firestore.Client, class_id: str) -> ClassRecord:
    snapshot = db.collection(COLLECTION_CLASSES).document(class_id).get()
    if not snapshot.exists:
        raise HTTPException(status_code=404, detail="Class not found")
    return ClassRecord.model_validate(record_from_snapshot(snapshot))


def create_class(db: firestore.Client, payload: ClassPayload) -> ClassRecord:
    now = utcnow()
    data = payload.model_dump(by_alias=True)
    data.update({"createdAt": now, "updatedAt": now})
    _, doc_ref = db.collection(COLLECTION_CLASSES).add(data)
    logger.info("Created class %s for %s", doc_ref.id, payload.teacher_email)
    return ClassRecord.model_validate({**data, "id": doc_ref.id})


def update_class(db: firestore.Client, class_id: str, payload: ClassUpdatePayload) -> ClassRecord:
    doc_ref = db.collection(COLLECTION_CLASSES).document(class_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Class not found")

    changes = payload.model_dump(by_alias=True, exclude_none=True)
    if "teacherEmail" in changes:
        changes["teacherEmail"] = _normalize_email(changes["teacherEmail"])
    changes["updatedAt"] = utcnow()
    doc_ref.update(changes)
    return ClassRecord.model_validate(record_from_snapshot(doc_ref.get()))


def _delete_reports(db: firestore.Client, report_records: Iterable[Dict[str, Any]], bucket=None) -> int:
    refs = []
    for record in report_records:
        if bucket is not None and record.get("artworkUrl"):
            delete_image_by_url(bucket, record["artworkUrl"])
        refs.append(db.collection(COLLECTION_REPORTS).document(record["id"]))
    return delete_documents(db, refs)


def delete_class(db: firestore.Client, class_id: str, bucket=None) -> Dict[str, int]:
    """Delete a class together with its students, their reports and artwork."""

    get_class(db, class_id)

    students = _records_where(db, COLLECTION_STUDENTS, "classId", class_id)
    report_records: Dict[str, Dict[str, Any]] = {
        record["id"]: record for record in _records_where(db, COLLECTION_REPORTS, "classId", class_id)
    }
    for student in students:
        for record in _records_where(db, COLLECTION_REPORTS, "studentId", student["id"]):
            report_records[record["id"]] = record

    reports_deleted = _delete_reports(db, report_records.values(), bucket)
    students_deleted = delete_documents(
        db, [db.collection(COLLECTION_STUDENTS).document(student["id"]) for student in students]
    )
    db.collection(COLLECTION_CLASSES).document(class_id).delete()

    logger.info(
        "Deleted class %s with %s students and %s reports", class_id, students_deleted, reports_deleted
    )
    return {"studentsDeleted": students_deleted, "reportsDeleted": reports_deleted}


# --- students ----------------------------------------------------------------


def get_students_for_class(db: firestore.Client, class_id: str) -> List[Student]:
    records = _records_where(db, COLLECTION_STUDENTS, "classId", class_id)
    records.sort(key=lambda record: str(record.get("lastName", "")).lower())
    return [Student.model_validate(record) for record in records]


def get_all_students(db: firestore.Client) -> List[Student]:
    return [Student.model_validate(record) for record in _all_records(db, COLLECTION_STUDENTS)]


def get_student(db: firestore.Client, student_id: str) -> Student:
    snapshot = db.collection(COLLECTION_STUDENTS).document(student_id).get()
    if not snapshot.exists:
        raise HTTPException(status_code=404, detail="Student not found")
    return Student.model_validate(record_from_snapshot(snapshot))


def create_student(db: firestore.Client, payload: StudentPayload) -> Student:
    get_class(db, payload.class_id)

    now = utcnow()
    data = payload.model_dump(by_alias=True)
    data.update({"createdAt": now, "updatedAt": now})
    _, doc_ref = db.collection(COLLECTION_STUDENTS).add(data)
    logger.info("Created student %s in class %s", doc_ref.id, payload.class_id)
    return Student.model_validate({**data, "id": doc_ref.id})


def update_student(db: firestore.Client, student_id: str, payload: StudentUpdatePayload) -> Student:
    doc_ref = db.collection(COLLECTION_STUDENTS).document(student_id)
    if not doc_ref.get().exists:
        raise HTTPException(status_code=404, detail="Student not found")

    changes = payload.model_dump(by_alias=True, exclude_none=True)
    if "classId" in changes:
        get_class(db, changes["classId"])
    changes["updatedAt"] = utcnow()
    doc_ref.update(changes)
    return Student.model_validate(record_from_snapshot(doc_ref.get()))


def delete_student(db: firestore.Client, student_id: str, bucket=None) -> Dict[str, int]:
    """Delete a student and every report (and artwork) that belongs to it."""

    get_student(db, student_id)
    reports_deleted = _delete_reports(db, _records_where(db, COLLECTION_REPORTS, "studentId", student_id), bucket)
    db.collection(COLLECTION_STUDENTS).document(student_id).delete()
    logger.info("Deleted student %s and %s reports", student_id, reports_deleted)
    return {"reportsDeleted": reports_deleted}


# --- users -------------------------------------------------------------------


def get_all_users(db: firestore.Client) -> List[AdminUser]:
    return [AdminUser.model_validate(record) for record in _all_records(db, COLLECTION_ADMIN_USERS)]


def get_all_teachers(db: firestore.Client) -> List[Teacher]:
    return [Teacher.model_validate(record) for record in _all_records(db, COLLECTION_TEACHERS)]


def get_teacher_by_email(db: firestore.Client, email: str) -> Optional[Dict[str, Any]]:
    """Look the email up in the admin users, then in the teachers collection."""

    normalized = _normalize_email(email)
    for collection in (COLLECTION_ADMIN_USERS, COLLECTION_TEACHERS):
        snapshots = db.collection(collection).where("email", "==", normalized).limit(1).get()
        for snapshot in snapshots:
            return record_from_snapshot(snapshot)
    return None


def update_admin_user(db: firestore.Client, email: str, payload: AdminUserUpdatePayload) -> bool:
    """Apply ``payload`` to every admin user document with ``email``."""

    records = _records_where(db, COLLECTION_ADMIN_USERS, "email", _normalize_email(email))
    if not records:
        return False

    changes = payload.model_dump(by_alias=True, exclude_none=True)
    changes["updatedAt"] = utcnow()
    for record in records:
        db.collection(COLLECTION_ADMIN_USERS).document(record["id"]).update(changes)
    return True


def remove_admin_user_by_email(db: firestore.Client, email: str) -> bool:
    records = _records_where(db, COLLECTION_ADMIN_USERS, "email", _normalize_email(email))
    if not records:
        return False
    delete_documents(db, [db.collection(COLLECTION_ADMIN_USERS).document(record["id"]) for record in records])
    logger.info("Removed %s admin user records for %s", len(records), email)
    return True


def remove_duplicate_admin_users(db: firestore.Client) -> CleanupResult:
    """Keep the most recently created admin user per email and delete the rest."""

    by_email: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for record in _all_records(db, COLLECTION_ADMIN_USERS):
        by_email[_normalize_email(record.get("email"))].append(record)

    removed = 0
    kept = 0
    for email, records in by_email.items():
        records.sort(key=lambda record: timestamp_value(record.get("createdAt")), reverse=True)
        duplicates = records[1:]
        if duplicates:
            logger.info("Found %s duplicate admin users for %s", len(duplicates), email)
            delete_documents(
                db, [db.collection(COLLECTION_ADMIN_USERS).document(record["id"]) for record in duplicates]
            )
        removed += len(duplicates)
        kept += 1

    logger.info("Removed %s duplicate admin users, kept %s", removed, kept)
    return CleanupResult(removed=removed, kept=kept)


# --- whitelist ---------------------------------------------------------------


def _whitelist_records(db: firestore.Client) -> List[Dict[str, Any]]:
    records = _all_records(db, COLLECTION_WHITELIST)
    for record in records:
        record["email"] = record.get("email") or record["id"]
    return records


def get_whitelisted_users(db: firestore.Client) -> List[WhitelistedUser]:
    records = sorted(_whitelist_records(db), key=lambda record: _normalize_email(record["email"]))
    return [WhitelistedUser.model_validate(record) for record in records]


def add_whitelisted_user(db: firestore.Client, payload: WhitelistPayload) -> WhitelistedUser:
    """Store ``payload`` under its lowercased email, replacing any earlier entry."""

    email = _normalize_email(payload.email)
    data = {"email": email, "displayName": payload.display_name.strip(), "addedAt": utcnow().isoformat()}
    db.collection(COLLECTION_WHITELIST).document(email).set(data)
    logger.info("Whitelisted %s", email)
    return WhitelistedUser.model_validate({**data, "id": email})


def remove_whitelisted_user(db: firestore.Client, email: str) -> bool:
    """Delete every whitelist document for ``email``, whatever case it was stored in."""

    normalized = _normalize_email(email)
    records = [record for record in _whitelist_records(db) if _normalize_email(record["email"]) == normalized]
    if not records:
        return False
    delete_documents(db, [db.collection(COLLECTION_WHITELIST).document(record["id"]) for record in records])
    logger.info("Removed %s whitelist records for %s", len(records), normalized)
    return True


# --- imports -----------------------------------------------------------------


def import_users(db: firestore.Client, rows: List[UserImportRow]) -> ImportResult:
    """Import users; admins go to ``adminUsers`` and everyone else to ``teachers``.

    Every row is validated before anything is written.
    """

    for row in rows:
        if not row.email.strip():
            raise HTTPException(status_code=400, detail="All users must have an email address")
        if not row.first_name.strip():
            raise HTTPException(status_code=400, detail=f"User {row.email} is missing firstName")
        if not row.last_name.strip():
            raise HTTPException(status_code=400, detail=f"User {row.email} is missing lastName")

    for row in rows:
        now = utcnow()
        data: Dict[str, Any] = {
            "email": _normalize_email(row.email),
            "firstName": row.first_name.strip(),
            "lastName": row.last_name.strip(),
            "createdAt": now,
            "updatedAt": now,
        }
        if row.is_admin:
            data["isAdmin"] = True
            db.collection(COLLECTION_ADMIN_USERS).add(data)
        else:
            db.collection(COLLECTION_TEACHERS).add(data)

    logger.info("Imported %s users", len(rows))
    return ImportResult(imported=len(rows))


def import_classes(db: firestore.Client, rows: List[ClassImportRow]) -> ImportResult:
    known_emails: Set[str] = {_normalize_email(user.email) for user in get_all_users(db)}
    known_emails.update(_normalize_email(teacher.email) for teacher in get_all_teachers(db))

    for row in rows:
        if _normalize_email(row.teacher_email) not in known_emails:
            raise HTTPException(
                status_code=400,
                detail=f"Teacher with email {row.teacher_email} not found in users collection",
            )

    for row in rows:
        now = utcnow()
        data = row.model_dump(by_alias=True)
        data.update({"teacherEmail": _normalize_email(row.teacher_email), "createdAt": now, "updatedAt": now})
        db.collection(COLLECTION_CLASSES).add(data)

    logger.info("Imported %s classes", len(rows))
    return ImportResult(imported=len(rows))


def import_students(db: firestore.Client, rows: List[StudentImportRow]) -> ImportResult:
    result = ImportResult()
    for row in rows:
        if not row.class_id or not row.first_name.strip():
            result.skipped += 1
            result.errors.append(f"Student '{row.first_name} {row.last_name}' is missing a class or first name")
            continue
        now = utcnow()
        data = row.model_dump(by_alias=True)
        data.update({"createdAt": now, "updatedAt": now})
        db.collection(COLLECTION_STUDENTS).add(data)
        result.imported += 1

    logger.info("Imported %s students (%s skipped)", result.imported, result.skipped)
    return result


def _find_or_create_class(db: firestore.Client, row: ReportImportRow, cache: Dict[Tuple[str, ...], str]) -> str:
    key = (
        _normalize_email(row.teacher_email),
        row.class_day.strip(),
        row.class_time.strip(),
        row.class_location.strip(),
        row.class_level.strip(),
    )
    if key in cache:
        return cache[key]

    for record in _records_where(db, COLLECTION_CLASSES, "teacherEmail", key[0]):
        existing = (
            key[0],
            str(record.get("classDay", "")).strip(),
            str(record.get("classTime", "")).strip(),
            str(record.get("classLocation", "")).strip(),
            str(record.get("classLevel", "")).strip(),
        )
        if existing == key:
            cache[key] = record["id"]
            return record["id"]

    created = create_class(
        db,
        ClassPayload(
            teacher_email=key[0],
            class_day=key[1],
            class_time=key[2],
            class_location=key[3],
            class_level=key[4],
        ),
    )
    cache[key] = created.id
    return created.id


def _ensure_teacher(db: firestore.Client, row: ReportImportRow, known: Set[str]) -> None:
    email = _normalize_email(row.teacher_email)
    if email in known:
        return
    if get_teacher_by_email(db, email) is None:
        now = utcnow()
        db.collection(COLLECTION_TEACHERS).add(
            {
                "email": email,
                "firstName": row.teacher_first_name.strip(),
                "lastName": row.teacher_last_name.strip(),
                "createdAt": now,
                "updatedAt": now,
            }
        )
        logger.info("Created teacher %s during report import", email)
    known.add(email)


def _find_or_create_student(db: firestore.Client, class_id: str, row: ReportImportRow) -> str:
    first_name = row.student_first_name.strip()
    last_name = row.student_last_name.strip()
    for record in _records_where(db, COLLECTION_STUDENTS, "classId", class_id):
        if record.get("firstName", "").strip() == first_name and record.get("lastName", "").strip() == last_name:
            return record["id"]
    return create_student(db, StudentPayload(first_name=first_name, last_name=last_name, class_id=class_id)).id


def import_reports(db: firestore.Client, rows: List[ReportImportRow]) -> ImportResult:
    """Import denormalised report rows, creating missing teachers, classes and students."""

    result = ImportResult()
    class_cache: Dict[Tuple[str, ...], str] = {}
    known_teachers: Set[str] = set()

    for row in rows:
        if not _normalize_email(row.teacher_email) or not row.student_first_name.strip():
            result.skipped += 1
            result.errors.append("Row is missing a teacher email or student first name")
            continue

        report_text = row.report_text
        if len(report_text) > MAX_REPORT_LENGTH:
            logger.warning(
                "Truncating imported report for %s %s to %s characters",
                row.student_first_name,
                row.student_last_name,
                MAX_REPORT_LENGTH,
            )
            report_text = report_text[:MAX_REPORT_LENGTH]

        _ensure_teacher(db, row, known_teachers)
        class_id = _find_or_create_class(db, row, class_cache)
        student_id = _find_or_create_student(db, class_id, row)
        report_service.create_or_update_report(
            db,
            ReportPayload(
                student_id=student_id,
                class_id=class_id,
                teacher_email=_normalize_email(row.teacher_email),
                report_text=report_text,
                artwork_url=row.artwork_url,
            ),
        )
        result.imported += 1

    logger.info("Imported %s reports (%s skipped)", result.imported, result.skipped)
    return result


# --- statistics --------------------------------------------------------------


def _count(db: firestore.Client, collection: str) -> int:
    return sum(1 for _ in db.collection(collection).stream())


def get_statistics(db: firestore.Client) -> Statistics:
    return Statistics(
        admin_count=_count(db, COLLECTION_ADMIN_USERS),
        teacher_count=get_unique_teacher_count(db),
        class_count=_count(db, COLLECTION_CLASSES),
        student_count=_count(db, COLLECTION_STUDENTS),
        report_count=_count(db, COLLECTION_REPORTS),
    )


def get_unique_teacher_count(db: firestore.Client) -> int:
    """Number of distinct teacher emails that have at least one class."""

    return len({_normalize_email(record.teacher_email) for record in get_all_classes(db)})


def get_teacher_user_count(db: firestore.Client) -> int:
    """Teachers with classes who are not in the admin users collection."""

    teacher_emails = {_normalize_email(record.teacher_email) for record in get_all_classes(db)}
    admin_emails = {_normalize_email(user.email) for user in get_all_users(db)}
    return len(teacher_emails - admin_emails)


def get_teacher_report_counts(db: firestore.Client) -> List[TeacherReportCount]:
    classes = get_all_classes(db)
    class_owner: Dict[str, str] = {record.id: _normalize_email(record.teacher_email) for record in classes}

    student_counts: Dict[str, int] = defaultdict(int)
    for record in _all_records(db, COLLECTION_STUDENTS):
        owner = class_owner.get(record.get("classId", ""))
        if owner:
            student_counts[owner] += 1

    report_counts: Dict[str, int] = defaultdict(int)
    for record in _all_records(db, COLLECTION_REPORTS):
        report_counts[_normalize_email(record.get("teacherEmail"))] += 1

    names: Dict[str, str] = {}
    for person in [*get_all_teachers(db), *get_all_users(db)]:
        name = f"{person.first_name} {person.last_name}".strip()
        if name:
            names[_normalize_email(person.email)] = name

    counts = [
        TeacherReportCount(
            name=names.get(email, email),
            email=email,
            report_count=report_counts.get(email, 0),
            student_count=student_counts.get(email, 0),
        )
        for email in sorted(set(class_owner.values()))
    ]
    counts.sort(key=lambda entry: entry.name.lower())
    return counts
