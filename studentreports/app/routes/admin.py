from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from .. import migration, roster, sheets
from ..auth import require_admin
from ..config import get_sheet_settings
from ..firebase_service import get_bucket, get_db
from ..models import AdminUser, Teacher, WhitelistedUser
from ..schemas import (
    AdminUserUpdatePayload,
    ClassImportRow,
    CleanupResult,
    ExistingDataSummary,
    ImportResult,
    MigrationResult,
    ReportImportRow,
    Statistics,
    StudentImportRow,
    TeacherReportCount,
    UserImportRow,
    WhitelistPayload,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/users", response_model=List[AdminUser])
def list_admin_users(db=Depends(get_db)):
    return roster.get_all_users(db)


@router.patch("/users/{email}")
def update_admin_user(email: str, payload: AdminUserUpdatePayload, db=Depends(get_db)):
    if not roster.update_admin_user(db, email, payload):
        raise HTTPException(status_code=404, detail="Admin user not found")
    return {"updated": True}


@router.delete("/users/{email}")
def remove_admin_user(email: str, db=Depends(get_db)):
    if not roster.remove_admin_user_by_email(db, email):
        raise HTTPException(status_code=404, detail="Admin user not found")
    return {"removed": True}


@router.post("/users/deduplicate", response_model=CleanupResult)
def deduplicate_admin_users(db=Depends(get_db)):
    return roster.remove_duplicate_admin_users(db)


@router.get("/whitelist", response_model=List[WhitelistedUser])
def list_whitelisted_users(db=Depends(get_db)):
    return roster.get_whitelisted_users(db)


@router.post("/whitelist", response_model=WhitelistedUser, status_code=201)
def add_whitelisted_user(payload: WhitelistPayload, db=Depends(get_db)):
    return roster.add_whitelisted_user(db, payload)


@router.delete("/whitelist/{email}")
def remove_whitelisted_user(email: str, db=Depends(get_db)):
    if not roster.remove_whitelisted_user(db, email):
        raise HTTPException(status_code=404, detail="Whitelisted user not found")
    return {"removed": True}


@router.get("/teachers", response_model=List[Teacher])
def list_teachers(db=Depends(get_db)):
    return roster.get_all_teachers(db)


@router.get("/statistics", response_model=Statistics)
def get_statistics(db=Depends(get_db)):
    return roster.get_statistics(db)


@router.get("/teacher-report-counts", response_model=List[TeacherReportCount])
def get_teacher_report_counts(db=Depends(get_db)):
    return roster.get_teacher_report_counts(db)


@router.get("/teacher-counts")
def get_teacher_counts(db=Depends(get_db)):
    return {
        "uniqueTeachers": roster.get_unique_teacher_count(db),
        "teacherUsers": roster.get_teacher_user_count(db),
    }


@router.post("/import/users", response_model=ImportResult)
def import_users(rows: List[UserImportRow], db=Depends(get_db)):
    return roster.import_users(db, rows)


@router.post("/import/classes", response_model=ImportResult)
def import_classes(rows: List[ClassImportRow], db=Depends(get_db)):
    return roster.import_classes(db, rows)


@router.post("/import/students", response_model=ImportResult)
def import_students(rows: List[StudentImportRow], db=Depends(get_db)):
    return roster.import_students(db, rows)


@router.post("/import/reports", response_model=ImportResult)
def import_reports(rows: List[ReportImportRow], db=Depends(get_db)):
    return roster.import_reports(db, rows)


@router.post("/import/sheet", response_model=ImportResult)
def import_from_sheet(
    sheet_id: Optional[str] = Body(None, embed=True, alias="sheetId"),
    db=Depends(get_db),
):
    """Fetch the configured Google Sheet and import its rows as reports."""

    configured_id, sheet_name = get_sheet_settings()
    resolved_id = (sheet_id or "").strip() or configured_id
    if not resolved_id:
        raise HTTPException(status_code=400, detail="No Google Sheet id configured")

    rows = sheets.fetch_student_reports_from_csv(resolved_id, sheet_name)
    if not rows:
        raise HTTPException(status_code=502, detail="No rows could be read from the Google Sheet")

    records = sheets.rows_to_report_records(rows)
    result = roster.import_reports(db, records)
    result.skipped += len(rows) - len(records)
    return result


@router.post("/migrate", response_model=MigrationResult)
def migrate_data(db=Depends(get_db)):
    return migration.migrate_data_structure(db)


@router.get("/data/summary", response_model=ExistingDataSummary)
def check_existing_data(db=Depends(get_db)):
    return migration.check_existing_data(db)


@router.delete("/data", response_model=Dict[str, int])
def clear_all_data(db=Depends(get_db), bucket=Depends(get_bucket)):
    logger.warning("Clearing all report data on admin request")
    return migration.clear_all_data(db, bucket)
