from __future__ import annotations

import logging
from typing import Dict, List, Tuple

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from .. import pdf_service, roster, zip_service
from ..auth import ensure_class_access, get_current_user, get_user_display_name, require_admin
from ..downloads import content_disposition
from ..firebase_service import get_bucket, get_db
from ..models import ClassRecord, ReportData, Student
from ..reports import get_reports_for_class
from ..schemas import ClassPayload, ClassUpdatePayload, SessionUser


logger = logging.getLogger(__name__)

router = APIRouter(tags=["classes"])


def _load_class(db, user: SessionUser, class_id: str) -> ClassRecord:
    class_record = roster.get_class(db, class_id)
    ensure_class_access(user, class_record.model_dump(by_alias=True))
    return class_record


@router.get("/classes", response_model=List[ClassRecord])
def list_classes(user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    if user.is_admin:
        return roster.get_all_classes(db)
    return roster.get_classes_for_teacher(db, user.email)


@router.post("/classes", response_model=ClassRecord, status_code=201)
def create_class(payload: ClassPayload, _: SessionUser = Depends(require_admin), db=Depends(get_db)):
    return roster.create_class(db, payload)


@router.get("/classes/{class_id}", response_model=ClassRecord)
def get_class(class_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    return _load_class(db, user, class_id)


@router.patch("/classes/{class_id}", response_model=ClassRecord)
def update_class(
    class_id: str,
    payload: ClassUpdatePayload,
    _: SessionUser = Depends(require_admin),
    db=Depends(get_db),
):
    return roster.update_class(db, class_id, payload)


@router.delete("/classes/{class_id}")
def delete_class(
    class_id: str,
    _: SessionUser = Depends(require_admin),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    return roster.delete_class(db, class_id, bucket)


@router.get("/classes/{class_id}/students", response_model=List[Student])
def list_students(class_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    _load_class(db, user, class_id)
    return roster.get_students_for_class(db, class_id)


@router.get("/classes/{class_id}/reports", response_model=List[ReportData])
def list_reports(class_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    _load_class(db, user, class_id)
    return get_reports_for_class(db, class_id)


@router.get("/classes/{class_id}/reports.zip")
def download_class_reports(class_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    """Render every report of the class into one ZIP archive."""

    class_record = _load_class(db, user, class_id)

    try:
        pdf_service.ensure_pdf_toolchain()
    except pdf_service.PDFDependencyUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    reports = get_reports_for_class(db, class_id)
    if not reports:
        raise HTTPException(status_code=404, detail="No reports found for this class")

    students: Dict[str, Student] = {student.id: student for student in roster.get_students_for_class(db, class_id)}
    teacher_name = get_user_display_name(db, class_record.teacher_email) or class_record.teacher_email
    class_name = class_record.class_level or class_record.class_location or class_record.id

    def _render(report: ReportData) -> Tuple[str, str, bytes]:
        student = students.get(report.student_id)
        if student is None:
            raise LookupError(f"Student {report.student_id} no longer exists")
        fields = pdf_service.fields_for_report(student, class_record, report, teacher_name)
        return student.first_name, student.last_name, pdf_service.build_report_pdf(fields)

    archive = zip_service.build_class_zip(reports, class_name, teacher_name, _render)
    filename = zip_service.zip_download_name(teacher_name, class_name)
    headers = {"Content-Disposition": content_disposition(filename)}
    return Response(content=archive, media_type="application/zip", headers=headers)
