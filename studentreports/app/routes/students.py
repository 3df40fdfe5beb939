from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from .. import pdf_service, roster, storage_service
from ..auth import ensure_class_access, get_current_user, get_user_display_name, require_admin
from ..config import ARTWORK_CONTENT_TYPES, MAX_ARTWORK_BYTES
from ..downloads import content_disposition
from ..firebase_service import get_bucket, get_db
from ..models import ClassRecord, ReportData, Student
from ..reports import create_or_update_report, get_reports_for_student, load_report_for_editing
from ..schemas import ReportPayload, SessionUser, StudentPayload, StudentUpdatePayload


logger = logging.getLogger(__name__)

router = APIRouter(tags=["students"])


def _load_student(db, user: SessionUser, student_id: str) -> Tuple[Student, ClassRecord]:
    student = roster.get_student(db, student_id)
    class_record = roster.get_class(db, student.class_id)
    ensure_class_access(user, class_record.model_dump(by_alias=True))
    return student, class_record


def _current_report(db, student_id: str) -> Optional[ReportData]:
    reports = get_reports_for_student(db, student_id)
    return reports[0] if reports else None


@router.get("/students", response_model=List[Student])
def list_all_students(_: SessionUser = Depends(require_admin), db=Depends(get_db)):
    return roster.get_all_students(db)


@router.post("/students", response_model=Student, status_code=201)
def create_student(payload: StudentPayload, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    class_record = roster.get_class(db, payload.class_id)
    ensure_class_access(user, class_record.model_dump(by_alias=True))
    return roster.create_student(db, payload)


@router.patch("/students/{student_id}", response_model=Student)
def update_student(
    student_id: str,
    payload: StudentUpdatePayload,
    user: SessionUser = Depends(get_current_user),
    db=Depends(get_db),
):
    _load_student(db, user, student_id)
    if payload.class_id:
        ensure_class_access(user, roster.get_class(db, payload.class_id).model_dump(by_alias=True))
    return roster.update_student(db, student_id, payload)


@router.delete("/students/{student_id}")
def delete_student(
    student_id: str,
    user: SessionUser = Depends(get_current_user),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    _load_student(db, user, student_id)
    return roster.delete_student(db, student_id, bucket)


@router.get("/students/{student_id}/report", response_model=Optional[ReportData])
def get_student_report(student_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    """Return the student's report after removing any duplicates."""

    _load_student(db, user, student_id)
    reports = load_report_for_editing(db, student_id)
    return reports[0] if reports else None


@router.get("/students/{student_id}/report.pdf")
def download_student_report(student_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    student, class_record = _load_student(db, user, student_id)
    if not student.full_name:
        raise HTTPException(status_code=400, detail="Student name is required")

    teacher_name = get_user_display_name(db, class_record.teacher_email) or class_record.teacher_email
    fields = pdf_service.fields_for_report(student, class_record, _current_report(db, student_id), teacher_name)

    try:
        pdf_bytes = pdf_service.build_report_pdf(fields)
    except pdf_service.PDFDependencyUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except pdf_service.SvgRenderError as exc:
        logger.error("Report PDF generation failed for student %s: %s", student_id, exc)
        raise HTTPException(status_code=500, detail="Failed to process report template") from exc

    filename = pdf_service.report_filename(student.full_name)
    headers = {"Content-Disposition": content_disposition(filename)}
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


async def _read_artwork(upload: UploadFile) -> bytes:
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if content_type not in ARTWORK_CONTENT_TYPES:
        raise HTTPException(status_code=400, detail="Artwork must be a JPEG, PNG, GIF or WebP image")

    contents = await upload.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Artwork file is empty")
    if len(contents) > MAX_ARTWORK_BYTES:
        raise HTTPException(status_code=400, detail="Artwork must be 5MB or less")
    return contents


@router.post("/students/{student_id}/artwork", response_model=ReportData)
async def upload_artwork(
    student_id: str,
    file: UploadFile = File(...),
    user: SessionUser = Depends(get_current_user),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    """Replace the student's artwork and save the report with the new URL."""

    student, class_record = _load_student(db, user, student_id)
    contents = await _read_artwork(file)

    try:
        compressed, content_type = storage_service.compress_image(contents)
    except storage_service.InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    current = _current_report(db, student_id)
    if current is not None and current.artwork_url:
        storage_service.delete_image_by_url(bucket, current.artwork_url)

    path = storage_service.generate_image_path(student_id, file.filename or "artwork.jpg")
    try:
        artwork_url = storage_service.upload_image(bucket, compressed, path, content_type)
    except Exception as exc:  # pragma: no cover - storage client errors vary
        logger.error("Error uploading artwork for student %s: %s", student_id, exc)
        raise HTTPException(status_code=502, detail=f"Failed to upload image: {exc}") from exc

    create_or_update_report(
        db,
        ReportPayload(
            student_id=student.id,
            class_id=class_record.id,
            teacher_email=class_record.teacher_email,
            report_text=current.report_text if current is not None else "",
            artwork_url=artwork_url,
        ),
    )
    return _current_report(db, student_id)


@router.delete("/students/{student_id}/artwork", response_model=Optional[ReportData])
def remove_artwork(
    student_id: str,
    user: SessionUser = Depends(get_current_user),
    db=Depends(get_db),
    bucket=Depends(get_bucket),
):
    student, class_record = _load_student(db, user, student_id)
    current = _current_report(db, student_id)
    if current is None:
        return None

    if current.artwork_url:
        storage_service.delete_image_by_url(bucket, current.artwork_url)

    create_or_update_report(
        db,
        ReportPayload(
            student_id=student.id,
            class_id=class_record.id,
            teacher_email=class_record.teacher_email,
            report_text=current.report_text,
        ),
    )
    return _current_report(db, student_id)
