from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException

from .. import reports as report_service
from .. import roster
from ..auth import ensure_class_access, get_current_user
from ..firebase_service import get_db
from ..models import ReportData
from ..schemas import ReportPayload, ReportUpdatePayload, SessionUser


router = APIRouter(tags=["reports"])


def _check_report_access(db, user: SessionUser, class_id: str) -> None:
    ensure_class_access(user, roster.get_class(db, class_id).model_dump(by_alias=True))


@router.put("/reports", response_model=Dict[str, str])
def save_report(payload: ReportPayload, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    """Create or update the single report of ``payload.student_id``.

    Called by the editor's autosave, so repeated saves are expected.
    """

    student = roster.get_student(db, payload.student_id)
    if student.class_id != payload.class_id:
        raise HTTPException(status_code=400, detail="Student does not belong to this class")
    _check_report_access(db, user, payload.class_id)
    return {"id": report_service.create_or_update_report(db, payload)}


@router.patch("/reports/{report_id}", response_model=ReportData)
def update_report(
    report_id: str,
    payload: ReportUpdatePayload,
    user: SessionUser = Depends(get_current_user),
    db=Depends(get_db),
):
    _check_report_access(db, user, report_service.get_report(db, report_id).class_id)
    return report_service.update_report(db, report_id, payload)


@router.delete("/reports/{report_id}", status_code=204)
def delete_report(report_id: str, user: SessionUser = Depends(get_current_user), db=Depends(get_db)):
    _check_report_access(db, user, report_service.get_report(db, report_id).class_id)
    report_service.delete_report(db, report_id)
