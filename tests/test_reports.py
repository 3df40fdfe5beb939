from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from studentreports.app import reports
from studentreports.app.schemas import ReportPayload, ReportUpdatePayload


def _payload(**overrides):
    values = {
        "student_id": "s1",
        "class_id": "c1",
        "teacher_email": "teacher@example.com",
        "report_text": "Lovely work.",
    }
    values.update(overrides)
    return ReportPayload(**values)


def test_create_report_when_student_has_none(db):
    report_id = reports.create_or_update_report(db, _payload(artwork_url="https://img.test/a.png"))

    stored = db.docs("reports")[report_id]
    assert stored["studentId"] == "s1"
    assert stored["reportText"] == "Lovely work."
    assert stored["artworkUrl"] == "https://img.test/a.png"
    assert stored["createdAt"] == stored["updatedAt"]


def test_create_report_without_artwork_omits_field(db):
    report_id = reports.create_or_update_report(db, _payload())

    assert "artworkUrl" not in db.docs("reports")[report_id]


def test_repeated_saves_keep_a_single_report(db):
    first_id = reports.create_or_update_report(db, _payload(report_text="Draft"))
    second_id = reports.create_or_update_report(db, _payload(report_text="Final"))

    stored = db.docs("reports")
    assert first_id == second_id
    assert len(stored) == 1
    assert stored[first_id]["reportText"] == "Final"


def test_update_without_artwork_clears_stored_artwork(db):
    report_id = reports.create_or_update_report(db, _payload(artwork_url="https://img.test/a.png"))

    reports.create_or_update_report(db, _payload())

    assert "artworkUrl" not in db.docs("reports")[report_id]


def test_upsert_removes_duplicate_reports(db):
    older = datetime(2024, 1, 1, tzinfo=timezone.utc)
    newer = older + timedelta(days=3)
    db.seed("reports", "old", studentId="s1", classId="c1", teacherEmail="t@x.com", reportText="a", updatedAt=older)
    db.seed("reports", "new", studentId="s1", classId="c1", teacherEmail="t@x.com", reportText="b", updatedAt=newer)

    report_id = reports.create_or_update_report(db, _payload(report_text="c"))

    assert report_id == "new"
    assert list(db.docs("reports")) == ["new"]
    assert db.docs("reports")["new"]["reportText"] == "c"


def test_cleanup_keeps_most_recently_updated(db):
    base = datetime(2024, 5, 1, tzinfo=timezone.utc)
    for index, doc_id in enumerate(["a", "b", "c"]):
        db.seed(
            "reports",
            doc_id,
            studentId="s1",
            classId="c1",
            teacherEmail="t@x.com",
            updatedAt=base + timedelta(hours=index),
        )
    db.seed("reports", "other", studentId="s2", classId="c1", teacherEmail="t@x.com", updatedAt=base)

    removed = reports.cleanup_duplicate_reports(db, "s1")

    assert removed == 2
    assert sorted(db.docs("reports")) == ["c", "other"]


def test_cleanup_with_single_report_is_a_no_op(seeded_db):
    assert reports.cleanup_duplicate_reports(seeded_db, "s1") == 0
    assert "r1" in seeded_db.docs("reports")


def test_load_report_for_editing_returns_survivor(db):
    db.seed("reports", "x", studentId="s9", classId="c1", teacherEmail="t@x.com", updatedAt="2024-01-01T00:00:00")
    db.seed("reports", "y", studentId="s9", classId="c1", teacherEmail="t@x.com", updatedAt="2024-02-01T00:00:00")

    loaded = reports.load_report_for_editing(db, "s9")

    assert [report.id for report in loaded] == ["y"]
    assert list(db.docs("reports")) == ["y"]


def test_get_reports_for_class_newest_first(db):
    db.seed("reports", "r-old", studentId="s1", classId="c1", teacherEmail="t@x.com", createdAt="2023-09-01T00:00:00")
    db.seed("reports", "r-new", studentId="s2", classId="c1", teacherEmail="t@x.com", createdAt="2024-09-01T00:00:00")
    db.seed("reports", "r-elsewhere", studentId="s3", classId="c2", teacherEmail="t@x.com")

    ordered = reports.get_reports_for_class(db, "c1")

    assert [report.id for report in ordered] == ["r-new", "r-old"]


def test_update_report_applies_only_given_fields(seeded_db):
    updated = reports.update_report(seeded_db, "r1", ReportUpdatePayload(report_text="Edited"))

    assert updated.report_text == "Edited"
    assert updated.class_id == "c1"


def test_missing_report_raises_404(db):
    with pytest.raises(HTTPException) as excinfo:
        reports.get_report(db, "nope")
    assert excinfo.value.status_code == 404

    with pytest.raises(HTTPException):
        reports.delete_report(db, "nope")


def test_report_text_limit_is_enforced():
    with pytest.raises(ValueError):
        _payload(report_text="x" * 431)

    assert len(_payload(report_text="x" * 430).report_text) == 430
