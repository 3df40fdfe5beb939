import pytest
from fastapi import HTTPException

from studentreports.app import auth
from studentreports.app.schemas import SessionUser


@pytest.fixture(autouse=True)
def no_dev_admins(monkeypatch):
    monkeypatch.delenv("DEV_ADMIN_EMAILS", raising=False)


def test_admin_from_collection(db):
    db.seed("adminUsers", "a1", email="boss@x.com", isAdmin=True, firstName="Bo", lastName="Ss")
    db.seed("adminUsers", "a2", email="nearly@x.com", isAdmin="true")

    assert auth.is_user_admin(db, "Boss@X.com")
    assert not auth.is_user_admin(db, "nearly@x.com")
    assert not auth.is_user_admin(db, "")


def test_dev_admin_emails_are_admins(db, monkeypatch):
    monkeypatch.setenv("DEV_ADMIN_EMAILS", "dev@x.com, other@x.com")

    assert auth.is_user_admin(db, "DEV@x.com")


def test_resolve_session_for_teacher_with_classes(seeded_db):
    user = auth.resolve_session_user(seeded_db, {"email": "Teacher@Example.com"})

    assert user == SessionUser(email="teacher@example.com", display_name="Tess Teacher", is_admin=False)


def test_resolve_session_for_whitelisted_user(db):
    db.seed("whitelistedUsers", "w1", email="guest@x.com")

    user = auth.resolve_session_user(db, {"email": "guest@x.com", "name": "Guest"})

    assert user.display_name == "Guest"
    assert not user.is_admin


def test_resolve_session_for_legacy_mixed_case_whitelist_entry(db):
    db.seed(
        "whitelistedUsers",
        "Wenli11651@gmail.com",
        email="Wenli11651@gmail.com",
        displayName="Wen Li",
        addedAt="2024-09-01T08:00:00.000Z",
    )

    user = auth.resolve_session_user(db, {"email": "wenli11651@gmail.com"})

    assert user.email == "wenli11651@gmail.com"


def test_whitelist_entry_keyed_only_by_document_id(db):
    db.seed("whitelistedUsers", "Guest@X.com", displayName="Guest")

    assert auth.is_user_whitelisted(db, "guest@x.com")
    assert not auth.is_user_whitelisted(db, "other@x.com")


def test_unknown_user_is_forbidden(db):
    with pytest.raises(HTTPException) as excinfo:
        auth.resolve_session_user(db, {"email": "stranger@x.com"})

    assert excinfo.value.status_code == 403


def test_token_without_email_is_rejected(db):
    with pytest.raises(HTTPException) as excinfo:
        auth.resolve_session_user(db, {"uid": "abc"})

    assert excinfo.value.status_code == 400


def test_missing_authorization_header(db):
    with pytest.raises(HTTPException) as excinfo:
        auth.get_current_user(authorization=None, db=db)

    assert excinfo.value.status_code == 401


def test_class_access_rules():
    teacher = SessionUser(email="t@x.com")
    admin = SessionUser(email="a@x.com", is_admin=True)

    auth.ensure_class_access(teacher, {"teacherEmail": "T@x.com"})
    auth.ensure_class_access(admin, {"teacherEmail": "someone@x.com"})

    with pytest.raises(HTTPException) as excinfo:
        auth.ensure_class_access(teacher, {"teacherEmail": "someone@x.com"})
    assert excinfo.value.status_code == 403

    with pytest.raises(HTTPException):
        auth.require_admin(teacher)
