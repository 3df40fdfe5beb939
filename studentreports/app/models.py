from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FirestoreModel(BaseModel):
    """Base for documents stored with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdminUser(FirestoreModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Teacher(FirestoreModel):
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ClassRecord(FirestoreModel):
    """A recurring class taught by one teacher."""

    id: str
    teacher_email: str
    class_day: str = ""
    class_time: str = ""
    class_location: str = ""
    class_level: str = ""
    teacher_first_name: Optional[str] = None
    teacher_last_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Student(FirestoreModel):
    id: str
    class_id: str
    first_name: str = ""
    last_name: str = ""
    teacher_email: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ReportData(FirestoreModel):
    """The single report document kept per student."""

    id: str
    student_id: str
    class_id: str
    teacher_email: str
    report_text: str = ""
    artwork_url: Optional[str] = None
    student_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class WhitelistedUser(FirestoreModel):
    """An email allowed to sign in without an admin or teacher record."""

    id: str
    email: str
    display_name: Optional[str] = None
    added_at: Optional[datetime] = None


def record_from_snapshot(snapshot: Any) -> Dict[str, Any]:
    """Return the document data of ``snapshot`` with its ``id`` merged in."""

    record = snapshot.to_dict() or {}
    record["id"] = snapshot.id
    return record


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_value(value: Any) -> float:
    """Return ``value`` as epoch seconds for sorting; unknown values sort first."""

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.timestamp()
    if isinstance(value, str) and value:
        try:
            return timestamp_value(datetime.fromisoformat(value))
        except ValueError:
            return 0.0
    return 0.0
