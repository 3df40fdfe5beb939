from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import AUTOSAVE_DELAY_MS, MAX_REPORT_LENGTH


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionUser(CamelModel):
    email: str
    display_name: Optional[str] = None
    is_admin: bool = False


class ClientSettings(CamelModel):
    max_report_length: int = MAX_REPORT_LENGTH
    autosave_delay_ms: int = AUTOSAVE_DELAY_MS


class SessionResponse(CamelModel):
    user: SessionUser
    settings: ClientSettings = Field(default_factory=ClientSettings)


class ClassPayload(CamelModel):
    teacher_email: EmailStr
    class_day: str = ""
    class_time: str = ""
    class_location: str = ""
    class_level: str = ""

    @field_validator("teacher_email", mode="after")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class ClassUpdatePayload(CamelModel):
    teacher_email: Optional[EmailStr] = None
    class_day: Optional[str] = None
    class_time: Optional[str] = None
    class_location: Optional[str] = None
    class_level: Optional[str] = None


class StudentPayload(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = ""
    class_id: str = Field(min_length=1)


class StudentUpdatePayload(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    class_id: Optional[str] = None


class ReportPayload(CamelModel):
    """Body of a report save; omitting ``artwork_url`` clears the stored artwork."""

    student_id: str = Field(min_length=1)
    class_id: str = Field(min_length=1)
    teacher_email: str = Field(min_length=1)
    report_text: str = Field(default="", max_length=MAX_REPORT_LENGTH)
    artwork_url: Optional[str] = None


class ReportUpdatePayload(CamelModel):
    report_text: Optional[str] = Field(default=None, max_length=MAX_REPORT_LENGTH)
    artwork_url: Optional[str] = None


class AdminUserUpdatePayload(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_admin: Optional[bool] = None


class WhitelistPayload(CamelModel):
    email: EmailStr
    display_name: str = ""

    @field_validator("email", mode="after")
    @classmethod
    def _lower_email(cls, value: str) -> str:
        return value.strip().lower()


class UserImportRow(CamelModel):
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False


class ClassImportRow(CamelModel):
    teacher_email: str = ""
    class_day: str = ""
    class_time: str = ""
    class_location: str = ""
    class_level: str = ""


class StudentImportRow(CamelModel):
    first_name: str = ""
    last_name: str = ""
    class_id: str = ""


class ReportImportRow(CamelModel):
    """Denormalised row as produced from the spreadsheet export."""

    teacher_email: str = ""
    teacher_first_name: str = ""
    teacher_last_name: str = ""
    class_day: str = ""
    class_time: str = ""
    class_location: str = ""
    class_level: str = ""
    student_first_name: str = ""
    student_last_name: str = ""
    report_text: str = ""
    artwork_url: Optional[str] = None


class ImportResult(CamelModel):
    imported: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class CleanupResult(CamelModel):
    removed: int = 0
    kept: int = 0


class Statistics(CamelModel):
    admin_count: int = 0
    teacher_count: int = 0
    class_count: int = 0
    student_count: int = 0
    report_count: int = 0


class TeacherReportCount(CamelModel):
    name: str
    email: str
    report_count: int = 0
    student_count: int = 0


class MigrationResult(CamelModel):
    classes_updated: int = 0
    reports_updated: int = 0


class ExistingDataSummary(CamelModel):
    has_data: bool = False
    counts: Dict[str, int] = Field(default_factory=dict)
