"""Spreadsheet import: fetch the Google Sheets CSV export and map its rows."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

from .config import DEFAULT_SHEET_NAME
from .schemas import ReportImportRow

logger = logging.getLogger(__name__)

CSV_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{sheet_id}/gviz/tq?tqx=out:csv&sheet={sheet_name}"
REQUEST_TIMEOUT_SECONDS = 30

# Sheet header for each report field. Some headers are truncated in the sheet itself.
COLUMN_MAPPING: Dict[str, str] = {
    "teacher": "TEACHER",
    "teacher_first_name": "Teacher First Name",
    "teacher_last_name": "Teacher Last Na",
    "class_day": "Class Day",
    "class_time": "Class Time",
    "class_location": "Class Location",
    "class_level": "Class Level",
    "report": "Report",
    "artwork": "Artwork",
    "student_first_name": "Student First Na",
    "student_last_name": "Student Last Name",
}


def build_csv_url(sheet_id: str, sheet_name: str = DEFAULT_SHEET_NAME) -> str:
    return CSV_EXPORT_URL.format(sheet_id=sheet_id, sheet_name=quote(sheet_name, safe=""))


def _clean_cell(value: str) -> str:
    return value.strip().replace('"', "")


def parse_csv(csv_text: str) -> List[Dict[str, Any]]:
    """Parse a CSV export by plain comma splitting.

    The first line is the header. Quoted cells containing commas are not
    supported. Blank lines are skipped, missing cells become ``""`` and each
    row gets a 1-based ``id``.
    """

    lines = csv_text.split("\n")
    headers = [_clean_cell(header) for header in lines[0].split(",")]

    rows: List[Dict[str, Any]] = []
    for line in lines[1:]:
        if not line.strip():
            continue
        values = [_clean_cell(value) for value in line.split(",")]
        row: Dict[str, Any] = {"id": len(rows) + 1}
        for index, header in enumerate(headers):
            row[header] = values[index] if index < len(values) else ""
        rows.append(row)

    return rows


def fetch_student_reports_from_csv(
    sheet_id: str,
    sheet_name: str = DEFAULT_SHEET_NAME,
    *,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Download and parse the sheet; any failure yields an empty list."""

    url = build_csv_url(sheet_id, sheet_name)
    http = session or requests
    try:
        response = http.get(url, timeout=REQUEST_TIMEOUT_SECONDS)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error("Error fetching CSV data from %s: %s", url, exc)
        return []

    return parse_csv(response.text)


def rows_to_report_records(rows: List[Dict[str, Any]]) -> List[ReportImportRow]:
    """Convert parsed sheet rows into denormalised report import rows.

    Rows without a teacher email or student first name are dropped.
    """

    records: List[ReportImportRow] = []
    for row in rows:
        teacher = str(row.get(COLUMN_MAPPING["teacher"], "")).strip().lower()
        first_name = str(row.get(COLUMN_MAPPING["student_first_name"], "")).strip()
        if "@" not in teacher or not first_name:
            logger.warning("Skipping sheet row %s: missing teacher email or student name", row.get("id"))
            continue

        records.append(
            ReportImportRow(
                teacher_email=teacher,
                teacher_first_name=row.get(COLUMN_MAPPING["teacher_first_name"], ""),
                teacher_last_name=row.get(COLUMN_MAPPING["teacher_last_name"], ""),
                class_day=row.get(COLUMN_MAPPING["class_day"], ""),
                class_time=row.get(COLUMN_MAPPING["class_time"], ""),
                class_location=row.get(COLUMN_MAPPING["class_location"], ""),
                class_level=row.get(COLUMN_MAPPING["class_level"], ""),
                student_first_name=first_name,
                student_last_name=row.get(COLUMN_MAPPING["student_last_name"], ""),
                report_text=row.get(COLUMN_MAPPING["report"], ""),
                artwork_url=row.get(COLUMN_MAPPING["artwork"]) or None,
            )
        )

    return records
