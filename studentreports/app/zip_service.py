"""Bundle a class's report PDFs into a single ZIP archive."""

from __future__ import annotations

import logging
import zipfile
from datetime import date, datetime
from io import BytesIO
from typing import Any, Callable, Iterable, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# ``render(report) -> (first_name, last_name, pdf_bytes)``
ReportRenderer = Callable[[Any], Tuple[str, str, bytes]]


def report_date(value: Any) -> date:
    """Return the calendar date of ``value``; unusable values become today."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip()).date()
        except ValueError:
            logger.warning("Invalid date value %r, using current date as fallback", value)
    return date.today()


def _safe_component(value: str) -> str:
    return value.strip().replace("/", "-")


def report_entry_name(first_name: str, last_name: str, created_at: Any) -> str:
    return f"{_safe_component(first_name)}_{_safe_component(last_name)}_{report_date(created_at).isoformat()}.pdf"


def zip_folder_name(teacher_name: str, class_name: str) -> str:
    return f"{_safe_component(teacher_name)}_{_safe_component(class_name)}"


def unique_entry_name(entry_name: str, used_names: Set[str]) -> str:
    """Return ``entry_name``, or ``<stem>_2.pdf``, ``_3`` ... when already taken."""

    candidate = entry_name
    stem, dot, extension = entry_name.rpartition(".")
    counter = 2
    while candidate in used_names:
        candidate = f"{stem}_{counter}{dot}{extension}" if dot else f"{entry_name}_{counter}"
        counter += 1
    used_names.add(candidate)
    return candidate


def zip_download_name(teacher_name: str, class_name: str) -> str:
    return f"{zip_folder_name(teacher_name, class_name)}_reports.zip"


def build_class_zip(
    reports: Iterable[Any],
    class_name: str,
    teacher_name: str,
    render: ReportRenderer,
    *,
    created_at: Optional[Callable[[Any], Any]] = None,
) -> bytes:
    """Render every report with ``render`` and store the PDFs in one folder.

    A report that fails to render is logged and left out of the archive.
    """

    folder = zip_folder_name(teacher_name, class_name)
    get_created_at = created_at or (lambda report: getattr(report, "created_at", None))
    buffer = BytesIO()
    written = 0
    used_names: Set[str] = set()

    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for report in reports:
            try:
                first_name, last_name, pdf_bytes = render(report)
            except Exception as exc:
                logger.error("Error processing report %s for ZIP: %s", getattr(report, "id", report), exc)
                continue

            entry_name = unique_entry_name(
                report_entry_name(first_name, last_name, get_created_at(report)), used_names
            )
            archive.writestr(f"{folder}/{entry_name}", pdf_bytes)
            written += 1

    logger.info("Built ZIP %s with %s reports", folder, written)
    return buffer.getvalue()
