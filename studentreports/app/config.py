"""Configuration helpers shared across the student reports backend modules."""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple
from xml.etree import ElementTree as ET

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent


# Ensure environment variables defined in ``studentreports/.env`` are available
# before importing submodules that rely on them.
load_dotenv(ROOT_DIR / ".env")


logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"
XLINK_NS = "http://www.w3.org/1999/xlink"

ET.register_namespace("", SVG_NS)
ET.register_namespace("xlink", XLINK_NS)

GRADIENT_URL_RE = re.compile(r"^url\(#(?P<id>[^)]+)\)$")
CSS_GRADIENT_DECLARATION_RE = re.compile(
    r"(?P<prop>\b(?:fill|stroke)\s*:\s*)url\(#(?P<id>[^)]+)\)", re.IGNORECASE
)

ASSETS_DIR = ROOT_DIR / "assets"
PACKAGED_TEMPLATE_PATH = ASSETS_DIR / "report-template.svg"

# A4 in PDF points (210 x 297 mm).
A4_WIDTH = 595.28
A4_HEIGHT = 841.89

MAX_REPORT_LENGTH = 430
AUTOSAVE_DELAY_MS = 2000
MAX_ARTWORK_BYTES = 5 * 1024 * 1024
ARTWORK_CONTENT_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

# Layout of the comments block inside the report template.
COMMENTS_LINE_WIDTH = 400.0
COMMENTS_FONT_SIZE = 12.0
COMMENTS_LINE_HEIGHT = 18.0

TEMPLATE_FONT_NAME = "BrushATF-Book"
CJK_FONT_NAME = "NotoSansSC"

DEFAULT_SHEET_NAME = "OfficeUseREACT"

COLLECTION_ADMIN_USERS = "adminUsers"
COLLECTION_TEACHERS = "teachers"
COLLECTION_CLASSES = "classes"
COLLECTION_STUDENTS = "students"
COLLECTION_REPORTS = "reports"
COLLECTION_WHITELIST = "whitelistedUsers"


def _optional_path(env_name: str, default: Optional[Path] = None) -> Optional[Path]:
    raw_value = os.environ.get(env_name, "").strip()
    if not raw_value:
        return default

    try:
        return Path(raw_value).expanduser()
    except (OSError, RuntimeError) as exc:
        logger.warning("Invalid %s '%s': %s", env_name, raw_value, exc)
        return default


def resolve_template_path() -> Path:
    """Return the SVG report template, preferring ``REPORT_TEMPLATE_PATH``."""

    configured = _optional_path("REPORT_TEMPLATE_PATH")
    if configured is not None:
        try:
            if configured.is_file():
                return configured
        except OSError as exc:
            logger.warning("Unable to access report template %s: %s", configured, exc)
        logger.warning(
            "REPORT_TEMPLATE_PATH %s is not a file; using the packaged template", configured
        )

    return PACKAGED_TEMPLATE_PATH


def resolve_font_path(env_name: str, file_name: str) -> Optional[Path]:
    """Return the first existing font file for ``env_name`` or the packaged fonts dir."""

    candidates: List[Optional[Path]] = [
        _optional_path(env_name),
        ASSETS_DIR / "fonts" / file_name,
        Path.cwd() / "fonts" / file_name,
    ]

    for candidate in candidates:
        if candidate is None:
            continue
        try:
            if candidate.is_file():
                return candidate
        except OSError as exc:
            logger.warning("Unable to access font file %s: %s", candidate, exc)

    return None


def resolve_logo_path() -> Optional[Path]:
    candidate = _optional_path("REPORT_LOGO_PATH", ASSETS_DIR / "logo.png")
    if candidate is not None and candidate.is_file():
        return candidate
    return None


def get_sheet_settings() -> Tuple[Optional[str], str]:
    """Return the configured Google Sheet id and tab name."""

    sheet_id = os.environ.get("GOOGLE_SHEET_ID", "").strip() or None
    sheet_name = os.environ.get("GOOGLE_SHEET_NAME", "").strip() or DEFAULT_SHEET_NAME
    return sheet_id, sheet_name


def get_dev_admin_emails() -> List[str]:
    """Emails that are always treated as admins (and whitelisted)."""

    return [entry.lower() for entry in parse_csv(os.environ.get("DEV_ADMIN_EMAILS"), default=[])]


def _normalize_cors_origin(origin: str) -> Optional[str]:
    """Return a sanitized representation of a configured CORS origin."""

    trimmed = origin.strip().strip('"').strip("'")
    if not trimmed:
        return None

    if trimmed == "*":
        return trimmed

    return trimmed.rstrip("/")


def _collect_entries(entries: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen: Set[str] = set()

    for raw_entry in entries:
        normalized_entry = _normalize_cors_origin(raw_entry)
        if not normalized_entry or normalized_entry in seen:
            continue

        normalized.append(normalized_entry)
        seen.add(normalized_entry)

    return normalized


def parse_csv(value: Optional[str], *, default: Optional[List[str]] = None) -> List[str]:
    """Return a normalized list from a comma, newline or JSON-array string."""

    if value is not None:
        stripped = value.strip()
        raw_entries: Iterable[str]
        if stripped.startswith("["):
            try:
                decoded = json.loads(stripped)
            except json.JSONDecodeError:
                decoded = None
            raw_entries = [str(item) for item in decoded] if isinstance(decoded, list) else []
        else:
            raw_entries = stripped.replace("\n", ",").split(",")

        parsed = _collect_entries(raw_entries)
        if parsed:
            return parsed

    return _collect_entries(default or [])


def prepare_cors_settings(origins: List[str]) -> Tuple[List[str], Optional[str]]:
    """Split ``origins`` into explicit origins and an optional wildcard regex."""

    explicit = [origin for origin in origins if origin != "*"]
    if "*" in origins or not origins:
        return explicit, ".*"
    return explicit, None


__all__ = [
    "A4_HEIGHT",
    "A4_WIDTH",
    "ARTWORK_CONTENT_TYPES",
    "AUTOSAVE_DELAY_MS",
    "CJK_FONT_NAME",
    "COMMENTS_FONT_SIZE",
    "COMMENTS_LINE_HEIGHT",
    "COMMENTS_LINE_WIDTH",
    "CSS_GRADIENT_DECLARATION_RE",
    "GRADIENT_URL_RE",
    "MAX_ARTWORK_BYTES",
    "MAX_REPORT_LENGTH",
    "PACKAGED_TEMPLATE_PATH",
    "SVG_NS",
    "TEMPLATE_FONT_NAME",
    "XLINK_NS",
    "get_dev_admin_emails",
    "get_sheet_settings",
    "parse_csv",
    "prepare_cors_settings",
    "resolve_font_path",
    "resolve_logo_path",
    "resolve_template_path",
]
