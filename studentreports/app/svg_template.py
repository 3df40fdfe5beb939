"""Report SVG template handling: placeholder injection, artwork and fonts."""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass
from datetime import date
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from xml.etree import ElementTree as ET

import requests
from PIL import Image, UnidentifiedImageError

from . import config
from .text_layout import MeasureFn, make_measure, wrap_text

logger = logging.getLogger(__name__)

# Text data key -> id of the placeholder ``<text>`` node in the template.
FIELD_PLACEHOLDERS: Dict[str, str] = {
    "studentName": "student-name",
    "classLevel": "class-level",
    "classLocation": "class-location",
    "comments": "comments",
    "teacher": "teacher",
    "date": "date",
}

ARTWORK_ELEMENT_ID = "artwork"
ARTWORK_BOX = {"x": "50", "y": "400", "width": "100", "height": "100"}
ARTWORK_FETCH_TIMEOUT_SECONDS = 20

DATE_FORMAT = "%d/%m/%Y"

_DRIVE_FILE_RE = re.compile(r"/file/d/([a-zA-Z0-9_-]+)")

ImageFetcher = Callable[[str], Tuple[bytes, Optional[str]]]


@dataclass(frozen=True)
class SvgDocument:
    """Container describing SVG markup and, optionally, its source path."""

    markup: str
    source_path: Optional[Path]


@dataclass
class ReportFields:
    """Values rendered into one report."""

    student_name: str
    class_level: str = ""
    class_location: str = ""
    comments: str = ""
    teacher: str = ""
    date: Optional[str] = None
    artwork: Optional[str] = None

    def as_text_data(self) -> Dict[str, Any]:
        return {
            "studentName": self.student_name,
            "classLevel": self.class_level,
            "classLocation": self.class_location,
            "comments": self.comments,
            "teacher": self.teacher,
            "date": self.date or format_report_date(),
        }


def format_report_date(value: Optional[date] = None) -> str:
    return (value or date.today()).strftime(DATE_FORMAT)


def load_template(path: Optional[Path] = None) -> SvgDocument:
    """Return the report template markup from ``path`` or the configured location."""

    template_path = path or config.resolve_template_path()
    try:
        markup = template_path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.error("Unable to read report template %s: %s", template_path, exc)
        raise
    return SvgDocument(markup, template_path)


def convert_google_drive_url(url: str) -> str:
    """Turn a Google Drive share link into a direct image URL."""

    if "drive.google.com/file/d/" in url:
        match = _DRIVE_FILE_RE.search(url)
        if match:
            return f"https://drive.google.com/uc?export=view&id={match.group(1)}"
    return url


def _find_by_id(root: ET.Element, element_id: str) -> Optional[ET.Element]:
    for element in root.iter():
        if element.get("id") == element_id:
            return element
    return None


def _set_text_lines(element: ET.Element, lines: List[str], line_height: float) -> None:
    """Replace the content of ``element`` with one ``tspan`` per line."""

    tspan_tag = f"{{{config.SVG_NS}}}tspan"
    template_tspan = element.find(tspan_tag)
    base_x = template_tspan.get("x", "0") if template_tspan is not None else "0"
    base_y = float(template_tspan.get("y", "0")) if template_tspan is not None else 0.0

    for child in list(element):
        element.remove(child)
    element.text = None

    for index, line in enumerate(lines or [""]):
        tspan = ET.SubElement(element, tspan_tag, {"x": base_x, "y": f"{base_y + index * line_height:g}"})
        tspan.text = line


def _add_artwork(root: ET.Element, url: str) -> None:
    image_url = convert_google_drive_url(url.strip())
    existing = _find_by_id(root, ARTWORK_ELEMENT_ID)
    if existing is not None:
        root.remove(existing)

    image = ET.SubElement(
        root,
        f"{{{config.SVG_NS}}}image",
        {"id": ARTWORK_ELEMENT_ID, **ARTWORK_BOX, "preserveAspectRatio": "xMidYMid meet"},
    )
    image.set("href", image_url)
    image.set(f"{{{config.XLINK_NS}}}href", image_url)


def inject_report_fields(
    svg_markup: str,
    text_data: Mapping[str, Any],
    *,
    artwork: Optional[str] = None,
    measure: Optional[MeasureFn] = None,
    line_width: float = config.COMMENTS_LINE_WIDTH,
    line_height: float = config.COMMENTS_LINE_HEIGHT,
) -> str:
    """Fill the template placeholders named in ``text_data``.

    Keys missing from ``text_data`` leave their placeholder untouched. An
    empty ``date`` becomes today's date. Comments are wrapped to
    ``line_width``.
    """

    root = ET.fromstring(svg_markup)

    for key, element_id in FIELD_PLACEHOLDERS.items():
        if key not in text_data:
            continue

        element = _find_by_id(root, element_id)
        if element is None:
            logger.warning("Report template has no '%s' placeholder", element_id)
            continue

        value = "" if text_data[key] is None else str(text_data[key])
        if key == "date" and not value.strip():
            value = format_report_date()

        if key == "comments":
            measure_fn = measure or make_measure(config.TEMPLATE_FONT_NAME, config.COMMENTS_FONT_SIZE)
            _set_text_lines(element, wrap_text(value, line_width, measure_fn), line_height)
        else:
            _set_text_lines(element, [value], line_height)

    if artwork and artwork.strip():
        _add_artwork(root, artwork)

    return ET.tostring(root, encoding="unicode")


def _fetch_image(url: str) -> Tuple[bytes, Optional[str]]:
    response = requests.get(url, timeout=ARTWORK_FETCH_TIMEOUT_SECONDS)
    response.raise_for_status()
    return response.content, response.headers.get("Content-Type")


def _prepare_inline_image(raw_bytes: bytes) -> bytes:
    """Normalise any bitmap into PNG bytes on a white background."""

    with Image.open(BytesIO(raw_bytes)) as image:
        rgba_image = image.convert("RGBA")
        background = Image.new("RGBA", rgba_image.size, (255, 255, 255, 255))
        background.alpha_composite(rgba_image)
        buffer = BytesIO()
        background.save(buffer, format="PNG")
        return buffer.getvalue()


def inline_artwork_images(svg_markup: str, fetch: Optional[ImageFetcher] = None) -> str:
    """Replace remote artwork hrefs with PNG data URIs.

    Artwork that cannot be fetched or decoded is dropped from the markup.
    """

    root = ET.fromstring(svg_markup)
    fetcher = fetch or _fetch_image
    modified = False

    for parent in list(root.iter()):
        for image in list(parent.findall(f"{{{config.SVG_NS}}}image")):
            href_value = (image.get(f"{{{config.XLINK_NS}}}href") or image.get("href") or "").strip()
            if not href_value.lower().startswith(("http://", "https://")):
                continue

            try:
                raw_bytes, _ = fetcher(href_value)
                png_bytes = _prepare_inline_image(raw_bytes)
            except (requests.RequestException, UnidentifiedImageError, OSError, ValueError) as exc:
                logger.warning("Dropping artwork %s from report: %s", href_value, exc)
                parent.remove(image)
                modified = True
                continue

            data_uri = f"data:image/png;base64,{base64.b64encode(png_bytes).decode('ascii')}"
            image.set("href", data_uri)
            image.set(f"{{{config.XLINK_NS}}}href", data_uri)
            modified = True

    if not modified:
        return svg_markup
    return ET.tostring(root, encoding="unicode")


def apply_font_family(svg_markup: str, family: str) -> str:
    """Set ``font-family`` on the root and on text elements that lack one."""

    root = ET.fromstring(svg_markup)
    root.set("font-family", family)

    for text in root.iter(f"{{{config.SVG_NS}}}text"):
        style = text.get("style") or ""
        if text.get("font-family") or "font-family" in style:
            continue
        text.set("font-family", family)

    return ET.tostring(root, encoding="unicode")


def _parse_style_declarations(style: str) -> List[Tuple[str, str]]:
    """Return the CSS declarations contained in ``style`` preserving order."""

    declarations: List[Tuple[str, str]] = []
    for raw_entry in style.split(";"):
        if not raw_entry.strip() or ":" not in raw_entry:
            continue

        property_name, value = raw_entry.split(":", 1)
        declarations.append((property_name.strip(), value.strip()))

    return declarations


def _collect_gradient_fallback_colors(root: ET.Element) -> Dict[str, str]:
    """Return a mapping of gradient ids to their first stop colour."""

    gradient_colors: Dict[str, str] = {}
    stop_xpath = f".//{{{config.SVG_NS}}}stop"

    for gradient_tag in (
        f".//{{{config.SVG_NS}}}linearGradient",
        f".//{{{config.SVG_NS}}}radialGradient",
    ):
        for gradient in root.findall(gradient_tag):
            gradient_id = gradient.attrib.get("id")
            if not gradient_id or gradient_id in gradient_colors:
                continue

            for stop in gradient.findall(stop_xpath):
                color = dict(_parse_style_declarations(stop.attrib.get("style", ""))).get("stop-color")
                color = color or stop.attrib.get("stop-color")
                if color:
                    gradient_colors[gradient_id] = color
                    break

    return gradient_colors


def _replace_gradient_references(element: ET.Element, gradient_colors: Dict[str, str]) -> bool:
    updated = False

    for attribute in ("fill", "stroke"):
        match = config.GRADIENT_URL_RE.match((element.attrib.get(attribute) or "").strip())
        fallback = gradient_colors.get(match.group("id")) if match else None
        if fallback:
            element.set(attribute, fallback)
            updated = True

    style_value = element.attrib.get("style")
    if style_value:
        new_declarations: List[Tuple[str, str]] = []
        style_updated = False
        for name, value in _parse_style_declarations(style_value):
            match = config.GRADIENT_URL_RE.match(value)
            if match and name in {"fill", "stroke"} and gradient_colors.get(match.group("id")):
                value = gradient_colors[match.group("id")]
                style_updated = True
            new_declarations.append((name, value))

        if style_updated:
            element.set("style", ";".join(f"{name}:{value}" for name, value in new_declarations))
            updated = True

    return updated


def sanitize_svg_for_svglib(svg_markup: str) -> str:
    """Replace gradient paint references, which svglib cannot draw, with solid colours."""

    try:
        root = ET.fromstring(svg_markup)
    except ET.ParseError:
        return svg_markup

    gradient_colors = _collect_gradient_fallback_colors(root)
    if not gradient_colors:
        return svg_markup

    updated = False
    for element in root.iter():
        if _replace_gradient_references(element, gradient_colors):
            updated = True
            continue

        if element.tag == f"{{{config.SVG_NS}}}style" and element.text:
            css_updated = False

            def _replace(match):
                nonlocal css_updated
                fallback = gradient_colors.get(match.group("id"))
                if not fallback:
                    return match.group(0)
                css_updated = True
                return f"{match.group('prop')}{fallback}"

            replaced = config.CSS_GRADIENT_DECLARATION_RE.sub(_replace, element.text)
            if css_updated:
                element.text = replaced
                updated = True

    if not updated:
        return svg_markup

    return ET.tostring(root, encoding="unicode")


__all__ = [
    "FIELD_PLACEHOLDERS",
    "ReportFields",
    "SvgDocument",
    "apply_font_family",
    "convert_google_drive_url",
    "format_report_date",
    "inject_report_fields",
    "inline_artwork_images",
    "load_template",
    "sanitize_svg_for_svglib",
]
