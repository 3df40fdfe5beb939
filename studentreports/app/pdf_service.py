"""SVG to PDF rendering for student reports."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Literal, Optional, Tuple
from xml.etree import ElementTree as ET

from . import config
from .models import ClassRecord, ReportData, Student
from .svg_template import (
    ImageFetcher,
    ReportFields,
    SvgDocument,
    apply_font_family,
    format_report_date,
    inject_report_fields,
    inline_artwork_images,
    load_template,
    sanitize_svg_for_svglib,
)
from .text_layout import MeasureFn

logger = logging.getLogger(__name__)

TEMPLATE_FONT_FILE = "BrushATF-Book.ttf"
CJK_FONT_FILE = "NotoSansSC-Regular.ttf"

# Logo box in SVG (top-left origin) page coordinates.
LOGO_X = 460.0
LOGO_Y = 680.0
LOGO_SIZE = 80.0


class PDFDependencyUnavailableError(RuntimeError):
    """Raised when the core PDF toolchain cannot be imported at runtime."""


class FontUnavailableError(RuntimeError):
    """Raised when a required font file is missing or cannot be registered."""


class SvgRenderError(RuntimeError):
    """Raised when none of the SVG backends could draw the markup."""


@dataclass(frozen=True)
class _SvgBackend:
    """Container describing how SVG markup should be rendered on the PDF canvas."""

    mode: Literal["cairosvg", "svglib", "hybrid"]
    svg2png: Optional[Callable[..., Any]]
    image_reader: Optional[Any]
    svg2rlg: Optional[Callable[..., Any]]
    render_pdf: Optional[Any]


@dataclass(frozen=True)
class _PdfResources:
    """Return value for :func:`_load_pdf_dependencies`."""

    canvas_factory: Any
    page_size: Tuple[float, float]
    svg_backend: _SvgBackend


@lru_cache(maxsize=1)
def _load_pdf_dependencies() -> _PdfResources:
    """Import ReportLab, svglib and (optionally) CairoSVG on first use."""

    try:
        from reportlab.pdfgen import canvas as pdf_canvas
    except (ImportError, OSError) as exc:
        logger.error("ReportLab dependency could not be loaded for PDF generation: %s", exc)
        raise PDFDependencyUnavailableError(
            "PDF generation is temporarily unavailable because ReportLab is missing."
        ) from exc

    svg2rlg: Optional[Callable[..., Any]] = None
    render_pdf: Optional[Any] = None
    try:
        from reportlab.graphics import renderPDF as _renderPDF
        from svglib.svglib import svg2rlg as _svg2rlg  # type: ignore
    except (ImportError, OSError) as exc:
        logger.warning("svglib could not be imported; reports will be rasterised. Error: %s", exc)
    else:
        svg2rlg = _svg2rlg
        render_pdf = _renderPDF

    svg2png: Optional[Callable[..., Any]] = None
    image_reader: Optional[Any] = None
    try:
        from cairosvg import svg2png as _svg2png  # type: ignore
        from reportlab.lib.utils import ImageReader as _ImageReader
    except (ImportError, OSError) as exc:
        logger.debug("CairoSVG raster fallback is not available: %s", exc)
    else:
        svg2png = _svg2png
        image_reader = _ImageReader

    if svg2rlg is None and svg2png is None:
        raise PDFDependencyUnavailableError(
            "PDF generation is temporarily unavailable because neither svglib nor CairoSVG is installed."
        )

    if svg2rlg is not None and svg2png is not None:
        mode = "hybrid"
    elif svg2rlg is not None:
        mode = "svglib"
    else:
        mode = "cairosvg"

    backend = _SvgBackend(mode, svg2png, image_reader, svg2rlg, render_pdf)
    return _PdfResources(pdf_canvas.Canvas, (config.A4_WIDTH, config.A4_HEIGHT), backend)


def ensure_pdf_toolchain() -> None:
    """Raise :class:`PDFDependencyUnavailableError` early when PDFs cannot be built."""

    _load_pdf_dependencies()


@lru_cache(maxsize=None)
def register_font(font_name: str, font_path: str) -> None:
    """Register a TrueType font with ReportLab and svglib under ``font_name``."""

    try:
        from reportlab.pdfbase import pdfmetrics
        from reportlab.pdfbase.ttfonts import TTFont
    except (ImportError, OSError) as exc:
        raise PDFDependencyUnavailableError("ReportLab is required to register fonts") from exc

    try:
        pdfmetrics.registerFont(TTFont(font_name, font_path))
    except Exception as exc:  # ReportLab raises TTFError and plain IOErrors
        raise FontUnavailableError(f"Could not register font {font_name} from {font_path}: {exc}") from exc

    try:
        from svglib.fonts import register_font as register_svglib_font  # type: ignore
    except ImportError:
        logger.debug("svglib font map unavailable; %s is registered with ReportLab only", font_name)
    else:
        register_svglib_font(font_name, font_path)

    logger.info("Registered font %s from %s", font_name, font_path)


def ensure_font(font_name: str, env_name: str, file_name: str) -> Path:
    """Locate and register ``font_name``; raise :class:`FontUnavailableError` when missing."""

    font_path = config.resolve_font_path(env_name, file_name)
    if font_path is None:
        raise FontUnavailableError(f"{file_name} font file is required but not found")
    register_font(font_name, str(font_path))
    return font_path


def register_fonts() -> None:
    """Register the template and CJK fonts that are available on disk."""

    for font_name, env_name, file_name in (
        (config.TEMPLATE_FONT_NAME, "REPORT_FONT_PATH", TEMPLATE_FONT_FILE),
        (config.CJK_FONT_NAME, "CJK_FONT_PATH", CJK_FONT_FILE),
    ):
        try:
            ensure_font(font_name, env_name, file_name)
        except FontUnavailableError as exc:
            logger.warning("Font %s unavailable, text falls back to Helvetica: %s", font_name, exc)


def _render_svg_on_canvas(
    pdf_canvas: Any,
    backend: _SvgBackend,
    svg_markup: str,
    width: float,
    height: float,
    *,
    x: float = 0,
    y: float = 0,
) -> bool:
    """Draw ``svg_markup`` stretched to ``width`` x ``height`` on ``pdf_canvas``."""

    if backend.svg2rlg and backend.render_pdf:
        vector_markup = sanitize_svg_for_svglib(svg_markup)
        try:
            drawing = backend.svg2rlg(BytesIO(vector_markup.encode("utf-8")))
        except Exception as exc:  # pragma: no cover - svglib raises a wide range of errors
            logger.warning("Failed to parse SVG using svglib: %s", exc)
            drawing = None

        if drawing and getattr(drawing, "width", None) and getattr(drawing, "height", None):
            try:
                drawing.scale(width / float(drawing.width), height / float(drawing.height))
                min_x = getattr(drawing, "minX", 0) or 0
                min_y = getattr(drawing, "minY", 0) or 0
                drawing.translate(-min_x, -min_y)
                backend.render_pdf.draw(drawing, pdf_canvas, x, y)
                return True
            except Exception as exc:  # pragma: no cover - svglib raises a wide range of errors
                logger.warning("Failed to render SVG using svglib: %s", exc)
        else:
            logger.debug("svglib was unable to determine geometry for SVG; trying raster rendering")

    if backend.svg2png and backend.image_reader:
        try:
            image_buffer = BytesIO()
            backend.svg2png(
                bytestring=svg_markup.encode("utf-8"),
                write_to=image_buffer,
                output_width=int(width * 2),
                output_height=int(height * 2),
                background_color="white",
            )
            image_buffer.seek(0)
            pdf_canvas.drawImage(
                backend.image_reader(image_buffer), x, y, width=width, height=height, mask="auto"
            )
            return True
        except Exception as exc:  # pragma: no cover - cairo raises a wide range of errors
            logger.warning("Failed to render SVG using CairoSVG: %s", exc)

    return False


def _draw_logo(pdf_canvas: Any, logo_path: Path, page_height: float) -> None:
    try:
        pdf_canvas.drawImage(
            str(logo_path),
            LOGO_X,
            page_height - LOGO_Y - LOGO_SIZE,
            width=LOGO_SIZE,
            height=LOGO_SIZE,
            mask="auto",
        )
    except Exception as exc:  # pragma: no cover - image decoding errors vary
        logger.error("Failed to add logo %s: %s", logo_path, exc)


def render_svg_to_pdf(
    svg_markup: str,
    *,
    font_name: Optional[str] = None,
    logo_path: Optional[Path] = None,
) -> bytes:
    """Render one A4 page from ``svg_markup`` and return the PDF bytes.

    The SVG is stretched over the whole page. When ``font_name`` is given
    every text element without its own font uses it. The logo is drawn last
    so it sits above the artwork.
    """

    resources = _load_pdf_dependencies()

    try:
        markup = apply_font_family(svg_markup, font_name) if font_name else svg_markup
        ET.fromstring(markup)
    except ET.ParseError as exc:
        raise SvgRenderError(f"Invalid SVG markup: {exc}") from exc

    page_width, page_height = resources.page_size
    buffer = BytesIO()
    pdf_canvas = resources.canvas_factory(buffer, pagesize=resources.page_size)

    if not _render_svg_on_canvas(pdf_canvas, resources.svg_backend, markup, page_width, page_height):
        raise SvgRenderError("Unable to render SVG with the available backends")

    if logo_path is not None:
        _draw_logo(pdf_canvas, logo_path, page_height)

    pdf_canvas.showPage()
    pdf_canvas.save()
    return buffer.getvalue()


def report_filename(student_name: str) -> str:
    safe_name = re.sub(r"\s+", "_", student_name.strip())
    return f"{safe_name}_Report.pdf"


def fields_for_report(
    student: Student,
    class_record: ClassRecord,
    report: Optional[ReportData],
    teacher_name: str,
) -> ReportFields:
    """Map stored records onto the values printed on a report."""

    created_at = report.created_at if report is not None else None
    return ReportFields(
        student_name=student.full_name,
        class_level=class_record.class_level,
        class_location=class_record.class_location,
        comments=report.report_text if report is not None else "",
        teacher=teacher_name,
        date=format_report_date(created_at.date() if created_at else None),
        artwork=report.artwork_url if report is not None else None,
    )


def build_report_pdf(
    fields: ReportFields,
    *,
    template: Optional[SvgDocument] = None,
    fetch: Optional[ImageFetcher] = None,
    measure: Optional[MeasureFn] = None,
) -> bytes:
    """Fill the report template with ``fields`` and render it to PDF."""

    if not fields.student_name or not fields.student_name.strip():
        raise ValueError("Student name is required")

    register_fonts()
    document = template or load_template()
    markup = inject_report_fields(document.markup, fields.as_text_data(), artwork=fields.artwork, measure=measure)
    markup = inline_artwork_images(markup, fetch)
    return render_svg_to_pdf(markup, logo_path=config.resolve_logo_path())


__all__ = [
    "FontUnavailableError",
    "PDFDependencyUnavailableError",
    "SvgRenderError",
    "build_report_pdf",
    "ensure_font",
    "ensure_pdf_toolchain",
    "fields_for_report",
    "register_fonts",
    "render_svg_to_pdf",
    "report_filename",
]
