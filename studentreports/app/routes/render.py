"""``POST /api/svg2pdf``: render client-supplied SVG with the embedded CJK font."""

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from xml.etree import ElementTree as ET

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from starlette.concurrency import run_in_threadpool

from .. import config, pdf_service
from ..svg_template import inject_report_fields
from ..text_layout import make_measure


logger = logging.getLogger(__name__)

router = APIRouter(tags=["render"])


def _error(status_code: int, error: str, details: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details, **extra})


def _render(svg: str, text_data: Optional[Dict[str, Any]]) -> bytes:
    pdf_service.ensure_font(config.CJK_FONT_NAME, "CJK_FONT_PATH", pdf_service.CJK_FONT_FILE)

    markup = svg
    if text_data:
        measure = make_measure(config.CJK_FONT_NAME, config.COMMENTS_FONT_SIZE)
        try:
            markup = inject_report_fields(markup, text_data, measure=measure)
        except ET.ParseError as exc:
            raise pdf_service.SvgRenderError(f"Invalid SVG markup: {exc}") from exc

    return pdf_service.render_svg_to_pdf(
        markup,
        font_name=config.CJK_FONT_NAME,
        logo_path=config.resolve_logo_path(),
    )


@router.post("/svg2pdf")
async def svg_to_pdf(request: Request):
    raw_body = await request.body()
    if not raw_body.strip():
        return _error(400, "Missing request body", "The request must include a JSON body with an 'svg' field")

    try:
        parsed = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return _error(400, "Invalid JSON", f"Failed to parse request body: {exc}")

    svg = parsed.get("svg") if isinstance(parsed, dict) else None
    if not svg:
        return _error(
            400,
            "Missing svg field",
            "The request body must include an 'svg' field containing the SVG content",
        )
    if not isinstance(svg, str):
        return _error(
            400,
            "Invalid svg field",
            f"The 'svg' field must be a string, but received {type(svg).__name__}",
        )

    text_data = parsed.get("textData")
    if not isinstance(text_data, dict):
        text_data = None

    logger.info("Rendering SVG (%s chars) to PDF", len(svg))
    try:
        pdf_bytes = await run_in_threadpool(_render, svg, text_data)
    except pdf_service.FontUnavailableError as exc:
        logger.error("Font loading failed: %s", exc)
        return _error(500, "Font loading failed", str(exc))
    except pdf_service.PDFDependencyUnavailableError as exc:
        return _error(503, "PDF generation unavailable", str(exc))
    except pdf_service.SvgRenderError as exc:
        logger.error("SVG to PDF conversion failed: %s", exc)
        return _error(500, "SVG conversion failed", f"Failed to convert SVG to PDF: {exc}")
    except Exception as exc:
        logger.exception("Unexpected svg2pdf failure")
        return _error(
            500,
            "Internal server error",
            f"svg2pdf error: {exc}",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    logger.info("PDF generated successfully, size: %s bytes", len(pdf_bytes))
    return Response(
        content=base64.b64encode(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": 'inline; filename="report.pdf"'},
    )
