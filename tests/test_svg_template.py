from io import BytesIO
from xml.etree import ElementTree as ET

import requests
from PIL import Image

from studentreports.app import config
from studentreports.app.svg_template import (
    ReportFields,
    apply_font_family,
    convert_google_drive_url,
    format_report_date,
    inject_report_fields,
    inline_artwork_images,
    load_template,
    sanitize_svg_for_svglib,
)

SVG = "{%s}" % config.SVG_NS
XLINK = "{%s}" % config.XLINK_NS


def _lines(markup, element_id):
    root = ET.fromstring(markup)
    for element in root.iter():
        if element.get("id") == element_id:
            return [tspan.text or "" for tspan in element.findall(f"{SVG}tspan")]
    raise AssertionError(f"{element_id} not found")


def _template():
    return load_template().markup


def _png_bytes():
    buffer = BytesIO()
    Image.new("RGB", (4, 4), (255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_packaged_template_has_every_placeholder():
    root = ET.fromstring(_template())
    ids = {element.get("id") for element in root.iter()}

    assert {"student-name", "class-level", "class-location", "comments", "teacher", "date"} <= ids


def test_inject_fills_present_keys_only():
    markup = inject_report_fields(_template(), {"studentName": "Mei Chen", "teacher": "Tess Teacher"})

    assert _lines(markup, "student-name") == ["Mei Chen"]
    assert _lines(markup, "teacher") == ["Tess Teacher"]
    assert _lines(markup, "class-level") == [""]


def test_empty_date_defaults_to_today():
    markup = inject_report_fields(_template(), {"date": ""})

    assert _lines(markup, "date") == [format_report_date()]


def test_comments_are_wrapped_into_tspans():
    markup = inject_report_fields(
        _template(),
        {"comments": "one two three four"},
        measure=len,
        line_width=9,
        line_height=20,
    )

    root = ET.fromstring(markup)
    comments = next(element for element in root.iter() if element.get("id") == "comments")
    tspans = comments.findall(f"{SVG}tspan")
    assert [tspan.text for tspan in tspans] == ["one two", "three", "four"]
    assert [tspan.get("y") for tspan in tspans] == ["0", "20", "40"]


def test_artwork_is_added_as_image():
    markup = inject_report_fields(
        _template(),
        {},
        artwork="https://drive.google.com/file/d/abc_123/view?usp=sharing",
    )

    image = ET.fromstring(markup).find(f"{SVG}image")
    assert image is not None
    assert image.get(f"{XLINK}href") == "https://drive.google.com/uc?export=view&id=abc_123"
    assert image.get("width") == "100"


def test_report_fields_text_data_uses_placeholder_keys():
    fields = ReportFields(student_name="Mei Chen", class_level="Level 2", date="01/02/2024")

    data = fields.as_text_data()

    assert data["studentName"] == "Mei Chen"
    assert data["classLevel"] == "Level 2"
    assert data["date"] == "01/02/2024"


def test_convert_google_drive_url_leaves_other_urls():
    assert convert_google_drive_url("https://img.test/a.png") == "https://img.test/a.png"


def test_inline_artwork_replaces_remote_href_with_png_data_uri():
    markup = inject_report_fields(_template(), {}, artwork="https://img.test/a.jpg")

    inlined = inline_artwork_images(markup, fetch=lambda url: (_png_bytes(), "image/png"))

    image = ET.fromstring(inlined).find(f"{SVG}image")
    assert image.get("href").startswith("data:image/png;base64,")


def test_inline_artwork_drops_unreachable_images():
    markup = inject_report_fields(_template(), {}, artwork="https://img.test/missing.jpg")

    def fetch(url):
        raise requests.HTTPError("404")

    inlined = inline_artwork_images(markup, fetch=fetch)

    assert ET.fromstring(inlined).find(f"{SVG}image") is None


def test_apply_font_family_keeps_explicit_fonts():
    markup = (
        f'<svg xmlns="{config.SVG_NS}"><text id="a">x</text>'
        '<text id="b" font-family="Serif">y</text></svg>'
    )

    root = ET.fromstring(apply_font_family(markup, "NotoSansSC"))
    texts = {text.get("id"): text.get("font-family") for text in root.iter(f"{SVG}text")}

    assert root.get("font-family") == "NotoSansSC"
    assert texts == {"a": "NotoSansSC", "b": "Serif"}


def test_sanitize_replaces_gradient_fill_with_first_stop():
    markup = (
        f'<svg xmlns="{config.SVG_NS}"><defs><linearGradient id="g">'
        '<stop offset="0" stop-color="#123456"/><stop offset="1" stop-color="#ffffff"/>'
        '</linearGradient></defs><rect id="r" fill="url(#g)" style="stroke:url(#g);opacity:1"/></svg>'
    )

    rect = ET.fromstring(sanitize_svg_for_svglib(markup)).find(f"{SVG}rect")

    assert rect.get("fill") == "#123456"
    assert rect.get("style") == "stroke:#123456;opacity:1"


def test_sanitize_without_gradients_returns_input():
    markup = f'<svg xmlns="{config.SVG_NS}"><rect fill="red"/></svg>'

    assert sanitize_svg_for_svglib(markup) == markup
