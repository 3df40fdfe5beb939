import base64

import pytest
from fastapi.testclient import TestClient

from studentreports.app import pdf_service
from studentreports.app.routes import render as render_routes
from studentreports.server import app


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


SVG = '<svg xmlns="http://www.w3.org/2000/svg"><text id="student-name"><tspan x="0" y="0"/></text></svg>'


def test_missing_body(client):
    response = client.post("/api/svg2pdf", content=b"")

    assert response.status_code == 400
    assert response.json()["error"] == "Missing request body"


def test_invalid_json(client):
    response = client.post("/api/svg2pdf", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid JSON"


def test_missing_svg_field(client):
    response = client.post("/api/svg2pdf", json={"textData": {}})

    assert response.status_code == 400
    assert response.json()["error"] == "Missing svg field"


def test_svg_field_must_be_a_string(client):
    response = client.post("/api/svg2pdf", json={"svg": 42})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid svg field"
    assert "int" in response.json()["details"]


def test_success_returns_base64_pdf(client, monkeypatch):
    captured = {}

    def fake_render(svg, text_data):
        captured["svg"] = svg
        captured["text_data"] = text_data
        return b"%PDF-1.7 fake"

    monkeypatch.setattr(render_routes, "_render", fake_render)

    response = client.post("/api/svg2pdf", json={"svg": SVG, "textData": {"studentName": "李小明"}})

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/pdf"
    assert response.headers["content-disposition"] == 'inline; filename="report.pdf"'
    assert base64.b64decode(response.content) == b"%PDF-1.7 fake"
    assert captured == {"svg": SVG, "text_data": {"studentName": "李小明"}}


def test_non_object_text_data_is_ignored(client, monkeypatch):
    seen = []
    monkeypatch.setattr(render_routes, "_render", lambda svg, text_data: seen.append(text_data) or b"%PDF")

    client.post("/api/svg2pdf", json={"svg": SVG, "textData": ["not", "a", "dict"]})

    assert seen == [None]


@pytest.mark.parametrize(
    "error, status, label",
    [
        (pdf_service.FontUnavailableError("NotoSansSC-Regular.ttf font file is required"), 500, "Font loading failed"),
        (pdf_service.PDFDependencyUnavailableError("svglib missing"), 503, "PDF generation unavailable"),
        (pdf_service.SvgRenderError("bad markup"), 500, "SVG conversion failed"),
        (RuntimeError("boom"), 500, "Internal server error"),
    ],
)
def test_render_failures_map_to_error_responses(client, monkeypatch, error, status, label):
    def failing_render(svg, text_data):
        raise error

    monkeypatch.setattr(render_routes, "_render", failing_render)

    response = client.post("/api/svg2pdf", json={"svg": SVG})

    assert response.status_code == status
    assert response.json()["error"] == label


def test_missing_cjk_font_is_reported(client, monkeypatch):
    monkeypatch.setattr(pdf_service.config, "resolve_font_path", lambda env_name, file_name: None)

    response = client.post("/api/svg2pdf", json={"svg": SVG})

    assert response.status_code == 500
    assert response.json()["error"] == "Font loading failed"
