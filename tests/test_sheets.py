from types import SimpleNamespace

import requests

from studentreports.app import sheets

SAMPLE_CSV = "\n".join(
    [
        '"TEACHER","Teacher First Name","Teacher Last Na","Class Day","Class Time","Class Location",'
        '"Class Level","Student First Na","Student Last Name","Report","Artwork"',
        '"t@x.com","Tess","Teacher","Monday","16:00","Room 4","Level 2","Mei","Chen","Great year","https://img.test/1.png"',
        "",
        '"Office","","","","","","","Nobody","","",""',
        '"T2@X.com","Tom","Two","Friday"',
    ]
)


def test_build_csv_url_encodes_sheet_name():
    url = sheets.build_csv_url("abc123", "Office Use")

    assert url == "https://docs.google.com/spreadsheets/d/abc123/gviz/tq?tqx=out:csv&sheet=Office%20Use"


def test_parse_csv_strips_quotes_and_numbers_rows():
    rows = sheets.parse_csv(SAMPLE_CSV)

    assert [row["id"] for row in rows] == [1, 2, 3]
    assert rows[0]["TEACHER"] == "t@x.com"
    assert rows[0]["Report"] == "Great year"
    assert rows[2]["Class Day"] == "Friday"
    assert rows[2]["Report"] == ""


def test_rows_to_report_records_skips_rows_without_teacher_email_or_student():
    records = sheets.rows_to_report_records(sheets.parse_csv(SAMPLE_CSV))

    assert len(records) == 1
    record = records[0]
    assert record.teacher_email == "t@x.com"
    assert record.student_first_name == "Mei"
    assert record.class_level == "Level 2"
    assert record.artwork_url == "https://img.test/1.png"


def test_rows_without_artwork_map_to_none():
    rows = [{"id": 1, "TEACHER": "t@x.com", "Student First Na": "Al", "Artwork": ""}]

    (record,) = sheets.rows_to_report_records(rows)

    assert record.artwork_url is None
    assert record.report_text == ""


def test_fetch_returns_parsed_rows():
    calls = []

    class Session:
        def get(self, url, timeout):
            calls.append(url)
            return SimpleNamespace(text=SAMPLE_CSV, raise_for_status=lambda: None)

    rows = sheets.fetch_student_reports_from_csv("sheet-1", session=Session())

    assert len(rows) == 3
    assert calls == [sheets.build_csv_url("sheet-1")]


def test_fetch_failure_returns_empty_list():
    class Session:
        def get(self, url, timeout):
            raise requests.ConnectionError("offline")

    assert sheets.fetch_student_reports_from_csv("sheet-1", session=Session()) == []
