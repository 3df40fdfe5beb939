from urllib.parse import quote

from studentreports.app.downloads import ascii_filename, content_disposition


def test_ascii_names_pass_through():
    assert content_disposition("Mei_Chen_Report.pdf") == (
        "attachment; filename=\"Mei_Chen_Report.pdf\"; filename*=UTF-8''Mei_Chen_Report.pdf"
    )


def test_non_latin_names_get_an_ascii_fallback():
    assert ascii_filename("美玲_陈_Report.pdf") == "Report.pdf"
    assert ascii_filename("Zoë_Müller_Report.pdf") == "Zoe_Muller_Report.pdf"
    assert ascii_filename("张老师.zip") == "download.zip"


def test_content_disposition_is_latin1_encodable():
    value = content_disposition("张 老师_Level 2_reports.zip")

    value.encode("latin-1")
    assert value.endswith("filename*=UTF-8''" + quote("张 老师_Level 2_reports.zip", safe=""))
