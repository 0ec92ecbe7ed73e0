import io

import docx
import pikepdf
import pytest
from openpyxl import Workbook
from pypdf import PdfWriter

from services import text_extraction
from services.text_extraction import FileType, detect_file_type, extract_pdf, extract_text
from common.exceptions import ExtractionException, UnsupportedFileTypeException

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def make_text_pdf(text: str) -> bytes:
    """Single-page PDF drawing `text` in Helvetica, with a correct xref table."""
    content = f"BT /F1 18 Tf 20 100 Td ({text}) Tj ET".encode()
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 300 200] /Contents 4 0 R "
        b"/Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n" % len(content) + content + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"
    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_offset)
    return bytes(out)


@pytest.mark.parametrize("mime,filename,expected", [
    ("application/pdf", "scan.bin", FileType.PDF),
    ("text/plain; charset=utf-8", "notes", FileType.TEXT),
    ("application/octet-stream", "Policy.DOCX", FileType.WORD),
    (None, "register.xlsx", FileType.SPREADSHEET),
    (None, "export.csv", FileType.CSV),
    ("image/png", "diagram.png", None),
])
def test_detect_file_type(mime, filename, expected):
    assert detect_file_type(mime, filename) == expected


def test_word_paragraphs_and_tables():
    document = docx.Document()
    document.add_paragraph("Access Control Policy")
    document.add_paragraph("MFA is required for administrators.")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Owner"
    table.rows[0].cells[1].text = "CISO"
    buffer = io.BytesIO()
    document.save(buffer)

    text = extract_text(buffer.getvalue(), DOCX_MIME, "policy.docx")

    assert "Access Control Policy" in text
    assert "MFA is required for administrators." in text
    assert "Owner CISO" in text


def test_spreadsheet_rows_with_sheet_markers():
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Controls"
    sheet.append(["Code", "Status"])
    sheet.append(["A.5.15", "Done"])
    sheet.append([None, None])
    buffer = io.BytesIO()
    workbook.save(buffer)

    text = extract_text(buffer.getvalue(), XLSX_MIME, "register.xlsx")

    assert text.splitlines() == ["Sheet: Controls", "Code Status", "A.5.15 Done"]


def test_csv_is_read_as_single_sheet():
    data = b"code,status\nA.5.15,done\n,\n"
    assert extract_text(data, "text/csv", "evidence.csv") == "Sheet: evidence\ncode status\nA.5.15 done"


def test_plain_text_replaces_invalid_bytes():
    text = extract_text(b"MFA \xff enabled", "text/plain", "notes.txt")
    assert text.startswith("MFA ")
    assert text.endswith(" enabled")


def test_blank_pdf_has_no_text():
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)

    assert extract_text(buffer.getvalue(), "application/pdf", "blank.pdf").strip() == ""


def test_unsupported_type_raises():
    with pytest.raises(UnsupportedFileTypeException):
        extract_text(b"\x89PNG", "image/png", "diagram.png")


def test_corrupt_file_raises_extraction_error():
    with pytest.raises(ExtractionException) as exc_info:
        extract_text(b"not a zip archive", DOCX_MIME, "broken.docx")
    assert exc_info.value.error_code == "EXTRACTION_FAILED"


def test_pdf_text_is_read_directly():
    assert "MFA enforced" in extract_text(make_text_pdf("MFA enforced"), "application/pdf", "policy.pdf")


def test_pdf_falls_back_when_primary_parse_finds_nothing(monkeypatch):
    monkeypatch.setattr(text_extraction, "_pdf_text_primary", lambda data: "")

    assert "MFA enforced" in extract_pdf(make_text_pdf("MFA enforced"), "policy.pdf")


def test_pdf_falls_back_when_primary_parse_fails(monkeypatch):
    def broken(data):
        raise ValueError("bad xref")

    lenient_inputs = []
    lenient = text_extraction._pdf_text_lenient

    def spy(data):
        lenient_inputs.append(data)
        return lenient(data)

    monkeypatch.setattr(text_extraction, "_pdf_text_primary", broken)
    monkeypatch.setattr(text_extraction, "_pdf_text_lenient", spy)

    assert "Backups tested" in extract_pdf(make_text_pdf("Backups tested"), "backup.pdf")
    assert len(lenient_inputs) == 1


def test_pdf_unrepairable_bytes_are_read_as_is(monkeypatch):
    def unrepairable(data):
        raise pikepdf.PdfError("cannot repair")

    original = make_text_pdf("Access reviewed")
    seen = []
    lenient = text_extraction._pdf_text_lenient

    def spy(data):
        seen.append(data)
        return lenient(data)

    monkeypatch.setattr(text_extraction, "_pdf_text_primary", lambda data: "")
    monkeypatch.setattr(text_extraction, "_repair_pdf", unrepairable)
    monkeypatch.setattr(text_extraction, "_pdf_text_lenient", spy)

    assert "Access reviewed" in extract_pdf(original, "access.pdf")
    assert seen == [original]
