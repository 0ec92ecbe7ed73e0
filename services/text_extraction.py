"""
Text extraction from stored evidence files.

Dispatches on the detected file type (declared mime first, file extension
as fallback) and returns plain text. Whitespace is left as produced by the
parsers; normalization happens in the chunker.
"""

import csv
import io
import os
from enum import Enum
from typing import Callable, Dict, List, Optional

import docx
import pdfplumber
import pikepdf
from openpyxl import load_workbook
from pypdf import PdfReader

from common.exceptions import ExtractionException, UnsupportedFileTypeException
from common.logging import get_logger

logger = get_logger("text_extraction")


class FileType(str, Enum):
    PDF = "pdf"
    WORD = "word"
    SPREADSHEET = "spreadsheet"
    CSV = "csv"
    TEXT = "text"


MIME_TYPES: Dict[str, FileType] = {
    "application/pdf": FileType.PDF,
    "application/x-pdf": FileType.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": FileType.WORD,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": FileType.SPREADSHEET,
    "application/vnd.ms-excel.sheet.macroenabled.12": FileType.SPREADSHEET,
    "text/csv": FileType.CSV,
    "text/plain": FileType.TEXT,
    "text/markdown": FileType.TEXT,
}

EXTENSIONS: Dict[str, FileType] = {
    ".pdf": FileType.PDF,
    ".docx": FileType.WORD,
    ".xlsx": FileType.SPREADSHEET,
    ".xlsm": FileType.SPREADSHEET,
    ".csv": FileType.CSV,
    ".txt": FileType.TEXT,
    ".md": FileType.TEXT,
}


def detect_file_type(mime_type: Optional[str], filename: Optional[str]) -> Optional[FileType]:
    """Resolve the file type from the declared mime, then from the extension."""
    if mime_type:
        base = mime_type.split(";", 1)[0].strip().lower()
        if base in MIME_TYPES:
            return MIME_TYPES[base]
    if filename:
        ext = os.path.splitext(filename)[1].lower()
        if ext in EXTENSIONS:
            return EXTENSIONS[ext]
    return None


def _pdf_text_primary(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data), strict=False)
    return "\n\n".join((page.extract_text() or "") for page in reader.pages)


def _repair_pdf(data: bytes) -> bytes:
    with pikepdf.open(io.BytesIO(data)) as pdf:
        out = io.BytesIO()
        pdf.save(out)
        return out.getvalue()


def _pdf_text_lenient(data: bytes) -> str:
    """Page-by-page collection via pdfplumber, using words when line text is empty."""
    pages: List[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            text = page.extract_text() or ""
            if not text.strip():
                words = page.extract_words(keep_blank_chars=False)
                text = " ".join(w["text"] for w in words)
            if text.strip():
                pages.append(text)
    return "\n\n".join(pages)


def extract_pdf(data: bytes, filename: str = "") -> str:
    try:
        text = _pdf_text_primary(data)
        if text.strip():
            return text
        logger.info(f"Primary PDF parse found no text in {filename}; using lenient fallback")
    except Exception as e:
        logger.warning(f"Primary PDF parse failed for {filename}: {e}")

    try:
        repaired = _repair_pdf(data)
    except pikepdf.PdfError as e:
        logger.warning(f"PDF repair failed for {filename}, reading original bytes: {e}")
        repaired = data

    try:
        return _pdf_text_lenient(repaired)
    except Exception as e:
        raise ExtractionException(
            detail=f"Could not read PDF '{filename}': {e}",
            filename=filename,
            file_type=FileType.PDF.value,
        )


def extract_word(data: bytes, filename: str = "") -> str:
    document = docx.Document(io.BytesIO(data))
    lines = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(" ".join(cells))
    return "\n".join(lines)


def _row_line(values) -> Optional[str]:
    cells = [str(v).strip() for v in values if v is not None and str(v).strip()]
    return " ".join(cells) if cells else None


def extract_spreadsheet(data: bytes, filename: str = "") -> str:
    """Each sheet becomes a 'Sheet: <name>' line followed by one line per non-empty row."""
    workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    lines: List[str] = []
    try:
        for sheet in workbook.worksheets:
            lines.append(f"Sheet: {sheet.title}")
            for row in sheet.iter_rows(values_only=True):
                line = _row_line(row)
                if line:
                    lines.append(line)
    finally:
        workbook.close()
    return "\n".join(lines)


def extract_csv(data: bytes, filename: str = "") -> str:
    reader = csv.reader(io.StringIO(data.decode("utf-8-sig", errors="replace")))
    lines = [_row_line(row) for row in reader]
    name = os.path.splitext(os.path.basename(filename))[0] or "Sheet1"
    return "\n".join([f"Sheet: {name}"] + [line for line in lines if line])


def extract_plain_text(data: bytes, filename: str = "") -> str:
    return data.decode("utf-8", errors="replace")


EXTRACTORS: Dict[FileType, Callable[[bytes, str], str]] = {
    FileType.PDF: extract_pdf,
    FileType.WORD: extract_word,
    FileType.SPREADSHEET: extract_spreadsheet,
    FileType.CSV: extract_csv,
    FileType.TEXT: extract_plain_text,
}


def extract_text(data: bytes, mime_type: Optional[str], filename: str) -> str:
    """
    Convert raw file bytes to text.

    Raises:
        UnsupportedFileTypeException: no extractor for the detected type.
        ExtractionException: the parser failed on the file.
    """
    file_type = detect_file_type(mime_type, filename)
    if file_type is None:
        raise UnsupportedFileTypeException(filename=filename, mime_type=mime_type)

    try:
        text = EXTRACTORS[file_type](data, filename)
    except ExtractionException:
        raise
    except Exception as e:
        logger.warning(f"{file_type.value} extraction failed for {filename}: {e}")
        raise ExtractionException(
            detail=f"Could not extract text from '{filename}': {e}",
            filename=filename,
            file_type=file_type.value,
        )

    logger.debug(f"Extracted {len(text)} chars from {filename} ({file_type.value})")
    return text
