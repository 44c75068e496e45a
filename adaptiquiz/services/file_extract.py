"""
Best-effort plain text extraction from uploaded documents
"""
import io
import re
import zipfile
from typing import List, Optional

import structlog
from lxml import etree

# PyMuPDF gives the best PDF text; PyPDF2 covers files it cannot read
try:
    import fitz  # PyMuPDF
    HAS_PYMUPDF = True
except Exception:
    HAS_PYMUPDF = False

import PyPDF2

logger = structlog.get_logger()

PDF_TYPES = {"application/pdf"}
DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
PPTX_TYPES = {"application/vnd.openxmlformats-officedocument.presentationml.presentation"}
TEXT_TYPES = {"text/plain"}

W_NS = {"w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main"}
A_NS = {"a": "http://schemas.openxmlformats.org/drawingml/2006/main"}

DOCX_PART_RE = re.compile(r"^word/(document|header\d*|footer\d*)\.xml$", re.I)
SLIDE_RE = re.compile(r"^ppt/slides/slide(\d+)\.xml$")
MULTI_SPACE_RE = re.compile(r"\s+")


# -------------------- PDF --------------------

def _words(text: str) -> int:
    return len(text.split())


def extract_text_from_pdf(data: bytes) -> str:
    """PyMuPDF first; PyPDF2 when it fails or finds fewer than five words"""
    if HAS_PYMUPDF:
        try:
            with fitz.open(stream=data, filetype="pdf") as doc:
                primary = "\n".join(page.get_text("text") or "" for page in doc).strip()
            if _words(primary) >= 5:
                return primary
        except Exception as e:
            logger.info("pymupdf_extract_failed", error=str(e))

    reader = PyPDF2.PdfReader(io.BytesIO(data))
    if getattr(reader, "is_encrypted", False):
        reader.decrypt("")
    return "\n".join(page.extract_text() or "" for page in reader.pages).strip()


# -------------------- OFFICE XML --------------------

def _xml_text(xml: bytes, xpath: str, namespaces: dict) -> List[str]:
    root = etree.fromstring(xml)
    parts = []
    for node in root.xpath(xpath, namespaces=namespaces):
        text = MULTI_SPACE_RE.sub(" ", str(node)).strip()
        if text:
            parts.append(text)
    return parts


def extract_text_from_docx(data: bytes) -> str:
    parts: List[str] = []
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        for name in archive.namelist():
            if DOCX_PART_RE.match(name):
                parts.extend(_xml_text(archive.read(name), "//w:t/text()", W_NS))
    return " ".join(parts).strip()


def extract_text_from_pptx(data: bytes) -> str:
    parts: List[str] = []
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        slides = sorted(
            (int(m.group(1)), name)
            for name in archive.namelist()
            for m in [SLIDE_RE.match(name)] if m
        )
        for _, name in slides:
            parts.extend(_xml_text(archive.read(name), "//a:t/text()", A_NS))
    return " ".join(parts).strip()


# -------------------- DISPATCH --------------------

def detect_kind(filename: Optional[str], content_type: Optional[str]) -> Optional[str]:
    name = (filename or "").lower()
    mime = (content_type or "").lower()
    if mime in PDF_TYPES or name.endswith(".pdf"):
        return "pdf"
    if mime in DOCX_TYPES or name.endswith(".docx"):
        return "docx"
    if mime in PPTX_TYPES or name.endswith(".pptx"):
        return "pptx"
    if mime in TEXT_TYPES or name.endswith(".txt"):
        return "txt"
    return None


def extract_text_from_upload(data: bytes, filename: Optional[str] = None,
                             content_type: Optional[str] = None) -> str:
    """Extracted text, or "" for unsupported or unreadable files. Never raises."""
    kind = detect_kind(filename, content_type)
    if not data or kind is None:
        return ""
    try:
        if kind == "pdf":
            return extract_text_from_pdf(data)
        if kind == "docx":
            return extract_text_from_docx(data)
        if kind == "pptx":
            return extract_text_from_pptx(data)
        return data.decode("utf-8", errors="ignore").strip()
    except Exception as e:
        logger.warning("file_extract_failed", filename=filename, kind=kind, error=str(e))
        return ""
