"""
Unit tests for uploaded document text extraction
"""
import io
import zipfile
from unittest.mock import MagicMock, patch

import pytest

from adaptiquiz.services.file_extract import detect_kind, extract_text_from_upload

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
W = 'xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main"'
A = 'xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main"'


def build_zip(parts: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        for name, xml in parts.items():
            archive.writestr(name, xml)
    return buf.getvalue()


def docx_part(*texts: str) -> str:
    runs = "".join(f"<w:r><w:t xml:space=\"preserve\">{t}</w:t></w:r>" for t in texts)
    return f"<w:document {W}><w:body><w:p>{runs}</w:p></w:body></w:document>"


def slide(*texts: str) -> str:
    runs = "".join(f"<a:r><a:t>{t}</a:t></a:r>" for t in texts)
    return f"<p:sld xmlns:p=\"urn:p\" {A}><p:cSld><a:p>{runs}</a:p></p:cSld></p:sld>"


class TestDetectKind:
    @pytest.mark.parametrize("filename,content_type,kind", [
        ("notes.pdf", None, "pdf"),
        ("upload", "application/pdf", "pdf"),
        ("essay.DOCX", None, "docx"),
        ("blob", DOCX_MIME, "docx"),
        ("deck.pptx", "", "pptx"),
        ("readme.txt", None, "txt"),
        ("data", "text/plain", "txt"),
        ("photo.png", "image/png", None),
    ])
    def test_detect(self, filename, content_type, kind):
        assert detect_kind(filename, content_type) == kind


class TestExtract:
    def test_plain_text(self):
        assert extract_text_from_upload("  Cells divide by mitosis.\n".encode(), "notes.txt") == "Cells divide by mitosis."

    def test_docx_body_header_and_footer(self):
        data = build_zip({
            "word/document.xml": docx_part("Enzymes speed up", "  chemical   reactions"),
            "word/header1.xml": docx_part("Biology &amp; Chemistry"),
            "word/styles.xml": docx_part("ignored"),
        })
        text = extract_text_from_upload(data, "notes.docx")
        assert "Enzymes speed up chemical reactions" in text
        assert "Biology & Chemistry" in text
        assert "ignored" not in text

    def test_pptx_slides_in_numeric_order(self):
        data = build_zip({
            "ppt/slides/slide10.xml": slide("Tenth"),
            "ppt/slides/slide2.xml": slide("Second"),
            "ppt/slides/slide1.xml": slide("First", "slide"),
            "ppt/notesSlides/notesSlide1.xml": slide("Speaker notes"),
        })
        assert extract_text_from_upload(data, "deck.pptx") == "First slide Second Tenth"

    def test_unsupported_type(self):
        assert extract_text_from_upload(b"\x89PNG...", "photo.png", "image/png") == ""

    def test_empty_data(self):
        assert extract_text_from_upload(b"", "notes.txt") == ""

    def test_corrupt_document_returns_empty(self):
        assert extract_text_from_upload(b"not a zip archive", "notes.docx") == ""
        assert extract_text_from_upload(b"%PDF-garbage", "notes.pdf") == ""

    @patch("adaptiquiz.services.file_extract.HAS_PYMUPDF", False)
    @patch("adaptiquiz.services.file_extract.PyPDF2.PdfReader")
    def test_pdf_uses_pypdf2(self, mock_reader_cls):
        page = MagicMock()
        page.extract_text.return_value = "Osmosis moves water across membranes."
        reader = MagicMock()
        reader.is_encrypted = False
        reader.pages = [page, page]
        mock_reader_cls.return_value = reader

        text = extract_text_from_upload(b"%PDF-1.4", "notes.pdf")
        assert text == "Osmosis moves water across membranes.\nOsmosis moves water across membranes."
