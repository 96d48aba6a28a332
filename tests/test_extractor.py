"""
Tests for document text extraction.
"""

import base64
import io
from unittest.mock import MagicMock

import pytest
from docx import Document

from infosight.worker.extractor import (
    DOCX_MIME,
    MIN_DOCUMENT_CHARS,
    MIN_DOCX_DIRECT_CHARS,
    PDF_MIME,
    DocumentExtractor,
    document_kind,
    extract_readable_words,
    extract_word_runs,
    guess_mime_type,
)
from infosight.worker.llm import LLMError
from infosight.worker.types import ExtractionResult

PARAGRAPHS = [
    "Weekly operations report for the north region.",
    "Orders fulfilled: 1,240 with an average turnaround of 7.2 minutes.",
    "Customer satisfaction reached 4.4 out of 5 and food waste dropped by 28%.",
]


def make_docx(paragraphs=PARAGRAPHS) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Feedback response rate"
    table.rows[0].cells[1].text = "87%"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def extractor(client):
    return DocumentExtractor(client, model="gpt-4o", timeout=30)


def test_mime_helpers():
    assert guess_mime_type("user/report.PDF") == PDF_MIME
    assert guess_mime_type("user/report.docx") == DOCX_MIME
    assert guess_mime_type("user/notes.txt") is None
    assert document_kind(PDF_MIME) == "pdf"
    assert document_kind(DOCX_MIME) == "docx"
    assert document_kind(None) == "document"


def test_docx_paragraphs_and_tables(extractor, client):
    result = extractor.extract(make_docx(), DOCX_MIME, filename="report.docx")

    assert result.succeeded is True
    assert result.strategy == "docx"
    for text in PARAGRAPHS:
        assert text in result.text
    assert "Feedback response rate | 87%" in result.text
    client.chat.assert_not_called()


def test_short_docx_text_is_kept_without_inference(extractor, client):
    # Between the direct-read and the success thresholds
    paragraphs = ["Revenue grew 12% this week.", "Two new clients signed on."]
    data = make_docx(paragraphs)

    result = extractor.extract(data, DOCX_MIME, filename="short.docx")

    assert MIN_DOCX_DIRECT_CHARS < len(result.text) < MIN_DOCUMENT_CHARS
    assert result.strategy == "docx"
    assert result.succeeded is False
    assert "Revenue grew 12% this week." in result.text
    client.chat.assert_not_called()


def test_word_runs_from_raw_xml():
    xml = b'<w:document><w:p><w:r><w:t>Revenue</w:t></w:r><w:r><w:t xml:space="preserve">up 12%</w:t></w:r></w:p></w:document>'
    assert extract_word_runs(xml) == "Revenue up 12%"


def test_readable_words_needs_enough_words():
    assert extract_readable_words(b"\x00\x01abc\x02") == ""
    text = b"\x00".join(f"word{i}".encode() for i in range(20))
    assert extract_readable_words(text).startswith("word0 word1")


def test_unreadable_docx_falls_back_to_model(extractor, client):
    client.chat.return_value = ("Revenue growth of 12% and 3 new hires are likely reported.", {})
    data = b"PK\x03\x04" + bytes(range(256)) * 4

    result = extractor.extract(data, DOCX_MIME, filename="broken.docx")

    assert result.succeeded is False  # inferred text is below the minimum length
    assert result.text.startswith("DOCX Analysis: ")
    assert result.strategy == "docx-llm"
    prompt = client.chat.call_args.args[0]
    assert base64.b64encode(data[:4000]).decode("ascii") in prompt


def test_docx_inference_success(extractor, client):
    inferred = "The document reports revenue of 1.2M, a 15% margin and 4 new enterprise clients. " * 2
    client.chat.return_value = (inferred, {})

    result = extractor.extract(b"\x00\x01\x02" * 100, DOCX_MIME, filename="broken.docx")

    assert result.succeeded is True
    assert result.warning
    assert result.text == f"DOCX Analysis: {inferred.strip()}"


def test_docx_inference_error_gives_placeholder(extractor, client):
    client.chat.side_effect = LLMError("Chat API error 500: boom", status_code=500)

    result = extractor.extract(b"\x00\x01\x02" * 100, DOCX_MIME, filename="broken.docx")

    assert result.succeeded is False
    assert result.text.startswith("DOCX processing: Could not extract text directly.")


def test_pdf_is_sent_as_file_part(extractor, client):
    pdf_text = "Quarterly summary: revenue 1.2M, margin 15%, churn 2.1%. " * 3
    client.complete.return_value = (pdf_text, {})
    data = b"%PDF-1.4 fake pdf"

    result = extractor.extract(data, PDF_MIME, filename="report.pdf")

    assert result.succeeded is True
    assert result.strategy == "pdf-llm"
    messages = client.complete.call_args.args[0]
    file_part = messages[0]["content"][1]
    assert file_part["type"] == "file"
    assert file_part["file"]["filename"] == "report.pdf"
    assert file_part["file"]["file_data"] == f"data:{PDF_MIME};base64,{base64.b64encode(data).decode('ascii')}"


def test_pdf_short_text_is_not_a_success(extractor, client):
    client.complete.return_value = ("Page 1", {})

    result = extractor.extract(b"%PDF-1.4", PDF_MIME, filename="report.pdf")

    assert result.succeeded is False
    assert len(result.text) < MIN_DOCUMENT_CHARS


def test_pdf_model_error_gives_placeholder(extractor, client):
    client.complete.side_effect = LLMError("Chat API error 400: unsupported file", status_code=400)

    result = extractor.extract(b"%PDF-1.4", PDF_MIME, filename="report.pdf")

    assert result.succeeded is False
    assert result.text.startswith("PDF processing failed:")


def test_unsupported_type_placeholder(extractor):
    result = extractor.extract(b"plain text", "text/plain", filename="notes.txt")

    assert result.succeeded is False
    assert result.strategy == "unsupported"
    assert "not supported" in result.text


def test_empty_document(extractor):
    result = extractor.extract(b"", PDF_MIME)

    assert result.succeeded is False
    assert "empty" in result.text


def test_registered_strategy_is_used(extractor):
    extractor.register("text/plain", lambda data, name: ExtractionResult(data.decode() * 50, True, "text"))

    result = extractor.extract(b"notes ", "text/plain", filename="notes.txt")

    assert result.succeeded is True
    assert result.strategy == "text"
