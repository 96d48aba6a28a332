"""
Document text extraction for supporting PDF and DOCX files.

One entry point, ``DocumentExtractor.extract(data, mime_type)``, picks a
strategy by MIME type. Strategies return an ``ExtractionResult``; any
exception is turned into a non-succeeded result with a readable placeholder
so extraction problems never stop the pipeline.
"""

import base64
import io
import logging
import re
import zipfile
from pathlib import Path
from typing import Callable, Dict, Optional

from docx import Document

from .llm import ChatClient, LLMError
from .prompts import (
    PDF_EXTRACTION_PROMPT,
    DOCUMENT_INFERENCE_SYSTEM_MESSAGE,
    DOCUMENT_INFERENCE_PROMPT,
)
from .types import ExtractionResult

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

DOCUMENT_MIME_TYPES = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
}

# Extracted text shorter than this is treated as a failed extraction
MIN_DOCUMENT_CHARS = 100

# Directly read DOCX text longer than this is used as-is, never inferred
MIN_DOCX_DIRECT_CHARS = 50

# DOCX fallbacks
_WORD_RUN = re.compile(r"<w:t[^>]*>([^<]+)</w:t>")
_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\n\r\t]")
_READABLE_WORD = re.compile(r"^[a-zA-Z0-9\-.,!?%$]+$")
MIN_READABLE_WORDS = 10
MAX_READABLE_WORDS = 200
INFERENCE_SLICE_BYTES = 4000

Strategy = Callable[[bytes, str], ExtractionResult]


class ExtractionError(Exception):
    """Raised by a strategy when no usable text could be produced."""
    pass


def guess_mime_type(path: str) -> Optional[str]:
    """Map a document path to a supported MIME type, or None."""
    return DOCUMENT_MIME_TYPES.get(Path(path).suffix.lower())


def document_kind(mime_type: Optional[str]) -> str:
    """Short label used in responses and logs ("pdf", "docx" or "document")."""
    if mime_type == PDF_MIME:
        return "pdf"
    if mime_type == DOCX_MIME:
        return "docx"
    return "document"


def extract_docx_paragraphs(data: bytes) -> str:
    """Read paragraph and table text with python-docx."""
    document = Document(io.BytesIO(data))
    parts = [p.text.strip() for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


def extract_word_runs(data: bytes) -> str:
    """Scan ``<w:t>`` runs in word/document.xml, or in the raw bytes if not a zip."""
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml = archive.read("word/document.xml").decode("utf-8", errors="ignore")
    except (zipfile.BadZipFile, KeyError):
        xml = data.decode("utf-8", errors="ignore")
    return " ".join(match.strip() for match in _WORD_RUN.findall(xml) if match.strip())


def extract_readable_words(data: bytes) -> str:
    """Keep printable word-like tokens; empty unless more than MIN_READABLE_WORDS survive."""
    decoded = data.decode("utf-8", errors="ignore")
    readable = re.sub(r"\s+", " ", _NON_PRINTABLE.sub(" ", decoded)).strip()
    words = [w for w in readable.split(" ") if len(w) > 2 and _READABLE_WORD.match(w)]
    if len(words) > MIN_READABLE_WORDS:
        return " ".join(words[:MAX_READABLE_WORDS])
    return ""


class DocumentExtractor:
    """
    Extracts readable text from supporting documents.

    PDFs are sent to a multimodal chat model as a base64 file part. DOCX
    files are parsed locally, with a model inference over the first bytes
    as last resort. Unknown types get a placeholder.
    """

    def __init__(
        self,
        client: Optional[ChatClient],
        model: str = "gpt-4o",
        timeout: float = 120,
    ):
        self.client = client
        self.model = model
        self.timeout = timeout
        self.strategies: Dict[str, Strategy] = {
            PDF_MIME: self._extract_pdf,
            DOCX_MIME: self._extract_docx,
        }

    def register(self, mime_type: str, strategy: Strategy) -> None:
        """Add or replace the strategy used for a MIME type."""
        self.strategies[mime_type] = strategy

    def extract(self, data: bytes, mime_type: Optional[str], filename: str = "document") -> ExtractionResult:
        """
        Extract text from a document.

        Args:
            data: Document bytes
            mime_type: MIME type selecting the strategy
            filename: Original name, forwarded to strategies that need it

        Returns:
            ExtractionResult; ``succeeded`` is True only for real content of
            at least MIN_DOCUMENT_CHARS characters.
        """
        kind = document_kind(mime_type)
        logger.info(f"Starting {kind} extraction for {filename} ({len(data)} bytes)")

        if not data:
            return ExtractionResult.failed(f"{kind.upper()} file appears to be empty or corrupted.", strategy=kind)

        strategy = self.strategies.get(mime_type or "")
        if strategy is None:
            return ExtractionResult.failed(
                f"Document type not supported for extraction: {mime_type or 'unknown'}",
                strategy="unsupported",
            )

        try:
            result = strategy(data, filename)
        except Exception as e:
            logger.error(f"{kind} extraction failed: {e}")
            return ExtractionResult.failed(
                f"{kind.upper()} processing failed: {e}. "
                f"Please ensure the document contains readable text and is not corrupted.",
                strategy=kind,
            )

        if result.succeeded and len(result.text.strip()) < MIN_DOCUMENT_CHARS:
            logger.warning(f"{kind} extraction returned insufficient content ({len(result.text)} chars)")
            result.succeeded = False
            result.warning = result.warning or "insufficient content"

        if result.succeeded:
            logger.info(f"{kind} text extracted successfully, length: {len(result.text)}")
        return result

    def _require_client(self) -> ChatClient:
        if self.client is None:
            raise ExtractionError("No chat client configured for model-assisted extraction")
        return self.client

    def _extract_pdf(self, data: bytes, filename: str) -> ExtractionResult:
        client = self._require_client()
        encoded = base64.b64encode(data).decode("ascii")
        messages = [{
            "role": "user",
            "content": [
                {"type": "text", "text": PDF_EXTRACTION_PROMPT},
                {
                    "type": "file",
                    "file": {
                        "filename": filename,
                        "file_data": f"data:{PDF_MIME};base64,{encoded}",
                    },
                },
            ],
        }]
        content, _usage = client.complete(messages, model=self.model, temperature=0.1, timeout=self.timeout)
        text = content.strip()
        if not text:
            return ExtractionResult.failed("PDF processing: the model returned no text.", strategy="pdf-llm")
        return ExtractionResult(text=text, succeeded=True, strategy="pdf-llm")

    def _extract_docx(self, data: bytes, filename: str) -> ExtractionResult:
        try:
            text = extract_docx_paragraphs(data)
        except Exception as e:
            logger.warning(f"python-docx could not read {filename}: {e}")
            text = ""
        if len(text) > MIN_DOCX_DIRECT_CHARS:
            return ExtractionResult(text=text, succeeded=True, strategy="docx")

        text = extract_word_runs(data) or extract_readable_words(data)
        if len(text) > MIN_DOCX_DIRECT_CHARS:
            return ExtractionResult(text=text, succeeded=True, strategy="docx-scan")

        logger.info("Limited text extraction from DOCX, asking the model to infer content")
        return self._infer_docx(data)

    def _infer_docx(self, data: bytes) -> ExtractionResult:
        if self.client is None:
            return ExtractionResult.failed(
                f"DOCX processing: Could not extract text directly. File size: {len(data)} bytes.",
                strategy="docx-llm",
            )
        encoded = base64.b64encode(data[:INFERENCE_SLICE_BYTES]).decode("ascii")
        try:
            content, _usage = self.client.chat(
                DOCUMENT_INFERENCE_PROMPT.format(data=encoded),
                DOCUMENT_INFERENCE_SYSTEM_MESSAGE,
                model=self.model,
                temperature=0.1,
                max_tokens=1000,
                timeout=self.timeout,
            )
        except LLMError as e:
            logger.error(f"Document inference failed: {e}")
            return ExtractionResult.failed(
                f"DOCX processing: Could not extract text directly. File size: {len(data)} bytes. "
                f"Please ensure the DOCX contains readable text and is not corrupted.",
                strategy="docx-llm",
            )
        if not content.strip():
            return ExtractionResult.failed(
                f"DOCX processing: File received ({len(data)} bytes) but content extraction was limited.",
                strategy="docx-llm",
            )
        return ExtractionResult(
            text=f"DOCX Analysis: {content.strip()}",
            succeeded=True,
            strategy="docx-llm",
            warning="content inferred by the model from a partial file",
        )
