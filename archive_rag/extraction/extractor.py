"""
PDF Text Extractor
-------------------
Turns raw PDF bytes into plain text with pypdf.

Many archive releases are scanned page images with no text layer.  Instead
of dropping those, the extractor returns a short metadata stub (name,
source, page count, a confidence note) followed by whatever text it did
find, so the document can still be matched by name and origin.

A corrupt file produces a metadata-only stub: one bad download must never
abort an ingestion batch.
"""
from __future__ import annotations

import io
from typing import Optional

from loguru import logger
from pypdf import PdfReader

from archive_rag.errors import ExtractionError
from archive_rag.utils.helpers import clean_text

MIN_TEXT_CHARS = 100

_LOW_TEXT_NOTE = (
    "Only limited text could be extracted from this document; it is most likely "
    "a scanned image. Content below may be incomplete."
)
_FAILED_NOTE = "Text extraction failed for this document; only its metadata is indexed."


class TextExtractor:
    """Extracts text from PDF bytes, degrading to a metadata stub when it must."""

    def __init__(self, min_text_chars: int = MIN_TEXT_CHARS) -> None:
        self.min_text_chars = min_text_chars

    def extract_strict(self, data: bytes) -> tuple[str, int]:
        """
        Return (text, page_count).

        Raises ExtractionError if the bytes cannot be parsed as a PDF.
        """
        try:
            reader = PdfReader(io.BytesIO(data))
            pages: list[str] = []
            for page in reader.pages:
                page_text = page.extract_text()
                if page_text and page_text.strip():
                    pages.append(page_text.strip())
            return clean_text("\n\n".join(pages)), len(reader.pages)
        except Exception as exc:
            raise ExtractionError(f"Could not parse PDF: {exc}") from exc

    def extract(self, data: bytes, name: str = "document.pdf", source: Optional[str] = None) -> str:
        """Extract text; never raises."""
        try:
            text, page_count = self.extract_strict(data)
        except ExtractionError as exc:
            logger.warning(f"[Extractor] {name}: {exc.message} - indexing metadata only")
            return self._stub(name, source, None, _FAILED_NOTE)

        if len(text) < self.min_text_chars:
            logger.info(
                f"[Extractor] {name}: only {len(text)} chars from {page_count} page(s) "
                f"- prepending metadata stub"
            )
            stub = self._stub(name, source, page_count, _LOW_TEXT_NOTE)
            return f"{stub}\n\n{text}" if text else stub

        logger.debug(f"[Extractor] {name}: {len(text)} chars from {page_count} page(s)")
        return text

    @staticmethod
    def _stub(name: str, source: Optional[str], page_count: Optional[int], note: str) -> str:
        return "\n".join(
            [
                f"Document: {name}",
                f"Source: {source or 'local file'}",
                f"Pages: {page_count if page_count is not None else 'unknown'}",
                f"Note: {note}",
            ]
        )
