"""Tests for PDF text extraction and the metadata stub fallback."""
import pytest

from archive_rag.errors import ExtractionError
from archive_rag.extraction.extractor import TextExtractor
from archive_rag.utils.helpers import clean_text
from conftest import build_pdf

LONG_LINE = (
    "The committee reviewed the memorandum dated November 1963 and the cable traffic "
    "between the Mexico City station and headquarters in detail"
)


class TestExtractStrict:
    def test_returns_text_and_page_count(self):
        text, pages = TextExtractor().extract_strict(build_pdf(LONG_LINE))
        assert "Mexico City station" in text
        assert pages == 1

    def test_corrupt_bytes_raise(self):
        with pytest.raises(ExtractionError):
            TextExtractor().extract_strict(b"definitely not a pdf")


class TestExtract:
    def test_text_layer_returned_verbatim(self):
        text = TextExtractor(min_text_chars=100).extract(build_pdf(LONG_LINE), name="memo.pdf")
        assert not text.startswith("Document:")
        assert "cable traffic" in text

    def test_scanned_page_gets_metadata_stub(self):
        text = TextExtractor().extract(
            build_pdf(""), name="docid-1.pdf", source="https://example.org/docid-1.pdf"
        )
        assert "Document: docid-1.pdf" in text
        assert "Source: https://example.org/docid-1.pdf" in text
        assert "Pages: 1" in text
        assert "scanned image" in text

    def test_low_text_keeps_extracted_text_after_stub(self):
        text = TextExtractor(min_text_chars=10_000).extract(build_pdf(LONG_LINE), name="memo.pdf")
        assert text.startswith("Document: memo.pdf")
        assert "Source: local file" in text
        assert "cable traffic" in text

    def test_corrupt_pdf_degrades_to_metadata_only(self):
        text = TextExtractor().extract(b"%PDF-garbage", name="broken.pdf")
        assert "Document: broken.pdf" in text
        assert "Pages: unknown" in text
        assert "extraction failed" in text


class TestCleanText:
    def test_rejoins_hyphenated_words_and_page_breaks(self):
        raw = "The assassi-\nnation was investigated.\fPage two  starts\x00 here.\r\n\n\n\nEnd"
        assert clean_text(raw) == (
            "The assassination was investigated.\n\nPage two starts here.\n\nEnd"
        )

    def test_keeps_real_hyphens(self):
        assert clean_text("A follow-up memo") == "A follow-up memo"
