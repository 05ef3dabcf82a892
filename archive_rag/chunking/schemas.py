"""
Chunk schema - the atomic unit that gets embedded and indexed.

The chunk id is derived from the document name and the chunk's ordinal,
never from a random UUID, so re-ingesting a document overwrites its
records in the index instead of adding duplicates.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, computed_field

from archive_rag.utils.helpers import strip_extension


def make_chunk_id(source: str, chunk_index: int) -> str:
    """'HSCA_Report.pdf', 3 -> 'HSCA_Report_chunk_3'"""
    return f"{strip_extension(source)}_chunk_{chunk_index}"


class Chunk(BaseModel):
    """A window of a document's extracted text."""

    source: str                          # Parent document filename
    chunk_index: int                     # Zero-based position within the document
    text: str
    url: Optional[str] = None

    @computed_field
    @property
    def chunk_id(self) -> str:
        return make_chunk_id(self.source, self.chunk_index)

    def to_metadata(self) -> dict[str, Any]:
        """Metadata stored alongside the vector."""
        metadata: dict[str, Any] = {
            "text": self.text,
            "source": self.source,
            "chunk": self.chunk_index,
        }
        if self.url:
            metadata["url"] = self.url
        return metadata
