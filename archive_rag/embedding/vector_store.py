"""Vector store protocol for dependency injection."""
from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

import numpy as np

from archive_rag.schemas import IndexedRecord, RetrievalMatch


@runtime_checkable
class VectorStore(Protocol):
    """Narrow interface the orchestrators depend on."""

    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        """Insert or overwrite records by id.  Raises UpsertError."""
        ...

    def query(
        self,
        vector: np.ndarray | Sequence[float],
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> list[RetrievalMatch]:
        """Return up to top_k matches, best first.  Raises SearchError."""
        ...

    def count(self) -> int:
        ...
