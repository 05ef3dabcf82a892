"""
FAISS Vector Store
-------------------
A persisted vector index with upsert-by-id semantics.

faiss.IndexIDMap2 wraps an IndexFlatIP (inner product == cosine similarity
on L2-normalised vectors).  String record ids are mapped to int64 FAISS
ids; upserting an id that already exists removes the old vector first, so
re-ingesting a document overwrites its chunks instead of duplicating them.

Persistence (under index_dir):
  - faiss.index           FAISS index
  - records.json          record id -> {faiss_id, metadata}
  - index_manifest.json   counts, dimensions, sources
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import faiss
import numpy as np
from langsmith import traceable
from loguru import logger

from archive_rag.errors import ConfigurationError, SearchError, UpsertError
from archive_rag.schemas import IndexedRecord, RetrievalMatch
from archive_rag.utils.helpers import load_json, save_json

INDEX_DIR = Path("data/index")
FAISS_FILE = "faiss.index"
RECORDS_FILE = "records.json"
MANIFEST_FILE = "index_manifest.json"


def _as_unit_row(vector: np.ndarray | Sequence[float], dimensions: int) -> np.ndarray:
    row = np.asarray(vector, dtype=np.float32).reshape(1, -1)
    if row.shape[1] != dimensions:
        raise ValueError(f"vector has {row.shape[1]} dimensions, index expects {dimensions}")
    norm = np.linalg.norm(row)
    if norm > 0:
        row = row / norm
    return np.ascontiguousarray(row, dtype=np.float32)


class FAISSVectorStore:
    """
    Local implementation of the VectorStore protocol.

    Add records via upsert(), then call save().
    Load a persisted store via FAISSVectorStore.load() / load_or_create().
    """

    def __init__(self, dimensions: int = 1536, index_dir: Path | str = INDEX_DIR) -> None:
        self.dimensions = dimensions
        self.index_dir = Path(index_dir)
        self.faiss_index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimensions))
        self._faiss_ids: dict[str, int] = {}
        self._record_ids: dict[int, str] = {}
        self._metadata: dict[str, dict[str, Any]] = {}
        self._next_id = 0

    # --- Write ----------------------------------------------------------------

    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        for record in records:
            try:
                row = _as_unit_row(record.values, self.dimensions)
            except ValueError as exc:
                raise UpsertError(f"Cannot upsert {record.id}: {exc}") from exc

            existing = self._faiss_ids.get(record.id)
            if existing is not None:
                self.faiss_index.remove_ids(np.array([existing], dtype=np.int64))
                faiss_id = existing
            else:
                faiss_id = self._next_id
                self._next_id += 1

            try:
                self.faiss_index.add_with_ids(row, np.array([faiss_id], dtype=np.int64))
            except RuntimeError as exc:
                raise UpsertError(f"FAISS rejected {record.id}: {exc}") from exc

            self._faiss_ids[record.id] = faiss_id
            self._record_ids[faiss_id] = record.id
            self._metadata[record.id] = dict(record.metadata)

    # --- Search ---------------------------------------------------------------

    @traceable(name="vector_search", run_type="retriever")
    def query(
        self,
        vector: np.ndarray | Sequence[float],
        top_k: int = 5,
        include_metadata: bool = True,
    ) -> list[RetrievalMatch]:
        """Top-k records by cosine similarity, best first.  Empty index -> []."""
        try:
            row = _as_unit_row(vector, self.dimensions)
        except ValueError as exc:
            raise SearchError(f"Invalid query vector: {exc}") from exc

        if self.faiss_index.ntotal == 0:
            return []

        try:
            scores, ids = self.faiss_index.search(row, min(top_k, self.faiss_index.ntotal))
        except RuntimeError as exc:
            raise SearchError(f"FAISS search failed: {exc}") from exc

        matches: list[RetrievalMatch] = []
        for score, faiss_id in zip(scores[0], ids[0]):
            if faiss_id < 0:
                continue
            record_id = self._record_ids[int(faiss_id)]
            matches.append(
                RetrievalMatch(
                    id=record_id,
                    score=float(score),
                    metadata=dict(self._metadata[record_id]) if include_metadata else {},
                )
            )
        return matches

    def count(self) -> int:
        return int(self.faiss_index.ntotal)

    def ids(self) -> list[str]:
        return sorted(self._faiss_ids)

    # --- Persistence ----------------------------------------------------------

    def save(self, index_dir: Path | str | None = None) -> None:
        """Persist FAISS index, record metadata and manifest."""
        index_dir = Path(index_dir or self.index_dir)
        index_dir.mkdir(parents=True, exist_ok=True)

        faiss.write_index(self.faiss_index, str(index_dir / FAISS_FILE))
        save_json(
            {
                record_id: {"faiss_id": faiss_id, "metadata": self._metadata[record_id]}
                for record_id, faiss_id in self._faiss_ids.items()
            },
            index_dir / RECORDS_FILE,
        )
        save_json(
            {
                "total_vectors": self.count(),
                "dimensions": self.dimensions,
                "next_id": self._next_id,
                "sources": sorted({m.get("source", "") for m in self._metadata.values()}),
            },
            index_dir / MANIFEST_FILE,
        )
        logger.info(f"[FAISSStore] {self.count()} vectors saved -> {index_dir}")

    @classmethod
    def load(cls, index_dir: Path | str = INDEX_DIR) -> "FAISSVectorStore":
        index_dir = Path(index_dir)
        manifest = load_json(index_dir / MANIFEST_FILE)

        instance = cls(dimensions=manifest["dimensions"], index_dir=index_dir)
        instance.faiss_index = faiss.read_index(str(index_dir / FAISS_FILE))
        for record_id, entry in load_json(index_dir / RECORDS_FILE).items():
            faiss_id = int(entry["faiss_id"])
            instance._faiss_ids[record_id] = faiss_id
            instance._record_ids[faiss_id] = record_id
            instance._metadata[record_id] = entry["metadata"]
        instance._next_id = manifest.get("next_id", len(instance._faiss_ids))

        logger.info(f"[FAISSStore] Loaded {instance.count()} vectors from {index_dir}")
        return instance

    @classmethod
    def load_or_create(cls, index_dir: Path | str = INDEX_DIR, dimensions: int = 1536) -> "FAISSVectorStore":
        """Load the persisted store if there is one, else start empty."""
        index_dir = Path(index_dir)
        if (index_dir / MANIFEST_FILE).exists():
            store = cls.load(index_dir)
            if store.dimensions != dimensions:
                raise ConfigurationError(
                    f"Index at {index_dir} has {store.dimensions} dimensions, "
                    f"embedding model produces {dimensions}"
                )
            return store
        logger.info(f"[FAISSStore] No index at {index_dir} - starting empty")
        return cls(dimensions=dimensions, index_dir=index_dir)
