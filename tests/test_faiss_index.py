"""Tests for the FAISS-backed vector store."""
import numpy as np
import pytest

from archive_rag.embedding.faiss_index import FAISSVectorStore
from archive_rag.embedding.vector_store import VectorStore
from archive_rag.errors import ConfigurationError, SearchError, UpsertError
from archive_rag.schemas import IndexedRecord

DIMS = 4


def _record(record_id: str, values, source: str = "doc.pdf", text: str = "") -> IndexedRecord:
    return IndexedRecord(
        id=record_id,
        values=list(values),
        metadata={"text": text or record_id, "source": source, "chunk": 0},
    )


@pytest.fixture
def store(tmp_path):
    store = FAISSVectorStore(dimensions=DIMS, index_dir=tmp_path / "index")
    store.upsert(
        [
            _record("a_chunk_0", [1, 0, 0, 0], source="a.pdf"),
            _record("b_chunk_0", [0.8, 0.6, 0, 0], source="b.pdf"),
            _record("c_chunk_0", [0, 0, 1, 0], source="c.pdf"),
        ]
    )
    return store


class TestFAISSVectorStore:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, VectorStore)

    def test_query_ranks_by_cosine_similarity(self, store):
        matches = store.query([1, 0, 0, 0], top_k=3)
        assert [m.id for m in matches] == ["a_chunk_0", "b_chunk_0", "c_chunk_0"]
        assert matches[0].score == pytest.approx(1.0, abs=1e-5)
        assert matches[1].score == pytest.approx(0.8, abs=1e-5)
        assert matches[0].source == "a.pdf"

    def test_top_k_larger_than_index(self, store):
        assert len(store.query([1, 0, 0, 0], top_k=50)) == 3

    def test_metadata_can_be_omitted(self, store):
        match = store.query([0, 0, 1, 0], top_k=1, include_metadata=False)[0]
        assert match.id == "c_chunk_0"
        assert match.metadata == {}

    def test_upsert_same_id_overwrites(self, store):
        store.upsert([_record("a_chunk_0", [0, 0, 0, 1], source="a.pdf", text="revised")])

        assert store.count() == 3
        top = store.query([0, 0, 0, 1], top_k=1)[0]
        assert top.id == "a_chunk_0"
        assert top.text == "revised"

    def test_empty_index_returns_no_matches(self, tmp_path):
        empty = FAISSVectorStore(dimensions=DIMS, index_dir=tmp_path)
        assert empty.query(np.ones(DIMS), top_k=5) == []

    def test_wrong_dimensions_rejected(self, store):
        with pytest.raises(UpsertError):
            store.upsert([_record("bad", [1, 2])])
        with pytest.raises(SearchError):
            store.query([1, 2, 3])

    def test_save_and_load_roundtrip(self, store, tmp_path):
        store.save()
        loaded = FAISSVectorStore.load(tmp_path / "index")

        assert loaded.count() == 3
        assert loaded.ids() == ["a_chunk_0", "b_chunk_0", "c_chunk_0"]
        assert loaded.query([0, 0, 1, 0], top_k=1)[0].id == "c_chunk_0"

        # ids keep overwriting after a reload
        loaded.upsert([_record("c_chunk_0", [0, 1, 0, 0], source="c.pdf")])
        loaded.upsert([_record("d_chunk_0", [0, 0, 0, 1], source="d.pdf")])
        assert loaded.count() == 4

    def test_load_or_create_starts_empty(self, tmp_path):
        store = FAISSVectorStore.load_or_create(tmp_path / "missing", dimensions=DIMS)
        assert store.count() == 0

    def test_load_or_create_rejects_dimension_change(self, store, tmp_path):
        store.save()
        with pytest.raises(ConfigurationError):
            FAISSVectorStore.load_or_create(tmp_path / "index", dimensions=DIMS * 2)
