# tests/test_memory_store.py
import threading

import pytest

from conftest import make_chunk, make_chunks

from docqa.errors import IndexNotFound
from docqa.memory.filters import DocumentIs, MatchAll, TextContains
from docqa.memory.store import InMemoryChunkStore, cosine_to_unit


class TestQueries:
    """find / count / sample scoped to one document."""

    def test_find_returns_document_order(self, memory_store):
        chunks = make_chunks(["first chunk", "second chunk", "third chunk"])
        memory_store.insert_many(list(reversed(chunks)))

        found = memory_store.find(DocumentIs("doc_physics"))

        assert [c.text for c in found] == ["first chunk", "second chunk", "third chunk"]

    def test_find_respects_limit_and_filter(self, physics_store):
        found = physics_store.find(
            DocumentIs("doc_physics") & TextContains("photon"),
            limit=1,
        )

        assert len(found) == 1
        assert "photon" in found[0].text.lower()

    def test_documents_are_isolated(self, physics_store):
        physics_store.insert_many(make_chunks(["other text"], document_id="doc_other"))

        assert physics_store.count_documents(DocumentIs("doc_physics")) == 3
        assert physics_store.count_documents(DocumentIs("doc_other")) == 1
        assert physics_store.count_documents(MatchAll()) == 4

    def test_unknown_document_is_empty(self, memory_store):
        assert memory_store.find(DocumentIs("missing")) == []
        assert memory_store.count_documents(DocumentIs("missing")) == 0
        assert memory_store.aggregate_sample(DocumentIs("missing"), 8) == []

    def test_sample_size_is_capped(self, physics_store):
        sample = physics_store.aggregate_sample(DocumentIs("doc_physics"), 8)
        assert len(sample) == 3

        sample = physics_store.aggregate_sample(DocumentIs("doc_physics"), 2)
        assert len(sample) == 2
        assert len({c.id for c in sample}) == 2


class TestVectorSearch:
    """FAISS inner-product search per document."""

    def _store(self):
        store = InMemoryChunkStore(index_names=("vector_index",))
        store.replace_document(
            "doc_v",
            make_chunks(
                ["aligned", "orthogonal", "opposite"],
                document_id="doc_v",
                embeddings=[[1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]],
            ),
        )
        return store

    def test_scores_use_unit_scale(self):
        hits = self._store().vector_search(
            "doc_v", [1.0, 0.0], k=3, candidate_pool=20, index_name="vector_index"
        )

        assert [c.text for c, _ in hits] == ["aligned", "orthogonal", "opposite"]
        assert [round(s, 4) for _, s in hits] == [1.0, 0.5, 0.0]

    def test_k_limits_results(self):
        hits = self._store().vector_search(
            "doc_v", [1.0, 0.0], k=1, candidate_pool=20, index_name="vector_index"
        )
        assert len(hits) == 1

    def test_unknown_index_raises(self):
        with pytest.raises(IndexNotFound):
            self._store().vector_search(
                "doc_v", [1.0, 0.0], k=3, candidate_pool=20, index_name="default"
            )

    def test_document_without_embeddings_has_no_hits(self, physics_store):
        hits = physics_store.vector_search(
            "doc_physics", [1.0, 0.0], k=3, candidate_pool=20, index_name="vector_index"
        )
        assert hits == []

    def test_cosine_to_unit(self):
        assert cosine_to_unit(1.0) == 1.0
        assert cosine_to_unit(-1.0) == 0.0
        assert cosine_to_unit(0.2) == pytest.approx(0.6)


class TestWrites:
    """Insert, delete and atomic replacement."""

    def test_duplicate_positions_are_rejected(self, physics_store):
        with pytest.raises(ValueError):
            physics_store.insert_many([make_chunk("again", index=0)])

    def test_delete_many_by_document(self, physics_store):
        removed = physics_store.delete_many(DocumentIs("doc_physics"))

        assert removed == 3
        assert physics_store.count_documents(DocumentIs("doc_physics")) == 0
        assert physics_store.list_documents() == {}

    def test_delete_many_by_predicate(self, physics_store):
        removed = physics_store.delete_many(
            DocumentIs("doc_physics") & TextContains("helium")
        )

        assert removed == 1
        assert physics_store.count_documents(DocumentIs("doc_physics")) == 2

    def test_reingestion_does_not_accumulate(self, memory_store):
        memory_store.replace_document("doc_a", make_chunks(["a", "b", "c"], document_id="doc_a"))
        memory_store.replace_document("doc_a", make_chunks(["d", "e"], document_id="doc_a"))

        assert memory_store.count_documents(DocumentIs("doc_a")) == 2
        assert [c.text for c in memory_store.find(DocumentIs("doc_a"))] == ["d", "e"]

    def test_replace_rejects_foreign_chunks(self, memory_store):
        with pytest.raises(ValueError):
            memory_store.replace_document(
                "doc_a", make_chunks(["x"], document_id="doc_b")
            )

    def test_readers_never_see_mixed_generations(self, memory_store):
        old = make_chunks([f"old {i}" for i in range(50)], document_id="doc_a")
        new = make_chunks([f"new {i}" for i in range(20)], document_id="doc_a")

        memory_store.replace_document("doc_a", old)

        seen = []
        stop = threading.Event()

        def reader():
            while not stop.is_set():
                texts = {c.text.split()[0] for c in memory_store.find(DocumentIs("doc_a"))}
                seen.append(texts)

        thread = threading.Thread(target=reader)
        thread.start()

        for _ in range(20):
            memory_store.replace_document("doc_a", new)
            memory_store.replace_document("doc_a", old)

        stop.set()
        thread.join()

        assert all(texts in ({"old"}, {"new"}) for texts in seen)

    def test_stats(self, physics_store):
        stats = physics_store.get_stats()

        assert stats["total_documents"] == 1
        assert stats["total_chunks"] == 3
        assert stats["documents"] == {"doc_physics": 3}
