# tests/test_retrieval_engine.py

from conftest import CountingStore, FakeEmbedder, make_chunk, make_chunks

from docqa.errors import IndexNotFound
from docqa.memory.store import ChunkStore, InMemoryChunkStore
from docqa.retrieval.engine import RetrievalEngine
from docqa.retrieval.heuristics import RetrievalSettings
from docqa.retrieval.result import Strategy
from docqa.memory.filters import DocumentIs
from docqa.retrieval.stages import QueryContext, rank_by_keywords, vector_stage


class ScriptedVectorStore(InMemoryChunkStore):
    """
    In-memory store whose vector_search answers from a script:
    index name → list of (text, score), or an exception to raise.
    """

    def __init__(self, script):
        super().__init__()
        self.script = script
        self.searched = []

    def vector_search(self, document_id, query_vector, k, candidate_pool, index_name):

        self.searched.append(index_name)

        outcome = self.script.get(index_name, IndexNotFound(index_name))

        if isinstance(outcome, Exception):
            raise outcome

        by_text = {c.text: c for c in self.find(DocumentIs(document_id))}

        return [(by_text[text], score) for text, score in outcome]


def _scripted(script, texts=("alpha chunk text", "beta chunk text", "gamma chunk text")):
    store = ScriptedVectorStore(script)
    store.replace_document("doc_physics", make_chunks(list(texts)))
    return store


class TestVectorStage:
    """Stage 0: similarity search with a floor."""

    def test_accepted_hits_win(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.9), ("beta chunk text", 0.7)]})
        engine = RetrievalEngine(store, embedder=FakeEmbedder())

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert result.strategy is Strategy.VECTOR
        assert [s.chunk.text for s in result.chunks] == ["alpha chunk text", "beta chunk text"]
        assert result.top_score == 0.9

    def test_best_below_floor_empties_stage(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.3), ("beta chunk text", 0.2)]})
        counting = CountingStore(store)
        engine = RetrievalEngine(counting, embedder=FakeEmbedder())

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert result.strategy is not Strategy.VECTOR
        assert counting.calls["vector_search"] == 1

    def test_vector_stage_alone_returns_nothing_below_floor(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.3), ("beta chunk text", 0.2)]})
        ctx = QueryContext(question="photon", document_id="doc_physics", embedding=[1.0, 0.0])

        assert vector_stage(store, RetrievalSettings(), ctx) == []

    def test_hits_below_floor_are_dropped(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.8), ("beta chunk text", 0.5)]})
        engine = RetrievalEngine(store, embedder=FakeEmbedder())

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert [s.chunk.text for s in result.chunks] == ["alpha chunk text"]

    def test_short_circuit_skips_later_stages(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.95)]})
        counting = CountingStore(store)
        engine = RetrievalEngine(counting, embedder=FakeEmbedder())

        result = engine.retrieve("list the chapters", "doc_physics")

        assert result.strategy is Strategy.VECTOR
        assert counting.calls == {"vector_search": 1}

    def test_missing_index_falls_back_to_alternatives(self):
        store = _scripted({"vector_search_index": [("gamma chunk text", 0.9)]})
        engine = RetrievalEngine(store, embedder=FakeEmbedder())

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert result.strategy is Strategy.VECTOR
        assert store.searched == ["vector_index", "default", "vector_search_index"]
        assert result.chunks[0].chunk.text == "gamma chunk text"

    def test_empty_primary_tries_alternatives(self):
        store = _scripted({
            "vector_index": [],
            "default": [("beta chunk text", 0.8)],
        })
        engine = RetrievalEngine(store, embedder=FakeEmbedder())

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert result.chunks[0].chunk.text == "beta chunk text"
        assert store.searched == ["vector_index", "default"]

    def test_all_indexes_missing_falls_through(self):
        store = _scripted({})
        engine = RetrievalEngine(store, embedder=FakeEmbedder())

        result = engine.retrieve("alpha", "doc_physics")

        assert result.strategy is not Strategy.VECTOR
        assert len(store.searched) == 4

    def test_embedding_failure_disables_vector_stage(self):
        store = _scripted({"vector_index": [("alpha chunk text", 0.9)]})
        embedder = FakeEmbedder(fail=True)
        engine = RetrievalEngine(store, embedder=embedder)

        result = engine.retrieve("how does the photon scatter", "doc_physics")

        assert embedder.query_calls == 1
        assert store.searched == []
        assert result.strategy is not Strategy.VECTOR

    def test_real_faiss_scores(self):
        store = InMemoryChunkStore()
        store.replace_document(
            "doc_v",
            make_chunks(
                ["close match", "far match"],
                document_id="doc_v",
                embeddings=[[1.0, 0.0, 0.0, 0.0], [0.0, 1.0, 0.0, 0.0]],
            ),
        )
        engine = RetrievalEngine(store, embedder=FakeEmbedder(default=[1.0, 0.0, 0.0, 0.0]))

        result = engine.retrieve("anything", "doc_v")

        # the orthogonal chunk scores exactly 0.5 and is below the floor
        assert [s.chunk.text for s in result.chunks] == ["close match"]


class TestStructureStage:
    """Stage 1: listing questions."""

    def test_numbered_headings_in_document_order(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks(["1. Introduction", "Plain body text without markers at all", "2. Methods"],
                        document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("list the chapters", "doc_x")

        assert result.strategy is Strategy.STRUCTURE
        assert [s.chunk.text for s in result.chunks] == ["1. Introduction", "2. Methods"]

    def test_short_chunks_used_when_nothing_structural(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks(["Heading alpha beta", "y" * 300], document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("list the topics", "doc_x")

        assert result.strategy is Strategy.STRUCTURE
        assert [s.chunk.text for s in result.chunks] == ["Heading alpha beta"]

    def test_structure_limit(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks([f"Chapter {i}" for i in range(1, 15)], document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("list the chapters", "doc_x")

        assert len(result.chunks) == 10


class TestOverviewStage:
    """Stage 2: detail questions about the whole document."""

    def test_weighted_ordering(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks(
                [
                    "This chapter covers scattering.",
                    "Introduction and overview of this book.",
                    "Scope of the text.",
                    "Unrelated paragraph.",
                ],
                document_id="doc_x",
            ),
        )

        result = RetrievalEngine(memory_store).retrieve("give me details of this pdf", "doc_x")

        assert result.strategy is Strategy.OVERVIEW
        assert [s.chunk.text for s in result.chunks] == [
            "Introduction and overview of this book.",
            "This chapter covers scattering.",
            "Scope of the text.",
        ]
        assert [s.score for s in result.chunks] == [7.0, 1.0, 0.0]


class TestKeywordStage:
    """Stage 3: keyword candidates ranked by matches and length band."""

    def test_ranking_is_deterministic(self):
        chunks = [
            make_chunk("energy electron photon " + "a" * 577, index=0),
            make_chunk("energy " + "b" * 1793, index=1),
            make_chunk("energy electron " + "c" * 84, index=2),
        ]
        # give the first chunk three distinct matches
        keywords = ["energy", "electron", "photon"]

        ranked = rank_by_keywords(chunks, keywords)

        assert [s.chunk.chunk_index for s in ranked] == [0, 2, 1]

    def test_length_band_breaks_ties(self):
        in_band = make_chunk("energy electron " + "x" * 600, index=0)
        short = make_chunk("energy electron", index=1)

        ranked = rank_by_keywords([short, in_band], ["energy", "electron"])

        assert [s.chunk.chunk_index for s in ranked] == [0, 1]

    def test_keyword_stage_prefers_content_chunks(self, memory_store):
        long_text = "The photon energy spectrum " + "detail " * 80
        memory_store.replace_document(
            "doc_x",
            make_chunks(["photon energy", long_text], document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("photon energy spectrum", "doc_x")

        assert result.strategy is Strategy.KEYWORD
        assert [s.chunk.text for s in result.chunks] == [long_text]

    def test_front_matter_kept_when_nothing_else(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks(["photon energy"], document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("photon energy", "doc_x")

        assert result.strategy is Strategy.KEYWORD
        assert [s.chunk.text for s in result.chunks] == ["photon energy"]

    def test_boilerplate_escape_hatch(self, memory_store):
        boilerplate = "Oxford Master Series in physics. Course books on photon energy " + "z " * 300
        specific = "Quantum treatment of photon energy levels"
        memory_store.replace_document(
            "doc_x",
            make_chunks([boilerplate, specific], document_id="doc_x"),
        )

        # boilerplate has more keyword matches and would rank first
        result = RetrievalEngine(memory_store).retrieve("physics photon energy", "doc_x")

        assert result.strategy is Strategy.KEYWORD
        assert [s.chunk.text for s in result.chunks] == [specific]

    def test_no_keywords_falls_through(self, memory_store):
        memory_store.replace_document("doc_x", make_chunks(["some text here"], document_id="doc_x"))

        result = RetrievalEngine(memory_store).retrieve("what is this?", "doc_x")

        assert result.strategy is Strategy.SAMPLE


class TestSampleStage:
    """Stage 4: diversity sample."""

    def test_sample_when_nothing_matches(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks([f"paragraph number {i}" for i in range(12)], document_id="doc_x"),
        )

        result = RetrievalEngine(memory_store).retrieve("helium ionisation", "doc_x")

        assert result.strategy is Strategy.SAMPLE
        assert len(result.chunks) == 8

    def test_empty_document_exhausts_cascade(self, memory_store):
        result = RetrievalEngine(memory_store).retrieve("helium ionisation", "x")

        assert result.is_empty
        assert result.strategy is Strategy.NONE


class BrokenStore(ChunkStore):
    """Every query fails."""

    def _fail(self, *args, **kwargs):
        raise RuntimeError("connection refused")

    count_documents = find = aggregate_sample = vector_search = _fail
    delete_many = insert_many = list_documents = _fail


class TestFailureBoundaries:
    """A failing stage counts as an empty stage."""

    def test_failing_stage_falls_through(self, physics_store):
        failing = CountingStore(physics_store, fail_on={"find"})

        result = RetrievalEngine(failing).retrieve("photon energy", "doc_physics")

        assert result.strategy is Strategy.SAMPLE
        assert failing.calls["aggregate_sample"] == 1

    def test_all_stages_failing_returns_empty(self):
        result = RetrievalEngine(BrokenStore(), embedder=FakeEmbedder()).retrieve(
            "photon energy", "doc_physics"
        )

        assert result.is_empty

    def test_custom_settings(self, memory_store):
        memory_store.replace_document(
            "doc_x",
            make_chunks([f"paragraph number {i}" for i in range(12)], document_id="doc_x"),
        )

        engine = RetrievalEngine(memory_store, settings=RetrievalSettings(sample_size=3))

        assert len(engine.retrieve("helium ionisation", "doc_x").chunks) == 3

    def test_stage_order(self, memory_store):
        engine = RetrievalEngine(memory_store)

        assert [s.strategy for s in engine.stages] == [
            Strategy.VECTOR,
            Strategy.STRUCTURE,
            Strategy.OVERVIEW,
            Strategy.KEYWORD,
            Strategy.SAMPLE,
        ]
