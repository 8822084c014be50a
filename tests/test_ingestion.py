# tests/test_ingestion.py
import pytest

from datetime import timedelta

from conftest import FakeEmbedder, build_pdf, make_chunk

from docqa.memory.filters import DocumentIs
from docqa.memory.loader import PageText, load_pdf_pages
from docqa.workflow.ingestion import IngestionError, ingest_pages, ingest_pdf


def _pages(*texts):
    return [PageText(page_number=i, text=t) for i, t in enumerate(texts, start=1)]


class TestIngestPages:
    """Chunking, embedding and storing extracted pages."""

    def test_chunks_keep_page_numbers(self, memory_store):
        stored = ingest_pages(
            _pages("Photon interaction with matter.", "Helium binding energy."),
            "doc_a", "a.pdf", memory_store,
        )

        chunks = memory_store.find(DocumentIs("doc_a"))

        assert stored == 2
        assert [c.page_number for c in chunks] == [1, 2]
        assert [c.chunk_index for c in chunks] == [0, 1]
        assert all(c.source_file_name == "a.pdf" for c in chunks)

    def test_created_at_is_utc(self, memory_store):
        ingest_pages(_pages("Photon interaction with matter."), "doc_a", "a.pdf", memory_store)

        chunk = memory_store.find(DocumentIs("doc_a"))[0]

        assert chunk.created_at.utcoffset() == timedelta(0)
        assert make_chunk("standalone text").created_at.utcoffset() == timedelta(0)

    def test_embeddings_are_attached(self, memory_store):
        ingest_pages(
            _pages("Photon interaction with matter."),
            "doc_a", "a.pdf", memory_store,
            embedder=FakeEmbedder(default=[0.0, 1.0, 0.0, 0.0]),
        )

        chunk = memory_store.find(DocumentIs("doc_a"))[0]

        assert chunk.embedding == [0.0, 1.0, 0.0, 0.0]

    def test_embedding_failure_still_stores_text(self, memory_store):
        stored = ingest_pages(
            _pages("Photon interaction with matter."),
            "doc_a", "a.pdf", memory_store,
            embedder=FakeEmbedder(fail=True),
        )

        chunk = memory_store.find(DocumentIs("doc_a"))[0]

        assert stored == 1
        assert chunk.embedding is None

    def test_reingestion_replaces_chunk_set(self, memory_store):
        ingest_pages(_pages("old one", "old two", "old three"), "doc_a", "a.pdf", memory_store)
        ingest_pages(_pages("new text"), "doc_a", "a.pdf", memory_store)

        chunks = memory_store.find(DocumentIs("doc_a"))

        assert [c.text for c in chunks] == ["new text"]

    def test_reingestion_leaves_other_documents(self, memory_store):
        ingest_pages(_pages("first"), "doc_a", "a.pdf", memory_store)
        ingest_pages(_pages("second"), "doc_b", "b.pdf", memory_store)
        ingest_pages(_pages("first again"), "doc_a", "a.pdf", memory_store)

        assert memory_store.list_documents() == {"doc_a": 1, "doc_b": 1}

    def test_no_text_raises(self, memory_store):
        with pytest.raises(IngestionError):
            ingest_pages([], "doc_a", "a.pdf", memory_store)

        assert memory_store.count_documents(DocumentIs("doc_a")) == 0


class TestIngestPdf:
    """End-to-end from a PDF file on disk."""

    def test_pdf_pages_are_extracted(self, tmp_path):
        path = tmp_path / "physics.pdf"
        path.write_bytes(build_pdf(["Photon interaction with matter", "Compton scattering"]))

        pages = load_pdf_pages(str(path))

        assert len(pages) == 1
        assert pages[0].page_number == 1
        assert "Photon interaction" in pages[0].text

    def test_ingest_pdf(self, tmp_path, memory_store):
        path = tmp_path / "physics.pdf"
        path.write_bytes(build_pdf(["Photon interaction with matter"]))

        stored = ingest_pdf(str(path), "doc_pdf", "physics.pdf", memory_store)

        assert stored == 1
        assert "Photon" in memory_store.find(DocumentIs("doc_pdf"))[0].text
