# tests/conftest.py
import pytest
import sys
import os
import tempfile

from collections import Counter

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep logs, metrics and uploads of the test run out of the working tree
_TEST_ROOT = tempfile.mkdtemp(prefix="docqa-tests-")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("METRICS_PATH", os.path.join(_TEST_ROOT, "metrics.json"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_ROOT, "uploads"))
os.environ.setdefault("DOCUMENT_REGISTRY_PATH", os.path.join(_TEST_ROOT, "registry.json"))
os.environ["STORE_BACKEND"] = "memory"

import numpy as np
from fastapi.testclient import TestClient

from docqa.errors import EmbeddingServiceError
from docqa.memory.chunk import Chunk, ChunkPosition, new_chunk_id
from docqa.memory.registry import DocumentRegistry
from docqa.memory.store import ChunkStore, InMemoryChunkStore
from docqa.services import build_services


def make_chunk(
    text: str,
    document_id: str = "doc_physics",
    index: int = 0,
    page: int = None,
    embedding=None,
    file_name: str = "physics.pdf",
) -> Chunk:

    return Chunk(
        id=new_chunk_id(),
        document_id=document_id,
        text=text,
        position=ChunkPosition(chunk_index=index, page_number=page),
        source_file_name=file_name,
        embedding=embedding,
    )


def make_chunks(texts, document_id: str = "doc_physics", embeddings=None):

    return [
        make_chunk(
            text,
            document_id=document_id,
            index=i,
            page=i + 1,
            embedding=None if embeddings is None else embeddings[i],
        )
        for i, text in enumerate(texts)
    ]


class CountingStore(ChunkStore):
    """
    Wraps a store and counts every call, to check which stages ran.

    ``fail_on`` names methods that raise instead of delegating.
    """

    def __init__(self, inner: ChunkStore, fail_on=()):
        self.inner = inner
        self.calls = Counter()
        self.fail_on = set(fail_on)

    def _call(self, name, *args, **kwargs):

        self.calls[name] += 1

        if name in self.fail_on:
            raise RuntimeError(f"{name} unavailable")

        return getattr(self.inner, name)(*args, **kwargs)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())

    def count_documents(self, chunk_filter):
        return self._call("count_documents", chunk_filter)

    def find(self, chunk_filter, limit=None):
        return self._call("find", chunk_filter, limit=limit)

    def aggregate_sample(self, chunk_filter, size):
        return self._call("aggregate_sample", chunk_filter, size)

    def vector_search(self, document_id, query_vector, k, candidate_pool, index_name):
        return self._call(
            "vector_search", document_id, query_vector,
            k=k, candidate_pool=candidate_pool, index_name=index_name,
        )

    def delete_many(self, chunk_filter):
        return self._call("delete_many", chunk_filter)

    def insert_many(self, chunks):
        return self._call("insert_many", chunks)

    def replace_document(self, document_id, chunks):
        return self._call("replace_document", document_id, chunks)

    def list_documents(self):
        return self._call("list_documents")


class FakeEmbedder:
    """
    Deterministic embedder.

    Texts listed in ``vectors`` get that vector; anything else gets
    ``default``. With ``fail`` set every call raises EmbeddingServiceError.
    """

    def __init__(self, vectors=None, default=None, dim: int = 4, fail: bool = False):
        self.vectors = vectors or {}
        self.dim = dim
        self.default = default if default is not None else [1.0] + [0.0] * (dim - 1)
        self.fail = fail
        self.query_calls = 0

    def embed(self, texts, batch_size: int = 32):

        if self.fail:
            raise EmbeddingServiceError("quota exceeded")

        return np.asarray(
            [self.vectors.get(t, self.default) for t in texts],
            dtype="float32",
        )

    def embed_query(self, text):

        self.query_calls += 1

        if self.fail:
            raise EmbeddingServiceError("quota exceeded")

        return list(self.vectors.get(text, self.default))


class FakeLLM:
    """LLM client returning canned replies, or raising when ``error`` is set."""

    def __init__(self, reply: str = "", error: Exception = None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt, system_prompt=None):

        self.prompts.append(prompt)

        if self.error is not None:
            raise self.error

        return self.reply


def build_pdf(lines) -> bytes:
    """
    Single-page PDF with one text line per entry, with a valid xref table.
    """

    def escape(line: str) -> str:
        return line.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")

    ops = ["BT", "/F1 12 Tf", "72 720 Td"]

    for i, line in enumerate(lines):
        if i:
            ops.append("0 -16 Td")
        ops.append(f"({escape(line)}) Tj")

    ops.append("ET")

    stream = "\n".join(ops).encode("latin-1")

    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        b"/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length " + str(len(stream)).encode() + b" >>\nstream\n" + stream + b"\nendstream",
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets = []

    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"

    xref_at = len(out)

    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"

    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode()

    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_at}\n%%EOF\n"
    ).encode()

    return bytes(out)


PHYSICS_TEXTS = [
    "Chapter 1. Photon interaction with matter. The photon transfers energy "
    "to the electron through the photoelectric effect and Compton scattering.",
    "The electron binding energy of helium is computed with a variational "
    "approximation. The helium atom has two electrons and the energy is "
    "bounded from above by the variational estimate.",
    "Radiation dose in medical physics depends on the photon energy and the "
    "attenuation of the beam inside the patient.",
]


@pytest.fixture
def physics_chunks():
    return make_chunks(PHYSICS_TEXTS)


@pytest.fixture
def memory_store():
    return InMemoryChunkStore(seed=7)


@pytest.fixture
def physics_store(memory_store, physics_chunks):
    memory_store.replace_document("doc_physics", physics_chunks)
    return memory_store


@pytest.fixture
def registry(tmp_path):
    return DocumentRegistry(str(tmp_path / "registry.json"))


@pytest.fixture
def services(memory_store, registry):
    return build_services(
        store=memory_store,
        registry=registry,
        with_defaults=False,
    )


@pytest.fixture
def client(services):
    """
    FastAPI test client with an injected in-memory service bundle.
    """
    from docqa.main import app

    app.state.services = services

    yield TestClient(app, raise_server_exceptions=False)

    app.state.services = None


@pytest.fixture
def sample_pdf_content():
    return build_pdf(PHYSICS_TEXTS[0].split(". "))


@pytest.fixture
def non_pdf_content():
    return b"This is a plain text file, not a PDF."


@pytest.fixture
def large_pdf_content():
    return b"%PDF-1.4\n" + b"x" * (11 * 1024 * 1024) + b"\n%%EOF"
