# docqa/workflow/ingestion.py

"""
PDF ingestion.

loader → chunker → embedder → chunk store

Re-ingesting a document id replaces its previous chunk set in one
atomic step, so readers never see a mix of old and new chunks.
"""

import logging
import time

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from docqa.config import MAX_CHUNKS_PER_DOCUMENT
from docqa.errors import EmbeddingServiceError
from docqa.memory.chunk import Chunk, ChunkPosition, new_chunk_id
from docqa.memory.chunker import TextWindow, chunk_pages
from docqa.memory.loader import PageText, load_pdf_pages
from docqa.memory.store import ChunkStore

logger = logging.getLogger(__name__)


class IngestionError(ValueError):
    """Raised when a document yields nothing that can be stored."""


def build_chunks(
    windows: Sequence[TextWindow],
    document_id: str,
    file_name: Optional[str],
    embeddings=None,
) -> List[Chunk]:

    created_at = datetime.now(timezone.utc)

    chunks = []

    for index, window in enumerate(windows):

        embedding = None

        if embeddings is not None:
            embedding = [float(x) for x in embeddings[index]]

        chunks.append(
            Chunk(
                id=new_chunk_id(),
                document_id=document_id,
                text=window.text,
                position=ChunkPosition(chunk_index=index, page_number=window.page_number),
                source_file_name=file_name,
                embedding=embedding,
                created_at=created_at,
            )
        )

    return chunks


def _embed_windows(windows: Sequence[TextWindow], embedder, document_id: str):

    if embedder is None:
        return None

    try:

        return embedder.embed([w.text for w in windows])

    except EmbeddingServiceError as e:

        logger.warning(
            "Embedding failed, storing chunks without vectors",
            extra={"doc_id": document_id, "error": str(e)},
        )

        return None


def ingest_pages(
    pages: Sequence[PageText],
    document_id: str,
    file_name: Optional[str],
    store: ChunkStore,
    embedder=None,
) -> int:
    """
    Chunk, embed and store already extracted pages.

    Returns the number of chunks stored.
    """

    start = time.time()

    windows = chunk_pages(pages)

    if not windows:
        raise IngestionError("No text extracted")

    if len(windows) > MAX_CHUNKS_PER_DOCUMENT:

        logger.warning(
            "Chunk limit reached, truncating",
            extra={
                "doc_id": document_id,
                "chunks": len(windows),
                "max_allowed": MAX_CHUNKS_PER_DOCUMENT,
            },
        )

        windows = windows[:MAX_CHUNKS_PER_DOCUMENT]

    embeddings = _embed_windows(windows, embedder, document_id)

    chunks = build_chunks(windows, document_id, file_name, embeddings)

    stored = store.replace_document(document_id, chunks)

    logger.info(
        "Document ingestion complete",
        extra={
            "doc_id": document_id,
            "chunks": stored,
            "embedded": embeddings is not None,
            "latency_seconds": round(time.time() - start, 3),
        },
    )

    return stored


def ingest_pdf(
    file_path: str,
    document_id: str,
    file_name: Optional[str],
    store: ChunkStore,
    embedder=None,
) -> int:

    pages = load_pdf_pages(file_path)

    return ingest_pages(pages, document_id, file_name, store, embedder)
