import logging
import random
import threading
import uuid

from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import faiss
import numpy as np

from qdrant_client.http.models import (
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointIdsList,
    PointStruct,
    SearchParams,
)

from docqa.config import VECTOR_INDEX_NAME
from docqa.errors import DocQAError, IndexNotFound, StoreUnavailable
from docqa.memory.chunk import Chunk, ChunkPosition, utc_now
from docqa.memory.filters import ChunkFilter, DocumentIs, MatchAll, is_document_only
from docqa.memory.qdrant_client import QdrantVectorDB


logger = logging.getLogger(__name__)


def cosine_to_unit(score: float) -> float:
    """Map a cosine similarity in [-1, 1] onto the 0-1 scale used by the cascade."""
    return float(min(1.0, max(0.0, (1.0 + score) / 2.0)))


def _normalize(vectors: np.ndarray) -> np.ndarray:

    norms = np.linalg.norm(
        vectors,
        axis=1,
        keepdims=True,
    )

    return vectors / np.clip(norms, 1e-10, None)


def _check_unique_positions(chunks: Iterable[Chunk]):

    seen = set()

    for chunk in chunks:

        key = (chunk.document_id, chunk.chunk_index)

        if key in seen:
            raise ValueError(
                f"Duplicate chunk position {chunk.chunk_index} "
                f"for document {chunk.document_id}"
            )

        seen.add(key)


class ChunkStore(ABC):
    """
    Persistent collection of embedded text chunks.

    Every read is scoped by a ChunkFilter; results of ``find`` come back
    in document order (document id, then chunk index).
    """

    @abstractmethod
    def count_documents(self, chunk_filter: ChunkFilter) -> int:
        ...

    @abstractmethod
    def find(
        self, chunk_filter: ChunkFilter, limit: Optional[int] = None
    ) -> List[Chunk]:
        ...

    @abstractmethod
    def aggregate_sample(self, chunk_filter: ChunkFilter, size: int) -> List[Chunk]:
        ...

    @abstractmethod
    def vector_search(
        self,
        document_id: str,
        query_vector: Sequence[float],
        k: int,
        candidate_pool: int,
        index_name: str,
    ) -> List[Tuple[Chunk, float]]:
        ...

    @abstractmethod
    def delete_many(self, chunk_filter: ChunkFilter) -> int:
        ...

    @abstractmethod
    def insert_many(self, chunks: Sequence[Chunk]) -> int:
        ...

    @abstractmethod
    def list_documents(self) -> Dict[str, int]:
        ...

    def replace_document(self, document_id: str, chunks: Sequence[Chunk]) -> int:
        """Delete every chunk of ``document_id`` and insert ``chunks`` in its place."""

        self.delete_many(DocumentIs(document_id))

        return self.insert_many(chunks)

    def get_stats(self) -> dict:

        documents = self.list_documents()

        return {
            "total_documents": len(documents),
            "total_chunks": sum(documents.values()),
            "documents": documents,
        }


# ============================================================
# IN-MEMORY STORE (FAISS)
# ============================================================

@dataclass(frozen=True)
class _DocumentIndex:
    index: "faiss.Index"
    chunks: Tuple[Chunk, ...]


@dataclass(frozen=True)
class _DocumentState:
    chunks: Tuple[Chunk, ...]
    index: Optional[_DocumentIndex] = None


class InMemoryChunkStore(ChunkStore):
    """
    Single-process chunk store with one FAISS inner-product index per document.

    Each document's chunk tuple and index are built off to the side and
    swapped in under the write lock, so readers always see either the
    old or the new chunk set of a document, never a mix.
    """

    def __init__(
        self,
        index_names: Sequence[str] = (VECTOR_INDEX_NAME,),
        seed: Optional[int] = None,
    ):

        self._index_names = frozenset(index_names)
        self._documents: Dict[str, _DocumentState] = {}
        self._write_lock = threading.Lock()
        self._random = random.Random(seed)

        logger.info(
            "In-memory chunk store initialized",
            extra={"index_names": sorted(self._index_names)},
        )

    # ------------------------------------------------------------
    # READS
    # ------------------------------------------------------------

    def _chunks_of(self, document_id: str) -> Tuple[Chunk, ...]:

        state = self._documents.get(document_id)

        return state.chunks if state is not None else ()

    def _candidates(self, chunk_filter: ChunkFilter) -> Iterable[Chunk]:

        document_id = chunk_filter.document_id()

        if document_id is not None:
            return self._chunks_of(document_id)

        snapshot = list(self._documents.values())

        return (chunk for state in snapshot for chunk in state.chunks)

    def find(self, chunk_filter, limit=None):

        results = []

        for chunk in self._candidates(chunk_filter):

            if limit is not None and len(results) >= limit:
                break

            if chunk_filter.matches(chunk):
                results.append(chunk)

        return results

    def count_documents(self, chunk_filter):

        return sum(
            1 for chunk in self._candidates(chunk_filter)
            if chunk_filter.matches(chunk)
        )

    def aggregate_sample(self, chunk_filter, size):

        matches = self.find(chunk_filter)

        return self._random.sample(matches, min(size, len(matches)))

    def vector_search(self, document_id, query_vector, k, candidate_pool, index_name):

        if index_name not in self._index_names:
            raise IndexNotFound(index_name)

        state = self._documents.get(document_id)

        entry = state.index if state is not None else None

        if entry is None or entry.index.ntotal == 0:
            return []

        query = np.asarray(query_vector, dtype="float32").reshape(1, -1)

        if query.shape[1] != entry.index.d:
            raise ValueError(
                f"Query dimension {query.shape[1]} does not match "
                f"index dimension {entry.index.d}"
            )

        query = _normalize(query)

        pool = min(max(candidate_pool, k), entry.index.ntotal)

        scores, ids = entry.index.search(query, pool)

        hits = []

        for score, idx in zip(scores[0], ids[0]):

            if idx < 0:
                continue

            hits.append((entry.chunks[idx], cosine_to_unit(float(score))))

            if len(hits) >= k:
                break

        return hits

    def list_documents(self):

        return {
            document_id: len(state.chunks)
            for document_id, state in list(self._documents.items())
        }

    # ------------------------------------------------------------
    # WRITES
    # ------------------------------------------------------------

    def _build_index(self, chunks: Tuple[Chunk, ...]) -> Optional[_DocumentIndex]:

        embedded = tuple(c for c in chunks if c.embedding is not None)

        if not embedded:
            return None

        vectors = np.asarray([c.embedding for c in embedded], dtype="float32")

        index = faiss.IndexFlatIP(vectors.shape[1])
        index.add(_normalize(vectors))

        return _DocumentIndex(index=index, chunks=embedded)

    def _swap(self, document_id: str, chunks: Tuple[Chunk, ...],
              index: Optional[_DocumentIndex]):

        if chunks:
            self._documents[document_id] = _DocumentState(chunks=chunks, index=index)
        else:
            self._documents.pop(document_id, None)

    def insert_many(self, chunks):

        by_document: Dict[str, List[Chunk]] = {}

        for chunk in chunks:
            by_document.setdefault(chunk.document_id, []).append(chunk)

        with self._write_lock:

            for document_id, new_chunks in by_document.items():

                merged = list(self._chunks_of(document_id)) + new_chunks

                _check_unique_positions(merged)

                ordered = tuple(sorted(merged, key=lambda c: c.chunk_index))

                self._swap(document_id, ordered, self._build_index(ordered))

        return len(chunks)

    def delete_many(self, chunk_filter):

        removed = 0

        with self._write_lock:

            document_id = chunk_filter.document_id()

            targets = (
                [document_id] if document_id is not None
                else list(self._documents.keys())
            )

            for target in targets:

                current = self._chunks_of(target)

                kept = tuple(c for c in current if not chunk_filter.matches(c))

                if len(kept) == len(current):
                    continue

                removed += len(current) - len(kept)

                self._swap(target, kept, self._build_index(kept))

        return removed

    def replace_document(self, document_id, chunks):

        for chunk in chunks:
            if chunk.document_id != document_id:
                raise ValueError(
                    f"Chunk {chunk.id} belongs to {chunk.document_id}, "
                    f"not {document_id}"
                )

        _check_unique_positions(chunks)

        ordered = tuple(sorted(chunks, key=lambda c: c.chunk_index))

        index = self._build_index(ordered)

        with self._write_lock:
            self._swap(document_id, ordered, index)

        logger.info(
            "Document chunks replaced",
            extra={"doc_id": document_id, "chunks": len(ordered)},
        )

        return len(ordered)


# ============================================================
# QDRANT STORE
# ============================================================

@contextmanager
def _store_errors(operation: str):

    try:
        yield

    except DocQAError:
        raise

    except Exception as e:

        logger.error(
            "Chunk store operation failed",
            extra={"operation": operation, "error": str(e)},
        )

        raise StoreUnavailable(f"{operation} failed: {e}") from e


class QdrantChunkStore(ChunkStore):
    """
    Chunk store backed by a Qdrant collection.

    Named vectors of the collection play the role of vector indexes.
    Regex and length predicates are evaluated client-side after the
    document id filter has been pushed down to Qdrant.

    Each replace_document writes a new ``generation`` tag; reads are
    pinned to the current generation of a document once this process
    has written it, so a query never mixes old and new chunk sets.
    """

    _SCROLL_BATCH = 256
    _UPSERT_BATCH = 128

    def __init__(self, db: QdrantVectorDB, seed: Optional[int] = None):

        self._db = db
        self._client = db.client
        self._collection = db.collection
        self._generations: Dict[str, str] = {}
        self._lock = threading.Lock()
        self._random = random.Random(seed)

    # ------------------------------------------------------------
    # PAYLOAD MAPPING
    # ------------------------------------------------------------

    @staticmethod
    def _to_payload(chunk: Chunk, generation: str) -> dict:

        return {
            "chunk_id": chunk.id,
            "doc_id": chunk.document_id,
            "text": chunk.text,
            "chunk_idx": chunk.chunk_index,
            "page_number": chunk.page_number,
            "file_name": chunk.source_file_name,
            "created_at": chunk.created_at.isoformat(),
            "generation": generation,
        }

    @staticmethod
    def _from_payload(payload: dict) -> Chunk:

        created_at = payload.get("created_at")

        return Chunk(
            id=payload.get("chunk_id") or uuid.uuid4().hex,
            document_id=payload["doc_id"],
            text=payload["text"],
            position=ChunkPosition(
                chunk_index=payload.get("chunk_idx") or 0,
                page_number=payload.get("page_number"),
            ),
            source_file_name=payload.get("file_name"),
            created_at=(
                datetime.fromisoformat(created_at) if created_at
                else utc_now()
            ),
        )

    def _document_conditions(self, document_id: str) -> List[FieldCondition]:

        conditions = [
            FieldCondition(key="doc_id", match=MatchValue(value=document_id))
        ]

        generation = self._generations.get(document_id)

        if generation is not None:
            conditions.append(
                FieldCondition(key="generation", match=MatchValue(value=generation))
            )

        return conditions

    def _qdrant_filter(self, chunk_filter: ChunkFilter) -> Optional[Filter]:

        document_id = chunk_filter.document_id()

        if document_id is None:
            return None

        return Filter(must=self._document_conditions(document_id))

    def _is_current(self, chunk_doc: str, generation: Optional[str]) -> bool:

        current = self._generations.get(chunk_doc)

        return current is None or current == generation

    def _load(self, chunk_filter: ChunkFilter) -> List[Tuple[str, Chunk]]:

        records = []
        offset = None

        with _store_errors("scroll"):

            while True:

                points, offset = self._client.scroll(
                    collection_name=self._collection,
                    scroll_filter=self._qdrant_filter(chunk_filter),
                    limit=self._SCROLL_BATCH,
                    offset=offset,
                    with_payload=True,
                    with_vectors=False,
                )

                for point in points:

                    payload = point.payload or {}

                    if not payload.get("text") or not payload.get("doc_id"):
                        continue

                    if not self._is_current(payload["doc_id"], payload.get("generation")):
                        continue

                    records.append((point.id, self._from_payload(payload)))

                if offset is None:
                    break

        records.sort(key=lambda r: (r[1].document_id, r[1].chunk_index))

        return records

    # ------------------------------------------------------------
    # READS
    # ------------------------------------------------------------

    def find(self, chunk_filter, limit=None):

        results = []

        for _, chunk in self._load(chunk_filter):

            if limit is not None and len(results) >= limit:
                break

            if chunk_filter.matches(chunk):
                results.append(chunk)

        return results

    def count_documents(self, chunk_filter):

        if is_document_only(chunk_filter):

            with _store_errors("count"):

                response = self._client.count(
                    collection_name=self._collection,
                    count_filter=self._qdrant_filter(chunk_filter),
                    exact=True,
                )

            return response.count

        return len(self.find(chunk_filter))

    def aggregate_sample(self, chunk_filter, size):

        matches = self.find(chunk_filter)

        return self._random.sample(matches, min(size, len(matches)))

    def vector_search(self, document_id, query_vector, k, candidate_pool, index_name):

        if index_name not in self._db.vector_names:
            raise IndexNotFound(index_name)

        with _store_errors("vector_search"):

            response = self._client.query_points(
                collection_name=self._collection,
                query=[float(v) for v in query_vector],
                using=index_name,
                query_filter=Filter(must=self._document_conditions(document_id)),
                search_params=SearchParams(hnsw_ef=candidate_pool),
                limit=k,
                with_payload=True,
            )

        hits = []

        for point in response.points:

            payload = point.payload or {}

            if not payload.get("text"):
                continue

            hits.append((self._from_payload(payload), cosine_to_unit(point.score)))

        return hits

    def list_documents(self):

        counts = Counter()

        for _, chunk in self._load(MatchAll()):
            counts[chunk.document_id] += 1

        return dict(counts)

    # ------------------------------------------------------------
    # WRITES
    # ------------------------------------------------------------

    def _points(self, chunks: Sequence[Chunk], generation: str) -> List[PointStruct]:

        points = []

        for chunk in chunks:

            vectors = {}

            if chunk.embedding is not None:
                vectors = {
                    name: [float(v) for v in chunk.embedding]
                    for name in self._db.vector_names
                }

            points.append(
                PointStruct(
                    id=str(uuid.uuid5(uuid.NAMESPACE_OID, f"{generation}:{chunk.id}")),
                    vector=vectors,
                    payload=self._to_payload(chunk, generation),
                )
            )

        return points

    def _upsert(self, chunks: Sequence[Chunk], generation: str):

        points = self._points(chunks, generation)

        with _store_errors("upsert"):

            for start in range(0, len(points), self._UPSERT_BATCH):

                self._client.upsert(
                    collection_name=self._collection,
                    points=points[start:start + self._UPSERT_BATCH],
                    wait=True,
                )

    def insert_many(self, chunks):

        _check_unique_positions(chunks)

        by_document: Dict[str, List[Chunk]] = {}

        for chunk in chunks:
            by_document.setdefault(chunk.document_id, []).append(chunk)

        for document_id, new_chunks in by_document.items():

            existing = {c.chunk_index for c in self.find(DocumentIs(document_id))}

            clash = [c.chunk_index for c in new_chunks if c.chunk_index in existing]

            if clash:
                raise ValueError(
                    f"Duplicate chunk position {clash[0]} for document {document_id}"
                )

            generation = self._generations.get(document_id) or ""

            self._upsert(new_chunks, generation)

        return len(chunks)

    def delete_many(self, chunk_filter):

        if is_document_only(chunk_filter):

            document_id = chunk_filter.document_id()

            removed = self.count_documents(chunk_filter)

            with _store_errors("delete"):

                self._client.delete(
                    collection_name=self._collection,
                    points_selector=FilterSelector(
                        filter=Filter(
                            must=[
                                FieldCondition(
                                    key="doc_id",
                                    match=MatchValue(value=document_id),
                                )
                            ]
                        )
                    ),
                    wait=True,
                )

            with self._lock:
                self._generations.pop(document_id, None)

            return removed

        point_ids = [
            point_id for point_id, chunk in self._load(chunk_filter)
            if chunk_filter.matches(chunk)
        ]

        if not point_ids:
            return 0

        with _store_errors("delete"):

            self._client.delete(
                collection_name=self._collection,
                points_selector=PointIdsList(points=point_ids),
                wait=True,
            )

        return len(point_ids)

    def replace_document(self, document_id, chunks):

        for chunk in chunks:
            if chunk.document_id != document_id:
                raise ValueError(
                    f"Chunk {chunk.id} belongs to {chunk.document_id}, "
                    f"not {document_id}"
                )

        _check_unique_positions(chunks)

        generation = uuid.uuid4().hex

        self._upsert(chunks, generation)

        with self._lock:
            self._generations[document_id] = generation

        # Older generations are invisible from here on, drop them
        with _store_errors("delete"):

            self._client.delete(
                collection_name=self._collection,
                points_selector=FilterSelector(
                    filter=Filter(
                        must=[
                            FieldCondition(
                                key="doc_id", match=MatchValue(value=document_id)
                            )
                        ],
                        must_not=[
                            FieldCondition(
                                key="generation", match=MatchValue(value=generation)
                            )
                        ],
                    )
                ),
                wait=True,
            )

        logger.info(
            "Document chunks replaced",
            extra={
                "doc_id": document_id,
                "chunks": len(chunks),
                "generation": generation,
            },
        )

        return len(chunks)
