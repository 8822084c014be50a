"""
Retrieval cascade stages.

Each stage is a plain function of the store, its settings and a
QueryContext, returning ranked ScoredChunks (empty when it finds
nothing). Stages raise freely; the engine wraps every call in a
failure boundary.
"""

import logging

from dataclasses import dataclass
from typing import List, Optional, Sequence

from docqa.errors import IndexNotFound
from docqa.memory.chunk import Chunk
from docqa.memory.filters import (
    DocumentIs,
    Not,
    TextContains,
    TextLength,
    TextMatches,
    all_of,
    any_of,
)
from docqa.memory.store import ChunkStore
from docqa.retrieval.heuristics import (
    HEADING_MAX_LENGTH,
    HEADING_MIN_LENGTH,
    LONG_CONTENT_LENGTH,
    PREFERRED_LENGTH_BAND,
    Heuristics,
    RetrievalSettings,
    extract_keywords,
    keyword_matches,
)
from docqa.retrieval.result import ScoredChunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryContext:
    question: str
    document_id: str
    embedding: Optional[List[float]] = None


# ============================================================
# STAGE 0: VECTOR SIMILARITY
# ============================================================

def vector_stage(
    store: ChunkStore,
    settings: RetrievalSettings,
    ctx: QueryContext,
) -> List[ScoredChunk]:
    """
    Top-k similarity search scoped to the document.

    The primary index is tried first, then each alternative index when
    the previous one is missing or returns nothing. Hits below the
    similarity floor are dropped, so a best score under the floor
    empties the result.
    """

    hits = []

    for index_name in (settings.index_name, *settings.alternative_index_names):

        try:

            hits = store.vector_search(
                ctx.document_id,
                ctx.embedding,
                k=settings.top_k,
                candidate_pool=settings.candidate_pool,
                index_name=index_name,
            )

        except IndexNotFound:

            logger.info(
                "Vector index unavailable",
                extra={"index": index_name, "doc_id": ctx.document_id},
            )

            continue

        if hits:
            break

    if not hits:
        return []

    hits = sorted(hits, key=lambda hit: hit[1], reverse=True)

    best = hits[0][1]

    if best < settings.similarity_floor:

        logger.info(
            "Best match below similarity floor",
            extra={
                "doc_id": ctx.document_id,
                "best_score": round(best, 4),
                "floor": settings.similarity_floor,
            },
        )

        return []

    return [
        ScoredChunk(chunk=chunk, score=score)
        for chunk, score in hits
        if score >= settings.similarity_floor
    ]


# ============================================================
# STAGE 1: STRUCTURE / LISTING
# ============================================================

def structure_stage(
    store: ChunkStore,
    settings: RetrievalSettings,
    heuristics: Heuristics,
    ctx: QueryContext,
) -> List[ScoredChunk]:

    document = DocumentIs(ctx.document_id)

    structural = any_of(
        *(TextMatches(pattern, flags) for pattern, flags in heuristics.structure_patterns)
    )

    chunks = store.find(document & structural, limit=settings.structure_limit)

    if not chunks:

        # short chunks are likely headings
        headings = TextLength(
            greater_than=HEADING_MIN_LENGTH,
            less_than=HEADING_MAX_LENGTH,
        )

        chunks = store.find(document & headings, limit=settings.structure_limit)

    return [ScoredChunk(chunk=chunk) for chunk in chunks]


# ============================================================
# STAGE 2: OVERVIEW
# ============================================================

def overview_stage(
    store: ChunkStore,
    settings: RetrievalSettings,
    heuristics: Heuristics,
    ctx: QueryContext,
) -> List[ScoredChunk]:

    overview = any_of(
        *(TextMatches(pattern, flags) for pattern, flags in heuristics.overview_patterns)
    )

    chunks = store.find(
        DocumentIs(ctx.document_id) & overview,
        limit=settings.overview_limit,
    )

    scored = [
        ScoredChunk(chunk=chunk, score=float(heuristics.overview_score(chunk.text)))
        for chunk in chunks
    ]

    scored.sort(key=lambda s: s.score, reverse=True)

    return scored[:settings.overview_keep]


# ============================================================
# STAGE 3: KEYWORD
# ============================================================

def rank_by_keywords(chunks: Sequence[Chunk], keywords: Sequence[str]) -> List[ScoredChunk]:
    """
    Order chunks by distinct keyword matches (descending), breaking ties
    in favour of chunks whose length falls in the preferred band.
    The sort is stable, so remaining ties keep store order.
    """

    low, high = PREFERRED_LENGTH_BAND

    scored = [
        (chunk, keyword_matches(chunk.text, keywords))
        for chunk in chunks
    ]

    scored.sort(key=lambda item: (-item[1], not (low <= len(item[0].text) <= high)))

    return [ScoredChunk(chunk=chunk, score=float(matches)) for chunk, matches in scored]


def keyword_stage(
    store: ChunkStore,
    settings: RetrievalSettings,
    heuristics: Heuristics,
    ctx: QueryContext,
) -> List[ScoredChunk]:

    keywords = extract_keywords(ctx.question, heuristics.stop_words)

    if not keywords:
        return []

    document = DocumentIs(ctx.document_id)

    any_keyword = any_of(*(TextContains(keyword) for keyword in keywords))

    candidates = store.find(document & any_keyword, limit=settings.keyword_candidates)

    if not candidates:
        return []

    content_docs = [c for c in candidates if not heuristics.is_front_matter(c.text)]

    ranked = rank_by_keywords(content_docs or candidates, keywords)[:settings.keyword_keep]

    logger.info(
        "Keyword candidates ranked",
        extra={
            "doc_id": ctx.document_id,
            "keywords": keywords,
            "candidates": len(candidates),
            "content_docs": len(content_docs),
        },
    )

    if ranked and heuristics.has_boilerplate(ranked[0].chunk.text):

        boilerplate = any_of(
            *(TextContains(marker) for marker in heuristics.boilerplate_markers)
        )

        specific = store.find(
            all_of(
                document,
                any_keyword,
                any_of(
                    TextMatches(heuristics.content_indicator),
                    TextLength(greater_than=LONG_CONTENT_LENGTH),
                ),
                Not(boilerplate),
            ),
            limit=settings.keyword_keep,
        )

        if specific:

            ranked = [
                ScoredChunk(chunk=chunk, score=float(keyword_matches(chunk.text, keywords)))
                for chunk in specific
            ]

    return ranked


# ============================================================
# STAGE 4: DIVERSITY SAMPLE
# ============================================================

def sample_stage(
    store: ChunkStore,
    settings: RetrievalSettings,
    ctx: QueryContext,
) -> List[ScoredChunk]:

    chunks = store.aggregate_sample(DocumentIs(ctx.document_id), settings.sample_size)

    return [ScoredChunk(chunk=chunk) for chunk in chunks]
