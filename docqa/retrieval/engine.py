import logging
import time

from dataclasses import dataclass
from functools import partial
from typing import Callable, List, Optional, Sequence

from docqa.errors import EmbeddingServiceError
from docqa.memory.store import ChunkStore
from docqa.retrieval.heuristics import Heuristics, RetrievalSettings
from docqa.retrieval.result import RetrievalResult, ScoredChunk, Strategy
from docqa.retrieval.stages import (
    QueryContext,
    keyword_stage,
    overview_stage,
    sample_stage,
    structure_stage,
    vector_stage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Stage:
    strategy: Strategy
    applies: Callable[[QueryContext], bool]
    run: Callable[[QueryContext], List[ScoredChunk]]


class RetrievalEngine:
    """
    Ordered cascade of retrieval strategies.

    Order: vector → structure → overview → keyword → sample.
    The first stage that applies to the question and returns at least
    one chunk wins; later stages are never run. A stage that raises is
    logged and treated as having found nothing.
    """

    def __init__(
        self,
        store: ChunkStore,
        embedder=None,
        heuristics: Optional[Heuristics] = None,
        settings: Optional[RetrievalSettings] = None,
    ):

        self._store = store
        self._embedder = embedder
        self._heuristics = heuristics or Heuristics()
        self._settings = settings or RetrievalSettings()
        self._stages = self._build_stages()

    @property
    def stages(self) -> Sequence[Stage]:
        return tuple(self._stages)

    def _build_stages(self) -> List[Stage]:

        store = self._store
        settings = self._settings
        h = self._heuristics

        def listing(ctx):
            return h.is_listing_request(ctx.question)

        def overview(ctx):
            return not listing(ctx) and h.is_overview_request(ctx.question)

        def keyword(ctx):
            return not listing(ctx) and not h.is_overview_request(ctx.question)

        return [
            Stage(
                Strategy.VECTOR,
                lambda ctx: ctx.embedding is not None,
                partial(vector_stage, store, settings),
            ),
            Stage(Strategy.STRUCTURE, listing, partial(structure_stage, store, settings, h)),
            Stage(Strategy.OVERVIEW, overview, partial(overview_stage, store, settings, h)),
            Stage(Strategy.KEYWORD, keyword, partial(keyword_stage, store, settings, h)),
            Stage(
                Strategy.SAMPLE,
                lambda ctx: True,
                partial(sample_stage, store, settings),
            ),
        ]

    # ============================================================
    # PUBLIC API
    # ============================================================

    def retrieve(
        self,
        question: str,
        document_id: str,
        embedding: Optional[List[float]] = None,
    ) -> RetrievalResult:

        start = time.time()

        if embedding is None:
            embedding = self._embed(question)

        ctx = QueryContext(
            question=question,
            document_id=document_id,
            embedding=embedding,
        )

        for stage in self._stages:

            if not stage.applies(ctx):
                continue

            chunks = self._run_stage(stage, ctx)

            if chunks:

                logger.info(
                    "Retrieval stage selected",
                    extra={
                        "doc_id": document_id,
                        "strategy": stage.strategy.value,
                        "chunks": len(chunks),
                        "top_score": chunks[0].score,
                        "latency_seconds": round(time.time() - start, 3),
                    },
                )

                return RetrievalResult(chunks=chunks, strategy=stage.strategy)

        logger.info(
            "Retrieval cascade exhausted",
            extra={"doc_id": document_id},
        )

        return RetrievalResult(chunks=[], strategy=Strategy.NONE)

    # ============================================================
    # INTERNALS
    # ============================================================

    def _embed(self, question: str) -> Optional[List[float]]:

        if self._embedder is None:
            return None

        try:

            return self._embedder.embed_query(question)

        except EmbeddingServiceError as e:

            logger.warning(
                "Question embedding failed, vector stage disabled",
                extra={"error": str(e)},
            )

            return None

    def _run_stage(self, stage: Stage, ctx: QueryContext) -> List[ScoredChunk]:

        try:

            return stage.run(ctx)

        except Exception as e:

            logger.warning(
                "Retrieval stage failed",
                extra={
                    "strategy": stage.strategy.value,
                    "doc_id": ctx.document_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )

            return []
