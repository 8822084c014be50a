import logging

from typing import Optional

from docqa.config import GATE_SAMPLE_SIZE
from docqa.memory.filters import DocumentIs
from docqa.memory.store import ChunkStore
from docqa.retrieval.heuristics import Heuristics, question_terms

logger = logging.getLogger(__name__)


class RelevanceGate:
    """
    Cheap lexical pre-filter run before retrieval.

    Meta questions about the document always pass. Questions on
    obviously unrelated topics are rejected without touching the store.
    Everything else must share at least one term with the vocabulary
    found in the first chunks of the document.

    The gate never raises: an empty document or a failing store lets
    the question through, leaving the verdict to the cascade.
    """

    def __init__(
        self,
        store: ChunkStore,
        heuristics: Optional[Heuristics] = None,
        sample_size: int = GATE_SAMPLE_SIZE,
    ):

        self._store = store
        self._heuristics = heuristics or Heuristics()
        self._sample_size = sample_size

    def is_plausibly_relevant(self, question: str, document_id: str) -> bool:

        h = self._heuristics

        if h.is_meta_question(question):
            return True

        if h.matches_unrelated(question):

            logger.info(
                "Question matches an unrelated topic",
                extra={"doc_id": document_id},
            )

            return False

        terms = question_terms(question)

        if not terms:
            return True

        try:

            sample = self._store.find(DocumentIs(document_id), limit=self._sample_size)

        except Exception as e:

            logger.warning(
                "Relevance sample failed, letting question through",
                extra={"doc_id": document_id, "error": str(e)},
            )

            return True

        if not sample:
            return True

        document_terms = h.document_terms(" ".join(chunk.text for chunk in sample))

        overlap = any(
            term in doc_term or doc_term in term
            for term in terms
            for doc_term in document_terms
        )

        if not overlap:

            logger.info(
                "Question shares no terms with the document",
                extra={
                    "doc_id": document_id,
                    "question_terms": terms,
                    "document_terms": sorted(document_terms),
                },
            )

        return overlap
