# docqa/workflow/document_qa.py

import logging

from typing import Dict, Optional, Sequence

from docqa.config import ANSWER_MODE
from docqa.errors import Irrelevant, NoDocuments
from docqa.memory.filters import DocumentIs
from docqa.memory.store import ChunkStore
from docqa.retrieval.engine import RetrievalEngine
from docqa.retrieval.gate import RelevanceGate
from docqa.retrieval.result import RetrievalResult, Strategy
from docqa.workflow.composer import (
    IRRELEVANT_MESSAGE,
    NO_DOCUMENTS_MESSAGE,
    NO_MATCH_MESSAGE,
    AnswerKind,
    ResponseComposer,
    build_sources,
    classify_question,
)

logger = logging.getLogger(__name__)


def _special_response(answer: str, outcome: str) -> Dict:

    return {
        "answer": answer,
        "sources": [],
        "strategy": Strategy.NONE.value,
        "top_score": None,
        "outcome": outcome,
    }


def _retrieve(
    question: str,
    document_id: str,
    engine: RetrievalEngine,
    gate: RelevanceGate,
    store: ChunkStore,
) -> RetrievalResult:
    """
    Gate, then cascade.

    Raises Irrelevant when the gate rejects the question and NoDocuments
    when the document has no chunks at all. Returns an empty result when
    the document exists but nothing matched. Store errors from the final
    count propagate.
    """

    if not gate.is_plausibly_relevant(question, document_id):
        raise Irrelevant(question)

    result = engine.retrieve(question, document_id)

    if result.is_empty and store.count_documents(DocumentIs(document_id)) == 0:
        raise NoDocuments(document_id)

    return result


def _document_count(store: ChunkStore, document_id: str) -> Optional[int]:

    try:

        return store.count_documents(DocumentIs(document_id))

    except Exception as e:

        logger.warning(
            "Section count unavailable",
            extra={"doc_id": document_id, "error": str(e)},
        )

        return None


def answer_question(
    question: str,
    document_id: str,
    engine: RetrievalEngine,
    gate: RelevanceGate,
    store: ChunkStore,
    composer: Optional[ResponseComposer] = None,
    recent_history: Optional[Sequence[Dict]] = None,
    chat_chain=None,
    answer_mode: str = ANSWER_MODE,
) -> Dict:
    """
    Answer a question about one document.

    Returns ``{"answer", "sources", "strategy", "top_score", "outcome"}``. Off-topic
    questions, missing documents and empty retrievals come back as fixed
    messages with no sources; they are answers, not errors.
    """

    composer = composer or ResponseComposer()

    if chat_chain is not None and recent_history:
        question = chat_chain.rephrase(question, recent_history)

    try:

        result = _retrieve(question, document_id, engine, gate, store)

    except Irrelevant:

        logger.info(
            "Question rejected by relevance gate",
            extra={"doc_id": document_id},
        )

        return _special_response(IRRELEVANT_MESSAGE, "irrelevant")

    except NoDocuments:

        logger.info(
            "No chunks stored for document",
            extra={"doc_id": document_id},
        )

        return _special_response(NO_DOCUMENTS_MESSAGE, "no_documents")

    if result.is_empty:
        return _special_response(NO_MATCH_MESSAGE, "no_match")

    response = None

    if answer_mode == "llm" and chat_chain is not None:
        response = _llm_response(question, result, chat_chain)

    if response is None:

        document_count = None

        if classify_question(question) is AnswerKind.DETAIL:
            document_count = _document_count(store, document_id)

        response = composer.compose(question, result, document_count=document_count)

    response["strategy"] = result.strategy.value
    response["top_score"] = result.top_score
    response["outcome"] = "answered"

    return response


def _llm_response(question: str, result: RetrievalResult, chat_chain) -> Optional[Dict]:

    try:

        answer = chat_chain.generate_answer(question, result)

    except Exception as e:

        logger.warning(
            "LLM answer failed, falling back to template",
            extra={"error": str(e), "error_type": type(e).__name__},
        )

        return None

    return {
        "answer": answer,
        "sources": build_sources(result),
    }
