# docqa/services.py

"""
Service wiring.

Builds the store, embedder, cascade, gate and optional LLM chain once
per process. The API reads them from ``app.state.services`` so tests
can inject their own bundle.
"""

import logging

from dataclasses import dataclass
from typing import Optional

from docqa.config import (
    ANSWER_MODE,
    DOCUMENT_REGISTRY_PATH,
    EMBEDDING_MODEL,
    QDRANT_API_KEY,
    QDRANT_URL,
    STORE_BACKEND,
    VECTOR_INDEX_NAME,
)
from docqa.llm.multi_model_client import MultiModelLLMClient
from docqa.memory.embedder import MODEL_DIMENSIONS, Embedder
from docqa.memory.qdrant_client import QdrantVectorDB, connect
from docqa.memory.registry import DocumentRegistry
from docqa.memory.store import ChunkStore, InMemoryChunkStore, QdrantChunkStore
from docqa.retrieval.engine import RetrievalEngine
from docqa.retrieval.gate import RelevanceGate
from docqa.retrieval.heuristics import Heuristics
from docqa.workflow.chat_chain import ChatChain
from docqa.workflow.composer import ResponseComposer

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: ChunkStore
    engine: RetrievalEngine
    gate: RelevanceGate
    composer: ResponseComposer
    registry: DocumentRegistry
    embedder: Optional[Embedder] = None
    chat_chain: Optional[ChatChain] = None
    store_backend: str = "memory"
    answer_mode: str = ANSWER_MODE


_BACKEND_LABELS = {
    InMemoryChunkStore: "memory",
    QdrantChunkStore: "qdrant",
}


def build_store(backend: str = STORE_BACKEND) -> ChunkStore:

    if backend == "qdrant":

        db = QdrantVectorDB(
            dim=MODEL_DIMENSIONS[EMBEDDING_MODEL],
            client=connect(QDRANT_URL, QDRANT_API_KEY),
            vector_names=(VECTOR_INDEX_NAME,),
        )

        return QdrantChunkStore(db)

    if backend == "memory":
        return InMemoryChunkStore(index_names=(VECTOR_INDEX_NAME,))

    raise ValueError(f"Unknown store backend: {backend}")


def _build_embedder() -> Optional[Embedder]:

    try:

        return Embedder()

    except Exception as e:

        logger.warning(
            "Embedder unavailable, vector retrieval disabled",
            extra={"error": str(e)},
        )

        return None


def _build_chat_chain() -> Optional[ChatChain]:

    try:

        client = MultiModelLLMClient()

    except Exception as e:

        logger.warning(
            "LLM client unavailable",
            extra={"error": str(e)},
        )

        return None

    if not client.available:
        return None

    return ChatChain(client)


def build_services(
    store: Optional[ChunkStore] = None,
    embedder=None,
    chat_chain: Optional[ChatChain] = None,
    registry: Optional[DocumentRegistry] = None,
    backend: str = STORE_BACKEND,
    answer_mode: str = ANSWER_MODE,
    with_defaults: bool = True,
) -> Services:
    """
    Assemble a Services bundle.

    Anything passed in is used as-is. With ``with_defaults`` the missing
    embedder and chat chain are created from the environment; without
    it they stay None.
    """

    if store is None:
        store_backend = backend
    else:
        store_backend = _BACKEND_LABELS.get(type(store), type(store).__name__)

    if store is None:
        store = build_store(backend)

    if embedder is None and with_defaults:
        embedder = _build_embedder()

    if chat_chain is None and with_defaults:
        chat_chain = _build_chat_chain()

    heuristics = Heuristics()

    services = Services(
        store=store,
        engine=RetrievalEngine(store, embedder=embedder, heuristics=heuristics),
        gate=RelevanceGate(store, heuristics=heuristics),
        composer=ResponseComposer(),
        registry=registry if registry is not None else DocumentRegistry(DOCUMENT_REGISTRY_PATH),
        embedder=embedder,
        chat_chain=chat_chain,
        store_backend=store_backend,
        answer_mode=answer_mode,
    )

    logger.info(
        "Services initialized",
        extra={
            "store": type(store).__name__,
            "embedder": embedder is not None,
            "chat_chain": chat_chain is not None,
            "answer_mode": answer_mode,
        },
    )

    return services
