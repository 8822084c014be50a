# docqa/memory/embedder.py

"""
Embedding wrapper with batching.

Architecture contract:
loader → chunker → embedder → chunk store

Guarantees:
• Always returns numpy float32 arrays
• Always normalized (cosine-ready)
• Batched processing for ingestion
• Every provider failure surfaces as EmbeddingServiceError
"""

import logging
import numpy as np
from typing import List, Optional

from openai import OpenAI

from docqa.config import (
    EMBEDDING_MODEL,
    MAX_CHUNKS_PER_DOCUMENT,
)
from docqa.errors import EmbeddingServiceError

logger = logging.getLogger(__name__)

DEFAULT_EMBED_BATCH_SIZE = 32

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class Embedder:
    """
    Embedding generator backed by the OpenAI embeddings API.

    Responsibilities:
    • Embed chunk batches at ingestion time
    • Embed single questions for vector search
    • Enforce system limits
    """

    def __init__(self, model: str = EMBEDDING_MODEL, client: Optional[OpenAI] = None):

        if model not in MODEL_DIMENSIONS:
            raise ValueError(f"Unsupported embedding model: {model}")

        self._model = model
        self._dimension = MODEL_DIMENSIONS[model]

        try:

            self._client = client or OpenAI()

        except Exception as e:

            logger.critical(
                "Embedding client initialization failed",
                extra={"error": str(e)}
            )

            raise EmbeddingServiceError(
                f"Failed to initialize embedding client: {e}"
            ) from e

        logger.info(
            "Embedding model initialized",
            extra={
                "model": self._model,
                "dimension": self._dimension,
            }
        )

    # ============================================================
    # PUBLIC API
    # ============================================================

    def embed(
        self,
        texts: List[str],
        batch_size: int = DEFAULT_EMBED_BATCH_SIZE
    ) -> np.ndarray:
        """
        Embed a list of texts, returning a (len(texts), dimension) array.
        """

        if not texts:

            logger.warning("Empty embedding request")

            return np.empty(
                (0, self._dimension),
                dtype="float32"
            )

        if len(texts) > MAX_CHUNKS_PER_DOCUMENT:

            raise ValueError(
                f"Chunk count exceeds MAX_CHUNKS_PER_DOCUMENT "
                f"({MAX_CHUNKS_PER_DOCUMENT})"
            )

        total = len(texts)

        logger.info(
            "Embedding started",
            extra={
                "chunks": total,
                "batch_size": batch_size,
            }
        )

        try:

            all_embeddings = []

            for start in range(0, total, batch_size):

                batch = texts[start:start + batch_size]

                response = self._client.embeddings.create(
                    model=self._model,
                    input=batch,
                )

                batch_embeddings = np.array(
                    [item.embedding for item in response.data],
                    dtype="float32"
                )

                norms = np.linalg.norm(
                    batch_embeddings,
                    axis=1,
                    keepdims=True
                )

                all_embeddings.append(batch_embeddings / np.clip(norms, 1e-10, None))

            embeddings = np.vstack(all_embeddings)

        except Exception as e:

            logger.error(
                "Embedding generation failed",
                extra={"error": str(e)}
            )

            raise EmbeddingServiceError(
                f"Embedding generation failed: {e}"
            ) from e

        logger.info(
            "Embedding completed",
            extra={
                "chunks": total,
                "dimension": self._dimension,
            }
        )

        return embeddings

    def embed_query(self, text: str) -> List[float]:
        """
        Embed one question for vector search.
        """

        if not text or not text.strip():
            raise EmbeddingServiceError("Cannot embed an empty question")

        return self.embed([text])[0].tolist()
