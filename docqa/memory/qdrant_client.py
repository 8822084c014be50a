import logging

from typing import FrozenSet, Optional, Sequence

from qdrant_client import QdrantClient

from qdrant_client.http.models import (
    Distance,
    VectorParams,
    PayloadSchemaType,
)

from docqa.config import (
    QDRANT_URL,
    QDRANT_API_KEY,
    QDRANT_COLLECTION,
    VECTOR_INDEX_NAME,
)

logger = logging.getLogger(__name__)


def connect(url: str = QDRANT_URL, api_key: Optional[str] = QDRANT_API_KEY) -> QdrantClient:

    if url == ":memory:":
        return QdrantClient(location=":memory:")

    return QdrantClient(
        url=url,
        api_key=api_key,
        timeout=60.0,
    )


class QdrantVectorDB:
    """
    Qdrant connection and collection bootstrap.

    The collection holds one named vector per configured index name.
    ``vector_names`` reflects what the collection actually has, so a
    search against any other name is reported as a missing index.
    """

    def __init__(
        self,
        dim: int,
        client: Optional[QdrantClient] = None,
        collection: str = QDRANT_COLLECTION,
        vector_names: Sequence[str] = (VECTOR_INDEX_NAME,),
    ):

        if dim <= 0:
            raise ValueError("Embedding dimension must be positive")

        self._dim = dim

        self.client = client or connect()

        self.collection = collection

        self.vector_names: FrozenSet[str] = frozenset()

        self._ensure_collection(vector_names)

        logger.info(
            "Qdrant client initialized",
            extra={
                "collection": self.collection,
                "dimension": dim,
                "vector_names": sorted(self.vector_names),
            },
        )

    def _ensure_collection(self, vector_names: Sequence[str]):
        """
        Ensures the collection and the payload indexes used by filters exist.
        """

        collections = self.client.get_collections().collections

        exists = any(
            c.name == self.collection
            for c in collections
        )

        if not exists:

            self.client.create_collection(
                collection_name=self.collection,
                vectors_config={
                    name: VectorParams(size=self._dim, distance=Distance.COSINE)
                    for name in vector_names
                },
            )

            logger.info(
                "Qdrant collection created",
                extra={"collection": self.collection},
            )

        info = self.client.get_collection(self.collection)

        vectors = info.config.params.vectors

        # An unnamed single-vector collection exposes no index names
        if isinstance(vectors, dict):
            self.vector_names = frozenset(vectors.keys())
        else:
            self.vector_names = frozenset()

        for field_name in ("doc_id", "generation"):

            try:

                self.client.create_payload_index(
                    collection_name=self.collection,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD,
                )

            except Exception as e:
                # Index already exists or the backend does not support it
                logger.debug(
                    "Payload index already exists or skipped",
                    extra={"field": field_name, "error": str(e)},
                )
