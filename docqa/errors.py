"""Domain exception classes for the retrieval and answering pipeline."""


class DocQAError(Exception):
    """Base class for all domain-specific errors."""

    pass


class StoreUnavailable(DocQAError):
    """Raised when the chunk store cannot be reached or a query fails."""

    pass


class IndexNotFound(DocQAError):
    """Raised when a named vector index does not exist in the chunk store."""

    def __init__(self, index_name: str):
        super().__init__(f"Vector index not found: {index_name}")
        self.index_name = index_name


class EmbeddingServiceError(DocQAError):
    """Raised when the embedding service fails (quota, auth, timeout)."""

    pass


class NoDocuments(DocQAError):
    """Raised when no chunks exist for the requested document."""

    def __init__(self, document_id: str):
        super().__init__(f"No chunks stored for document: {document_id}")
        self.document_id = document_id


class Irrelevant(DocQAError):
    """Raised when the relevance gate rejects a question."""

    def __init__(self, question: str):
        super().__init__("Question is unrelated to the document")
        self.question = question


class LLMUnavailable(DocQAError):
    """Raised when no language model backend can serve a request."""

    pass
