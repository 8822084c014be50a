"""Chunk records stored and queried by the chunk store."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChunkPosition:
    """Where a chunk sits inside its source document."""

    chunk_index: int
    page_number: Optional[int] = None


@dataclass(frozen=True)
class Chunk:
    """A unit of retrievable document text.

    Attributes:
        id: Opaque unique identifier.
        document_id: Document the chunk belongs to; partition key for every query.
        text: Non-empty chunk content.
        position: Chunk index within the document and optional page number.
        source_file_name: Original file name, for display.
        embedding: Vector from the embedding service, None until embedded.
        created_at: Ingestion timestamp (UTC).
    """

    id: str
    document_id: str
    text: str
    position: ChunkPosition
    source_file_name: Optional[str] = None
    embedding: Optional[List[float]] = field(default=None, repr=False, compare=False)
    created_at: datetime = field(default_factory=utc_now, compare=False)

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("Chunk text cannot be empty")
        if not self.document_id:
            raise ValueError("Chunk document_id cannot be empty")

    @property
    def chunk_index(self) -> int:
        return self.position.chunk_index

    @property
    def page_number(self) -> Optional[int]:
        return self.position.page_number


def new_chunk_id() -> str:
    return uuid.uuid4().hex
