"""
Predicate combinators used to query the chunk store.

Stores narrow by document id where they can (see ``document_id``)
and evaluate the remaining predicate against each chunk with
``matches``. Filters compose with ``&``, ``|`` and ``~``.
"""

import re
from dataclasses import dataclass
from typing import Optional, Tuple

from docqa.memory.chunk import Chunk


class ChunkFilter:

    def matches(self, chunk: Chunk) -> bool:
        raise NotImplementedError

    def document_id(self) -> Optional[str]:
        """Document id every matching chunk must have, if the filter pins one."""
        return None

    def __and__(self, other: "ChunkFilter") -> "ChunkFilter":
        return AllOf((self, other))

    def __or__(self, other: "ChunkFilter") -> "ChunkFilter":
        return AnyOf((self, other))

    def __invert__(self) -> "ChunkFilter":
        return Not(self)


@dataclass(frozen=True)
class MatchAll(ChunkFilter):

    def matches(self, chunk: Chunk) -> bool:
        return True


@dataclass(frozen=True)
class DocumentIs(ChunkFilter):
    value: str

    def matches(self, chunk: Chunk) -> bool:
        return chunk.document_id == self.value

    def document_id(self) -> Optional[str]:
        return self.value


@dataclass(frozen=True)
class TextMatches(ChunkFilter):
    """Regular expression search over chunk text, case-insensitive by default."""

    pattern: str
    flags: int = re.IGNORECASE

    def __post_init__(self):
        # Compile eagerly so a bad pattern fails at construction
        object.__setattr__(self, "_compiled", re.compile(self.pattern, self.flags))

    def matches(self, chunk: Chunk) -> bool:
        return self._compiled.search(chunk.text) is not None


@dataclass(frozen=True)
class TextContains(ChunkFilter):
    """Case-insensitive substring match."""

    needle: str

    def matches(self, chunk: Chunk) -> bool:
        return self.needle.lower() in chunk.text.lower()


@dataclass(frozen=True)
class TextLength(ChunkFilter):
    """Exclusive bounds on the length of the chunk text."""

    greater_than: Optional[int] = None
    less_than: Optional[int] = None

    def matches(self, chunk: Chunk) -> bool:
        length = len(chunk.text)
        if self.greater_than is not None and length <= self.greater_than:
            return False
        if self.less_than is not None and length >= self.less_than:
            return False
        return True


@dataclass(frozen=True)
class AllOf(ChunkFilter):
    filters: Tuple[ChunkFilter, ...]

    def matches(self, chunk: Chunk) -> bool:
        return all(f.matches(chunk) for f in self.filters)

    def document_id(self) -> Optional[str]:
        for f in self.filters:
            doc_id = f.document_id()
            if doc_id is not None:
                return doc_id
        return None


@dataclass(frozen=True)
class AnyOf(ChunkFilter):
    filters: Tuple[ChunkFilter, ...]

    def matches(self, chunk: Chunk) -> bool:
        return any(f.matches(chunk) for f in self.filters)


@dataclass(frozen=True)
class Not(ChunkFilter):
    inner: ChunkFilter

    def matches(self, chunk: Chunk) -> bool:
        return not self.inner.matches(chunk)


def all_of(*filters: ChunkFilter) -> ChunkFilter:
    return AllOf(tuple(filters))


def any_of(*filters: ChunkFilter) -> ChunkFilter:
    return AnyOf(tuple(filters))


def is_document_only(chunk_filter: ChunkFilter) -> bool:
    """True when the filter selects exactly the chunks of one document."""
    if isinstance(chunk_filter, DocumentIs):
        return True
    if isinstance(chunk_filter, AllOf):
        return all(
            isinstance(f, (DocumentIs, MatchAll)) for f in chunk_filter.filters
        ) and chunk_filter.document_id() is not None
    return False
