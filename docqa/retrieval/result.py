"""Outcome of one retrieval cascade run."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from docqa.memory.chunk import Chunk


class Strategy(str, Enum):
    """Cascade stage that produced a result."""

    VECTOR = "vector"
    STRUCTURE = "structure"
    OVERVIEW = "overview"
    KEYWORD = "keyword"
    SAMPLE = "sample"
    NONE = "none"


@dataclass(frozen=True)
class ScoredChunk:
    """A chunk with the score its stage gave it.

    The score is a similarity for the vector stage, a keyword-match
    count for the keyword stage, a weighted term score for the overview
    stage, and None for unscored stages.
    """

    chunk: Chunk
    score: Optional[float] = None


@dataclass
class RetrievalResult:
    chunks: List[ScoredChunk] = field(default_factory=list)
    strategy: Strategy = Strategy.NONE

    def __post_init__(self):
        if self.chunks is None:
            self.chunks = []

    @property
    def is_empty(self) -> bool:
        return not self.chunks

    @property
    def top_score(self) -> Optional[float]:
        if not self.chunks:
            return None
        return self.chunks[0].score

    def texts(self) -> List[str]:
        return [scored.chunk.text for scored in self.chunks]
