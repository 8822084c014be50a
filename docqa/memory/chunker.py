# docqa/memory/chunker.py

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from docqa.config import (
    CHUNK_SIZE,
    CHUNK_OVERLAP,
)
from docqa.memory.loader import PageText

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\S+")


@dataclass(frozen=True)
class TextWindow:
    text: str
    page_number: Optional[int]


def chunk_text(
    text: str,
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[str]:
    """
    Split text into windows of at most ``size`` characters, cut on word
    boundaries, with roughly ``overlap`` characters repeated between
    consecutive windows.

    Guarantees:
    • deterministic chunk generation
    • no infinite loops
    • no empty chunks
    • a single word longer than ``size`` becomes its own chunk
    """

    if size <= 0:
        raise ValueError(f"Invalid chunk size: {size}")

    if overlap < 0:
        raise ValueError(f"Invalid chunk overlap: {overlap}")

    if overlap >= size:
        raise ValueError(
            f"Overlap must be smaller than chunk size "
            f"(overlap={overlap}, size={size})"
        )

    if not text or not text.strip():
        return []

    # word spans in the original text, so line breaks inside a window survive
    spans = [m.span() for m in _WORD.finditer(text)]

    chunks = []

    start = 0

    while start < len(spans):

        # grow the window word by word up to the size limit
        end = start + 1

        while end < len(spans) and spans[end][1] - spans[start][0] <= size:
            end += 1

        chunks.append(text[spans[start][0]:spans[end - 1][1]])

        if end >= len(spans):
            break

        # step back far enough to repeat ~overlap characters
        next_start = end

        while next_start - 1 > start and spans[end - 1][1] - spans[next_start - 1][0] <= overlap:
            next_start -= 1

        start = next_start

    return chunks


def chunk_pages(
    pages: Sequence[PageText],
    size: int = CHUNK_SIZE,
    overlap: int = CHUNK_OVERLAP,
) -> List[TextWindow]:
    """
    Chunk every page separately so each window keeps its page number.
    """

    windows = []

    for page in pages:

        for text in chunk_text(page.text, size=size, overlap=overlap):
            windows.append(TextWindow(text=text, page_number=page.page_number))

    logger.info(
        "Chunking completed",
        extra={
            "pages": len(pages),
            "chunk_size": size,
            "overlap": overlap,
            "chunks_created": len(windows),
        },
    )

    return windows
