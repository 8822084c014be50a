# docqa/memory/loader.py

"""
PDF loader.

Architecture contract:
loader → chunker → embedder → chunk store

Returns page-numbered text so every chunk can point back to its page.
"""

import logging

from dataclasses import dataclass
from typing import List

from pypdf import PdfReader

from docqa.config import MAX_DOCUMENT_CHARACTERS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageText:
    page_number: int
    text: str


def load_pdf_pages(file_path: str) -> List[PageText]:
    """
    Extract text page by page (1-based page numbers), skipping empty pages.

    Stops once MAX_DOCUMENT_CHARACTERS have been collected.
    """

    reader = PdfReader(file_path)

    pages = []

    total_chars = 0

    for number, page in enumerate(reader.pages, start=1):

        text = page.extract_text() or ""

        text = text.strip()

        if not text:
            continue

        remaining = MAX_DOCUMENT_CHARACTERS - total_chars

        if remaining <= 0:

            logger.warning(
                "Document exceeds max character limit, truncating",
                extra={
                    "file": file_path,
                    "max_allowed": MAX_DOCUMENT_CHARACTERS,
                    "last_page": number - 1,
                },
            )

            break

        text = text[:remaining]

        pages.append(PageText(page_number=number, text=text))

        total_chars += len(text)

    logger.info(
        "PDF text extracted",
        extra={
            "file": file_path,
            "pages_total": len(reader.pages),
            "pages_with_text": len(pages),
            "characters": total_chars,
        },
    )

    return pages
