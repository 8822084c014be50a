"""
Response composer.

Turns a ranked RetrievalResult into answer text and a source list by
picking a template from the question's shape. Only text taken from the
supplied chunks is ever quoted.
"""

import re

from enum import Enum
from typing import Dict, List, Optional

from docqa.retrieval.heuristics import (
    DETAIL_ANSWER,
    EXPLANATION_ANSWER,
    LISTING_ANSWER,
    extract_keywords,
    question_terms,
)
from docqa.retrieval.result import RetrievalResult


NO_DOCUMENTS_MESSAGE = (
    "I don't have any documents to search through. "
    "Please upload a PDF and make sure it was processed successfully."
)

IRRELEVANT_MESSAGE = (
    "I can only answer questions related to the content of your uploaded PDF. "
    "Your question doesn't seem to be related to the topics covered in this "
    "document. Please ask me something about the content in your PDF."
)

NO_MATCH_MESSAGE = (
    "I couldn't find anything in your PDF that matches this question. "
    "Try rephrasing it or asking about a specific section."
)

NO_CONTENT_MESSAGE = (
    "I found your PDF but there's no readable content. "
    "Please try uploading the PDF again."
)

LITTLE_CONTENT_MESSAGE = (
    "I found your PDF but there's very little readable content. "
    "Please try uploading the PDF again."
)

MIN_CONTEXT_LENGTH = 50
EXPLANATION_PREVIEW = 800
DETAIL_PREVIEW = 1000
GENERIC_PREVIEW = 800

LISTING_MAX_LINES = 20
FALLBACK_MAX_LINES = 10

_TOPIC_LINE = re.compile(r"^\d+\.|^o |^(chapter|section|part)", re.IGNORECASE)
_LEADING_ASK = re.compile(
    r"^(can u |can you |tell me about |tell me |explain |what is |describe )",
    re.IGNORECASE,
)


class AnswerKind(str, Enum):
    LISTING = "listing"
    EXPLANATION = "explanation"
    DETAIL = "detail"
    GENERIC = "generic"


def classify_question(question: str) -> AnswerKind:
    """Pick the answer template from the shape of the question."""

    if LISTING_ANSWER.matches(question):
        return AnswerKind.LISTING

    if EXPLANATION_ANSWER.matches(question):
        return AnswerKind.EXPLANATION

    if DETAIL_ANSWER.matches(question):
        return AnswerKind.DETAIL

    return AnswerKind.GENERIC


def build_sources(result: RetrievalResult) -> List[Dict]:
    """Source entries for the chunks in the result, in ranked order."""

    return [
        {
            "text": scored.chunk.text,
            "document_id": scored.chunk.document_id,
            "file_name": scored.chunk.source_file_name,
            "page_number": scored.chunk.page_number,
        }
        for scored in result.chunks
    ]


class ResponseComposer:

    def compose(
        self,
        question: str,
        result: RetrievalResult,
        document_count: Optional[int] = None,
    ) -> Dict:
        """
        Returns ``{"answer": str, "sources": list}``; sources follow the
        result order and are an empty list when nothing was retrieved.
        """

        context = "\n\n".join(result.texts())

        kind = classify_question(question)

        if not context:
            answer = NO_CONTENT_MESSAGE

        # headings are short, a listing may be built from very little text
        elif kind is AnswerKind.LISTING:
            answer = self._listing(context)

        elif len(context) < MIN_CONTEXT_LENGTH:
            answer = LITTLE_CONTENT_MESSAGE

        else:

            if kind is AnswerKind.EXPLANATION:
                answer = self._explanation(question, result, context)

            elif kind is AnswerKind.DETAIL:
                answer = self._detail(result, context, document_count)

            else:
                answer = self._generic(question, result, context)

        return {
            "answer": answer,
            "sources": build_sources(result),
        }

    # ============================================================
    # TEMPLATES
    # ============================================================

    def _listing(self, context: str) -> str:

        topic_lines = []

        for line in context.split("\n"):

            trimmed = line.strip()

            if 5 < len(trimmed) < 100 and _TOPIC_LINE.match(trimmed):
                topic_lines.append(trimmed)

            if len(topic_lines) >= LISTING_MAX_LINES:
                break

        if topic_lines:

            bullets = "\n".join(f"• {line}" for line in topic_lines)

            return (
                "Here are the topics I found in your PDF:\n\n"
                f"{bullets}\n\n"
                "Is there a specific topic you'd like me to explain in detail?"
            )

        sections = [
            line.strip() for line in context.split("\n")
            if len(line.strip()) > 10
        ][:FALLBACK_MAX_LINES]

        bullets = "\n".join(f"• {section}" for section in sections)

        return (
            "I can see this document covers several areas. Here's what I found:\n\n"
            f"{bullets}\n\n"
            "Would you like me to elaborate on any of these sections?"
        )

    def _explanation(self, question: str, result: RetrievalResult, context: str) -> str:

        keywords = extract_keywords(question) or question_terms(question)

        relevant = [
            scored.chunk for scored in result.chunks
            if any(keyword in scored.chunk.text.lower() for keyword in keywords)
        ]

        if not relevant:

            return (
                f'I searched for information about "{question}" in your PDF. '
                "Here's the most relevant content I could find:\n\n"
                f"{context[:EXPLANATION_PREVIEW]}\n\n"
                "Could you be more specific about what aspect you'd like to know about?"
            )

        subject = _LEADING_ASK.sub("", question.strip()).strip()

        more = (
            f"I found {len(relevant)} relevant sections about this topic. "
            if len(relevant) > 1 else ""
        )

        return (
            f'Here\'s what I found about "{subject}":\n\n'
            f"{relevant[0].text}\n\n"
            f"{more}Is there anything specific you'd like me to clarify?"
        )

    def _detail(
        self,
        result: RetrievalResult,
        context: str,
        document_count: Optional[int],
    ) -> str:

        first = result.chunks[0].chunk

        lines = [
            f'Here\'s an overview of your PDF "{first.source_file_name or "document"}":',
            "",
            "**Document Details:**",
            f"📄 **File:** {first.source_file_name or 'Unknown'}",
        ]

        if document_count is not None:
            lines.append(f"🔢 **Sections:** {document_count} content sections")

        lines.extend([
            "",
            "**Content Summary:**",
            context[:DETAIL_PREVIEW],
            "",
            "What would you like to explore further?",
        ])

        return "\n".join(lines)

    def _generic(self, question: str, result: RetrievalResult, context: str) -> str:

        parts = (
            f"This information comes from {len(result.chunks)} different parts of your document. "
            if len(result.chunks) > 1 else ""
        )

        return (
            f'Based on your question "{question}", here\'s what I found:\n\n'
            f"{context[:GENERIC_PREVIEW]}\n\n"
            f"{parts}Feel free to ask me about any specific aspect."
        )
