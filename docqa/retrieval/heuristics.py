"""
Lexical heuristics for the relevance gate, the retrieval cascade and the
response composer.

Everything here is data: marker lists, patterns, weights and the
question-shape rules that decide which cascade stage applies. The
engine and the gate only evaluate these tables.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Optional, Pattern, Sequence, Tuple

from docqa.config import (
    ALTERNATIVE_INDEX_NAMES,
    DOMAIN_TERMS,
    KEYWORD_CANDIDATES,
    KEYWORD_KEEP,
    LEARN_DOCUMENT_TERMS,
    OVERVIEW_KEEP,
    OVERVIEW_LIMIT,
    SAMPLE_SIZE,
    SIMILARITY_FLOOR,
    STRUCTURE_LIMIT,
    VECTOR_CANDIDATE_POOL,
    VECTOR_INDEX_NAME,
    VECTOR_TOP_K,
)


_PUNCTUATION = "?!.,;:\"'()[]{}<>*`"


# ========== QUESTION SHAPES ==========

@dataclass(frozen=True)
class ShapeRule:
    """
    Keyword test on a lower-cased question.

    Matches when every ``all_of`` marker is present, at least one
    ``any_of`` marker is present (if any are given), no ``none_of``
    marker is present, and the question has fewer than ``max_words``
    words (if set).
    """

    all_of: Tuple[str, ...] = ()
    any_of: Tuple[str, ...] = ()
    none_of: Tuple[str, ...] = ()
    max_words: Optional[int] = None

    def matches(self, question: str) -> bool:

        lowered = question.lower()

        if any(marker not in lowered for marker in self.all_of):
            return False

        if self.any_of and not any(marker in lowered for marker in self.any_of):
            return False

        if any(marker in lowered for marker in self.none_of):
            return False

        if self.max_words is not None and len(lowered.split()) >= self.max_words:
            return False

        return True


# Stage 1 trigger: "list the chapters", "list topics"
LISTING_REQUEST = ShapeRule(
    all_of=("list",),
    any_of=("topic", "chapter", "subject", "section"),
    none_of=("explain", "about"),
    max_words=8,
)

# Stage 2 trigger: "give me details about this pdf"
OVERVIEW_REQUEST = ShapeRule(
    all_of=("detail",),
    any_of=("pdf", "document", "book"),
)

# Composer templates
LISTING_ANSWER = ShapeRule(
    all_of=("list",),
    any_of=("topic", "subject", "chapter", "section"),
)
EXPLANATION_ANSWER = ShapeRule(
    any_of=("explain", "what is", "describe", "tell me about"),
)
DETAIL_ANSWER = ShapeRule(
    any_of=("detail", "about", "summary"),
)


# ========== RELEVANCE GATE TABLES ==========

META_MARKERS = (
    "pdf", "document", "file", "details about this", "summary", "overview",
    "tell me about", "what is this", "contents", "topics", "chapters",
    "sections",
)

UNRELATED_PATTERNS = (
    r"\bwindows?\s*11\b",
    r"\bmicrosoft\s*office\b",
    r"\badobe\b|\bpdf\s*reader\b",
    r"\b(computers?|software|apps?)\b",
    r"\b(weather|climate)\b",
    r"\b(food|recipes?|cooking)\b",
    r"\b(sports?|football|basketball)\b",
    r"\b(movies?|films?|entertainment)\b",
    r"\b(music|songs?|artists?)\b",
    r"\b(travel|vacation|hotels?)\b",
    r"\b(shopping|purchase|buy)\b",
)


# ========== CASCADE TABLES ==========

STOP_WORDS = frozenset({
    "a", "an", "and", "about", "are", "but", "can", "could", "does",
    "explain", "for", "from", "give", "have", "into", "is", "me", "or",
    "please", "should", "tell", "that", "the", "their", "there", "these",
    "they", "this", "those", "topic", "topics", "what", "when", "where",
    "which", "while", "with", "would", "you", "your",
})

# (pattern, flags)
STRUCTURE_PATTERNS = (
    (r"contents|index|chapter|section|part|unit", re.IGNORECASE),
    (r"^\d+\.", re.MULTILINE),
    (r"table of contents|index|chapter \d+", re.IGNORECASE),
)

OVERVIEW_PATTERNS = (
    (r"introduction|abstract|overview|preface|summary|purpose|scope", re.IGNORECASE),
    (r"this book|this text|this work|covers|discusses", re.IGNORECASE),
    (r"chapter.*cover|section.*discuss|topics.*include", re.IGNORECASE),
)

OVERVIEW_WEIGHTS = (
    ("introduction", 3),
    ("overview", 2),
    ("this book", 2),
    ("covers", 1),
)

# Series / publisher front matter that crowds out real content
BOILERPLATE_MARKERS = (
    "oxford master series",
    "course books",
    "tutorial material",
)

CONTENT_INDICATOR = r"chapter|section|equation|formula|energy|electron|quantum"

HEADING_MIN_LENGTH = 10
HEADING_MAX_LENGTH = 200

FRONT_MATTER_MAX_LENGTH = 300
PREFERRED_LENGTH_BAND = (500, 2000)
LONG_CONTENT_LENGTH = 500

LEARNED_TERMS_LIMIT = 30


# ========== TOKENIZATION ==========

def question_terms(question: str) -> List[str]:
    """Lower-cased whitespace tokens longer than 3 characters, punctuation stripped."""

    terms = []

    for word in question.lower().split():

        word = word.strip(_PUNCTUATION)

        if len(word) > 3:
            terms.append(word)

    return terms


def extract_keywords(question: str, stop_words: Iterable[str] = STOP_WORDS) -> List[str]:
    """Distinct meaningful keywords of a question, in question order."""

    stop = set(stop_words)

    keywords = []

    for term in question_terms(question):

        if term in stop or term in keywords:
            continue

        keywords.append(term)

    return keywords


def keyword_matches(text: str, keywords: Sequence[str]) -> int:
    """Number of distinct keywords that occur in ``text`` (case-insensitive)."""

    lowered = text.lower()

    return sum(1 for keyword in set(keywords) if keyword in lowered)


# ========== HEURISTICS BUNDLE ==========

@dataclass(frozen=True)
class Heuristics:
    """
    The tunable vocabulary of the gate and the cascade.

    Defaults come from the tables above and from config; tests and
    deployments construct their own instance to swap any of them.
    """

    meta_markers: Tuple[str, ...] = META_MARKERS
    unrelated_patterns: Tuple[str, ...] = UNRELATED_PATTERNS
    domain_terms: Tuple[str, ...] = tuple(DOMAIN_TERMS)
    learn_document_terms: bool = LEARN_DOCUMENT_TERMS
    stop_words: FrozenSet[str] = STOP_WORDS
    structure_patterns: Tuple[Tuple[str, int], ...] = STRUCTURE_PATTERNS
    overview_patterns: Tuple[Tuple[str, int], ...] = OVERVIEW_PATTERNS
    overview_weights: Tuple[Tuple[str, int], ...] = OVERVIEW_WEIGHTS
    boilerplate_markers: Tuple[str, ...] = BOILERPLATE_MARKERS
    content_indicator: str = CONTENT_INDICATOR
    listing_request: ShapeRule = LISTING_REQUEST
    overview_request: ShapeRule = OVERVIEW_REQUEST
    _unrelated: Tuple[Pattern, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(
            self,
            "_unrelated",
            tuple(re.compile(p, re.IGNORECASE) for p in self.unrelated_patterns),
        )

    # ---------- gate ----------

    def is_meta_question(self, question: str) -> bool:
        lowered = question.lower()
        return any(marker in lowered for marker in self.meta_markers)

    def matches_unrelated(self, question: str) -> bool:
        return any(p.search(question) for p in self._unrelated)

    def document_terms(self, sample_text: str) -> FrozenSet[str]:

        lowered = sample_text.lower()

        terms = {term for term in self.domain_terms if term in lowered}

        if self.learn_document_terms:
            terms.update(self.learned_terms(lowered))

        return frozenset(terms)

    def learned_terms(self, sample_text: str) -> List[str]:
        """Words of the sample that recur, treated as the document's own vocabulary."""

        words = Counter(
            word for word in re.findall(r"[a-z][a-z\-]{3,}", sample_text.lower())
            if word not in self.stop_words
        )

        return [
            word for word, count in words.most_common(LEARNED_TERMS_LIMIT)
            if count >= 2
        ]

    # ---------- cascade ----------

    def is_listing_request(self, question: str) -> bool:
        return self.listing_request.matches(question)

    def is_overview_request(self, question: str) -> bool:
        return self.overview_request.matches(question)

    def overview_score(self, text: str) -> int:
        lowered = text.lower()
        return sum(weight for term, weight in self.overview_weights if term in lowered)

    def has_boilerplate(self, text: str) -> bool:
        lowered = text.lower()
        return any(marker in lowered for marker in self.boilerplate_markers)

    def is_front_matter(self, text: str) -> bool:
        return self.has_boilerplate(text) or len(text) < FRONT_MATTER_MAX_LENGTH


@dataclass(frozen=True)
class RetrievalSettings:
    """Limits and thresholds of the retrieval cascade."""

    top_k: int = VECTOR_TOP_K
    candidate_pool: int = VECTOR_CANDIDATE_POOL
    similarity_floor: float = SIMILARITY_FLOOR
    index_name: str = VECTOR_INDEX_NAME
    alternative_index_names: Tuple[str, ...] = tuple(ALTERNATIVE_INDEX_NAMES)
    structure_limit: int = STRUCTURE_LIMIT
    overview_limit: int = OVERVIEW_LIMIT
    overview_keep: int = OVERVIEW_KEEP
    keyword_candidates: int = KEYWORD_CANDIDATES
    keyword_keep: int = KEYWORD_KEEP
    sample_size: int = SAMPLE_SIZE
