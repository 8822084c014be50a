# docqa/config.py
"""
Configuration for the PDF Document Question-Answering service.

This file centralizes all tunable parameters for ingestion and the
retrieval cascade. Environment variables override the defaults where
a deployment needs to change them.
"""

import os


def _env_list(name: str, default):
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# ========== DOCUMENT PROCESSING ==========

# Character windows, split on word boundaries
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))

# File upload limits
MAX_FILE_SIZE_MB = 10
ALLOWED_FILE_EXTENSIONS = [".pdf"]

# Caller-supplied document ids are also upload file names
DOCUMENT_ID_PATTERN = r"^[A-Za-z0-9_-]{1,100}$"

MAX_DOCUMENT_CHARACTERS = 2_000_000
MAX_CHUNKS_PER_DOCUMENT = 5000

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "storage/uploads")


# ========== EMBEDDING CONFIGURATION ==========

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")
# Alternative: "text-embedding-3-large" (3072 dimensions)


# ========== RETRIEVAL CONFIGURATION ==========

# Stage 0: vector similarity
VECTOR_TOP_K = 5
VECTOR_CANDIDATE_POOL = 20
VECTOR_INDEX_NAME = os.getenv("VECTOR_INDEX_NAME", "vector_index")
ALTERNATIVE_INDEX_NAMES = _env_list(
    "ALTERNATIVE_INDEX_NAMES",
    ["default", "vector_search_index", "embeddings_index"],
)

# Scores are (1 + cosine) / 2, so 0.6 is roughly cosine 0.2
SIMILARITY_FLOOR = float(os.getenv("SIMILARITY_FLOOR", "0.6"))
# - Below the floor the best match is distrusted and the whole set is dropped
# - Trade-off: Higher = more keyword fallbacks, Lower = more weak matches

# Stage 1: structure / listing
STRUCTURE_LIMIT = 10

# Stage 2: overview
OVERVIEW_LIMIT = 10
OVERVIEW_KEEP = 8

# Stage 3: keyword
KEYWORD_CANDIDATES = 20
KEYWORD_KEEP = 8

# Stage 4: diversity sample
SAMPLE_SIZE = 8


# ========== RELEVANCE GATE ==========

GATE_SAMPLE_SIZE = 3

# Vocabulary probed in the first chunks of a document
DOMAIN_TERMS = _env_list(
    "DOMAIN_TERMS",
    [
        "photon", "matter", "interaction", "physics", "energy", "quantum",
        "electron", "atom", "radiation", "medical", "helium",
        "approximation", "model",
    ],
)

# Also treat recurring words of the sampled chunks as document terms,
# so documents outside DOMAIN_TERMS are not rejected wholesale
LEARN_DOCUMENT_TERMS = _env_bool("LEARN_DOCUMENT_TERMS", True)


# ========== STORAGE ==========

# "memory" (FAISS, single process) or "qdrant"
STORE_BACKEND = os.getenv(
    "STORE_BACKEND",
    "qdrant" if os.getenv("QDRANT_URL") else "memory",
)

QDRANT_URL = os.getenv("QDRANT_URL", ":memory:")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "pdf_chunks")

DOCUMENT_REGISTRY_PATH = os.getenv(
    "DOCUMENT_REGISTRY_PATH", "storage/document_registry.json"
)
METRICS_PATH = os.getenv("METRICS_PATH", "storage/metrics.json")
LOG_DIR = os.getenv("LOG_DIR", "logs")


# ========== LLM CONFIGURATION ==========

LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

LLM_TEMPERATURE = 0.2  # Low temperature for factual answers
LLM_MAX_TOKENS = 500

# "template" answers are assembled from chunk text only,
# "llm" asks the model for a grounded answer and falls back to the template
ANSWER_MODE = os.getenv("ANSWER_MODE", "template")

# Conversation turns used to rephrase a follow-up question
HISTORY_TURNS = 6


# ========== DESIGN TRADE-OFFS (DOCUMENTED) ==========

"""
TRADE-OFF DECISIONS:

1. SIMILARITY_FLOOR = 0.6:
   - A weak best match is worse than no match: the keyword stages
     produce better context than a misleading vector hit.

2. Cascade order vector → structure → overview → keyword → sample:
   - The first stage that applies and returns chunks wins.
   - The diversity sample guarantees some context whenever the
     document has content.

3. Relevance gate before retrieval:
   - Cheap lexical checks reject off-topic questions without
     touching the embedding service.
   - Meta questions about the document are always allowed.
"""
