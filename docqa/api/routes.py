from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Form, Request
import re
import uuid
import logging
import time

from pathlib import Path
from typing import Optional

from pypdf.errors import PdfReadError

from docqa.config import (
    ALLOWED_FILE_EXTENSIONS,
    DOCUMENT_ID_PATTERN,
    MAX_FILE_SIZE_MB,
    UPLOAD_DIR,
)
from docqa.api.dependencies import get_services
from docqa.memory.filters import DocumentIs
from docqa.observability.metrics import metrics_tracker
from docqa.observability.posthog_client import posthog_client
from docqa.services import Services
from docqa.workflow.document_qa import answer_question
from docqa.workflow.ingestion import IngestionError, ingest_pdf

from docqa.models import (
    AskRequest,
    AskResponse,
    UploadResponse,
    ListDocumentsResponse,
    DeleteDocumentResponse,
    DocumentInfo,
    HealthResponse,
)


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# HELPERS
# ============================================================

def generate_document_id() -> str:
    return f"doc_{uuid.uuid4().hex[:12]}"


def validate_document_id(document_id: str):

    if not re.fullmatch(DOCUMENT_ID_PATTERN, document_id):
        raise HTTPException(
            status_code=400,
            detail="Invalid document_id: use up to 100 letters, digits, '_' or '-'",
        )


def validate_file_type(filename: Optional[str]):

    suffix = Path(filename or "").suffix.lower()

    if suffix not in ALLOWED_FILE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {suffix or 'none'}. Only PDF files are accepted",
        )


def validate_file_size(content: bytes):

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {size_mb:.2f}MB",
        )


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(services: Services = Depends(get_services)):

    stats = services.store.get_stats()

    return HealthResponse(
        status="healthy",
        store_backend=services.store_backend,
        total_documents=stats["total_documents"],
        total_chunks=stats["total_chunks"],
        embeddings_available=services.embedder is not None,
        llm_available=services.chat_chain is not None,
    )


# ============================================================
# UPLOAD DOCUMENT
# ============================================================

@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    document_id: Optional[str] = Form(None),
    services: Services = Depends(get_services),
):

    validate_file_type(file.filename)

    document_id = (document_id or "").strip() or generate_document_id()

    validate_document_id(document_id)

    start_time = time.time()

    try:

        file_bytes = await file.read()

        validate_file_size(file_bytes)

        upload_dir = Path(UPLOAD_DIR)
        upload_dir.mkdir(parents=True, exist_ok=True)

        file_path = upload_dir / f"{document_id}.pdf"

        with file_path.open("wb") as buffer:
            buffer.write(file_bytes)

        filename = file.filename

        try:

            chunks_created = ingest_pdf(
                str(file_path),
                document_id=document_id,
                file_name=filename,
                store=services.store,
                embedder=services.embedder,
            )

        except (IngestionError, PdfReadError) as e:

            raise HTTPException(status_code=400, detail=str(e)) from e

        services.registry.record(document_id, filename, chunks_created)

        latency = time.time() - start_time

        logger.info(
            "Document upload complete",
            extra={"doc_id": document_id, "chunks": chunks_created}
        )

        posthog_client.track_document_upload(
            distinct_id=_request_id(request),
            document_id=document_id,
            filename=filename,
            chunks=chunks_created,
            latency=latency,
        )

        return UploadResponse(
            document_id=document_id,
            filename=filename,
            chunks_created=chunks_created,
        )

    except Exception as e:

        posthog_client.track_error(
            distinct_id=_request_id(request),
            error_type=type(e).__name__,
            error_message=str(e),
            endpoint="/upload",
        )

        raise


# ============================================================
# ASK QUESTION
# ============================================================

@router.post("/ask", response_model=AskResponse)
def ask_question(
    payload: AskRequest,
    request: Request,
    services: Services = Depends(get_services),
):

    start_time = time.time()

    request_id = _request_id(request)

    try:

        result = answer_question(
            question=payload.question,
            document_id=payload.document_id,
            engine=services.engine,
            gate=services.gate,
            store=services.store,
            composer=services.composer,
            recent_history=[turn.dict() for turn in payload.recent_history],
            chat_chain=services.chat_chain,
            answer_mode=services.answer_mode,
        )

        latency = time.time() - start_time

        metrics_tracker.record_answer(result["strategy"], result["outcome"])

        if result["outcome"] == "irrelevant":

            posthog_client.track_question_rejected(
                distinct_id=request_id,
                document_id=payload.document_id,
                question=payload.question,
            )

        else:

            posthog_client.track_retrieval(
                distinct_id=request_id,
                document_id=payload.document_id,
                strategy=result["strategy"],
                chunks_retrieved=len(result["sources"]),
                top_score=result["top_score"],
            )

        posthog_client.track_question(
            distinct_id=request_id,
            document_id=payload.document_id,
            question=payload.question,
            latency=latency,
            outcome=result["outcome"],
        )

        return AskResponse(
            answer=result["answer"],
            sources=result["sources"],
            strategy=result["strategy"],
        )

    except Exception as e:

        posthog_client.track_error(
            distinct_id=request_id,
            error_type=type(e).__name__,
            error_message=str(e),
            endpoint="/ask",
        )

        raise


# ============================================================
# LIST DOCUMENTS
# ============================================================

@router.get("/documents", response_model=ListDocumentsResponse)
def list_documents(services: Services = Depends(get_services)):

    stored = services.store.list_documents()

    documents = []

    for doc_id, meta in services.registry.items():

        timestamp = meta.get("upload_timestamp")

        documents.append(
            DocumentInfo(
                document_id=doc_id,
                filename=meta.get("filename"),
                chunks_count=stored.get(doc_id, meta.get("chunks_count") or 0),
                upload_timestamp=str(timestamp) if timestamp else None,
            )
        )

    # Chunks stored by an earlier process without a registry entry
    for doc_id, count in stored.items():

        if doc_id not in services.registry:
            documents.append(DocumentInfo(document_id=doc_id, chunks_count=count))

    return ListDocumentsResponse(
        documents=documents,
        total_documents=len(documents),
        total_chunks=sum(d.chunks_count for d in documents),
    )


# ============================================================
# DELETE DOCUMENT
# ============================================================

@router.delete("/documents/{document_id}",
               response_model=DeleteDocumentResponse)
def delete_document(document_id: str, services: Services = Depends(get_services)):

    chunks_deleted = services.store.delete_many(DocumentIs(document_id))

    registered = services.registry.remove(document_id)

    if not chunks_deleted and not registered:

        raise HTTPException(
            status_code=404,
            detail="Document not found",
        )

    logger.info(
        "Document deleted",
        extra={"doc_id": document_id, "chunks": chunks_deleted}
    )

    return DeleteDocumentResponse(
        document_id=document_id,
        message="Deleted",
        chunks_deleted=chunks_deleted,
        success=True,
    )


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics():

    metrics = dict(metrics_tracker.get_metrics())

    metrics["p95_latency"] = metrics_tracker.get_latency_percentile(95)

    return metrics
