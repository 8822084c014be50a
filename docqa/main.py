# docqa/main.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import time
import uuid

from docqa.api.routes import router
from docqa.config import ANSWER_MODE, STORE_BACKEND
from docqa.observability.logger import setup_logging
from docqa.observability.metrics import metrics_tracker
from docqa.observability.posthog_client import posthog_client
from docqa.services import build_services

# Initialize logging FIRST
setup_logging(log_level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="PDF Document QA API",
    description="Question answering over uploaded PDFs with a staged retrieval cascade",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Logs every request with latency, records metrics and registers
    the request id with PostHog.
    """

    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    posthog_client.identify_user(
        distinct_id=request_id,
        properties={
            "entry_point": request.url.path,
            "method": request.method,
        },
    )

    logger.info(
        "request_started",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None
        }
    )

    start_time = time.time()

    try:

        response = await call_next(request)

        latency = time.time() - start_time

        if response.status_code >= 500:
            metrics_tracker.record_failure()
        else:
            metrics_tracker.record_success(latency)

        logger.info(
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "latency_seconds": round(latency, 3)
            }
        )

        return response

    except Exception as e:

        latency = time.time() - start_time

        metrics_tracker.record_failure()

        logger.error(
            "request_failed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "latency_seconds": round(latency, 3),
                "error": str(e),
                "error_type": type(e).__name__
            },
            exc_info=True
        )

        raise


app.include_router(router)


@app.on_event("startup")
async def startup_event():

    if getattr(app.state, "services", None) is None:
        app.state.services = build_services()

    logger.info(
        "application_startup",
        extra={
            "version": VERSION,
            "store_backend": STORE_BACKEND,
            "answer_mode": ANSWER_MODE,
        },
    )

    if not os.getenv("OPENAI_API_KEY"):

        logger.warning(
            "missing_api_key",
            extra={
                "warning_detail":
                "OPENAI_API_KEY not set. Vector retrieval disabled, "
                "keyword stages only."
            }
        )

    print("=" * 50)
    print("PDF Document QA API Started")
    print("=" * 50)
    print("Endpoints:")
    print("  POST /upload           - Upload a PDF")
    print("  POST /ask              - Ask a question")
    print("  GET  /documents        - List all documents")
    print("  DELETE /documents/{id} - Delete a document")
    print("  GET  /health           - Health check")
    print("  GET  /metrics          - System metrics")
    print("=" * 50)


@app.on_event("shutdown")
async def shutdown_event():

    logger.info("application_shutdown")


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):

    request_id = getattr(request.state, "request_id", "unknown")

    logger.error(
        "unhandled_exception",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__
        },
        exc_info=True
    )

    posthog_client.track_error(
        distinct_id=request_id,
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "An internal error occurred. Please try again.",
            "request_id": request_id,
            "error_type": type(exc).__name__
        }
    )


@app.get("/")
async def root():

    return {
        "message": "PDF Document QA API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics"
    }
