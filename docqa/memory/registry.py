# docqa/memory/registry.py

import json
import logging
import os
import threading

from datetime import datetime, timezone
from typing import Dict, Optional

from docqa.config import DOCUMENT_REGISTRY_PATH

logger = logging.getLogger(__name__)


class DocumentRegistry:
    """
    Persistent record of uploaded documents.

    doc_id → {"filename", "chunks_count", "upload_timestamp"}

    The chunk store stays the source of truth for content; the registry
    only remembers display metadata across restarts.
    """

    def __init__(self, path: Optional[str] = DOCUMENT_REGISTRY_PATH):

        self._path = path
        self._lock = threading.Lock()
        self._documents: Dict[str, dict] = {}

        self.load()

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def load(self):

        if not self._path or not os.path.exists(self._path):
            logger.info("Document registry file not found. Starting fresh.")
            return

        try:

            with open(self._path, "r") as f:
                data = json.load(f)

            restored = {}

            for doc_id, meta in data.items():

                timestamp = meta.get("upload_timestamp")

                if timestamp:
                    try:
                        meta["upload_timestamp"] = datetime.fromisoformat(timestamp)
                    except ValueError:
                        meta["upload_timestamp"] = None

                restored[doc_id] = meta

            with self._lock:
                self._documents = restored

            logger.info(
                "Document registry loaded",
                extra={"documents": len(restored)}
            )

        except Exception as e:

            logger.error(
                "Document registry load failed",
                extra={"error": str(e)}
            )

    def save(self):

        if not self._path:
            return

        try:

            directory = os.path.dirname(self._path)

            if directory:
                os.makedirs(directory, exist_ok=True)

            with self._lock:
                snapshot = dict(self._documents)

            serializable = {}

            for doc_id, meta in snapshot.items():

                timestamp = meta.get("upload_timestamp")

                serializable[doc_id] = {
                    "filename": meta.get("filename"),
                    "chunks_count": meta.get("chunks_count"),
                    "upload_timestamp":
                        timestamp.isoformat() if isinstance(timestamp, datetime) else None,
                }

            with open(self._path, "w") as f:
                json.dump(serializable, f)

            logger.info("Document registry saved")

        except Exception as e:

            logger.error(
                "Document registry save failed",
                extra={"error": str(e)}
            )

    # ============================================================
    # ACCESS
    # ============================================================

    def record(self, document_id: str, filename: str, chunks_count: int):

        with self._lock:

            self._documents[document_id] = {
                "filename": filename,
                "chunks_count": chunks_count,
                "upload_timestamp": datetime.now(timezone.utc),
            }

        self.save()

    def remove(self, document_id: str) -> bool:

        with self._lock:
            removed = self._documents.pop(document_id, None) is not None

        if removed:
            self.save()

        return removed

    def get(self, document_id: str) -> Optional[dict]:
        return self._documents.get(document_id)

    def items(self):

        with self._lock:
            return list(self._documents.items())

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)
