import json
import logging
import os
import threading
from typing import List, Optional

from docqa.config import METRICS_PATH

logger = logging.getLogger(__name__)

_lock = threading.Lock()


def _empty_metrics() -> dict:

    return {

        "total_requests": 0,
        "successful_requests": 0,
        "failed_requests": 0,

        "total_latency": 0.0,
        "avg_latency": 0.0,

        # latency history for percentiles
        "latencies": [],

        # strategy name → answered questions
        "retrieval_strategies": {},

        "gate_rejections": 0,
        "no_match_answers": 0,

    }


class MetricsTracker:

    def __init__(self, path: Optional[str] = METRICS_PATH):

        self._path = path

        if self._path and os.path.dirname(self._path):
            os.makedirs(os.path.dirname(self._path), exist_ok=True)

        self._metrics = _empty_metrics()

        self._load()


    def _load(self):

        if not self._path or not os.path.exists(self._path):
            return

        try:

            with open(self._path, "r") as f:

                data = json.load(f)

            # Files written before a counter existed
            for key, value in _empty_metrics().items():
                data.setdefault(key, value)

            self._metrics = data

        except Exception as e:

            logger.warning(
                "Metrics file unreadable, starting fresh",
                extra={"path": self._path, "error": str(e)},
            )


    def _save(self):

        if not self._path:
            return

        with open(self._path, "w") as f:

            json.dump(self._metrics, f, indent=2)


    def record_success(self, latency: float):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["successful_requests"] += 1

            self._metrics["total_latency"] += latency

            self._metrics["avg_latency"] = (
                self._metrics["total_latency"]
                / self._metrics["total_requests"]
            )

            self._metrics["latencies"].append(latency)

            self._save()


    def record_failure(self):

        with _lock:

            self._metrics["total_requests"] += 1

            self._metrics["failed_requests"] += 1

            self._save()


    def record_answer(self, strategy: str, outcome: str):

        with _lock:

            if outcome == "irrelevant":
                self._metrics["gate_rejections"] += 1

            elif outcome == "answered":
                strategies = self._metrics["retrieval_strategies"]
                strategies[strategy] = strategies.get(strategy, 0) + 1

            else:
                self._metrics["no_match_answers"] += 1

            self._save()


    def get_metrics(self):

        return self._metrics


    def get_latency_percentile(self, percentile: float) -> float:

        latencies: List[float] = self._metrics.get("latencies", [])

        if not latencies:
            return 0.0

        sorted_latencies = sorted(latencies)

        index = int(len(sorted_latencies) * percentile / 100)

        index = min(index, len(sorted_latencies) - 1)

        return sorted_latencies[index]


metrics_tracker = MetricsTracker()
