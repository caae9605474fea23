"""Metrics service for tracking pipeline runs and sampling latency.

Singleton service recording how long each batch stage took and how fast
sample requests are served.
"""

import threading
from typing import Dict


class MetricsService:
    """Singleton service for tracking engine metrics.

    Thread-safe counters for stage runs and sample calls.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._stages: Dict[str, Dict] = {}
        self._sample_count = 0
        self._total_sample_latency_ms = 0.0
        self._min_sample_latency_ms = float('inf')
        self._max_sample_latency_ms = 0.0
        self._initialized = True

    def record_stage(self, stage: str, duration_ms: float, count: int) -> None:
        """Record one finished pipeline stage.

        Args:
            stage: Stage name (activity, similarity, recommendation)
            duration_ms: How long the stage took in milliseconds
            count: Number of rows the stage produced
        """
        with self._lock:
            entry = self._stages.setdefault(stage, {"runs": 0})
            entry["runs"] += 1
            entry["last_duration_ms"] = round(duration_ms, 2)
            entry["last_count"] = count

    def record_sample(self, latency_ms: float) -> None:
        """Record a sample call with its latency.

        Args:
            latency_ms: Latency in milliseconds
        """
        with self._lock:
            self._sample_count += 1
            self._total_sample_latency_ms += latency_ms

            if latency_ms < self._min_sample_latency_ms:
                self._min_sample_latency_ms = latency_ms

            if latency_ms > self._max_sample_latency_ms:
                self._max_sample_latency_ms = latency_ms

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with:
            - stages: per-stage run count, last duration and last row count
            - sample_count: Total number of sample calls
            - average_sample_latency_ms: Average sample latency
            - min_sample_latency_ms / max_sample_latency_ms
        """
        with self._lock:
            avg_latency = (
                self._total_sample_latency_ms / self._sample_count
                if self._sample_count > 0
                else 0.0
            )

            return {
                "stages": {name: dict(entry) for name, entry in self._stages.items()},
                "sample_count": self._sample_count,
                "average_sample_latency_ms": round(avg_latency, 2),
                "min_sample_latency_ms": round(self._min_sample_latency_ms, 2) if self._min_sample_latency_ms != float('inf') else 0.0,
                "max_sample_latency_ms": round(self._max_sample_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._stages = {}
            self._sample_count = 0
            self._total_sample_latency_ms = 0.0
            self._min_sample_latency_ms = float('inf')
            self._max_sample_latency_ms = 0.0


# Global singleton instance
metrics_service = MetricsService()
