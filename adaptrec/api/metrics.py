"""Metrics service for tracking engine activity.

Singleton service counting training and recommendation passes, their
latency and how many products were recommended.
"""

import threading
from typing import Dict


class _PassStats:
    """Latency and output size of one kind of pass."""

    def __init__(self):
        self.count = 0
        self.total_ms = 0.0
        self.min_ms = float("inf")
        self.max_ms = 0.0
        self.items = 0

    def record(self, latency_ms: float, num_items: int) -> None:
        self.count += 1
        self.total_ms += latency_ms
        self.min_ms = min(self.min_ms, latency_ms)
        self.max_ms = max(self.max_ms, latency_ms)
        self.items += num_items

    def as_dict(self) -> Dict:
        if not self.count:
            return {
                "count": 0,
                "average_latency_ms": 0.0,
                "min_latency_ms": 0.0,
                "max_latency_ms": 0.0,
                "items_recommended": 0,
            }
        return {
            "count": self.count,
            "average_latency_ms": round(self.total_ms / self.count, 2),
            "min_latency_ms": round(self.min_ms, 2),
            "max_latency_ms": round(self.max_ms, 2),
            "items_recommended": self.items,
        }


class MetricsService:
    """Singleton service for tracking API metrics.

    Thread-safe counters for training passes (retrain-and-recommend after a
    purchase), inference-only recommendation passes and failed trainings.
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
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._training = _PassStats()
        self._recommendation = _PassStats()
        self._training_failures = 0
        self._initialized = True

    def record_training(self, latency_ms: float, num_items: int = 0) -> None:
        """Record a completed retrain-and-recommend pass.

        Args:
            latency_ms: Wall time of the pass in milliseconds
            num_items: Number of recommendations it returned
        """
        with self._lock:
            self._training.record(latency_ms, num_items)

    def record_recommendation(self, latency_ms: float, num_items: int = 0) -> None:
        """Record an inference-only recommendation pass."""
        with self._lock:
            self._recommendation.record(latency_ms, num_items)

    def record_training_failure(self) -> None:
        with self._lock:
            self._training_failures += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with ``training`` and ``recommendation`` pass
            summaries and the number of failed training passes.
        """
        with self._lock:
            return {
                "training": self._training.as_dict(),
                "recommendation": self._recommendation.as_dict(),
                "training_failures": self._training_failures,
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._training = _PassStats()
            self._recommendation = _PassStats()
            self._training_failures = 0


# Global singleton instance
metrics_service = MetricsService()
