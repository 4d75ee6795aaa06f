"""
Supportability counters for the span stream.
Counts are kept in memory (so they can be inspected and harvested) and mirrored to
OpenTelemetry counters on the global meter provider.
"""

import logging
import threading
from typing import Dict, Optional

from opentelemetry import metrics as otel_metrics

from .constants import LOG_TAG, SPANSTREAM_TRACER_NAME, VERSION

logger = logging.getLogger(LOG_TAG)


class SupportabilityMetrics:
    """Thread-safe named counters. increment() never raises."""

    def __init__(self, meter: Optional[otel_metrics.Meter] = None):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self._counters: Dict[str, otel_metrics.Counter] = {}
        self._meter = meter

    def _get_meter(self) -> otel_metrics.Meter:
        if self._meter is None:
            self._meter = otel_metrics.get_meter(SPANSTREAM_TRACER_NAME, VERSION)
        return self._meter

    def increment(self, name: str, count: int = 1) -> None:
        """Add count to the named counter."""
        with self._lock:
            self._counts[name] = self._counts.get(name, 0) + count
            counter = self._counters.get(name)
        try:
            if counter is None:
                counter = self._get_meter().create_counter(name)
                with self._lock:
                    counter = self._counters.setdefault(name, counter)
            counter.add(count)
        except Exception as e:
            # telemetry about telemetry must not break the caller
            logger.debug(f"Could not record metric {name}: {e}")

    def count(self, name: str) -> int:
        """Current value of the named counter (0 if never recorded)."""
        with self._lock:
            return self._counts.get(name, 0)

    def recorded(self, name: str) -> bool:
        with self._lock:
            return name in self._counts

    def harvest(self) -> Dict[str, int]:
        """Return and reset all counts."""
        with self._lock:
            counts = self._counts
            self._counts = {}
            return counts

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)
