"""
Metrics collection for Immutable Ratings.

Thread-safe in-process metrics:
- Counters: transactions, reverts, ratings created, rating units minted, HTTP requests
- Gauges: point-in-time values (active HTTP requests)
- Histograms: latency distributions in milliseconds

Exposed as JSON or in the Prometheus text format.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

METRIC_PREFIX = "immutable_ratings"

# Latency buckets in milliseconds
DEFAULT_BUCKETS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000)


@dataclass
class Histogram:
    """Cumulative histogram over fixed upper bounds (last bound is +Inf)."""

    bounds: tuple[float, ...] = DEFAULT_BUCKETS
    counts: list[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float) -> None:
        self.sum += value
        self.count += 1
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1
        self.counts[-1] += 1

    def buckets(self) -> list[tuple[str, int]]:
        labels = [str(b) for b in self.bounds] + ["+Inf"]
        return list(zip(labels, self.counts, strict=True))


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Every metric may carry labels; each distinct label set is tracked
    separately.
    """

    def __init__(self, prefix: str = METRIC_PREFIX):
        self.prefix = prefix
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    @staticmethod
    def _labels_key(labels: dict[str, str] | None) -> str:
        if not labels:
            return ""
        return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))

    # Counters

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._counters[name][self._labels_key(labels)] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            return self._counters.get(name, {}).get(self._labels_key(labels), 0)

    # Gauges

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] = value

    def increment_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][self._labels_key(labels)] += value

    def decrement_gauge(self, name: str, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        self.increment_gauge(name, -value, labels)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges.get(name, {}).get(self._labels_key(labels), 0.0)

    # Histograms

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = self._labels_key(labels)
            if key not in self._histograms[name]:
                self._histograms[name][key] = Histogram()
            self._histograms[name][key].observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Time a block of code into the ``name`` histogram."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    # Export

    def get_all(self) -> dict[str, Any]:
        """All metrics as a JSON-serializable dictionary."""
        with self._lock:
            result: dict[str, Any] = {
                "uptime_seconds": round(time.time() - self._start_time, 3),
                "counters": {},
                "gauges": {},
                "histograms": {},
            }
            for name, values in self._counters.items():
                result["counters"][name] = values[""] if list(values) == [""] else dict(values)
            for name, values in self._gauges.items():
                result["gauges"][name] = values[""] if list(values) == [""] else dict(values)
            for name, histograms in self._histograms.items():
                result["histograms"][name] = {
                    key or "_total": {
                        "count": hist.count,
                        "sum": hist.sum,
                        "avg": hist.sum / hist.count if hist.count else 0,
                        "buckets": dict(hist.buckets()),
                    }
                    for key, hist in histograms.items()
                }
            return result

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = [
            f"# HELP {self.prefix}_uptime_seconds Time since application start",
            f"# TYPE {self.prefix}_uptime_seconds gauge",
            f"{self.prefix}_uptime_seconds {time.time() - self._start_time:.2f}",
            "",
        ]

        with self._lock:
            for kind, series in (("counter", self._counters), ("gauge", self._gauges)):
                for name, values in series.items():
                    metric = f"{self.prefix}_{name}"
                    lines.append(f"# TYPE {metric} {kind}")
                    for key, value in values.items():
                        lines.append(f"{metric}{{{key}}} {value}" if key else f"{metric} {value}")
                    lines.append("")

            for name, histograms in self._histograms.items():
                metric = f"{self.prefix}_{name}"
                lines.append(f"# TYPE {metric} histogram")
                for key, hist in histograms.items():
                    sep = f"{key}," if key else ""
                    for le, count in hist.buckets():
                        lines.append(f'{metric}_bucket{{{sep}le="{le}"}} {count}')
                    suffix = f"{{{key}}}" if key else ""
                    lines.append(f"{metric}_sum{suffix} {hist.sum:.2f}")
                    lines.append(f"{metric}_count{suffix} {hist.count}")
                lines.append("")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Global metrics instance
metrics = MetricsCollector()
