"""Metrics client abstraction and implementations.

- MetricsClient: abstract base class for metrics emission
- NullMetricsClient: no-op implementation (default)
- StdoutMetricsClient: JSON lines on stderr for debugging
- RegistryMetricsClient: in-process registry with Prometheus text export

The backend is picked by ``METRICS_BACKEND`` (``null`` | ``stdout`` |
``registry`` | ``prometheus``) the first time ``get_metrics_client()`` runs.
"""

from __future__ import annotations

import json
import os
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any

METRIC_PREFIX = "refcode"

# Histogram buckets for timing metrics, in milliseconds
DEFAULT_TIMING_BUCKETS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


class MetricsClient(ABC):
    """Abstract base class for metrics emission."""

    @abstractmethod
    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        """Increment a counter metric."""
        ...

    @abstractmethod
    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        """Record a gauge observation."""
        ...

    @abstractmethod
    def timing(self, name: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        """Record a timing value in milliseconds."""
        ...


class NullMetricsClient(MetricsClient):
    """No-op metrics client for when metrics are disabled."""

    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        pass

    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        pass

    def timing(self, name: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        pass


class StdoutMetricsClient(MetricsClient):
    """Emit metrics as JSON lines for development/debugging."""

    def __init__(self, prefix: str = METRIC_PREFIX):
        self.prefix = prefix

    def _emit(self, metric_type: str, name: str, value: Any, tags: dict[str, str] | None) -> None:
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": metric_type,
            "metric": f"{self.prefix}.{name}",
            "value": value,
            "tags": tags or {},
        }
        print(json.dumps(record), file=sys.stderr)

    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        self._emit("counter", name, value, tags)

    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self._emit("gauge", name, value, tags)

    def timing(self, name: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        self._emit("timing", name, value_ms, tags)


def _tags_to_labels(tags: dict[str, str] | None) -> str:
    if not tags:
        return ""
    label_pairs = [f'{k}="{v}"' for k, v in sorted(tags.items())]
    return "{" + ",".join(label_pairs) + "}"


def _sanitize_metric_name(name: str) -> str:
    return name.replace(".", "_").replace("-", "_")


def _with_le(labels: str, bucket: str) -> str:
    if labels:
        return labels[:-1] + f',le="{bucket}"' + "}"
    return f'{{le="{bucket}"}}'


class RegistryMetricsClient(MetricsClient):
    """In-process metrics registry with Prometheus text export.

    Usage:
        client = RegistryMetricsClient()
        client.incr("reverse_search.requests", {"method": "ilike"})
        client.timing("reverse_search.resolve", 12.5)
        text = client.export_prometheus()
    """

    def __init__(self, prefix: str = METRIC_PREFIX, buckets: tuple[float, ...] = DEFAULT_TIMING_BUCKETS):
        self.prefix = prefix
        self.buckets = buckets
        self._lock = threading.Lock()
        self._counters: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._gauges: dict[str, dict[str, float]] = defaultdict(dict)
        self._histograms: dict[str, dict[str, dict[str, float]]] = defaultdict(
            lambda: defaultdict(lambda: defaultdict(float))
        )

    def incr(self, name: str, tags: dict[str, str] | None = None, value: int = 1) -> None:
        with self._lock:
            self._counters[name][_tags_to_labels(tags)] += value

    def observe(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][_tags_to_labels(tags)] = value

    def timing(self, name: str, value_ms: float, tags: dict[str, str] | None = None) -> None:
        with self._lock:
            data = self._histograms[name][_tags_to_labels(tags)]
            data["_sum"] += value_ms
            data["_count"] += 1
            for bucket in self.buckets:
                if value_ms <= bucket:
                    data[f"le_{bucket}"] += 1
            data["le_+Inf"] += 1

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus exposition format."""
        lines: list[str] = []
        with self._lock:
            for name, values in sorted(self._counters.items()):
                metric_name = f"{self.prefix}_{_sanitize_metric_name(name)}_total"
                lines.append(f"# TYPE {metric_name} counter")
                for labels, value in sorted(values.items()):
                    lines.append(f"{metric_name}{labels} {value}")

            for name, values in sorted(self._gauges.items()):
                metric_name = f"{self.prefix}_{_sanitize_metric_name(name)}"
                lines.append(f"# TYPE {metric_name} gauge")
                for labels, value in sorted(values.items()):
                    lines.append(f"{metric_name}{labels} {value}")

            for name, series in sorted(self._histograms.items()):
                metric_name = f"{self.prefix}_{_sanitize_metric_name(name)}"
                lines.append(f"# TYPE {metric_name} histogram")
                for labels, data in sorted(series.items()):
                    for bucket in self.buckets:
                        count = data.get(f"le_{bucket}", 0)
                        lines.append(f"{metric_name}_bucket{_with_le(labels, str(bucket))} {count}")
                    lines.append(f"{metric_name}_bucket{_with_le(labels, '+Inf')} {data.get('le_+Inf', 0)}")
                    lines.append(f"{metric_name}_sum{labels} {data.get('_sum', 0)}")
                    lines.append(f"{metric_name}_count{labels} {data.get('_count', 0)}")

        return "\n".join(lines) + "\n"

    def export_json(self) -> dict[str, Any]:
        """Snapshot of counters, gauges and histogram sums/counts keyed by label string."""
        with self._lock:
            return {
                "counters": {name: dict(values) for name, values in self._counters.items()},
                "gauges": {name: dict(values) for name, values in self._gauges.items()},
                "histograms": {
                    name: {
                        labels: {"sum": data.get("_sum", 0.0), "count": data.get("_count", 0.0)}
                        for labels, data in series.items()
                    }
                    for name, series in self._histograms.items()
                },
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


_metrics_client: MetricsClient | None = None


def get_metrics_client() -> MetricsClient:
    """Get the global metrics client, initializing it from ``METRICS_BACKEND``."""
    global _metrics_client
    if _metrics_client is None:
        backend = os.getenv("METRICS_BACKEND", "null").lower()
        if backend in ("registry", "prometheus"):
            _metrics_client = RegistryMetricsClient()
        elif backend == "stdout":
            _metrics_client = StdoutMetricsClient()
        else:
            _metrics_client = NullMetricsClient()
    return _metrics_client


def set_metrics_client(client: MetricsClient) -> None:
    """Set the global metrics client."""
    global _metrics_client
    _metrics_client = client


def reset_metrics_client() -> None:
    """Forget the global client so the next call re-reads the environment."""
    global _metrics_client
    _metrics_client = None
