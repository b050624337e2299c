"""In-process metrics for outbound API calls and breaker transitions."""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, MutableMapping, Tuple

LabelSet = Tuple[Tuple[str, str], ...]
MetricKey = Tuple[str, LabelSet]

API_LATENCY = "verisoul_api_latency_seconds"
API_REQUESTS = "verisoul_api_requests_total"
API_ERRORS = "verisoul_api_errors_total"
API_RETRIES = "verisoul_api_retries_total"
BREAKER_TRANSITIONS = "circuit_breaker_transitions_total"
BREAKER_REJECTIONS = "circuit_breaker_rejections_total"

# Recent observations kept per series for inspection; totals are aggregated.
SAMPLE_WINDOW = 256


@dataclass
class Histogram:
    count: int = 0
    total: float = 0.0
    maximum: float = 0.0
    recent: deque = field(default_factory=lambda: deque(maxlen=SAMPLE_WINDOW))

    def observe(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.maximum = max(self.maximum, value)
        self.recent.append(value)


@dataclass
class MetricRegistry:
    """A minimal Prometheus-style collector shared by clients and breakers."""

    counters: MutableMapping[MetricKey, float] = field(default_factory=lambda: defaultdict(float))
    histograms: MutableMapping[MetricKey, Histogram] = field(default_factory=lambda: defaultdict(Histogram))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def inc(self, name: str, *, labels: Mapping[str, str] | None = None, amount: float = 1.0) -> None:
        key = self._key(name, labels)
        with self._lock:
            self.counters[key] += amount

    def observe(self, name: str, value: float, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._key(name, labels)
        with self._lock:
            self.histograms[key].observe(value)

    def counter(self, name: str, *, labels: Mapping[str, str] | None = None) -> float:
        return self.counters.get(self._key(name, labels), 0.0)

    def samples(self, name: str, *, labels: Mapping[str, str] | None = None) -> List[float]:
        """Return the most recent observations, at most ``SAMPLE_WINDOW`` of them."""

        histogram = self.histograms.get(self._key(name, labels))
        return list(histogram.recent) if histogram is not None else []

    def observation_count(self, name: str, *, labels: Mapping[str, str] | None = None) -> int:
        histogram = self.histograms.get(self._key(name, labels))
        return histogram.count if histogram is not None else 0

    def total(self, name: str) -> float:
        """Sum a counter across every label set."""

        return sum(value for (metric, _), value in self.counters.items() if metric == name)

    def snapshot(self) -> Dict[str, Any]:
        counters: Dict[str, List[Dict[str, Any]]] = {}
        for (name, labels), value in sorted(self.counters.items()):
            counters.setdefault(name, []).append({"labels": dict(labels), "value": value})
        histograms: Dict[str, List[Dict[str, Any]]] = {}
        for (name, labels), histogram in sorted(self.histograms.items(), key=lambda item: item[0]):
            histograms.setdefault(name, []).append(
                {
                    "labels": dict(labels),
                    "count": histogram.count,
                    "sum": histogram.total,
                    "max": histogram.maximum,
                }
            )
        return {"counters": counters, "histograms": histograms}

    def _key(self, name: str, labels: Mapping[str, str] | None) -> MetricKey:
        sorted_labels = tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))
        return name, sorted_labels


class Timer:
    """Context manager to record elapsed time into a histogram."""

    def __init__(self, registry: MetricRegistry, name: str, *, labels: Mapping[str, str] | None = None) -> None:
        self._registry = registry
        self._name = name
        self._labels = dict(labels or {})
        self._start: float | None = None
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def label(self, key: str, value: str) -> None:
        """Attach a label known only once the timed block has finished."""

        self._labels[key] = value

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._start is None:
            return
        self.elapsed = time.perf_counter() - self._start
        self._registry.observe(self._name, self.elapsed, labels=self._labels)
