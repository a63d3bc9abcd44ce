# Copyright 2024 Heinrich Krupp
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Rolling-window metrics for store operations.

Counts fallback hits, dual-write errors and repair failures, and keeps write
latencies for p50/p95, all over a trailing window (one hour by default).
Counter events are aggregated into one-second buckets, so window counts stay
exact at any rate while memory is bounded by the window length. Latency
samples are kept individually, capped at ``max_samples``. Both are pruned
lazily.

Every recording is also mirrored to prometheus_client collectors held in a
per-instance registry, so the same numbers are available for scraping.
"""

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SECONDS = 3600.0
DEFAULT_MAX_SAMPLES = 1000

# Write latency buckets, in seconds
_WRITE_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

# Width of a counter bucket, in seconds
_COUNTER_BUCKET_SECONDS = 1.0


def percentile(sorted_values: Sequence[float], pct: float) -> Optional[float]:
    """
    Linear-interpolation percentile over an ascending sequence.

    Args:
        sorted_values: Values in ascending order
        pct: Percentile in [0, 100]

    Returns:
        The interpolated value, or None for an empty sequence
    """
    if not sorted_values:
        return None
    if len(sorted_values) == 1:
        return float(sorted_values[0])

    rank = (pct / 100.0) * (len(sorted_values) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_values[lower])
    weight = rank - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * weight


def _prune_buckets(series: deque, cutoff: float) -> None:
    while series and series[0][0] < cutoff:
        series.popleft()


def _bucket_total(series: deque) -> int:
    return sum(count for _, count in series)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time view of the rolling window."""
    fallback_hits: int
    dual_write_errors: int
    repair_errors: int
    legacy_read_errors: int
    write_p50_ms: Optional[float]
    write_p95_ms: Optional[float]
    write_samples: int
    window_seconds: float
    total_fallback_hits: int
    total_dual_write_errors: int
    total_writes: int

    def as_summary(self) -> dict:
        """Shape used by the storage health endpoint."""
        return {
            "fallbackHits1h": self.fallback_hits,
            "dualWriteErrors1h": self.dual_write_errors,
            "storageWriteP50": self.write_p50_ms,
            "storageWriteP95": self.write_p95_ms,
        }


class StorageMetrics:
    """
    Aggregates store-operation metrics over a trailing window.

    Safe for concurrent recorders: each record takes a lock only for a
    bucket increment or a deque append. snapshot() copies under the same
    lock and does the percentile math after releasing it.

    Counters are exact per one-second bucket; a bucket leaves the window
    once its start is older than ``window_seconds``.
    """

    def __init__(self,
                 window_seconds: float = DEFAULT_WINDOW_SECONDS,
                 max_samples: int = DEFAULT_MAX_SAMPLES,
                 clock: Callable[[], float] = time.monotonic,
                 registry: Optional[CollectorRegistry] = None):
        """
        Args:
            window_seconds: Entries older than this are excluded from snapshots
            max_samples: Upper bound on retained write latency samples
            clock: Monotonic time source (seconds)
            registry: Prometheus registry; a private one is created by default
        """
        self.window_seconds = window_seconds
        self.max_samples = max_samples
        self._clock = clock
        self._lock = threading.Lock()

        # [bucket_start, count] pairs, oldest first
        self._fallback_hits: deque[list] = deque()
        self._dual_write_errors: deque[list] = deque()
        self._repair_errors: deque[list] = deque()
        self._legacy_read_errors: deque[list] = deque()
        self._write_latencies: deque[tuple[float, float]] = deque(maxlen=max_samples)

        self._total_fallback_hits = 0
        self._total_dual_write_errors = 0
        self._total_writes = 0

        self.registry = registry if registry is not None else CollectorRegistry()
        self._init_collectors()

    @classmethod
    def from_settings(cls, metrics_settings) -> "StorageMetrics":
        return cls(window_seconds=metrics_settings.window_seconds, max_samples=metrics_settings.max_samples)

    def _init_collectors(self):
        self._prom_fallback_hits = Counter(
            "progress_kv_fallback_hits",
            "Reads served from legacy KV after a primary miss",
            registry=self.registry
        )
        self._prom_dual_write_errors = Counter(
            "progress_kv_dual_write_errors",
            "Failed legacy mirror writes during dual write",
            registry=self.registry
        )
        self._prom_repair_errors = Counter(
            "progress_kv_repair_errors",
            "Failed repair-on-read writes into the primary store",
            registry=self.registry
        )
        self._prom_legacy_read_errors = Counter(
            "progress_kv_legacy_read_errors",
            "Failed legacy reads during fallback",
            registry=self.registry
        )
        self._prom_write_duration = Histogram(
            "progress_kv_write_duration_seconds",
            "Duration of primary store writes in seconds",
            buckets=_WRITE_BUCKETS,
            registry=self.registry
        )

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def _increment(self, series: deque) -> None:
        """Count one event in the current bucket. Caller holds the lock."""
        now = self._clock()
        bucket = math.floor(now / _COUNTER_BUCKET_SECONDS) * _COUNTER_BUCKET_SECONDS
        if series and series[-1][0] == bucket:
            series[-1][1] += 1
        else:
            series.append([bucket, 1])
            _prune_buckets(series, now - self.window_seconds)

    def record_fallback_hit(self) -> None:
        with self._lock:
            self._increment(self._fallback_hits)
            self._total_fallback_hits += 1
        self._prom_fallback_hits.inc()

    def record_dual_write_error(self) -> None:
        with self._lock:
            self._increment(self._dual_write_errors)
            self._total_dual_write_errors += 1
        self._prom_dual_write_errors.inc()

    def record_repair_error(self) -> None:
        with self._lock:
            self._increment(self._repair_errors)
        self._prom_repair_errors.inc()

    def record_legacy_read_error(self) -> None:
        with self._lock:
            self._increment(self._legacy_read_errors)
        self._prom_legacy_read_errors.inc()

    def record_write_latency(self, duration_ms: float) -> None:
        if duration_ms < 0 or math.isnan(duration_ms):
            logger.warning(f"Ignoring invalid write latency: {duration_ms}")
            return
        with self._lock:
            self._write_latencies.append((self._clock(), float(duration_ms)))
            self._total_writes += 1
        self._prom_write_duration.observe(duration_ms / 1000.0)

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def _prune(self, cutoff: float) -> None:
        # Entries are appended in clock order, so stale ones sit at the left
        for series in (self._fallback_hits, self._dual_write_errors, self._repair_errors, self._legacy_read_errors):
            _prune_buckets(series, cutoff)
        while self._write_latencies and self._write_latencies[0][0] < cutoff:
            self._write_latencies.popleft()

    def snapshot(self) -> MetricsSnapshot:
        """Return counters and write percentiles for the current window."""
        with self._lock:
            self._prune(self._clock() - self.window_seconds)
            fallback_hits = _bucket_total(self._fallback_hits)
            dual_write_errors = _bucket_total(self._dual_write_errors)
            repair_errors = _bucket_total(self._repair_errors)
            legacy_read_errors = _bucket_total(self._legacy_read_errors)
            latencies = [duration for _, duration in self._write_latencies]
            totals = (self._total_fallback_hits, self._total_dual_write_errors, self._total_writes)

        latencies.sort()
        return MetricsSnapshot(
            fallback_hits=fallback_hits,
            dual_write_errors=dual_write_errors,
            repair_errors=repair_errors,
            legacy_read_errors=legacy_read_errors,
            write_p50_ms=percentile(latencies, 50),
            write_p95_ms=percentile(latencies, 95),
            write_samples=len(latencies),
            window_seconds=self.window_seconds,
            total_fallback_hits=totals[0],
            total_dual_write_errors=totals[1],
            total_writes=totals[2],
        )

    def render_prometheus(self) -> bytes:
        """Prometheus text exposition of this aggregator's collectors."""
        return generate_latest(self.registry)

    def reset(self) -> None:
        """Clear all recorded state. Intended for tests."""
        with self._lock:
            for series in (self._fallback_hits, self._dual_write_errors, self._repair_errors,
                           self._legacy_read_errors, self._write_latencies):
                series.clear()
            self._total_fallback_hits = 0
            self._total_dual_write_errors = 0
            self._total_writes = 0
        # Prometheus counters are monotonic; re-register fresh collectors
        for collector in (self._prom_fallback_hits, self._prom_dual_write_errors, self._prom_repair_errors,
                          self._prom_legacy_read_errors, self._prom_write_duration):
            self.registry.unregister(collector)
        self._init_collectors()
