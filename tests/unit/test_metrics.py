"""
Unit tests for the rolling-window storage metrics.
"""

import threading

import pytest

from progress_kv.metrics import MetricsSnapshot, StorageMetrics, percentile


class TestPercentile:
    def test_empty_is_none(self):
        assert percentile([], 50) is None

    def test_single_value(self):
        assert percentile([42.0], 95) == 42.0

    def test_linear_interpolation(self):
        values = [10, 20, 30, 40, 100]
        assert percentile(values, 50) == pytest.approx(30)
        assert percentile(values, 95) == pytest.approx(88)
        assert percentile(values, 0) == 10
        assert percentile(values, 100) == 100


class TestStorageMetrics:
    def test_fresh_snapshot_is_empty(self, metrics):
        snapshot = metrics.snapshot()
        assert isinstance(snapshot, MetricsSnapshot)
        assert snapshot.fallback_hits == 0
        assert snapshot.dual_write_errors == 0
        assert snapshot.write_p50_ms is None
        assert snapshot.write_p95_ms is None
        assert snapshot.write_samples == 0

    def test_counts_and_percentiles(self, metrics):
        for _ in range(3):
            metrics.record_fallback_hit()
        metrics.record_dual_write_error()
        for duration in (10, 20, 30, 40, 100):
            metrics.record_write_latency(duration)

        snapshot = metrics.snapshot()
        assert snapshot.fallback_hits == 3
        assert snapshot.dual_write_errors == 1
        assert snapshot.write_samples == 5
        assert snapshot.write_p50_ms == pytest.approx(30)
        assert snapshot.write_p95_ms == pytest.approx(88)
        assert snapshot.write_p50_ms <= snapshot.write_p95_ms

    def test_summary_names(self, metrics):
        metrics.record_fallback_hit()
        metrics.record_write_latency(5)
        assert metrics.snapshot().as_summary() == {
            "fallbackHits1h": 1,
            "dualWriteErrors1h": 0,
            "storageWriteP50": 5.0,
            "storageWriteP95": 5.0,
        }

    def test_entries_leave_the_window(self, metrics, clock):
        metrics.record_fallback_hit()
        metrics.record_write_latency(500)
        clock.advance(1800)
        metrics.record_fallback_hit()
        metrics.record_write_latency(10)

        assert metrics.snapshot().fallback_hits == 2

        clock.advance(1801)
        snapshot = metrics.snapshot()
        assert snapshot.fallback_hits == 1
        assert snapshot.write_samples == 1
        assert snapshot.write_p95_ms == 10
        # Lifetime totals are not windowed
        assert snapshot.total_fallback_hits == 2
        assert snapshot.total_writes == 2

    def test_max_samples_bounds_memory(self, clock):
        metrics = StorageMetrics(window_seconds=3600, max_samples=3, clock=clock)
        for duration in (1, 2, 3, 4, 5):
            metrics.record_write_latency(duration)
        snapshot = metrics.snapshot()
        assert snapshot.write_samples == 3
        assert snapshot.write_p50_ms == 4

    def test_window_counts_are_not_capped_by_max_samples(self, clock):
        metrics = StorageMetrics(window_seconds=3600, max_samples=10, clock=clock)
        for i in range(1500):
            metrics.record_dual_write_error()
            if i % 100 == 0:
                clock.advance(0.5)

        snapshot = metrics.snapshot()
        assert snapshot.dual_write_errors == 1500
        assert snapshot.total_dual_write_errors == 1500

    def test_counter_buckets_expire_with_the_window(self, clock):
        metrics = StorageMetrics(window_seconds=60, clock=clock)
        for _ in range(5):
            metrics.record_fallback_hit()
        clock.advance(30)
        for _ in range(3):
            metrics.record_fallback_hit()

        assert metrics.snapshot().fallback_hits == 8
        clock.advance(31)
        assert metrics.snapshot().fallback_hits == 3
        clock.advance(30)
        assert metrics.snapshot().fallback_hits == 0

    def test_invalid_latency_ignored(self, metrics):
        metrics.record_write_latency(-1)
        metrics.record_write_latency(float("nan"))
        assert metrics.snapshot().write_samples == 0

    def test_reset(self, metrics):
        metrics.record_fallback_hit()
        metrics.record_dual_write_error()
        metrics.record_write_latency(12)
        metrics.reset()

        snapshot = metrics.snapshot()
        assert snapshot.fallback_hits == 0
        assert snapshot.dual_write_errors == 0
        assert snapshot.write_samples == 0
        assert snapshot.total_writes == 0
        assert b"progress_kv_fallback_hits_total 0.0" in metrics.render_prometheus()

    def test_instances_are_independent(self, clock):
        first = StorageMetrics(clock=clock)
        second = StorageMetrics(clock=clock)
        first.record_fallback_hit()
        assert second.snapshot().fallback_hits == 0

    def test_prometheus_exposition(self, metrics):
        metrics.record_fallback_hit()
        metrics.record_repair_error()
        metrics.record_legacy_read_error()
        metrics.record_write_latency(20)
        body = metrics.render_prometheus()
        assert b"progress_kv_fallback_hits_total 1.0" in body
        assert b"progress_kv_repair_errors_total 1.0" in body
        assert b"progress_kv_legacy_read_errors_total 1.0" in body
        assert b"progress_kv_write_duration_seconds_count 1.0" in body

    def test_concurrent_recorders(self, metrics):
        def worker():
            for i in range(200):
                metrics.record_fallback_hit()
                metrics.record_write_latency(i % 50)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        snapshot = metrics.snapshot()
        assert snapshot.total_fallback_hits == 1600
        assert snapshot.total_writes == 1600
        assert snapshot.fallback_hits == 1600
        # Only latency samples are capped at max_samples
        assert snapshot.write_samples == 1000
