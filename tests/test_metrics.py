"""Metrics instrumentation tests.

These tests run entirely in-process (no network, no browser).
They verify:
  1. Counter increment semantics (plain + labeled)
  2. Latency histogram recording, bucket placement, and percentile estimates
  3. Sync-attempt and remote-error helpers
  4. Snapshot structure and reset_all()
"""

from __future__ import annotations

import asyncio
import time

import pytest

from ctxsync.observability.metrics import (
    Histogram,
    MetricsCollector,
    _LATENCY_BUCKETS_MS,
    get_metrics,
)


@pytest.fixture()
def mc() -> MetricsCollector:
    return MetricsCollector()


# ---------------------------------------------------------------------------
# Histogram unit tests
# ---------------------------------------------------------------------------


class TestHistogram:
    def test_bucket_placement(self):
        h = Histogram("test")
        h.record(5)
        assert h._buckets[0] == 1
        h.record(1000)
        assert h._buckets[list(_LATENCY_BUCKETS_MS).index(1000)] == 1

    def test_full_callback_budget_has_a_bucket(self):
        h = Histogram("test")
        h.record(299_000)
        assert h._buckets[list(_LATENCY_BUCKETS_MS).index(300_000)] == 1

    def test_above_max_bucket_goes_to_inf(self):
        h = Histogram("test")
        h.record(1_000_000)
        assert h._buckets[_LATENCY_BUCKETS_MS.index(float("inf"))] == 1

    def test_mean_and_empty_percentile(self):
        h = Histogram("test")
        assert h.percentile(95) == 0.0
        h.record(100)
        h.record(200)
        assert abs(h.mean_ms - 150.0) < 0.01

    def test_reset_zeroes_all(self):
        h = Histogram("test")
        h.record(100)
        h.reset()
        assert h.count == 0
        assert all(b == 0 for b in h._buckets)


# ---------------------------------------------------------------------------
# MetricsCollector
# ---------------------------------------------------------------------------


class TestMetricsCollector:
    async def test_inc_and_labeled(self, mc):
        await mc.inc("foo")
        await mc.inc("foo")
        await mc.inc_labeled("errors", "search")
        snap = mc.snapshot_sync()
        assert snap["counters"]["foo"] == 2
        assert snap["labeled_counters"]["errors"] == {"search": 1}

    async def test_unknown_histogram_name_ignored(self, mc):
        await mc.record("nonexistent_histogram", 100)
        assert "nonexistent_histogram" not in mc.snapshot_sync()["histograms"]

    async def test_timer_records(self, mc):
        async with mc.timer("search_latency_ms"):
            await asyncio.sleep(0.01)
        hist = mc.snapshot_sync()["histograms"]["search_latency_ms"]
        assert hist["count"] == 1
        assert hist["max_ms"] >= 10

    async def test_timer_records_on_error(self, mc):
        with pytest.raises(ValueError):
            async with mc.timer("embedding_latency_ms"):
                raise ValueError("boom")
        assert mc.snapshot_sync()["histograms"]["embedding_latency_ms"]["count"] == 1

    async def test_sync_helpers(self, mc):
        await mc.sync_started()
        await mc.sync_finished("timeout", 300_000)
        await mc.remote_error("embeddings")
        snap = mc.snapshot_sync()
        assert snap["counters"]["sync_attempts_total"] == 1
        assert snap["labeled_counters"]["sync_outcomes_total"] == {"timeout": 1}
        assert snap["labeled_counters"]["remote_errors_total"] == {"embeddings": 1}
        assert snap["histograms"]["sync_latency_ms"]["count"] == 1

    async def test_snapshot_async_matches_sync(self, mc):
        await mc.inc("z")
        assert (await mc.snapshot())["counters"] == mc.snapshot_sync()["counters"]

    def test_empty_snapshot(self, mc):
        snap = mc.snapshot_sync()
        assert set(snap) == {"uptime_seconds", "counters", "labeled_counters", "histograms"}
        assert set(snap["histograms"]) == {"sync_latency_ms", "search_latency_ms", "embedding_latency_ms"}
        assert all(h["count"] == 0 for h in snap["histograms"].values())

    def test_uptime_increases(self, mc):
        snap1 = mc.snapshot_sync()
        time.sleep(0.05)
        assert mc.snapshot_sync()["uptime_seconds"] >= snap1["uptime_seconds"]

    async def test_reset_all(self, mc):
        await mc.inc("x")
        await mc.sync_finished("completed", 10)
        mc.reset_all()
        snap = mc.snapshot_sync()
        assert snap["counters"] == {}
        assert snap["histograms"]["sync_latency_ms"]["count"] == 0

    async def test_concurrent_increments(self, mc):
        await asyncio.gather(*[mc.inc("concurrent") for _ in range(100)])
        assert mc.snapshot_sync()["counters"]["concurrent"] == 100


def test_get_metrics_singleton():
    assert get_metrics() is get_metrics()
