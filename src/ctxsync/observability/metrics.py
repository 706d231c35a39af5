"""In-process metrics for the sync handshake and the remote tools.

Tracks:
  - Sync attempts and their outcomes (completed / auth_failed / timeout / error)
  - Latency histograms for the full handshake, search calls and embedding calls
  - Remote tool failures by status

State lives in one process-global collector; snapshots are plain dicts that
the host can log or expose. Counters use an asyncio.Lock so concurrent
coroutines can record safely.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


# ---------------------------------------------------------------------------
# Histogram implementation
# ---------------------------------------------------------------------------

# Fixed upper-bound buckets in milliseconds. The handshake waits on a human,
# so the top buckets reach the five minute callback budget.
_LATENCY_BUCKETS_MS: tuple[float, ...] = (
    10, 50, 100, 250, 500, 1_000, 2_500, 5_000, 10_000,
    30_000, 60_000, 120_000, 300_000, float("inf"),
)


@dataclass
class Histogram:
    """Latency histogram backed by fixed buckets + running stats."""

    name: str
    _buckets: list[int] = field(default_factory=lambda: [0] * len(_LATENCY_BUCKETS_MS))
    _count: int = 0
    _sum_ms: float = 0.0
    _min_ms: float = float("inf")
    _max_ms: float = 0.0

    def record(self, value_ms: float) -> None:
        self._count += 1
        self._sum_ms += value_ms
        self._min_ms = min(self._min_ms, value_ms)
        self._max_ms = max(self._max_ms, value_ms)
        for i, bound in enumerate(_LATENCY_BUCKETS_MS):
            if value_ms <= bound:
                self._buckets[i] += 1
                break

    @property
    def count(self) -> int:
        return self._count

    @property
    def mean_ms(self) -> float:
        return self._sum_ms / self._count if self._count else 0.0

    def percentile(self, p: float) -> float:
        """Estimate percentile via linear interpolation across buckets."""
        if self._count == 0:
            return 0.0
        target = math.ceil(p / 100 * self._count)
        cumulative = 0
        prev_bound = 0.0
        for i, bound in enumerate(_LATENCY_BUCKETS_MS):
            cumulative += self._buckets[i]
            if cumulative >= target:
                bucket_count = self._buckets[i]
                if bucket_count == 0:
                    return bound
                frac = (target - (cumulative - bucket_count)) / bucket_count
                upper = bound if not math.isinf(bound) else self._max_ms
                return prev_bound + frac * (upper - prev_bound)
            prev_bound = bound
        return self._max_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self._count,
            "min_ms": round(self._min_ms, 2) if self._count else 0,
            "max_ms": round(self._max_ms, 2),
            "mean_ms": round(self.mean_ms, 2),
            "p50_ms": round(self.percentile(50), 2),
            "p95_ms": round(self.percentile(95), 2),
        }

    def reset(self) -> None:
        self._buckets = [0] * len(_LATENCY_BUCKETS_MS)
        self._count = 0
        self._sum_ms = 0.0
        self._min_ms = float("inf")
        self._max_ms = 0.0


# ---------------------------------------------------------------------------
# MetricsCollector
# ---------------------------------------------------------------------------

class MetricsCollector:
    """Process-global metrics registry.

    Counters:
        sync_attempts_total              Every handshake started
        sync_outcomes_total[outcome]     completed / auth_failed / timeout / error / cancelled
        search_calls_total               Every remote search attempted
        remote_errors_total[service]     search / embeddings failures

    Histograms (milliseconds):
        sync_latency_ms                  Token request to published context
        search_latency_ms                One search round-trip
        embedding_latency_ms             One embedding batch round-trip
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._counters: dict[str, int] = defaultdict(int)
        self._labeled_counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._histograms: dict[str, Histogram] = {
            "sync_latency_ms": Histogram("sync_latency_ms"),
            "search_latency_ms": Histogram("search_latency_ms"),
            "embedding_latency_ms": Histogram("embedding_latency_ms"),
        }
        self._started_at: float = time.monotonic()

    async def inc(self, name: str, value: int = 1) -> None:
        async with self._lock:
            self._counters[name] += value

    async def inc_labeled(self, name: str, label: str, value: int = 1) -> None:
        async with self._lock:
            self._labeled_counters[name][label] += value

    async def record(self, histogram: str, value_ms: float) -> None:
        async with self._lock:
            if histogram in self._histograms:
                self._histograms[histogram].record(value_ms)

    @asynccontextmanager
    async def timer(self, histogram: str) -> AsyncIterator[None]:
        """Async context manager that auto-records elapsed ms."""
        t0 = time.monotonic()
        try:
            yield
        finally:
            await self.record(histogram, (time.monotonic() - t0) * 1000)

    # ------------------------------------------------------------------
    # Named helpers
    # ------------------------------------------------------------------

    async def sync_started(self) -> None:
        await self.inc("sync_attempts_total")

    async def sync_finished(self, outcome: str, elapsed_ms: float) -> None:
        await self.inc_labeled("sync_outcomes_total", outcome)
        await self.record("sync_latency_ms", elapsed_ms)

    async def remote_error(self, service: str) -> None:
        await self.inc_labeled("remote_errors_total", service)

    # ------------------------------------------------------------------
    # Snapshot / export
    # ------------------------------------------------------------------

    async def snapshot(self) -> dict[str, Any]:
        async with self._lock:
            return self.snapshot_sync()

    def snapshot_sync(self) -> dict[str, Any]:
        return {
            "uptime_seconds": round(time.monotonic() - self._started_at, 1),
            "counters": dict(self._counters),
            "labeled_counters": {k: dict(v) for k, v in self._labeled_counters.items()},
            "histograms": {k: v.to_dict() for k, v in self._histograms.items()},
        }

    def reset_all(self) -> None:
        """Reset all metrics (tests only)."""
        self._counters.clear()
        for v in self._labeled_counters.values():
            v.clear()
        for h in self._histograms.values():
            h.reset()


_collector: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Return (or lazily create) the process-global MetricsCollector."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
