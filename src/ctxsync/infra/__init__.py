"""Infrastructure utilities: circuit breaking for remote endpoints."""

from __future__ import annotations

from ctxsync.infra.circuit_breaker import (
    BreakerState,
    CircuitBreaker,
    CircuitOpenError,
    embeddings_breaker,
    is_service_failure,
    search_breaker,
)

__all__ = [
    "BreakerState",
    "CircuitBreaker",
    "CircuitOpenError",
    "embeddings_breaker",
    "is_service_failure",
    "search_breaker",
]
