"""Circuit breaker for the remote search and embedding endpoints.

    async with search_breaker:
        resp = await client.post(...)

States:
    CLOSED     calls pass through.
    OPEN       calls fast-fail with ``CircuitOpenError`` until the cooldown ends.
    HALF_OPEN  the cooldown ended; exactly one trial call is let through.

Only errors that say the service itself is unhealthy count toward tripping:
transport failures, timeouts, 429 and 5xx. A 4xx caused by a bad tool
argument proves the endpoint is up and is treated like a success.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from enum import Enum
from types import TracebackType
from typing import Self

import httpx
import structlog

from ctxsync.errors import CtxSyncError

logger = structlog.get_logger()

FailurePredicate = Callable[[BaseException], bool]


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def is_service_failure(exc: BaseException) -> bool:
    """True for errors that point at the remote service rather than the request."""
    if isinstance(exc, httpx.TransportError):
        return True
    status = getattr(exc, "status_code", None)
    return status is not None and (status == 429 or status >= 500)


class CircuitBreaker:
    """Consecutive-failure breaker for one remote endpoint."""

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        cooldown_seconds: float = 60.0,
        *,
        counts_as_failure: FailurePredicate = is_service_failure,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._counts_as_failure = counts_as_failure
        self._failures = 0
        self._tripped_at = 0.0
        self._trial_in_flight = False

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def state(self) -> BreakerState:
        if self._failures < self.failure_threshold:
            return BreakerState.CLOSED
        if self.retry_after > 0:
            return BreakerState.OPEN
        return BreakerState.HALF_OPEN

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self.state is BreakerState.HALF_OPEN

    @property
    def retry_after(self) -> float:
        """Seconds left in the cooldown, 0 when calls may go through."""
        if self._failures < self.failure_threshold:
            return 0.0
        return max(0.0, self.cooldown_seconds - (time.monotonic() - self._tripped_at))

    def should_allow_request(self) -> bool:
        state = self.state
        if state is BreakerState.CLOSED:
            return True
        if state is BreakerState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            logger.info("circuit_breaker_half_open_trial", breaker=self.name)
            return True
        return False

    def record_success(self) -> None:
        self._trial_in_flight = False
        if self._failures >= self.failure_threshold:
            logger.info("circuit_breaker_closed", breaker=self.name, previous_failures=self._failures)
        self._failures = 0

    def record_failure(self) -> None:
        self._trial_in_flight = False
        self._failures += 1
        self._tripped_at = time.monotonic()
        if self._failures == self.failure_threshold:
            logger.warning(
                "circuit_breaker_opened",
                breaker=self.name,
                failures=self._failures,
                cooldown_s=self.cooldown_seconds,
            )

    def reset(self) -> None:
        self._failures = 0
        self._tripped_at = 0.0
        self._trial_in_flight = False

    async def __aenter__(self) -> Self:
        if not self.should_allow_request():
            raise CircuitOpenError(self.name, self.retry_after)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_val is None:
            self.record_success()
        elif isinstance(exc_val, asyncio.CancelledError):
            # Cancelled trial calls say nothing about the service.
            self._trial_in_flight = False
        elif self._counts_as_failure(exc_val):
            self.record_failure()
        else:
            self.record_success()


class CircuitOpenError(CtxSyncError):
    """Raised when a call is attempted on an open circuit."""

    def __init__(self, breaker_name: str, retry_after: float = 0.0) -> None:
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open, retry in {retry_after:.0f}s"
        )
        self.breaker_name = breaker_name
        self.retry_after = retry_after


search_breaker = CircuitBreaker("search", failure_threshold=5, cooldown_seconds=60.0)
embeddings_breaker = CircuitBreaker("embeddings", failure_threshold=3, cooldown_seconds=30.0)
