"""Shared holder for the most recently synced task context.

One store is constructed by the host and handed to every component that
needs ambient context (the sync service, search tools, the UI). Values are
immutable and replaced wholesale, so a reader either sees the old context or
the new one, never a mix.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

import structlog

from ctxsync.models import SyncedContext

logger = structlog.get_logger()

StoreListener = Callable[[SyncedContext | None], None]


class SyncedContextStore:
    """Thread-safe get/set/clear around a single ``SyncedContext | None``."""

    def __init__(self, initial: SyncedContext | None = None) -> None:
        self._lock = threading.Lock()
        self._value: SyncedContext | None = initial
        self._version = 0
        self._listeners: list[StoreListener] = []

    @property
    def version(self) -> int:
        """Incremented on every set/clear."""
        with self._lock:
            return self._version

    def get(self) -> SyncedContext | None:
        """Snapshot of the current context. Does not track later updates."""
        with self._lock:
            return self._value

    def set(self, ctx: SyncedContext) -> None:
        with self._lock:
            self._value = ctx
            self._version += 1
            listeners = list(self._listeners)
        logger.info(
            "synced_context_set",
            account_id=ctx.account_id,
            product_id=ctx.product_id,
            board_id=ctx.board_id,
            task_id=ctx.task_id,
        )
        self._notify(listeners, ctx)

    def clear(self) -> None:
        with self._lock:
            had_value = self._value is not None
            self._value = None
            self._version += 1
            listeners = list(self._listeners)
        if had_value:
            logger.info("synced_context_cleared")
        self._notify(listeners, None)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a mutation listener. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    @staticmethod
    def _notify(listeners: list[StoreListener], value: SyncedContext | None) -> None:
        for listener in listeners:
            try:
                listener(value)
            except Exception as e:
                logger.warning("store_listener_failed", error=str(e))
