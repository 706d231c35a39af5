"""Panel-facing entry points for task sync.

``TaskSync`` is what the IDE's "Task Context Sync" section calls: start a
sync (or re-sync with "Sync Latest Information"), clear it, read it. Each
attempt runs as a background asyncio task so the caller is never blocked.

By default attempts are not serialized: two overlapping attempts both run
and whichever callback lands last wins the store. Set
``serialize_sync_attempts`` to hand back the outstanding attempt instead.
"""

from __future__ import annotations

import asyncio
import weakref

import structlog

from ctxsync.auth.token_client import TokenClient
from ctxsync.config import settings
from ctxsync.models import SyncedContext
from ctxsync.store import SyncedContextStore
from ctxsync.sync.browser import open_url_async
from ctxsync.sync.listener import CallbackListener
from ctxsync.sync.orchestrator import (
    ListenerFactory,
    SyncObserver,
    SyncOrchestrator,
    SyncOutcome,
    UrlOpener,
)

logger = structlog.get_logger()


class TaskSync:
    def __init__(
        self,
        store: SyncedContextStore,
        token_client: TokenClient | None = None,
        *,
        observer: SyncObserver | None = None,
        serialize_attempts: bool | None = None,
        timeout_s: float | None = None,
        open_browser: bool | None = None,
        opener: UrlOpener = open_url_async,
        listener_factory: ListenerFactory = CallbackListener,
    ) -> None:
        self.store = store
        self._owns_token_client = token_client is None
        self._token_client = token_client or TokenClient()
        # Weak: the panel usually owns this TaskSync, and a closed panel must stay closed.
        self._observer_ref = weakref.ref(observer) if observer is not None else None
        self._serialize = (
            settings.serialize_sync_attempts if serialize_attempts is None else serialize_attempts
        )
        self._timeout_s = timeout_s
        self._open_browser = open_browser
        self._opener = opener
        self._listener_factory = listener_factory
        self._attempts: set[asyncio.Task[SyncOutcome]] = set()
        self._attempt_seq = 0

    @property
    def in_flight(self) -> int:
        return sum(1 for t in self._attempts if not t.done())

    def start_sync(self) -> asyncio.Task[SyncOutcome]:
        """Kick off a sync attempt in the background and return its task.

        Must be called from a running event loop.
        """
        if self._serialize:
            for task in self._attempts:
                if not task.done():
                    logger.info("sync_attempt_already_active", attempt=task.get_name())
                    return task

        self._attempt_seq += 1
        orchestrator = SyncOrchestrator(
            self.store,
            self._token_client,
            observer=self._observer_ref() if self._observer_ref is not None else None,
            timeout_s=self._timeout_s,
            open_browser=self._open_browser,
            opener=self._opener,
            listener_factory=self._listener_factory,
        )
        task = asyncio.create_task(orchestrator.run(), name=f"task_sync:{self._attempt_seq}")
        self._attempts.add(task)

        def _on_done(t: asyncio.Task[SyncOutcome]) -> None:
            self._attempts.discard(t)
            if t.cancelled():
                logger.debug("sync_attempt_cancelled", attempt=t.get_name())
            elif t.exception():
                logger.error(
                    "sync_attempt_crashed",
                    attempt=t.get_name(),
                    error=str(t.exception()),
                )

        task.add_done_callback(_on_done)
        logger.info("sync_attempt_started", attempt=task.get_name(), concurrent=self.in_flight)
        return task

    def sync_latest(self) -> asyncio.Task[SyncOutcome]:
        """Re-run the handshake to pick up the latest task from the web app."""
        return self.start_sync()

    async def sync(self) -> SyncOutcome:
        """Run one attempt and wait for its outcome."""
        return await self.start_sync()

    def current(self) -> SyncedContext | None:
        return self.store.get()

    def clear(self) -> None:
        self.store.clear()

    async def aclose(self) -> None:
        """Cancel outstanding attempts (their listeners release on cancel)."""
        pending = [t for t in self._attempts if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._owns_token_client:
            await self._token_client.close()
