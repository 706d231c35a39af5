"""End-to-end task-context sync handshake.

One ``SyncOrchestrator`` drives one attempt:

    ACQUIRING_TOKEN → LISTENER_BOUND → AWAITING_CALLBACK → COMPLETED | FAILED

Token acquisition strictly precedes binding the listener, which precedes
opening the browser, which precedes the callback wait. A failed browser
launch does not abort the wait; the user can open the link by hand.

Expected failures never escape ``run()``: they become a ``SyncOutcome`` in
state FAILED and the store keeps its previous value.
"""

from __future__ import annotations

import asyncio
import time
import weakref
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from ctxsync.auth.token_client import TokenClient
from ctxsync.config import settings
from ctxsync.errors import AuthError, CtxSyncError, SyncError, SyncTimeoutError
from ctxsync.models import SyncedContext
from ctxsync.observability.metrics import get_metrics
from ctxsync.store import SyncedContextStore
from ctxsync.sync.browser import open_url_async
from ctxsync.sync.handoff import build_handoff_url, sign_in_url
from ctxsync.sync.listener import CallbackListener

logger = structlog.get_logger()

SIGN_IN_MESSAGE = "Unable to sync task. Please ensure you're signed in and try again."

UrlOpener = Callable[[str], Awaitable[bool]]
ListenerFactory = Callable[[], CallbackListener]


class SyncState(Enum):
    IDLE = "idle"
    ACQUIRING_TOKEN = "acquiring_token"
    LISTENER_BOUND = "listener_bound"
    AWAITING_CALLBACK = "awaiting_callback"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Remediation:
    """A user-facing fix for a failure, e.g. a "Sign In" button."""

    message: str
    action_label: str
    action_url: str


@dataclass
class SyncOutcome:
    state: SyncState
    context: SyncedContext | None = None
    error: CtxSyncError | None = None
    remediation: Remediation | None = None

    @property
    def ok(self) -> bool:
        return self.state is SyncState.COMPLETED


class SyncObserver(Protocol):
    """What the hosting UI implements to hear about sync results."""

    def on_synced(self, ctx: SyncedContext) -> None: ...

    def on_auth_required(self, remediation: Remediation) -> None: ...

    def on_sync_failed(self, error: CtxSyncError) -> None: ...


class SyncOrchestrator:
    """Runs a single sync attempt against an injected store."""

    def __init__(
        self,
        store: SyncedContextStore,
        token_client: TokenClient,
        *,
        observer: SyncObserver | None = None,
        timeout_s: float | None = None,
        open_browser: bool | None = None,
        opener: UrlOpener = open_url_async,
        listener_factory: ListenerFactory = CallbackListener,
        web_base_url: str | None = None,
    ) -> None:
        self._store = store
        self._token_client = token_client
        # Weak: a torn-down UI must not be kept alive or updated by a late result.
        self._observer_ref = weakref.ref(observer) if observer is not None else None
        self._timeout_s = settings.callback_timeout_s if timeout_s is None else timeout_s
        self._open_browser = settings.open_browser if open_browser is None else open_browser
        self._opener = opener
        self._listener_factory = listener_factory
        self._web_base_url = web_base_url or settings.web_base_url
        self._state = SyncState.IDLE
        self._port: int | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def port(self) -> int | None:
        """Callback port, once the listener is bound."""
        return self._port

    async def run(self) -> SyncOutcome:
        if self._state is not SyncState.IDLE:
            raise RuntimeError("SyncOrchestrator instances are single-use")

        metrics = get_metrics()
        await metrics.sync_started()
        t0 = time.monotonic()

        label = "error"
        try:
            outcome = await self._run()
            label = _outcome_label(outcome)
            return outcome
        except asyncio.CancelledError:
            label = "cancelled"
            raise
        finally:
            elapsed_ms = (time.monotonic() - t0) * 1000
            await metrics.sync_finished(label, elapsed_ms)

    async def _run(self) -> SyncOutcome:
        self._transition(SyncState.ACQUIRING_TOKEN)
        try:
            token = await self._token_client.acquire()
        except AuthError as e:
            logger.error("sync_token_acquire_failed", error=str(e), kind=e.kind.value)
            remediation = Remediation(
                message=SIGN_IN_MESSAGE,
                action_label="Sign In",
                action_url=sign_in_url(self._web_base_url),
            )
            self._notify("on_auth_required", remediation)
            return self._fail(e, remediation)

        try:
            async with self._listener_factory() as listener:
                self._port = listener.port
                self._transition(SyncState.LISTENER_BOUND)

                url = build_handoff_url(token, listener.port, self._web_base_url)
                self._transition(SyncState.AWAITING_CALLBACK)
                await self._hand_off(url)

                ctx = await listener.wait(self._timeout_s)
        except SyncTimeoutError as e:
            self._notify("on_sync_failed", e)
            return self._fail(e)
        except OSError as e:
            logger.error("sync_listener_bind_failed", error=str(e))
            err = SyncError(f"failed to find open port for sync callback: {e}")
            self._notify("on_sync_failed", err)
            return self._fail(err)

        self._store.set(ctx)
        self._transition(SyncState.COMPLETED)
        self._notify("on_synced", ctx)
        return SyncOutcome(state=SyncState.COMPLETED, context=ctx)

    async def _hand_off(self, url: str) -> None:
        if not self._open_browser:
            logger.info("sync_browser_handoff_skipped", port=self._port)
            return
        try:
            opened = await self._opener(url)
        except Exception as e:
            logger.warning("sync_browser_handoff_failed", error=str(e), port=self._port)
            return
        if not opened:
            logger.warning("sync_browser_handoff_failed", port=self._port)

    def _transition(self, state: SyncState) -> None:
        logger.debug("sync_state_changed", previous=self._state.value, state=state.value)
        self._state = state

    def _fail(self, error: CtxSyncError, remediation: Remediation | None = None) -> SyncOutcome:
        self._transition(SyncState.FAILED)
        return SyncOutcome(state=SyncState.FAILED, error=error, remediation=remediation)

    def _notify(self, method: str, arg: object) -> None:
        observer = self._observer_ref() if self._observer_ref is not None else None
        if observer is None:
            return
        try:
            getattr(observer, method)(arg)
        except Exception as e:
            logger.warning("sync_observer_failed", callback=method, error=str(e))


def _outcome_label(outcome: SyncOutcome) -> str:
    if outcome.ok:
        return "completed"
    if isinstance(outcome.error, AuthError):
        return "auth_failed"
    if isinstance(outcome.error, SyncTimeoutError):
        return "timeout"
    return "error"
