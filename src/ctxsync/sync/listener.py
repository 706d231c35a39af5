"""Single-shot local HTTP listener for the browser sync callback.

Binds ``127.0.0.1`` on an OS-assigned port so the port can be embedded in
the handoff URL, then waits for exactly one valid callback:

    async with CallbackListener() as listener:
        url = build_handoff_url(token, listener.port)
        ...
        ctx = await listener.wait(timeout=300)

Stray requests (favicon fetches, garbage, unparseable targets) are answered
and logged but never end the wait. Only a valid callback or the deadline
does. The socket is released on every exit path by ``close()``.
"""

from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Self

import structlog
from aiohttp import web

from ctxsync.config import settings
from ctxsync.errors import CallbackParseError, CallbackRespondError, SyncTimeoutError
from ctxsync.models import SyncedContext
from ctxsync.sync.callback import SYNC_COMPLETE_HTML, parse_callback

logger = structlog.get_logger()

_SHUTDOWN_TIMEOUT_S = 1.0


class CallbackListener:
    """Owns one bound socket for the duration of one sync attempt."""

    def __init__(
        self,
        host: str | None = None,
        *,
        require_core_ids: bool | None = None,
    ) -> None:
        self._host = host or settings.callback_host
        self._require_core_ids = (
            settings.require_core_ids if require_core_ids is None else require_core_ids
        )
        self._app = web.Application()
        self._app.router.add_get("/{tail:.*}", self._handle_callback)
        self._runner: web.AppRunner | None = None
        self._port: int | None = None
        self._result: asyncio.Future[SyncedContext] | None = None
        self._accepted = False
        self._requests_seen = 0

    # ── lifecycle ────────────────────────────────────────────

    async def start(self) -> int:
        """Bind the socket and start serving. Returns the assigned port."""
        if self._runner is not None:
            raise RuntimeError("CallbackListener already started")

        self._result = asyncio.get_running_loop().create_future()
        runner = web.AppRunner(
            self._app,
            access_log=None,
            shutdown_timeout=_SHUTDOWN_TIMEOUT_S,
        )
        await runner.setup()
        try:
            site = web.TCPSite(runner, self._host, 0)
            await site.start()
            port = self._resolve_port(runner)
            if port is None:
                raise RuntimeError("Callback listener started but no listening socket was reported")
        except BaseException:
            await runner.cleanup()
            raise

        self._runner = runner
        self._port = port
        logger.info("sync_listener_bound", host=self._host, port=port)
        return port

    async def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        await runner.cleanup()
        if self._result is not None and not self._result.done():
            self._result.cancel()
        logger.debug("sync_listener_closed", port=self._port, requests=self._requests_seen)

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── properties ───────────────────────────────────────────

    @property
    def port(self) -> int:
        if self._port is None:
            raise RuntimeError("CallbackListener not started")
        return self._port

    @property
    def callback_url(self) -> str:
        return f"http://{self._host}:{self.port}/"

    @property
    def is_running(self) -> bool:
        return self._runner is not None

    # ── waiting ──────────────────────────────────────────────

    async def wait(self, timeout: float) -> SyncedContext:
        """Wait up to *timeout* seconds for a valid callback.

        Raises:
            SyncTimeoutError: the deadline passed without a valid callback.
        """
        if self._result is None or self._runner is None:
            raise RuntimeError("CallbackListener not started")
        try:
            return await asyncio.wait_for(asyncio.shield(self._result), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "sync_callback_timeout",
                port=self._port,
                budget_s=timeout,
                requests_seen=self._requests_seen,
            )
            raise SyncTimeoutError(timeout) from None

    async def listen(self, timeout: float | None = None) -> SyncedContext:
        """Start (if needed), wait for one callback, and always release the socket."""
        budget = settings.callback_timeout_s if timeout is None else timeout
        if self._runner is None:
            await self.start()
        try:
            return await self.wait(budget)
        finally:
            await self.close()

    # ── request handling ─────────────────────────────────────

    async def _handle_callback(self, request: web.Request) -> web.StreamResponse:
        self._requests_seen += 1

        if self._accepted or self._result is None or self._result.done():
            return web.Response(status=410, text="Sync callback already received")

        if request.path != "/":
            logger.debug("sync_callback_ignored_path", path=request.path)
            return web.Response(status=404)

        try:
            ctx = parse_callback(request.raw_path, require_core_ids=self._require_core_ids)
        except CallbackParseError as e:
            logger.warning("callback_parse_failed", error=str(e))
            return web.Response(status=400, text="Invalid sync callback")

        # Claimed, not yet completed: the result is set once the reply is written or has failed.
        self._accepted = True
        logger.debug("sync_callback_accepted", port=self._port)

        resp = web.Response(text=SYNC_COMPLETE_HTML, content_type="text/html")
        resp.force_close()
        try:
            await resp.prepare(request)
            await resp.write_eof()
        except (ConnectionError, RuntimeError) as e:
            err = CallbackRespondError(f"failed to respond to sync callback: {e}")
            logger.warning("callback_respond_failed", error=str(err))
        finally:
            if not self._result.done():
                self._result.set_result(ctx)
                logger.info(
                    "sync_callback_completed",
                    account_id=ctx.account_id,
                    product_id=ctx.product_id,
                    board_id=ctx.board_id,
                    task_id=ctx.task_id,
                )
        return resp

    @staticmethod
    def _resolve_port(runner: web.AppRunner) -> int | None:
        for address in runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return int(address[1])
        return None
