"""Tests for TaskSync: background attempts, serialization, cancellation."""

from __future__ import annotations

import asyncio
import gc

import httpx
import pytest

from ctxsync.sync.orchestrator import SyncState
from ctxsync.sync.service import TaskSync


class UrlCollector:
    """Browser stand-in that only records the handoff URL."""

    def __init__(self) -> None:
        self.urls: list[str] = []

    async def __call__(self, url: str) -> bool:
        self.urls.append(url)
        return True

    async def wait_for(self, count: int) -> None:
        while len(self.urls) < count:
            await asyncio.sleep(0.01)


def _task_sync(store, token_client, opener, **kwargs) -> TaskSync:
    kwargs.setdefault("timeout_s", 5)
    return TaskSync(store, token_client, opener=opener, open_browser=True, **kwargs)


class TestTaskSync:
    async def test_sync_updates_store(self, store, token_client, opener_for):
        ts = _task_sync(store, token_client, opener_for("account_id=a&product_id=p&board_id=b"))
        outcome = await ts.sync()
        assert outcome.ok
        assert ts.current() == outcome.context
        ts.clear()
        assert ts.current() is None
        await ts.aclose()

    async def test_start_sync_runs_in_background(self, store, token_client, send, port_of):
        collector = UrlCollector()
        ts = _task_sync(store, token_client, collector)

        task = ts.start_sync()
        assert task.get_name().startswith("task_sync:")
        await asyncio.wait_for(collector.wait_for(1), 5)
        assert ts.in_flight == 1
        assert store.get() is None

        await send(port_of(collector.urls[0]), "account_id=a&product_id=p&board_id=b&task_id=t")
        outcome = await task
        assert outcome.context.task_id == "t"
        assert ts.in_flight == 0
        await ts.aclose()

    async def test_overlapping_attempts_last_write_wins(self, store, token_client, send, port_of):
        collector = UrlCollector()
        ts = _task_sync(store, token_client, collector, serialize_attempts=False)

        first = ts.start_sync()
        second = ts.sync_latest()
        assert first is not second
        await asyncio.wait_for(collector.wait_for(2), 5)

        await send(port_of(collector.urls[0]), "account_id=a&product_id=p&board_id=first")
        await first
        await send(port_of(collector.urls[1]), "account_id=a&product_id=p&board_id=second")
        await second

        assert store.get().board_id == "second"
        await ts.aclose()

    async def test_serialized_attempts_share_task(self, store, token_client):
        collector = UrlCollector()
        ts = _task_sync(store, token_client, collector, serialize_attempts=True)

        first = ts.start_sync()
        second = ts.start_sync()
        assert first is second
        await asyncio.wait_for(collector.wait_for(1), 5)
        assert token_client.calls == 1
        await ts.aclose()

    async def test_aclose_cancels_and_releases_port(self, store, token_client, port_of):
        collector = UrlCollector()
        ts = _task_sync(store, token_client, collector, timeout_s=30)

        task = ts.start_sync()
        await asyncio.wait_for(collector.wait_for(1), 5)
        port = port_of(collector.urls[0])

        await ts.aclose()

        assert task.cancelled()
        assert ts.in_flight == 0
        async with httpx.AsyncClient(trust_env=False) as client:
            with pytest.raises(httpx.ConnectError):
                await client.get(f"http://127.0.0.1:{port}/")

    async def test_failed_attempt_reported_not_raised(self, store, token_client):
        async def no_browser(url: str) -> bool:
            return False

        ts = _task_sync(store, token_client, no_browser, timeout_s=0.1)
        outcome = await ts.sync()
        assert outcome.state is SyncState.FAILED
        await ts.aclose()


class TestPanelLifetime:
    async def test_live_panel_is_notified(self, store, token_client, observer, opener_for):
        ts = _task_sync(store, token_client, opener_for("account_id=a&product_id=p&board_id=b"), observer=observer)
        outcome = await ts.sync()
        assert observer.synced == [outcome.context]
        await ts.aclose()

    async def test_torn_down_panel_not_notified(self, store, token_client, send, port_of):
        collector = UrlCollector()
        calls: list = []

        class Panel:
            def __init__(self) -> None:
                self.task_sync = _task_sync(store, token_client, collector, observer=self)

            def on_synced(self, ctx):
                calls.append(ctx)

            def on_auth_required(self, remediation):
                calls.append(remediation)

            def on_sync_failed(self, error):
                calls.append(error)

        panel = Panel()
        task_sync = panel.task_sync
        task = task_sync.start_sync()
        del panel
        gc.collect()

        await asyncio.wait_for(collector.wait_for(1), 5)
        await send(port_of(collector.urls[0]), "account_id=a&product_id=p&board_id=b")
        outcome = await task

        assert outcome.ok
        assert calls == []
        assert store.get().board_id == "b"
        await task_sync.aclose()
