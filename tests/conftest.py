"""Pytest configuration and shared fixtures.

Run with:
    pytest tests/                       # Run all tests
    pytest tests/test_listener.py -v    # Run specific test file

Listener tests bind real sockets on 127.0.0.1; nothing leaves the machine.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import httpx
import pytest
from yarl import URL

from ctxsync.errors import AuthError
from ctxsync.models import SyncedContext
from ctxsync.observability import metrics as metrics_module
from ctxsync.store import SyncedContextStore


class FakeTokenClient:
    """Stands in for TokenClient: returns a fixed token or raises."""

    def __init__(self, token: str = "tok123", error: AuthError | None = None) -> None:
        self.token = token
        self.error = error
        self.calls = 0
        self.events: list[str] | None = None

    async def acquire(self) -> str:
        self.calls += 1
        if self.events is not None:
            self.events.append("token")
        if self.error is not None:
            raise self.error
        return self.token

    async def close(self) -> None:
        pass


class RecordingObserver:
    def __init__(self) -> None:
        self.synced: list[SyncedContext] = []
        self.auth_required: list = []
        self.failed: list = []

    def on_synced(self, ctx: SyncedContext) -> None:
        self.synced.append(ctx)

    def on_auth_required(self, remediation) -> None:
        self.auth_required.append(remediation)

    def on_sync_failed(self, error) -> None:
        self.failed.append(error)


def callback_port(handoff_url: str) -> int:
    return int(URL(handoff_url).query["callback_port"])


async def send_callback(port: int, query: str) -> httpx.Response:
    """GET ``/?<query>`` on the local listener, as the browser would."""
    async with httpx.AsyncClient(trust_env=False, timeout=5.0) as client:
        return await client.get(f"http://127.0.0.1:{port}/?{query}")


def callback_opener(
    query: str,
    opened: list[str] | None = None,
) -> Callable[[str], Awaitable[bool]]:
    """Browser stand-in that immediately performs the web app's callback."""

    async def _open(url: str) -> bool:
        if opened is not None:
            opened.append(url)
        await send_callback(callback_port(url), query)
        return True

    return _open


@pytest.fixture(autouse=True)
def fresh_metrics(monkeypatch):
    """Fresh MetricsCollector for each test (avoids global state bleed)."""
    collector = metrics_module.MetricsCollector()
    monkeypatch.setattr(metrics_module, "_collector", collector)
    return collector


@pytest.fixture
def store() -> SyncedContextStore:
    return SyncedContextStore()


@pytest.fixture
def token_client() -> FakeTokenClient:
    return FakeTokenClient()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def board_context() -> SyncedContext:
    return SyncedContext(
        account_id="acc-1",
        account_name="Acme",
        product_id="prod-1",
        product_name="Checkout",
        board_id="board-1",
        big_bet="Faster checkout",
        big_bet_description="Cut checkout time in half",
    )


@pytest.fixture
def task_context(board_context: SyncedContext) -> SyncedContext:
    return SyncedContext(
        account_id=board_context.account_id,
        account_name=board_context.account_name,
        product_id=board_context.product_id,
        product_name=board_context.product_name,
        board_id=board_context.board_id,
        big_bet=board_context.big_bet,
        big_bet_description=board_context.big_bet_description,
        task_id="task-9",
        work_item="Fix bug",
        work_item_description="Cart total is off by one cent",
    )


@pytest.fixture
def send():
    """``await send(port, query)`` performs the browser's callback GET."""
    return send_callback


@pytest.fixture
def opener_for():
    """``opener_for(query, opened)`` builds a browser stand-in."""
    return callback_opener


@pytest.fixture
def port_of():
    return callback_port


@pytest.fixture
def make_token_client():
    """``make_token_client(token=..., error=...)`` builds a FakeTokenClient."""
    return FakeTokenClient
