"""URLs the IDE hands to the browser."""

from __future__ import annotations

from yarl import URL

from ctxsync.config import settings

HANDOFF_PATH = "/home/ide"
SIGN_IN_PATH = "/auth/sign-in"


def build_handoff_url(token: str, port: int, base_url: str | None = None) -> str:
    """Web app page that picks a task and calls back to ``127.0.0.1:<port>``.

    The token is opaque: it is URL-encoded but never inspected.
    """
    base = URL(base_url or settings.web_base_url)
    return str(base.with_path(HANDOFF_PATH).with_query({"token": token, "callback_port": port}))


def sign_in_url(base_url: str | None = None) -> str:
    return str(URL(base_url or settings.web_base_url).with_path(SIGN_IN_PATH))
