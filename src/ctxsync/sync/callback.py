"""Parsing of the browser's sync callback.

The web app redirects to ``http://127.0.0.1:<port>/?account_id=...&board_id=...``.
Only the keys in ``CALLBACK_FIELDS`` are read; anything else is ignored so
the web app can add parameters without breaking older IDE builds.
"""

from __future__ import annotations

from datetime import datetime, timezone

from yarl import URL

from ctxsync.errors import CallbackParseError
from ctxsync.models import CALLBACK_FIELDS, SyncedContext

# Any absolute base works; only the query of the callback target matters.
_CALLBACK_BASE = URL("http://localhost")

_OPTIONAL_ATTRS = frozenset({
    "big_bet",
    "big_bet_description",
    "task_id",
    "work_item",
    "work_item_description",
})

SYNC_COMPLETE_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Sync Complete</title>
    <script>window.close();</script>
</head>
<body>
    <h1>Sync Complete!</h1>
    <p>You can close this tab and return to the IDE.</p>
</body>
</html>
"""


def parse_callback(
    target: str,
    *,
    now: datetime | None = None,
    require_core_ids: bool = False,
) -> SyncedContext:
    """Build a ``SyncedContext`` from a callback request target.

    Args:
        target: Request path plus query string, e.g. ``/?account_id=a1``.
        now: Timestamp for ``synced_at``; defaults to the current UTC time.
        require_core_ids: Reject callbacks missing account/product/board IDs.

    Raises:
        CallbackParseError: *target* is not a valid URL reference, or strict
            mode is on and a core ID is missing.
    """
    try:
        url = _CALLBACK_BASE.join(URL(target))
        pairs = list(url.query.items())
    except (ValueError, TypeError, UnicodeError) as e:
        raise CallbackParseError(f"failed to parse sync callback url: {e}") from e

    values: dict[str, str] = {}
    for key, value in pairs:
        attr = CALLBACK_FIELDS.get(key)
        if attr is not None:
            values[attr] = value

    ctx = SyncedContext(
        account_id=values.get("account_id", ""),
        account_name=values.get("account_name", ""),
        product_id=values.get("product_id", ""),
        product_name=values.get("product_name", ""),
        board_id=values.get("board_id", ""),
        **{attr: values[attr] for attr in _OPTIONAL_ATTRS if attr in values},
        synced_at=now or datetime.now(timezone.utc),
    )

    if require_core_ids and not ctx.has_core_ids:
        missing = [
            name for name in ("account_id", "product_id", "board_id")
            if not getattr(ctx, name)
        ]
        raise CallbackParseError(f"sync callback missing {', '.join(missing)}")

    return ctx
