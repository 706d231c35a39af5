"""Open URLs in the user's default browser.

Fire-and-forget: a failure is logged and reported as ``False`` because the
user can still copy the link by hand.
"""

from __future__ import annotations

import asyncio
import webbrowser

import structlog

logger = structlog.get_logger()


def open_url(url: str) -> bool:
    try:
        opened = webbrowser.open(url, new=2)
    except Exception as e:
        logger.warning("browser_open_failed", error=str(e))
        return False
    if not opened:
        logger.warning("browser_open_declined")
    return opened


async def open_url_async(url: str) -> bool:
    """``open_url`` off the event loop; some launchers block on a subprocess."""
    return await asyncio.to_thread(open_url, url)
