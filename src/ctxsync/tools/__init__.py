"""Agent tool implementations that consume the synced task context."""

from __future__ import annotations

from ctxsync.tools.file_search import (
    FileSearchClient,
    FileSearchInput,
    FileSearchResponse,
    execute_file_search,
    file_search_ui_text,
    get_file_search_tool_definitions,
    is_file_search_tool,
)

__all__ = [
    "FileSearchClient",
    "FileSearchInput",
    "FileSearchResponse",
    "execute_file_search",
    "file_search_ui_text",
    "get_file_search_tool_definitions",
    "is_file_search_tool",
]
