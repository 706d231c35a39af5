"""Project-context search tool.

Searches big bet descriptions, work item details, requirements and past
conversations on the remote search endpoint. Requests are silently scoped to
the synced task: the ambient ``SyncedContext`` is merged into whatever filter
the model supplied, with the model's own values taking precedence.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any, Self

import certifi
import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ctxsync.auth.token_client import TokenClient
from ctxsync.config import settings
from ctxsync.errors import AuthError, CtxSyncError, SearchError
from ctxsync.filters import merge_context_filter
from ctxsync.infra.circuit_breaker import CircuitBreaker, search_breaker
from ctxsync.models import SearchFilter, SyncedContext
from ctxsync.observability.metrics import get_metrics
from ctxsync.store import SyncedContextStore

logger = structlog.get_logger()

_FILE_SEARCH_TOOL_NAME = "file_search"
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_PREVIEW_CHARS = 200


class FileSearchInput(BaseModel):
    query: str | None = Field(default=None, description="The search query to find relevant context")
    limit: int | None = Field(
        default=None, ge=1, le=100,
        description="Maximum number of results to return (default: 10, max: 100)",
    )
    filter: SearchFilter | None = Field(default=None, description="Filter options for the search")


class FileSearchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    content: str
    result_type: str = Field(alias="type")
    similarity: float
    metadata: dict[str, Any] | list[Any] | None = None


class FileSearchResponse(BaseModel):
    results: list[FileSearchResult] = Field(default_factory=list)
    total: int = 0
    query: str = ""


def get_file_search_tool_definitions() -> list[dict[str, Any]]:
    """Return OpenAI-format tool definition for file search."""
    return [
        {
            "type": "function",
            "function": {
                "name": _FILE_SEARCH_TOOL_NAME,
                "description": (
                    "Search project planning context including big bet descriptions, "
                    "work item details, requirements, and specifications. Use this to "
                    "understand what needs to be implemented and find acceptance criteria. "
                    "Filter by type: 'conversations', 'tasks' (work items), 'compressed', "
                    "or 'all'. Use content_type to get specific information: 'work_item' "
                    "for work item details only, 'big_bet' for big bet overview only, or "
                    "'auto' (default) to automatically decide. Automatically uses your "
                    "synced big bet and work item context. Results include content, type, "
                    "and similarity score."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "The search query to find relevant context",
                        },
                        "limit": {
                            "type": "integer",
                            "minimum": 1,
                            "maximum": 100,
                            "description": "Maximum number of results to return (default: 10, max: 100)",
                        },
                        "filter": {
                            "type": "object",
                            "properties": {
                                "type": {
                                    "type": "string",
                                    "enum": ["conversations", "tasks", "compressed", "all"],
                                },
                                "content_type": {
                                    "type": "string",
                                    "enum": ["work_item", "big_bet", "auto"],
                                },
                                "thread_id": {"type": "string"},
                                "account_id": {"type": "string"},
                                "product_id": {"type": "string"},
                                "board_id": {"type": "string"},
                                "task_id": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
    ]


def is_file_search_tool(tool_name: str) -> bool:
    return tool_name == _FILE_SEARCH_TOOL_NAME


def file_search_ui_text(parameters: dict[str, Any]) -> str:
    """Short status line shown while the search runs."""
    try:
        inp = FileSearchInput.model_validate(parameters)
    except ValidationError:
        return "Search content"
    if inp.query:
        return f'Searching for "{inp.query}"'
    if inp.filter is not None:
        if inp.filter.thread_id:
            return f"Searching thread {inp.filter.thread_id}"
        if inp.filter.search_type:
            return f"Searching {inp.filter.search_type} content"
    return "Searching content"


def _is_retryable_search_error(exc: BaseException) -> bool:
    if isinstance(exc, SearchError) and exc.status_code in _RETRYABLE_STATUS_CODES:
        return True
    if isinstance(exc, httpx.ReadTimeout | httpx.ConnectTimeout | httpx.PoolTimeout):
        return True
    return False


class FileSearchClient:
    """HTTP client for the remote search endpoint."""

    def __init__(
        self,
        token_client: TokenClient,
        *,
        base_url: str | None = None,
        search_path: str | None = None,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker = search_breaker,
    ) -> None:
        self._token_client = token_client
        self._search_path = search_path or settings.search_path
        self._breaker = breaker
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            headers={"Content-Type": "application/json"},
            verify=certifi.where(),
            timeout=httpx.Timeout(
                connect=settings.http_connect_timeout_s,
                read=settings.http_read_timeout_s,
                write=5.0,
                pool=10.0,
            ),
        )

    async def search(
        self,
        inp: FileSearchInput,
        ambient: SyncedContext | None = None,
    ) -> FileSearchResponse:
        """Run one search, scoped by *ambient* where the input leaves gaps.

        *ambient* is the snapshot taken when the tool call was dispatched.
        """
        token = await self._token_client.acquire()

        effective = merge_context_filter(inp.filter, ambient)
        body: dict[str, Any] = {}
        if inp.query is not None:
            body["query"] = inp.query
        if inp.limit is not None:
            body["limit"] = inp.limit
        filter_payload = effective.to_payload()
        if filter_payload:
            body["filter"] = filter_payload

        metrics = get_metrics()
        try:
            async with self._breaker:
                await metrics.inc("search_calls_total")
                async with metrics.timer("search_latency_ms"):
                    response = await self._post(body, token)
        except httpx.HTTPError as e:
            await metrics.remote_error("search")
            raise SearchError(f"Failed to send search request: {e}") from e
        except SearchError:
            await metrics.remote_error("search")
            raise

        logger.info(
            "file_search_executed",
            query=(inp.query or "")[:100],
            total=response.total,
            scoped=bool(ambient),
            task_scoped=bool(effective.task_id),
        )
        return response

    @retry(
        retry=retry_if_exception(_is_retryable_search_error),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _post(self, body: dict[str, Any], token: str) -> FileSearchResponse:
        resp = await self._client.post(
            self._search_path,
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        if resp.is_error:
            logger.warning(
                "file_search_http_error",
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise SearchError(
                f"Search request failed with status {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        try:
            return FileSearchResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise SearchError(f"Failed to parse search response: {e}") from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()


def format_search_message(response: FileSearchResponse) -> str:
    message = f"Found {response.total} results"
    if response.query:
        message += f' for query "{response.query}"'
    if response.results:
        message += ":\n\n"
        for i, result in enumerate(response.results, start=1):
            content = result.content
            if len(content) > _PREVIEW_CHARS:
                content = content[:_PREVIEW_CHARS] + "..."
            message += f"{i}. [{result.result_type}] (similarity: {result.similarity:.2f})\n{content}\n\n"
    return message


async def execute_file_search(
    parameters: dict[str, Any],
    *,
    client: FileSearchClient,
    store: SyncedContextStore | None = None,
) -> dict[str, Any]:
    """Validate tool input, run the search, and shape the tool result."""
    try:
        inp = FileSearchInput.model_validate(parameters)
    except ValidationError as e:
        return {"error": f"Invalid file_search input: {e}"}

    thread_id = inp.filter.thread_id if inp.filter is not None else None
    if not inp.query and not thread_id:
        return {"error": "Either 'query' or 'filter.thread_id' must be provided"}

    ambient = store.get() if store is not None else None

    try:
        response = await client.search(inp, ambient)
    except AuthError as e:
        logger.warning("file_search_auth_failed", error=str(e))
        return {"error": f"Search unavailable: {e}. Please sign in and try again."}
    except CtxSyncError as e:
        logger.warning("file_search_failed", query=(inp.query or "")[:100], error=str(e))
        return {"error": f"Search failed: {e}", "query": inp.query}

    return {
        "message": format_search_message(response),
        "output": response.model_dump(by_alias=True),
    }
