"""Value types shared by the sync handshake and the search tools.

``SyncedContext`` is what the browser hands back; ``SearchFilter`` is what
downstream tools send to the remote search endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

CONTENT_TYPE_AUTO = "auto"
CONTENT_TYPE_WORK_ITEM = "work_item"
CONTENT_TYPE_BIG_BET = "big_bet"

# Callback query key -> SyncedContext attribute.
CALLBACK_FIELDS: dict[str, str] = {
    "account_id": "account_id",
    "account_name": "account_name",
    "product_id": "product_id",
    "product_name": "product_name",
    "board_id": "board_id",
    "board_name": "big_bet",
    "board_description": "big_bet_description",
    "task_id": "task_id",
    "task_name": "work_item",
    "task_description": "work_item_description",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SyncedContext:
    """The task the user picked in the web app.

    Core identifiers default to ``""``, which every consumer treats as unset.
    ``synced_at`` is excluded from equality: it is stamped locally at parse
    time and never travels over the wire.
    """

    account_id: str = ""
    account_name: str = ""
    product_id: str = ""
    product_name: str = ""

    # Big Bet (board)
    board_id: str = ""
    big_bet: str | None = None
    big_bet_description: str | None = None

    # Work Item (task), optional
    task_id: str | None = None
    work_item: str | None = None
    work_item_description: str | None = None

    synced_at: datetime = field(default_factory=_utcnow, compare=False)

    @property
    def has_core_ids(self) -> bool:
        return bool(self.account_id and self.product_id and self.board_id)

    @property
    def has_task(self) -> bool:
        return bool(self.task_id)

    def to_query(self) -> dict[str, str]:
        """Encode as callback query parameters (inverse of ``parse_callback``)."""
        query: dict[str, str] = {}
        for key, attr in CALLBACK_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                query[key] = value
        return query

    def to_context_filter(self) -> SearchFilter:
        """Filter scoping a search to this board, and to the task when one is synced."""
        return SearchFilter(
            search_type="tasks",
            account_id=self.account_id or None,
            product_id=self.product_id or None,
            board_id=self.board_id or None,
            task_id=self.task_id or None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "account_id": self.account_id,
            "account_name": self.account_name,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "board_id": self.board_id,
            "big_bet": self.big_bet,
            "big_bet_description": self.big_bet_description,
            "synced_at": self.synced_at.isoformat(),
        }
        if self.task_id:
            data["task_id"] = self.task_id
            data["work_item"] = self.work_item
            data["work_item_description"] = self.work_item_description
        return data


class SearchFilter(BaseModel):
    """Partial filter for the remote search endpoint.

    Every field is optional; unset fields are omitted from the request body
    rather than sent as ``null``.
    """

    model_config = ConfigDict(populate_by_name=True)

    search_type: str | None = Field(
        default=None,
        alias="type",
        description='Type of content to search: "conversations", "tasks", "compressed", or "all"',
    )
    content_type: str | None = Field(
        default=None,
        description=(
            'Content to extract: "work_item" (work item details only), "big_bet" '
            '(big bet details only), or "auto" (decide based on context)'
        ),
    )
    thread_id: str | None = Field(default=None, description="Search within a specific thread")
    account_id: str | None = Field(default=None, description="Filter results by account")
    product_id: str | None = Field(default=None, description="Filter results by product")
    board_id: str | None = Field(default=None, description="Filter results by board")
    task_id: str | None = Field(default=None, description="Filter results by specific task")

    def to_payload(self) -> dict[str, str]:
        """Wire form: aliased keys, unset and empty values dropped."""
        return {k: v for k, v in self.model_dump(by_alias=True, exclude_none=True).items() if v}
