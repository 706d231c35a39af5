"""Tests for SyncedContext and SearchFilter value types."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ctxsync.models import SearchFilter, SyncedContext


class TestSyncedContext:
    def test_frozen(self, board_context):
        with pytest.raises(AttributeError):
            board_context.board_id = "other"

    def test_equality_ignores_synced_at(self):
        a = SyncedContext(board_id="b", synced_at=datetime(2020, 1, 1, tzinfo=timezone.utc))
        b = SyncedContext(board_id="b", synced_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        assert a == b

    def test_to_query_omits_absent_optional_fields(self, board_context):
        query = board_context.to_query()
        assert query["board_name"] == "Faster checkout"
        assert "task_id" not in query
        assert "task_name" not in query

    def test_to_context_filter_scopes_to_tasks(self, task_context):
        f = task_context.to_context_filter()
        assert f.search_type == "tasks"
        assert f.task_id == "task-9"
        assert f.board_id == "board-1"

    def test_to_context_filter_drops_empty_ids(self):
        f = SyncedContext(board_id="b").to_context_filter()
        assert f.account_id is None
        assert f.to_payload() == {"type": "tasks", "board_id": "b"}

    def test_to_dict_includes_task_only_when_synced(self, board_context, task_context):
        assert "task_id" not in board_context.to_dict()
        data = task_context.to_dict()
        assert data["task_id"] == "task-9"
        assert data["work_item"] == "Fix bug"
        assert data["synced_at"] == task_context.synced_at.isoformat()


class TestSearchFilter:
    def test_accepts_wire_alias(self):
        f = SearchFilter.model_validate({"type": "conversations", "thread_id": "th-1"})
        assert f.search_type == "conversations"

    def test_payload_uses_alias_and_drops_empty(self):
        f = SearchFilter(search_type="all", account_id="", board_id="b")
        assert f.to_payload() == {"type": "all", "board_id": "b"}
