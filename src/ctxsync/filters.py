"""Overlay the ambient synced context onto a caller-supplied search filter."""

from __future__ import annotations

from ctxsync.models import CONTENT_TYPE_AUTO, SearchFilter, SyncedContext

_SCOPED_FIELDS = ("account_id", "product_id", "board_id", "task_id")


def merge_context_filter(
    caller: SearchFilter | None,
    ambient: SyncedContext | None,
) -> SearchFilter:
    """Return the effective filter for one search call.

    The caller's non-empty values always win. Gaps are filled from *ambient*;
    empty strings on either side count as unset. ``task_id`` is only copied
    when the ambient context actually has one. When anything was filled in
    and the caller left ``content_type`` unset, it becomes ``"auto"`` so the
    backend knows the scope was inferred.

    Neither argument is mutated.
    """
    merged = caller.model_copy() if caller is not None else SearchFilter()
    if ambient is None:
        return merged

    introduced = False
    for name in _SCOPED_FIELDS:
        if getattr(merged, name):
            continue
        value = getattr(ambient, name)
        if value:
            setattr(merged, name, value)
            introduced = True

    if introduced and not merged.content_type:
        merged.content_type = CONTENT_TYPE_AUTO

    return merged
