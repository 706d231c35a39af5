"""Browser handshake that syncs the user's current task into the IDE."""

from ctxsync.sync.callback import SYNC_COMPLETE_HTML, parse_callback
from ctxsync.sync.handoff import build_handoff_url, sign_in_url
from ctxsync.sync.listener import CallbackListener
from ctxsync.sync.orchestrator import (
    Remediation,
    SyncObserver,
    SyncOrchestrator,
    SyncOutcome,
    SyncState,
)
from ctxsync.sync.service import TaskSync

__all__ = [
    "SYNC_COMPLETE_HTML",
    "CallbackListener",
    "Remediation",
    "SyncObserver",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncState",
    "TaskSync",
    "build_handoff_url",
    "parse_callback",
    "sign_in_url",
]
