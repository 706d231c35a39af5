"""Exception hierarchy for task-context sync and the tools that consume it."""

from __future__ import annotations

from enum import Enum


class CtxSyncError(Exception):
    """Root exception for all ctxsync domain errors."""


class AuthErrorKind(Enum):
    NOT_SIGNED_IN = "not_signed_in"
    NETWORK = "network"


class AuthError(CtxSyncError):
    """The remote issuer did not hand out a bearer token."""

    def __init__(self, message: str, kind: AuthErrorKind = AuthErrorKind.NETWORK) -> None:
        super().__init__(message)
        self.kind = kind

    @property
    def not_signed_in(self) -> bool:
        return self.kind is AuthErrorKind.NOT_SIGNED_IN


class SyncError(CtxSyncError):
    """Base class for failures of the browser handshake."""


class SyncTimeoutError(SyncError):
    """No valid callback arrived before the wait budget ran out."""

    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Sync timeout - no callback received within {timeout_s:.0f}s")
        self.timeout_s = timeout_s


class CallbackParseError(SyncError):
    """A single callback request could not be turned into a context.

    Non-fatal: the listener logs it and keeps waiting.
    """


class CallbackRespondError(SyncError):
    """The courtesy HTML response could not be written back to the browser."""


class SearchError(CtxSyncError):
    """Remote search call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(CtxSyncError):
    """Remote embedding call failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
