"""Bearer token acquisition for the sync handshake and remote tools."""

from ctxsync.auth.token_client import TokenClient

__all__ = ["TokenClient"]
