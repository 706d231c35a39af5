"""Short-lived bearer token acquisition.

The IDE already holds a session credential. This client trades it for the
short-lived token that the web app and the search/embedding endpoints
accept. Failures are not retried here; callers decide whether to try again
or to send the user to sign in.
"""

from __future__ import annotations

from types import TracebackType
from typing import Self

import certifi
import httpx
import structlog

from ctxsync.config import settings
from ctxsync.errors import AuthError, AuthErrorKind

logger = structlog.get_logger()

_NOT_SIGNED_IN_STATUS = frozenset({401, 403})


class TokenClient:
    """Async client for the token issuer."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        token_path: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._access_token = settings.access_token if access_token is None else access_token
        self._token_path = token_path or settings.token_path
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

    @property
    def is_signed_in(self) -> bool:
        return bool(self._access_token)

    async def acquire(self) -> str:
        """Request a fresh bearer token. Raises ``AuthError``."""
        if not self._access_token:
            logger.warning("token_acquire_not_signed_in")
            raise AuthError("No session credential configured", AuthErrorKind.NOT_SIGNED_IN)

        try:
            resp = await self._client.post(
                self._token_path,
                headers={"Authorization": f"Bearer {self._access_token}"},
                json={"client": "ide"},
            )
        except httpx.TimeoutException as e:
            logger.error("token_acquire_timeout", error=str(e))
            raise AuthError(f"Timed out acquiring token: {e}") from e
        except httpx.TransportError as e:
            logger.error("token_acquire_transport_error", error=str(e))
            raise AuthError(f"Network error acquiring token: {e}") from e

        if resp.status_code in _NOT_SIGNED_IN_STATUS:
            logger.warning("token_acquire_rejected", status=resp.status_code)
            raise AuthError(
                f"Token request rejected with status {resp.status_code}",
                AuthErrorKind.NOT_SIGNED_IN,
            )
        if resp.is_error:
            logger.error(
                "token_acquire_http_error",
                status=resp.status_code,
                body=resp.text[:500],
            )
            raise AuthError(f"Token request failed with status {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise AuthError("Token response was not JSON") from e
        token = body.get("token") if isinstance(body, dict) else None
        if not token or not isinstance(token, str):
            raise AuthError("Token response did not contain a token")

        logger.info("token_acquired")
        return token

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
