"""Cloud embedding provider authenticated with the sync bearer token."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import certifi
import httpx
import structlog

from ctxsync.auth.token_client import TokenClient
from ctxsync.config import settings
from ctxsync.errors import EmbeddingError
from ctxsync.infra.circuit_breaker import CircuitBreaker, embeddings_breaker
from ctxsync.observability.metrics import get_metrics

logger = structlog.get_logger()

_BATCH_SIZE = 100


class CloudEmbeddingProvider:
    """Embeds text through the hosted ``/embeddings`` endpoint."""

    def __init__(
        self,
        token_client: TokenClient,
        model: str | None = None,
        *,
        base_url: str | None = None,
        embeddings_path: str | None = None,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker = embeddings_breaker,
    ) -> None:
        self.model = model or settings.embedding_model
        self._token_client = token_client
        self._path = embeddings_path or settings.embeddings_path
        self._breaker = breaker
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            headers={"Content-Type": "application/json"},
            verify=certifi.where(),
            timeout=httpx.Timeout(
                connect=settings.http_connect_timeout_s,
                read=settings.http_read_timeout_s,
                write=10.0,
                pool=10.0,
            ),
        )

    @property
    def batch_size(self) -> int:
        return _BATCH_SIZE

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, splitting into batches of ``batch_size``."""
        if not texts:
            return []
        token = await self._token_client.acquire()
        embeddings: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_SIZE):
            batch = list(texts[start:start + _BATCH_SIZE])
            embeddings.extend(await self._embed_batch(batch, token))
        return embeddings

    async def _embed_batch(self, batch: list[str], token: str) -> list[list[float]]:
        metrics = get_metrics()
        try:
            async with self._breaker, metrics.timer("embedding_latency_ms"):
                resp = await self._client.post(
                    self._path,
                    json={"model": self.model, "input": batch},
                    headers={"Authorization": f"Bearer {token}"},
                )
                if resp.is_error:
                    logger.warning("embedding_http_error", status=resp.status_code, body=resp.text[:500])
                    raise EmbeddingError(
                        f"Embedding request failed with status {resp.status_code}: {resp.text[:500]}",
                        status_code=resp.status_code,
                    )
        except httpx.HTTPError as e:
            await metrics.remote_error("embeddings")
            raise EmbeddingError(f"Failed to send embedding request: {e}") from e
        except EmbeddingError:
            await metrics.remote_error("embeddings")
            raise

        try:
            data: list[dict[str, Any]] = resp.json()["data"]
            vectors = [list(map(float, item["embedding"])) for item in data]
        except (ValueError, KeyError, TypeError) as e:
            raise EmbeddingError(f"Failed to parse embedding response: {e}") from e

        if len(vectors) != len(batch):
            raise EmbeddingError(
                f"Embedding response had {len(vectors)} vectors for {len(batch)} inputs"
            )
        logger.debug("embedding_batch_done", model=self.model, size=len(batch))
        return vectors

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
