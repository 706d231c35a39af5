"""Centralized configuration via Pydantic Settings.

All values loaded from environment variables prefixed with CTXSYNC_.
The session credential can also be loaded from keys.json.
"""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


def _load_keys_json() -> dict:
    """Load credentials from keys.json if available."""
    keys_path = Path(__file__).parent.parent.parent / "keys.json"
    if keys_path.exists():
        try:
            with open(keys_path) as f:
                return json.load(f)
        except Exception as e:
            logger.warning("keys_json_load_failed", error=str(e))
    return {}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CTXSYNC_", env_file=".env", extra="ignore")

    # Web app (browser handoff + sign-in remediation)
    web_base_url: str = "https://app.oppla.ai"

    # API (token issuer, search, embeddings)
    api_base_url: str = "https://api.oppla.ai"
    access_token: str = ""
    token_path: str = "/api/v1/llm/token"
    search_path: str = "/api/v1/search"
    embeddings_path: str = "/embeddings"

    # ── Callback listener ─────────────────────────────────────
    callback_host: str = "127.0.0.1"
    callback_timeout_s: float = 300.0
    require_core_ids: bool = False

    # ── Sync attempts ─────────────────────────────────────────
    serialize_sync_attempts: bool = False
    open_browser: bool = True

    # ── External service timeouts ─────────────────────────────
    http_connect_timeout_s: float = 10.0
    http_read_timeout_s: float = 30.0

    # ── Downstream tools ──────────────────────────────────────
    search_default_limit: int = 10
    embedding_model: str = "together-ai-embedding-up-to-150m"

    # Application
    log_level: str = "INFO"
    env: str = "development"

    def model_post_init(self, __context: object) -> None:
        """Post-initialization: load from keys.json if env vars not set."""
        keys = _load_keys_json()

        if not self.access_token:
            token = keys.get("ctxsync", {}).get("access_token")
            if token:
                self.access_token = token

        self.web_base_url = self.web_base_url.rstrip("/")
        self.api_base_url = self.api_base_url.rstrip("/")


settings = Settings()  # type: ignore[call-arg]
