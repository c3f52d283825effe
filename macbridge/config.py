"""
Centralized configuration for macbridge.

All settings are loaded from environment variables with sensible defaults.
Pydantic Settings provides validation and type coercion.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env then .env.local (so .env.local overrides).
_repo_root = Path(__file__).resolve().parent.parent
load_dotenv(_repo_root / ".env")
_env_local = _repo_root / ".env.local"
if _env_local.exists():
    load_dotenv(_env_local, override=True)


class SearchConfig(BaseSettings):
    """Search endpoint, fetch timeouts and retry budgets for the web research pipeline."""

    search_endpoint: str = Field(
        default="https://html.duckduckgo.com/html/",
        alias="MACBRIDGE_SEARCH_ENDPOINT",
    )
    search_timeout: float = Field(default=10.0, alias="MACBRIDGE_SEARCH_TIMEOUT")
    search_retries: int = Field(default=2, alias="MACBRIDGE_SEARCH_RETRIES")
    # Content pages get a longer per-attempt timeout but a smaller retry budget
    content_timeout: float = Field(default=15.0, alias="MACBRIDGE_CONTENT_TIMEOUT")
    content_retries: int = Field(default=1, alias="MACBRIDGE_CONTENT_RETRIES")
    max_search_results: int = 10
    max_content_results: int = Field(default=5, alias="MACBRIDGE_MAX_CONTENT_RESULTS")
    backoff_base: float = 1.0  # seconds; doubles per attempt


class MessagesConfig(BaseSettings):
    """Local Messages store and osascript settings."""

    db_path: str = Field(
        default=os.path.expanduser("~/Library/Messages/chat.db"),
        alias="MACBRIDGE_MESSAGES_DB",
    )
    access_retries: int = 3
    access_retry_delay: float = 1.0  # seconds, fixed
    default_limit: int = Field(default=10, alias="MACBRIDGE_MESSAGES_LIMIT")
    osascript_path: str = "/usr/bin/osascript"
    send_timeout: float = 30.0


class ObservabilityConfig(BaseSettings):
    """Log level and optional Prometheus metrics."""

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    metrics_enabled: bool = Field(default=False, alias="PROMETHEUS_METRICS_ENABLED")
    metrics_port: int = Field(default=8000, alias="PROMETHEUS_METRICS_PORT")


class Settings(BaseSettings):
    """Root settings container — access all config from one object."""

    search: SearchConfig = Field(default_factory=SearchConfig)
    messages: MessagesConfig = Field(default_factory=MessagesConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton settings instance. Cached after first call."""
    return Settings()
