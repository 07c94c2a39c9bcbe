"""Unified configuration schema for docsync.

Defines Pydantic models for the config file structure with dedicated
sections for the GitHub connection, sync behaviour and logging. The flattened
``fallbacks()`` view feeds ``load_config()`` as its YAML layer.

Usage:
    from docsync.config_schema import build_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=unified.fallbacks())
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GitHubConfig(BaseModel):
    """GitHub repository connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    token: str | None = Field(
        default=None, description="Personal access token"
    )
    owner: str | None = Field(
        default=None, description="Repository owner (user or org)"
    )
    repo: str | None = Field(default=None, description="Repository name")
    branch: str = Field(default="main", description="Branch to sync")
    api_url: str = Field(
        default="https://api.github.com", description="REST API base URL"
    )
    timeout: float = Field(
        default=30.0, gt=0, description="Per-request timeout in seconds"
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request for retryable failures (1-10)",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Initial backoff delay in seconds (x1.5 per attempt)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Synchronisation behaviour.

    Attributes:
        local_root: Directory holding the local document collection.
        remote_path: Sub-path inside the repository ("" = repository root).
        state_dir: Directory for the persisted sync state.
        auto_sync: Whether ``docsync watch`` runs periodic syncs.
        interval: Seconds between automatic syncs.
        conflict_policy: local, remote, merge or ask.
        verbosity: quiet, standard or verbose notices.
    """

    local_root: str = Field(default=".", description="Local document root")
    remote_path: str = Field(
        default="", description="Remote sub-path prefix"
    )
    state_dir: str = Field(
        default=".docsync", description="Sync state directory"
    )
    auto_sync: bool = Field(default=True, description="Enable auto sync")
    interval: int = Field(
        default=300,
        ge=10,
        description="Auto sync interval in seconds (>= 10)",
    )
    conflict_policy: Literal["local", "remote", "merge", "ask"] = Field(
        default="ask", description="Conflict resolution policy"
    )
    verbosity: Literal["quiet", "standard", "verbose"] = Field(
        default="standard", description="Notification verbosity"
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}

    def fallbacks(self) -> dict:
        """Flatten the github and sync sections into one fallback dict.

        ``None`` values are dropped so they never shadow env vars.
        """
        merged = {
            **self.github.model_dump(),
            **self.sync.model_dump(),
        }
        return {k: v for k, v in merged.items() if v is not None}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


