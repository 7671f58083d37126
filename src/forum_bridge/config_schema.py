"""Configuration file schema for forum_bridge.

Defines Pydantic models for the YAML config structure with dedicated
sections for Discord, the knowledge base, sync tunables, health probes
and logging, plus the adapter that flattens it into fallback values for
``load_config()``.

Usage:
    from forum_bridge.config_schema import build_config, to_yaml_fallbacks

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = load_config(yaml_fallbacks=to_yaml_fallbacks(unified))
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class DiscordConfig(BaseModel):
    """Discord gateway settings.

    All fields are optional to support zero-config: env vars can supply
    them at runtime instead.
    """

    token: str | None = Field(default=None, description="Bot token")
    forum_mappings: dict[str | int, str] | None = Field(
        default=None,
        description="Forum channel id -> fragment type UUID",
    )

    model_config = {"frozen": True}


class KnowledgeBaseConfig(BaseModel):
    """Fragment API connection settings."""

    api_url: str | None = Field(default=None, description="API base URL")
    api_key: str | None = Field(default=None, description="Bearer token")
    workspace_id: str | None = Field(
        default=None, description="Workspace UUID"
    )
    request_timeout: int = Field(
        default=30, ge=1, le=300, description="Request timeout in seconds"
    )
    max_parallel_requests: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent fragment API requests (1-50)",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine tunables."""

    repository: str | None = Field(
        default=None, description="Repository tag value"
    )
    resolve_lookback: int = Field(default=50, ge=1, le=100)
    conversation_limit: int = Field(default=100, ge=1, le=100)
    create_on_late_event: bool = False

    model_config = {"frozen": True}


class HealthConfig(BaseModel):
    port: int = Field(default=3000, ge=0, le=65535)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
        format: ``text`` or ``json``.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")
    format: str = Field(default="text", description="text or json")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level config file model.

    Every section has defaults, so ``UnifiedConfig()`` (zero-config) is
    always valid.
    """

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    knowledge_base: KnowledgeBaseConfig = Field(
        default_factory=KnowledgeBaseConfig
    )
    sync: SyncConfig = Field(default_factory=SyncConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully; anything absent gets defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> load_config() fallbacks
# ---------------------------------------------------------------------------


def to_yaml_fallbacks(unified: UnifiedConfig) -> dict[str, Any]:
    """Flatten a ``UnifiedConfig`` into the key names ``load_config()``
    reads from ``yaml_fallbacks``.

    ``None`` values are dropped so they never shadow built-in defaults.
    Numeric and boolean fields are only included when the file set them
    explicitly.
    """
    kb = unified.knowledge_base
    sync = unified.sync
    values: dict[str, Any] = {
        "discord_token": unified.discord.token,
        "forum_mappings": unified.discord.forum_mappings,
        "api_url": kb.api_url,
        "api_key": kb.api_key,
        "workspace_id": kb.workspace_id,
        "repository": sync.repository,
    }
    for section, names in (
        (kb, ("request_timeout", "max_parallel_requests")),
        (sync, ("resolve_lookback", "conversation_limit", "create_on_late_event")),
    ):
        for name in names:
            if name in section.model_fields_set:
                values[name] = getattr(section, name)
    if "port" in unified.health.model_fields_set:
        values["health_port"] = unified.health.port

    return {k: v for k, v in values.items() if v is not None}
