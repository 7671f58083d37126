"""Lifespan management for bridge startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config, to_yaml_fallbacks
from ..core.async_utils import init_semaphore
from ..core.client import KnowledgeBaseClient

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for operator feedback."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def bridge_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage bridge startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create the knowledge-base client and size the request semaphore

    Args:
        config_overrides: Optional dict with config values from CLI
            (token, api_url, workspace_id, health_port, debug)

    Yields:
        Dict with 'config' and 'client' keys

    Raises:
        RuntimeError: If configuration is invalid.
    """
    logger.info("Forum bridge starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        sources = []
        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            yaml_fallbacks = to_yaml_fallbacks(unified)
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            token=overrides.get("token"),
            api_url=overrides.get("api_url"),
            workspace_id=overrides.get("workspace_id"),
            health_port=overrides.get("health_port"),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        logger.info(
            "Tracking %d forum channel(s); knowledge base %s, workspace %s",
            len(config.forum_mappings),
            config.api_url,
            config.workspace_id,
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure DISCORD_BOT_TOKEN, DISCORD_FORUM_MAPPINGS, "
            "USABLE_API_KEY and USABLE_WORKSPACE_ID are set."
        )
        raise RuntimeError(f"Configuration error: {e}") from e

    client = KnowledgeBaseClient(config)
    init_semaphore(config.max_parallel_requests)

    try:
        yield {"config": config, "client": client}
    finally:
        logger.info("Forum bridge shutting down")
