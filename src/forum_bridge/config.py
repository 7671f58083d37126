"""Configuration for the forum bridge.

Reads Discord and knowledge-base settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    DISCORD_BOT_TOKEN: Gateway token (required)
    DISCORD_FORUM_MAPPINGS: JSON object, channel id -> fragment type UUID (required)
    USABLE_API_KEY: Knowledge-base bearer token (required)
    USABLE_WORKSPACE_ID: Knowledge-base workspace UUID (required)
    USABLE_API_URL: Knowledge-base base URL (optional, default: https://api.usable.dev/api)
    USABLE_REQUEST_TIMEOUT: Request timeout in seconds (optional, default: 30)
    FORUM_BRIDGE_REPOSITORY: Repository tag value (optional, default: forum-bridge)
    FORUM_BRIDGE_RESOLVE_LOOKBACK: Messages scanned for a marker (optional, default: 50)
    FORUM_BRIDGE_CONVERSATION_LIMIT: Messages in a conversation rebuild (optional, default: 100)
    FORUM_BRIDGE_MAX_PARALLEL_REQUESTS: Concurrent knowledge-base requests (optional, default: 5)
    FORUM_BRIDGE_CREATE_ON_LATE_EVENT: Create on update/reply for unmirrored threads (optional, default: false)
    HEALTH_PORT: Health probe port, 0 disables (optional, default: 3000)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .validators import (
    parse_forum_mappings,
    validate_snowflake,
    validate_url,
    validate_uuid,
)

if TYPE_CHECKING:
    from .sync.models import SyncSettings, TrackedChannels

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.usable.dev/api"
DEFAULT_REPOSITORY = "forum-bridge"

# field -> (env var, default, minimum, maximum)
_NUMERIC_FIELDS = {
    "request_timeout": ("USABLE_REQUEST_TIMEOUT", 30, 1, 300),
    "resolve_lookback": ("FORUM_BRIDGE_RESOLVE_LOOKBACK", 50, 1, 100),
    "conversation_limit": ("FORUM_BRIDGE_CONVERSATION_LIMIT", 100, 1, 100),
    "max_parallel_requests": ("FORUM_BRIDGE_MAX_PARALLEL_REQUESTS", 5, 1, 50),
    "health_port": ("HEALTH_PORT", 3000, 0, 65535),
}


@dataclass
class Config:
    discord_token: str
    forum_mappings: dict[str, str]
    api_key: str
    workspace_id: str
    api_url: str = DEFAULT_API_URL
    request_timeout: int = 30
    repository: str = DEFAULT_REPOSITORY
    resolve_lookback: int = 50
    conversation_limit: int = 100
    max_parallel_requests: int = 5
    create_on_late_event: bool = False
    health_port: int = 3000
    debug: bool = False

    def tracked_channels(self) -> TrackedChannels:
        from .sync.models import TrackedChannels

        return TrackedChannels(self.forum_mappings)

    def sync_settings(self) -> SyncSettings:
        from .sync.models import SyncSettings

        return SyncSettings(
            workspace_id=self.workspace_id,
            repository=self.repository,
            resolve_lookback=self.resolve_lookback,
            conversation_limit=self.conversation_limit,
            create_on_late_event=self.create_on_late_event,
        )


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ValueError: If a required value is empty, an identifier is
            malformed, or a numeric setting is out of range.
    """
    config.api_url = config.api_url.strip()
    ok, msg = validate_url(config.api_url, "Knowledge-base API URL")
    if not ok:
        raise ValueError(msg)
    config.api_url = config.api_url.removesuffix("/")

    if not config.discord_token.strip():
        raise ValueError(
            "Discord bot token cannot be empty. Set DISCORD_BOT_TOKEN environment variable."
        )
    if not config.api_key.strip():
        raise ValueError(
            "Knowledge-base API key cannot be empty. Set USABLE_API_KEY environment variable."
        )

    ok, msg = validate_uuid(config.workspace_id, "Workspace id")
    if not ok:
        raise ValueError(msg)

    if not config.forum_mappings:
        raise ValueError(
            "No forum channels configured. Set DISCORD_FORUM_MAPPINGS environment variable."
        )
    for channel_id, fragment_type in config.forum_mappings.items():
        ok, msg = validate_snowflake(channel_id, "Forum mapping key")
        if not ok:
            raise ValueError(msg)
        ok, msg = validate_uuid(
            fragment_type, f"Fragment type for channel {channel_id}"
        )
        if not ok:
            raise ValueError(msg)

    for name, (env_key, _default, low, high) in _NUMERIC_FIELDS.items():
        value = getattr(config, name)
        if not (low <= value <= high):
            raise ValueError(
                f"Invalid {name} {value}: must be between {low} and {high} ({env_key})"
            )

    if not config.repository.strip():
        raise ValueError("Repository tag cannot be empty")

    if config.health_port == 0:
        logger.info("Health probes disabled (HEALTH_PORT=0)")


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.strip().lower() in ("true", "1", "yes", "on")


def _resolve_int(
    name: str, cli_value: int | None, fb: dict[str, Any]
) -> int:
    """Resolve one numeric field: CLI > env > YAML > default."""
    env_key, default, low, high = _NUMERIC_FIELDS[name]
    if cli_value is not None:
        return cli_value

    raw = os.getenv(env_key)
    if raw is not None:
        try:
            return int(raw)
        except ValueError:
            raise ValueError(
                f"Invalid {env_key} '{raw}': must be a number between {low} and {high}"
            ) from None
    if name in fb:
        return int(fb[name])
    return default


def load_config(
    token: str | None = None,
    api_url: str | None = None,
    workspace_id: str | None = None,
    health_port: int | None = None,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        token: Override Discord bot token.
        api_url: Override knowledge-base API URL.
        workspace_id: Override knowledge-base workspace id.
        health_port: Override health probe port.
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML config file
            (see ``config_schema.to_yaml_fallbacks``).  Used as fallback
            when CLI arg and env var are both unset.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If required config is missing or invalid after
            checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > error ---

    discord_token = token or os.getenv("DISCORD_BOT_TOKEN") or fb.get("discord_token")
    if not discord_token:
        raise ValueError(
            "Discord bot token not found. Set DISCORD_BOT_TOKEN environment variable "
            "or add 'discord.token' to config.yml."
        )

    raw_mappings = os.getenv("DISCORD_FORUM_MAPPINGS") or fb.get("forum_mappings")
    if not raw_mappings:
        raise ValueError(
            "Forum mappings not found. Set DISCORD_FORUM_MAPPINGS environment variable "
            "or add 'discord.forum_mappings' to config.yml."
        )
    forum_mappings = parse_forum_mappings(raw_mappings)

    api_key = os.getenv("USABLE_API_KEY") or fb.get("api_key")
    if not api_key:
        raise ValueError(
            "Knowledge-base API key not found. Set USABLE_API_KEY environment variable "
            "or add 'knowledge_base.api_key' to config.yml."
        )

    final_workspace = (
        workspace_id or os.getenv("USABLE_WORKSPACE_ID") or fb.get("workspace_id")
    )
    if not final_workspace:
        raise ValueError(
            "Workspace id not found. Set USABLE_WORKSPACE_ID environment variable, "
            "pass --workspace-id CLI argument, or add 'knowledge_base.workspace_id' to config.yml."
        )

    final_url = (
        api_url or os.getenv("USABLE_API_URL") or fb.get("api_url") or DEFAULT_API_URL
    )
    repository = (
        os.getenv("FORUM_BRIDGE_REPOSITORY") or fb.get("repository") or DEFAULT_REPOSITORY
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    env_late = _get_bool_env("FORUM_BRIDGE_CREATE_ON_LATE_EVENT")
    if env_late is not None:
        create_on_late_event = env_late
    else:
        create_on_late_event = bool(fb.get("create_on_late_event", False))

    if debug:
        final_debug = True
    else:
        final_debug = bool(_get_bool_env("FORUM_BRIDGE_DEBUG"))

    # --- Numeric fields: CLI > env > YAML > default ---

    config = Config(
        discord_token=discord_token.strip(),
        forum_mappings=forum_mappings,
        api_key=api_key.strip(),
        workspace_id=final_workspace.strip(),
        api_url=final_url,
        request_timeout=_resolve_int("request_timeout", None, fb),
        repository=repository.strip(),
        resolve_lookback=_resolve_int("resolve_lookback", None, fb),
        conversation_limit=_resolve_int("conversation_limit", None, fb),
        max_parallel_requests=_resolve_int("max_parallel_requests", None, fb),
        create_on_late_event=create_on_late_event,
        health_port=_resolve_int("health_port", health_port, fb),
        debug=final_debug,
    )

    validate_config(config)

    return config
