"""
Input validation functions for the forum bridge.

Validates Discord identifiers, knowledge-base identifiers and the
channel mapping before they reach the gateway client or the fragment API.
"""

import json
import re
from urllib.parse import urlparse

_SNOWFLAKE_RE = re.compile(r"^\d{15,21}$")
_UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Workspace id")
        reason: Description of validation failure (e.g., "must be a UUID")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_snowflake(value: str, field_name: str = "Channel id") -> tuple[bool, str]:
    """
    Validate a Discord snowflake id given as a string.

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.
    """
    if not value or not value.strip():
        return (False, format_validation_error(field_name, "cannot be empty"))
    if not _SNOWFLAKE_RE.match(value.strip()):
        return (
            False,
            format_validation_error(
                field_name, f"'{value}' is not a numeric Discord id"
            ),
        )
    return (True, "")


def validate_uuid(value: str, field_name: str = "Identifier") -> tuple[bool, str]:
    """Validate a UUID string (any version, case-insensitive)."""
    if not value or not value.strip():
        return (False, format_validation_error(field_name, "cannot be empty"))
    if not _UUID_RE.match(value.strip()):
        return (
            False,
            format_validation_error(field_name, f"'{value}' is not a UUID"),
        )
    return (True, "")


def validate_url(value: str, field_name: str = "API URL") -> tuple[bool, str]:
    """Validate an http(s) URL with a hostname."""
    value = (value or "").strip()
    if not value.startswith(("http://", "https://")):
        return (
            False,
            format_validation_error(
                field_name,
                f"'{value}' must start with http:// or https://",
            ),
        )
    if not urlparse(value).hostname:
        return (
            False,
            format_validation_error(
                field_name, f"'{value}' must include a hostname"
            ),
        )
    return (True, "")


def parse_forum_mappings(raw: str | dict) -> dict[str, str]:
    """
    Parse and validate the channel -> fragment type mapping.

    Args:
        raw: JSON object text (as found in ``DISCORD_FORUM_MAPPINGS``)
            or an already-decoded dict (from YAML).

    Returns:
        Dict of channel id -> fragment type id, both stripped strings,
        in the configured order.

    Raises:
        ValueError: If the value is not a non-empty JSON object of
            snowflake keys and UUID values.
    """
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(
                f"Forum mappings must be a JSON object: {e.msg}"
            ) from None
    else:
        data = raw

    if not isinstance(data, dict):
        raise ValueError(
            "Forum mappings must be a JSON object of channel id -> fragment type id"
        )
    if not data:
        raise ValueError("Forum mappings cannot be empty")

    mappings: dict[str, str] = {}
    for channel_id, fragment_type in data.items():
        channel_id = str(channel_id).strip()
        ok, msg = validate_snowflake(channel_id, "Forum mapping key")
        if not ok:
            raise ValueError(msg)
        if not isinstance(fragment_type, str):
            raise ValueError(
                f"Forum mapping for channel {channel_id} must be a string UUID"
            )
        ok, msg = validate_uuid(
            fragment_type, f"Fragment type for channel {channel_id}"
        )
        if not ok:
            raise ValueError(msg)
        mappings[channel_id] = fragment_type.strip()
    return mappings
