"""Fragment body and tag formatting."""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timezone

PLATFORM_TAG = "discord"
KIND_TAG = "forum-post"
RETROACTIVE_TAG = "retroactive-sync"
FORUM_TAG_PREFIX = "discord-tag:"

_WHITESPACE = re.compile(r"\s+")


def normalize_label(value: str) -> str:
    """Lower-case and replace whitespace runs with hyphens."""
    return _WHITESPACE.sub("-", value.strip().lower())


def generate_tags(
    guild_name: str | None = None, channel_name: str | None = None
) -> list[str]:
    """Deterministic base tags for a thread's context."""
    tags = [PLATFORM_TAG, KIND_TAG]
    if guild_name:
        tags.append(f"server:{normalize_label(guild_name)}")
    if channel_name:
        tags.append(f"channel:{normalize_label(channel_name)}")
    return tags


def repository_tag(repository: str) -> str:
    return f"repo:{repository}"


def forum_tag_labels(tag_names: Iterable[str]) -> list[str]:
    """Namespace platform tags so they never collide with generated ones."""
    return [
        f"{FORUM_TAG_PREFIX}{normalize_label(name)}"
        for name in sorted(tag_names)
        if name.strip()
    ]


def _context_lines(
    guild_name: str | None,
    channel_name: str | None,
    thread_name: str | None,
) -> list[str]:
    lines = []
    if guild_name:
        lines.append(f"**Server:** {guild_name}")
    if channel_name:
        lines.append(f"**Channel:** {channel_name}")
    if thread_name:
        lines.append(f"**Thread:** {thread_name}")
    return lines


def format_thread_content(
    author_name: str,
    content: str,
    *,
    thread_name: str | None = None,
    channel_name: str | None = None,
    guild_name: str | None = None,
    timestamp: datetime | None = None,
) -> str:
    """Fragment body for a newly mirrored thread (starter message only)."""
    posted = (timestamp or datetime.now(timezone.utc)).isoformat()
    lines = ["## Discord Thread Message", ""]
    lines += _context_lines(guild_name, channel_name, thread_name)
    lines += [f"**Author:** {author_name}", f"**Posted:** {posted}", ""]
    lines += ["---", "", content]
    return "\n".join(lines)


def format_thread_update(
    conversation: str,
    *,
    thread_name: str | None = None,
    channel_name: str | None = None,
    guild_name: str | None = None,
    updated_at: datetime | None = None,
) -> str:
    """Fragment body for a full conversation rebuild."""
    updated = (updated_at or datetime.now(timezone.utc)).isoformat()
    lines = ["## Discord Thread Conversation", ""]
    lines += _context_lines(guild_name, channel_name, thread_name)
    lines += [f"**Last Updated:** {updated}", ""]
    lines += ["---", "", conversation]
    return "\n".join(lines)
