"""Rebuild a thread's human conversation as a single document."""

from __future__ import annotations

from collections.abc import Iterable

from ..transport.base import ChatTransport
from .models import MessageView

DEFAULT_CONVERSATION_LIMIT = 100
BLOCK_SEPARATOR = "\n\n---\n\n"


def render_block(message: MessageView) -> str:
    heading = f"### {message.author_name} ({message.created_at.isoformat()})"
    return f"{heading}\n\n{message.content.strip()}"


def render_conversation(
    messages: Iterable[MessageView], bot_user_id: str
) -> str | None:
    """Render human messages oldest first, or ``None`` if there are none.

    Messages authored by the bridge and messages without text are left out.
    """
    human = [
        m
        for m in messages
        if m.author_id != bot_user_id and m.content.strip()
    ]
    if not human:
        return None
    human.sort(key=lambda m: m.created_at)
    return BLOCK_SEPARATOR.join(render_block(m) for m in human)


async def build_conversation(
    transport: ChatTransport,
    thread_id: str,
    bot_user_id: str,
    limit: int = DEFAULT_CONVERSATION_LIMIT,
) -> str | None:
    """Fetch up to *limit* recent messages and render them.

    The fetch returns the most recent page, so in threads longer than
    *limit* the oldest messages are the ones left out.

    Raises:
        TransportError: If the history cannot be fetched.
    """
    messages = await transport.fetch_recent_messages(thread_id, limit)
    return render_conversation(messages, bot_user_id)
