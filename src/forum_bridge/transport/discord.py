"""Discord implementation of ``ChatTransport`` on top of discord.py.

Converts discord.py objects into the bridge's view models and maps
``discord.HTTPException`` onto ``TransportErrorKind``.  Error code
10008 (Unknown Message) is what Discord returns for a forum starter
message requested right after the thread-create event, so it is
classified as transient by default.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

import aiohttp
import discord

from ..sync.models import ChannelKind, ChannelView, MessageView, ThreadView
from .base import TransportError, TransportErrorKind

logger = logging.getLogger(__name__)

UNKNOWN_MESSAGE = 10008
DEFAULT_TRANSIENT_CODES = frozenset({UNKNOWN_MESSAGE})


def translate_error(
    exc: discord.HTTPException,
    transient_codes: frozenset[int] = DEFAULT_TRANSIENT_CODES,
) -> TransportError:
    """Classify a discord.py HTTP failure."""
    code = exc.code or None
    message = exc.text or str(exc)
    if code in transient_codes:
        kind = TransportErrorKind.NOT_YET_VISIBLE
    elif isinstance(exc, discord.NotFound):
        kind = TransportErrorKind.NOT_FOUND
    elif isinstance(exc, discord.Forbidden):
        kind = TransportErrorKind.FORBIDDEN
    else:
        kind = TransportErrorKind.OTHER
    return TransportError(kind, message, code=code)


def channel_kind(channel: object) -> ChannelKind:
    if isinstance(channel, discord.ForumChannel):
        return ChannelKind.FORUM
    if isinstance(channel, discord.Thread):
        return ChannelKind.THREAD
    if isinstance(channel, discord.TextChannel):
        return ChannelKind.TEXT
    return ChannelKind.OTHER


def thread_view(thread: discord.Thread) -> ThreadView:
    """Build a ``ThreadView`` from a discord.py thread."""
    parent = thread.parent
    created_at = thread.created_at or discord.utils.snowflake_time(thread.id)
    return ThreadView(
        id=str(thread.id),
        name=thread.name,
        parent_id=str(thread.parent_id) if thread.parent_id else None,
        parent_name=getattr(parent, "name", None),
        parent_kind=channel_kind(parent),
        guild_name=thread.guild.name if thread.guild else None,
        tags=tuple(tag.name for tag in thread.applied_tags),
        created_at=created_at,
        archived=bool(thread.archived),
        locked=bool(thread.locked),
    )


def message_view(message: discord.Message) -> MessageView:
    author = message.author
    return MessageView(
        id=str(message.id),
        author_id=str(author.id),
        author_name=author.display_name,
        author_is_bot=author.bot,
        content=message.content or "",
        created_at=message.created_at,
    )


class DiscordTransport:
    """``ChatTransport`` backed by a connected ``discord.Client``.

    Args:
        client: Logged-in discord.py client.
        transient_codes: Discord error codes treated as "not yet visible".
    """

    def __init__(
        self,
        client: discord.Client,
        transient_codes: frozenset[int] = DEFAULT_TRANSIENT_CODES,
    ) -> None:
        self.client = client
        self.transient_codes = transient_codes

    @property
    def bot_user_id(self) -> str:
        if self.client.user is None:
            raise RuntimeError("Discord client is not logged in")
        return str(self.client.user.id)

    @contextmanager
    def _translated(self) -> Iterator[None]:
        try:
            yield
        except discord.HTTPException as exc:
            raise translate_error(exc, self.transient_codes) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(
                TransportErrorKind.OTHER, str(exc) or type(exc).__name__
            ) from exc

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _get_channel(self, channel_id: str):
        try:
            snowflake = int(channel_id)
        except (TypeError, ValueError):
            return None
        channel = self.client.get_channel(snowflake)
        if channel is not None:
            return channel
        try:
            with self._translated():
                return await self.client.fetch_channel(snowflake)
        except TransportError as exc:
            if exc.kind is TransportErrorKind.NOT_FOUND:
                return None
            raise

    async def _require_thread(self, thread_id: str) -> discord.Thread:
        channel = await self._get_channel(thread_id)
        if not isinstance(channel, discord.Thread):
            raise TransportError(
                TransportErrorKind.NOT_FOUND, f"Thread {thread_id} not found"
            )
        return channel

    async def fetch_channel(self, channel_id: str) -> ChannelView | None:
        channel = await self._get_channel(channel_id)
        if channel is None:
            return None
        guild = getattr(channel, "guild", None)
        return ChannelView(
            id=str(channel.id),
            name=getattr(channel, "name", None) or str(channel.id),
            kind=channel_kind(channel),
            guild_name=guild.name if guild else None,
        )

    async def fetch_thread(self, thread_id: str) -> ThreadView | None:
        channel = await self._get_channel(thread_id)
        if not isinstance(channel, discord.Thread):
            return None
        return thread_view(channel)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def fetch_recent_messages(
        self, thread_id: str, limit: int
    ) -> list[MessageView]:
        thread = await self._require_thread(thread_id)
        with self._translated():
            messages = [m async for m in thread.history(limit=limit)]
        return [message_view(m) for m in messages]

    async def fetch_starter_message(
        self, thread_id: str
    ) -> MessageView | None:
        thread = await self._require_thread(thread_id)
        # Forum starter messages share the thread's id
        with self._translated():
            message = await thread.fetch_message(thread.id)
        return message_view(message)

    async def post_message(self, thread_id: str, text: str) -> None:
        thread = await self._require_thread(thread_id)
        with self._translated():
            await thread.send(text)

    # ------------------------------------------------------------------
    # Thread listings
    # ------------------------------------------------------------------

    async def fetch_active_threads(self, channel_id: str) -> list[ThreadView]:
        channel = await self._get_channel(channel_id)
        if channel is None or channel.guild is None:
            return []
        with self._translated():
            threads = await channel.guild.active_threads()
        return [thread_view(t) for t in threads if t.parent_id == channel.id]

    async def fetch_archived_threads(
        self, channel_id: str, limit: int
    ) -> list[ThreadView]:
        channel = await self._get_channel(channel_id)
        if not isinstance(channel, (discord.ForumChannel, discord.TextChannel)):
            return []
        with self._translated():
            threads = [t async for t in channel.archived_threads(limit=limit)]
        logger.debug(
            "Fetched %d archived thread(s) from channel %s",
            len(threads),
            channel_id,
        )
        return [thread_view(t) for t in threads]
