"""Moderator slash commands.

``/sync-forum``, ``/sync-all-tracked`` and ``/list-tracked``.  All are
guild-only, need Manage Messages and reply ephemerally.  The command
bodies live on ``CommandService`` so they can be exercised without a
gateway connection.
"""

import logging
from typing import Optional

import discord
from discord import app_commands

from ..sync.models import SweepOptions, TrackedChannels
from ..sync.orchestrator import SyncOrchestrator
from ..sync.reporter import (
    format_sync_result,
    format_thread_result,
    format_tracked_channels,
)
from ..sync.sweep import ReconciliationSweep
from ..transport.base import ChatTransport, TransportError
from ..validators import validate_snowflake
from .errors import build_error_message, describe_exception

logger = logging.getLogger(__name__)

# Discord rejects message content above this length
MAX_REPLY_LENGTH = 2000


def clip(text: str, limit: int = MAX_REPLY_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


class CommandService:
    """Command behaviour independent of the interaction plumbing."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        sweep: ReconciliationSweep,
        transport: ChatTransport,
        channels: TrackedChannels,
    ) -> None:
        self.orchestrator = orchestrator
        self.sweep = sweep
        self.transport = transport
        self.channels = channels

    async def sync_forum(
        self,
        thread_id: Optional[str],
        current_thread_id: Optional[str] = None,
        force: bool = False,
    ) -> str:
        """Sync one thread, defaulting to the thread the command ran in."""
        if not thread_id:
            if current_thread_id is None:
                return (
                    "❌ Please provide a thread_id or run this command "
                    "inside a forum thread."
                )
            thread_id = current_thread_id
            logger.info("Auto-detected thread %s from current channel", thread_id)

        ok, msg = validate_snowflake(thread_id.strip(), "Thread id")
        if not ok:
            return build_error_message(
                "validation_error", msg, "Copy the thread id with Developer Mode enabled."
            )

        result = await self.orchestrator.sync_thread(thread_id.strip(), force=force)
        return format_thread_result(result)

    async def sync_all_tracked(
        self,
        forum_id: Optional[str] = None,
        max_age_hours: int = 24,
        limit: int = 50,
        dry_run: bool = False,
    ) -> str:
        """Sweep one tracked forum, or all of them."""
        options = SweepOptions(
            max_age_hours=max_age_hours, limit=limit, dry_run=dry_run
        )
        if forum_id:
            forum_id = forum_id.strip()
            if not self.channels.is_tracked(forum_id):
                return build_error_message(
                    "not_found",
                    f"Forum {forum_id} is not tracked",
                    "Use /list-tracked to see the configured forums.",
                )
            scope = f"Forum `{forum_id}`"
        else:
            scope = "All configured forums"

        result = await self.sweep.sweep_all(options, channel_id=forum_id)
        return format_sync_result(result, scope)

    async def list_tracked(self) -> str:
        """List tracked forums with names fetched best-effort."""
        entries = []
        for channel_id, fragment_type in self.channels.items():
            name = None
            try:
                channel = await self.transport.fetch_channel(channel_id)
            except TransportError as exc:
                logger.debug("Could not fetch channel %s: %s", channel_id, exc)
            else:
                if channel is not None:
                    name = channel.name
            entries.append((channel_id, name, fragment_type))
        return format_tracked_channels(entries)


async def _respond(interaction: discord.Interaction, content: str) -> None:
    content = clip(content)
    if interaction.response.is_done():
        await interaction.followup.send(content, ephemeral=True)
    else:
        await interaction.response.send_message(content, ephemeral=True)


async def _fail(interaction: discord.Interaction, name: str, exc: Exception) -> None:
    logger.exception(
        "Error handling /%s for user %s", name, interaction.user.id
    )
    await _respond(interaction, describe_exception(exc))


def register_commands(
    tree: app_commands.CommandTree, service: CommandService
) -> None:
    """Add the moderator commands to *tree*."""

    @tree.command(
        name="sync-forum",
        description="Register a forum thread in the knowledge base",
    )
    @app_commands.describe(
        thread_id="Thread to sync (defaults to the current thread)",
        force="Create a new fragment even if the thread is already registered",
    )
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.guild_only()
    async def sync_forum(
        interaction: discord.Interaction,
        thread_id: Optional[str] = None,
        force: bool = False,
    ) -> None:
        current = interaction.channel
        current_id = str(current.id) if isinstance(current, discord.Thread) else None
        try:
            await interaction.response.defer(ephemeral=True, thinking=True)
            logger.info(
                "/sync-forum by %s: thread=%s force=%s",
                interaction.user.id,
                thread_id or current_id,
                force,
            )
            reply = await service.sync_forum(thread_id, current_id, force)
        except Exception as exc:
            await _fail(interaction, "sync-forum", exc)
            return
        await _respond(interaction, reply)

    @tree.command(
        name="sync-all-tracked",
        description="Register recent unprocessed threads from tracked forums",
    )
    @app_commands.describe(
        forum_id="Only sweep this forum (defaults to all tracked forums)",
        max_age_hours="Only threads created within this many hours (default 24)",
        limit="Archived threads fetched per forum (default 50)",
        dry_run="Report what would be synced without creating fragments",
    )
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.guild_only()
    async def sync_all_tracked(
        interaction: discord.Interaction,
        forum_id: Optional[str] = None,
        max_age_hours: app_commands.Range[int, 1, 720] = 24,
        limit: app_commands.Range[int, 1, 200] = 50,
        dry_run: bool = False,
    ) -> None:
        try:
            await interaction.response.defer(ephemeral=True, thinking=True)
            logger.info(
                "/sync-all-tracked by %s: forum=%s max_age=%d limit=%d dry_run=%s",
                interaction.user.id,
                forum_id or "all",
                max_age_hours,
                limit,
                dry_run,
            )
            reply = await service.sync_all_tracked(
                forum_id, max_age_hours, limit, dry_run
            )
        except Exception as exc:
            await _fail(interaction, "sync-all-tracked", exc)
            return
        await _respond(interaction, reply)

    @tree.command(
        name="list-tracked",
        description="List forums mirrored to the knowledge base",
    )
    @app_commands.default_permissions(manage_messages=True)
    @app_commands.guild_only()
    async def list_tracked(interaction: discord.Interaction) -> None:
        try:
            reply = await service.list_tracked()
        except Exception as exc:
            await _fail(interaction, "list-tracked", exc)
            return
        await _respond(interaction, reply)
