"""Gateway event handlers.

Translate discord.py events into orchestrator calls.  Each event runs
as its own task; tasks are tracked so shutdown can stop accepting new
events and wait for the ones already running.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

import discord

from ..sync.models import ThreadSnapshot, ThreadSyncResult
from ..sync.orchestrator import SyncOrchestrator
from ..transport.discord import message_view, thread_view

logger = logging.getLogger(__name__)


def thread_snapshot(thread: discord.Thread) -> ThreadSnapshot:
    return ThreadSnapshot(
        name=thread.name,
        tags=frozenset(tag.name for tag in thread.applied_tags),
    )


class EventHandlers:
    """Bridge between gateway events and the sync orchestrator."""

    def __init__(self, orchestrator: SyncOrchestrator) -> None:
        self.orchestrator = orchestrator
        self.accepting = True
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _spawn(
        self, coro: Coroutine[Any, Any, ThreadSyncResult], name: str
    ) -> asyncio.Task | None:
        if not self.accepting:
            coro.close()
            logger.debug("Shutting down, dropped event %s", name)
            return None
        task = asyncio.create_task(self._guarded(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(
        self, coro: Coroutine[Any, Any, ThreadSyncResult], name: str
    ) -> ThreadSyncResult | None:
        try:
            result = await coro
        except Exception:
            logger.exception("Unhandled error in %s", name)
            return None
        if not result.success:
            logger.warning(
                "%s: thread %s failed: %s", name, result.thread_id, result.error
            )
        else:
            logger.debug(
                "%s: thread %s -> %s", name, result.thread_id, result.outcome.value
            )
        return result

    # ------------------------------------------------------------------
    # discord.py events
    # ------------------------------------------------------------------

    async def on_thread_create(self, thread: discord.Thread) -> None:
        self._spawn(
            self.orchestrator.handle_thread_created(thread_view(thread)),
            f"thread_create:{thread.id}",
        )

    async def on_thread_update(
        self, before: discord.Thread, after: discord.Thread
    ) -> None:
        self._spawn(
            self.orchestrator.handle_thread_updated(
                thread_snapshot(before), thread_view(after)
            ),
            f"thread_update:{after.id}",
        )

    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or not isinstance(message.channel, discord.Thread):
            return
        self._spawn(
            self.orchestrator.handle_message_posted(
                thread_view(message.channel), message_view(message)
            ),
            f"message:{message.channel.id}",
        )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def drain(self, timeout: float = 30.0) -> None:
        """Stop accepting events and wait for running ones."""
        self.accepting = False
        pending = list(self._tasks)
        if not pending:
            return
        logger.info("Waiting for %d in-flight sync task(s)", len(pending))
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if still_running:
            logger.warning(
                "%d sync task(s) still running after %.0fs, cancelling",
                len(still_running),
                timeout,
            )
            for task in still_running:
                task.cancel()
