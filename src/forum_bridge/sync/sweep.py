"""Reconciliation sweep.

Finds threads in tracked channels that were never mirrored (for example
because the bridge was offline when they were created) and drives them
through the orchestrator's create path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta, timezone

from ..transport.base import ChatTransport, TransportError
from .models import (
    SweepOptions,
    SyncOutcome,
    SyncResult,
    ThreadView,
    TrackedChannels,
)
from .orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_results(results: Iterable[SyncResult]) -> SyncResult:
    """Sum per-channel results field by field."""
    total = SyncResult()
    for result in results:
        total = total + result
    return total


class ReconciliationSweep:
    """Bulk catch-up pass over tracked channels.

    Args:
        transport: Chat transport used to list threads.
        orchestrator: Orchestrator providing resolve and create.
        channels: Tracked channel routing table.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        transport: ChatTransport,
        orchestrator: SyncOrchestrator,
        channels: TrackedChannels,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.transport = transport
        self.orchestrator = orchestrator
        self.channels = channels
        self.clock = clock or _utcnow

    async def sweep_all(
        self, options: SweepOptions, channel_id: str | None = None
    ) -> SyncResult:
        """Sweep every tracked channel, or only *channel_id*.

        An untracked *channel_id* yields an empty result with one error.
        """
        if channel_id is not None:
            if not self.channels.is_tracked(channel_id):
                result = SyncResult(dry_run=options.dry_run)
                result.record_error(channel_id, "Channel is not tracked")
                return result
            targets = [channel_id]
        else:
            targets = list(self.channels)

        logger.info(
            "Sweeping %d channel(s): max_age=%dh limit=%d dry_run=%s",
            len(targets),
            options.max_age_hours,
            options.limit,
            options.dry_run,
        )
        results = [await self.sweep_channel(cid, options) for cid in targets]
        total = merge_results(results)
        total.dry_run = options.dry_run
        logger.info(
            "Sweep finished: scanned=%d unprocessed=%d processed=%d "
            "skipped=%d failed=%d",
            total.scanned_threads,
            total.unprocessed_threads,
            total.processed_threads,
            total.skipped_threads,
            total.failed_threads,
        )
        return total

    async def sweep_channel(
        self, channel_id: str, options: SweepOptions
    ) -> SyncResult:
        """Sweep one channel.

        Failures for individual threads are recorded in the result and
        never abort the remaining threads.
        """
        result = SyncResult(dry_run=options.dry_run)
        try:
            threads = await self._list_threads(channel_id, options.limit)
        except TransportError as exc:
            logger.error("Could not list threads of channel %s: %s", channel_id, exc)
            result.record_error(channel_id, f"Could not list threads: {exc}")
            return result

        cutoff = self.clock() - timedelta(hours=options.max_age_hours)
        recent = [t for t in threads if t.created_at and t.created_at >= cutoff]
        logger.debug(
            "Channel %s: %d thread(s), %d inside the age window",
            channel_id,
            len(threads),
            len(recent),
        )

        for thread in recent:
            result.scanned_threads += 1
            try:
                await self._sweep_thread(thread, result, options.dry_run)
            except Exception as exc:
                logger.exception("Sweep failed for thread %s", thread.id)
                result.failed_threads += 1
                result.record_error(thread.id, str(exc) or type(exc).__name__)
        return result

    async def _sweep_thread(
        self, thread: ThreadView, result: SyncResult, dry_run: bool
    ) -> None:
        # Same lock as live events: a create in flight finishes first
        async with self.orchestrator.thread_lock(thread.id):
            state = await self.orchestrator.resolve(thread)
            if not state.resolved or state.processed:
                result.skipped_threads += 1
                return

            result.unprocessed_threads += 1
            if dry_run:
                logger.info(
                    "[dry run] would mirror thread %s (%s)", thread.id, thread.name
                )
                return

            outcome = await self.orchestrator.process_thread(
                thread, retroactive=True
            )
        if outcome.outcome is SyncOutcome.CREATED:
            result.processed_threads += 1
        else:
            result.failed_threads += 1
            result.record_error(
                thread.id, outcome.error or outcome.detail or outcome.outcome.value
            )

    async def _list_threads(self, channel_id: str, limit: int) -> list[ThreadView]:
        active = await self.transport.fetch_active_threads(channel_id)
        archived = await self.transport.fetch_archived_threads(channel_id, limit)
        seen: dict[str, ThreadView] = {}
        for thread in [*active, *archived]:
            seen.setdefault(thread.id, thread)
        return list(seen.values())
