"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_result`` -- sweep summary for commands and the CLI.
- ``format_thread_result`` -- single-thread sync outcome.
- ``format_tracked_channels`` -- listing of tracked channels.
- ``result_to_json`` -- structured dict for ``--json`` output.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from .models import SyncOutcome

if TYPE_CHECKING:
    from .models import SyncResult, ThreadSyncResult

MAX_REPORTED_ERRORS = 3

# ------------------------------------------------------------------
# Sweep summary
# ------------------------------------------------------------------


def format_sync_result(
    result: SyncResult,
    scope: str = "All tracked channels",
    max_errors: int = MAX_REPORTED_ERRORS,
) -> str:
    """Format a sweep result as human-readable text.

    Only the first *max_errors* errors are listed; the rest are
    summarised by count.

    Args:
        result: The aggregated sweep result.
        scope: Label describing what was swept.
        max_errors: Number of errors listed individually.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    status = "⚠️" if result.failed_threads > 0 else "✅"
    title = "Sync Preview" if result.dry_run else "Sync Complete"
    lines.append(f"{status} **{title}**")
    lines.append("")

    would_be = " (would be)" if result.dry_run else ""
    lines.append(f"📊 **Results for {scope}**")
    lines.append(f"• Scanned: {result.scanned_threads} threads")
    lines.append(f"• Unprocessed: {result.unprocessed_threads} threads")
    lines.append(f"• Processed: {result.processed_threads} threads{would_be}")
    lines.append(f"• Skipped: {result.skipped_threads} threads (already synced)")
    lines.append(f"• Failed: {result.failed_threads} threads")

    if result.errors:
        lines.append("")
        lines.append("**Errors:**")
        for err in result.errors[:max_errors]:
            lines.append(f"• Thread `{err.thread_id}`: {err.error}")
        remaining = len(result.errors) - max_errors
        if remaining > 0:
            lines.append(
                f"_...and {remaining} more errors. Check logs for details._"
            )

    if result.dry_run:
        lines.append("")
        lines.append(
            '_This was a dry run. Use "dry_run: false" to actually process threads._'
        )

    return "\n".join(lines)


# ------------------------------------------------------------------
# Single thread
# ------------------------------------------------------------------

_THREAD_MESSAGES = {
    SyncOutcome.CREATED: "✅ Sync complete! Check the thread for the registration message.",
    SyncOutcome.UPDATED: "✅ Fragment updated.",
    SyncOutcome.SKIPPED_ALREADY_PROCESSED: (
        "ℹ️ Thread is already registered. Use `force: true` to reprocess."
    ),
    SyncOutcome.SKIPPED_NO_CHANGES: "ℹ️ Nothing to sync.",
    SyncOutcome.SKIPPED_UNPROCESSED: "ℹ️ Thread has not been registered yet.",
    SyncOutcome.SKIPPED_UNRESOLVED: (
        "⚠️ Could not read the thread history. Check the bot's permissions."
    ),
    SyncOutcome.IGNORED: "⚠️ Thread is not in a tracked forum channel.",
}


def format_thread_result(result: ThreadSyncResult) -> str:
    """Format the outcome of syncing one thread."""
    if result.outcome is SyncOutcome.FAILED:
        lines = [
            "❌ **Failed to sync thread**",
            "",
            f"📝 Thread ID: `{result.thread_id}`",
        ]
        if result.error:
            lines.append(f"Reason: {result.error}")
        lines.append("")
        lines.append("Check bot logs for details.")
        return "\n".join(lines)

    message = _THREAD_MESSAGES[result.outcome]
    if result.outcome is SyncOutcome.IGNORED and result.detail:
        message = f"⚠️ Not synced: {result.detail}."
    if result.fragment_id and result.outcome is not SyncOutcome.CREATED:
        message += f"\n📝 Fragment: `{result.fragment_id}`"
    return message


# ------------------------------------------------------------------
# Tracked channels
# ------------------------------------------------------------------


def format_tracked_channels(
    entries: Iterable[tuple[str, str | None, str]],
) -> str:
    """Format tracked channels as ``(channel_id, name, fragment_type)``.

    *name* is ``None`` when the channel could not be fetched.
    """
    entries = list(entries)
    if not entries:
        return "⚠️ No forums are configured for tracking."

    lines = [f"📋 **Configured Forums** ({len(entries)})", ""]
    lines.append("These forums are tracked and can be synced:")
    lines.append("")
    for channel_id, name, fragment_type in entries:
        if name:
            lines.append(f"• **{name}**")
            lines.append(f"  ├─ Forum ID: `{channel_id}`")
        else:
            lines.append(f"• Forum ID: `{channel_id}`")
        lines.append(f"  └─ Fragment Type: `{fragment_type}`")
        lines.append("")
    lines.append("_Only these forums will be synced. Other forums are ignored._")
    return "\n".join(lines)


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    """Convert a sweep result to a structured dict for JSON serialisation."""
    return {
        "dry_run": result.dry_run,
        "counts": {
            "scanned": result.scanned_threads,
            "unprocessed": result.unprocessed_threads,
            "processed": result.processed_threads,
            "skipped": result.skipped_threads,
            "failed": result.failed_threads,
        },
        "errors": [
            {"thread_id": e.thread_id, "error": e.error} for e in result.errors
        ],
    }
