"""Forum thread to knowledge-base sync engine.

Mirrors threads from tracked forum channels into knowledge-base
fragments without a database of its own.

Architecture
------------
Sync state lives in the threads themselves: after a fragment is
created the bridge posts a confirmation into the thread that embeds the
fragment id (the *marker*).  Every later decision re-reads the thread's
recent history to recover that state, so restarts and out-of-order
events need no bookkeeping.

Modules:

- ``marker``        -- encode/decode the fragment id marker.
- ``resolver``      -- ``ThreadStateResolver``: recover processed state.
- ``changes``       -- ``detect_changes``: compare thread snapshots.
- ``conversation``  -- render a thread's human messages as one document.
- ``formatting``    -- fragment bodies and generated tags.
- ``orchestrator``  -- ``SyncOrchestrator``: per-thread state machine.
- ``sweep``         -- ``ReconciliationSweep``: bulk catch-up pass.
- ``models``        -- views, results and settings.
- ``reporter``      -- human-readable and JSON report formatting.

Usage example
-------------
::

    from forum_bridge.sync import (
        ReconciliationSweep,
        SweepOptions,
        SyncOrchestrator,
        format_sync_result,
    )

    orchestrator = SyncOrchestrator(transport, client, channels, settings)
    sweep = ReconciliationSweep(transport, orchestrator, channels)

    preview = await sweep.sweep_all(SweepOptions(dry_run=True))
    print(format_sync_result(preview))
"""

from .changes import detect_changes
from .marker import decode_marker, encode_marker
from .models import (
    ChannelKind,
    ChannelView,
    MessageView,
    SweepOptions,
    SyncOutcome,
    SyncResult,
    SyncSettings,
    ThreadSnapshot,
    ThreadState,
    ThreadSyncResult,
    ThreadView,
    TrackedChannels,
)
from .orchestrator import SyncOrchestrator
from .reporter import (
    format_sync_result,
    format_thread_result,
    format_tracked_channels,
    result_to_json,
)
from .resolver import ThreadStateResolver
from .sweep import ReconciliationSweep, merge_results

__all__ = [
    "ChannelKind",
    "ChannelView",
    "MessageView",
    "ReconciliationSweep",
    "SweepOptions",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncResult",
    "SyncSettings",
    "ThreadSnapshot",
    "ThreadState",
    "ThreadStateResolver",
    "ThreadSyncResult",
    "ThreadView",
    "TrackedChannels",
    "decode_marker",
    "detect_changes",
    "encode_marker",
    "format_sync_result",
    "format_thread_result",
    "format_tracked_channels",
    "merge_results",
    "result_to_json",
]
