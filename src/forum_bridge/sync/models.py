"""Pydantic models for the thread sync engine.

Defines the data contracts shared by the resolver, orchestrator and sweep:

- ``ChannelView``, ``ThreadView``, ``MessageView``: transient, read-only
  views of platform objects produced by the chat transport.
- ``ThreadSnapshot``: the mutable thread properties compared on update.
- ``ThreadState``: what the resolver recovered from a thread's history.
- ``SyncOutcome`` / ``ThreadSyncResult``: outcome of syncing one thread.
- ``SyncResult``: aggregate counts for one sweep.
- ``SyncSettings``, ``SweepOptions``: tunables.
- ``TrackedChannels``: immutable channel -> fragment type routing table.

Views and per-thread results are frozen.  ``SyncResult`` is a mutable
accumulator that lives for exactly one sweep invocation.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import datetime
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, Field


class ChannelKind(str, Enum):
    """Container type reported by the transport."""

    FORUM = "forum"
    TEXT = "text"
    THREAD = "thread"
    OTHER = "other"


class ChannelView(BaseModel):
    """A channel as seen by the bridge."""

    id: str
    name: str
    kind: ChannelKind
    guild_name: str | None = None

    model_config = {"frozen": True}

    @property
    def is_forum(self) -> bool:
        return self.kind is ChannelKind.FORUM


class ThreadSnapshot(BaseModel):
    """Mutable thread properties compared by the change detector.

    Attributes:
        name: Thread display name.
        tags: Platform classification tag names (unordered).
    """

    name: str | None = None
    tags: frozenset[str] = frozenset()

    model_config = {"frozen": True}


class ThreadView(BaseModel):
    """A thread as seen by the bridge.

    Attributes:
        id: Thread identifier.
        name: Current display name.
        parent_id: Identifier of the containing channel, if known.
        parent_name: Name of the containing channel.
        parent_kind: Type tag of the containing channel.
        guild_name: Name of the server the thread lives in.
        tags: Names of the platform tags applied to the thread.
        created_at: Creation time (timezone-aware).
        archived: Archive flag (observed only).
        locked: Lock flag (observed only).
    """

    id: str
    name: str
    parent_id: str | None = None
    parent_name: str | None = None
    parent_kind: ChannelKind = ChannelKind.OTHER
    guild_name: str | None = None
    tags: tuple[str, ...] = ()
    created_at: datetime | None = None
    archived: bool = False
    locked: bool = False

    model_config = {"frozen": True}

    @property
    def in_forum(self) -> bool:
        return self.parent_kind is ChannelKind.FORUM

    def snapshot(self) -> ThreadSnapshot:
        return ThreadSnapshot(name=self.name, tags=frozenset(self.tags))


class MessageView(BaseModel):
    """A message as seen by the bridge."""

    id: str
    author_id: str
    author_name: str
    author_is_bot: bool = False
    content: str = ""
    created_at: datetime

    model_config = {"frozen": True}


class ThreadState(BaseModel):
    """Result of resolving a thread's mirror state from its history.

    Attributes:
        processed: A bridge confirmation was found within the lookback.
        fragment_id: Identifier decoded from the selected confirmation,
            or ``None`` when unprocessed or the marker is unparseable.
        resolved: ``False`` when the history could not be fetched; callers
            must treat the thread as skipped, never as unprocessed.
        error: Transport error description when ``resolved`` is ``False``.
    """

    processed: bool
    fragment_id: str | None = None
    resolved: bool = True
    error: str | None = None

    model_config = {"frozen": True}


class SyncOutcome(str, Enum):
    """Terminal outcome of syncing one thread."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_ALREADY_PROCESSED = "skipped_already_processed"
    SKIPPED_NO_CHANGES = "skipped_no_changes"
    SKIPPED_UNPROCESSED = "skipped_unprocessed"
    SKIPPED_UNRESOLVED = "skipped_unresolved"
    IGNORED = "ignored"
    FAILED = "failed"


class ThreadSyncResult(BaseModel):
    """Outcome of syncing one thread.

    Attributes:
        thread_id: Thread identifier.
        outcome: What happened.
        fragment_id: Fragment the thread is (now) mirrored to, if known.
        changes: Changed fields applied by an update.
        detail: Short human-readable explanation for skips and ignores.
        error: Error message for ``FAILED`` results.
    """

    thread_id: str
    outcome: SyncOutcome
    fragment_id: str | None = None
    changes: list[str] = []
    detail: str | None = None
    error: str | None = None

    model_config = {"frozen": True}

    @property
    def success(self) -> bool:
        return self.outcome is not SyncOutcome.FAILED


class ThreadError(BaseModel):
    """One failed thread within a sweep."""

    thread_id: str
    error: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Aggregate counts for one reconciliation sweep.

    Attributes:
        scanned_threads: Threads inside the age window.
        unprocessed_threads: Threads without a confirmation marker.
        processed_threads: Unprocessed threads successfully created.
        skipped_threads: Threads already mirrored or unresolvable.
        failed_threads: Unprocessed threads whose create failed.
        errors: ``(thread_id, message)`` pairs for failures.
        dry_run: Whether creates were suppressed.
    """

    scanned_threads: int = 0
    unprocessed_threads: int = 0
    processed_threads: int = 0
    skipped_threads: int = 0
    failed_threads: int = 0
    errors: list[ThreadError] = []
    dry_run: bool = False

    def record_error(self, thread_id: str, error: str) -> None:
        self.errors.append(ThreadError(thread_id=thread_id, error=error))

    def __add__(self, other: SyncResult) -> SyncResult:
        return SyncResult(
            scanned_threads=self.scanned_threads + other.scanned_threads,
            unprocessed_threads=self.unprocessed_threads
            + other.unprocessed_threads,
            processed_threads=self.processed_threads
            + other.processed_threads,
            skipped_threads=self.skipped_threads + other.skipped_threads,
            failed_threads=self.failed_threads + other.failed_threads,
            errors=[*self.errors, *other.errors],
            dry_run=self.dry_run or other.dry_run,
        )


class SyncSettings(BaseModel):
    """Orchestrator tunables derived from configuration.

    Attributes:
        workspace_id: Knowledge-base workspace receiving fragments.
        repository: Repository label attached to every fragment.
        resolve_lookback: Messages scanned when looking for a marker.
            Threads whose marker is older than this many messages are
            indistinguishable from unprocessed ones.
        conversation_limit: Messages included in a conversation rebuild.
        create_on_late_event: Create fragments for unprocessed threads
            when an update or reply event arrives for them.
    """

    workspace_id: str
    repository: str = "forum-bridge"
    resolve_lookback: int = Field(default=50, ge=1, le=100)
    conversation_limit: int = Field(default=100, ge=1, le=100)
    create_on_late_event: bool = False

    model_config = {"frozen": True}


class SweepOptions(BaseModel):
    """Options for one reconciliation sweep."""

    max_age_hours: int = Field(default=24, ge=1, le=720)
    limit: int = Field(default=50, ge=1, le=200)
    dry_run: bool = False

    model_config = {"frozen": True}


class TrackedChannels(Mapping[str, str]):
    """Immutable channel id -> fragment type id routing table.

    Channels absent from the table are never processed.
    """

    def __init__(self, mapping: Mapping[str, str]):
        self._mapping = MappingProxyType(dict(mapping))

    def __getitem__(self, channel_id: str) -> str:
        return self._mapping[channel_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def __repr__(self) -> str:
        return f"TrackedChannels({dict(self._mapping)!r})"

    def is_tracked(self, channel_id: str | None) -> bool:
        return channel_id is not None and channel_id in self._mapping

    def fragment_type_for(self, channel_id: str | None) -> str | None:
        if channel_id is None:
            return None
        return self._mapping.get(channel_id)
