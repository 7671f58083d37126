"""Per-thread sync state machine.

``SyncOrchestrator`` decides, for one thread, whether to create a
fragment, update it, or do nothing, then talks to the knowledge base and
records the result back into the thread.  It is shared by live event
handling and the reconciliation sweep.

Flow for every trigger:

1. Filter: the thread must live in a tracked channel.
2. Lock: triggers for the same thread run one at a time.
3. Resolve: recover processed state and fragment id from the thread.
4. Unprocessed threads go to Create (from an update or reply only when
   late create is enabled).  Processed threads go to Update-check
   (thread changed), Reply update (new message) or are skipped (thread
   created).

Create is guarded by steps 2 and 3: a resolve always runs under the
thread's lock, so a second trigger waits for a running create and then
sees its marker.  Updates are full overwrites of the fields they carry
and are safe to repeat.

Errors are handled per thread: transport and knowledge-base failures
become ``FAILED`` results, never exceptions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from ..core.async_utils import run_sync_limited
from ..core.client import KnowledgeBaseClient, KnowledgeBaseError
from ..core.models import CreateFragmentRequest, UpdateFragmentRequest
from ..core.retry import retry_transient
from ..transport.base import ChatTransport, TransportError
from .changes import TAGS, TITLE, detect_changes
from .conversation import build_conversation
from .formatting import (
    RETROACTIVE_TAG,
    forum_tag_labels,
    format_thread_content,
    format_thread_update,
    generate_tags,
    repository_tag,
)
from .marker import render_confirmation, render_failure_notice
from .models import (
    MessageView,
    SyncOutcome,
    SyncSettings,
    ThreadSnapshot,
    ThreadState,
    ThreadSyncResult,
    ThreadView,
    TrackedChannels,
)
from .resolver import ThreadStateResolver

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """Drive create/update/skip decisions for single threads.

    Args:
        transport: Chat transport.
        client: Knowledge-base client (blocking; called off-loop).
        channels: Tracked channel routing table.
        settings: Workspace, repository and lookback settings.
        resolver: Optional resolver override (defaults to one built on
            *transport* with ``settings.resolve_lookback``).
    """

    def __init__(
        self,
        transport: ChatTransport,
        client: KnowledgeBaseClient,
        channels: TrackedChannels,
        settings: SyncSettings,
        resolver: ThreadStateResolver | None = None,
    ) -> None:
        self.transport = transport
        self.client = client
        self.channels = channels
        self.settings = settings
        self.resolver = resolver or ThreadStateResolver(
            transport, settings.resolve_lookback
        )
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def thread_lock(self, thread_id: str) -> AsyncIterator[None]:
        """Serialise resolve-and-act sequences for one thread.

        Locks exist only while some trigger holds or waits for them, so
        the table does not grow with the number of threads ever seen.
        Not reentrant.
        """
        lock = self._locks.setdefault(thread_id, asyncio.Lock())
        self._lock_users[thread_id] = self._lock_users.get(thread_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[thread_id] -= 1
            if not self._lock_users[thread_id]:
                del self._lock_users[thread_id]
                del self._locks[thread_id]

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def handle_thread_created(
        self, thread: ThreadView
    ) -> ThreadSyncResult:
        """A new thread appeared.  Create its fragment unless one exists."""
        fragment_type = self._fragment_type(thread)
        if fragment_type is None:
            return self._ignored(thread, "channel is not tracked")

        logger.info(
            "New forum thread %s (%s) in %s",
            thread.id,
            thread.name,
            thread.parent_name or thread.parent_id,
        )
        async with self.thread_lock(thread.id):
            state = await self.resolve(thread)
            if not state.resolved:
                return self._unresolved(thread, state)
            if state.processed:
                logger.info(
                    "Thread %s already mirrored as %s, not creating again",
                    thread.id,
                    state.fragment_id,
                )
                return ThreadSyncResult(
                    thread_id=thread.id,
                    outcome=SyncOutcome.SKIPPED_ALREADY_PROCESSED,
                    fragment_id=state.fragment_id,
                )
            return await self._create(thread, fragment_type, retroactive=False)

    async def handle_thread_updated(
        self, before: ThreadSnapshot, after: ThreadView
    ) -> ThreadSyncResult:
        """A thread's name or tags may have changed."""
        fragment_type = self._fragment_type(after)
        if fragment_type is None:
            return self._ignored(after, "channel is not tracked")

        changes = detect_changes(before, after.snapshot())
        if not changes:
            logger.debug("Thread %s: no mirrored changes", after.id)
            return ThreadSyncResult(
                thread_id=after.id, outcome=SyncOutcome.SKIPPED_NO_CHANGES
            )

        async with self.thread_lock(after.id):
            state = await self.resolve(after)
            if not state.resolved:
                return self._unresolved(after, state)
            if not state.processed:
                return await self._late_create(after, fragment_type)
            if state.fragment_id is None:
                return self._unparseable(after)

            return await self._update_properties(
                after, state.fragment_id, changes
            )

    async def handle_message_posted(
        self, thread: ThreadView, message: MessageView
    ) -> ThreadSyncResult:
        """A message was posted in a thread.  Rebuild the fragment body."""
        if message.author_is_bot or message.author_id == self.transport.bot_user_id:
            return self._ignored(thread, "message authored by a bot")
        # Forum starter posts share the thread id and are handled by create
        if message.id == thread.id:
            return self._ignored(thread, "starter message")

        fragment_type = self._fragment_type(thread)
        if fragment_type is None:
            return self._ignored(thread, "channel is not tracked")

        logger.debug(
            "New message %s by %s in thread %s",
            message.id,
            message.author_name,
            thread.id,
        )
        async with self.thread_lock(thread.id):
            state = await self.resolve(thread)
            if not state.resolved:
                return self._unresolved(thread, state)
            if not state.processed:
                return await self._late_create(thread, fragment_type)
            if state.fragment_id is None:
                return self._unparseable(thread)

            return await self._update_conversation(thread, state.fragment_id)

    async def sync_thread(
        self, thread_id: str, force: bool = False
    ) -> ThreadSyncResult:
        """Sync one thread on request.

        Without *force* an already mirrored thread is left alone.  With
        *force* a new fragment is created regardless of existing markers.
        """
        try:
            thread = await self.transport.fetch_thread(thread_id)
        except TransportError as exc:
            logger.error("Could not fetch thread %s: %s", thread_id, exc)
            return ThreadSyncResult(
                thread_id=thread_id,
                outcome=SyncOutcome.FAILED,
                error=f"Could not fetch thread: {exc}",
            )
        if thread is None:
            return ThreadSyncResult(
                thread_id=thread_id,
                outcome=SyncOutcome.IGNORED,
                detail="thread does not exist",
            )
        if self._fragment_type(thread) is None:
            return self._ignored(
                thread, "thread is not in a tracked channel"
            )

        async with self.thread_lock(thread.id):
            if not force:
                state = await self.resolve(thread)
                if not state.resolved:
                    return self._unresolved(thread, state)
                if state.processed:
                    return ThreadSyncResult(
                        thread_id=thread.id,
                        outcome=SyncOutcome.SKIPPED_ALREADY_PROCESSED,
                        fragment_id=state.fragment_id,
                    )
            else:
                logger.info("Force-reprocessing thread %s", thread.id)

            return await self.process_thread(thread)

    async def process_thread(
        self, thread: ThreadView, retroactive: bool = True
    ) -> ThreadSyncResult:
        """Run the create path for a thread already known to need it.

        Callers must hold ``thread_lock(thread.id)`` and have resolved
        the thread under it.
        """
        fragment_type = self._fragment_type(thread)
        if fragment_type is None:
            return self._ignored(thread, "channel is not tracked")
        return await self._create(thread, fragment_type, retroactive)

    async def resolve(self, thread: ThreadView) -> ThreadState:
        return await self.resolver.resolve(
            thread.id,
            self.transport.bot_user_id,
            self.settings.resolve_lookback,
        )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _create(
        self, thread: ThreadView, fragment_type: str, retroactive: bool
    ) -> ThreadSyncResult:
        try:
            starter = await self._fetch_starter(thread)
        except TransportError as exc:
            logger.error(
                "Could not fetch starter message of thread %s: %s",
                thread.id,
                exc,
            )
            await self._post_failure_notice(thread, "starter message unavailable")
            return self._failed(thread, f"Could not fetch starter message: {exc}")
        if starter is None:
            logger.warning("Thread %s has no starter message", thread.id)
            await self._post_failure_notice(thread, "starter message unavailable")
            return self._failed(thread, "Thread has no starter message")

        request = self._build_create_request(
            thread, starter, fragment_type, retroactive
        )
        try:
            created = await run_sync_limited(
                self.client.create_fragment, request
            )
        except KnowledgeBaseError as exc:
            logger.error(
                "Failed to create fragment for thread %s: %s", thread.id, exc
            )
            await self._post_failure_notice(thread)
            return self._failed(thread, f"Fragment create failed: {exc}")

        try:
            confirmation = render_confirmation(
                created.fragment_id, thread.name, retroactive=retroactive
            )
            await retry_transient(
                lambda: self.transport.post_message(thread.id, confirmation),
                context=thread.id,
            )
        except (TransportError, ValueError) as exc:
            # The fragment exists but the thread carries no marker, so the
            # next resolve will see it as unprocessed.
            logger.error(
                "Fragment %s created for thread %s but confirmation was not posted: %s",
                created.fragment_id,
                thread.id,
                exc,
            )
            return ThreadSyncResult(
                thread_id=thread.id,
                outcome=SyncOutcome.FAILED,
                fragment_id=created.fragment_id,
                error=f"Fragment {created.fragment_id} created but marker not posted: {exc}",
            )

        logger.info(
            "Mirrored thread %s as fragment %s", thread.id, created.fragment_id
        )
        return ThreadSyncResult(
            thread_id=thread.id,
            outcome=SyncOutcome.CREATED,
            fragment_id=created.fragment_id,
        )

    async def _late_create(
        self, thread: ThreadView, fragment_type: str
    ) -> ThreadSyncResult:
        """Create for a thread first seen through an update or reply.

        Off by default: only thread creation and explicit syncs create.
        Runs under the thread's lock like every other create.
        """
        if not self.settings.create_on_late_event:
            logger.debug(
                "Thread %s has no confirmation, late create disabled",
                thread.id,
            )
            return ThreadSyncResult(
                thread_id=thread.id,
                outcome=SyncOutcome.SKIPPED_UNPROCESSED,
                detail="thread has not been mirrored yet",
            )
        logger.info(
            "Thread %s changed but was never mirrored, creating now",
            thread.id,
        )
        return await self._create(thread, fragment_type, retroactive=True)

    async def _fetch_starter(self, thread: ThreadView) -> MessageView | None:
        if thread.in_forum:
            return await retry_transient(
                lambda: self.transport.fetch_starter_message(thread.id),
                context=thread.id,
            )
        messages = await retry_transient(
            lambda: self.transport.fetch_recent_messages(
                thread.id, self.settings.conversation_limit
            ),
            context=thread.id,
        )
        bot_id = self.transport.bot_user_id
        human = [
            m for m in messages if not m.author_is_bot and m.author_id != bot_id
        ]
        if not human:
            return None
        return min(human, key=lambda m: m.created_at)

    def _build_create_request(
        self,
        thread: ThreadView,
        starter: MessageView,
        fragment_type: str,
        retroactive: bool,
    ) -> CreateFragmentRequest:
        tags = generate_tags(thread.guild_name, thread.parent_name)
        tags.append(repository_tag(self.settings.repository))
        if retroactive:
            tags.append(RETROACTIVE_TAG)
        return CreateFragmentRequest(
            title=thread.name,
            content=format_thread_content(
                starter.author_name,
                starter.content,
                thread_name=thread.name,
                channel_name=thread.parent_name,
                guild_name=thread.guild_name,
                timestamp=starter.created_at,
            ),
            workspace_id=self.settings.workspace_id,
            fragment_type_id=fragment_type,
            summary=f"Forum post by {starter.author_name}: {thread.name}",
            tags=tags,
            repository=self.settings.repository,
        )

    async def _post_failure_notice(
        self, thread: ThreadView, reason: str | None = None
    ) -> None:
        try:
            await self.transport.post_message(
                thread.id, render_failure_notice(reason)
            )
        except TransportError as exc:
            logger.error(
                "Could not post failure notice to thread %s: %s",
                thread.id,
                exc,
            )

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    async def _update_properties(
        self, thread: ThreadView, fragment_id: str, changes: set[str]
    ) -> ThreadSyncResult:
        title = thread.name if TITLE in changes else None
        tags = None
        if TAGS in changes:
            tags = generate_tags(thread.guild_name, thread.parent_name)
            tags += forum_tag_labels(thread.tags)
            tags.append(repository_tag(self.settings.repository))

        request = UpdateFragmentRequest(
            fragment_id=fragment_id, title=title, tags=tags
        )
        logger.info(
            "Thread %s changed (%s), updating fragment %s",
            thread.id,
            ", ".join(sorted(changes)),
            fragment_id,
        )
        return await self._apply_update(thread, request, sorted(changes))

    async def _update_conversation(
        self, thread: ThreadView, fragment_id: str
    ) -> ThreadSyncResult:
        try:
            conversation = await build_conversation(
                self.transport,
                thread.id,
                self.transport.bot_user_id,
                self.settings.conversation_limit,
            )
        except TransportError as exc:
            logger.error(
                "Could not read conversation of thread %s: %s", thread.id, exc
            )
            return ThreadSyncResult(
                thread_id=thread.id,
                outcome=SyncOutcome.FAILED,
                fragment_id=fragment_id,
                error=f"Could not read conversation: {exc}",
            )
        if conversation is None:
            return ThreadSyncResult(
                thread_id=thread.id,
                outcome=SyncOutcome.SKIPPED_NO_CHANGES,
                fragment_id=fragment_id,
                detail="no human messages to mirror",
            )

        request = UpdateFragmentRequest(
            fragment_id=fragment_id,
            content=format_thread_update(
                conversation,
                thread_name=thread.name,
                channel_name=thread.parent_name,
                guild_name=thread.guild_name,
                updated_at=datetime.now(timezone.utc),
            ),
        )
        logger.info(
            "Thread %s received a reply, rebuilding fragment %s",
            thread.id,
            fragment_id,
        )
        return await self._apply_update(thread, request, ["content"])

    async def _apply_update(
        self,
        thread: ThreadView,
        request: UpdateFragmentRequest,
        changes: list[str],
    ) -> ThreadSyncResult:
        try:
            await run_sync_limited(self.client.update_fragment, request)
        except KnowledgeBaseError as exc:
            logger.error(
                "Failed to update fragment %s for thread %s: %s",
                request.fragment_id,
                thread.id,
                exc,
            )
            return ThreadSyncResult(
                thread_id=thread.id,
                outcome=SyncOutcome.FAILED,
                fragment_id=request.fragment_id,
                changes=changes,
                error=f"Fragment update failed: {exc}",
            )
        return ThreadSyncResult(
            thread_id=thread.id,
            outcome=SyncOutcome.UPDATED,
            fragment_id=request.fragment_id,
            changes=changes,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fragment_type(self, thread: ThreadView) -> str | None:
        return self.channels.fragment_type_for(thread.parent_id)

    @staticmethod
    def _ignored(thread: ThreadView, detail: str) -> ThreadSyncResult:
        logger.debug("Ignoring thread %s: %s", thread.id, detail)
        return ThreadSyncResult(
            thread_id=thread.id, outcome=SyncOutcome.IGNORED, detail=detail
        )

    @staticmethod
    def _unresolved(thread: ThreadView, state: ThreadState) -> ThreadSyncResult:
        return ThreadSyncResult(
            thread_id=thread.id,
            outcome=SyncOutcome.SKIPPED_UNRESOLVED,
            detail="thread history could not be read",
            error=state.error,
        )

    @staticmethod
    def _unparseable(thread: ThreadView) -> ThreadSyncResult:
        return ThreadSyncResult(
            thread_id=thread.id,
            outcome=SyncOutcome.SKIPPED_UNRESOLVED,
            detail="confirmation found but fragment id is unreadable",
        )

    @staticmethod
    def _failed(thread: ThreadView, error: str) -> ThreadSyncResult:
        return ThreadSyncResult(
            thread_id=thread.id, outcome=SyncOutcome.FAILED, error=error
        )
