"""Thread state resolution.

Determines whether a thread has already been mirrored by scanning its
most recent messages for a confirmation the bridge itself posted, and
recovers the fragment id from it.

The scan is bounded by the lookback limit: a thread whose confirmation
has been pushed further back than ``lookback_limit`` messages looks
unprocessed and will be mirrored again.  This is a known trade-off of
keeping state in the thread instead of a database; keep the limit high
enough for the forums being tracked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ..core.retry import retry_transient
from ..transport.base import ChatTransport, TransportError, is_transient
from .marker import decode_marker, looks_like_confirmation
from .models import MessageView, ThreadState

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = 50


def resolve_from_messages(
    messages: Iterable[MessageView],
    bot_user_id: str,
    thread_id: str = "unknown",
) -> ThreadState:
    """Classify a thread from an already-fetched page of messages.

    Only messages authored by *bot_user_id* count.  When several
    confirmations exist the most recently created one that carries a
    decodable id wins; distinct ids across confirmations are logged as a
    protocol violation but do not fail resolution.
    """
    confirmations = [
        m
        for m in messages
        if m.author_id == bot_user_id
        and (decode_marker(m.content) or looks_like_confirmation(m.content))
    ]
    if not confirmations:
        return ThreadState(processed=False)

    confirmations.sort(key=lambda m: m.created_at, reverse=True)
    decoded = [
        fid for fid in (decode_marker(m.content) for m in confirmations) if fid
    ]

    if not decoded:
        logger.warning(
            "Thread %s has %d confirmation(s) but no parseable fragment id",
            thread_id,
            len(confirmations),
        )
        return ThreadState(processed=True)

    distinct = set(decoded)
    if len(distinct) > 1:
        logger.warning(
            "Thread %s has %d different fragment ids (%s); using most recent %s",
            thread_id,
            len(distinct),
            ", ".join(sorted(distinct)),
            decoded[0],
        )

    return ThreadState(processed=True, fragment_id=decoded[0])


class ThreadStateResolver:
    """Resolve thread state through a ``ChatTransport``.

    Args:
        transport: Chat transport used to read message history.
        lookback_limit: Default number of recent messages scanned.
        retry_predicate: Decides which fetch failures are retried.
    """

    def __init__(
        self,
        transport: ChatTransport,
        lookback_limit: int = DEFAULT_LOOKBACK,
        retry_predicate: Callable[[BaseException], bool] = is_transient,
    ) -> None:
        self.transport = transport
        self.lookback_limit = lookback_limit
        self.retry_predicate = retry_predicate

    async def resolve(
        self,
        thread_id: str,
        bot_user_id: str | None = None,
        lookback_limit: int | None = None,
    ) -> ThreadState:
        """Resolve one thread.

        Never raises for transport failures: an unreadable history yields
        ``ThreadState(resolved=False)`` which callers treat as a skip.
        """
        limit = lookback_limit or self.lookback_limit
        bot_id = bot_user_id or self.transport.bot_user_id

        try:
            messages = await retry_transient(
                lambda: self.transport.fetch_recent_messages(thread_id, limit),
                context=thread_id,
                predicate=self.retry_predicate,
            )
        except TransportError as exc:
            logger.error(
                "Could not read history of thread %s: %s", thread_id, exc
            )
            return ThreadState(processed=False, resolved=False, error=str(exc))

        state = resolve_from_messages(messages, bot_id, thread_id=thread_id)
        if not state.processed and len(messages) >= limit:
            logger.debug(
                "Thread %s: no confirmation within the last %d messages",
                thread_id,
                limit,
            )
        return state
