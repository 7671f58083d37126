"""Backoff retry for eventually-consistent chat platform reads.

Some resources (notably a forum thread's starter message) are not
fetchable for a short while after the event announcing them.  Calls that
fail with an error the predicate classifies as transient are retried on a
fixed schedule; everything else fails fast.  Knowledge-base calls are
never routed through here: creates are not idempotent.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from ..transport.base import is_transient

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_DELAYS: tuple[float, ...] = (0.5, 1.0, 2.0)
DEFAULT_ATTEMPTS = 3


async def retry_transient(
    call: Callable[[], Awaitable[T]],
    *,
    context: str = "unknown",
    predicate: Callable[[BaseException], bool] = is_transient,
    attempts: int = DEFAULT_ATTEMPTS,
    delays: Sequence[float] = DEFAULT_DELAYS,
) -> T:
    """Await ``call()`` up to *attempts* times.

    Args:
        call: Zero-argument factory producing a fresh awaitable per attempt.
        context: Identifier included in log lines (e.g. thread id).
        predicate: Decides whether an exception is worth retrying.
        attempts: Total attempts, including the first.
        delays: Sleep before retry *n* is ``delays[n]`` (last value reused).

    Returns:
        The first successful result.

    Raises:
        The last exception when attempts are exhausted, or the first
        exception the predicate rejects.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(attempts):
        try:
            result = await call()
        except Exception as exc:
            is_last = attempt == attempts - 1
            if is_last or not predicate(exc):
                if attempt > 0:
                    logger.error(
                        "Call for %s failed after %d attempts: %s",
                        context,
                        attempt + 1,
                        exc,
                    )
                raise
            delay = delays[min(attempt, len(delays) - 1)] if delays else 0
            logger.warning(
                "Call for %s failed (attempt %d), retrying in %.1fs: %s",
                context,
                attempt + 1,
                delay,
                exc,
            )
            await asyncio.sleep(delay)
            continue

        if attempt > 0:
            logger.info(
                "Call for %s succeeded after %d attempts",
                context,
                attempt + 1,
            )
        return result

    raise AssertionError("unreachable")
