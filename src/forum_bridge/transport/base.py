"""Chat transport contract.

The sync engine talks to the chat platform only through ``ChatTransport``.
Implementations return the bridge's own view models and raise
``TransportError`` with a platform-neutral ``TransportErrorKind`` so that
retry decisions never depend on a platform's numeric error codes.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from ..sync.models import ChannelView, MessageView, ThreadView


class TransportErrorKind(str, Enum):
    """Classification of transport failures."""

    NOT_YET_VISIBLE = "not_yet_visible"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    OTHER = "other"


class TransportError(Exception):
    """A chat platform call failed.

    Attributes:
        kind: Platform-neutral classification.
        message: Description of the failure.
        code: Platform-specific error code, when one was reported.
    """

    def __init__(
        self,
        kind: TransportErrorKind,
        message: str,
        code: int | None = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return f"{self.kind.value}: {self.message}"
        return f"{self.kind.value} ({self.code}): {self.message}"


def is_transient(exc: BaseException) -> bool:
    """Default retry predicate: only "resource not visible yet" failures."""
    return (
        isinstance(exc, TransportError)
        and exc.kind is TransportErrorKind.NOT_YET_VISIBLE
    )


class ChatTransport(Protocol):
    """Operations the sync engine needs from the chat platform.

    All identifiers are strings.  Fetch methods return ``None`` when the
    target does not exist or is not of the requested type; every other
    failure raises ``TransportError``.
    """

    @property
    def bot_user_id(self) -> str:
        """Identifier of the bridge's own account."""
        ...

    async def fetch_channel(self, channel_id: str) -> ChannelView | None:
        ...

    async def fetch_thread(self, thread_id: str) -> ThreadView | None:
        ...

    async def fetch_recent_messages(
        self, thread_id: str, limit: int
    ) -> list[MessageView]:
        """Return up to *limit* most recent messages, newest first."""
        ...

    async def fetch_starter_message(
        self, thread_id: str
    ) -> MessageView | None:
        ...

    async def fetch_active_threads(
        self, channel_id: str
    ) -> list[ThreadView]:
        ...

    async def fetch_archived_threads(
        self, channel_id: str, limit: int
    ) -> list[ThreadView]:
        ...

    async def post_message(self, thread_id: str, text: str) -> None:
        ...
