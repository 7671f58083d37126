"""Shared pytest fixtures for forum-bridge tests."""

import time
from collections import defaultdict
from datetime import datetime, timedelta, timezone

import pytest

from forum_bridge.config import Config
from forum_bridge.core.client import KnowledgeBaseError
from forum_bridge.core.models import (
    CreateFragmentRequest,
    FragmentCreated,
    UpdateFragmentRequest,
)
from forum_bridge.sync.models import (
    ChannelKind,
    ChannelView,
    MessageView,
    SyncSettings,
    ThreadView,
    TrackedChannels,
)
from forum_bridge.sync.orchestrator import SyncOrchestrator
from forum_bridge.transport.base import TransportError, TransportErrorKind

BOT_ID = "900000000000000001"
HUMAN_ID = "300000000000000001"
FORUM_ID = "100000000000000001"
OTHER_FORUM_ID = "100000000000000002"
TEXT_CHANNEL_ID = "100000000000000009"
FRAGMENT_TYPE = "11111111-2222-4333-8444-555555555555"
OTHER_FRAGMENT_TYPE = "66666666-7777-4888-8999-000000000000"
WORKSPACE_ID = "aaaaaaaa-bbbb-4ccc-8ddd-eeeeeeeeeeee"
BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_thread(
    thread_id: str = "200000000000000001",
    name: str = "App crashes on start",
    parent_id: str = FORUM_ID,
    parent_kind: ChannelKind = ChannelKind.FORUM,
    tags: tuple[str, ...] = (),
    created_at: datetime = BASE_TIME,
    **kwargs,
) -> ThreadView:
    return ThreadView(
        id=thread_id,
        name=name,
        parent_id=parent_id,
        parent_name=kwargs.pop("parent_name", "Help Desk"),
        parent_kind=parent_kind,
        guild_name=kwargs.pop("guild_name", "Acme Community"),
        tags=tags,
        created_at=created_at,
        **kwargs,
    )


def make_message(
    message_id: str,
    content: str,
    author_id: str = HUMAN_ID,
    author_name: str = "alice",
    created_at: datetime = BASE_TIME,
    author_is_bot: bool = False,
) -> MessageView:
    return MessageView(
        id=message_id,
        author_id=author_id,
        author_name=author_name,
        author_is_bot=author_is_bot,
        content=content,
        created_at=created_at,
    )


class FakeTransport:
    """In-memory ``ChatTransport``.

    Posted messages are appended to the thread's history so a later
    resolve sees them, like the real platform.
    """

    def __init__(self, bot_user_id: str = BOT_ID):
        self._bot_user_id = bot_user_id
        self.channels: dict[str, ChannelView] = {}
        self.threads: dict[str, ThreadView] = {}
        self.messages: dict[str, list[MessageView]] = defaultdict(list)
        self.archived: dict[str, list[str]] = defaultdict(list)
        self.posted: list[tuple[str, str]] = []
        self.failures: dict[str, TransportError] = {}
        self.starter_not_visible = 0
        self.history_calls: list[tuple[str, int]] = []
        self._seq = 0

    @property
    def bot_user_id(self) -> str:
        return self._bot_user_id

    # -- setup helpers -------------------------------------------------

    def add_channel(self, channel_id, name="Help Desk", kind=ChannelKind.FORUM):
        self.channels[channel_id] = ChannelView(
            id=channel_id, name=name, kind=kind, guild_name="Acme Community"
        )

    def add_thread(self, thread: ThreadView, starter: str | None = None, archived=False):
        self.threads[thread.id] = thread
        if starter is not None:
            self.messages[thread.id].append(
                make_message(thread.id, starter, created_at=thread.created_at or BASE_TIME)
            )
        if archived:
            self.archived[thread.parent_id].append(thread.id)
        return thread

    def add_message(self, thread_id: str, message: MessageView) -> None:
        self.messages[thread_id].append(message)

    def fail(self, method: str, kind=TransportErrorKind.FORBIDDEN, code=None):
        self.failures[method] = TransportError(kind, f"{method} failed", code=code)

    def _check(self, method: str) -> None:
        if method in self.failures:
            raise self.failures[method]

    # -- ChatTransport -------------------------------------------------

    async def fetch_channel(self, channel_id):
        self._check("fetch_channel")
        return self.channels.get(channel_id)

    async def fetch_thread(self, thread_id):
        self._check("fetch_thread")
        return self.threads.get(thread_id)

    async def fetch_recent_messages(self, thread_id, limit):
        self._check("fetch_recent_messages")
        self.history_calls.append((thread_id, limit))
        ordered = sorted(
            self.messages[thread_id], key=lambda m: m.created_at, reverse=True
        )
        return ordered[:limit]

    async def fetch_starter_message(self, thread_id):
        self._check("fetch_starter_message")
        if self.starter_not_visible > 0:
            self.starter_not_visible -= 1
            raise TransportError(
                TransportErrorKind.NOT_YET_VISIBLE, "Unknown Message", code=10008
            )
        for message in self.messages[thread_id]:
            if message.id == thread_id:
                return message
        return None

    async def fetch_active_threads(self, channel_id):
        self._check("fetch_active_threads")
        archived = set(self.archived[channel_id])
        return [
            t
            for t in self.threads.values()
            if t.parent_id == channel_id and t.id not in archived
        ]

    async def fetch_archived_threads(self, channel_id, limit):
        self._check("fetch_archived_threads")
        return [self.threads[tid] for tid in self.archived[channel_id][:limit]]

    async def post_message(self, thread_id, text):
        self._check("post_message")
        self._seq += 1
        latest = max(
            (m.created_at for m in self.messages[thread_id]), default=BASE_TIME
        )
        self.messages[thread_id].append(
            make_message(
                f"8{self._seq:017d}",
                text,
                author_id=self._bot_user_id,
                author_name="Forum Bridge",
                created_at=latest + timedelta(seconds=1),
                author_is_bot=True,
            )
        )
        self.posted.append((thread_id, text))


class FakeKnowledgeBaseClient:
    """Records requests; returns sequential fragment ids."""

    def __init__(self):
        self.created: list[CreateFragmentRequest] = []
        self.updated: list[UpdateFragmentRequest] = []
        self.create_error: KnowledgeBaseError | None = None
        self.update_error: KnowledgeBaseError | None = None
        # Seconds each create blocks its worker thread
        self.create_delay = 0.0

    def create_fragment(self, request: CreateFragmentRequest) -> FragmentCreated:
        if self.create_delay:
            time.sleep(self.create_delay)
        if self.create_error is not None:
            raise self.create_error
        self.created.append(request)
        fragment_id = f"{len(self.created):08x}-0000-4000-8000-000000000000"
        return FragmentCreated(fragment_id=fragment_id, title=request.title)

    def update_fragment(self, request: UpdateFragmentRequest) -> None:
        if self.update_error is not None:
            raise self.update_error
        self.updated.append(request)


@pytest.fixture(autouse=True)
def _no_retry_sleep(monkeypatch):
    """Keep transient-retry backoff out of test runtime."""

    async def _sleep(_delay):
        return None

    monkeypatch.setattr("forum_bridge.core.retry.asyncio.sleep", _sleep)


@pytest.fixture
def transport():
    fake = FakeTransport()
    fake.add_channel(FORUM_ID)
    fake.add_channel(OTHER_FORUM_ID, name="Feature Requests")
    fake.add_channel(TEXT_CHANNEL_ID, name="general", kind=ChannelKind.TEXT)
    return fake


@pytest.fixture
def kb_client():
    return FakeKnowledgeBaseClient()


@pytest.fixture
def channels():
    return TrackedChannels(
        {FORUM_ID: FRAGMENT_TYPE, OTHER_FORUM_ID: OTHER_FRAGMENT_TYPE}
    )


@pytest.fixture
def settings():
    return SyncSettings(workspace_id=WORKSPACE_ID, repository="forum-bridge")


@pytest.fixture
def orchestrator(transport, kb_client, channels, settings):
    return SyncOrchestrator(transport, kb_client, channels, settings)


@pytest.fixture
def mock_config():
    """A valid Config for client and lifespan tests."""
    return Config(
        discord_token="test-token",
        forum_mappings={FORUM_ID: FRAGMENT_TYPE},
        api_key="test-key",
        workspace_id=WORKSPACE_ID,
        api_url="https://kb.example.com/api",
        request_timeout=30,
    )
