"""Tests for bot.handlers.EventHandlers."""

import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from forum_bridge.bot.handlers import EventHandlers, thread_snapshot
from forum_bridge.sync.models import SyncOutcome, ThreadSnapshot, ThreadSyncResult

FORUM = 100000000000000001
THREAD = 200000000000000001
CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _thread(name="App crashes", tags=("bug",)):
    parent = MagicMock(spec=discord.ForumChannel)
    parent.id = FORUM
    parent.name = "help-desk"
    thread = MagicMock(spec=discord.Thread)
    thread.id = THREAD
    thread.name = name
    thread.parent = parent
    thread.parent_id = FORUM
    thread.guild = SimpleNamespace(name="Acme Community")
    thread.applied_tags = [SimpleNamespace(name=t) for t in tags]
    thread.created_at = CREATED
    thread.archived = False
    thread.locked = False
    return thread


def _message(channel, bot=False):
    author = SimpleNamespace(id=42, display_name="alice", bot=bot)
    return SimpleNamespace(
        id=300000000000000001,
        author=author,
        channel=channel,
        content="Any update?",
        created_at=CREATED,
    )


def _result(outcome=SyncOutcome.CREATED):
    return ThreadSyncResult(thread_id=str(THREAD), outcome=outcome)


@pytest.fixture
def orchestrator():
    fake = MagicMock()
    fake.handle_thread_created = AsyncMock(return_value=_result())
    fake.handle_thread_updated = AsyncMock(return_value=_result(SyncOutcome.UPDATED))
    fake.handle_message_posted = AsyncMock(return_value=_result(SyncOutcome.UPDATED))
    return fake


@pytest.fixture
def handlers(orchestrator):
    return EventHandlers(orchestrator)


def test_thread_snapshot():
    snapshot = thread_snapshot(_thread(tags=("bug", "urgent")))
    assert snapshot == ThreadSnapshot(name="App crashes", tags=frozenset({"bug", "urgent"}))


class TestEvents:
    async def test_thread_create(self, handlers, orchestrator):
        await handlers.on_thread_create(_thread())
        await handlers.drain()

        orchestrator.handle_thread_created.assert_awaited_once()
        view = orchestrator.handle_thread_created.await_args.args[0]
        assert view.id == str(THREAD)
        assert view.in_forum

    async def test_thread_update(self, handlers, orchestrator):
        await handlers.on_thread_update(_thread(name="Old"), _thread(name="New"))
        await handlers.drain()

        before, after = orchestrator.handle_thread_updated.await_args.args
        assert before.name == "Old"
        assert after.name == "New"

    async def test_message_in_thread(self, handlers, orchestrator):
        await handlers.on_message(_message(_thread()))
        await handlers.drain()

        thread, message = orchestrator.handle_message_posted.await_args.args
        assert thread.id == str(THREAD)
        assert message.content == "Any update?"

    async def test_bot_messages_ignored(self, handlers, orchestrator):
        await handlers.on_message(_message(_thread(), bot=True))
        assert handlers.in_flight == 0
        orchestrator.handle_message_posted.assert_not_called()

    async def test_non_thread_messages_ignored(self, handlers, orchestrator):
        await handlers.on_message(_message(MagicMock(spec=discord.TextChannel)))
        assert handlers.in_flight == 0
        orchestrator.handle_message_posted.assert_not_called()

    async def test_errors_are_contained(self, handlers, orchestrator):
        orchestrator.handle_thread_created.side_effect = RuntimeError("boom")

        await handlers.on_thread_create(_thread())
        await handlers.drain()

        assert handlers.in_flight == 0


class TestDrain:
    async def test_waits_for_in_flight(self, handlers, orchestrator):
        release = asyncio.Event()

        async def _slow(_view):
            await release.wait()
            return _result()

        orchestrator.handle_thread_created.side_effect = _slow
        await handlers.on_thread_create(_thread())
        assert handlers.in_flight == 1

        asyncio.get_running_loop().call_later(0.01, release.set)
        await handlers.drain(timeout=5)

        assert handlers.in_flight == 0
        assert handlers.accepting is False

    async def test_cancels_after_timeout(self, handlers, orchestrator):
        async def _hang(_view):
            await asyncio.Event().wait()

        orchestrator.handle_thread_created.side_effect = _hang
        await handlers.on_thread_create(_thread())
        tasks = list(handlers._tasks)

        await handlers.drain(timeout=0.01)
        await asyncio.gather(*tasks, return_exceptions=True)

        assert tasks and all(t.cancelled() for t in tasks)
        assert handlers.in_flight == 0

    async def test_events_after_drain_are_dropped(self, handlers, orchestrator):
        await handlers.drain()
        await handlers.on_thread_create(_thread())

        assert handlers.in_flight == 0
        orchestrator.handle_thread_created.assert_not_awaited()
