"""Tests for forum_bridge.sync.resolver -- thread state recovery."""

import logging
from datetime import timedelta

from conftest import BASE_TIME, BOT_ID, HUMAN_ID, make_message

from forum_bridge.sync.marker import CONFIRMATION_HEADLINE, render_confirmation
from forum_bridge.sync.resolver import ThreadStateResolver, resolve_from_messages
from forum_bridge.transport.base import TransportErrorKind

THREAD = "200000000000000001"


def at(minutes):
    return BASE_TIME + timedelta(minutes=minutes)


class TestResolveFromMessages:
    def test_marker_followed_by_unrelated_bot_message(self):
        messages = [
            make_message("1", "...Fragment ID: `abc-123`...", BOT_ID, created_at=at(1)),
            make_message("2", "unrelated", BOT_ID, created_at=at(2)),
        ]
        state = resolve_from_messages(messages, BOT_ID)
        assert state.processed is True
        assert state.fragment_id == "abc-123"

    def test_no_bot_messages_is_unprocessed(self):
        messages = [make_message("1", "Fragment ID: `abc-123`", HUMAN_ID)]
        state = resolve_from_messages(messages, BOT_ID)
        assert state.processed is False
        assert state.fragment_id is None

    def test_bot_messages_without_label_are_unprocessed(self):
        messages = [
            make_message("1", "hello", BOT_ID),
            make_message("2", "another note", BOT_ID, created_at=at(1)),
        ]
        state = resolve_from_messages(messages, BOT_ID)
        assert state.processed is False
        assert state.fragment_id is None

    def test_empty_history(self):
        assert resolve_from_messages([], BOT_ID).processed is False

    def test_human_quoting_a_marker_does_not_count(self):
        messages = [
            make_message("1", render_confirmation("abc", "T"), HUMAN_ID),
        ]
        assert resolve_from_messages(messages, BOT_ID).processed is False

    def test_most_recent_marker_wins_and_conflict_is_warned(self, caplog):
        messages = [
            make_message("2", "Fragment ID: `bbb`", BOT_ID, created_at=at(5)),
            make_message("1", "Fragment ID: `aaa`", BOT_ID, created_at=at(1)),
        ]
        with caplog.at_level(logging.WARNING, logger="forum_bridge.sync.resolver"):
            state = resolve_from_messages(list(reversed(messages)), BOT_ID, THREAD)
        assert state.fragment_id == "bbb"
        assert "different fragment ids" in caplog.text

    def test_duplicate_identical_markers_are_not_a_conflict(self, caplog):
        messages = [
            make_message("1", "Fragment ID: `aaa`", BOT_ID, created_at=at(1)),
            make_message("2", "Fragment ID: `aaa`", BOT_ID, created_at=at(2)),
        ]
        with caplog.at_level(logging.WARNING):
            state = resolve_from_messages(messages, BOT_ID)
        assert state.fragment_id == "aaa"
        assert caplog.text == ""

    def test_unparseable_confirmation_is_processed_without_id(self, caplog):
        messages = [make_message("1", f"{CONFIRMATION_HEADLINE}\n(id removed)", BOT_ID)]
        with caplog.at_level(logging.WARNING):
            state = resolve_from_messages(messages, BOT_ID, THREAD)
        assert state.processed is True
        assert state.fragment_id is None
        assert "no parseable fragment id" in caplog.text

    def test_newer_unparseable_falls_back_to_older_decodable(self):
        messages = [
            make_message("1", "Fragment ID: `aaa`", BOT_ID, created_at=at(1)),
            make_message("2", f"{CONFIRMATION_HEADLINE} (edited)", BOT_ID, created_at=at(2)),
        ]
        assert resolve_from_messages(messages, BOT_ID).fragment_id == "aaa"


class TestThreadStateResolver:
    async def test_reads_bounded_history(self, transport):
        transport.add_message(THREAD, make_message("1", "Fragment ID: `abc`", BOT_ID))
        resolver = ThreadStateResolver(transport, lookback_limit=10)

        state = await resolver.resolve(THREAD)

        assert state.processed is True
        assert state.fragment_id == "abc"
        assert transport.history_calls == [(THREAD, 10)]

    async def test_explicit_limit_overrides_default(self, transport):
        resolver = ThreadStateResolver(transport, lookback_limit=10)
        await resolver.resolve(THREAD, BOT_ID, lookback_limit=3)
        assert transport.history_calls == [(THREAD, 3)]

    async def test_marker_outside_lookback_looks_unprocessed(self, transport):
        transport.add_message(THREAD, make_message("1", "Fragment ID: `abc`", BOT_ID, created_at=at(0)))
        for i in range(5):
            transport.add_message(THREAD, make_message(f"m{i}", "reply", created_at=at(i + 1)))
        resolver = ThreadStateResolver(transport, lookback_limit=5)

        state = await resolver.resolve(THREAD)

        assert state.processed is False
        assert state.resolved is True

    async def test_fetch_failure_is_unresolved_not_unprocessed(self, transport):
        transport.fail("fetch_recent_messages", TransportErrorKind.FORBIDDEN)
        resolver = ThreadStateResolver(transport)

        state = await resolver.resolve(THREAD)

        assert state.resolved is False
        assert state.processed is False
        assert "forbidden" in state.error

    async def test_permanent_errors_are_not_retried(self, transport):
        calls = []

        async def fetch(thread_id, limit):
            calls.append(thread_id)
            raise transport.failures["x"]

        transport.fail("x", TransportErrorKind.NOT_FOUND)
        transport.fetch_recent_messages = fetch
        await ThreadStateResolver(transport).resolve(THREAD)
        assert len(calls) == 1

    async def test_transient_errors_are_retried(self, transport):
        calls = []
        transport.fail("x", TransportErrorKind.NOT_YET_VISIBLE, code=10008)

        async def fetch(thread_id, limit):
            calls.append(thread_id)
            if len(calls) < 3:
                raise transport.failures["x"]
            return [make_message("1", "Fragment ID: `abc`", BOT_ID)]

        transport.fetch_recent_messages = fetch
        state = await ThreadStateResolver(transport).resolve(THREAD)
        assert len(calls) == 3
        assert state.fragment_id == "abc"

    async def test_custom_retry_predicate(self, transport):
        calls = []
        transport.fail("x", TransportErrorKind.FORBIDDEN)

        async def fetch(thread_id, limit):
            calls.append(thread_id)
            raise transport.failures["x"]

        transport.fetch_recent_messages = fetch
        resolver = ThreadStateResolver(transport, retry_predicate=lambda exc: True)
        state = await resolver.resolve(THREAD)
        assert len(calls) == 3
        assert state.resolved is False
