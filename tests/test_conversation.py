"""Tests for forum_bridge.sync.conversation."""

from datetime import timedelta

from conftest import BASE_TIME, BOT_ID, make_message

from forum_bridge.sync.conversation import (
    BLOCK_SEPARATOR,
    build_conversation,
    render_conversation,
)

THREAD = "200000000000000001"


def at(minutes):
    return BASE_TIME + timedelta(minutes=minutes)


def test_excludes_bot_and_orders_ascending():
    messages = [
        make_message("3", "second human", "302", "bob", created_at=at(3)),
        make_message("2", "BOT SECRET", BOT_ID, "bridge", created_at=at(2)),
        make_message("1", "first human", "301", "alice", created_at=at(1)),
    ]

    doc = render_conversation(messages, BOT_ID)

    blocks = doc.split(BLOCK_SEPARATOR)
    assert len(blocks) == 2
    assert blocks[0].startswith(f"### alice ({at(1).isoformat()})")
    assert blocks[0].endswith("first human")
    assert blocks[1].startswith("### bob")
    assert "BOT SECRET" not in doc


def test_only_bot_messages_returns_none():
    messages = [make_message("1", "Fragment ID: `abc`", BOT_ID)]
    assert render_conversation(messages, BOT_ID) is None


def test_empty_and_whitespace_messages_are_skipped():
    messages = [
        make_message("1", "   ", created_at=at(1)),
        make_message("2", "real text", created_at=at(2)),
    ]
    doc = render_conversation(messages, BOT_ID)
    assert BLOCK_SEPARATOR not in doc
    assert "real text" in doc


def test_other_bots_are_kept():
    # Only the bridge's own messages are excluded
    messages = [make_message("1", "build passed", "555", "ci-bot", author_is_bot=True)]
    assert "build passed" in render_conversation(messages, BOT_ID)


async def test_build_conversation_keeps_most_recent_page(transport):
    for i in range(5):
        transport.add_message(THREAD, make_message(str(i), f"msg {i}", created_at=at(i)))

    doc = await build_conversation(transport, THREAD, BOT_ID, limit=3)

    assert "msg 0" not in doc
    assert "msg 1" not in doc
    assert doc.index("msg 2") < doc.index("msg 3") < doc.index("msg 4")
    assert transport.history_calls == [(THREAD, 3)]


async def test_build_conversation_empty_thread(transport):
    assert await build_conversation(transport, THREAD, BOT_ID) is None
