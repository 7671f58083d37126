"""Tests for forum_bridge.sync.marker -- marker encoding and message templates."""

import pytest

from forum_bridge.sync.marker import (
    CONFIRMATION_HEADLINE,
    decode_marker,
    encode_marker,
    looks_like_confirmation,
    render_confirmation,
    render_failure_notice,
)


class TestEncodeDecode:
    @pytest.mark.parametrize(
        "fragment_id",
        [
            "abc-123",
            "3f1c9a2e-7b4d-4e8f-9a01-23456789abcd",
            "ABCDEF-0",
            "-",
        ],
    )
    def test_round_trip(self, fragment_id):
        assert decode_marker(encode_marker(fragment_id)) == fragment_id

    def test_encode_is_exact_template(self):
        assert encode_marker("abc-123") == "Fragment ID: `abc-123`"

    @pytest.mark.parametrize("bad", ["", "xyz", "abc 123", "abc`123", "g-1"])
    def test_encode_rejects_ids_that_would_not_decode(self, bad):
        with pytest.raises(ValueError, match="cannot be encoded"):
            encode_marker(bad)

    def test_decode_embedded_in_larger_message(self):
        text = "✅ done\n📝 Fragment ID: `abc-123`\n\n📌 Title: x"
        assert decode_marker(text) == "abc-123"

    def test_decode_case_insensitive_label_and_id(self):
        assert decode_marker("fragment id: `ABC-def`") == "ABC-def"

    @pytest.mark.parametrize(
        "text",
        [
            None,
            "",
            "just a human message",
            "Fragment ID: abc-123",
            "Fragment ID: `not-hex!`",
            "Fragment ID: ``",
        ],
    )
    def test_decode_absent_returns_none(self, text):
        assert decode_marker(text) is None

    def test_decode_returns_first_marker(self):
        text = "Fragment ID: `aaa` and Fragment ID: `bbb`"
        assert decode_marker(text) == "aaa"


class TestConfirmation:
    def test_live_confirmation_carries_marker_and_title(self):
        text = render_confirmation("abc-123", "App crashes")
        assert text.startswith(CONFIRMATION_HEADLINE)
        assert "📝 Fragment ID: `abc-123`" in text
        assert "📌 Title: App crashes" in text
        assert "retroactive" not in text
        assert decode_marker(text) == "abc-123"

    def test_retroactive_confirmation_has_same_marker(self):
        live = render_confirmation("abc-123", "T")
        retro = render_confirmation("abc-123", "T", retroactive=True)
        assert "_(retroactive sync)_" in retro
        assert decode_marker(retro) == decode_marker(live) == "abc-123"

    def test_confirmation_rejects_bad_id(self):
        with pytest.raises(ValueError):
            render_confirmation("not an id", "T")

    def test_looks_like_confirmation(self):
        assert looks_like_confirmation(render_confirmation("abc", "T"))
        assert looks_like_confirmation(f"{CONFIRMATION_HEADLINE}\n(edited)")
        assert looks_like_confirmation("Fragment ID: `???`")
        assert not looks_like_confirmation("thanks for the help!")
        assert not looks_like_confirmation(None)


class TestFailureNotice:
    def test_failure_notice_has_no_marker(self):
        text = render_failure_notice("HTTP 500: Internal Server Error")
        assert decode_marker(text) is None
        assert not looks_like_confirmation(text)
        assert "HTTP 500" in text
        assert "/sync-forum" in text

    def test_failure_reason_cannot_inject_marker(self):
        text = render_failure_notice("echo Fragment ID: `abc-123`")
        assert decode_marker(text) is None
        assert not looks_like_confirmation(text)

    def test_failure_notice_without_reason(self):
        assert "Reason" not in render_failure_notice()
