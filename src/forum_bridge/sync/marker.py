"""Fragment marker encoding.

The bridge keeps no database.  After creating a fragment it posts a
confirmation message into the thread that embeds the fragment id in a
fixed template::

    📝 Fragment ID: `3f1c9a2e-...`

That message is the only persisted link between a thread and its
fragment.  The template is wire-level: ``decode_marker`` must keep
accepting everything ``encode_marker`` has ever produced.
"""

from __future__ import annotations

import re

FRAGMENT_LABEL = "Fragment ID:"
CONFIRMATION_HEADLINE = "✅ **Thread registered in the knowledge base!**"
FAILURE_HEADLINE = "❌ **Failed to register thread in the knowledge base**"

_ID_PATTERN = re.compile(r"^[a-f0-9-]+$", re.IGNORECASE)
_MARKER_PATTERN = re.compile(r"Fragment ID: `([a-f0-9-]+)`", re.IGNORECASE)


def encode_marker(fragment_id: str) -> str:
    """Return the marker line fragment for *fragment_id*.

    Raises:
        ValueError: If the id contains characters ``decode_marker`` would
            not read back (only hex digits and hyphens round-trip).
    """
    if not fragment_id or not _ID_PATTERN.match(fragment_id):
        raise ValueError(
            f"Fragment id {fragment_id!r} cannot be encoded: "
            "only hex digits and hyphens are allowed"
        )
    return f"{FRAGMENT_LABEL} `{fragment_id}`"


def decode_marker(text: str | None) -> str | None:
    """Extract the first fragment id embedded in *text*, or ``None``."""
    if not text:
        return None
    match = _MARKER_PATTERN.search(text)
    return match.group(1) if match else None


def looks_like_confirmation(text: str | None) -> bool:
    """True if *text* carries the confirmation headline or the marker label.

    Used to recognise confirmations whose id no longer parses (edited or
    truncated messages) so the thread is still treated as processed.
    """
    if not text:
        return False
    return CONFIRMATION_HEADLINE in text or FRAGMENT_LABEL in text


def render_confirmation(
    fragment_id: str, title: str, retroactive: bool = False
) -> str:
    """Build the confirmation message posted after a successful create."""
    headline = CONFIRMATION_HEADLINE
    if retroactive:
        headline += " _(retroactive sync)_"
        footer = "_This post was processed during a sync operation._"
    else:
        footer = (
            "_Your post has been automatically logged. "
            "Updates to this thread will be tracked._"
        )
    return "\n".join(
        [
            headline,
            f"📝 {encode_marker(fragment_id)}",
            "",
            f"📌 Title: {title}",
            footer,
        ]
    )


def render_failure_notice(reason: str | None = None) -> str:
    """Build the notice posted when a create fails.  Never carries a marker."""
    lines = [FAILURE_HEADLINE]
    if reason:
        # A failure notice must never be mistaken for a confirmation
        reason = reason.replace(FRAGMENT_LABEL, "fragment id")
        lines.append(f"Reason: {reason}")
    lines.append(
        "_There was an error creating the fragment. "
        "A moderator can retry with /sync-forum._"
    )
    return "\n".join(lines)
