"""Change detection between two thread snapshots.

Only the display name and the set of applied tags are compared; archive
and lock state changes are deliberately not mirrored.
"""

from __future__ import annotations

from .models import ThreadSnapshot

TITLE = "title"
TAGS = "tags"


def detect_changes(before: ThreadSnapshot, after: ThreadSnapshot) -> set[str]:
    """Return the names of mirrored fields that differ.

    ``"title"`` when the names differ, ``"tags"`` when the tag sets differ
    (order-independent).
    """
    changes: set[str] = set()
    if before.name != after.name:
        changes.add(TITLE)
    if set(before.tags) != set(after.tags):
        changes.add(TAGS)
    return changes
