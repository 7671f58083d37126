"""Discord forum to knowledge-base bridge.

Mirrors forum threads into knowledge-base fragments and keeps them up to
date, recovering all state from the bridge's own messages in each thread.
"""

__version__ = "1.0.0"
