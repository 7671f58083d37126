"""Knowledge-base client functionality shared between the bot and the CLI sweep."""

from .async_utils import run_sync_limited
from .client import KnowledgeBaseClient, KnowledgeBaseError

__all__ = [
    "KnowledgeBaseClient",
    "KnowledgeBaseError",
    "run_sync_limited",
]
