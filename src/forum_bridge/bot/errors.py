"""User-facing error messages for commands and thread notices.

Messages name what went wrong and what a moderator can do about it.
"""

from ..core.client import KnowledgeBaseError
from ..transport.base import TransportError, TransportErrorKind


def build_error_message(
    error_type: str, message: str, corrective_action: str
) -> str:
    """Build an error reply with a corrective action.

    Args:
        error_type: Error category (not_found, permission_denied,
            knowledge_base_error, validation_error, internal_error)
        message: Human-readable error description
        corrective_action: What the moderator can do next

    Examples:
        >>> build_error_message("not_found", "Thread 1 not found", "Check the id.")
        '❌ Error (not_found): Thread 1 not found\\n\\nAction: Check the id.'
    """
    return f"❌ Error ({error_type}): {message}\n\nAction: {corrective_action}"


def describe_exception(exc: BaseException) -> str:
    """Translate an exception escaping a command into a reply."""
    match exc:
        case TransportError(kind=TransportErrorKind.FORBIDDEN):
            return build_error_message(
                "permission_denied",
                str(exc),
                "Give the bot View Channel, Read Message History and "
                "Send Messages in Threads on the forum.",
            )
        case TransportError(
            kind=TransportErrorKind.NOT_FOUND | TransportErrorKind.NOT_YET_VISIBLE
        ):
            return build_error_message(
                "not_found",
                str(exc),
                "Check the id, or retry in a few seconds if the thread was just created.",
            )
        case KnowledgeBaseError():
            return build_error_message(
                "knowledge_base_error",
                str(exc),
                "Check USABLE_API_KEY and the workspace id, or retry later.",
            )
        case ValueError():
            return build_error_message(
                "validation_error", str(exc), "Correct the command options."
            )
        case _:
            return build_error_message(
                "internal_error",
                "An error occurred while processing your command.",
                "Check the bot logs for details.",
            )
