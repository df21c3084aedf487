"""User-friendly error messages for BotForge.

Messages returned to the dashboard or printed by the CLI come from this
catalog so that raw exception text never reaches a user.

Privacy Note:
- Messages NEVER include tokens, secrets or webhook payloads
- Repository and bot identifiers stay in server-side logs
"""

from __future__ import annotations

from typing import Any


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Authentication
    "AUTHENTICATION_ERROR": "Authentication failed.",
    "INVALID_SIGNATURE": "Invalid signature.",
    "MISSING_CREDENTIAL": "Missing authentication.",
    # Validation
    "VALIDATION_ERROR": "The request was malformed.",
    "INVALID_REPOSITORY": "Invalid repository name.",
    "CLASSIFICATION_ERROR": "The webhook payload could not be understood.",
    "MALFORMED_PAYLOAD": "Invalid JSON payload.",
    "SOURCE_VALIDATION_FAILED": "Bot code failed validation.",
    "NOT_FOUND": "The requested item was not found.",
    # Concurrency
    "CONFLICT": "The file was changed elsewhere since it was last read.",
    # Transient
    "TRANSIENT_ERROR": "A temporary problem occurred. Please try again.",
    "STORE_UNAVAILABLE": "Sync state could not be saved. Please try again.",
    "UPSTREAM_UNAVAILABLE": "GitHub or Discord did not respond in time.",
    # Generic
    "BOTFORGE_ERROR": "An unexpected error occurred. Please try again.",
    "UNKNOWN_ERROR": "Something went wrong. Please try again.",
}


# =============================================================================
# Recovery Suggestions
# =============================================================================

RECOVERY_SUGGESTIONS: dict[str, str] = {
    "AUTHENTICATION_ERROR": "Sign in again to refresh your credentials.",
    "INVALID_SIGNATURE": "Check that the webhook secret matches: botforge config show",
    "MISSING_CREDENTIAL": "Send the GitHub token as 'Authorization: Bearer <token>'.",
    "VALIDATION_ERROR": "Fix the request body and resend.",
    "INVALID_REPOSITORY": "Use the 'owner/name' form, e.g. octocat/my-bot.",
    "CLASSIFICATION_ERROR": "Redeliver the webhook from the repository settings page.",
    "MALFORMED_PAYLOAD": "Ensure the webhook content type is application/json.",
    "SOURCE_VALIDATION_FAILED": "Review the validation message and update the bot code.",
    "NOT_FOUND": "List what exists with: botforge repos list / botforge bots list",
    "CONFLICT": "Reload the latest version, merge your edits and push again.",
    "TRANSIENT_ERROR": "Retry in a few seconds.",
    "STORE_UNAVAILABLE": "Check disk space and permissions of the data directory.",
    "UPSTREAM_UNAVAILABLE": "Retry later; check https://www.githubstatus.com if it persists.",
    "BOTFORGE_ERROR": "If this persists, please report the issue.",
    "UNKNOWN_ERROR": "Retry, and report the issue if it continues.",
}


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def get_user_message(error: Any) -> str:
    """Get user-friendly message for an error.

    Args:
        error: The error (can be Exception or error code string)

    Returns:
        User-friendly error message
    """
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    """Get recovery suggestion for an error."""
    return RECOVERY_SUGGESTIONS.get(
        _error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"]
    )


def format_error_for_user(error: Any) -> str:
    """Format a complete user-friendly error message.

    Args:
        error: The error to format

    Returns:
        Complete error message with recovery suggestion
    """
    message = get_user_message(error)
    suggestion = get_recovery_suggestion(error)

    return f"{message}\n\nSuggestion: {suggestion}"


__all__ = [
    "ERROR_MESSAGES",
    "RECOVERY_SUGGESTIONS",
    "format_error_for_user",
    "get_recovery_suggestion",
    "get_user_message",
]
