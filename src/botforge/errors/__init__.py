"""Centralized error definitions for BotForge.

The sync service distinguishes five failure classes, each with its own
retry contract:

- ``AuthenticationError``: bad or missing credential or webhook signature.
  Never retried automatically.
- ``ValidationError``: malformed input. The client must fix and resend.
- ``ConflictError``: version mismatch on a conditional write. The caller
  must re-read and retry explicitly.
- ``TransientError``: network or store unavailability. Safe to retry with
  backoff.

A push that touches no bot files is not an error at all; it is reported as
``TriggerOutcome.SKIPPED_NOT_RELEVANT``.

Usage:
    from botforge.errors import BotForgeError, TransientError, handle_error

    try:
        store.record_sync(repo, commit_count, timestamp)
    except TransientError as e:
        print(handle_error(e))
"""

from __future__ import annotations

from botforge.errors.user_messages import (
    format_error_for_user,
    get_recovery_suggestion,
    get_user_message,
)


# =============================================================================
# Base Error
# =============================================================================


class BotForgeError(Exception):
    """Base exception for all BotForge errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether retrying may succeed
        details: Additional error details for debugging
    """

    code: str = "BOTFORGE_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = False

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        """Get recovery suggestion."""
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to a dictionary safe to return to API clients.

        Only the code and the catalog message are exposed; ``message`` and
        ``details`` may carry internal identifiers and stay server side.
        """
        return {
            "code": self.code,
            "error": self.user_message,
            "recoverable": self.recoverable,
        }


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationError(BotForgeError):
    """Credential or signature could not be verified."""

    code = "AUTHENTICATION_ERROR"
    default_message = "Authentication failed"


class InvalidSignatureError(AuthenticationError):
    """Webhook signature did not match the shared secret."""

    code = "INVALID_SIGNATURE"
    default_message = "Invalid webhook signature"


class MissingCredentialError(AuthenticationError):
    """Request carried no usable bearer credential."""

    code = "MISSING_CREDENTIAL"
    default_message = "Missing authentication"


# =============================================================================
# Validation
# =============================================================================


class ValidationError(BotForgeError):
    """Input is malformed; the client must fix and resend."""

    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidRepositoryIdentityError(ValidationError):
    """Repository identity is not in ``owner/name`` form."""

    code = "INVALID_REPOSITORY"
    default_message = "Invalid repository name"

    def __init__(self, identity: str, *, message: str | None = None) -> None:
        self.identity = identity
        super().__init__(
            message or f"Repository identity must be 'owner/name', got {identity!r}",
            details={"identity": identity},
        )


class ClassificationError(ValidationError):
    """Webhook payload could not be classified into an event."""

    code = "CLASSIFICATION_ERROR"
    default_message = "Webhook payload could not be classified"


class MalformedPayload(ClassificationError):
    """Webhook body is not valid structured data."""

    code = "MALFORMED_PAYLOAD"
    default_message = "Malformed webhook payload"


class SourceValidationError(ValidationError):
    """Bot source was rejected by a configured validator."""

    code = "SOURCE_VALIDATION_FAILED"
    default_message = "Bot source failed validation"


class NotFoundError(ValidationError):
    """Referenced entity does not exist."""

    code = "NOT_FOUND"
    default_message = "Requested item was not found"


# =============================================================================
# Concurrency
# =============================================================================


class ConflictError(BotForgeError):
    """Conditional write lost against a concurrent change."""

    code = "CONFLICT"
    default_message = "The item was changed by someone else"

    def __init__(
        self,
        message: str | None = None,
        *,
        expected_version: str | None = None,
        actual_version: str | None = None,
    ) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            message,
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


# =============================================================================
# Transient
# =============================================================================


class TransientError(BotForgeError):
    """Temporary failure; the operation may be retried with backoff."""

    code = "TRANSIENT_ERROR"
    default_message = "Temporary failure, please retry"
    recoverable = True


class StoreUnavailableError(TransientError):
    """Durable store could not be read or written."""

    code = "STORE_UNAVAILABLE"
    default_message = "Sync state store is unavailable"


class UpstreamUnavailableError(TransientError):
    """Remote API timed out or returned a server error."""

    code = "UPSTREAM_UNAVAILABLE"
    default_message = "Upstream service is unavailable"


# =============================================================================
# Error Handler
# =============================================================================


def handle_error(error: Exception) -> str:
    """Handle an error and return a user-friendly message.

    Args:
        error: The exception to handle

    Returns:
        User-friendly error message with recovery suggestion
    """
    return format_error_for_user(error)


def is_recoverable(error: Exception) -> bool:
    """Check if an error is potentially recoverable."""
    if isinstance(error, BotForgeError):
        return error.recoverable
    return False


__all__ = [
    "AuthenticationError",
    "BotForgeError",
    "ClassificationError",
    "ConflictError",
    "InvalidRepositoryIdentityError",
    "InvalidSignatureError",
    "MalformedPayload",
    "MissingCredentialError",
    "NotFoundError",
    "SourceValidationError",
    "StoreUnavailableError",
    "TransientError",
    "UpstreamUnavailableError",
    "ValidationError",
    "handle_error",
    "is_recoverable",
]
