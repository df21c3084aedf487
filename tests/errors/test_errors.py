"""Tests for the error hierarchy and user messages."""

import pytest

from botforge.errors import (
    AuthenticationError,
    BotForgeError,
    ClassificationError,
    ConflictError,
    InvalidRepositoryIdentityError,
    InvalidSignatureError,
    MalformedPayload,
    StoreUnavailableError,
    TransientError,
    UpstreamUnavailableError,
    ValidationError,
    handle_error,
    is_recoverable,
)
from botforge.errors.user_messages import ERROR_MESSAGES, get_user_message


@pytest.mark.parametrize(
    "error,parent",
    [
        (InvalidSignatureError(), AuthenticationError),
        (MalformedPayload(), ClassificationError),
        (ClassificationError(), ValidationError),
        (InvalidRepositoryIdentityError("x"), ValidationError),
        (StoreUnavailableError(), TransientError),
        (UpstreamUnavailableError(), TransientError),
        (ConflictError(), BotForgeError),
    ],
)
def test_hierarchy(error, parent):
    assert isinstance(error, parent)


def test_only_transient_errors_are_recoverable():
    assert is_recoverable(StoreUnavailableError())
    assert not is_recoverable(InvalidSignatureError())
    assert not is_recoverable(ValidationError())
    assert not is_recoverable(ConflictError())
    assert not is_recoverable(RuntimeError("x"))


def test_to_dict_hides_internal_message():
    error = StoreUnavailableError("lock file /srv/data/octocat@bot.lock timed out")

    payload = error.to_dict()

    assert payload == {
        "code": "STORE_UNAVAILABLE",
        "error": ERROR_MESSAGES["STORE_UNAVAILABLE"],
        "recoverable": True,
    }


def test_every_error_code_has_a_catalog_message():
    classes = [
        AuthenticationError,
        InvalidSignatureError,
        ValidationError,
        ClassificationError,
        MalformedPayload,
        ConflictError,
        TransientError,
        StoreUnavailableError,
        UpstreamUnavailableError,
    ]
    for cls in classes:
        assert cls.code in ERROR_MESSAGES


def test_user_message_override():
    error = ValidationError("internal", user_message="Path is required.")
    assert error.user_message == "Path is required."


def test_conflict_carries_versions():
    error = ConflictError(expected_version="a", actual_version="b")
    assert error.details == {"expected_version": "a", "actual_version": "b"}


def test_invalid_repository_message():
    error = InvalidRepositoryIdentityError("no-slash")
    assert "no-slash" in error.message
    assert error.identity == "no-slash"


def test_handle_error_includes_suggestion():
    text = handle_error(InvalidSignatureError())
    assert text.startswith("Invalid signature.")
    assert "Suggestion:" in text


def test_unknown_error_falls_back():
    assert get_user_message(KeyError("x")) == ERROR_MESSAGES["UNKNOWN_ERROR"]
