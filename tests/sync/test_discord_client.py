"""Tests for Discord token validation and the bot test action."""

from unittest.mock import Mock

import pytest
import requests

from botforge.errors import (
    AuthenticationError,
    MissingCredentialError,
    SourceValidationError,
    UpstreamUnavailableError,
)
from botforge.sync.discord_client import BotTester, DiscordBotClient, run_source_validators


def _response(status_code, json_data=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = json_data or {}
    return response


@pytest.fixture
def discord_client():
    client = DiscordBotClient(api_base_url="https://discord.test/api/v10/")
    client.session = Mock()
    return client


def test_validate_token(discord_client):
    discord_client.session.get.return_value = _response(
        200, {"id": 1234, "username": "forgebot", "discriminator": "0"}
    )

    identity = discord_client.validate_token("discord-token")

    assert identity.id == "1234"
    assert identity.username == "forgebot"
    args, kwargs = discord_client.session.get.call_args
    assert args[0] == "https://discord.test/api/v10/users/@me"
    assert kwargs["headers"] == {"Authorization": "Bot discord-token"}


def test_missing_token(discord_client):
    with pytest.raises(MissingCredentialError):
        discord_client.validate_token("")
    discord_client.session.get.assert_not_called()


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_token(discord_client, status):
    discord_client.session.get.return_value = _response(status)
    with pytest.raises(AuthenticationError):
        discord_client.validate_token("bad")


@pytest.mark.parametrize("status", [429, 500, 503])
def test_upstream_failure_is_transient(discord_client, status):
    discord_client.session.get.return_value = _response(status)
    with pytest.raises(UpstreamUnavailableError):
        discord_client.validate_token("token")


def test_timeout_is_transient(discord_client):
    discord_client.session.get.side_effect = requests.Timeout("slow")
    with pytest.raises(UpstreamUnavailableError):
        discord_client.validate_token("token")


def _require_login(source: str) -> None:
    if "client.login" not in source:
        raise ValueError("missing client.login call")


def test_bot_tester_runs_validators_after_token(discord_client):
    discord_client.session.get.return_value = _response(200, {"id": "1", "username": "forgebot"})
    tester = BotTester(discord_client, validators=[_require_login])

    assert tester.run("token", "client.login(token)").username == "forgebot"

    with pytest.raises(SourceValidationError) as exc_info:
        tester.run("token", "console.log('hi')")
    assert "missing client.login call" in exc_info.value.message


def test_bot_tester_without_validators_accepts_any_source(discord_client):
    discord_client.session.get.return_value = _response(200, {"id": "1", "username": "forgebot"})
    assert BotTester(discord_client).run("token", "").id == "1"


def test_validators_stop_at_first_failure():
    calls = []

    def first(source):
        calls.append("first")
        raise SourceValidationError("nope")

    def second(source):
        calls.append("second")

    with pytest.raises(SourceValidationError):
        run_source_validators("x", [first, second])
    assert calls == ["first"]
