"""Tests for the botforge command line."""

from pathlib import Path
from unittest.mock import Mock

import json
import pytest
from typer.testing import CliRunner

from botforge.cli import cli
from botforge.configuration.settings import SecretStore, bootstrap_settings
from botforge.sync import cli as sync_cli
from botforge.sync.components import build_components
from botforge.sync.models import PushErrorKind, PushOutcome, PushResult

runner = CliRunner()


class InMemorySecretStore(SecretStore):
    def __init__(self) -> None:
        super().__init__(service_name="test", keyring_module=None)
        self.storage = {}

    def set_secret(self, key: str, value: str) -> None:  # type: ignore[override]
        self.storage[key] = value

    def get_secret(self, key: str):  # type: ignore[override]
        return self.storage.get(key)


@pytest.fixture
def components(tmp_path: Path, monkeypatch):
    settings = bootstrap_settings(
        path=tmp_path / "config.json",
        secret_store=InMemorySecretStore(),
        overrides={"storage": {"data_dir": str(tmp_path / "data")}},
    )
    built = build_components(settings)
    monkeypatch.setattr(sync_cli, "_get_components", lambda config_path: built)
    return built


def test_link_requires_existing_bot(components) -> None:
    result = runner.invoke(cli, ["repos", "link", "octocat/discord-bot", "missing-bot"])

    assert result.exit_code == 1
    assert components.state_store.load("octocat/discord-bot") is None


def test_create_link_status_and_unlink(components) -> None:
    result = runner.invoke(cli, ["bots", "create", "Helper", "--owner", "user-1"])
    assert result.exit_code == 0, result.output
    bot = components.bot_registry.list_all()[0]

    result = runner.invoke(cli, ["repos", "link", "octocat/discord-bot", bot.bot_id])
    assert result.exit_code == 0, result.output
    assert components.state_store.get_linked_bot("octocat/discord-bot") == bot.bot_id

    result = runner.invoke(cli, ["repos", "status", "octocat/discord-bot"])
    assert result.exit_code == 0
    assert bot.bot_id in result.output

    result = runner.invoke(cli, ["repos", "unlink", "octocat/discord-bot"])
    assert result.exit_code == 0
    assert components.state_store.get_linked_bot("octocat/discord-bot") is None

    actions = [event["action"] for event in components.audit_logger.iter_events()]
    assert actions == ["repo_linked", "repo_unlinked"]


def test_connect_rejects_invalid_identity(components) -> None:
    result = runner.invoke(cli, ["repos", "connect", "not-a-repo"])

    assert result.exit_code == 1
    assert "owner/name" in result.output


def test_disconnect_with_force(components) -> None:
    components.state_store.connect_repository("octocat/discord-bot")

    result = runner.invoke(cli, ["repos", "disconnect", "octocat/discord-bot", "--force"])

    assert result.exit_code == 0
    assert components.state_store.load("octocat/discord-bot") is None


def test_status_of_unknown_repository(components) -> None:
    result = runner.invoke(cli, ["repos", "status", "octocat/unknown"])
    assert result.exit_code == 1


def test_list_without_repositories(components) -> None:
    result = runner.invoke(cli, ["repos", "list"])
    assert result.exit_code == 0
    assert "No repositories connected" in result.output


def test_delete_bot_clears_links(components) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1")
    components.state_store.link_repository("octocat/discord-bot", bot.bot_id)

    result = runner.invoke(cli, ["bots", "delete", bot.bot_id, "--force"])

    assert result.exit_code == 0
    assert components.state_store.get_linked_bot("octocat/discord-bot") is None


def test_push_links_bot_on_success(components) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1", source_code="client.login()")
    push_client = Mock()
    push_client.push_file.return_value = PushResult(
        outcome=PushOutcome.CREATED,
        repository_identity="octocat/discord-bot",
        path="bot.js",
        commit_sha="abcdef1234",
    )
    components.publisher.push_client = push_client

    result = runner.invoke(
        cli, ["bots", "push", bot.bot_id, "octocat/discord-bot", "--token", "gho_test"]
    )

    assert result.exit_code == 0, result.output
    assert "abcdef1" in result.output
    args = push_client.push_file.call_args.args
    assert args[:3] == ("octocat/discord-bot", "discord-bot/bot.js", "client.login()")
    assert components.state_store.get_linked_bot("octocat/discord-bot") == bot.bot_id
    assert "gho_test" not in (components.settings.storage.audit_dir / "audit.log").read_text()


def test_push_failure_exits_nonzero(components) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1")
    push_client = Mock()
    push_client.push_file.return_value = PushResult(
        outcome=PushOutcome.ERROR,
        repository_identity="octocat/discord-bot",
        path="bot.js",
        error_kind=PushErrorKind.TRANSIENT,
        retryable=True,
        message="GitHub API error: 503",
    )
    components.publisher.push_client = push_client

    result = runner.invoke(
        cli, ["bots", "push", bot.bot_id, "octocat/discord-bot", "--token", "gho_test"]
    )

    assert result.exit_code == 1
    assert "retry later" in result.output
    assert components.state_store.load("octocat/discord-bot") is None


def test_config_init_and_set(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    data_dir = tmp_path / "data"

    result = runner.invoke(
        cli,
        [
            "config",
            "init",
            "--config-path",
            str(config_path),
            "--listen-port",
            "9000",
            "--data-dir",
            str(data_dir),
        ],
    )
    assert result.exit_code == 0, result.output
    assert json.loads(config_path.read_text())["server"]["listen_port"] == 9000

    result = runner.invoke(
        cli, ["config", "set", "server.listen_host", "0.0.0.0", "--config-path", str(config_path)]
    )
    assert result.exit_code == 0
    assert json.loads(config_path.read_text())["server"]["listen_host"] == "0.0.0.0"

    result = runner.invoke(cli, ["config", "validate", "--config-path", str(config_path)])
    assert result.exit_code == 0
    assert "0.0.0.0:9000" in result.output


def test_config_set_refuses_secret(tmp_path: Path) -> None:
    result = runner.invoke(
        cli, ["config", "set", "webhook.secret", "x", "--config-path", str(tmp_path / "c.json")]
    )
    assert result.exit_code == 1


def test_config_set_rejects_invalid_value(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{}")

    result = runner.invoke(
        cli, ["config", "set", "server.listen_port", "99999", "--config-path", str(config_path)]
    )

    assert result.exit_code == 1


def test_hook_requires_url_or_public_url(components) -> None:
    components.configurator = Mock()

    result = runner.invoke(cli, ["repos", "hook", "octocat/discord-bot", "--token", "gho_test"])

    assert result.exit_code == 1
    components.configurator.configure_webhook.assert_not_called()


def test_hook_registers_with_explicit_url(components) -> None:
    components.configurator = Mock()
    components.configurator.configure_webhook.return_value = ({"id": 77}, True)

    result = runner.invoke(
        cli,
        [
            "repos",
            "hook",
            "octocat/discord-bot",
            "--url",
            "https://studio.example.com/api/github/webhook",
            "--token",
            "gho_test",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Created webhook 77" in result.output
    args, kwargs = components.configurator.configure_webhook.call_args
    assert args == ("octocat/discord-bot", "https://studio.example.com/api/github/webhook")
    assert kwargs == {"secret": None, "auth_token": "gho_test"}


def test_save_replaces_source(components, tmp_path: Path) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1", source_code="v1")
    source = tmp_path / "bot.js"
    source.write_text("client.login(token)", encoding="utf-8")

    result = runner.invoke(cli, ["bots", "save", bot.bot_id, "--source", str(source)])

    assert result.exit_code == 0, result.output
    assert components.bot_registry.get(bot.bot_id).source_code == "client.login(token)"


def test_save_with_stale_version_conflicts(components, tmp_path: Path) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1", source_code="v1")
    components.bot_registry.update_source(bot.bot_id, "v2", bot.source_version)
    source = tmp_path / "bot.js"
    source.write_text("v3", encoding="utf-8")

    result = runner.invoke(
        cli,
        ["bots", "save", bot.bot_id, "--source", str(source), "--expected-version", bot.source_version],
    )

    assert result.exit_code == 1
    assert "Conflict" in result.output
    assert components.bot_registry.get(bot.bot_id).source_code == "v2"


def test_status_sets_bot_status(components) -> None:
    bot = components.bot_registry.create_bot("Helper", "user-1")

    result = runner.invoke(cli, ["bots", "status", bot.bot_id, "online"])

    assert result.exit_code == 0, result.output
    assert components.bot_registry.get(bot.bot_id).status.value == "online"
