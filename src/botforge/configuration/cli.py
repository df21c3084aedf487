"""CLI commands for managing BotForge settings."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from botforge.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    WEBHOOK_SECRET_KEY,
    SecretStore,
    Settings,
    bootstrap_settings,
    load_settings,
    rotate_secret,
    save_settings,
)

config_app = typer.Typer(help="Manage BotForge configuration")


@config_app.command("init")
def init_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    listen_port: Optional[int] = typer.Option(None, help="Override listen port"),
    public_url: Optional[str] = typer.Option(None, help="Public webhook URL"),
    data_dir: Optional[Path] = typer.Option(None, help="Override data directory"),
) -> None:
    """Initialize the BotForge settings file."""

    overrides: dict = {}
    if listen_port:
        overrides.setdefault("server", {})["listen_port"] = listen_port
    if public_url:
        overrides.setdefault("server", {})["public_url"] = public_url
    if data_dir:
        overrides.setdefault("storage", {})["data_dir"] = str(data_dir)

    settings = bootstrap_settings(path=config_path, overrides=overrides)
    typer.echo(f"Configuration initialized at {config_path}")
    typer.echo(_summarize_settings(settings))
    if settings.webhook_secret() is None:
        typer.echo("⚠️  No webhook secret configured; run 'botforge config set-secret'")


@config_app.command("show")
def show_config(config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config")) -> None:
    """Display effective configuration with secrets masked."""

    settings = load_settings(config_path)
    typer.echo(_summarize_settings(settings))


@config_app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key, e.g. server.listen_port"),
    value: str = typer.Argument(..., help="New value"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config"),
) -> None:
    """Update a configuration value."""

    if key == "webhook.secret":
        typer.echo("❌ Use 'botforge config set-secret' for the webhook secret", err=True)
        raise typer.Exit(code=1)

    settings = load_settings(config_path)
    payload = settings.model_dump(mode="python")
    _assign(payload, key.split("."), value)
    try:
        updated = Settings.model_validate(payload)
    except ValueError as e:
        typer.echo(f"❌ Invalid value for {key}: {e}", err=True)
        raise typer.Exit(code=1)
    save_settings(updated, config_path)
    typer.echo(f"Updated {key}")


@config_app.command("validate")
def validate_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Validate configuration file for correctness."""

    try:
        settings = load_settings(config_path)
        typer.echo(f"✅ Configuration valid at {config_path}")
        typer.echo(f"   Listen: {settings.server.listen_host}:{settings.server.listen_port}")
        typer.echo(f"   Data dir: {settings.storage.data_dir}")
        typer.echo(f"   Relevance markers: {', '.join(settings.webhook.relevance_markers)}")
    except Exception as e:
        typer.echo(f"❌ Configuration invalid: {e}", err=True)
        raise typer.Exit(code=1)


@config_app.command("set-secret")
def set_secret_command(
    value: str = typer.Option(
        ..., prompt=True, hide_input=True, confirmation_prompt=True, help="Webhook secret"
    ),
    service: str = typer.Option("botforge", help="Keychain service name"),
) -> None:
    """Store the webhook secret in the system keychain."""

    if len(value) < 16:
        typer.echo("⚠️  Secrets shorter than 16 characters are easy to guess", err=True)
    store = SecretStore(service_name=service)
    rotate_secret(secret_store=store, key=WEBHOOK_SECRET_KEY, new_value=value)
    typer.echo("Webhook secret stored in keychain")


def _summarize_settings(settings: Settings) -> str:
    data = settings.model_dump(mode="json")
    return json.dumps(data, indent=2)


def _assign(payload: dict, keys: list[str], value: str) -> None:
    current = payload
    for key in keys[:-1]:
        current = current.setdefault(key, {})
    current[keys[-1]] = value
