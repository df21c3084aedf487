"""Typed settings management for the BotForge sync service.

This module wraps the service configuration in Pydantic models so the CLI
and the server can rely on validated settings. The webhook secret is kept
in the OS keychain through ``SecretStore`` and masked on disk.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import keyring
import keyring.errors
from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".botforge" / "config.json"
DEFAULT_DATA_DIR = Path.home() / ".botforge" / "data"
DEFAULT_SECRETS_SERVICE = "botforge"
MASKED_SECRET = "***"
WEBHOOK_SECRET_KEY = "webhook:secret"


class ServerSettings(BaseModel):
    """HTTP listener configuration."""

    listen_host: str = Field("127.0.0.1", description="Host to bind the server to")
    listen_port: int = Field(8765, ge=1, le=65535, description="Port to listen on")
    public_url: Optional[str] = Field(
        default=None, description="Public URL GitHub delivers webhooks to"
    )
    webhook_timeout: float = Field(
        10.0, gt=0, description="Seconds a webhook delivery may take before failing"
    )


class WebhookSettings(BaseModel):
    """Inbound webhook configuration."""

    secret: Optional[SecretStr] = Field(
        default=None, description="HMAC secret; unset means unsecured mode"
    )
    relevance_markers: List[str] = Field(
        default_factory=lambda: ["bot.js", "discord-bot"],
        description="Path markers that make a push relevant to the linked bot",
    )
    dispatch_queue_size: int = Field(100, ge=1, le=10000)

    @field_validator("relevance_markers")
    @classmethod
    def _validate_markers(cls, value: List[str]) -> List[str]:
        markers = [marker.strip() for marker in value if marker and marker.strip()]
        if not markers:
            raise ValueError("relevance_markers must contain at least one marker")
        return markers


class GitHubSettings(BaseModel):
    """GitHub REST API client configuration."""

    api_base_url: str = Field("https://api.github.com")
    read_timeout: float = Field(10.0, gt=0)
    write_timeout: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=1, le=10)
    committer_name: str = Field("BotForge Studio")
    committer_email: str = Field("bot@botforge.dev")

    @field_validator("api_base_url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        if not value.startswith(("https://", "http://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return value.rstrip("/")


class DiscordSettings(BaseModel):
    """Discord REST API configuration."""

    api_base_url: str = Field("https://discord.com/api/v10")
    timeout: float = Field(10.0, gt=0)


class StorageSettings(BaseModel):
    """Locations of durable state."""

    data_dir: Path = Field(default=DEFAULT_DATA_DIR, description="Root of all service data")
    lock_timeout: float = Field(10.0, gt=0)
    audit_retention_days: int = Field(90, ge=30, le=730)

    @field_validator("data_dir")
    @classmethod
    def _expand_data_dir(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @property
    def repositories_dir(self) -> Path:
        return self.data_dir / "repositories"

    @property
    def bots_dir(self) -> Path:
        return self.data_dir / "bots"

    @property
    def outbox_path(self) -> Path:
        return self.data_dir / "deployments.jsonl"

    @property
    def audit_dir(self) -> Path:
        return self.data_dir / "audit"


class Settings(BaseModel):
    """Root configuration state."""

    server: ServerSettings = Field(default_factory=ServerSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    def webhook_secret(self) -> Optional[str]:
        """Plain webhook secret, or None when running unsecured."""
        if self.webhook.secret is None:
            return None
        value = self.webhook.secret.get_secret_value()
        if not value or value == MASKED_SECRET:
            return None
        return value


@dataclass
class SecretStore:
    """Keyring abstraction for storing credentials."""

    service_name: str = DEFAULT_SECRETS_SERVICE
    keyring_module: Any = field(default=keyring)

    def set_secret(self, key: str, value: str) -> None:
        if self.keyring_module is None:
            raise RuntimeError("Keyring module not configured")
        self.keyring_module.set_password(self.service_name, key, value)

    def get_secret(self, key: str) -> Optional[str]:
        if self.keyring_module is None:
            return None
        try:
            return self.keyring_module.get_password(self.service_name, key)
        except keyring.errors.KeyringError as exc:
            logger.warning(f"Keychain unavailable, cannot read {key}: {exc}")
            return None

    def delete_secret(self, key: str) -> None:
        if self.keyring_module is None:
            return
        try:
            self.keyring_module.delete_password(self.service_name, key)
        except keyring.errors.PasswordDeleteError:
            return


def load_settings(path: Path = DEFAULT_CONFIG_PATH) -> Settings:
    """Load settings from disk or raise if invalid."""

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found at {path}")
    payload = json.loads(path.read_text())
    try:
        return Settings.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def save_settings(settings: Settings, path: Path = DEFAULT_CONFIG_PATH) -> None:
    """Persist settings to disk with masked secrets."""

    payload = settings.model_dump(mode="json")
    payload = _mask_secret_fields(payload)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))


def bootstrap_settings(
    *,
    path: Path = DEFAULT_CONFIG_PATH,
    secret_store: SecretStore | None = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> Settings:
    """Create or load settings respecting overrides and ``BOTFORGE_*`` variables.

    A plain secret found in the file or in ``overrides`` is moved into the
    keychain before the file is rewritten with the secret masked.
    """

    secret_store = secret_store or SecretStore()
    overrides = overrides or {}

    if path.exists():
        settings = load_settings(path)
    else:
        settings = Settings()
        save_settings(settings, path)

    merged = settings.model_dump(mode="python")
    merged = _apply_overrides(merged, overrides)
    _store_plain_secret(merged, secret_store)
    merged = _apply_env_overrides(merged)

    resolved = Settings.model_validate(merged)
    _ensure_directories(resolved)
    _hydrate_secrets(resolved, secret_store)
    save_settings(resolved, path)
    return resolved


def rotate_secret(*, secret_store: SecretStore, key: str, new_value: str) -> None:
    """Replace a stored secret."""

    secret_store.set_secret(key, new_value)


def _apply_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = base.copy()
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _apply_overrides(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    server = data.setdefault("server", {})
    _set_env_override(server, "listen_host", "BOTFORGE_LISTEN_HOST")
    _set_env_override(server, "listen_port", "BOTFORGE_LISTEN_PORT", cast_int=True)
    _set_env_override(server, "public_url", "BOTFORGE_PUBLIC_URL")

    webhook = data.setdefault("webhook", {})
    _set_env_override(webhook, "secret", "BOTFORGE_WEBHOOK_SECRET")
    _set_env_override(webhook, "relevance_markers", "BOTFORGE_RELEVANCE_MARKERS", cast_list=True)

    github = data.setdefault("github", {})
    _set_env_override(github, "api_base_url", "BOTFORGE_GITHUB_API_URL")

    discord = data.setdefault("discord", {})
    _set_env_override(discord, "api_base_url", "BOTFORGE_DISCORD_API_URL")

    storage = data.setdefault("storage", {})
    _set_env_override(storage, "data_dir", "BOTFORGE_DATA_DIR")
    return data


def _set_env_override(
    mapping: Dict[str, Any],
    key: str,
    env_name: str,
    *,
    cast_int: bool = False,
    cast_list: bool = False,
) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    if cast_int:
        mapping[key] = int(raw)
    elif cast_list:
        mapping[key] = [item.strip() for item in raw.split(",") if item.strip()]
    else:
        mapping[key] = raw


def _secret_value(raw: Any) -> Optional[str]:
    if raw is None:
        return None
    if isinstance(raw, SecretStr):
        return raw.get_secret_value()
    return str(raw)


def _store_plain_secret(data: Dict[str, Any], secret_store: SecretStore) -> None:
    webhook = data.get("webhook") or {}
    value = _secret_value(webhook.get("secret"))
    if value and value != MASKED_SECRET:
        secret_store.set_secret(WEBHOOK_SECRET_KEY, value)


def _ensure_directories(settings: Settings) -> None:
    storage = settings.storage
    for directory in (storage.data_dir, storage.repositories_dir, storage.bots_dir, storage.audit_dir):
        directory.expanduser().mkdir(parents=True, exist_ok=True)


def _hydrate_secrets(settings: Settings, secret_store: SecretStore) -> None:
    if settings.webhook_secret() is not None:
        return
    stored = secret_store.get_secret(WEBHOOK_SECRET_KEY)
    settings.webhook.secret = SecretStr(stored) if stored else None


def _mask_secret_fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    webhook = payload.get("webhook", {})
    if webhook.get("secret"):
        webhook["secret"] = MASKED_SECRET
    return payload


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_DATA_DIR",
    "DiscordSettings",
    "GitHubSettings",
    "MASKED_SECRET",
    "SecretStore",
    "ServerSettings",
    "Settings",
    "StorageSettings",
    "WEBHOOK_SECRET_KEY",
    "WebhookSettings",
    "bootstrap_settings",
    "load_settings",
    "rotate_secret",
    "save_settings",
]
