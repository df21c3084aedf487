"""Discord REST client used by the bot test action.

Only token validation lives here. Checking bot source is delegated to
pluggable validators; none are installed by default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional

import requests
from pydantic import BaseModel, Field

from botforge.errors import (
    AuthenticationError,
    MissingCredentialError,
    SourceValidationError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_DISCORD_API_BASE_URL = "https://discord.com/api/v10"

SourceValidator = Callable[[str], None]
"""Raises SourceValidationError when the source is unacceptable."""


class BotIdentity(BaseModel):
    """Public identity of a Discord bot user."""

    id: str = Field(..., description="Bot user id")
    username: str = Field(..., description="Bot username")
    discriminator: Optional[str] = Field(default=None, description="Legacy discriminator")
    avatar: Optional[str] = Field(default=None, description="Avatar hash")


@dataclass
class DiscordBotClient:
    """Minimal Discord REST client."""

    api_base_url: str = DEFAULT_DISCORD_API_BASE_URL
    timeout: float = 10.0

    def __post_init__(self) -> None:
        self.api_base_url = self.api_base_url.rstrip("/")
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "BotForgeStudio (https://botforge.dev, 1.0)"})

    def validate_token(self, bot_token: Optional[str]) -> BotIdentity:
        """Resolve a bot token to the bot's identity.

        Raises:
            MissingCredentialError: No token given
            AuthenticationError: Discord rejected the token
            UpstreamUnavailableError: Timeout, connection error or 5xx
        """
        if not bot_token:
            raise MissingCredentialError("Bot token is required")

        try:
            response = self.session.get(
                f"{self.api_base_url}/users/@me",
                headers={"Authorization": f"Bot {bot_token}"},
                timeout=self.timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise UpstreamUnavailableError(f"Discord request failed: {e}") from e

        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid bot token")
        if response.status_code == 429 or response.status_code >= 500:
            raise UpstreamUnavailableError(f"Discord API error: {response.status_code}")
        response.raise_for_status()

        data = response.json()
        return BotIdentity(
            id=str(data["id"]),
            username=data.get("username", ""),
            discriminator=data.get("discriminator"),
            avatar=data.get("avatar"),
        )


@dataclass
class BotTester:
    """Runs the dashboard's "test bot" action: token check, then validators."""

    discord_client: DiscordBotClient
    validators: List[SourceValidator] = field(default_factory=list)

    def run(self, bot_token: Optional[str], source_code: str) -> BotIdentity:
        """Validate the token and the source.

        Raises:
            AuthenticationError: Token missing or rejected
            SourceValidationError: A validator rejected the source
            UpstreamUnavailableError: Discord unreachable
        """
        identity = self.discord_client.validate_token(bot_token)
        run_source_validators(source_code, self.validators)
        logger.info(f"Bot test passed for {identity.id}", extra={"discord_bot_id": identity.id})
        return identity


def run_source_validators(source_code: str, validators: Iterable[SourceValidator]) -> None:
    """Run every validator, stopping at the first rejection."""
    for validator in validators:
        try:
            validator(source_code)
        except SourceValidationError:
            raise
        except ValueError as exc:
            raise SourceValidationError(f"Code validation failed: {exc}") from exc


__all__ = [
    "BotIdentity",
    "BotTester",
    "DEFAULT_DISCORD_API_BASE_URL",
    "DiscordBotClient",
    "SourceValidator",
    "run_source_validators",
]
