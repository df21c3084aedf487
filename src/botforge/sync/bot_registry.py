"""File-backed registry of bot artifacts.

Every source mutation names the version it replaces; a mismatch raises
``ConflictError`` instead of overwriting someone else's edit.
"""

from __future__ import annotations

import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError as PydanticValidationError

from botforge.errors import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

from .models import BotArtifact, BotStatus, compute_source_version, utcnow

if TYPE_CHECKING:
    from .state_store import SyncStateStore

logger = logging.getLogger(__name__)

DEFAULT_BOTS_DIR = Path.home() / ".botforge" / "data" / "bots"
_BOT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def is_valid_bot_id(value: object) -> bool:
    """True if ``value`` is a string usable as a bot id."""
    return isinstance(value, str) and _BOT_ID_PATTERN.match(value) is not None

DEFAULT_BOT_TEMPLATE = """\
// Discord Bot Template
const { Client, GatewayIntentBits, EmbedBuilder } = require('discord.js');

const client = new Client({
  intents: [
    GatewayIntentBits.Guilds,
    GatewayIntentBits.GuildMessages,
    GatewayIntentBits.MessageContent
  ]
});

client.once('ready', () => {
  console.log(`Bot is online as ${client.user.tag}`);
  client.user.setActivity('with Discord.js');
});

client.on('messageCreate', async (message) => {
  if (message.author.bot) return;

  if (message.content === '!ping') {
    const embed = new EmbedBuilder()
      .setColor(0x5865F2)
      .setTitle('Pong!')
      .setDescription(`Latency: ${Date.now() - message.createdTimestamp}ms`);
    await message.reply({ embeds: [embed] });
  }

  if (message.content === '!help') {
    const embed = new EmbedBuilder()
      .setColor(0x57F287)
      .setTitle('Bot Commands')
      .addFields(
        { name: '!ping', value: 'Check bot latency', inline: true },
        { name: '!help', value: 'Show this menu', inline: true }
      );
    await message.reply({ embeds: [embed] });
  }
});

client.login(process.env.DISCORD_TOKEN).catch(console.error);
"""


class BotRegistry:
    """Stores bot artifacts, one JSON file per bot."""

    def __init__(
        self,
        bots_dir: Optional[Path] = None,
        *,
        state_store: Optional["SyncStateStore"] = None,
        lock_timeout: float = 10.0,
    ):
        """Initialize registry.

        Args:
            bots_dir: Directory for bot files (default: ~/.botforge/data/bots/)
            state_store: Store whose links are cleared when a bot is deleted
            lock_timeout: Seconds to wait for a per-bot lock
        """
        if bots_dir is None:
            bots_dir = DEFAULT_BOTS_DIR
        self.bots_dir = bots_dir.expanduser().resolve()
        self.bots_dir.mkdir(parents=True, exist_ok=True)
        self.state_store = state_store
        self.lock_timeout = lock_timeout

    def _path(self, bot_id: str) -> Path:
        if not is_valid_bot_id(bot_id):
            raise ValidationError(f"Invalid bot id: {bot_id!r}")
        return self.bots_dir / f"{bot_id}.json"

    def _lock(self, bot_id: str) -> FileLock:
        return FileLock(str(self._path(bot_id).with_suffix(".lock")), timeout=self.lock_timeout)

    def _read(self, bot_id: str) -> Optional[BotArtifact]:
        path = self._path(bot_id)
        if not path.exists():
            return None
        try:
            return BotArtifact.model_validate(json.loads(path.read_text()))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            raise StoreUnavailableError(f"Bot file for {bot_id} is unreadable") from exc

    def _write(self, bot: BotArtifact) -> None:
        path = self._path(bot.bot_id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(bot.model_dump_json(indent=2))
        os.replace(tmp_path, path)

    def _mutate(self, bot_id: str, mutation) -> BotArtifact:
        try:
            with self._lock(bot_id):
                bot = self._read(bot_id)
                if bot is None:
                    raise NotFoundError(f"Bot {bot_id} not found", details={"bot_id": bot_id})
                updated = mutation(bot)
                if updated is not bot:
                    self._write(updated)
                return updated
        except Timeout as exc:
            raise StoreUnavailableError(f"Timed out waiting for lock of bot {bot_id}") from exc
        except OSError as exc:
            raise StoreUnavailableError(f"Bot store I/O failed for {bot_id}: {exc}") from exc

    def create_bot(
        self,
        name: str,
        owner_id: str,
        source_code: Optional[str] = None,
    ) -> BotArtifact:
        """Create a bot with the default template unless code is given."""
        try:
            bot = BotArtifact(
                bot_id=uuid.uuid4().hex,
                name=name,
                owner_id=owner_id,
                source_code=DEFAULT_BOT_TEMPLATE if source_code is None else source_code,
            )
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid bot definition: {exc}") from exc

        try:
            with self._lock(bot.bot_id):
                self._write(bot)
        except (Timeout, OSError) as exc:
            raise StoreUnavailableError(f"Could not save bot {bot.bot_id}") from exc

        logger.info(
            f"Created bot {bot.bot_id}",
            extra={"bot_id": bot.bot_id, "owner_id": owner_id},
        )
        return bot

    def load(self, bot_id: str) -> Optional[BotArtifact]:
        try:
            with self._lock(bot_id):
                return self._read(bot_id)
        except Timeout as exc:
            raise StoreUnavailableError(f"Timed out waiting for lock of bot {bot_id}") from exc

    def get(self, bot_id: str) -> BotArtifact:
        """Load a bot or raise NotFoundError."""
        bot = self.load(bot_id)
        if bot is None:
            raise NotFoundError(f"Bot {bot_id} not found", details={"bot_id": bot_id})
        return bot

    def get_owned(self, bot_id: str, owner_id: str) -> BotArtifact:
        """Load a bot of ``owner_id``.

        A bot owned by someone else raises the same NotFoundError as a
        missing one.
        """
        bot = self.get(bot_id)
        if bot.owner_id != owner_id:
            raise NotFoundError(f"Bot {bot_id} not found", details={"bot_id": bot_id})
        return bot

    def list_all(self) -> List[BotArtifact]:
        bots: List[BotArtifact] = []
        for path in self.bots_dir.glob("*.json"):
            try:
                bots.append(BotArtifact.model_validate(json.loads(path.read_text())))
            except (OSError, json.JSONDecodeError, PydanticValidationError):
                logger.warning(f"Skipping unreadable bot file {path.name}")
        return sorted(bots, key=lambda b: b.created_at, reverse=True)

    def list_for_owner(self, owner_id: str) -> List[BotArtifact]:
        """Bots of one user, newest first."""
        return [bot for bot in self.list_all() if bot.owner_id == owner_id]

    def update_source(
        self,
        bot_id: str,
        source_code: str,
        expected_version: str,
    ) -> BotArtifact:
        """Replace a bot's source code if it is still at ``expected_version``.

        Saving identical code is a no-op and keeps the version.

        Raises:
            ConflictError: If the stored version differs from expected_version
            NotFoundError: If the bot does not exist
        """

        def _apply(bot: BotArtifact) -> BotArtifact:
            if bot.source_version != expected_version:
                raise ConflictError(
                    f"Bot {bot_id} source changed since it was read",
                    expected_version=expected_version,
                    actual_version=bot.source_version,
                )
            if compute_source_version(source_code) == bot.source_version:
                return bot
            # Validate a fresh model so source_version is recomputed.
            return BotArtifact.model_validate(
                {**bot.model_dump(), "source_code": source_code, "updated_at": utcnow()}
            )

        updated = self._mutate(bot_id, _apply)
        logger.info(
            f"Saved source for bot {bot_id}",
            extra={"bot_id": bot_id, "source_version": updated.source_version},
        )
        return updated

    def set_status(self, bot_id: str, status: BotStatus) -> BotArtifact:
        def _apply(bot: BotArtifact) -> BotArtifact:
            if bot.status == status:
                return bot
            return bot.model_copy(update={"status": status, "updated_at": utcnow()})

        return self._mutate(bot_id, _apply)

    def delete_bot(self, bot_id: str) -> bool:
        """Delete a bot and clear repository links pointing at it."""
        path = self._path(bot_id)
        try:
            with self._lock(bot_id):
                if not path.exists():
                    return False
                path.unlink()
        except (Timeout, OSError) as exc:
            raise StoreUnavailableError(f"Could not delete bot {bot_id}") from exc

        if self.state_store is not None:
            cleared = self.state_store.unlink_bot(bot_id)
            if cleared:
                logger.info(
                    f"Unlinked {len(cleared)} repositories from deleted bot {bot_id}",
                    extra={"bot_id": bot_id, "repositories": cleared},
                )
        return True


__all__ = ["DEFAULT_BOTS_DIR", "DEFAULT_BOT_TEMPLATE", "BotRegistry", "is_valid_bot_id"]
