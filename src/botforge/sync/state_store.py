"""Persistent repository link and sync state storage.

One JSON document per repository identity, written atomically under a
per-identity file lock. Writes for the same repository serialize on that
lock; different repositories never contend.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional

from filelock import FileLock, Timeout
from pydantic import ValidationError as PydanticValidationError

from botforge.errors import StoreUnavailableError, ValidationError

from .models import (
    RepositoryLink,
    SyncRecord,
    SyncWriteStatus,
    Visibility,
    ensure_utc,
    split_repository_identity,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".botforge" / "data" / "repositories"


class SyncStateStore:
    """Durable mapping from repository identity to sync metadata.

    ``last_sync_at`` never moves backwards: ``record_sync`` rejects writes
    older than the stored value and treats a repeat of the stored
    ``(commit_count, timestamp)`` as a no-op, so webhook redeliveries are
    safe to apply again.

    Example:
        >>> store = SyncStateStore(Path("/tmp/botforge/repos"))
        >>> record = store.record_sync("octocat/bot", 2, datetime.now(timezone.utc))
        >>> record.status
        <SyncWriteStatus.APPLIED: 'applied'>
    """

    def __init__(self, state_dir: Optional[Path] = None, *, lock_timeout: float = 10.0):
        """Initialize the store.

        Args:
            state_dir: Directory for link files (default: ~/.botforge/data/repositories/)
            lock_timeout: Seconds to wait for a per-repository lock
        """
        if state_dir is None:
            state_dir = DEFAULT_STATE_DIR

        self.state_dir = state_dir.expanduser().resolve()
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.lock_timeout = lock_timeout

    # ------------------------------------------------------------------
    # Paths and locking
    # ------------------------------------------------------------------

    @staticmethod
    def _key(repository_identity: str) -> str:
        owner, name = split_repository_identity(repository_identity)
        # '@' cannot appear in GitHub owner or repository names.
        return f"{owner}@{name}".lower()

    def _state_path(self, repository_identity: str) -> Path:
        return self.state_dir / f"{self._key(repository_identity)}.json"

    def _lock_path(self, repository_identity: str) -> Path:
        return self.state_dir / f"{self._key(repository_identity)}.lock"

    @contextmanager
    def _locked(self, repository_identity: str) -> Iterator[None]:
        lock = FileLock(str(self._lock_path(repository_identity)), timeout=self.lock_timeout)
        try:
            with lock:
                yield
        except Timeout as exc:
            raise StoreUnavailableError(
                f"Timed out waiting for state lock of {repository_identity}"
            ) from exc
        except OSError as exc:
            raise StoreUnavailableError(
                f"State store I/O failed for {repository_identity}: {exc}"
            ) from exc

    def _read(self, repository_identity: str) -> Optional[RepositoryLink]:
        state_path = self._state_path(repository_identity)
        if not state_path.exists():
            return None
        try:
            return RepositoryLink.model_validate(json.loads(state_path.read_text()))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            logger.error(
                f"Corrupted state file for {repository_identity}",
                extra={"repository": repository_identity},
            )
            raise StoreUnavailableError(
                f"State for {repository_identity} is unreadable"
            ) from exc

    def _write(self, link: RepositoryLink) -> None:
        state_path = self._state_path(link.repository_identity)
        tmp_path = state_path.with_suffix(".tmp")
        tmp_path.write_text(link.model_dump_json(indent=2))
        os.replace(tmp_path, state_path)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, repository_identity: str) -> Optional[RepositoryLink]:
        """Load the link for a repository, or None if it is not connected."""
        with self._locked(repository_identity):
            return self._read(repository_identity)

    def get_linked_bot(self, repository_identity: str) -> Optional[str]:
        """Return the bot linked to a repository, if any."""
        link = self.load(repository_identity)
        return link.linked_bot_id if link else None

    def list_all(self) -> List[RepositoryLink]:
        """List all repository links, skipping unreadable files."""
        links: List[RepositoryLink] = []
        for state_file in sorted(self.state_dir.glob("*.json")):
            try:
                links.append(RepositoryLink.model_validate(json.loads(state_file.read_text())))
            except (OSError, json.JSONDecodeError, PydanticValidationError):
                logger.warning(f"Skipping unreadable state file {state_file.name}")
                continue
        return links

    def find_by_bot(self, bot_id: str) -> List[RepositoryLink]:
        """Repositories currently linked to a bot."""
        return [link for link in self.list_all() if link.linked_bot_id == bot_id]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record_sync(
        self,
        repository_identity: str,
        commit_count: int,
        timestamp: datetime,
    ) -> SyncRecord:
        """Upsert sync metadata for a repository.

        Args:
            repository_identity: Repository full name (owner/name)
            commit_count: Commits in the push (or 1 for an outbound push)
            timestamp: Time of the change being recorded

        Returns:
            SyncRecord with the stored link and APPLIED, DUPLICATE or STALE

        Raises:
            ValidationError: If commit_count is negative
            StoreUnavailableError: If the store cannot be read or written
        """
        if commit_count < 0:
            raise ValidationError(f"commit_count must be non-negative, got {commit_count}")
        timestamp = ensure_utc(timestamp)

        with self._locked(repository_identity):
            link = self._read(repository_identity)

            if link is None:
                link = RepositoryLink(repository_identity=repository_identity)
            elif link.last_sync_at is not None:
                if timestamp < link.last_sync_at:
                    logger.info(
                        f"Ignoring out-of-order sync for {repository_identity}",
                        extra={
                            "repository": repository_identity,
                            "timestamp": timestamp.isoformat(),
                            "last_sync_at": link.last_sync_at.isoformat(),
                        },
                    )
                    return SyncRecord(link=link, status=SyncWriteStatus.STALE)
                if timestamp == link.last_sync_at and commit_count == link.last_commit_count:
                    logger.debug(
                        f"Duplicate sync for {repository_identity}, nothing to do",
                        extra={"repository": repository_identity},
                    )
                    return SyncRecord(link=link, status=SyncWriteStatus.DUPLICATE)

            link.last_sync_at = timestamp
            link.last_commit_count = commit_count
            link.updated_at = utcnow()
            self._write(link)

        logger.info(
            f"Recorded sync for {repository_identity}: {commit_count} commit(s)",
            extra={"repository": repository_identity, "commit_count": commit_count},
        )
        return SyncRecord(link=link, status=SyncWriteStatus.APPLIED)

    def connect_repository(
        self,
        repository_identity: str,
        visibility: Visibility = Visibility.PUBLIC,
    ) -> RepositoryLink:
        """Create the link for a repository, or update its visibility."""
        with self._locked(repository_identity):
            link = self._read(repository_identity)
            if link is None:
                link = RepositoryLink(repository_identity=repository_identity, visibility=visibility)
                logger.info(
                    f"Connected repository {repository_identity}",
                    extra={"repository": repository_identity},
                )
            elif link.visibility == visibility:
                return link
            else:
                link.visibility = visibility
                link.updated_at = utcnow()
            self._write(link)
            return link

    def link_repository(
        self,
        repository_identity: str,
        bot_id: str,
        visibility: Optional[Visibility] = None,
    ) -> RepositoryLink:
        """Link a repository to a bot.

        Re-linking to the same bot is a no-op. Re-linking to a different bot
        overwrites the previous link and is logged as a notable event.
        """
        if not bot_id or not isinstance(bot_id, str):
            raise ValidationError("bot_id is required to link a repository")

        with self._locked(repository_identity):
            link = self._read(repository_identity)
            if link is None:
                link = RepositoryLink(
                    repository_identity=repository_identity,
                    visibility=visibility or Visibility.PUBLIC,
                )
            elif link.linked_bot_id == bot_id and (
                visibility is None or visibility == link.visibility
            ):
                return link

            previous = link.linked_bot_id
            if previous and previous != bot_id:
                logger.warning(
                    f"Repository {repository_identity} re-linked from bot {previous} to {bot_id}",
                    extra={
                        "repository": repository_identity,
                        "previous_bot_id": previous,
                        "bot_id": bot_id,
                    },
                )

            link.linked_bot_id = bot_id
            if visibility is not None:
                link.visibility = visibility
            link.updated_at = utcnow()
            self._write(link)

        logger.info(
            f"Repository {repository_identity} linked to bot {bot_id}",
            extra={"repository": repository_identity, "bot_id": bot_id},
        )
        return link

    def unlink_repository(self, repository_identity: str) -> Optional[RepositoryLink]:
        """Clear the bot link of a repository, keeping its sync metadata."""
        with self._locked(repository_identity):
            link = self._read(repository_identity)
            if link is None or link.linked_bot_id is None:
                return link
            link.linked_bot_id = None
            link.updated_at = utcnow()
            self._write(link)
            return link

    def unlink_bot(self, bot_id: str) -> List[str]:
        """Clear every reference to a bot. Returns the affected repositories."""
        cleared: List[str] = []
        for link in self.find_by_bot(bot_id):
            with self._locked(link.repository_identity):
                current = self._read(link.repository_identity)
                if current is None or current.linked_bot_id != bot_id:
                    continue
                current.linked_bot_id = None
                current.updated_at = utcnow()
                self._write(current)
                cleared.append(current.repository_identity)
        return cleared

    def disconnect_repository(self, repository_identity: str) -> bool:
        """Delete a repository link. The linked bot itself is untouched.

        Returns:
            True if deleted, False if it did not exist
        """
        state_path = self._state_path(repository_identity)
        with self._locked(repository_identity):
            if not state_path.exists():
                return False
            state_path.unlink()

        logger.info(
            f"Disconnected repository {repository_identity}",
            extra={"repository": repository_identity},
        )
        return True


__all__ = ["DEFAULT_STATE_DIR", "SyncStateStore"]
