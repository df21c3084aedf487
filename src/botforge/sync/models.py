"""Data models for repository sync.

This module defines the Pydantic models shared by the webhook pipeline, the
sync state store, the bot registry and the push client. All timestamps are
timezone-aware (UTC).
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from botforge.errors import InvalidRepositoryIdentityError

_IDENTITY_PART = re.compile(r"^[A-Za-z0-9_.-]+$")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalize aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def split_repository_identity(identity: str) -> Tuple[str, str]:
    """Split ``owner/name`` into its parts.

    Raises:
        InvalidRepositoryIdentityError: If the identity is not ``owner/name``
    """
    if not isinstance(identity, str):
        raise InvalidRepositoryIdentityError(repr(identity))
    parts = identity.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidRepositoryIdentityError(identity)
    owner, name = parts
    if not _IDENTITY_PART.match(owner) or not _IDENTITY_PART.match(name):
        raise InvalidRepositoryIdentityError(identity)
    if name in {".", ".."}:
        raise InvalidRepositoryIdentityError(identity)
    return owner, name


def compute_source_version(source_code: str) -> str:
    """Content hash used as the bot source version tag."""
    return hashlib.sha256(source_code.encode("utf-8")).hexdigest()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse GitHub timestamps (ISO 8601 strings or epoch seconds)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Visibility(str, Enum):
    """Repository visibility."""

    PUBLIC = "public"
    PRIVATE = "private"


class EventKind(str, Enum):
    """Classified webhook event kind."""

    PUSH = "push"
    OTHER = "other"


class BotStatus(str, Enum):
    """Lifecycle status shown on the dashboard."""

    OFFLINE = "offline"
    ONLINE = "online"
    DEPLOYED = "deployed"


class SyncWriteStatus(str, Enum):
    """What ``record_sync`` did with a write."""

    APPLIED = "applied"  # state changed
    DUPLICATE = "duplicate"  # identical tuple already stored
    STALE = "stale"  # older than last_sync_at, rejected


class TriggerOutcome(str, Enum):
    """Result of a redeploy decision."""

    TRIGGERED = "triggered"
    SKIPPED_NO_LINK = "skipped_no_link"
    SKIPPED_NOT_RELEVANT = "skipped_not_relevant"
    SKIPPED_DUPLICATE = "skipped_duplicate"  # redelivered or out-of-order event
    EMIT_FAILED = "emit_failed"


class PushOutcome(str, Enum):
    """Result of a conditional file push."""

    CREATED = "created"
    UPDATED = "updated"
    CONFLICT = "conflict"
    ERROR = "error"


class PushErrorKind(str, Enum):
    """Failure class for ``PushOutcome.ERROR``."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    REJECTED = "rejected"


# ---------------------------------------------------------------------------
# Repository Link
# ---------------------------------------------------------------------------


class RepositoryLink(BaseModel):
    """Durable association between one repository and at most one bot.

    Attributes:
        repository_identity: Repository full name (owner/name), unique key
        linked_bot_id: Bot receiving redeploys for this repository
        last_sync_at: Time of the latest accepted sync (never decreases)
        last_commit_count: Commit count reported by the latest sync
        visibility: Repository visibility
    """

    model_config = ConfigDict(validate_assignment=True)

    repository_identity: str = Field(..., description="Repository full name (owner/name)")
    linked_bot_id: Optional[str] = Field(default=None, description="Linked bot id")
    last_sync_at: Optional[datetime] = Field(default=None, description="Latest accepted sync time")
    last_commit_count: int = Field(default=0, ge=0, description="Commits in the latest sync")
    visibility: Visibility = Field(default=Visibility.PUBLIC, description="Repository visibility")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("repository_identity")
    @classmethod
    def _validate_identity(cls, value: str) -> str:
        try:
            split_repository_identity(value)
        except InvalidRepositoryIdentityError as exc:
            raise ValueError(exc.message) from exc
        return value.strip()

    @field_validator("last_sync_at", "created_at", "updated_at")
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime has timezone info (UTC)."""
        if value is None:
            return None
        return ensure_utc(value)

    @property
    def owner(self) -> str:
        return self.repository_identity.split("/")[0]

    @property
    def repo_name(self) -> str:
        return self.repository_identity.split("/")[1]


class SyncRecord(BaseModel):
    """Stored link plus what ``record_sync`` did to it."""

    link: RepositoryLink
    status: SyncWriteStatus

    @property
    def applied(self) -> bool:
        return self.status == SyncWriteStatus.APPLIED


# ---------------------------------------------------------------------------
# Bot Artifact
# ---------------------------------------------------------------------------


class BotArtifact(BaseModel):
    """A bot's current source code and metadata.

    ``source_version`` is the SHA-256 of ``source_code`` and is recomputed on
    every construction, so the two can never drift apart.
    """

    bot_id: str = Field(..., description="Opaque bot identifier")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    owner_id: str = Field(..., description="Id of the user owning the bot")
    source_code: str = Field(default="", description="Bot source code")
    source_version: str = Field(default="", description="Content hash of source_code")
    status: BotStatus = Field(default=BotStatus.OFFLINE)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def model_post_init(self, __context: object) -> None:
        self.source_version = compute_source_version(self.source_code)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ---------------------------------------------------------------------------
# Inbound Event
# ---------------------------------------------------------------------------


class InboundEvent(BaseModel):
    """A verified, classified webhook notification (never persisted).

    Attributes:
        repository_identity: Repository full name, empty for events without one
        event_kind: push or other
        changed_paths: Union of added, modified and removed paths
        commit_count: Number of commits in the push
        delivery_id: X-GitHub-Delivery header value
        occurred_at: Push time from the payload (idempotency timestamp)
        event_type: Raw X-GitHub-Event header value
        signature_verified: False when processed in unsecured mode
    """

    model_config = ConfigDict(frozen=True)

    repository_identity: str = ""
    event_kind: EventKind
    changed_paths: FrozenSet[str] = Field(default_factory=frozenset)
    commit_count: int = Field(default=0, ge=0)
    delivery_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    event_type: str = ""
    signature_verified: bool = True

    @field_validator("occurred_at")
    @classmethod
    def _ensure_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        return ensure_utc(value)

    @property
    def is_push(self) -> bool:
        return self.event_kind == EventKind.PUSH


# ---------------------------------------------------------------------------
# Deployment Intent
# ---------------------------------------------------------------------------


class DeploymentIntent(BaseModel):
    """Record handed to the external deployment collaborator."""

    bot_id: str
    trigger_reason: str
    timestamp: datetime = Field(default_factory=utcnow)
    repository_identity: Optional[str] = None
    delivery_id: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ---------------------------------------------------------------------------
# Push Result
# ---------------------------------------------------------------------------


class PushResult(BaseModel):
    """Outcome of ``GitHubContentsClient.push_file``."""

    outcome: PushOutcome
    repository_identity: str
    path: str
    commit_sha: Optional[str] = None
    content_sha: Optional[str] = None
    previous_sha: Optional[str] = None
    committed_at: Optional[datetime] = None
    error_kind: Optional[PushErrorKind] = None
    retryable: bool = False
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (PushOutcome.CREATED, PushOutcome.UPDATED)


__all__ = [
    "BotArtifact",
    "BotStatus",
    "DeploymentIntent",
    "EventKind",
    "InboundEvent",
    "PushErrorKind",
    "PushOutcome",
    "PushResult",
    "RepositoryLink",
    "SyncRecord",
    "SyncWriteStatus",
    "TriggerOutcome",
    "Visibility",
    "compute_source_version",
    "ensure_utc",
    "parse_timestamp",
    "split_repository_identity",
    "utcnow",
]
