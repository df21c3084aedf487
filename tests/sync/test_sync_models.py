"""Tests for sync data models and helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from botforge.errors import InvalidRepositoryIdentityError
from botforge.sync.models import (
    BotArtifact,
    InboundEvent,
    EventKind,
    PushOutcome,
    PushResult,
    RepositoryLink,
    compute_source_version,
    ensure_utc,
    parse_timestamp,
    split_repository_identity,
)


class TestRepositoryIdentity:
    def test_split(self):
        assert split_repository_identity("octocat/discord-bot") == ("octocat", "discord-bot")

    def test_strips_whitespace(self):
        assert split_repository_identity(" octocat/bot ") == ("octocat", "bot")

    @pytest.mark.parametrize(
        "identity",
        ["", "octocat", "octocat/", "/bot", "a/b/c", "octo cat/bot", "octocat/..", None],
    )
    def test_rejects_malformed(self, identity):
        with pytest.raises(InvalidRepositoryIdentityError):
            split_repository_identity(identity)

    def test_link_validates_identity(self):
        with pytest.raises(PydanticValidationError):
            RepositoryLink(repository_identity="not-a-repo")

    def test_link_owner_and_name(self):
        link = RepositoryLink(repository_identity="octocat/discord-bot")
        assert link.owner == "octocat"
        assert link.repo_name == "discord-bot"
        assert link.linked_bot_id is None
        assert link.last_commit_count == 0

    def test_link_validates_assignment(self):
        link = RepositoryLink(repository_identity="octocat/discord-bot")
        with pytest.raises(PydanticValidationError):
            link.linked_bot_id = 123
        assert link.linked_bot_id is None


class TestTimestamps:
    def test_ensure_utc_attaches_timezone(self):
        naive = datetime(2024, 1, 1, 12, 0)
        assert ensure_utc(naive).tzinfo == timezone.utc

    def test_ensure_utc_normalizes_offset(self):
        local = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert ensure_utc(local) == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(local).utcoffset() == timedelta(0)

    def test_parse_iso_with_z(self):
        assert parse_timestamp("2024-05-01T12:00:00Z") == datetime(
            2024, 5, 1, 12, 0, tzinfo=timezone.utc
        )

    def test_parse_iso_with_offset(self):
        parsed = parse_timestamp("2024-05-01T14:00:00+02:00")
        assert parsed == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_parse_epoch(self):
        assert parse_timestamp(1714564800) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", True, [], 10**20])
    def test_parse_invalid_returns_none(self, value):
        assert parse_timestamp(value) is None


class TestBotArtifact:
    def test_version_is_content_hash(self):
        bot = BotArtifact(bot_id="b1", name="Helper", owner_id="u1", source_code="x")
        assert bot.source_version == compute_source_version("x")

    def test_version_cannot_be_forged(self):
        bot = BotArtifact(
            bot_id="b1", name="Helper", owner_id="u1", source_code="x", source_version="fake"
        )
        assert bot.source_version == compute_source_version("x")

    def test_name_required(self):
        with pytest.raises(PydanticValidationError):
            BotArtifact(bot_id="b1", name="", owner_id="u1")


def test_inbound_event_is_frozen():
    event = InboundEvent(event_kind=EventKind.PUSH, repository_identity="octocat/bot")
    with pytest.raises(PydanticValidationError):
        event.commit_count = 5


def test_push_result_succeeded():
    ok = PushResult(outcome=PushOutcome.CREATED, repository_identity="o/r", path="bot.js")
    conflict = PushResult(outcome=PushOutcome.CONFLICT, repository_identity="o/r", path="bot.js")
    assert ok.succeeded
    assert not conflict.succeeded
