"""Shared fixtures for sync tests."""

from datetime import datetime, timezone
from typing import List
from unittest.mock import Mock

import pytest

from botforge.sync.bot_registry import BotRegistry
from botforge.sync.models import DeploymentIntent
from botforge.sync.redeploy import OutboxDeploymentSink, RedeployTrigger
from botforge.sync.state_store import SyncStateStore


class RecordingSink:
    """Deployment sink that keeps intents in memory."""

    def __init__(self) -> None:
        self.intents: List[DeploymentIntent] = []

    def submit(self, intent: DeploymentIntent) -> None:
        self.intents.append(intent)


class FailingSink:
    """Deployment sink whose collaborator is down."""

    def __init__(self) -> None:
        self.calls = 0

    def submit(self, intent: DeploymentIntent) -> None:
        self.calls += 1
        raise RuntimeError("deployer unreachable")


@pytest.fixture
def state_store(tmp_path):
    """Sync state store in a temp directory."""
    return SyncStateStore(tmp_path / "repositories", lock_timeout=2.0)


@pytest.fixture
def bot_registry(tmp_path, state_store):
    """Bot registry sharing the temp state store."""
    return BotRegistry(tmp_path / "bots", state_store=state_store, lock_timeout=2.0)


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def failing_sink():
    return FailingSink()


@pytest.fixture
def outbox_sink(tmp_path):
    return OutboxDeploymentSink(tmp_path / "deployments.jsonl")


@pytest.fixture
def trigger(recording_sink):
    return RedeployTrigger(recording_sink)


@pytest.fixture
def mock_audit_logger():
    """Audit logger mock."""
    logger = Mock()
    logger.record = Mock()
    logger.record_action = Mock()
    return logger


@pytest.fixture
def push_time():
    return datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
