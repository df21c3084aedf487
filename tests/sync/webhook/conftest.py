"""Shared fixtures and mocks for webhook tests."""

import json
from typing import Any, Dict, List, Optional

import pytest

from botforge.sync.webhook.handler import WebhookProcessor
from botforge.sync.webhook.security import compute_signature

WEBHOOK_SECRET = "test-webhook-secret-1234"


# ---------------------------------------------------------------------------
# Mock aiohttp Components
# ---------------------------------------------------------------------------


class MockRequest:
    """Mock aiohttp.web.Request for testing."""

    def __init__(
        self,
        headers: Optional[Dict[str, str]] = None,
        body: bytes = b"",
        json_data: Optional[Dict[str, Any]] = None,
        match_info: Optional[Dict[str, str]] = None,
    ):
        self.headers = headers or {}
        self.match_info = match_info or {}
        self._body = json.dumps(json_data).encode("utf-8") if json_data is not None else body

    async def read(self) -> bytes:
        """Mock read method."""
        return self._body

    async def json(self) -> Dict[str, Any]:
        """Mock json method."""
        return json.loads(self._body.decode("utf-8"))


@pytest.fixture
def mock_request():
    """Factory for mock requests."""
    return MockRequest


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


def build_push_payload(
    repository: str = "octocat/discord-bot",
    commits: Optional[List[Dict[str, Any]]] = None,
    head_timestamp: Optional[str] = "2024-05-01T12:00:00Z",
) -> Dict[str, Any]:
    """GitHub push payload with the fields the pipeline reads."""
    if commits is None:
        commits = [{"id": "a1b2c3d", "added": [], "modified": ["src/bot.js"], "removed": []}]
    payload: Dict[str, Any] = {
        "ref": "refs/heads/main",
        "repository": {"full_name": repository, "pushed_at": 1714564800},
        "commits": commits,
    }
    if head_timestamp is not None:
        payload["head_commit"] = {"id": "a1b2c3d", "timestamp": head_timestamp}
    return payload


@pytest.fixture
def push_payload():
    return build_push_payload


@pytest.fixture
def webhook_secret():
    return WEBHOOK_SECRET


@pytest.fixture
def signed_delivery():
    """Build (body, headers) for a delivery signed with the test secret."""

    def _build(
        payload: Dict[str, Any],
        event_type: str = "push",
        delivery_id: str = "delivery-1",
        secret: str = WEBHOOK_SECRET,
    ):
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "X-Hub-Signature-256": compute_signature(body, secret),
            "X-GitHub-Event": event_type,
            "X-GitHub-Delivery": delivery_id,
        }
        return body, headers

    return _build


@pytest.fixture
def processor(state_store, trigger, mock_audit_logger):
    """Processor with the test secret, a recording sink and a mock audit log."""
    return WebhookProcessor(
        state_store,
        trigger,
        secret=WEBHOOK_SECRET,
        audit_logger=mock_audit_logger,
    )
