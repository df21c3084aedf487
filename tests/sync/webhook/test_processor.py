"""Tests for the webhook processing pipeline."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from botforge.errors import InvalidSignatureError, MalformedPayload, StoreUnavailableError
from botforge.sync.models import EventKind, SyncWriteStatus, TriggerOutcome
from botforge.sync.redeploy import RedeployTrigger
from botforge.sync.relevance import RelevanceFilter
from botforge.sync.webhook.handler import WebhookProcessor


# ---------------------------------------------------------------------------
# Scenarios
# ---------------------------------------------------------------------------


def test_issue_comment_is_acknowledged_without_mutation(
    processor, state_store, recording_sink, signed_delivery
):
    body, headers = signed_delivery(
        {"action": "created", "repository": {"full_name": "octocat/discord-bot"}},
        event_type="issue_comment",
    )

    result = processor.process(body, headers)

    assert result.event_kind == EventKind.OTHER
    assert result.ignored
    assert result.sync_status is None
    assert result.trigger_outcome is None
    assert state_store.list_all() == []
    assert recording_sink.intents == []
    assert result.to_response()["status"] == "ignored"


def test_readme_only_push_records_sync_but_skips_trigger(
    processor, state_store, recording_sink, signed_delivery, push_payload
):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    payload = push_payload(commits=[{"modified": ["readme.md"]}])
    body, headers = signed_delivery(payload)

    result = processor.process(body, headers)

    assert result.sync_status == SyncWriteStatus.APPLIED
    assert result.trigger_outcome == TriggerOutcome.SKIPPED_NOT_RELEVANT
    assert recording_sink.intents == []
    link = state_store.load("octocat/discord-bot")
    assert link.last_commit_count == 1
    assert link.last_sync_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_bot_file_push_with_link_triggers_once(
    processor, state_store, recording_sink, signed_delivery, push_payload
):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    body, headers = signed_delivery(push_payload(), delivery_id="abc-123")

    result = processor.process(body, headers)

    assert result.trigger_outcome == TriggerOutcome.TRIGGERED
    assert result.bot_id == "bot-1"
    assert len(recording_sink.intents) == 1
    intent = recording_sink.intents[0]
    assert intent.bot_id == "bot-1"
    assert intent.trigger_reason == "repository_push"
    assert intent.repository_identity == "octocat/discord-bot"
    assert intent.delivery_id == "abc-123"
    assert result.to_response()["trigger"] == "triggered"


def test_bot_file_push_without_link_records_and_skips(
    processor, state_store, recording_sink, signed_delivery, push_payload
):
    body, headers = signed_delivery(push_payload())

    result = processor.process(body, headers)

    assert result.sync_status == SyncWriteStatus.APPLIED
    assert result.trigger_outcome == TriggerOutcome.SKIPPED_NO_LINK
    assert recording_sink.intents == []
    assert state_store.load("octocat/discord-bot").linked_bot_id is None


def test_redelivery_does_not_trigger_twice(
    processor, state_store, recording_sink, signed_delivery, push_payload
):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    body, headers = signed_delivery(push_payload())

    first = processor.process(body, headers)
    second = processor.process(body, headers)

    assert first.trigger_outcome == TriggerOutcome.TRIGGERED
    assert second.sync_status == SyncWriteStatus.DUPLICATE
    assert second.trigger_outcome == TriggerOutcome.SKIPPED_DUPLICATE
    assert len(recording_sink.intents) == 1


def test_out_of_order_push_is_stale(
    processor, state_store, recording_sink, signed_delivery, push_payload
):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    newer, newer_headers = signed_delivery(push_payload(head_timestamp="2024-05-02T00:00:00Z"))
    older, older_headers = signed_delivery(push_payload(head_timestamp="2024-05-01T00:00:00Z"))

    processor.process(newer, newer_headers)
    result = processor.process(older, older_headers)

    assert result.sync_status == SyncWriteStatus.STALE
    assert len(recording_sink.intents) == 1
    link = state_store.load("octocat/discord-bot")
    assert link.last_sync_at == datetime(2024, 5, 2, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Failure Handling
# ---------------------------------------------------------------------------


def test_invalid_signature_aborts_before_parsing(
    processor, state_store, recording_sink, signed_delivery, push_payload, mock_audit_logger
):
    body, headers = signed_delivery(push_payload(), secret="some-other-secret")

    with pytest.raises(InvalidSignatureError):
        processor.process(body, headers)

    assert state_store.list_all() == []
    assert recording_sink.intents == []
    actions = [call.kwargs["action"] for call in mock_audit_logger.record_action.call_args_list]
    assert actions == ["webhook_signature_rejected"]


def test_missing_signature_is_rejected(processor, push_payload, signed_delivery):
    body, headers = signed_delivery(push_payload())
    del headers["X-Hub-Signature-256"]

    with pytest.raises(InvalidSignatureError):
        processor.process(body, headers)


def test_malformed_payload_aborts_before_store(processor, state_store, signed_delivery):
    body, headers = signed_delivery({"commits": []})

    with pytest.raises(MalformedPayload):
        processor.process(body, headers)

    assert state_store.list_all() == []


def test_store_failure_prevents_trigger(recording_sink, signed_delivery, push_payload, webhook_secret):
    store = Mock()
    store.record_sync.side_effect = StoreUnavailableError("disk full")
    processor = WebhookProcessor(store, RedeployTrigger(recording_sink), secret=webhook_secret)
    body, headers = signed_delivery(push_payload())

    with pytest.raises(StoreUnavailableError):
        processor.process(body, headers)

    assert recording_sink.intents == []


def test_sink_failure_is_reported_not_raised(state_store, failing_sink, signed_delivery, push_payload, webhook_secret):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    processor = WebhookProcessor(state_store, RedeployTrigger(failing_sink), secret=webhook_secret)
    body, headers = signed_delivery(push_payload())

    result = processor.process(body, headers)

    assert result.trigger_outcome == TriggerOutcome.EMIT_FAILED
    assert result.sync_status == SyncWriteStatus.APPLIED
    assert failing_sink.calls == 1


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_unsecured_mode_processes_and_flags_event(state_store, trigger, push_payload, signed_delivery):
    processor = WebhookProcessor(state_store, trigger, secret=None)
    body, headers = signed_delivery(push_payload())
    headers["X-Hub-Signature-256"] = "sha256=bogus"

    result = processor.process(body, headers)

    assert processor.unsecured
    assert result.signature_verified is False
    assert result.sync_status == SyncWriteStatus.APPLIED


def test_custom_relevance_markers(state_store, recording_sink, signed_delivery, push_payload, webhook_secret):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    processor = WebhookProcessor(
        state_store,
        RedeployTrigger(recording_sink),
        relevance_filter=RelevanceFilter(["index.ts"]),
        secret=webhook_secret,
    )
    body, headers = signed_delivery(push_payload(commits=[{"modified": ["src/index.ts"]}]))

    result = processor.process(body, headers)

    assert result.trigger_outcome == TriggerOutcome.TRIGGERED


def test_audit_trail_for_triggered_push(
    processor, state_store, signed_delivery, push_payload, mock_audit_logger
):
    state_store.link_repository("octocat/discord-bot", "bot-1")
    body, headers = signed_delivery(push_payload())

    processor.process(body, headers)

    calls = mock_audit_logger.record_action.call_args_list
    actions = [call.kwargs["action"] for call in calls]
    assert actions == ["webhook_received", "sync_recorded", "redeploy_decided"]
    for call in calls:
        assert "src/bot.js" not in str(call.kwargs)
