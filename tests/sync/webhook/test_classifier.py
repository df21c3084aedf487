"""Tests for webhook event classification."""

import json
from datetime import datetime, timezone

import pytest

from botforge.errors import ClassificationError, MalformedPayload, ValidationError
from botforge.sync.models import EventKind
from botforge.sync.webhook.classifier import classify, collect_changed_paths


def _body(payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


RECEIVED_AT = datetime(2024, 6, 1, 8, 30, tzinfo=timezone.utc)


def test_push_collects_union_of_paths(push_payload):
    payload = push_payload(
        commits=[
            {"added": ["a.txt"], "modified": ["src/bot.js"], "removed": []},
            {"added": [], "modified": ["src/bot.js", "README.md"], "removed": ["old.js"]},
        ]
    )

    event = classify(_body(payload), "push", delivery_id="d-1")

    assert event.event_kind == EventKind.PUSH
    assert event.is_push
    assert event.repository_identity == "octocat/discord-bot"
    assert event.changed_paths == frozenset({"a.txt", "src/bot.js", "README.md", "old.js"})
    assert event.commit_count == 2
    assert event.delivery_id == "d-1"


def test_push_time_prefers_head_commit(push_payload):
    event = classify(_body(push_payload()), "push", received_at=RECEIVED_AT)
    assert event.occurred_at == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_push_time_falls_back_to_pushed_at(push_payload):
    payload = push_payload(head_timestamp=None)
    event = classify(_body(payload), "push", received_at=RECEIVED_AT)
    assert event.occurred_at == datetime.fromtimestamp(1714564800, tz=timezone.utc)


def test_push_time_falls_back_to_received_at(push_payload):
    payload = push_payload(head_timestamp=None)
    del payload["repository"]["pushed_at"]
    event = classify(_body(payload), "push", received_at=RECEIVED_AT)
    assert event.occurred_at == RECEIVED_AT


def test_push_with_no_commits(push_payload):
    event = classify(_body(push_payload(commits=[])), "push")
    assert event.commit_count == 0
    assert event.changed_paths == frozenset()


def test_issue_comment_is_other():
    payload = {"action": "created", "repository": {"full_name": "octocat/discord-bot"}}
    event = classify(_body(payload), "issue_comment")

    assert event.event_kind == EventKind.OTHER
    assert event.changed_paths == frozenset()
    assert event.commit_count == 0
    assert event.repository_identity == "octocat/discord-bot"


def test_unknown_event_type_never_fails():
    event = classify(_body({"zen": "Design for failure."}), "totally_new_event")
    assert event.event_kind == EventKind.OTHER
    assert event.repository_identity == ""


def test_missing_event_header_is_other():
    event = classify(_body({}), None)
    assert event.event_kind == EventKind.OTHER


def test_event_header_is_case_insensitive(push_payload):
    event = classify(_body(push_payload()), "Push")
    assert event.event_kind == EventKind.PUSH


@pytest.mark.parametrize("body", [b"not json", b"\xff\xfe", b"[1, 2]", b'"text"', b""])
def test_malformed_bodies_raise(body):
    with pytest.raises(MalformedPayload):
        classify(body, "push")


def test_malformed_payload_is_a_validation_error():
    with pytest.raises(ClassificationError):
        classify(b"{", "ping")
    with pytest.raises(ValidationError):
        classify(b"{", "ping")


def test_push_without_repository_raises():
    with pytest.raises(MalformedPayload):
        classify(_body({"commits": []}), "push")


def test_push_with_invalid_repository_name_raises(push_payload):
    with pytest.raises(MalformedPayload):
        classify(_body(push_payload(repository="no-slash")), "push")


def test_push_with_non_list_commits_raises(push_payload):
    payload = push_payload()
    payload["commits"] = {"id": "x"}
    with pytest.raises(MalformedPayload):
        classify(_body(payload), "push")


def test_collect_changed_paths_ignores_empty_entries():
    paths = collect_changed_paths([{"added": ["", None, "x.js"], "modified": None}])
    assert paths == {"x.js"}


def test_collect_changed_paths_rejects_non_list_field():
    with pytest.raises(MalformedPayload):
        collect_changed_paths([{"added": "x.js"}])
