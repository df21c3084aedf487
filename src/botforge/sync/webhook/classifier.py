"""Classification of verified webhook bodies into typed events.

Only ``push`` deliveries carry information the sync pipeline acts on. Every
other event type classifies as ``EventKind.OTHER`` with no changed paths;
unknown event types are valid input, not errors.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from botforge.errors import InvalidRepositoryIdentityError, MalformedPayload

from ..models import EventKind, InboundEvent, parse_timestamp, split_repository_identity

PUSH_EVENT = "push"
_PATH_KEYS = ("added", "modified", "removed")


def parse_payload(raw_body: bytes) -> Dict[str, Any]:
    """Decode a webhook body into a JSON object.

    Raises:
        MalformedPayload: If the body is not UTF-8 JSON or not an object
    """
    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedPayload(f"Webhook body is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedPayload(
            f"Webhook body must be a JSON object, got {type(payload).__name__}"
        )
    return payload


def collect_changed_paths(commits: Iterable[Dict[str, Any]]) -> Set[str]:
    """Union of added, modified and removed paths across commits."""
    paths: Set[str] = set()
    for commit in commits:
        if not isinstance(commit, dict):
            raise MalformedPayload("Push commit entries must be objects")
        for key in _PATH_KEYS:
            entries = commit.get(key) or []
            if not isinstance(entries, list):
                raise MalformedPayload(f"Commit field '{key}' must be a list")
            for entry in entries:
                if isinstance(entry, str) and entry:
                    paths.add(entry)
    return paths


def _push_time(payload: Dict[str, Any], received_at: Optional[datetime]) -> Optional[datetime]:
    head_commit = payload.get("head_commit")
    if isinstance(head_commit, dict):
        parsed = parse_timestamp(head_commit.get("timestamp"))
        if parsed is not None:
            return parsed

    repository = payload.get("repository")
    if isinstance(repository, dict):
        parsed = parse_timestamp(repository.get("pushed_at"))
        if parsed is not None:
            return parsed

    return received_at


def _repository_identity(payload: Dict[str, Any], *, required: bool) -> str:
    repository = payload.get("repository")
    full_name = repository.get("full_name") if isinstance(repository, dict) else None

    if not isinstance(full_name, str) or not full_name:
        if required:
            raise MalformedPayload("Push payload is missing repository.full_name")
        return ""

    try:
        split_repository_identity(full_name)
    except InvalidRepositoryIdentityError as exc:
        if required:
            raise MalformedPayload(exc.message) from exc
        return ""
    return full_name


def classify(
    raw_body: bytes,
    event_type_header: Optional[str],
    *,
    delivery_id: Optional[str] = None,
    received_at: Optional[datetime] = None,
    signature_verified: bool = True,
) -> InboundEvent:
    """Parse a verified webhook body into an ``InboundEvent``.

    Args:
        raw_body: Raw request body
        event_type_header: Value of X-GitHub-Event
        delivery_id: Value of X-GitHub-Delivery
        received_at: Fallback push time when the payload carries none
        signature_verified: Whether the signature was actually checked

    Returns:
        InboundEvent; ``event_kind`` is OTHER for every non-push event

    Raises:
        MalformedPayload: If the body cannot be parsed, or a push payload
            lacks the repository or has malformed commits
    """
    payload = parse_payload(raw_body)
    event_type = (event_type_header or "").strip().lower()

    if event_type != PUSH_EVENT:
        return InboundEvent(
            repository_identity=_repository_identity(payload, required=False),
            event_kind=EventKind.OTHER,
            delivery_id=delivery_id,
            occurred_at=received_at,
            event_type=event_type,
            signature_verified=signature_verified,
        )

    commits: List[Dict[str, Any]] = payload.get("commits") or []
    if not isinstance(commits, list):
        raise MalformedPayload("Push payload field 'commits' must be a list")

    return InboundEvent(
        repository_identity=_repository_identity(payload, required=True),
        event_kind=EventKind.PUSH,
        changed_paths=frozenset(collect_changed_paths(commits)),
        commit_count=len(commits),
        delivery_id=delivery_id,
        occurred_at=_push_time(payload, received_at),
        event_type=event_type,
        signature_verified=signature_verified,
    )


__all__ = ["PUSH_EVENT", "classify", "collect_changed_paths", "parse_payload"]
