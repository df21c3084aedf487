"""Sync audit event types and logging helpers.

Event Types:
- Webhook events (received, signature rejected)
- Sync state events (recorded, link changed)
- Deployment events (triggered, skipped, emit failed)
- Push events (created, updated, conflict, error)

Privacy Guarantee:
- Bot source code and tokens are NEVER logged
- Only repository identities, bot ids and counts are recorded
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from .models import utcnow

if TYPE_CHECKING:
    from botforge.privacy.audit import AuditLogger

    from .models import PushResult


class SyncAuditEvents:
    """Audit event types for webhook ingestion and sync operations."""

    # Webhook events
    WEBHOOK_RECEIVED = "webhook_received"
    WEBHOOK_SIGNATURE_REJECTED = "webhook_signature_rejected"
    WEBHOOK_UNSECURED = "webhook_unsecured"

    # Sync state events
    SYNC_RECORDED = "sync_recorded"
    REPO_CONNECTED = "repo_connected"
    REPO_LINKED = "repo_linked"
    REPO_UNLINKED = "repo_unlinked"
    REPO_DISCONNECTED = "repo_disconnected"

    # Deployment events
    REDEPLOY_DECIDED = "redeploy_decided"

    # Push events
    CODE_PUSHED = "code_pushed"


def _event_id(prefix: str, key: Optional[str] = None) -> str:
    stamp = int(utcnow().timestamp() * 1000)
    return f"{prefix}_{key}_{stamp}" if key else f"{prefix}_{stamp}"


def log_webhook_event(
    audit_logger: "AuditLogger",
    *,
    action: str,
    status: str = "success",
    repository: Optional[str] = None,
    event_type: Optional[str] = None,
    delivery_id: Optional[str] = None,
    error: Optional[str] = None,
) -> None:
    """Log receipt or rejection of a webhook delivery."""
    metadata: Dict[str, object] = {}
    if event_type:
        metadata["event_type"] = event_type
    if delivery_id:
        metadata["delivery_id"] = delivery_id
    if error:
        metadata["error"] = error

    audit_logger.record_action(
        event_id=_event_id("webhook", delivery_id),
        source="webhook_handler",
        action=action,
        status=status,
        repository=repository,
        metadata=metadata,
    )


def log_sync_event(
    audit_logger: "AuditLogger",
    *,
    repository: str,
    write_status: str,
    commit_count: int,
    delivery_id: Optional[str] = None,
) -> None:
    """Log the result of a ``record_sync`` call."""
    metadata: Dict[str, object] = {"write_status": write_status, "commit_count": commit_count}
    if delivery_id:
        metadata["delivery_id"] = delivery_id

    audit_logger.record_action(
        event_id=_event_id("sync", delivery_id),
        source="sync_state_store",
        action=SyncAuditEvents.SYNC_RECORDED,
        status="success" if write_status == "applied" else write_status,
        repository=repository,
        metadata=metadata,
    )


def log_link_event(
    audit_logger: "AuditLogger",
    *,
    action: str,
    repository: str,
    bot_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """Log a connect, link, unlink or disconnect."""
    metadata: Dict[str, object] = {}
    if user_id:
        metadata["user_id"] = user_id

    audit_logger.record_action(
        event_id=_event_id("link"),
        source="sync_state_store",
        action=action,
        status="success",
        repository=repository,
        bot_id=bot_id,
        metadata=metadata,
    )


def log_deployment_event(
    audit_logger: "AuditLogger",
    *,
    repository: str,
    outcome: str,
    bot_id: Optional[str] = None,
    delivery_id: Optional[str] = None,
) -> None:
    """Log a redeploy decision (triggered or skipped)."""
    metadata: Dict[str, object] = {"outcome": outcome}
    if delivery_id:
        metadata["delivery_id"] = delivery_id

    audit_logger.record_action(
        event_id=_event_id("redeploy", delivery_id),
        source="redeploy_trigger",
        action=SyncAuditEvents.REDEPLOY_DECIDED,
        status="failed" if outcome == "emit_failed" else "success",
        repository=repository,
        bot_id=bot_id,
        metadata=metadata,
    )


def log_push_event(
    audit_logger: "AuditLogger",
    *,
    result: "PushResult",
    bot_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """Log a push attempt.

    Only the outcome, path and short SHAs are recorded, never the content.
    """
    metadata: Dict[str, object] = {"outcome": result.outcome.value, "path": result.path}
    if result.commit_sha:
        metadata["commit_sha"] = result.commit_sha[:7]
    if result.error_kind:
        metadata["error_kind"] = result.error_kind.value
    if user_id:
        metadata["user_id"] = user_id

    audit_logger.record_action(
        event_id=_event_id("push"),
        source="push_client",
        action=SyncAuditEvents.CODE_PUSHED,
        status="success" if result.succeeded else result.outcome.value,
        repository=result.repository_identity,
        bot_id=bot_id,
        metadata=metadata,
    )


__all__ = [
    "SyncAuditEvents",
    "log_deployment_event",
    "log_link_event",
    "log_push_event",
    "log_sync_event",
    "log_webhook_event",
]
