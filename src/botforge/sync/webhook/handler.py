"""Webhook processing pipeline.

``WebhookProcessor`` runs one delivery through signature verification,
classification, the durable sync-state update, the relevance check and
the redeploy decision. Each step aborts the pipeline before the next one
mutates anything:

- signature failure raises ``InvalidSignatureError`` before parsing
- ``MalformedPayload`` is raised before the store is touched
- a store failure propagates before the trigger is consulted
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from pydantic import BaseModel

from botforge.errors import InvalidSignatureError

from ..audit_events import SyncAuditEvents, log_deployment_event, log_sync_event, log_webhook_event
from ..models import EventKind, SyncWriteStatus, TriggerOutcome, utcnow
from ..redeploy import RedeployTrigger
from ..relevance import RelevanceFilter
from ..state_store import SyncStateStore
from .classifier import classify
from .security import is_unsecured, verify_webhook_signature

if TYPE_CHECKING:
    from botforge.privacy.audit import AuditLogger

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
EVENT_HEADER = "X-GitHub-Event"
DELIVERY_HEADER = "X-GitHub-Delivery"


class WebhookResult(BaseModel):
    """Summary of what a delivery did, returned as the webhook response body."""

    delivery_id: Optional[str] = None
    event_type: str = ""
    event_kind: EventKind
    repository_identity: str = ""
    sync_status: Optional[SyncWriteStatus] = None
    trigger_outcome: Optional[TriggerOutcome] = None
    bot_id: Optional[str] = None
    signature_verified: bool = True

    @property
    def ignored(self) -> bool:
        return self.event_kind != EventKind.PUSH

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status": "ignored" if self.ignored else "recorded",
            "event_type": self.event_type,
            "signature_verified": self.signature_verified,
        }
        if self.delivery_id:
            body["delivery_id"] = self.delivery_id
        if self.repository_identity:
            body["repository"] = self.repository_identity
        if self.sync_status is not None:
            body["sync_status"] = self.sync_status.value
        if self.trigger_outcome is not None:
            body["trigger"] = self.trigger_outcome.value
        return body


class WebhookProcessor:
    """Runs the inbound webhook pipeline for a single delivery.

    Attributes:
        state_store: Durable repository sync state
        trigger: Redeploy decision and emission
        relevance_filter: Decides whether changed paths concern the bot
        secret: Shared webhook secret; empty or None means unsecured mode
        audit_logger: Optional hash-chained audit log

    Example:
        >>> processor = WebhookProcessor(
        ...     state_store=SyncStateStore(),
        ...     trigger=RedeployTrigger(OutboxDeploymentSink()),
        ...     secret="s3cret",
        ... )
        >>> result = processor.process(body, headers)
    """

    def __init__(
        self,
        state_store: SyncStateStore,
        trigger: RedeployTrigger,
        *,
        relevance_filter: Optional[RelevanceFilter] = None,
        secret: Optional[Union[bytes, str]] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self.state_store = state_store
        self.trigger = trigger
        self.relevance_filter = relevance_filter or RelevanceFilter()
        self.secret = secret
        self.audit_logger = audit_logger

        if is_unsecured(secret):
            logger.warning("Webhook secret not configured; deliveries will not be authenticated")

    @property
    def unsecured(self) -> bool:
        return is_unsecured(self.secret)

    def process(
        self,
        raw_body: bytes,
        headers: Mapping[str, str],
        *,
        received_at: Optional[datetime] = None,
    ) -> WebhookResult:
        """Process one webhook delivery.

        Args:
            raw_body: Exact request body bytes
            headers: Request headers (case-insensitive mapping preferred)
            received_at: Receipt time, used when the payload has no push time

        Returns:
            WebhookResult describing what was recorded and triggered

        Raises:
            InvalidSignatureError: Signature missing or wrong
            MalformedPayload: Body is not a usable payload
            StoreUnavailableError: Sync state could not be recorded
        """
        event_type = headers.get(EVENT_HEADER, "")
        delivery_id = headers.get(DELIVERY_HEADER)
        received_at = received_at or utcnow()

        if not verify_webhook_signature(raw_body, headers.get(SIGNATURE_HEADER), self.secret):
            logger.warning(
                f"Invalid webhook signature for delivery {delivery_id}",
                extra={"delivery_id": delivery_id, "event_type": event_type},
            )
            if self.audit_logger:
                log_webhook_event(
                    self.audit_logger,
                    action=SyncAuditEvents.WEBHOOK_SIGNATURE_REJECTED,
                    status="signature_failed",
                    event_type=event_type,
                    delivery_id=delivery_id,
                )
            raise InvalidSignatureError()

        event = classify(
            raw_body,
            event_type,
            delivery_id=delivery_id,
            received_at=received_at,
            signature_verified=not self.unsecured,
        )

        if self.audit_logger:
            log_webhook_event(
                self.audit_logger,
                action=(
                    SyncAuditEvents.WEBHOOK_RECEIVED
                    if event.signature_verified
                    else SyncAuditEvents.WEBHOOK_UNSECURED
                ),
                repository=event.repository_identity or None,
                event_type=event.event_type,
                delivery_id=delivery_id,
            )

        result = WebhookResult(
            delivery_id=delivery_id,
            event_type=event.event_type,
            event_kind=event.event_kind,
            repository_identity=event.repository_identity,
            signature_verified=event.signature_verified,
        )

        if not event.is_push:
            logger.debug(
                f"Ignoring {event.event_type or 'unknown'} event",
                extra={"delivery_id": delivery_id, "event_type": event.event_type},
            )
            return result

        logger.info(
            f"Processing push for {event.repository_identity}: "
            f"{event.commit_count} commit(s), {len(event.changed_paths)} path(s)",
            extra={
                "delivery_id": delivery_id,
                "repository": event.repository_identity,
                "commit_count": event.commit_count,
            },
        )

        record = self.state_store.record_sync(
            event.repository_identity,
            event.commit_count,
            event.occurred_at or received_at,
        )
        result.sync_status = record.status
        result.bot_id = record.link.linked_bot_id

        if self.audit_logger:
            log_sync_event(
                self.audit_logger,
                repository=event.repository_identity,
                write_status=record.status.value,
                commit_count=event.commit_count,
                delivery_id=delivery_id,
            )

        if not record.applied:
            result.trigger_outcome = TriggerOutcome.SKIPPED_DUPLICATE
            logger.info(
                f"Push for {event.repository_identity} already recorded ({record.status.value}), "
                "not triggering",
                extra={"delivery_id": delivery_id, "repository": event.repository_identity},
            )
            return result

        result.trigger_outcome = self.trigger.maybe_trigger(
            event.repository_identity,
            record.link.linked_bot_id,
            relevant=self.relevance_filter.is_relevant(event.changed_paths),
            delivery_id=delivery_id,
        )

        if self.audit_logger and result.trigger_outcome != TriggerOutcome.SKIPPED_NOT_RELEVANT:
            log_deployment_event(
                self.audit_logger,
                repository=event.repository_identity,
                outcome=result.trigger_outcome.value,
                bot_id=result.bot_id,
                delivery_id=delivery_id,
            )

        return result


__all__ = [
    "DELIVERY_HEADER",
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "WebhookProcessor",
    "WebhookResult",
]
