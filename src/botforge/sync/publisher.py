"""Outbound path: push edited bot source to a linked repository.

A successful push is recorded in the sync state store with the commit's
own timestamp and a commit count of one. The webhook GitHub sends for that
same commit then matches the stored tuple and is skipped as a duplicate, so
the redeploy for a dashboard push is decided here instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .audit_events import SyncAuditEvents, log_link_event, log_push_event
from .models import PushResult, TriggerOutcome, utcnow
from .push_client import GitHubContentsClient
from .redeploy import RedeployTrigger
from .relevance import RelevanceFilter
from .state_store import SyncStateStore

if TYPE_CHECKING:
    from botforge.privacy.audit import AuditLogger

logger = logging.getLogger(__name__)

STUDIO_PUSH_REASON = "studio_push"


class CodePublisher:
    """Pushes bot source through ``GitHubContentsClient`` and records the sync."""

    def __init__(
        self,
        push_client: GitHubContentsClient,
        state_store: SyncStateStore,
        *,
        trigger: Optional[RedeployTrigger] = None,
        relevance_filter: Optional[RelevanceFilter] = None,
        audit_logger: Optional["AuditLogger"] = None,
    ):
        self.push_client = push_client
        self.state_store = state_store
        self.trigger = trigger
        self.relevance_filter = relevance_filter or RelevanceFilter()
        self.audit_logger = audit_logger

    def publish(
        self,
        repository_identity: str,
        path: str,
        content: str,
        message: Optional[str],
        auth_token: Optional[str],
        *,
        bot_id: Optional[str] = None,
        expected_sha: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> PushResult:
        """Push ``content`` to ``path`` and update sync state on success.

        Raises:
            ValidationError: Malformed repository identity or path
            StoreUnavailableError: Push succeeded but the sync could not be recorded
        """
        result = self.push_client.push_file(
            repository_identity,
            path,
            content,
            message,
            auth_token,
            expected_sha=expected_sha,
        )

        if self.audit_logger:
            log_push_event(self.audit_logger, result=result, bot_id=bot_id, user_id=user_id)

        if not result.succeeded:
            return result

        if bot_id:
            self.state_store.link_repository(repository_identity, bot_id)
            if self.audit_logger:
                log_link_event(
                    self.audit_logger,
                    action=SyncAuditEvents.REPO_LINKED,
                    repository=repository_identity,
                    bot_id=bot_id,
                    user_id=user_id,
                )

        record = self.state_store.record_sync(
            repository_identity, 1, result.committed_at or utcnow()
        )

        if self.trigger is not None and record.applied:
            outcome = self.trigger.maybe_trigger(
                repository_identity,
                record.link.linked_bot_id,
                relevant=self.relevance_filter.is_relevant([result.path]),
                reason=STUDIO_PUSH_REASON,
            )
            if outcome == TriggerOutcome.EMIT_FAILED:
                logger.warning(
                    f"Pushed to {repository_identity} but the redeploy could not be emitted",
                    extra={"repository": repository_identity, "bot_id": record.link.linked_bot_id},
                )

        return result


__all__ = ["CodePublisher", "STUDIO_PUSH_REASON"]
