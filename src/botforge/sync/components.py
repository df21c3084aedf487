"""Wiring of sync components from validated settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from botforge.configuration.settings import Settings
from botforge.privacy.audit import AuditLogger

from .bot_registry import BotRegistry
from .discord_client import BotTester, DiscordBotClient
from .publisher import CodePublisher
from .push_client import GitHubContentsClient
from .redeploy import DeploymentSink, OutboxDeploymentSink, QueuedDeploymentSink, RedeployTrigger
from .relevance import RelevanceFilter
from .state_store import SyncStateStore
from .webhook.configurator import WebhookConfigurator
from .webhook.handler import WebhookProcessor


@dataclass
class SyncComponents:
    """Everything the CLI and the server need, built from one ``Settings``."""

    settings: Settings
    audit_logger: AuditLogger
    state_store: SyncStateStore
    bot_registry: BotRegistry
    outbox: OutboxDeploymentSink
    trigger: RedeployTrigger
    relevance_filter: RelevanceFilter
    push_client: GitHubContentsClient
    publisher: CodePublisher
    bot_tester: BotTester
    configurator: WebhookConfigurator
    dispatch_sink: Optional[QueuedDeploymentSink] = None

    def webhook_processor(self) -> WebhookProcessor:
        return WebhookProcessor(
            self.state_store,
            self.trigger,
            relevance_filter=self.relevance_filter,
            secret=self.settings.webhook_secret(),
            audit_logger=self.audit_logger,
        )


def build_components(settings: Settings, *, queued_dispatch: bool = False) -> SyncComponents:
    """Build the sync components.

    Args:
        settings: Validated settings
        queued_dispatch: Forward deployment intents through an in-process
            queue (requires a running event loop to start the dispatcher)
    """
    storage = settings.storage
    audit_logger = AuditLogger(
        output_dir=storage.audit_dir,
        retention_days=storage.audit_retention_days,
    )
    state_store = SyncStateStore(storage.repositories_dir, lock_timeout=storage.lock_timeout)
    bot_registry = BotRegistry(
        storage.bots_dir, state_store=state_store, lock_timeout=storage.lock_timeout
    )
    outbox = OutboxDeploymentSink(storage.outbox_path, lock_timeout=storage.lock_timeout)

    dispatch_sink: Optional[QueuedDeploymentSink] = None
    sink: DeploymentSink = outbox
    if queued_dispatch:
        dispatch_sink = QueuedDeploymentSink(outbox, queue_size=settings.webhook.dispatch_queue_size)
        sink = dispatch_sink

    trigger = RedeployTrigger(sink)
    relevance_filter = RelevanceFilter(settings.webhook.relevance_markers)

    github = settings.github
    push_client = GitHubContentsClient(
        api_base_url=github.api_base_url,
        read_timeout=github.read_timeout,
        write_timeout=github.write_timeout,
        max_retries=github.max_retries,
        committer_name=github.committer_name,
        committer_email=github.committer_email,
    )
    publisher = CodePublisher(
        push_client,
        state_store,
        trigger=trigger,
        relevance_filter=relevance_filter,
        audit_logger=audit_logger,
    )
    bot_tester = BotTester(
        DiscordBotClient(
            api_base_url=settings.discord.api_base_url,
            timeout=settings.discord.timeout,
        )
    )

    return SyncComponents(
        settings=settings,
        audit_logger=audit_logger,
        state_store=state_store,
        bot_registry=bot_registry,
        outbox=outbox,
        trigger=trigger,
        relevance_filter=relevance_filter,
        push_client=push_client,
        publisher=publisher,
        bot_tester=bot_tester,
        configurator=WebhookConfigurator(push_client),
        dispatch_sink=dispatch_sink,
    )


__all__ = ["SyncComponents", "build_components"]
