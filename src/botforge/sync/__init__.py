"""External repository sync for BotForge Studio.

Inbound: GitHub push webhook, signature check, classification, durable
sync-state update, relevance check and redeploy intent for the linked bot.
Outbound: conditional file write of edited bot source to a repository.
"""

from .bot_registry import BotRegistry
from .models import (
    BotArtifact,
    DeploymentIntent,
    InboundEvent,
    PushOutcome,
    PushResult,
    RepositoryLink,
    SyncWriteStatus,
    TriggerOutcome,
)
from .publisher import CodePublisher
from .push_client import GitHubContentsClient
from .redeploy import OutboxDeploymentSink, QueuedDeploymentSink, RedeployTrigger
from .relevance import RelevanceFilter
from .state_store import SyncStateStore

__all__ = [
    "BotArtifact",
    "BotRegistry",
    "CodePublisher",
    "DeploymentIntent",
    "GitHubContentsClient",
    "InboundEvent",
    "OutboxDeploymentSink",
    "PushOutcome",
    "PushResult",
    "QueuedDeploymentSink",
    "RedeployTrigger",
    "RelevanceFilter",
    "RepositoryLink",
    "SyncStateStore",
    "SyncWriteStatus",
    "TriggerOutcome",
]
