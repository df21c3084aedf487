"""GitHub webhook ingestion for BotForge Studio.

- **verify_webhook_signature**: HMAC-SHA256 check of the raw body
- **classify**: turns a verified body into an ``InboundEvent``
- **WebhookProcessor**: records the sync and decides the redeploy
- **WebhookConfigurator**: registers the webhook on a repository
- **StudioServer**: aiohttp application serving the HTTP endpoints

Example usage:
    >>> from botforge.sync.webhook import StudioServer, WebhookProcessor
    >>> processor = WebhookProcessor(state_store, trigger, secret="s3cret")
    >>> server = StudioServer(processor)
    >>> await server.start()
"""

from .classifier import classify
from .configurator import WebhookConfigurator
from .handler import WebhookProcessor, WebhookResult
from .security import compute_signature, verify_webhook_signature
from .server import StudioServer

__all__ = [
    "StudioServer",
    "WebhookConfigurator",
    "WebhookProcessor",
    "WebhookResult",
    "classify",
    "compute_signature",
    "verify_webhook_signature",
]
