"""GitHub webhook configuration via the REST API.

Registers the BotForge webhook endpoint on a repository so that pushes are
delivered to ``POST /api/github/webhook``. Only ``push`` events are
subscribed; the pipeline ignores everything else anyway.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..models import split_repository_identity
from ..push_client import GitHubContentsClient

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/api/github/webhook"
DEFAULT_EVENTS = ["push"]


def webhook_url_for(public_url: str) -> str:
    """Delivery URL for a server reachable at ``public_url``."""
    return public_url.rstrip("/") + WEBHOOK_PATH


class WebhookConfigurator:
    """Creates, lists and deletes repository webhooks.

    Example:
        >>> configurator = WebhookConfigurator(GitHubContentsClient())
        >>> hook, created = configurator.configure_webhook(
        ...     "octocat/discord-bot",
        ...     "https://studio.example.com/api/github/webhook",
        ...     secret="webhook-secret",
        ...     auth_token=token,
        ... )
    """

    def __init__(self, client: GitHubContentsClient):
        self.client = client

    def configure_webhook(
        self,
        repository_identity: str,
        webhook_url: str,
        *,
        secret: Optional[str],
        auth_token: Optional[str],
        active: bool = True,
    ) -> Tuple[Dict[str, Any], bool]:
        """Create the webhook, or update the one already pointing at ``webhook_url``.

        Args:
            repository_identity: Repository full name (owner/name)
            webhook_url: Public URL for webhook delivery
            secret: HMAC secret; None registers an unsigned webhook
            auth_token: GitHub token with admin:repo_hook scope
            active: Whether the webhook should be active

        Returns:
            (webhook dict from GitHub, True if newly created)
        """
        owner, repo = split_repository_identity(repository_identity)

        config: Dict[str, Any] = {
            "url": webhook_url,
            "content_type": "json",
            "insecure_ssl": "0",
        }
        if secret:
            config["secret"] = secret
        else:
            logger.warning(
                f"Registering webhook for {repository_identity} without a secret",
                extra={"repository": repository_identity},
            )
        payload = {"config": config, "events": DEFAULT_EVENTS, "active": active}

        existing = next(
            (
                hook
                for hook in self.list_webhooks(repository_identity, auth_token)
                if hook.get("config", {}).get("url") == webhook_url
            ),
            None,
        )

        if existing is not None:
            logger.info(
                f"Webhook already exists for {repository_identity}, updating...",
                extra={"repository": repository_identity, "webhook_id": existing["id"]},
            )
            hook = self.client.rest_request(
                "PATCH",
                f"/repos/{owner}/{repo}/hooks/{existing['id']}",
                auth_token,
                data=payload,
            )
            return hook, False

        hook = self.client.rest_request(
            "POST",
            f"/repos/{owner}/{repo}/hooks",
            auth_token,
            data={"name": "web", **payload},
        )
        logger.info(
            f"Webhook created for {repository_identity}",
            extra={"repository": repository_identity, "webhook_id": hook.get("id")},
        )
        return hook, True

    def list_webhooks(self, repository_identity: str, auth_token: Optional[str]) -> List[Dict[str, Any]]:
        """List the repository's webhooks."""
        owner, repo = split_repository_identity(repository_identity)
        hooks = self.client.rest_request("GET", f"/repos/{owner}/{repo}/hooks", auth_token)
        return hooks or []

    def delete_webhook(
        self,
        repository_identity: str,
        webhook_id: int,
        auth_token: Optional[str],
    ) -> None:
        owner, repo = split_repository_identity(repository_identity)
        self.client.rest_request("DELETE", f"/repos/{owner}/{repo}/hooks/{webhook_id}", auth_token)
        logger.info(
            f"Webhook {webhook_id} deleted for {repository_identity}",
            extra={"repository": repository_identity, "webhook_id": webhook_id},
        )


__all__ = ["DEFAULT_EVENTS", "WEBHOOK_PATH", "WebhookConfigurator", "webhook_url_for"]
