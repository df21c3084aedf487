"""BotForge Studio HTTP server implementation using aiohttp.

Routes:
- ``POST /api/github/webhook``: inbound GitHub deliveries
- ``POST /api/github/push``: push edited bot source to a repository
- ``POST /api/github/hooks``: register the webhook on a repository
- ``POST /api/bot/test``: validate a bot token and run source validators
- ``POST /api/bot/deploy``: request a deployment of a bot
- ``POST /api/bots/{bot_id}/source``: save editor source (optimistic concurrency)
- ``POST /api/bots/{bot_id}/status``: set a bot's dashboard status
- ``GET /health``

Handlers run the blocking pipeline (file store, ``requests``) in worker
threads via ``asyncio.to_thread`` so one slow request never stalls others.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from botforge.errors import (
    AuthenticationError,
    BotForgeError,
    ConflictError,
    InvalidSignatureError,
    MissingCredentialError,
    NotFoundError,
    SourceValidationError,
    TransientError,
    ValidationError,
)

from ..auth import AuthProvider, BearerTokenAuthProvider
from ..bot_registry import BotRegistry, is_valid_bot_id
from ..discord_client import BotTester
from ..models import BotArtifact, BotStatus, PushErrorKind, PushOutcome, PushResult, TriggerOutcome
from ..publisher import CodePublisher
from ..redeploy import MANUAL_DEPLOY_REASON, QueuedDeploymentSink
from .configurator import WebhookConfigurator, webhook_url_for
from .handler import WebhookProcessor

logger = logging.getLogger(__name__)

_PUSH_ERROR_STATUS = {
    PushErrorKind.UNAUTHORIZED: 401,
    PushErrorKind.NOT_FOUND: 500,
    PushErrorKind.REJECTED: 400,
    PushErrorKind.TRANSIENT: 500,
}


def error_response(error: BotForgeError, status: int) -> web.Response:
    """JSON error body with the catalog message only."""
    return web.json_response(error.to_dict(), status=status)


def push_result_body(result: PushResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "outcome": result.outcome.value,
        "repository": result.repository_identity,
        "path": result.path,
    }
    if result.commit_sha:
        body["commit_sha"] = result.commit_sha
    if result.content_sha:
        body["sha"] = result.content_sha
    if result.outcome == PushOutcome.CONFLICT:
        body["current_sha"] = result.previous_sha
    if result.error_kind:
        body["error_kind"] = result.error_kind.value
        body["retryable"] = result.retryable
    if result.message and not result.succeeded:
        body["message"] = result.message
    return body


def bot_summary(bot: BotArtifact) -> Dict[str, Any]:
    return {
        "bot_id": bot.bot_id,
        "name": bot.name,
        "status": bot.status.value,
        "source_version": bot.source_version,
        "updated_at": bot.updated_at.isoformat(),
    }


class StudioServer:
    """Serves the webhook, push and bot test endpoints.

    Attributes:
        processor: Inbound webhook pipeline
        publisher: Outbound push path (push endpoint disabled when None)
        bot_tester: Token and source check (test endpoint disabled when None)
        bot_registry: Bot store for deploy, source save and status (those
            endpoints and push ownership checks are disabled when None)
        configurator: Webhook registration (hooks endpoint disabled when None)
        auth_provider: Resolves users and delegated tokens per request
        dispatch_sink: Optional queued deployment sink started with the server
        public_url: Base URL GitHub reaches this server at
        processing_timeout: Seconds a webhook delivery may take before 500
        listen_host: Host to bind to
        listen_port: Port to listen on

    Example:
        >>> server = StudioServer(processor=processor, publisher=publisher)
        >>> await server.start()
        >>> # Server running...
        >>> await server.stop()
    """

    def __init__(
        self,
        processor: WebhookProcessor,
        *,
        publisher: Optional[CodePublisher] = None,
        bot_tester: Optional[BotTester] = None,
        bot_registry: Optional[BotRegistry] = None,
        configurator: Optional[WebhookConfigurator] = None,
        auth_provider: Optional[AuthProvider] = None,
        dispatch_sink: Optional[QueuedDeploymentSink] = None,
        public_url: Optional[str] = None,
        processing_timeout: float = 10.0,
        listen_host: str = "127.0.0.1",
        listen_port: int = 8765,
    ):
        self.processor = processor
        self.publisher = publisher
        self.bot_tester = bot_tester
        self.bot_registry = bot_registry
        self.configurator = configurator
        self.auth_provider = auth_provider or BearerTokenAuthProvider()
        self.dispatch_sink = dispatch_sink
        self.public_url = public_url
        self.processing_timeout = processing_timeout
        self.listen_host = listen_host
        self.listen_port = listen_port

        self.app = web.Application()
        self._setup_routes()

        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None

    def _setup_routes(self) -> None:
        """Setup HTTP routes."""
        self.app.router.add_post("/api/github/webhook", self.handle_webhook)
        self.app.router.add_post("/api/github/push", self.handle_push)
        self.app.router.add_post("/api/github/hooks", self.handle_register_hook)
        self.app.router.add_post("/api/bot/test", self.handle_bot_test)
        self.app.router.add_post("/api/bot/deploy", self.handle_deploy)
        self.app.router.add_post("/api/bots/{bot_id}/source", self.handle_save_source)
        self.app.router.add_post("/api/bots/{bot_id}/status", self.handle_set_status)
        self.app.router.add_get("/health", self.health_check)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def handle_webhook(self, request: web.Request) -> web.Response:
        """Handle an incoming GitHub webhook.

        Returns:
            200 once the delivery is durably recorded (or ignored),
            401 on signature failure, 400 on malformed payload,
            500 when the sync state could not be recorded in time
        """
        body = await request.read()
        headers = request.headers
        delivery_id = headers.get("X-GitHub-Delivery")

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self.processor.process, body, headers),
                timeout=self.processing_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Webhook delivery {delivery_id} not processed within {self.processing_timeout}s",
                extra={"delivery_id": delivery_id},
            )
            return error_response(TransientError("Webhook processing timed out"), 500)
        except InvalidSignatureError as e:
            return error_response(e, 401)
        except ValidationError as e:
            logger.warning(
                f"Rejected webhook delivery {delivery_id}: {e.message}",
                extra={"delivery_id": delivery_id},
            )
            return error_response(e, 400)
        except BotForgeError as e:
            logger.error(
                f"Failed to record webhook delivery {delivery_id}: {e.message}",
                extra={"delivery_id": delivery_id},
                exc_info=True,
            )
            return error_response(e, 500)

        return web.json_response(result.to_response())

    async def handle_push(self, request: web.Request) -> web.Response:
        """Push bot source to a GitHub repository.

        Body: ``{repository_identity | repo_name, path, content, message, bot_id?,
        expected_sha?}`` with ``Authorization: Bearer <github token>``.
        ``bot_id`` must name one of the caller's bots; anything else is
        rejected before GitHub is touched.
        """
        if self.publisher is None:
            return web.json_response({"error": "Push is not configured"}, status=404)

        user = self.auth_provider.get_current_user(request)
        token = self.auth_provider.get_delegated_token(request, "github")
        if user is None or not token:
            return error_response(MissingCredentialError(), 401)

        try:
            payload = await _read_json_object(request)
            repository_identity = payload.get("repository_identity") or payload.get("repo_name")
            path = payload.get("path")
            content = payload.get("content")
            bot_id = payload.get("bot_id")
            if not repository_identity or not path or not isinstance(content, str):
                raise ValidationError("repository_identity, path and content are required")
            if bot_id is not None and not is_valid_bot_id(bot_id):
                raise ValidationError("bot_id must be a bot identifier")
        except ValidationError as e:
            return error_response(e, 400)

        if bot_id is not None and self.bot_registry is not None:
            try:
                await asyncio.to_thread(self.bot_registry.get_owned, bot_id, user.user_id)
            except NotFoundError as e:
                return error_response(e, 404)
            except TransientError as e:
                return error_response(e, 503)

        try:
            result = await asyncio.to_thread(
                self.publisher.publish,
                repository_identity,
                path,
                content,
                payload.get("message"),
                token,
                bot_id=bot_id,
                expected_sha=payload.get("expected_sha"),
                user_id=user.user_id,
            )
        except ValidationError as e:
            return error_response(e, 400)
        except BotForgeError as e:
            logger.error(
                f"Push to {repository_identity} failed: {e.message}",
                extra={"repository": repository_identity},
                exc_info=True,
            )
            return error_response(e, 500)

        status = 200
        if result.outcome == PushOutcome.ERROR and result.error_kind is not None:
            status = _PUSH_ERROR_STATUS[result.error_kind]
        return web.json_response(push_result_body(result), status=status)

    async def handle_register_hook(self, request: web.Request) -> web.Response:
        """Register this server's webhook on a repository.

        Body: ``{repository_identity | repo_name, webhook_url?}``. Without
        ``webhook_url`` the configured public URL is used.
        """
        if self.configurator is None:
            return web.json_response({"error": "Webhook registration is not configured"}, status=404)

        user = self.auth_provider.get_current_user(request)
        token = self.auth_provider.get_delegated_token(request, "github")
        if user is None or not token:
            return error_response(MissingCredentialError(), 401)

        try:
            payload = await _read_json_object(request)
            repository_identity = payload.get("repository_identity") or payload.get("repo_name")
            if not repository_identity:
                raise ValidationError("repository_identity is required")
            webhook_url = payload.get("webhook_url")
            if not webhook_url:
                if not self.public_url:
                    raise ValidationError("webhook_url is required when no public URL is configured")
                webhook_url = webhook_url_for(self.public_url)
        except ValidationError as e:
            return error_response(e, 400)

        secret = self.processor.secret
        if isinstance(secret, bytes):
            secret = secret.decode("utf-8")

        try:
            hook, created = await asyncio.to_thread(
                self.configurator.configure_webhook,
                repository_identity,
                webhook_url,
                secret=secret or None,
                auth_token=token,
            )
        except AuthenticationError as e:
            return error_response(e, 401)
        except NotFoundError as e:
            return error_response(e, 404)
        except ValidationError as e:
            return error_response(e, 400)
        except ConflictError as e:
            return error_response(e, 409)
        except TransientError as e:
            return error_response(e, 503)

        return web.json_response(
            {
                "repository": repository_identity,
                "hook_id": hook.get("id"),
                "created": created,
                "events": hook.get("events", []),
            },
            status=201 if created else 200,
        )

    async def handle_bot_test(self, request: web.Request) -> web.Response:
        """Validate a Discord bot token and run source validators."""
        if self.bot_tester is None:
            return web.json_response({"error": "Bot testing is not configured"}, status=404)

        try:
            payload = await _read_json_object(request)
            code = payload.get("code", "")
            if not isinstance(code, str):
                raise ValidationError("code must be a string")
        except ValidationError as e:
            return error_response(e, 400)

        try:
            identity = await asyncio.to_thread(self.bot_tester.run, payload.get("bot_token"), code)
        except AuthenticationError as e:
            return error_response(e, 401)
        except SourceValidationError as e:
            return web.json_response({**e.to_dict(), "detail": e.message}, status=400)
        except TransientError as e:
            return error_response(e, 503)

        return web.json_response(
            {
                "success": True,
                "message": "Bot token is valid and code passed validation",
                "bot": identity.model_dump(),
            }
        )

    async def handle_deploy(self, request: web.Request) -> web.Response:
        """Request a deployment of one of the caller's bots.

        Only emits a deployment intent; 202 means the deployer was told, not
        that the bot is running.
        """
        if self.bot_registry is None:
            return web.json_response({"error": "Deployment is not configured"}, status=404)

        user = self.auth_provider.get_current_user(request)
        if user is None:
            return error_response(MissingCredentialError(), 401)

        try:
            payload = await _read_json_object(request)
            bot_id = payload.get("bot_id")
            if not is_valid_bot_id(bot_id):
                raise ValidationError("bot_id is required")
            bot = await asyncio.to_thread(self.bot_registry.get_owned, bot_id, user.user_id)
        except NotFoundError as e:
            return error_response(e, 404)
        except ValidationError as e:
            return error_response(e, 400)
        except TransientError as e:
            return error_response(e, 503)

        linked = await asyncio.to_thread(self.processor.state_store.find_by_bot, bot.bot_id)
        outcome = await asyncio.to_thread(
            self.processor.trigger.maybe_trigger,
            linked[0].repository_identity if linked else None,
            bot.bot_id,
            reason=MANUAL_DEPLOY_REASON,
        )
        if outcome != TriggerOutcome.TRIGGERED:
            return error_response(TransientError("Deployment request could not be delivered"), 503)

        return web.json_response({"bot_id": bot.bot_id, "trigger": outcome.value}, status=202)

    async def handle_save_source(self, request: web.Request) -> web.Response:
        """Save editor source for one of the caller's bots.

        Body: ``{source_code, expected_version}``. A stale ``expected_version``
        answers 409 with the stored ``current_version``.
        """
        if self.bot_registry is None:
            return web.json_response({"error": "Bot storage is not configured"}, status=404)

        user = self.auth_provider.get_current_user(request)
        if user is None:
            return error_response(MissingCredentialError(), 401)

        bot_id = request.match_info.get("bot_id")
        try:
            payload = await _read_json_object(request)
            source_code = payload.get("source_code")
            expected_version = payload.get("expected_version")
            if not isinstance(source_code, str) or not isinstance(expected_version, str):
                raise ValidationError("source_code and expected_version are required")
            if not is_valid_bot_id(bot_id):
                raise NotFoundError(f"Bot {bot_id} not found")
            await asyncio.to_thread(self.bot_registry.get_owned, bot_id, user.user_id)
            bot = await asyncio.to_thread(
                self.bot_registry.update_source, bot_id, source_code, expected_version
            )
        except ConflictError as e:
            return web.json_response(
                {**e.to_dict(), "current_version": e.actual_version}, status=409
            )
        except NotFoundError as e:
            return error_response(e, 404)
        except ValidationError as e:
            return error_response(e, 400)
        except TransientError as e:
            return error_response(e, 503)

        return web.json_response(bot_summary(bot))

    async def handle_set_status(self, request: web.Request) -> web.Response:
        """Set the dashboard status of one of the caller's bots."""
        if self.bot_registry is None:
            return web.json_response({"error": "Bot storage is not configured"}, status=404)

        user = self.auth_provider.get_current_user(request)
        if user is None:
            return error_response(MissingCredentialError(), 401)

        bot_id = request.match_info.get("bot_id")
        try:
            payload = await _read_json_object(request)
            try:
                status = BotStatus(payload.get("status"))
            except ValueError as exc:
                allowed = ", ".join(s.value for s in BotStatus)
                raise ValidationError(f"status must be one of {allowed}") from exc
            if not is_valid_bot_id(bot_id):
                raise NotFoundError(f"Bot {bot_id} not found")
            await asyncio.to_thread(self.bot_registry.get_owned, bot_id, user.user_id)
            bot = await asyncio.to_thread(self.bot_registry.set_status, bot_id, status)
        except NotFoundError as e:
            return error_response(e, 404)
        except ValidationError as e:
            return error_response(e, 400)
        except TransientError as e:
            return error_response(e, 503)

        return web.json_response(bot_summary(bot))

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint.

        Returns:
            JSON response with server health status
        """
        body: Dict[str, Any] = {
            "status": "healthy",
            "webhook_secured": not self.processor.unsecured,
            "push_enabled": self.publisher is not None,
        }
        if self.dispatch_sink is not None:
            body["dispatch_queue_size"] = self.dispatch_sink.queue.qsize()
        return web.json_response(body)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the HTTP listener and the deployment dispatcher."""
        if self.dispatch_sink is not None:
            await self.dispatch_sink.start()

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.listen_host, self.listen_port)
        await self.site.start()

        logger.info(
            f"BotForge server listening on {self.listen_host}:{self.listen_port}",
            extra={"host": self.listen_host, "port": self.listen_port},
        )

    async def stop(self) -> None:
        """Stop accepting requests, drain pending deployments and clean up."""
        logger.info("Stopping BotForge server...")

        if self.site:
            await self.site.stop()

        if self.dispatch_sink is not None:
            await self.dispatch_sink.stop()

        if self.runner:
            await self.runner.cleanup()

        logger.info("BotForge server stopped")


async def _read_json_object(request: web.Request) -> Dict[str, Any]:
    raw = await request.read()
    try:
        payload = json.loads(raw.decode("utf-8") or "{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValidationError("Request body must be JSON") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


__all__ = ["StudioServer", "bot_summary", "error_response", "push_result_body"]
