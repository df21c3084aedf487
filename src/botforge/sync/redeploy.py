"""Redeploy intents for bots whose repository received relevant changes.

The trigger only decides and emits; executing the deployment belongs to an
external collaborator that reads ``DeploymentIntent`` records from a sink.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

from filelock import FileLock, Timeout

from botforge.errors import StoreUnavailableError, TransientError

from .models import DeploymentIntent, TriggerOutcome

logger = logging.getLogger(__name__)

DEFAULT_OUTBOX_PATH = Path.home() / ".botforge" / "data" / "deployments.jsonl"
REPOSITORY_PUSH_REASON = "repository_push"
MANUAL_DEPLOY_REASON = "manual_deploy"


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


@runtime_checkable
class DeploymentSink(Protocol):
    """Anything that accepts deployment intents."""

    def submit(self, intent: DeploymentIntent) -> None:
        ...


class OutboxDeploymentSink:
    """Appends intents to a JSONL outbox read by the deployment service."""

    def __init__(self, path: Optional[Path] = None, *, lock_timeout: float = 10.0):
        self.path = (path or DEFAULT_OUTBOX_PATH).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.path) + ".lock", timeout=lock_timeout)

    def submit(self, intent: DeploymentIntent) -> None:
        line = intent.model_dump_json()
        try:
            with self._lock:
                with self.path.open("a", encoding="utf-8") as fp:
                    fp.write(line + "\n")
        except (Timeout, OSError) as exc:
            raise StoreUnavailableError(f"Deployment outbox unavailable: {exc}") from exc

    def read_all(self) -> List[DeploymentIntent]:
        """Read every intent in the outbox (oldest first)."""
        if not self.path.exists():
            return []
        intents: List[DeploymentIntent] = []
        with self._lock:
            for line in self.path.read_text(encoding="utf-8").splitlines():
                if line.strip():
                    intents.append(DeploymentIntent.model_validate(json.loads(line)))
        return intents


class QueuedDeploymentSink:
    """Hands intents to a background task so the webhook can answer at once.

    ``submit`` only enqueues. A processor task started with ``start()``
    forwards each intent to the wrapped sink in a worker thread.
    """

    def __init__(self, target: DeploymentSink, *, queue_size: int = 100):
        self.target = target
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._processor_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def submit(self, intent: DeploymentIntent) -> None:
        """Enqueue an intent; safe to call from worker threads."""
        if self.queue.full():
            raise TransientError("Deployment queue is full")
        if self._loop is None or _running_loop() is self._loop:
            try:
                self.queue.put_nowait(intent)
            except asyncio.QueueFull as exc:
                raise TransientError("Deployment queue is full") from exc
            return
        self._loop.call_soon_threadsafe(self._enqueue, intent)

    def _enqueue(self, intent: DeploymentIntent) -> None:
        try:
            self.queue.put_nowait(intent)
        except asyncio.QueueFull:
            logger.error(
                f"Deployment queue full, dropping intent for bot {intent.bot_id}",
                extra={"bot_id": intent.bot_id, "delivery_id": intent.delivery_id},
            )

    async def start(self) -> None:
        if self._processor_task is None:
            self._loop = asyncio.get_running_loop()
            self._processor_task = asyncio.create_task(self._process())
            logger.info("Deployment dispatcher started")

    async def stop(self, drain_timeout: float = 30.0) -> None:
        """Drain the queue, then stop the processor task."""
        if self._processor_task is None:
            return

        if not self.queue.empty():
            logger.info(f"Draining deployment queue ({self.queue.qsize()} intents remaining)...")
        # join() also waits for an intent already taken by the processor.
        try:
            await asyncio.wait_for(self.queue.join(), timeout=drain_timeout)
        except asyncio.TimeoutError:
            logger.warning("Deployment queue drain timeout, some intents were not delivered")

        self._processor_task.cancel()
        try:
            await self._processor_task
        except asyncio.CancelledError:
            pass
        self._processor_task = None
        self._loop = None
        logger.info("Deployment dispatcher stopped")

    async def _process(self) -> None:
        while True:
            intent = await self.queue.get()
            try:
                await asyncio.to_thread(self.target.submit, intent)
                logger.info(
                    f"Deployment intent delivered for bot {intent.bot_id}",
                    extra={"bot_id": intent.bot_id, "delivery_id": intent.delivery_id},
                )
            except Exception as e:
                logger.error(
                    f"Failed to deliver deployment intent for bot {intent.bot_id}: {e}",
                    extra={"bot_id": intent.bot_id, "delivery_id": intent.delivery_id},
                    exc_info=True,
                )
            finally:
                self.queue.task_done()


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------


class RedeployTrigger:
    """Emits at most one deployment intent per inbound event.

    Example:
        >>> trigger = RedeployTrigger(sink=OutboxDeploymentSink())
        >>> trigger.maybe_trigger("octocat/bot", None)
        <TriggerOutcome.SKIPPED_NO_LINK: 'skipped_no_link'>
    """

    def __init__(self, sink: DeploymentSink):
        self.sink = sink

    def maybe_trigger(
        self,
        repository_identity: Optional[str],
        bot_id: Optional[str],
        *,
        relevant: bool = True,
        delivery_id: Optional[str] = None,
        reason: str = REPOSITORY_PUSH_REASON,
    ) -> TriggerOutcome:
        """Emit a deployment intent for ``bot_id`` if warranted.

        Args:
            repository_identity: Repository that changed (None for manual deploys)
            bot_id: Bot linked to the repository, or None
            relevant: Result of the relevance filter
            delivery_id: Webhook delivery id for traceability
            reason: trigger_reason recorded on the intent

        Returns:
            TriggerOutcome; never raises for a missing link or a sink failure
        """
        if not relevant:
            return TriggerOutcome.SKIPPED_NOT_RELEVANT

        if not bot_id:
            logger.info(
                f"No bot linked to {repository_identity}, skipping redeploy",
                extra={"repository": repository_identity, "delivery_id": delivery_id},
            )
            return TriggerOutcome.SKIPPED_NO_LINK

        intent = DeploymentIntent(
            bot_id=bot_id,
            trigger_reason=reason,
            repository_identity=repository_identity,
            delivery_id=delivery_id,
        )

        try:
            self.sink.submit(intent)
        except Exception as e:
            logger.error(
                f"Failed to emit deployment intent for bot {bot_id}: {e}",
                extra={"repository": repository_identity, "bot_id": bot_id, "delivery_id": delivery_id},
                exc_info=True,
            )
            return TriggerOutcome.EMIT_FAILED

        logger.info(
            f"Redeploy triggered for bot {bot_id} from {repository_identity}",
            extra={"repository": repository_identity, "bot_id": bot_id, "delivery_id": delivery_id},
        )
        return TriggerOutcome.TRIGGERED


__all__ = [
    "DEFAULT_OUTBOX_PATH",
    "DeploymentSink",
    "MANUAL_DEPLOY_REASON",
    "OutboxDeploymentSink",
    "QueuedDeploymentSink",
    "REPOSITORY_PUSH_REASON",
    "RedeployTrigger",
]
