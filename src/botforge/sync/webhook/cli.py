"""CLI command that runs the BotForge HTTP server."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from botforge.configuration.settings import DEFAULT_CONFIG_PATH, bootstrap_settings

from ..components import build_components
from .server import StudioServer

console = Console()


def configure_logging(level: str) -> None:
    """Configure the root logger for the server process."""
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Override listen host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Override listen port"),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Run the webhook, push and bot test endpoints."""
    configure_logging(log_level)

    overrides: dict = {}
    if host:
        overrides.setdefault("server", {})["listen_host"] = host
    if port:
        overrides.setdefault("server", {})["listen_port"] = port
    settings = bootstrap_settings(path=config_path, overrides=overrides)
    components = build_components(settings, queued_dispatch=True)

    server = StudioServer(
        components.webhook_processor(),
        publisher=components.publisher,
        bot_tester=components.bot_tester,
        bot_registry=components.bot_registry,
        configurator=components.configurator,
        dispatch_sink=components.dispatch_sink,
        public_url=settings.server.public_url,
        processing_timeout=settings.server.webhook_timeout,
        listen_host=settings.server.listen_host,
        listen_port=settings.server.listen_port,
    )

    table = Table(title="BotForge Server")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Listen", f"{settings.server.listen_host}:{settings.server.listen_port}")
    table.add_row("Webhook URL", settings.server.public_url or "-")
    table.add_row("Signature check", "enabled" if settings.webhook_secret() else "DISABLED")
    table.add_row("Relevance markers", ", ".join(settings.webhook.relevance_markers))
    table.add_row("Deployment outbox", str(settings.storage.outbox_path))
    console.print(table)

    if not settings.webhook_secret():
        console.print(
            "[yellow]Warning:[/yellow] no webhook secret configured, deliveries are not "
            "authenticated. Run 'botforge config set-secret'."
        )

    try:
        asyncio.run(_run(server))
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down[/yellow]")


async def _run(server: StudioServer) -> None:
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


__all__ = ["configure_logging", "serve"]
