"""Command line entry points for BotForge."""

from typer import Typer

from ..configuration.cli import config_app
from ..sync.cli import bots_app, repos_app
from ..sync.webhook.cli import serve

cli = Typer(help="BotForge Studio sync service")
cli.command("serve")(serve)
cli.add_typer(repos_app, name="repos")
cli.add_typer(bots_app, name="bots")
cli.add_typer(config_app, name="config")

__all__ = ["cli", "bots_app", "config_app", "repos_app"]
