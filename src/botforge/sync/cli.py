"""CLI commands for repository links and bots.

Repository commands manage the sync state store directly; they are the
operator's view of what the dashboard does through the API.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from botforge.configuration.settings import DEFAULT_CONFIG_PATH, bootstrap_settings
from botforge.errors import BotForgeError, ConflictError, handle_error

from .audit_events import SyncAuditEvents, log_link_event
from .components import SyncComponents, build_components
from .models import BotStatus, PushOutcome, Visibility
from .webhook.configurator import webhook_url_for

repos_app = typer.Typer(help="Manage repository links and sync state")
bots_app = typer.Typer(help="Manage bots and push their code")
console = Console()

DEFAULT_PUSH_PATH = "discord-bot/bot.js"


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------


def _get_components(config_path: Path) -> SyncComponents:
    """Build components from the settings file."""
    return build_components(bootstrap_settings(path=config_path))


def _fail(error: BotForgeError) -> None:
    console.print(f"[red]✗[/red] {handle_error(error)}")
    raise typer.Exit(code=1)


def _format_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S UTC") if value else "-"


# ---------------------------------------------------------------------------
# Repository Commands
# ---------------------------------------------------------------------------


@repos_app.command("connect")
def connect_repo(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    private: bool = typer.Option(False, "--private", help="Mark the repository private"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Connect a repository without linking a bot."""
    components = _get_components(config_path)
    visibility = Visibility.PRIVATE if private else Visibility.PUBLIC
    try:
        link = components.state_store.connect_repository(repository, visibility)
    except BotForgeError as e:
        _fail(e)
    log_link_event(
        components.audit_logger,
        action=SyncAuditEvents.REPO_CONNECTED,
        repository=link.repository_identity,
    )
    console.print(f"[green]✓[/green] Connected {link.repository_identity} ({link.visibility.value})")


@repos_app.command("hook")
def register_hook(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    url: Optional[str] = typer.Option(
        None, "--url", help="Delivery URL (default: <server.public_url>/api/github/webhook)"
    ),
    token: str = typer.Option(
        ..., "--token", envvar="GITHUB_TOKEN", help="GitHub token with admin:repo_hook scope"
    ),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Register the push webhook on a repository."""
    components = _get_components(config_path)
    settings = components.settings
    if url is None:
        if not settings.server.public_url:
            console.print("[red]✗[/red] No --url given and server.public_url is not set")
            raise typer.Exit(code=1)
        url = webhook_url_for(settings.server.public_url)

    secret = settings.webhook_secret()
    if secret is None:
        console.print("[yellow]Warning:[/yellow] no webhook secret configured, deliveries will be unsigned")

    try:
        hook, created = components.configurator.configure_webhook(
            repository, url, secret=secret, auth_token=token
        )
    except BotForgeError as e:
        _fail(e)

    verb = "Created" if created else "Updated"
    console.print(f"[green]✓[/green] {verb} webhook {hook.get('id')} on {repository} -> {url}")


@repos_app.command("link")
def link_repo(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    bot_id: str = typer.Argument(..., help="Bot to redeploy on relevant pushes"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Link a repository to a bot."""
    components = _get_components(config_path)
    try:
        components.bot_registry.get(bot_id)
        previous = components.state_store.get_linked_bot(repository)
        if previous and previous != bot_id:
            console.print(f"[yellow]Replacing existing link to bot {previous}[/yellow]")
        link = components.state_store.link_repository(repository, bot_id)
    except BotForgeError as e:
        _fail(e)
    log_link_event(
        components.audit_logger,
        action=SyncAuditEvents.REPO_LINKED,
        repository=link.repository_identity,
        bot_id=bot_id,
    )
    console.print(f"[green]✓[/green] {link.repository_identity} linked to bot {bot_id}")


@repos_app.command("unlink")
def unlink_repo(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Remove the bot link of a repository, keeping its sync history."""
    components = _get_components(config_path)
    try:
        link = components.state_store.unlink_repository(repository)
    except BotForgeError as e:
        _fail(e)
    if link is None:
        console.print(f"[yellow]Repository {repository} is not connected[/yellow]")
        raise typer.Exit(code=1)
    log_link_event(
        components.audit_logger,
        action=SyncAuditEvents.REPO_UNLINKED,
        repository=link.repository_identity,
    )
    console.print(f"[green]✓[/green] {link.repository_identity} unlinked")


@repos_app.command("disconnect")
def disconnect_repo(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Forget a repository. The linked bot is not deleted."""
    if not force and not Confirm.ask(f"Disconnect {repository}?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=0)

    components = _get_components(config_path)
    try:
        removed = components.state_store.disconnect_repository(repository)
    except BotForgeError as e:
        _fail(e)
    if not removed:
        console.print(f"[yellow]Repository {repository} is not connected[/yellow]")
        raise typer.Exit(code=1)
    log_link_event(
        components.audit_logger,
        action=SyncAuditEvents.REPO_DISCONNECTED,
        repository=repository,
    )
    console.print(f"[green]✓[/green] Disconnected {repository}")


@repos_app.command("status")
def repo_status(
    repository: str = typer.Argument(..., help="Repository full name (owner/name)"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Show sync state of one repository."""
    components = _get_components(config_path)
    try:
        link = components.state_store.load(repository)
    except BotForgeError as e:
        _fail(e)
    if link is None:
        console.print(f"[yellow]Repository {repository} is not connected[/yellow]")
        raise typer.Exit(code=1)

    table = Table(title=f"Sync State: {link.repository_identity}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Linked bot", link.linked_bot_id or "-")
    table.add_row("Visibility", link.visibility.value)
    table.add_row("Last sync", _format_time(link.last_sync_at))
    table.add_row("Commits in last sync", str(link.last_commit_count))
    console.print(table)


@repos_app.command("list")
def list_repos(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """List connected repositories."""
    components = _get_components(config_path)
    links = components.state_store.list_all()
    if not links:
        console.print("[yellow]No repositories connected[/yellow]")
        return

    table = Table(title="Repositories")
    table.add_column("Repository", style="cyan")
    table.add_column("Bot")
    table.add_column("Visibility")
    table.add_column("Last sync")
    table.add_column("Commits", justify="right")
    for link in links:
        table.add_row(
            link.repository_identity,
            link.linked_bot_id or "-",
            link.visibility.value,
            _format_time(link.last_sync_at),
            str(link.last_commit_count),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Bot Commands
# ---------------------------------------------------------------------------


@bots_app.command("create")
def create_bot(
    name: str = typer.Argument(..., help="Bot display name"),
    owner: str = typer.Option("local", "--owner", help="Owner user id"),
    source: Optional[Path] = typer.Option(
        None, "--source", exists=True, dir_okay=False, help="Initial source file (default template)"
    ),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Create a bot."""
    components = _get_components(config_path)
    code = source.read_text(encoding="utf-8") if source else None
    try:
        bot = components.bot_registry.create_bot(name, owner, source_code=code)
    except BotForgeError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Created bot [bold]{bot.name}[/bold] ({bot.bot_id})")


@bots_app.command("list")
def list_bots(
    owner: Optional[str] = typer.Option(None, "--owner", help="Only bots of this owner"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """List bots, newest first."""
    components = _get_components(config_path)
    registry = components.bot_registry
    bots = registry.list_for_owner(owner) if owner else registry.list_all()
    if not bots:
        console.print("[yellow]No bots found[/yellow]")
        return

    table = Table(title="Bots")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Owner")
    table.add_column("Status")
    table.add_column("Version")
    for bot in bots:
        table.add_row(bot.bot_id, bot.name, bot.owner_id, bot.status.value, bot.source_version[:12])
    console.print(table)


@bots_app.command("show")
def show_bot(
    bot_id: str = typer.Argument(..., help="Bot id"),
    code: bool = typer.Option(False, "--code", help="Print the source code"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Show a bot and the repositories linked to it."""
    components = _get_components(config_path)
    try:
        bot = components.bot_registry.get(bot_id)
    except BotForgeError as e:
        _fail(e)

    table = Table(title=f"Bot: {bot.name}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("ID", bot.bot_id)
    table.add_row("Owner", bot.owner_id)
    table.add_row("Status", bot.status.value)
    table.add_row("Source version", bot.source_version)
    table.add_row("Updated", _format_time(bot.updated_at))
    linked = components.state_store.find_by_bot(bot.bot_id)
    table.add_row("Repositories", ", ".join(link.repository_identity for link in linked) or "-")
    console.print(table)

    if code:
        console.print(bot.source_code)


@bots_app.command("save")
def save_bot(
    bot_id: str = typer.Argument(..., help="Bot id"),
    source: Path = typer.Option(
        ..., "--source", exists=True, dir_okay=False, help="File with the new source code"
    ),
    expected_version: Optional[str] = typer.Option(
        None,
        "--expected-version",
        help="Source version the edit was based on (default: the stored version)",
    ),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Replace a bot's source code."""
    components = _get_components(config_path)
    registry = components.bot_registry
    code = source.read_text(encoding="utf-8")
    try:
        if expected_version is None:
            expected_version = registry.get(bot_id).source_version
        bot = registry.update_source(bot_id, code, expected_version)
    except ConflictError as e:
        console.print(
            f"[yellow]Conflict:[/yellow] bot {bot_id} is now at version "
            f"{(e.actual_version or '')[:12]}; reload it and try again"
        )
        raise typer.Exit(code=1)
    except BotForgeError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Saved bot {bot.bot_id} (version {bot.source_version[:12]})")


@bots_app.command("status")
def set_bot_status(
    bot_id: str = typer.Argument(..., help="Bot id"),
    status: BotStatus = typer.Argument(..., help="New status"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Set a bot's dashboard status."""
    components = _get_components(config_path)
    try:
        bot = components.bot_registry.set_status(bot_id, status)
    except BotForgeError as e:
        _fail(e)
    console.print(f"[green]✓[/green] Bot {bot.bot_id} is {bot.status.value}")


@bots_app.command("delete")
def delete_bot(
    bot_id: str = typer.Argument(..., help="Bot id"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation"),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Delete a bot and clear repository links pointing at it."""
    if not force and not Confirm.ask(f"Delete bot {bot_id}?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=0)

    components = _get_components(config_path)
    try:
        deleted = components.bot_registry.delete_bot(bot_id)
    except BotForgeError as e:
        _fail(e)
    if not deleted:
        console.print(f"[yellow]Bot {bot_id} not found[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] Deleted bot {bot_id}")


@bots_app.command("push")
def push_bot(
    bot_id: str = typer.Argument(..., help="Bot id"),
    repository: str = typer.Argument(..., help="Target repository (owner/name)"),
    path: str = typer.Option(DEFAULT_PUSH_PATH, "--path", help="File path in the repository"),
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message"),
    token: str = typer.Option(
        ..., "--token", envvar="GITHUB_TOKEN", help="GitHub token with contents write access"
    ),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Push a bot's source to a repository and link it to the bot."""
    components = _get_components(config_path)
    try:
        bot = components.bot_registry.get(bot_id)
        result = components.publisher.publish(
            repository,
            path,
            bot.source_code,
            message,
            token,
            bot_id=bot.bot_id,
        )
    except BotForgeError as e:
        _fail(e)

    if result.succeeded:
        sha = (result.commit_sha or "")[:7]
        console.print(
            f"[green]✓[/green] {result.outcome.value.capitalize()} {result.path} "
            f"in {result.repository_identity} {sha}"
        )
    elif result.outcome == PushOutcome.CONFLICT:
        console.print(
            f"[yellow]Conflict:[/yellow] {result.path} changed in {result.repository_identity}; "
            "pull the latest version and try again"
        )
        raise typer.Exit(code=1)
    else:
        hint = " (retry later)" if result.retryable else ""
        console.print(f"[red]✗[/red] Push failed: {result.message}{hint}")
        raise typer.Exit(code=1)


__all__ = ["bots_app", "repos_app"]
