"""CLI command implementations — sync commands go through the CommandDispatcher."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from email_ai.agent.commands import Command, CommandDispatcher, CommandRequest, CommandResponse
from email_ai.agent.runner import build_controller, configure_logging, run_agent
from email_ai.mcp.gmail_client import MCPError, gmail_client
from email_ai.storage.dedup import DedupStore
from email_ai.storage.statistics import StatisticsAggregator

if TYPE_CHECKING:
    from email_ai.cli.main import CliState

logger = logging.getLogger(__name__)
console = Console(width=200)

_STATUS_STYLES = {
    "completed": "green",
    "skipped_already_running": "yellow",
    "skipped_disabled": "yellow",
    "failed": "red",
}


async def _dispatch(state: CliState, request: CommandRequest) -> CommandResponse | None:
    """Open a Gmail session, run one command against it, close the session."""
    try:
        async with gmail_client() as gmail:
            dispatcher = CommandDispatcher(build_controller(gmail, state.db, state.config))
            return await dispatcher.dispatch(request)
    except (MCPError, ValueError) as exc:
        console.print(f"[red]Gmail error: {exc}[/red]")
        return None


# ── email-ai run ──────────────────────────────────────────────────────────────


@click.command()
@click.pass_obj
def run(state: CliState) -> None:
    """Run the sync agent in the foreground until interrupted."""
    configure_logging()
    try:
        asyncio.run(run_agent(state.config, state.db))
    except KeyboardInterrupt:
        logger.info("Interrupted — goodbye")


# ── email-ai sync / process ───────────────────────────────────────────────────


@click.command()
@click.option("--force", is_flag=True, help="Clear a stuck in-progress state first.")
@click.pass_obj
def sync(state: CliState, force: bool) -> None:
    """Run one sync cycle now."""
    command = Command.FORCE_SYNC if force else Command.SYNC_NOW
    response = asyncio.run(_dispatch(state, CommandRequest(command)))
    if response is None:
        sys.exit(1)
    _print_cycle(response)
    if not response.success:
        sys.exit(1)


@click.command()
@click.argument("message_id")
@click.pass_obj
def process(state: CliState, message_id: str) -> None:
    """Process a single message by Gmail ID."""
    request = CommandRequest(Command.PROCESS_ONE, message_id=message_id)
    response = asyncio.run(_dispatch(state, request))
    if response is None:
        sys.exit(1)

    data = response.data
    if data.get("skipped"):
        console.print(f"[yellow]Message {message_id} was already processed.[/yellow]")
        return
    if not response.success:
        console.print(f"[red]Processing failed: {response.error}[/red]")
        sys.exit(1)

    labels = ", ".join(data.get("matched_custom_labels") or []) or "—"
    console.print(
        Panel(
            f"Category:      [bold]{data.get('category')}[/bold]\n"
            f"Priority:      {data.get('priority') or '—'}\n"
            f"Custom labels: {labels}\n"
            f"Draft created: {'yes' if data.get('draft_created') else 'no'}",
            title=f"[bold]{message_id}[/bold]",
            border_style="blue",
        )
    )


def _print_cycle(response: CommandResponse) -> None:
    data = response.data
    status_value = str(data.get("status", "failed"))
    style = _STATUS_STYLES.get(status_value, "white")
    console.print(f"Sync [{style}]{status_value}[/{style}]")
    if response.error:
        console.print(f"[red]{response.error}[/red]")
    if status_value != "completed":
        return

    console.print(
        f"  listed {data['listed']}, processed {data['processed']}, "
        f"[dim]{data['skipped_duplicates']} already processed[/dim]"
        + (f", [red]{data['failed']} failed[/red]" if data["failed"] else "")
    )
    results: list[dict[str, Any]] = data.get("results") or []
    if not results:
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Message", max_width=24)
    table.add_column("Category", width=14)
    table.add_column("Priority", width=8)
    table.add_column("Custom labels", max_width=40)
    table.add_column("Draft", width=6)
    table.add_column("Error", max_width=60)
    for item in results:
        table.add_row(
            item["message_id"],
            item.get("category") or "",
            item.get("priority") or "",
            ", ".join(item.get("matched_custom_labels") or []),
            "yes" if item.get("draft_created") else "",
            f"[red]{item['error_reason']}[/red]" if item.get("error_reason") else "",
        )
    console.print(table)


# ── email-ai status / stats ───────────────────────────────────────────────────


@click.command()
@click.pass_obj
def status(state: CliState) -> None:
    """Show last sync time, tracked message count and current settings."""
    current = state.db.get_settings()
    dedup = DedupStore(state.db, capacity=state.config.dedup_capacity)
    console.print(
        Panel(
            f"Last sync:          {state.db.get_last_sync() or 'never'}\n"
            f"Processed messages: {len(dedup)} tracked (max {dedup.capacity})\n"
            f"Auto-sync:          {'on' if current.auto_sync else 'off'}"
            f" every {current.sync_interval_seconds}s",
            title="[bold]Sync status[/bold]",
            border_style="blue",
        )
    )


@click.command()
@click.option("--reset", is_flag=True, help="Zero all counters (asks for confirmation).")
@click.pass_obj
def stats(state: CliState, reset: bool) -> None:
    """Show usage statistics."""
    aggregator = StatisticsAggregator(state.db)
    if reset:
        if not click.confirm("Reset all statistics?"):
            return
        aggregator.reset()
        console.print("[green]Statistics reset.[/green]")
        return

    snapshot = aggregator.snapshot()
    table = Table(box=box.ROUNDED, show_header=False)
    table.add_column("Counter", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Messages processed", str(snapshot.messages_processed))
    table.add_row("Drafts generated", str(snapshot.drafts_generated))
    table.add_row("Hours saved (est.)", f"{snapshot.estimated_hours_saved:.2f}")
    table.add_row("Last updated", snapshot.last_updated or "never")
    console.print(table)


# ── email-ai settings ─────────────────────────────────────────────────────────


@click.group()
def settings() -> None:
    """Show or change user settings."""


@settings.command("show")
@click.pass_obj
def settings_show(state: CliState) -> None:
    """Print every setting and its current value."""
    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Setting")
    table.add_column("Value")
    for key, value in state.db.get_settings().to_dict().items():
        table.add_row(key, str(value))
    console.print(table)


@settings.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_obj
def settings_set(state: CliState, key: str, value: str) -> None:
    """Set KEY to VALUE, e.g. `email-ai settings set auto_draft false`."""
    try:
        updated = state.db.get_settings().with_value(key, value)
    except KeyError:
        raise click.BadParameter(f"unknown setting {key!r}", param_hint="KEY") from None
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="VALUE") from None
    state.db.save_settings(updated)
    console.print(f"[green]{key}[/green] = {updated.to_dict()[key]}")


# ── email-ai labels ───────────────────────────────────────────────────────────


@click.group()
def labels() -> None:
    """Manage custom labels evaluated against every message."""


@labels.command("list")
@click.pass_obj
def labels_list(state: CliState) -> None:
    """List custom labels."""
    rows = state.db.list_custom_labels()
    if not rows:
        console.print(
            "[yellow]No custom labels yet. "
            "Add one with `email-ai labels add NAME PROMPT`.[/yellow]"
        )
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Name", max_width=30)
    table.add_column("Enabled", width=8)
    table.add_column("Prompt", max_width=80)
    table.add_column("Last used", width=20)
    for label in rows:
        enabled = "[green]yes[/green]" if label.enabled else "[dim]no[/dim]"
        table.add_row(label.name, enabled, label.prompt, (label.last_used_at or "")[:19])
    console.print(table)


@labels.command("add")
@click.argument("name")
@click.argument("prompt")
@click.option("--disabled", is_flag=True, help="Create the label switched off.")
@click.pass_obj
def labels_add(state: CliState, name: str, prompt: str, disabled: bool) -> None:
    """Add a custom label NAME matched by the criteria in PROMPT."""
    try:
        state.db.add_custom_label(name, prompt, enabled=not disabled)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="NAME") from None
    console.print(f"[green]Added label {name!r}.[/green]")


@labels.command("remove")
@click.argument("name")
@click.pass_obj
def labels_remove(state: CliState, name: str) -> None:
    """Delete a custom label."""
    if not state.db.delete_custom_label(name):
        raise click.BadParameter(f"no custom label named {name!r}", param_hint="NAME")
    console.print(f"Removed label {name!r}.")


@labels.command("enable")
@click.argument("name")
@click.pass_obj
def labels_enable(state: CliState, name: str) -> None:
    """Enable a custom label."""
    _set_enabled(state, name, True)


@labels.command("disable")
@click.argument("name")
@click.pass_obj
def labels_disable(state: CliState, name: str) -> None:
    """Disable a custom label without deleting it."""
    _set_enabled(state, name, False)


def _set_enabled(state: CliState, name: str, enabled: bool) -> None:
    if not state.db.update_custom_label(name, enabled=enabled):
        raise click.BadParameter(f"no custom label named {name!r}", param_hint="NAME")
    console.print(f"Label {name!r} {'enabled' if enabled else 'disabled'}.")
