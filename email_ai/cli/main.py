"""CLI entry point for the email sync agent."""

import logging
from dataclasses import dataclass

import click
from dotenv import load_dotenv

from email_ai.config import AgentConfig
from email_ai.storage.db import StateDatabase

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    """Shared objects handed to every command via ``click.pass_obj``."""

    config: AgentConfig
    db: StateDatabase


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Email sync agent — run, sync, settings, custom labels and stats."""
    load_dotenv()
    logging.basicConfig(
        level=logging.WARNING,  # keep CLI output clean; errors still surface
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )
    config = AgentConfig.from_env()
    db = StateDatabase(
        config.db_path,
        custom_label_capacity=config.custom_label_capacity,
        priority_capacity=config.priority_capacity,
    )
    ctx.obj = CliState(config=config, db=db)
    ctx.call_on_close(db.close)


# Import and register commands after cli is defined to avoid circular imports.
from email_ai.cli.commands import (  # noqa: E402
    labels,
    process,
    run,
    settings,
    stats,
    status,
    sync,
)

cli.add_command(run)
cli.add_command(sync)
cli.add_command(process)
cli.add_command(status)
cli.add_command(stats)
cli.add_command(settings)
cli.add_command(labels)
