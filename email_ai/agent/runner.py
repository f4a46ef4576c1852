"""Long-running agent: connect to Gmail, schedule sync cycles, reconnect on failure."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from dotenv import load_dotenv

from email_ai.agent.controller import SyncController
from email_ai.agent.scheduler import create_sync_scheduler
from email_ai.config import AgentConfig
from email_ai.mcp.gmail_client import GmailClient, MCPError, gmail_client
from email_ai.processing.capabilities import Capabilities, build_capabilities
from email_ai.processing.processor import MessageProcessor
from email_ai.processing.types import Category
from email_ai.storage.db import StateDatabase
from email_ai.storage.dedup import DedupStore
from email_ai.storage.statistics import StatisticsAggregator

logger = logging.getLogger(__name__)

# Backoff: 2^attempt seconds, capped at 5 minutes
_MAX_BACKOFF_SECONDS = 300
# Failed cycles in a row before the MCP session is considered dead
_MAX_CONSECUTIVE_FAILURES = 3
_HEALTH_CHECK_SECONDS = 5.0

#: Opens a connected mailbox session; gmail_client() in production.
MailboxFactory = Callable[[], AbstractAsyncContextManager[GmailClient]]


def build_controller(
    gmail: GmailClient,
    db: StateDatabase,
    config: AgentConfig,
    capabilities: Capabilities | None = None,
) -> SyncController:
    """Wire the sync core around a live mailbox session."""
    statistics = StatisticsAggregator(db)
    processor = MessageProcessor(
        capabilities or build_capabilities(config),
        gmail,
        db=db,
        statistics=statistics,
        config=config,
    )
    dedup = DedupStore(db, capacity=config.dedup_capacity)
    return SyncController(gmail, processor, dedup, statistics, db, config)


class SyncAgent:
    """Keeps a mailbox session open and runs sync cycles on a timer.

    Reconnects with exponential backoff when the MCP session cannot be opened
    or when cycles keep failing, so the agent can run unattended across
    transient network or subprocess issues.  The controller is rebuilt on each
    (re)connection so it always holds the live GmailClient; dedup state and
    statistics live in the database and survive reconnects.

    Usage::

        agent = SyncAgent(AgentConfig.from_env(), StateDatabase())
        await agent.run()
    """

    def __init__(
        self,
        config: AgentConfig,
        db: StateDatabase,
        capabilities: Capabilities | None = None,
        mailbox_factory: MailboxFactory | None = None,
    ) -> None:
        self._config = config
        self._db = db
        self._capabilities = capabilities
        self._mailbox_factory = mailbox_factory or gmail_client
        self._stop_event = asyncio.Event()

    def stop(self) -> None:
        """Signal the agent to stop scheduling cycles and shut down cleanly."""
        logger.info("Shutdown requested — stopping scheduler")
        self._stop_event.set()

    async def run(self) -> None:
        """Run until stop() is called, reconnecting on failures with backoff."""
        attempt = 0
        while not self._stop_event.is_set():
            try:
                async with self._mailbox_factory() as gmail:
                    await gmail.ensure_labels(self.category_labels())
                    attempt = 0  # reset backoff counter on successful connect
                    await self._serve(gmail)
            except MCPError as exc:
                if self._stop_event.is_set():
                    break
                attempt += 1
                delay = min(2**attempt, _MAX_BACKOFF_SECONDS)
                logger.error(
                    "MCP error (attempt %d): %s — reconnecting in %ds",
                    attempt,
                    exc,
                    delay,
                )
                await self._interruptible_sleep(delay)
            except Exception as exc:  # noqa: BLE001
                if self._stop_event.is_set():
                    break
                attempt += 1
                delay = min(2**attempt, _MAX_BACKOFF_SECONDS)
                logger.error(
                    "Unexpected error (attempt %d): %s — reconnecting in %ds",
                    attempt,
                    exc,
                    delay,
                    exc_info=True,
                )
                await self._interruptible_sleep(delay)

        logger.info("Agent stopped")

    def category_labels(self) -> list[str]:
        return [self._config.category_label(c.value) for c in Category]

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _serve(self, gmail: GmailClient) -> None:
        """Schedule cycles against ``gmail`` until stopped or the session looks dead."""
        controller = build_controller(gmail, self._db, self._config, self._capabilities)
        scheduler = create_sync_scheduler(
            controller,
            self._db.get_settings(),
            initial_delay_seconds=self._config.initial_delay_seconds,
        )
        scheduler.start()
        try:
            while not self._stop_event.is_set():
                await self._interruptible_sleep(_HEALTH_CHECK_SECONDS)
                if controller.consecutive_failures >= _MAX_CONSECUTIVE_FAILURES:
                    raise MCPError(
                        f"{controller.consecutive_failures} sync cycles failed in a row"
                    )
        finally:
            scheduler.shutdown(wait=False)

    async def _interruptible_sleep(self, seconds: float) -> None:
        """Sleep for `seconds` but wake immediately if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass


# ── Entry point ────────────────────────────────────────────────────────────────


def configure_logging(default_level: str = "INFO") -> None:
    level = os.environ.get("LOG_LEVEL", default_level).upper()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # basicConfig is a no-op once the root logger has handlers (e.g. under the CLI)
    logging.getLogger().setLevel(level)


def main() -> None:
    """Start the sync agent as a standalone process."""
    load_dotenv()
    configure_logging()

    config = AgentConfig.from_env()
    db = StateDatabase(
        config.db_path,
        custom_label_capacity=config.custom_label_capacity,
        priority_capacity=config.priority_capacity,
    )
    try:
        asyncio.run(run_agent(config, db))
    except KeyboardInterrupt:
        # Ctrl+C on Windows (no add_signal_handler) arrives here
        logger.info("Interrupted — goodbye")
    finally:
        db.close()


async def run_agent(config: AgentConfig, db: StateDatabase) -> None:
    """Wire up signal handlers and run a SyncAgent until it is stopped."""
    agent = SyncAgent(config, db)

    loop = asyncio.get_running_loop()
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, agent.stop)
    except (NotImplementedError, AttributeError):
        pass

    await agent.run()
