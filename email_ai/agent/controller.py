"""Single-flight sync controller: list unread → skip processed → process → aggregate."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from email_ai.config import AgentConfig, Settings
from email_ai.mcp.types import Message
from email_ai.processing.drafting import run_stage
from email_ai.processing.types import ProcessingResult
from email_ai.storage.db import utc_now

if TYPE_CHECKING:
    from email_ai.processing.processor import MessageProcessor
    from email_ai.storage.db import StateDatabase
    from email_ai.storage.dedup import DedupStore
    from email_ai.storage.statistics import StatisticsAggregator

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    SKIPPED_ALREADY_RUNNING = "skipped_already_running"
    SKIPPED_DISABLED = "skipped_disabled"
    FAILED = "failed"


@dataclass
class CycleReport:
    """Outcome of one run_sync_cycle() call."""

    status: CycleStatus
    listed: int = 0
    processed: int = 0
    skipped_duplicates: int = 0
    failed: int = 0
    results: list[ProcessingResult] = field(default_factory=list)
    error: str | None = None
    started_at: str | None = None
    finished_at: str | None = None

    @property
    def skipped(self) -> bool:
        return self.status in (
            CycleStatus.SKIPPED_ALREADY_RUNNING,
            CycleStatus.SKIPPED_DISABLED,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["results"] = [result_to_dict(r) for r in self.results]
        return data


@dataclass(frozen=True)
class SyncStatus:
    in_progress: bool
    pending_count: int
    last_sync: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class UnreadMailbox(Protocol):
    async def list_unread(self, max_results: int = 10) -> list[Message]: ...

    async def get_message(self, message_id: str) -> Message: ...


def result_to_dict(result: ProcessingResult) -> dict[str, Any]:
    return {
        "message_id": result.message_id,
        "succeeded": result.succeeded,
        "category": result.category.value if result.category else None,
        "matched_custom_labels": sorted(result.matched_custom_labels),
        "draft_created": result.draft_created,
        "priority": result.priority.value if result.priority else None,
        "error_reason": result.error_reason,
    }


class SyncController:
    """Owns the sync state machine and drives the Message Processor.

    At most one cycle runs at a time.  A second caller arriving while a cycle
    is in flight is turned away with ``skipped_already_running``; it is never
    queued.  The in-progress state is held by ``_single_flight()``, which
    releases on every exit path.

    ``force_sync()`` is the escape hatch for a stuck cycle: it cancels the
    previous cycle's task (propagating to whatever external call it is
    awaiting) and starts a fresh one.  Each cycle holds a generation number
    so the superseded cycle's release cannot clear its successor's state.

    Usage::

        controller = SyncController(gmail, processor, dedup, statistics, db, config)
        report = await controller.run_sync_cycle()
    """

    def __init__(
        self,
        mailbox: UnreadMailbox,
        processor: MessageProcessor,
        dedup: DedupStore,
        statistics: StatisticsAggregator,
        db: StateDatabase,
        config: AgentConfig | None = None,
    ) -> None:
        self._mailbox = mailbox
        self._processor = processor
        self._dedup = dedup
        self._statistics = statistics
        self._db = db
        self._config = config or AgentConfig()
        self._state = SyncState.IDLE
        self._generation = 0
        self._pending = 0
        self._cycle_task: asyncio.Task[Any] | None = None
        #: Failed cycles since the last completed one; read by the agent runner.
        self.consecutive_failures = 0

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._state is SyncState.SYNCING

    # ── Commands ───────────────────────────────────────────────────────────────

    async def run_sync_cycle(self) -> CycleReport:
        """Run one cycle unless one is already running or auto-sync is off.

        Never raises for cycle-level failures; they are reported with
        ``status=failed``.
        """
        if self.in_progress:
            logger.info("Sync already in progress — skipping")
            return CycleReport(status=CycleStatus.SKIPPED_ALREADY_RUNNING)

        settings = self._db.get_settings()
        if not settings.auto_sync:
            logger.debug("Auto-sync disabled — skipping")
            return CycleReport(status=CycleStatus.SKIPPED_DISABLED)

        return await self._run_cycle(settings)

    async def force_sync(self) -> CycleReport:
        """Clear a stuck in-progress state, cancelling its cycle, then sync."""
        stuck = self._cycle_task
        if self.in_progress:
            logger.warning("Force sync: resetting in-progress state (generation %d)", self._generation)
            if stuck is not None and stuck is not asyncio.current_task() and not stuck.done():
                stuck.cancel()
            self._release()
        return await self.run_sync_cycle()

    async def process_one(self, message_id: str) -> ProcessingResult | None:
        """Process one named message outside the cycle loop.

        Returns None when the message was already processed.  Does not take
        the cycle lock, so its statistics increment can interleave with a cycle.

        Raises:
            MCPError: or any other error from fetching the message.
        """
        if self._dedup.has(message_id):
            logger.info("Message %s already processed — skipping", message_id)
            return None

        message = await run_stage(
            "get_message",
            lambda: self._mailbox.get_message(message_id),
            self._config.stage_timeout_seconds,
            message_id,
        )
        result = await self._processor.process(message, self._db.get_settings())
        if result.succeeded:
            self._dedup.add(message.id)
            self._statistics.increment("messages_processed", 1)
        return result

    def status(self) -> SyncStatus:
        return SyncStatus(
            in_progress=self.in_progress,
            pending_count=self._pending if self.in_progress else 0,
            last_sync=self._db.get_last_sync(),
        )

    # ── Internal ───────────────────────────────────────────────────────────────

    @contextmanager
    def _single_flight(self) -> Iterator[int]:
        """Hold the SYNCING state for the body; always releases on exit."""
        self._generation += 1
        generation = self._generation
        self._state = SyncState.SYNCING
        self._pending = 0
        self._cycle_task = asyncio.current_task()
        try:
            yield generation
        finally:
            if generation == self._generation:
                self._release()
            else:
                logger.debug("Cycle %d superseded; leaving state to cycle %d", generation, self._generation)

    def _release(self) -> None:
        self._state = SyncState.IDLE
        self._pending = 0
        self._cycle_task = None

    async def _run_cycle(self, settings: Settings) -> CycleReport:
        report = CycleReport(status=CycleStatus.COMPLETED, started_at=utc_now())
        with self._single_flight() as generation:
            try:
                await self._sync_messages(report, settings, generation)
                if report.processed > 0:
                    self._statistics.record_cycle(report.processed)
                report.finished_at = utc_now()
                self._db.set_last_sync(report.finished_at)
            except asyncio.CancelledError:
                logger.warning("Sync cycle %d cancelled", generation)
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Sync cycle failed: %s", exc, exc_info=True)
                self.consecutive_failures += 1
                report.status = CycleStatus.FAILED
                report.error = f"{type(exc).__name__}: {exc}"
                report.finished_at = utc_now()
                return report

        self.consecutive_failures = 0
        logger.info(
            "Sync complete: listed=%d processed=%d duplicates=%d failed=%d",
            report.listed,
            report.processed,
            report.skipped_duplicates,
            report.failed,
        )
        return report

    async def _sync_messages(
        self, report: CycleReport, settings: Settings, generation: int
    ) -> None:
        messages = await run_stage(
            "list_unread",
            lambda: self._mailbox.list_unread(self._config.max_results_per_sync),
            self._config.stage_timeout_seconds,
            "-",
        )
        report.listed = len(messages)
        if generation == self._generation:
            self._pending = len(messages)
        if not messages:
            logger.debug("Sync: no unread messages")
            return

        for message in messages:
            try:
                if self._dedup.has(message.id):
                    report.skipped_duplicates += 1
                    continue
                result = await self._process_isolated(message, settings)
                report.results.append(result)
                if result.succeeded:
                    self._dedup.add(message.id)
                    report.processed += 1
                else:
                    report.failed += 1
            finally:
                if generation == self._generation:
                    self._pending = max(self._pending - 1, 0)

    async def _process_isolated(self, message: Message, settings: Settings) -> ProcessingResult:
        try:
            return await self._processor.process(message, settings)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Processor failed on message %s: %s", message.id, exc, exc_info=True)
            return ProcessingResult.failed(message.id, f"{type(exc).__name__}: {exc}")
