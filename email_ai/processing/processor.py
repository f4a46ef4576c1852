"""Per-message enrichment pipeline.

summarize → classify → label → custom labels → prioritize → draft
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from email_ai.config import AgentConfig, Settings
from email_ai.mcp.types import DraftReceipt, Message
from email_ai.processing.capabilities import Capabilities, CapabilityError
from email_ai.processing.drafting import DraftPipeline, DraftPublishError, run_stage
from email_ai.processing.fallbacks import keyword_classify, keyword_prioritize, truncate_summary
from email_ai.processing.types import (
    Category,
    Classification,
    MessageMetadata,
    Priority,
    ProcessingResult,
)

if TYPE_CHECKING:
    from email_ai.storage.db import StateDatabase
    from email_ai.storage.statistics import StatisticsAggregator

logger = logging.getLogger(__name__)


class Mailbox(Protocol):
    """The slice of the mailbox client the processor writes through."""

    async def apply_label(self, message_id: str, label_name: str) -> None: ...

    async def create_reply_draft(
        self, thread_id: str, to: str, subject: str, body: str
    ) -> DraftReceipt: ...


def coerce_classification(raw: object) -> Classification:
    """Normalise classifier output; the category always lands in Category.

    Raises:
        CapabilityError: the output has no recognisable shape at all.
    """
    if isinstance(raw, Classification):
        return Classification(Category.coerce(raw.category), str(raw.summary or ""))
    if isinstance(raw, dict):
        return Classification(Category.coerce(raw.get("category")), str(raw.get("summary") or ""))
    if isinstance(raw, str):
        return Classification(Category.coerce(raw), "")
    raise CapabilityError(f"Unparsable classifier output: {raw!r}")


class MessageProcessor:
    """Runs the full enrichment pipeline for one message with per-stage isolation.

    Failure policy:
      - summarize:     fall back to the first 500 characters of the body
      - classify:      fall back to the keyword classifier
      - apply label:   logged, outcome unchanged
      - custom labels: any failure means "no matches"
      - prioritize:    fall back to the keyword rules (Respond messages only)
      - draft:         the message is reported failed; nothing is published

    process() never raises (cancellation excepted).  Statistics for drafts are
    recorded here; messages_processed is folded in by the Sync Controller.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        mailbox: Mailbox,
        db: StateDatabase | None = None,
        statistics: StatisticsAggregator | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self._caps = capabilities
        self._mailbox = mailbox
        self._db = db
        self._statistics = statistics
        self._config = config or AgentConfig()
        self._timeout = self._config.stage_timeout_seconds
        self._drafts = DraftPipeline(capabilities, mailbox, stage_timeout=self._timeout)

    async def process(self, message: Message, settings: Settings | None = None) -> ProcessingResult:
        """Run every stage for ``message`` and return its terminal record."""
        logger.info("Processing message %s: %r", message.id, message.subject)
        try:
            return await self._run(message, settings or self._load_settings())
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Pipeline failed for message %s: %s", message.id, exc, exc_info=True)
            return ProcessingResult.failed(message.id, f"{type(exc).__name__}: {exc}")

    async def _run(self, message: Message, settings: Settings) -> ProcessingResult:
        metadata = MessageMetadata(
            subject=message.subject, sender=message.sender, sent_at=message.sent_at
        )
        summary = await self._summarize(message)
        classification = await self._classify(message, summary, metadata)
        category = classification.category

        if settings.auto_apply_labels:
            await self._apply_label(message.id, self._config.category_label(category.value))

        matched = await self._match_custom_labels(message, summary, metadata)
        if matched and settings.auto_apply_labels:
            for name in sorted(matched):
                await self._apply_label(message.id, name)

        priority: Priority | None = None
        if category is Category.RESPOND:
            priority = await self._prioritize(message, summary, metadata, category)

        draft_created = False
        if category is Category.RESPOND and settings.auto_draft:
            try:
                await self._drafts.run(message, settings)
            except DraftPublishError as exc:
                logger.error("Draft failed for message %s: %s", message.id, exc)
                return ProcessingResult.failed(message.id, str(exc))
            draft_created = True
            if self._statistics is not None:
                self._statistics.record_draft()

        logger.info(
            "message=%s category=%s priority=%s custom_labels=%s draft=%s",
            message.id,
            category.value,
            priority.value if priority else "-",
            sorted(matched) or "none",
            draft_created,
        )
        return ProcessingResult.ok(
            message.id,
            category,
            matched_custom_labels=matched,
            summary=classification.summary or summary,
            draft_created=draft_created,
            priority=priority,
        )

    # ── Stages ─────────────────────────────────────────────────────────────────

    async def _summarize(self, message: Message) -> str:
        content = message.content
        try:
            summary = await run_stage(
                "summarize",
                lambda: self._caps.summarizer.summarize(content),
                self._timeout,
                message.id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Summarize failed for %s: %s — truncating body", message.id, exc)
            return truncate_summary(content)
        if not isinstance(summary, str) or not summary.strip():
            return truncate_summary(content)
        return summary

    async def _classify(
        self, message: Message, summary: str, metadata: MessageMetadata
    ) -> Classification:
        try:
            raw = await run_stage(
                "classify",
                lambda: self._caps.classifier.classify(summary, metadata),
                self._timeout,
                message.id,
            )
            return coerce_classification(raw)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Classify failed for %s: %s — using keyword rules", message.id, exc)
            return keyword_classify(
                subject=message.subject, sender=message.sender, body=message.content
            )

    async def _apply_label(self, message_id: str, label_name: str) -> None:
        try:
            await run_stage(
                "apply_label",
                lambda: self._mailbox.apply_label(message_id, label_name),
                self._timeout,
                message_id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to apply label %r to message %s: %s", label_name, message_id, exc)

    async def _match_custom_labels(
        self, message: Message, summary: str, metadata: MessageMetadata
    ) -> frozenset[str]:
        if self._db is None:
            return frozenset()
        try:
            labels = self._db.list_custom_labels(enabled_only=True)
            if not labels:
                return frozenset()
            raw = await run_stage(
                "custom_labels",
                lambda: self._caps.label_matcher.match_all(summary, metadata, labels),
                self._timeout,
                message.id,
            )
            known = {label.name for label in labels}
            matched = frozenset(name for name in raw if name in known)
            self._db.touch_custom_labels(matched)
            return matched
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Custom label check failed for %s: %s", message.id, exc)
            return frozenset()

    async def _prioritize(
        self, message: Message, summary: str, metadata: MessageMetadata, category: Category
    ) -> Priority:
        try:
            raw = await run_stage(
                "prioritize",
                lambda: self._caps.prioritizer.prioritize(summary, metadata, category),
                self._timeout,
                message.id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prioritize failed for %s: %s — using keyword rules", message.id, exc)
            priority = keyword_prioritize(summary, message.subject, category)
        else:
            priority = Priority.parse(raw)

        if self._db is not None:
            try:
                self._db.set_priority(message.id, priority)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Could not store priority for %s: %s", message.id, exc)
        return priority

    def _load_settings(self) -> Settings:
        return self._db.get_settings() if self._db is not None else Settings()
