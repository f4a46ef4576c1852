"""Reply drafting sub-pipeline: generate → rewrite → translate → proofread → publish."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from email_ai.config import Settings
from email_ai.mcp.types import DraftReceipt, Message
from email_ai.processing.capabilities import Capabilities
from email_ai.processing.fallbacks import template_draft
from email_ai.processing.types import Draft

logger = logging.getLogger(__name__)

_T = TypeVar("_T")

#: Language drafts are generated in before any translation.
BASE_LANGUAGE = "en"
DEFAULT_STAGE_TIMEOUT = 30.0


def primary_language(code: str) -> str:
    """Primary subtag of a language code: "en-US" and "en_GB" both give "en".

    Blank input is treated as the base language.
    """
    primary = code.strip().lower().replace("_", "-").split("-")[0]
    return primary or BASE_LANGUAGE


class DraftPublishError(Exception):
    """Raised when the mailbox refuses to create the reply draft."""


class ReplyMailbox(Protocol):
    async def create_reply_draft(
        self, thread_id: str, to: str, subject: str, body: str
    ) -> DraftReceipt: ...


async def run_stage(
    name: str,
    call: Callable[[], Awaitable[_T]],
    timeout: float,
    message_id: str,
) -> _T:
    """Await one external call under a timeout.

    On timeout the in-flight call is cancelled and asyncio.TimeoutError is
    raised, which callers treat like any other stage failure.
    """
    try:
        return await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Stage %s timed out after %ss for message %s", name, timeout, message_id)
        raise


class DraftPipeline:
    """Builds and publishes a reply draft for one message.

    Every polish stage is independently fault-tolerant: on failure, timeout
    or an empty result the previous text passes through unchanged.  Only
    publish failures surface, as DraftPublishError.

    Usage::

        pipeline = DraftPipeline(capabilities, gmail)
        draft = await pipeline.build_reply(message, settings)
        receipt = await pipeline.publish(message, draft)
    """

    def __init__(
        self,
        capabilities: Capabilities,
        mailbox: ReplyMailbox,
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
    ) -> None:
        self._caps = capabilities
        self._mailbox = mailbox
        self._timeout = stage_timeout

    async def run(self, message: Message, settings: Settings) -> DraftReceipt:
        """build_reply() then publish()."""
        draft = await self.build_reply(message, settings)
        return await self.publish(message, draft)

    async def build_reply(self, message: Message, settings: Settings) -> Draft:
        draft = Draft(text=await self._generate(message, settings.default_tone))
        draft.text = await self._polish("rewrite", draft.text, message, self._caps.rewriter.rewrite)
        await self._translate_if_needed(draft, message, settings)
        draft.text = await self._polish(
            "proofread", draft.text, message, self._caps.proofreader.proofread
        )
        return draft

    async def publish(self, message: Message, draft: Draft) -> DraftReceipt:
        """Hand the final text to the mailbox.  Never sends, only drafts."""
        try:
            return await run_stage(
                "publish",
                lambda: self._mailbox.create_reply_draft(
                    message.thread_id, message.sender, message.subject, draft.text
                ),
                self._timeout,
                message.id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise DraftPublishError(f"Could not create reply draft: {exc}") from exc

    # ── Stages ─────────────────────────────────────────────────────────────────

    async def _generate(self, message: Message, tone: str) -> str:
        try:
            text = await run_stage(
                "generate",
                lambda: self._caps.draft_generator.generate(message, tone),
                self._timeout,
                message.id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Draft generation failed for %s: %s — using template", message.id, exc)
            return template_draft(message)
        if not isinstance(text, str) or not text.strip():
            logger.warning("Draft generator returned nothing usable for %s — using template", message.id)
            return template_draft(message)
        return text

    async def _polish(
        self,
        name: str,
        text: str,
        message: Message,
        transform: Callable[[str], Awaitable[str]],
    ) -> str:
        try:
            result = await run_stage(name, lambda: transform(text), self._timeout, message.id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Draft %s failed for %s: %s — keeping previous text", name, message.id, exc)
            return text
        if not isinstance(result, str) or not result.strip():
            return text
        return result

    async def _translate_if_needed(
        self, draft: Draft, message: Message, settings: Settings
    ) -> None:
        draft.origin_language = BASE_LANGUAGE
        draft.target_language = BASE_LANGUAGE
        if not settings.enable_translation:
            return

        translator = self._caps.translator
        try:
            detected = await run_stage(
                "detect_language",
                lambda: translator.detect_language(message.content),
                self._timeout,
                message.id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("Language detection failed for %s: %s", message.id, exc)
            return

        if not isinstance(detected, str):
            logger.warning(
                "Language detection returned %r for %s; skipping translation", detected, message.id
            )
            return
        detected = primary_language(detected)
        if detected == BASE_LANGUAGE:
            return

        source_text = draft.text
        translated = await self._polish(
            "translate",
            source_text,
            message,
            lambda t: translator.translate(t, BASE_LANGUAGE, detected),
        )
        if translated != source_text:
            draft.text = translated
            draft.target_language = detected
            logger.debug("Draft for %s translated %s → %s", message.id, BASE_LANGUAGE, detected)
