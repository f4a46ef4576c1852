"""Anthropic-backed stage collaborators.

Structured outputs (classification, language detection) use tool_use with a
forced tool_choice so the response is always machine-readable — no JSON
parsing, no markdown fences.  Free-text stages take the first text block.

Every method raises on failure (API error, empty or unusable response); the
processor decides what fallback to substitute.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock, ToolUseBlock

from email_ai.mcp.types import Message
from email_ai.processing.capabilities import Capabilities, CapabilityError
from email_ai.processing.fallbacks import detect_language_by_script
from email_ai.processing.prompts import (
    CLASSIFICATION_TOOL,
    LANGUAGE_TOOL,
    PRIORITY_SYSTEM,
    build_classification_messages,
    build_custom_label_messages,
    build_custom_label_system,
    build_draft_messages,
    build_language_messages,
    build_priority_messages,
    build_proofread_messages,
    build_rewrite_messages,
    build_summary_messages,
    build_translation_messages,
)
from email_ai.processing.types import (
    Category,
    Classification,
    CustomLabel,
    MessageMetadata,
    Priority,
)

logger = logging.getLogger(__name__)

# Haiku: fast and cheap enough to run on every incoming email.
DEFAULT_MODEL = "claude-haiku-4-5-20251001"
_MAX_TOKENS = 1024
_LABEL_MATCH_MAX_TOKENS = 8
_PRIORITY_MAX_TOKENS = 8
_MIN_LANGUAGE_CONFIDENCE = 0.5


class AnthropicStage:
    """Shared client plumbing for every Anthropic-backed stage."""

    def __init__(
        self,
        client: AsyncAnthropic | None = None,
        *,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
    ) -> None:
        self._client = client or AsyncAnthropic(
            api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        )
        self._model = model

    async def _complete_text(
        self,
        messages: list[dict[str, str]],
        *,
        system: str | None = None,
        max_tokens: int = _MAX_TOKENS,
    ) -> str:
        kwargs: dict[str, Any] = {}
        if system is not None:
            kwargs["system"] = system
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=max_tokens,
            messages=messages,  # type: ignore[arg-type]
            **kwargs,
        )
        for block in response.content:
            if isinstance(block, TextBlock) and block.text.strip():
                return block.text.strip()
        raise CapabilityError(
            f"Model returned no text (stop_reason={response.stop_reason!r})"
        )

    async def _call_tool(
        self, messages: list[dict[str, str]], tool: dict[str, Any]
    ) -> dict[str, Any]:
        response = await self._client.messages.create(
            model=self._model,
            max_tokens=_MAX_TOKENS,
            tools=[tool],  # type: ignore[list-item]
            tool_choice={"type": "tool", "name": tool["name"]},
            messages=messages,  # type: ignore[arg-type]
        )
        for block in response.content:
            if isinstance(block, ToolUseBlock) and block.name == tool["name"]:
                if isinstance(block.input, dict):
                    return block.input
        raise CapabilityError(
            f"Model did not return a {tool['name']} tool call "
            f"(stop_reason={response.stop_reason!r})"
        )


# ── Stages ─────────────────────────────────────────────────────────────────────


class AnthropicSummarizer(AnthropicStage):
    async def summarize(self, text: str) -> str:
        return await self._complete_text(build_summary_messages(text))


class AnthropicClassifier(AnthropicStage):
    async def classify(self, summary: str, metadata: MessageMetadata) -> Classification:
        data = await self._call_tool(
            build_classification_messages(summary, metadata), CLASSIFICATION_TOOL
        )
        return _parse_classification(data)


def _parse_classification(data: dict[str, object]) -> Classification:
    """Convert raw tool input into a Classification; bad categories coerce."""
    raw = data.get("category")
    category = Category.coerce(raw)
    if category.value != raw:
        logger.warning("Classifier returned %r; coerced to %s", raw, category.value)
    return Classification(category=category, summary=str(data.get("summary") or ""))


class AnthropicLabelMatcher(AnthropicStage):
    """One YES/NO call per label, fanned out concurrently then fanned in."""

    async def match_all(
        self, summary: str, metadata: MessageMetadata, labels: list[CustomLabel]
    ) -> set[str]:
        if not labels:
            return set()
        outcomes = await asyncio.gather(
            *(self._matches(summary, metadata, label) for label in labels),
            return_exceptions=True,
        )
        matched: set[str] = set()
        for label, outcome in zip(labels, outcomes):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                logger.warning("Custom label %r check failed: %s", label.name, outcome)
            elif outcome:
                matched.add(label.name)
        return matched

    async def _matches(
        self, summary: str, metadata: MessageMetadata, label: CustomLabel
    ) -> bool:
        answer = await self._complete_text(
            build_custom_label_messages(summary, metadata),
            system=build_custom_label_system(label),
            max_tokens=_LABEL_MATCH_MAX_TOKENS,
        )
        return answer.strip().upper().startswith("YES")


class AnthropicPrioritizer(AnthropicStage):
    async def prioritize(
        self, summary: str, metadata: MessageMetadata, category: Category
    ) -> Priority:
        answer = await self._complete_text(
            build_priority_messages(summary, metadata, category),
            system=PRIORITY_SYSTEM,
            max_tokens=_PRIORITY_MAX_TOKENS,
        )
        return Priority.parse(answer)


class AnthropicDraftGenerator(AnthropicStage):
    async def generate(self, message: Message, tone: str) -> str:
        return await self._complete_text(build_draft_messages(message, tone))


class AnthropicRewriter(AnthropicStage):
    async def rewrite(self, text: str) -> str:
        return await self._complete_text(build_rewrite_messages(text))


class AnthropicTranslator(AnthropicStage):
    async def detect_language(self, text: str) -> str:
        data = await self._call_tool(build_language_messages(text), LANGUAGE_TOOL)
        language = str(data.get("language") or "").strip().lower()
        try:
            confidence = float(data.get("confidence", 0.0))  # type: ignore[arg-type]
        except (TypeError, ValueError):
            confidence = 0.0
        if not language or confidence <= _MIN_LANGUAGE_CONFIDENCE:
            return detect_language_by_script(text)
        return language

    async def translate(self, text: str, source: str, target: str) -> str:
        if source == target:
            return text
        return await self._complete_text(build_translation_messages(text, source, target))


class AnthropicProofreader(AnthropicStage):
    async def proofread(self, text: str) -> str:
        return await self._complete_text(build_proofread_messages(text))


def anthropic_capabilities(
    api_key: str | None = None, model: str = DEFAULT_MODEL
) -> Capabilities:
    """All stages sharing a single AsyncAnthropic client."""
    client = AsyncAnthropic(api_key=api_key or os.environ.get("ANTHROPIC_API_KEY", ""))
    return Capabilities(
        summarizer=AnthropicSummarizer(client, model=model),
        classifier=AnthropicClassifier(client, model=model),
        label_matcher=AnthropicLabelMatcher(client, model=model),
        prioritizer=AnthropicPrioritizer(client, model=model),
        draft_generator=AnthropicDraftGenerator(client, model=model),
        rewriter=AnthropicRewriter(client, model=model),
        translator=AnthropicTranslator(client, model=model),
        proofreader=AnthropicProofreader(client, model=model),
    )
