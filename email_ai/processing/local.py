"""Offline stage collaborators built on the deterministic fallbacks.

Used when no AI backend is configured, and in tests.
"""

from email_ai.mcp.types import Message
from email_ai.processing.capabilities import Capabilities
from email_ai.processing.fallbacks import (
    basic_cleanup,
    detect_language_by_script,
    keyword_classify,
    keyword_prioritize,
    template_draft,
    truncate_summary,
)
from email_ai.processing.types import (
    Category,
    Classification,
    CustomLabel,
    MessageMetadata,
    Priority,
)


class LocalSummarizer:
    async def summarize(self, text: str) -> str:
        return truncate_summary(text)


class LocalClassifier:
    """Keyword rules over the summary; the same rules back the AI classifier."""

    async def classify(self, summary: str, metadata: MessageMetadata) -> Classification:
        return keyword_classify(subject=metadata.subject, sender=metadata.sender, body=summary)


class LocalLabelMatcher:
    """Free-text criteria need a model to evaluate, so nothing matches offline."""

    async def match_all(
        self, summary: str, metadata: MessageMetadata, labels: list[CustomLabel]
    ) -> set[str]:
        return set()


class LocalPrioritizer:
    async def prioritize(
        self, summary: str, metadata: MessageMetadata, category: Category
    ) -> Priority:
        return keyword_prioritize(summary=summary, subject=metadata.subject, category=category)


class LocalDraftGenerator:
    async def generate(self, message: Message, tone: str) -> str:
        return template_draft(message)


class LocalRewriter:
    async def rewrite(self, text: str) -> str:
        return text


class LocalTranslator:
    """Script-based detection; translation is a pass-through."""

    async def detect_language(self, text: str) -> str:
        return detect_language_by_script(text)

    async def translate(self, text: str, source: str, target: str) -> str:
        return text


class LocalProofreader:
    async def proofread(self, text: str) -> str:
        return basic_cleanup(text)


def local_capabilities() -> Capabilities:
    return Capabilities(
        summarizer=LocalSummarizer(),
        classifier=LocalClassifier(),
        label_matcher=LocalLabelMatcher(),
        prioritizer=LocalPrioritizer(),
        draft_generator=LocalDraftGenerator(),
        rewriter=LocalRewriter(),
        translator=LocalTranslator(),
        proofreader=LocalProofreader(),
    )
