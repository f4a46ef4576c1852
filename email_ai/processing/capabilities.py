"""Stage collaborator interfaces and backend selection.

Each AI stage is a swappable black box behind one Protocol.  Two
implementations exist per stage — Anthropic-backed (``ai.py``) and offline
deterministic (``local.py``) — chosen once at startup by build_capabilities().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from email_ai.mcp.types import Message
from email_ai.processing.types import (
    Category,
    Classification,
    CustomLabel,
    MessageMetadata,
    Priority,
)

if TYPE_CHECKING:
    from email_ai.config import AgentConfig

logger = logging.getLogger(__name__)


class CapabilityError(Exception):
    """Raised when a collaborator's response cannot be used."""


# ── Interfaces ─────────────────────────────────────────────────────────────────


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, text: str) -> str: ...


@runtime_checkable
class Classifier(Protocol):
    async def classify(self, summary: str, metadata: MessageMetadata) -> Classification: ...


@runtime_checkable
class CustomLabelMatcher(Protocol):
    async def match_all(
        self, summary: str, metadata: MessageMetadata, labels: list[CustomLabel]
    ) -> set[str]:
        """Return the names of the labels the message matches (possibly empty)."""
        ...


@runtime_checkable
class Prioritizer(Protocol):
    async def prioritize(
        self, summary: str, metadata: MessageMetadata, category: Category
    ) -> Priority: ...


@runtime_checkable
class DraftGenerator(Protocol):
    async def generate(self, message: Message, tone: str) -> str: ...


@runtime_checkable
class Rewriter(Protocol):
    async def rewrite(self, text: str) -> str: ...


@runtime_checkable
class Translator(Protocol):
    async def detect_language(self, text: str) -> str: ...

    async def translate(self, text: str, source: str, target: str) -> str: ...


@runtime_checkable
class Proofreader(Protocol):
    async def proofread(self, text: str) -> str: ...


@dataclass(frozen=True)
class Capabilities:
    """The full set of stage collaborators used by one processor."""

    summarizer: Summarizer
    classifier: Classifier
    label_matcher: CustomLabelMatcher
    prioritizer: Prioritizer
    draft_generator: DraftGenerator
    rewriter: Rewriter
    translator: Translator
    proofreader: Proofreader


# ── Selection ──────────────────────────────────────────────────────────────────


def resolve_backend(config: AgentConfig) -> str:
    """Return "anthropic" or "local" for the configured AI_BACKEND.

    ``auto`` picks anthropic when an API key is present.
    """
    backend = config.ai_backend
    if backend == "auto":
        return "anthropic" if config.anthropic_api_key else "local"
    if backend not in ("anthropic", "local"):
        logger.warning("Unknown AI_BACKEND %r; using local capabilities", backend)
        return "local"
    if backend == "anthropic" and not config.anthropic_api_key:
        logger.warning("AI_BACKEND=anthropic but ANTHROPIC_API_KEY is unset")
    return backend


def build_capabilities(config: AgentConfig) -> Capabilities:
    """Instantiate every stage collaborator for the selected backend."""
    from email_ai.processing import ai, local

    backend = resolve_backend(config)
    logger.info("AI capabilities backend: %s", backend)
    if backend == "local":
        return local.local_capabilities()
    return ai.anthropic_capabilities(api_key=config.anthropic_api_key, model=config.model)
