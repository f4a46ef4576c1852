"""Types for the message enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Category(str, Enum):
    """Closed set of classification outcomes for a message.

    Values double as the Gmail label names applied to classified messages.
    """

    NOTIFICATION = "Notification"
    RESPOND = "Respond"
    ADVERTISEMENT = "Advertisement"

    @classmethod
    def coerce(cls, value: object) -> Category:
        """Map arbitrary collaborator output onto a member.

        Case and surrounding whitespace are ignored.  Anything unrecognised,
        including None, empty strings and non-strings, becomes NOTIFICATION.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            wanted = value.strip().lower()
            for member in cls:
                if member.value.lower() == wanted:
                    return member
        return cls.NOTIFICATION


class Priority(str, Enum):
    """Urgency assigned to messages that need a reply."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def parse(cls, value: object) -> Priority:
        """Read a level out of free-form model output.

        The first of "high", "medium", "low" found in the text wins, in that
        order.  Anything else, including non-strings, becomes MEDIUM.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip().lower()
            for member in (cls.HIGH, cls.MEDIUM, cls.LOW):
                if member.value.lower() in text:
                    return member
        return cls.MEDIUM


class Tone(str, Enum):
    """Tone requested from the draft generator."""

    PROFESSIONAL = "professional"
    FRIENDLY = "friendly"
    CONCISE = "concise"


@dataclass(frozen=True)
class Classification:
    """Category plus the classifier's one-line summary."""

    category: Category
    summary: str = ""


@dataclass(frozen=True)
class CustomLabel:
    """A user-defined label with the criteria prompt used to match it."""

    id: str
    name: str
    prompt: str
    enabled: bool = True
    created_at: str | None = None
    last_used_at: str | None = None


@dataclass
class Draft:
    """Reply text carried through generate → rewrite → translate → proofread.

    Mutated in place: each stage either replaces ``text`` or leaves it as-is.
    """

    text: str
    origin_language: str = "en"
    target_language: str = "en"


@dataclass(frozen=True)
class ProcessingResult:
    """Terminal record for one message, consumed by the Sync Controller."""

    message_id: str
    succeeded: bool
    category: Category | None = None
    matched_custom_labels: frozenset[str] = field(default_factory=frozenset)
    summary: str = ""
    draft_created: bool = False
    priority: Priority | None = None
    error_reason: str | None = None

    @classmethod
    def ok(
        cls,
        message_id: str,
        category: Category,
        matched_custom_labels: frozenset[str] = frozenset(),
        summary: str = "",
        draft_created: bool = False,
        priority: Priority | None = None,
    ) -> ProcessingResult:
        return cls(
            message_id=message_id,
            succeeded=True,
            category=category,
            matched_custom_labels=matched_custom_labels,
            summary=summary,
            draft_created=draft_created,
            priority=priority,
        )

    @classmethod
    def failed(cls, message_id: str, error_reason: str) -> ProcessingResult:
        return cls(message_id=message_id, succeeded=False, error_reason=error_reason)


@dataclass(frozen=True)
class MessageMetadata:
    """Header fields handed to classifiers alongside the summary."""

    subject: str = ""
    sender: str = ""
    sent_at: str | None = None
