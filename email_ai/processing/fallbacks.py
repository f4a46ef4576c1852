"""Deterministic, non-AI substitutes used when a stage's collaborator fails.

Everything here is pure and synchronous so that fallback output is
reproducible in tests.
"""

import re

from email_ai.mcp.types import Message
from email_ai.processing.types import Category, Classification, Priority

#: Characters of raw body kept when summarization is unavailable.
SUMMARY_FALLBACK_CHARS = 500

# Keyword tiers, checked in this order.  The first tier that matches wins.
ADVERTISEMENT_KEYWORDS: tuple[str, ...] = (
    "unsubscribe", "promotion", "discount", "offer", "sale",
    "marketing", "advertisement",
)
NOTIFICATION_KEYWORDS: tuple[str, ...] = (
    "notification", "alert", "confirmation", "receipt",
    "automated", "no-reply", "noreply",
)
RESPONSE_KEYWORDS: tuple[str, ...] = (
    "?", "please", "could you", "can you", "need", "request", "help", "question",
)
HIGH_PRIORITY_KEYWORDS: tuple[str, ...] = (
    "urgent", "asap", "immediately", "critical", "emergency", "deadline", "today",
)


def truncate_summary(text: str | None) -> str:
    """First SUMMARY_FALLBACK_CHARS characters of the body, exactly as received."""
    return (text or "")[:SUMMARY_FALLBACK_CHARS]


def _contains_any(keywords: tuple[str, ...], *haystacks: str) -> bool:
    return any(k in h for k in keywords for h in haystacks)


def keyword_classify(subject: str = "", sender: str = "", body: str = "") -> Classification:
    """Three-tier keyword classifier.

    1. advertisement keywords in subject or body  → ADVERTISEMENT
    2. notification keywords in sender or subject → NOTIFICATION
    3. response keywords in subject or body       → RESPOND
    4. otherwise                                  → NOTIFICATION
    """
    subject_l = (subject or "").lower()
    sender_l = (sender or "").lower()
    body_l = (body or "").lower()

    if _contains_any(ADVERTISEMENT_KEYWORDS, subject_l, body_l):
        return Classification(Category.ADVERTISEMENT, "Marketing or promotional email")
    if _contains_any(NOTIFICATION_KEYWORDS, sender_l, subject_l):
        return Classification(Category.NOTIFICATION, "Automated notification or confirmation")
    if _contains_any(RESPONSE_KEYWORDS, subject_l, body_l):
        return Classification(Category.RESPOND, "Email requires response or action")
    return Classification(Category.NOTIFICATION, truncate_summary(body)[:100])


def keyword_prioritize(
    summary: str = "", subject: str = "", category: Category | None = None
) -> Priority:
    """Rule-based priority used when the prioritizer is unavailable.

    Urgency keywords in the subject or summary win, then automated and
    promotional categories rank LOW.  Everything else is MEDIUM.
    """
    subject_l = (subject or "").lower()
    summary_l = (summary or "").lower()

    if _contains_any(HIGH_PRIORITY_KEYWORDS, subject_l, summary_l):
        return Priority.HIGH
    if category in (Category.NOTIFICATION, Category.ADVERTISEMENT):
        return Priority.LOW
    return Priority.MEDIUM


def sender_display_name(sender: str | None) -> str:
    """Best-effort human name for a From header ("there" when unknown)."""
    if not sender:
        return "there"
    named = re.match(r"^\s*\"?([^<\"]+?)\"?\s*<", sender)
    if named:
        return named.group(1).strip()
    local = re.match(r"^\s*<?([^@<\s]+)@", sender)
    if local:
        return re.sub(r"[._]", " ", local.group(1)).strip()
    return "there"


def template_draft(message: Message) -> str:
    """Courtesy acknowledgement used when the draft generator is unavailable."""
    name = sender_display_name(message.sender)
    return (
        f"Thank you for your email, {name}.\n\n"
        f'I\'ve received your message regarding "{message.subject}" '
        "and will review it carefully.\n\n"
        "I'll get back to you with a detailed response shortly.\n\n"
        "Best regards"
    )


# Script checks in priority order; first match wins.
_SCRIPT_LANGUAGES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("ru", re.compile(r"[а-яА-ЯёЁ]")),
    ("zh", re.compile(r"[\u4e00-\u9fa5]")),
    ("ja", re.compile(r"[\u3040-\u309f\u30a0-\u30ff]")),
    ("es", re.compile(r"[áéíóúñ¿¡]", re.IGNORECASE)),
    ("fr", re.compile(r"[àâçèéêëîïôùûü]", re.IGNORECASE)),
    ("de", re.compile(r"[äöüß]", re.IGNORECASE)),
)


def detect_language_by_script(text: str | None) -> str:
    """Guess an ISO 639-1 code from the characters present.  Defaults to "en"."""
    for code, pattern in _SCRIPT_LANGUAGES:
        if pattern.search(text or ""):
            return code
    return "en"


def basic_cleanup(text: str) -> str:
    """Whitespace and sentence-spacing cleanup; the offline proofreading pass."""
    cleaned = re.sub(r"[ \t]+", " ", text)
    cleaned = re.sub(r" *\n *", "\n", cleaned)
    cleaned = re.sub(r"\n{3,}", "\n\n", cleaned)
    cleaned = re.sub(r"([.!?])([A-Z])", r"\1 \2", cleaned)
    return cleaned.strip()
