"""Anthropic tool definitions and prompt builders for every AI stage."""

from html.parser import HTMLParser
from typing import Any

from email_ai.mcp.types import Message
from email_ai.processing.types import Category, CustomLabel, MessageMetadata

# Maximum characters of message body sent to the model, counted after HTML
# stripping.
BODY_CHAR_LIMIT = 4_000


# ── HTML stripper ───────────────────────────────────────────────────────────────


class _HTMLStripper(HTMLParser):
    """Minimal HTMLParser subclass that collects visible text nodes."""

    def __init__(self) -> None:
        super().__init__()
        self._parts: list[str] = []

    def handle_data(self, data: str) -> None:
        text = data.strip()
        if text:
            self._parts.append(text)

    def get_text(self) -> str:
        return " ".join(self._parts)


def strip_html(text: str) -> str:
    """Return plain text from an HTML string.

    If the input doesn't look like HTML, or stripping produces nothing useful,
    the original string is returned unchanged.
    """
    if "<" not in text:
        return text
    stripper = _HTMLStripper()
    try:
        stripper.feed(text)
        result = stripper.get_text()
        # Stripping away >90% of the content means the input was not really HTML.
        return result if len(result) > len(text) * 0.1 else text
    except Exception:  # noqa: BLE001
        return text


def _body_preview(text: str) -> str:
    plain = strip_html(text)
    if len(plain) > BODY_CHAR_LIMIT:
        return plain[:BODY_CHAR_LIMIT] + "\n[… email truncated …]"
    return plain


def _user(content: str) -> list[dict[str, str]]:
    return [{"role": "user", "content": content}]


# ── Tool definitions ───────────────────────────────────────────────────────────

#: Forced tool for classification.  The enum is advisory only: the processor
#: still coerces whatever comes back onto Category.
CLASSIFICATION_TOOL: dict[str, Any] = {
    "name": "record_classification",
    "description": "Record the category and a one-sentence summary of an email.",
    "input_schema": {
        "type": "object",
        "properties": {
            "category": {
                "type": "string",
                "enum": [c.value for c in Category],
                "description": (
                    "Notification: automated notices, receipts, confirmations, newsletters. "
                    "Respond: needs a personal reply or action. "
                    "Advertisement: marketing, promotions, spam."
                ),
            },
            "summary": {
                "type": "string",
                "description": "One concise sentence, at most 100 characters.",
            },
        },
        "required": ["category", "summary"],
    },
}

LANGUAGE_TOOL: dict[str, Any] = {
    "name": "record_language",
    "description": "Record the dominant language of a text.",
    "input_schema": {
        "type": "object",
        "properties": {
            "language": {
                "type": "string",
                "description": "ISO 639-1 code, e.g. 'en', 'es', 'de'.",
            },
            "confidence": {
                "type": "number",
                "description": "0.0 to 1.0.",
            },
        },
        "required": ["language", "confidence"],
    },
}


# ── Prompt builders ─────────────────────────────────────────────────────────────


def build_summary_messages(text: str) -> list[dict[str, str]]:
    return _user(
        "Condense this email into a brief plain-text summary (two sentences at most). "
        "Reply with the summary only.\n\n" + _body_preview(text)
    )


def build_classification_messages(
    summary: str, metadata: MessageMetadata
) -> list[dict[str, str]]:
    return _user(
        "Classify the following email and call record_classification.\n\n"
        f"Subject: {metadata.subject or 'No subject'}\n"
        f"From: {metadata.sender or 'Unknown sender'}\n"
        f"Summary: {summary}"
    )


def build_custom_label_system(label: CustomLabel) -> str:
    return (
        "You are an email classification assistant. Decide whether an email "
        f'matches the criteria for the label "{label.name}".\n\n'
        f"Criteria:\n{label.prompt}\n\n"
        'Respond with ONLY "YES" or "NO". No explanation.'
    )


def build_custom_label_messages(
    summary: str, metadata: MessageMetadata
) -> list[dict[str, str]]:
    return _user(
        "Email to classify:\n\n"
        f"Subject: {metadata.subject or 'No subject'}\n"
        f"From: {metadata.sender or 'Unknown sender'}\n"
        f"Date: {metadata.sent_at or 'Unknown date'}\n"
        f"Content: {summary}"
    )


PRIORITY_SYSTEM = (
    "You are an email prioritization assistant. Judge urgency from time "
    "sensitivity, the sender's importance, the action required and its impact.\n\n"
    "High: time-sensitive or critical, needs attention now.\n"
    "Medium: important but can wait up to a day.\n"
    "Low: informational, no prompt action needed.\n\n"
    'Respond with ONLY "High", "Medium" or "Low". No explanation.'
)


def build_priority_messages(
    summary: str, metadata: MessageMetadata, category: Category
) -> list[dict[str, str]]:
    return _user(
        "Email to prioritize:\n\n"
        f"Subject: {metadata.subject or 'No subject'}\n"
        f"From: {metadata.sender or 'Unknown sender'}\n"
        f"Date: {metadata.sent_at or 'Unknown date'}\n"
        f"Category: {category.value}\n"
        f"Content: {summary}"
    )


def build_draft_messages(message: Message, tone: str) -> list[dict[str, str]]:
    return _user(
        f"Write a {tone} reply to the email below.\n"
        "- Address the main points of the original\n"
        "- Two or three short paragraphs at most\n"
        "- Reply with the body text only, no subject line\n\n"
        f"From: {message.sender}\n"
        f"Subject: {message.subject}\n\n"
        + _body_preview(message.content)
    )


def build_rewrite_messages(text: str) -> list[dict[str, str]]:
    return _user(
        "Polish this email draft so it reads naturally and is ready to send. "
        "Preserve its meaning and language. Reply with the rewritten draft only.\n\n"
        + text
    )


def build_language_messages(text: str) -> list[dict[str, str]]:
    return _user(
        "Identify the language of the text below and call record_language.\n\n"
        + _body_preview(text)
    )


def build_translation_messages(text: str, source: str, target: str) -> list[dict[str, str]]:
    return _user(
        f"Translate this email from '{source}' to '{target}'. Keep formatting and "
        "tone. Reply with the translation only.\n\n" + text
    )


def build_proofread_messages(text: str) -> list[dict[str, str]]:
    return _user(
        "Correct grammar, spelling and punctuation in this email draft. Do not "
        "change its meaning, tone or language. Reply with the corrected text only.\n\n"
        + text
    )
