"""Data types shared across MCP client modules."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Message:
    """A mailbox message as returned by the Gmail MCP server.

    Immutable once fetched.  The Message Processor owns one instance for the
    duration of a single pipeline run.

    Fields populated by search_gmail_messages (lightweight):
        id, thread_id, sender, subject, snippet, label_ids, web_link

    Fields populated by get_gmail_message_content (full):
        body, recipient, sent_at  (plus all of the above)
    """

    id: str
    thread_id: str
    sender: str
    subject: str
    snippet: str
    label_ids: frozenset[str] = field(default_factory=frozenset)
    body: str | None = None
    recipient: str | None = None
    sent_at: str | None = None
    web_link: str | None = None

    @property
    def content(self) -> str:
        """Body text, or the snippet when only headers were fetched."""
        return self.body or self.snippet or ""


@dataclass(frozen=True)
class DraftReceipt:
    """Confirmation returned by the mailbox after a reply draft is created."""

    draft_id: str
    thread_id: str
    message_id: str | None = None
