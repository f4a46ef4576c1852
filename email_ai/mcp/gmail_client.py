"""Gmail MCP client — the mailbox collaborator behind a typed async API."""

import asyncio
import json
import logging
import os
import re
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any

from mcp import ClientSession
from mcp.client.stdio import StdioServerParameters, stdio_client
from mcp.types import TextContent

from email_ai.mcp.types import DraftReceipt, Message

logger = logging.getLogger(__name__)

_UNREAD_QUERY = "is:unread in:inbox"

# JSON-decoded value from an MCP tool response
_JsonValue = dict[str, Any] | list[Any] | str | None


class MCPError(Exception):
    """Raised when a workspace-mcp tool call returns an error."""


class GmailClient:
    """Thin async wrapper around the workspace-mcp Gmail tools.

    Implements the mailbox contract consumed by the sync core:
    ``list_unread``, ``apply_label`` and ``create_reply_draft``.  Holds a
    single long-lived MCP session; use the `gmail_client()` context manager
    to construct and tear down correctly.
    """

    def __init__(self, session: ClientSession, user_email: str) -> None:
        self._session = session
        self._user_email = user_email
        self._label_cache: dict[str, str] = {}  # label name → label ID

    # ── Public API ─────────────────────────────────────────────────────────────

    async def list_unread(self, max_results: int = 10) -> list[Message]:
        """Return up to ``max_results`` unread messages with full body content.

        Makes two MCP calls: a lightweight search, then a batch content fetch.
        Messages come back in the order the search listed them.
        """
        raw = await self._call(
            "search_gmail_messages",
            {"query": _UNREAD_QUERY, "page_size": max_results,
             "user_google_email": self._user_email},
        )
        ids = self._parse_search_ids(raw)[:max_results]
        if not ids:
            return []

        content = await self._call(
            "get_gmail_messages_content_batch",
            {"message_ids": ids, "user_google_email": self._user_email},
        )
        by_id = {m.id: m for m in self._parse_batch_messages(content)}
        return [by_id[i] for i in ids if i in by_id]

    async def get_message(self, message_id: str) -> Message:
        """Return a single message with full body."""
        raw = await self._call(
            "get_gmail_message_content",
            {"message_id": message_id, "user_google_email": self._user_email},
        )
        if isinstance(raw, str):
            messages = self._parse_batch_messages(raw)
            if messages:
                return messages[0]
            raise MCPError(f"Could not parse message {message_id} from response")
        if isinstance(raw, dict):
            return self._parse_message_dict(raw)
        raise MCPError(f"Unexpected response type for message {message_id}: {type(raw)}")

    async def apply_label(self, message_id: str, label_name: str) -> None:
        """Add a label to a message, creating the label first if needed."""
        label_id = await self._get_or_create_label_id(label_name)
        await self._call(
            "modify_gmail_message_labels",
            {"message_id": message_id, "add_label_ids": [label_id],
             "user_google_email": self._user_email},
        )
        logger.debug("Applied label %r (id=%s) to message %s", label_name, label_id, message_id)

    async def create_reply_draft(
        self, thread_id: str, to: str, subject: str, body: str
    ) -> DraftReceipt:
        """Create (but never send) a reply draft in the given thread."""
        reply_subject = subject if subject.lower().startswith("re:") else f"Re: {subject}"
        raw = await self._call(
            "draft_gmail_message",
            {
                "to": to,
                "subject": reply_subject,
                "body": body,
                "thread_id": thread_id,
                "user_google_email": self._user_email,
            },
        )
        receipt = self._parse_draft_receipt(raw, thread_id)
        logger.info("Created reply draft %s in thread %s", receipt.draft_id, thread_id)
        return receipt

    async def create_label(self, label_name: str) -> str:
        """Create a Gmail label and return its ID.

        If the label already exists (found in cache), returns the cached ID
        without making an MCP call.
        """
        cached = self._label_cache.get(label_name)
        if cached:
            return cached

        await self._call("manage_gmail_label", {"name": label_name, "action": "create",
                                                "user_google_email": self._user_email})
        await self._refresh_label_cache()

        label_id = self._label_cache.get(label_name)
        if label_id is None:
            raise MCPError(
                f"Label {label_name!r} was created but is missing from Gmail label list"
            )
        logger.info("Created Gmail label: %s (id=%s)", label_name, label_id)
        return label_id

    async def ensure_labels(self, label_names: Iterable[str]) -> None:
        """Idempotently create the given labels.  Safe to call on every startup."""
        await self._refresh_label_cache()
        for label_name in label_names:
            if label_name not in self._label_cache:
                await self.create_label(label_name)

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _refresh_label_cache(self) -> None:
        """Rebuild the name → ID cache from the live Gmail label list."""
        raw = await self._call(
            "list_gmail_labels", {"user_google_email": self._user_email}
        )
        if isinstance(raw, list):
            self._label_cache = {
                str(lbl["name"]): str(lbl["id"])
                for lbl in raw
                if isinstance(lbl, dict) and "name" in lbl and "id" in lbl
            }
        elif isinstance(raw, str):
            # workspace-mcp formats labels as:  • LabelName (ID: label_id)
            self._label_cache = {
                m.group(1): m.group(2)
                for m in re.finditer(r"•\s+(.+?)\s+\(ID:\s+(.+?)\)", raw)
            }
        else:
            logger.warning("Unexpected response from list_gmail_labels: %r", raw)
            return
        logger.debug("Label cache refreshed: %d labels", len(self._label_cache))

    async def _get_or_create_label_id(self, label_name: str) -> str:
        if label_name not in self._label_cache:
            await self._refresh_label_cache()
        if label_name not in self._label_cache:
            return await self.create_label(label_name)
        return self._label_cache[label_name]

    async def _call(self, tool_name: str, arguments: dict[str, Any]) -> _JsonValue:
        """Call a workspace-mcp tool and return the parsed JSON result.

        Raises MCPError if the tool returns an error.  Plain-string responses
        (e.g. "Draft created!") are returned as-is.
        """
        logger.debug("MCP → %s %s", tool_name, arguments)
        result = await self._session.call_tool(tool_name, arguments)

        if result.isError:
            raise MCPError(f"Tool {tool_name!r} returned error: {result.content}")

        text = next(
            (item.text for item in result.content or [] if isinstance(item, TextContent)),
            None,
        )
        if text is None:
            return None

        try:
            parsed: _JsonValue = json.loads(text)
            return parsed
        except json.JSONDecodeError:
            return text

    @staticmethod
    def _parse_search_ids(raw: _JsonValue) -> list[str]:
        """Extract message IDs from a search response (text or JSON list)."""
        if isinstance(raw, list):
            return [
                str(m.get("message_id", ""))
                for m in raw
                if isinstance(m, dict) and m.get("message_id")
            ]
        if isinstance(raw, str):
            return re.findall(r"Message ID:\s*(\S+)", raw)
        return []

    @staticmethod
    def _parse_batch_messages(raw: _JsonValue) -> list[Message]:
        """Parse one or more messages from a batch/single content response.

        workspace-mcp returns text blocks like::

            Message ID: abc123
            Thread ID: t456
            Subject: Hello
            From: alice@example.com
            Date: Mon, 1 Jan 2026 12:00:00 +0000
            To: <bob@example.com>

            Body text follows after a blank line...
        """
        if isinstance(raw, list):
            return [GmailClient._parse_message_dict(m) for m in raw if isinstance(m, dict)]
        if isinstance(raw, dict):
            return [GmailClient._parse_message_dict(raw)]
        if not isinstance(raw, str):
            return []

        messages: list[Message] = []
        for block in re.split(r"(?=^Message ID:)", raw, flags=re.MULTILINE):
            block = block.strip()
            if not block.startswith("Message ID:"):
                continue

            def _header(name: str) -> str:
                m = re.search(rf"^{name}:\s*(.+)$", block, re.MULTILINE)
                return m.group(1).strip() if m else ""

            body = ""
            header_end = re.search(r"\n\s*\n", block)
            if header_end:
                body = block[header_end.end():].strip()
            to_raw = _header("To")

            messages.append(Message(
                id=_header("Message ID"),
                thread_id=_header("Thread ID"),
                sender=_header("From"),
                recipient=re.sub(r"^<|>$", "", to_raw) if to_raw else None,
                subject=_header("Subject") or "(no subject)",
                snippet=body[:200],
                body=body or None,
                sent_at=_header("Date") or None,
                web_link=_header("Web Link") or None,
            ))
        return messages

    @staticmethod
    def _parse_message_dict(data: dict[str, Any]) -> Message:
        """Map a raw MCP message dict to a Message dataclass (JSON responses)."""
        body_raw = data.get("body", "")
        recipient_raw = data.get("to", "")
        date_raw = data.get("date", "")
        link_raw = data.get("web_link", "")

        return Message(
            id=str(data.get("message_id", data.get("id", ""))),
            thread_id=str(data.get("thread_id", "")),
            sender=str(data.get("from", "")),
            recipient=str(recipient_raw) if recipient_raw else None,
            subject=str(data.get("subject", "(no subject)")),
            snippet=str(data.get("snippet", "")),
            body=str(body_raw) if body_raw else None,
            label_ids=frozenset(data.get("labels", [])),
            sent_at=str(date_raw) if date_raw else None,
            web_link=str(link_raw) if link_raw else None,
        )

    @staticmethod
    def _parse_draft_receipt(raw: _JsonValue, thread_id: str) -> DraftReceipt:
        if isinstance(raw, dict):
            draft_id = raw.get("draft_id") or raw.get("id")
            if draft_id:
                return DraftReceipt(
                    draft_id=str(draft_id),
                    thread_id=str(raw.get("thread_id") or thread_id),
                    message_id=str(raw["message_id"]) if raw.get("message_id") else None,
                )
        if isinstance(raw, str):
            m = re.search(r"Draft ID:\s*(\S+)", raw)
            if m:
                return DraftReceipt(draft_id=m.group(1), thread_id=thread_id)
        raise MCPError(f"Draft creation returned no draft ID: {raw!r}")


_MCP_CONNECT_RETRIES = 5
_MCP_RETRY_DELAY_SECONDS = 3


@asynccontextmanager
async def gmail_client(
    *,
    user_email: str | None = None,
    server_command: str | None = None,
) -> AsyncIterator[GmailClient]:
    """Async context manager that yields a connected, ready-to-use GmailClient.

    Spawns `workspace-mcp` as a subprocess via the MCP stdio transport,
    initialises the session, warms the label cache, and tears everything
    down cleanly on exit.  Retries the connection because workspace-mcp's
    internal OAuth server may still hold its port from a previous run.

    Args:
        user_email: Google account email. Falls back to USER_GOOGLE_EMAIL env var.
        server_command: Command used to launch the MCP server.
                        Defaults to GMAIL_MCP_SERVER_PATH env var (or "uvx").
    """
    email = user_email or os.environ.get("USER_GOOGLE_EMAIL", "")
    if not email:
        raise ValueError(
            "user_email must be provided or USER_GOOGLE_EMAIL env var must be set"
        )

    cmd = server_command or os.environ.get("GMAIL_MCP_SERVER_PATH", "uvx")
    _cmd_basename = os.path.basename(cmd).lower().replace(".exe", "")
    args = ["workspace-mcp", "--tools", "gmail"] if _cmd_basename == "uvx" else []

    server_params = StdioServerParameters(
        command=cmd,
        args=args,
        env={
            **os.environ,
            "USER_GOOGLE_EMAIL": email,
            "MCP_SINGLE_USER_MODE": "1",
            "WORKSPACE_MCP_PORT": os.environ.get("WORKSPACE_MCP_PORT", "18741"),
            "PYTHONUTF8": "1",
        },
    )

    for attempt in range(1, _MCP_CONNECT_RETRIES + 1):
        connected = False
        try:
            async with stdio_client(server_params) as (read, write):
                async with ClientSession(read, write) as session:
                    await session.initialize()
                    client = GmailClient(session, email)
                    await client._refresh_label_cache()
                    logger.info("Gmail MCP client connected (%s)", email)
                    connected = True
                    yield client
                    return
        except Exception:
            # Errors raised by the caller after connecting are not retried.
            if connected or attempt >= _MCP_CONNECT_RETRIES:
                raise
            logger.warning(
                "MCP server connection failed (attempt %d/%d) — retrying in %ds",
                attempt,
                _MCP_CONNECT_RETRIES,
                _MCP_RETRY_DELAY_SECONDS,
            )
            await asyncio.sleep(_MCP_RETRY_DELAY_SECONDS)
