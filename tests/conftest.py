"""Shared pytest fixtures."""

from pathlib import Path

import pytest

from email_ai.mcp.types import Message
from email_ai.storage.db import StateDatabase


@pytest.fixture
def db(tmp_path: Path) -> StateDatabase:
    """A fresh state database in a temporary directory."""
    database = StateDatabase(db_path=tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def sample_message() -> Message:
    """A minimal message that asks for a reply."""
    return Message(
        id="msg_001",
        thread_id="thread_001",
        sender="Alice Smith <alice@example.com>",
        subject="Q2 budget review",
        snippet="Hi, could you review the attached budget figures...",
        body="Hi, could you review the attached budget figures and respond by Friday?",
        sent_at="2026-02-27T09:00:00Z",
    )
