"""SQLite table schemas and typed query result types for the state database."""

from dataclasses import dataclass


# ── DDL ────────────────────────────────────────────────────────────────────────

# seq gives insertion order for FIFO eviction; re-inserting an id keeps its seq.
_CREATE_PROCESSED_MESSAGES = """
CREATE TABLE IF NOT EXISTS processed_messages (
    seq           INTEGER PRIMARY KEY AUTOINCREMENT,
    message_id    TEXT NOT NULL UNIQUE,
    processed_at  TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Single-row table (id is always 1).
_CREATE_STATISTICS = """
CREATE TABLE IF NOT EXISTS statistics (
    id                     INTEGER PRIMARY KEY CHECK (id = 1),
    messages_processed     INTEGER NOT NULL DEFAULT 0,
    drafts_generated       INTEGER NOT NULL DEFAULT 0,
    estimated_hours_saved  REAL NOT NULL DEFAULT 0.0,
    last_updated           TEXT
)
"""

_CREATE_APP_STATE = """
CREATE TABLE IF NOT EXISTS app_state (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
)
"""

_CREATE_CUSTOM_LABELS = """
CREATE TABLE IF NOT EXISTS custom_labels (
    id            TEXT PRIMARY KEY,
    name          TEXT NOT NULL UNIQUE,
    prompt        TEXT NOT NULL,
    enabled       INTEGER NOT NULL DEFAULT 1,
    created_at    TEXT NOT NULL,
    last_used_at  TEXT
)
"""

# Latest priority per message; bounded, oldest recorded_at evicted first.
_CREATE_PRIORITIES = """
CREATE TABLE IF NOT EXISTS priorities (
    message_id   TEXT PRIMARY KEY,
    priority     TEXT NOT NULL,
    recorded_at  TEXT NOT NULL
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_PROCESSED_MESSAGES,
    _CREATE_STATISTICS,
    _CREATE_APP_STATE,
    _CREATE_CUSTOM_LABELS,
    _CREATE_PRIORITIES,
]

#: Keys used in the app_state table.
LAST_SYNC_KEY = "last_sync"
SETTINGS_KEY = "settings"


# ── Query result types ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Statistics:
    """Usage counters.  Monotonically non-decreasing within a process lifetime."""

    messages_processed: int = 0
    drafts_generated: int = 0
    estimated_hours_saved: float = 0.0
    last_updated: str | None = None
