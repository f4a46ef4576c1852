"""SQLite persisted state — processed ids, statistics, settings, custom labels, priorities."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path

from email_ai.config import Settings
from email_ai.processing.types import CustomLabel, Priority
from email_ai.storage.models import (
    ALL_TABLES,
    LAST_SYNC_KEY,
    SETTINGS_KEY,
    Statistics,
)

logger = logging.getLogger(__name__)

_DEFAULT_DB_PATH = Path("data/email_ai.db")

#: Counters that StateDatabase.increment_statistic accepts.
STAT_COUNTERS: frozenset[str] = frozenset(
    {"messages_processed", "drafts_generated", "estimated_hours_saved"}
)


def utc_now() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class StateDatabase:
    """Wraps SQLite for everything the sync core persists across restarts.

    Designed for single-threaded use from an async event loop — all calls are
    synchronous/blocking but fast enough for a personal mailbox.  Every
    read-modify-write runs inside one transaction.

    Usage::

        db = StateDatabase()
        db.add_processed_id("msg_1", capacity=1000)
        stats = db.increment_statistic("messages_processed", 1)
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        custom_label_capacity: int = 500,
        priority_capacity: int = 500,
    ) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._custom_label_capacity = custom_label_capacity
        self._priority_capacity = priority_capacity
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Processed messages ──────────────────────────────────────────────────────

    def has_processed_id(self, message_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM processed_messages WHERE message_id = ?", (message_id,)
        ).fetchone()
        return row is not None

    def add_processed_id(self, message_id: str, capacity: int) -> None:
        """Insert an id (no-op if present) and evict the oldest beyond capacity."""
        with self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO processed_messages (message_id) VALUES (?)",
                (message_id,),
            )
            evicted = self._conn.execute(
                """
                DELETE FROM processed_messages
                WHERE seq NOT IN (
                    SELECT seq FROM processed_messages ORDER BY seq DESC LIMIT ?
                )
                """,
                (capacity,),
            ).rowcount
        if evicted:
            logger.debug("Evicted %d oldest processed id(s)", evicted)

    def processed_ids(self) -> list[str]:
        """All processed ids, oldest first."""
        rows = self._conn.execute(
            "SELECT message_id FROM processed_messages ORDER BY seq"
        ).fetchall()
        return [r["message_id"] for r in rows]

    def count_processed_ids(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM processed_messages").fetchone()
        return int(row["n"])

    # ── Statistics ──────────────────────────────────────────────────────────────

    def get_statistics(self) -> Statistics:
        row = self._conn.execute(
            "SELECT messages_processed, drafts_generated, estimated_hours_saved, "
            "last_updated FROM statistics WHERE id = 1"
        ).fetchone()
        return Statistics(**dict(row)) if row else Statistics()

    def increment_statistic(self, counter: str, amount: float) -> Statistics:
        """Read the latest row, add ``amount`` to ``counter``, stamp last_updated.

        Raises:
            ValueError: unknown counter or negative amount.
        """
        if counter not in STAT_COUNTERS:
            raise ValueError(f"Unknown statistics counter: {counter!r}")
        if amount < 0:
            raise ValueError("Statistics counters never decrease")
        with self._conn:
            current = self.get_statistics()
            value = getattr(current, counter) + amount
            # counter is validated against STAT_COUNTERS above.
            self._conn.execute(
                f"UPDATE statistics SET {counter} = ?, last_updated = ? WHERE id = 1",
                (value, utc_now()),
            )
        return self.get_statistics()

    def reset_statistics(self) -> None:
        with self._conn:
            self._conn.execute(
                "UPDATE statistics SET messages_processed = 0, drafts_generated = 0, "
                "estimated_hours_saved = 0.0, last_updated = ? WHERE id = 1",
                (utc_now(),),
            )
        logger.info("Statistics reset")

    # ── App state ───────────────────────────────────────────────────────────────

    def get_settings(self) -> Settings:
        raw = self._get_state(SETTINGS_KEY)
        if raw is None:
            return Settings()
        try:
            return Settings.from_dict(json.loads(raw))
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("Stored settings unreadable (%s); using defaults", exc)
            return Settings()

    def save_settings(self, settings: Settings) -> None:
        self._set_state(SETTINGS_KEY, json.dumps(settings.to_dict()))

    def get_last_sync(self) -> str | None:
        return self._get_state(LAST_SYNC_KEY)

    def set_last_sync(self, timestamp: str) -> None:
        self._set_state(LAST_SYNC_KEY, timestamp)

    # ── Custom labels ───────────────────────────────────────────────────────────

    def list_custom_labels(self, enabled_only: bool = False) -> list[CustomLabel]:
        query = (
            "SELECT id, name, prompt, enabled, created_at, last_used_at FROM custom_labels"
        )
        if enabled_only:
            query += " WHERE enabled = 1"
        rows = self._conn.execute(query + " ORDER BY created_at, name").fetchall()
        return [_row_to_label(r) for r in rows]

    def get_custom_label(self, name: str) -> CustomLabel | None:
        row = self._conn.execute(
            "SELECT id, name, prompt, enabled, created_at, last_used_at "
            "FROM custom_labels WHERE name = ?",
            (name,),
        ).fetchone()
        return _row_to_label(row) if row else None

    def add_custom_label(self, name: str, prompt: str, enabled: bool = True) -> CustomLabel:
        """Create a custom label; evicts least recently used beyond capacity.

        Raises:
            ValueError: a label with this name already exists.
        """
        label_id = uuid.uuid4().hex
        try:
            with self._conn:
                self._conn.execute(
                    "INSERT INTO custom_labels (id, name, prompt, enabled, created_at) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (label_id, name, prompt, int(enabled), utc_now()),
                )
                self._evict_custom_labels()
        except sqlite3.IntegrityError as exc:
            raise ValueError(f"Custom label {name!r} already exists") from exc
        label = self.get_custom_label(name)
        assert label is not None
        return label

    def update_custom_label(
        self,
        name: str,
        *,
        prompt: str | None = None,
        enabled: bool | None = None,
    ) -> bool:
        """Update prompt and/or enabled flag.  Returns False if no such label."""
        assignments: list[str] = []
        params: list[object] = []
        if prompt is not None:
            assignments.append("prompt = ?")
            params.append(prompt)
        if enabled is not None:
            assignments.append("enabled = ?")
            params.append(int(enabled))
        if not assignments:
            return self.get_custom_label(name) is not None
        with self._conn:
            cur = self._conn.execute(
                f"UPDATE custom_labels SET {', '.join(assignments)} WHERE name = ?",
                (*params, name),
            )
        return cur.rowcount > 0

    def delete_custom_label(self, name: str) -> bool:
        with self._conn:
            cur = self._conn.execute("DELETE FROM custom_labels WHERE name = ?", (name,))
        return cur.rowcount > 0

    def touch_custom_labels(self, names: set[str] | frozenset[str]) -> None:
        """Record use of the given labels (drives recency-based eviction)."""
        if not names:
            return
        now = utc_now()
        with self._conn:
            self._conn.executemany(
                "UPDATE custom_labels SET last_used_at = ? WHERE name = ?",
                [(now, n) for n in names],
            )

    # ── Priorities ──────────────────────────────────────────────────────────────

    def set_priority(self, message_id: str, priority: Priority) -> None:
        """Record the latest priority for a message; oldest beyond capacity evicted."""
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO priorities (message_id, priority, recorded_at) VALUES (?, ?, ?)
                ON CONFLICT(message_id) DO UPDATE SET
                    priority = excluded.priority,
                    recorded_at = excluded.recorded_at
                """,
                (message_id, priority.value, utc_now()),
            )
            evicted = self._conn.execute(
                """
                DELETE FROM priorities
                WHERE message_id NOT IN (
                    SELECT message_id FROM priorities
                    ORDER BY recorded_at DESC, rowid DESC
                    LIMIT ?
                )
                """,
                (self._priority_capacity,),
            ).rowcount
        if evicted:
            logger.debug("Evicted %d oldest priority record(s)", evicted)

    def get_priority(self, message_id: str) -> Priority | None:
        row = self._conn.execute(
            "SELECT priority FROM priorities WHERE message_id = ?", (message_id,)
        ).fetchone()
        return Priority.parse(row["priority"]) if row else None

    def count_priorities(self) -> int:
        row = self._conn.execute("SELECT COUNT(*) AS n FROM priorities").fetchone()
        return int(row["n"])

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)
            self._conn.execute("INSERT OR IGNORE INTO statistics (id) VALUES (1)")

    def _get_state(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM app_state WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else None

    def _set_state(self, key: str, value: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO app_state (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def _evict_custom_labels(self) -> None:
        self._conn.execute(
            """
            DELETE FROM custom_labels
            WHERE id NOT IN (
                SELECT id FROM custom_labels
                ORDER BY COALESCE(last_used_at, created_at) DESC, created_at DESC
                LIMIT ?
            )
            """,
            (self._custom_label_capacity,),
        )


def _row_to_label(row: sqlite3.Row) -> CustomLabel:
    d = dict(row)
    d["enabled"] = bool(d["enabled"])
    return CustomLabel(**d)
