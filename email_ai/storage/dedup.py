"""Bounded, insertion-ordered set of already-handled message ids."""

import logging

from email_ai.storage.db import StateDatabase

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class DedupStore:
    """Write-once tracking of processed message ids, FIFO-evicted.

    Eviction is by insertion order, not access order: ``has()`` never
    refreshes an entry, and re-adding an existing id has no effect.

    Usage::

        dedup = DedupStore(db)
        if not dedup.has(message.id):
            ...
            dedup.add(message.id)
    """

    def __init__(self, db: StateDatabase, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._db = db
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def has(self, message_id: str) -> bool:
        return self._db.has_processed_id(message_id)

    def add(self, message_id: str) -> None:
        self._db.add_processed_id(message_id, self._capacity)

    def ids(self) -> list[str]:
        """Tracked ids, oldest first."""
        return self._db.processed_ids()

    def __contains__(self, message_id: object) -> bool:
        return isinstance(message_id, str) and self.has(message_id)

    def __len__(self) -> int:
        return self._db.count_processed_ids()
