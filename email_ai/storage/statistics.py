"""Usage statistics aggregated across sync cycles."""

import logging

from email_ai.storage.db import StateDatabase
from email_ai.storage.models import Statistics

logger = logging.getLogger(__name__)

#: Time saved per generated reply draft.
MINUTES_SAVED_PER_DRAFT = 5


class StatisticsAggregator:
    """Monotonic counters persisted in the state database.

    Every increment re-reads the stored row before writing, so there is no
    in-memory copy to go stale across restarts.  Callers are serialised by
    the Sync Controller's single-flight guarantee.
    """

    def __init__(self, db: StateDatabase) -> None:
        self._db = db

    def increment(self, counter: str, amount: float = 1) -> Statistics:
        """Add ``amount`` to ``counter`` and return the new snapshot.

        Raises:
            ValueError: unknown counter name or negative amount.
        """
        return self._db.increment_statistic(counter, amount)

    def snapshot(self) -> Statistics:
        return self._db.get_statistics()

    def record_cycle(self, processed: int) -> Statistics | None:
        """Fold one cycle's success count into messages_processed."""
        if processed <= 0:
            return None
        stats = self.increment("messages_processed", processed)
        logger.debug("Statistics: messages_processed=%d", stats.messages_processed)
        return stats

    def record_draft(self) -> Statistics:
        """Count one generated draft and the time it is estimated to save."""
        self.increment("drafts_generated", 1)
        return self.increment("estimated_hours_saved", MINUTES_SAVED_PER_DRAFT / 60)

    def reset(self) -> None:
        """Zero every counter.  Operator action only; never called by the core."""
        self._db.reset_statistics()
