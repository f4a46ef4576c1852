"""Tests for StatisticsAggregator."""

import pytest

from email_ai.storage.db import StateDatabase
from email_ai.storage.statistics import MINUTES_SAVED_PER_DRAFT, StatisticsAggregator


class TestStatisticsAggregator:
    def test_record_cycle_adds_processed(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        stats.record_cycle(3)
        snapshot = stats.record_cycle(2)
        assert snapshot is not None
        assert snapshot.messages_processed == 5

    def test_record_cycle_zero_is_noop(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        assert stats.record_cycle(0) is None
        assert stats.snapshot().last_updated is None

    def test_drafts_estimate_time_saved(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        for _ in range(12):
            stats.record_draft()
        snapshot = stats.snapshot()
        assert snapshot.drafts_generated == 12
        assert snapshot.estimated_hours_saved == pytest.approx(12 * MINUTES_SAVED_PER_DRAFT / 60)
        assert snapshot.estimated_hours_saved == pytest.approx(1.0)

    def test_counters_never_decrease(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        previous = stats.snapshot()
        for counter in ("messages_processed", "drafts_generated", "messages_processed"):
            current = stats.increment(counter)
            assert current.messages_processed >= previous.messages_processed
            assert current.drafts_generated >= previous.drafts_generated
            previous = current

    def test_negative_increment_rejected(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        with pytest.raises(ValueError):
            stats.increment("drafts_generated", -1)
        assert stats.snapshot().drafts_generated == 0

    def test_reset_zeroes_counters(self, db: StateDatabase) -> None:
        stats = StatisticsAggregator(db)
        stats.record_draft()
        stats.reset()
        snapshot = stats.snapshot()
        assert snapshot.drafts_generated == 0
        assert snapshot.estimated_hours_saved == 0.0
