"""Tests for StateDatabase — all tests use a temporary SQLite file."""

from collections.abc import Iterator
from itertools import count
from pathlib import Path

import pytest

from email_ai.config import Settings
from email_ai.processing.types import Priority
from email_ai.storage.db import StateDatabase
from email_ai.storage.models import Statistics


# ── Lifecycle ──────────────────────────────────────────────────────────────────


class TestLifecycle:
    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        db = StateDatabase(db_path=tmp_path / "nested" / "state.db")
        assert (tmp_path / "nested" / "state.db").exists()
        db.close()

    def test_state_survives_reopen(self, tmp_path: Path) -> None:
        path = tmp_path / "state.db"
        first = StateDatabase(db_path=path)
        first.add_processed_id("msg_1", capacity=10)
        first.increment_statistic("messages_processed", 3)
        first.set_last_sync("2026-03-01T10:00:00+00:00")
        first.close()

        second = StateDatabase(db_path=path)
        assert second.has_processed_id("msg_1")
        assert second.get_statistics().messages_processed == 3
        assert second.get_last_sync() == "2026-03-01T10:00:00+00:00"
        second.close()


# ── processed_messages ─────────────────────────────────────────────────────────


class TestProcessedIds:
    def test_add_and_has(self, db: StateDatabase) -> None:
        assert not db.has_processed_id("a")
        db.add_processed_id("a", capacity=10)
        assert db.has_processed_id("a")

    def test_duplicate_add_is_ignored(self, db: StateDatabase) -> None:
        db.add_processed_id("a", capacity=10)
        db.add_processed_id("a", capacity=10)
        assert db.count_processed_ids() == 1

    def test_oldest_first_order(self, db: StateDatabase) -> None:
        for message_id in ("c", "a", "b"):
            db.add_processed_id(message_id, capacity=10)
        assert db.processed_ids() == ["c", "a", "b"]

    def test_capacity_evicts_oldest(self, db: StateDatabase) -> None:
        for message_id in ("a", "b", "c", "d"):
            db.add_processed_id(message_id, capacity=3)
        assert db.processed_ids() == ["b", "c", "d"]


# ── statistics ─────────────────────────────────────────────────────────────────


class TestStatistics:
    def test_starts_at_zero(self, db: StateDatabase) -> None:
        assert db.get_statistics() == Statistics()

    def test_increment_sets_last_updated(self, db: StateDatabase) -> None:
        stats = db.increment_statistic("drafts_generated", 2)
        assert stats.drafts_generated == 2
        assert stats.last_updated is not None

    def test_float_counter(self, db: StateDatabase) -> None:
        db.increment_statistic("estimated_hours_saved", 0.25)
        stats = db.increment_statistic("estimated_hours_saved", 0.5)
        assert stats.estimated_hours_saved == pytest.approx(0.75)

    def test_unknown_counter_raises(self, db: StateDatabase) -> None:
        with pytest.raises(ValueError):
            db.increment_statistic("emails_deleted", 1)

    def test_negative_amount_raises(self, db: StateDatabase) -> None:
        with pytest.raises(ValueError):
            db.increment_statistic("messages_processed", -1)

    def test_reset(self, db: StateDatabase) -> None:
        db.increment_statistic("messages_processed", 5)
        db.reset_statistics()
        assert db.get_statistics().messages_processed == 0


# ── app_state ──────────────────────────────────────────────────────────────────


class TestAppState:
    def test_default_settings(self, db: StateDatabase) -> None:
        assert db.get_settings() == Settings()

    def test_settings_round_trip(self, db: StateDatabase) -> None:
        custom = Settings(auto_draft=False, default_tone="friendly", sync_interval_seconds=300)
        db.save_settings(custom)
        assert db.get_settings() == custom

    def test_corrupt_settings_fall_back_to_defaults(self, db: StateDatabase) -> None:
        db._set_state("settings", "{not json")
        assert db.get_settings() == Settings()

    def test_unknown_stored_keys_are_ignored(self, db: StateDatabase) -> None:
        db._set_state("settings", '{"auto_sync": false, "theme": "dark"}')
        assert db.get_settings() == Settings(auto_sync=False)

    def test_last_sync_none_until_set(self, db: StateDatabase) -> None:
        assert db.get_last_sync() is None
        db.set_last_sync("2026-03-01T10:00:00+00:00")
        db.set_last_sync("2026-03-01T10:01:00+00:00")
        assert db.get_last_sync() == "2026-03-01T10:01:00+00:00"


# ── custom_labels ──────────────────────────────────────────────────────────────


class TestCustomLabels:
    def test_add_and_get(self, db: StateDatabase) -> None:
        label = db.add_custom_label("Travel", "Flights, hotels and itineraries")
        assert label.name == "Travel"
        assert label.enabled
        assert label.created_at is not None
        assert db.get_custom_label("Travel") == label

    def test_duplicate_name_raises(self, db: StateDatabase) -> None:
        db.add_custom_label("Travel", "x")
        with pytest.raises(ValueError, match="already exists"):
            db.add_custom_label("Travel", "y")

    def test_enabled_only_filter(self, db: StateDatabase) -> None:
        db.add_custom_label("On", "x")
        db.add_custom_label("Off", "y", enabled=False)
        assert [label.name for label in db.list_custom_labels(enabled_only=True)] == ["On"]
        assert len(db.list_custom_labels()) == 2

    def test_update_prompt_and_enabled(self, db: StateDatabase) -> None:
        db.add_custom_label("Travel", "old")
        assert db.update_custom_label("Travel", prompt="new", enabled=False)
        label = db.get_custom_label("Travel")
        assert label is not None
        assert label.prompt == "new"
        assert not label.enabled

    def test_update_missing_returns_false(self, db: StateDatabase) -> None:
        assert not db.update_custom_label("Ghost", enabled=True)

    def test_delete(self, db: StateDatabase) -> None:
        db.add_custom_label("Travel", "x")
        assert db.delete_custom_label("Travel")
        assert not db.delete_custom_label("Travel")
        assert db.get_custom_label("Travel") is None

    def test_touch_sets_last_used(self, db: StateDatabase) -> None:
        db.add_custom_label("Travel", "x")
        db.touch_custom_labels({"Travel"})
        label = db.get_custom_label("Travel")
        assert label is not None and label.last_used_at is not None

    def test_capacity_evicts_least_recently_used(self, tmp_path: Path) -> None:
        db = StateDatabase(db_path=tmp_path / "labels.db", custom_label_capacity=2)
        db.add_custom_label("First", "x")
        db.add_custom_label("Second", "y")
        db.touch_custom_labels({"First"})

        db.add_custom_label("Third", "z")

        names = {label.name for label in db.list_custom_labels()}
        assert names == {"First", "Third"}
        db.close()


# ── priorities ─────────────────────────────────────────────────────────────────


@pytest.fixture
def ticking_clock(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    ticks = count()
    monkeypatch.setattr(
        "email_ai.storage.db.utc_now",
        lambda: f"2026-03-01T10:00:{next(ticks):02d}+00:00",
    )
    yield


class TestPriorities:
    def test_set_and_get(self, db: StateDatabase) -> None:
        db.set_priority("msg_1", Priority.HIGH)
        assert db.get_priority("msg_1") is Priority.HIGH

    def test_unknown_message_is_none(self, db: StateDatabase) -> None:
        assert db.get_priority("ghost") is None

    def test_latest_priority_wins(self, db: StateDatabase) -> None:
        db.set_priority("msg_1", Priority.LOW)
        db.set_priority("msg_1", Priority.HIGH)
        assert db.get_priority("msg_1") is Priority.HIGH
        assert db.count_priorities() == 1

    def test_oldest_evicted_beyond_capacity(self, tmp_path: Path, ticking_clock: None) -> None:
        db = StateDatabase(db_path=tmp_path / "p.db", priority_capacity=2)
        db.set_priority("a", Priority.HIGH)
        db.set_priority("b", Priority.MEDIUM)
        db.set_priority("c", Priority.LOW)

        assert db.count_priorities() == 2
        assert db.get_priority("a") is None
        assert db.get_priority("c") is Priority.LOW
        db.close()

    def test_updating_refreshes_age(self, tmp_path: Path, ticking_clock: None) -> None:
        db = StateDatabase(db_path=tmp_path / "p.db", priority_capacity=2)
        db.set_priority("a", Priority.HIGH)
        db.set_priority("b", Priority.MEDIUM)
        db.set_priority("a", Priority.LOW)
        db.set_priority("c", Priority.LOW)

        assert db.get_priority("a") is Priority.LOW
        assert db.get_priority("b") is None
        db.close()

    def test_default_capacity_is_500(self, db: StateDatabase) -> None:
        for i in range(505):
            db.set_priority(f"msg_{i}", Priority.MEDIUM)
        assert db.count_priorities() == 500
